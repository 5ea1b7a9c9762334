import datetime
import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion
import requests
import threading
import time
import logging

from flask import Flask, abort, render_template, jsonify, request
from asgiref.wsgi import WsgiToAsgi
import uvicorn
import json
import copy

# Project import
from airnode.ttn import parse_ttn
from airnode.loriot import parse_loriot
from airnode.schemas import Frame, Reading, InvalidFrame, InvalidJSON
from airnode.validate_config import export_config
from airnode.uplink import decode_uplink
from airnode.decoder import status_flags


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

config = {} # Will be loaded after


client_mqtt_output = mqtt.Client(callback_api_version=CallbackAPIVersion.VERSION2)
client_mqtt_input: mqtt.Client | None = None




# Global var

# Holding DevEUI - latest decoded reading mapping
latest: dict[str, Reading] = {}
latest_lock = threading.Lock()
exit_event = threading.Event()


# CONST

HTTP_TIMEOUT = 10 # second

# Map MQTT error name with enum value
MQTT_ERROR_NAMES = {v: k for k, v in vars(mqtt).items() if k.startswith("MQTT_ERR_")}



def get_fports() -> list[int]:
    return config["uplink"].get("fports", [1])

def is_strict() -> bool:
    return config["uplink"].get("strict", False)



######## FRAME PROCESSING #########

def process_frame(frame: Frame) -> Reading:
    logger.debug(f"Raw uplink for DevEUI {frame['devEUI']} on fPort {frame['fPort']}: {frame['raw'].hex()}")

    result = decode_uplink({"bytes": frame["raw"], "fPort": frame["fPort"]}, strict=is_strict())

    reading: Reading = {
        "devEUI": frame["devEUI"],
        "fPort": frame["fPort"],
        "received_time": frame["received_time"],
        "status": status_flags(frame["raw"]),
        "data": result["data"],
    }
    if "errors" in result:
        reading["errors"] = result["errors"]

    logger.info(f"Uplink decoded for DevEUI {frame['devEUI']}: {reading['data']}")

    with latest_lock:
        latest[frame["devEUI"]] = reading

    if config["output"]["mqtt"]["enable"] == True:
        send_mqtt_message(frame["devEUI"], reading)
    if config["output"]["http"]["enable"] == True:
        send_http_request(reading)

    return reading


######### INPUT #########


#### LNS ####

# Loriot : directly output on the topic itself, no subtopic used.
# TTN : Need to subscribe to v3/{application id}@{tenant id}/devices/{device id}/up

def parse_chunk(chunk: dict) -> Frame:
    match config["uplink"]["lns"]:
        case "ttn":
            frame = parse_ttn(chunk)
        case "loriot":
            frame = parse_loriot(chunk)
        case _:
            logger.critical("This LNS is not supported, check config.yaml, exiting...")
            exit()

    if not frame:
        logger.debug("Could not parse the uplink received.")
        raise InvalidFrame

    return frame


#### MQTT ####

# MQTT : On message callback
def on_mqtt_message(client, userdata, message: mqtt.MQTTMessage) -> None:
    logger.debug(f"Received MQTT msg on topic: {message.topic}, payload :" + str(message.payload))

    try:
        frame = parse_mqtt(message)
    except (InvalidJSON, InvalidFrame):
        return None

    if frame["fPort"] in get_fports():
        process_frame(frame)
    else:
        logger.debug(f"Received MQTT frame with non-interesting fPort {frame['fPort']}")


def parse_mqtt(message: mqtt.MQTTMessage) -> Frame:
    try:
        chunk = json.loads(message.payload)
    except ValueError:
        logger.error(f"Received an invalid message (not json) from topic {message.topic}: {message.payload}")
        raise InvalidJSON

    return parse_chunk(chunk)


#### HTTP ####

flask_app = Flask(__name__)



def start_flask(http_server):
    http_server.run()

@flask_app.route("/input", methods=["POST"])
def receive_http_uplink():
    if config["input"]["http"]["enable"] == False:
        abort(404)

    chunk = request.get_json(silent=True)
    if not isinstance(chunk, dict):
        return jsonify({"status": "invalid", "error": "body is not a JSON object"}), 400

    try:
        frame = parse_chunk(chunk)
    except InvalidFrame:
        return jsonify({"status": "invalid", "error": "unknown uplink format"}), 400

    if frame["fPort"] not in get_fports():
        return jsonify({"status": "ignored"}), 200

    reading = process_frame(frame)
    return jsonify({"status": "received", "reading": reading}), 200


@flask_app.route("/devices/<dev_eui>", methods=["GET"])
def device_reading(dev_eui: str):
    with latest_lock:
        reading = copy.deepcopy(latest.get(dev_eui))

    if reading is None:
        abort(404)
    return jsonify(reading), 200


@flask_app.route("/monitor", methods=["GET"])
def monitor_latest():
    with latest_lock:
        table_data = copy.deepcopy(latest)

    for reading in table_data.values():
        reading["received_time_str"] = datetime.datetime.fromtimestamp(reading["received_time"]).strftime("%Y-%m-%d %H:%M:%S") # type: ignore

    result = render_template("monitor.html",data=table_data)
    return result, 200

######### OUTPUT #########


#### MQTT ####

# MQTT : Publish
def send_mqtt_message(devEUI: str, reading: Reading) -> bool:
    logger.debug(f"Publishing decoded uplink for DevEUI {devEUI} to MQTT")
    res = client_mqtt_output.publish(config["output"]["mqtt"]["topic"]+f"/{devEUI}", json.dumps(reading))
    if res.rc == mqtt.MQTT_ERR_SUCCESS:
        return True
    else:
        logger.error(f"Failed to publish MQTT message: {MQTT_ERROR_NAMES.get(res.rc)}")
        return False

#### HTTP ####

def send_http_request(reading: Reading) -> bool:
    try:
        res = requests.post(config["output"]["http"]["url"], json={"uplink": reading}, timeout=HTTP_TIMEOUT)
        res.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Failed to forward uplink over HTTP: {e}")
        return False
    return True



###### INIT

def load_config() -> dict:
    global config

    try:
        # Run validation
        loaded = export_config()
    except Exception as e:
        logger.error(f"Fail to parse config.yaml, verify if file exist and its content: {e}")
        exit()

    config.clear()
    config.update(loaded)
    return config


def launch():

    ######## CONFIG
    load_config()
    init_logging()
    init_input()
    init_http_server()
    init_output()


    logger.info("Application started and waiting for input...")


    # Keep the main thread alive
    while not exit_event.is_set():
        try:
            time.sleep(1)
        except KeyboardInterrupt:
            shutdown()




def shutdown():
    logger.info("Shutting down...")

    if client_mqtt_input is not None:
        client_mqtt_input.loop_stop()
        client_mqtt_input.disconnect()

    if config["output"]["mqtt"]["enable"] == True:
        client_mqtt_output.loop_stop()
        client_mqtt_output.disconnect()

    exit_event.set()

    time.sleep(1) # Allow time for all thread to end properly
    exit(0)

def init_output():
    if config["output"]["mqtt"]["enable"] == False and config["output"]["http"]["enable"] == False:
        logger.critical("At least one output should be selected. Please check config.")
        exit()

    if config["output"]["mqtt"]["enable"] == True:
        auth = config["output"]["mqtt"].get("auth")
        if auth:
            client_mqtt_output.username_pw_set(auth["username"], auth["password"])
        try:
            client_mqtt_output.connect(config["output"]["mqtt"]["host"], config["output"]["mqtt"]["port"])
            logger.info("Output Connected to MQTT Broker !")
        except Exception as e:
            logger.critical("MQTT Output Failed : Failed to connect to the MQTT Broker : " +  str(e))
            exit()
        client_mqtt_output.loop_start()

def init_http_server():
    if config["input"]["http"]["enable"] == False:
        return None

    asgi_flask_app = WsgiToAsgi(flask_app)
    http_server = uvicorn.Server(uvicorn.Config(asgi_flask_app, host=config["input"]["http"]["host"], port=config["input"]["http"]["port"]))
    flask_thread = threading.Thread(target=start_flask,args=[http_server], daemon=True)
    flask_thread.start()
    logger.info("HTTP Server started...")
    return http_server

def init_input():
    global client_mqtt_input

    if config["input"]["http"]["enable"] == False and config["input"]["mqtt"]["enable"] == False:
        logger.critical("At least one input should be selected. Please check config.")
        exit()

    if config["input"]["mqtt"]["enable"] == True:
        mqtt_client = mqtt.Client(callback_api_version=CallbackAPIVersion.VERSION2)
        mqtt_client.on_message = on_mqtt_message
        auth = config["input"]["mqtt"].get("auth")
        if auth:
            mqtt_client.username_pw_set(auth["username"], auth["password"])
        try:
            mqtt_client.connect(config["input"]["mqtt"]["host"], config["input"]["mqtt"]["port"])
            logger.info("Input Connected to MQTT Broker !")
        except Exception as e:
            logger.critical("MQTT Input Failed : Failed to connect to the MQTT Broker : " +  str(e))
            exit()
        mqtt_client.subscribe(config["input"]["mqtt"]["topic"])
        mqtt_client.loop_start()
        client_mqtt_input = mqtt_client

    return client_mqtt_input

def init_logging():
    match config["log"]["level"]:
        case "debug":
            log_level = logging.DEBUG
        case "info":
            log_level = logging.INFO
        case "warning":
            log_level = logging.WARNING
        case "error":
            log_level = logging.ERROR
        case "critical":
            log_level = logging.CRITICAL
        case _: # Default
            log_level = logging.INFO

    logger.setLevel(log_level)
    logging.getLogger("airnode").setLevel(log_level)


if __name__ == "__main__":
    launch()
