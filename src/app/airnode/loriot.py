import time, logging
from .schemas import Frame

logger = logging.getLogger(__name__)


# Reference : https://docs.loriot.io/space/NMS/6032848/Uplink+Data+Message
def parse_loriot(chunk: dict) -> Frame | None:
    try:
        if chunk["cmd"] != "rx":
            logger.debug(f"Ignoring Loriot message with cmd {chunk['cmd']}")
            return None

        fport = chunk["port"]
        raw = bytes.fromhex(chunk["data"]) # Format hexstring "CAFEBABE"
        dev_eui = chunk["EUI"]
    except (KeyError, TypeError, ValueError):
        logger.error("Cannot decode Loriot uplink. Message format changed, or LNS is misconfigured in config.yaml")
        return None

    return {"devEUI": dev_eui, "fPort": fport, "raw": raw, "received_time": time.time()}
