# Reference : https://www.thethingsindustries.com/docs/integrations/other-integrations/mqtt/
import time, base64 as b64, binascii, logging
from .schemas import Frame

logger = logging.getLogger(__name__)


def parse_ttn(chunk: dict) -> Frame | None:
    try:
        uplink = chunk["uplink_message"]
        fport = uplink["f_port"]
        raw = b64.b64decode(uplink["frm_payload"], validate=True)
        dev_eui = chunk["end_device_ids"]["dev_eui"]
    except (KeyError, TypeError, binascii.Error):
        logger.error("Cannot decode TTN uplink. Message format changed, or LNS is misconfigured in config.yaml")
        return None

    return {"devEUI": dev_eui, "fPort": fport, "raw": raw, "received_time": time.time()}
