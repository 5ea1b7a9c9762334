# Same entry point shape as a TTN v3 uplink payload formatter
# Reference : https://www.thethingsindustries.com/docs/integrations/payload-formatters/javascript/uplink/
import logging

from .decoder import DecoderError, decode

logger = logging.getLogger(__name__)

INVALID_DATA = "Invalid data received"


def decode_uplink(uplink: dict, strict: bool = False) -> dict:
    """Wrap decode() into ``{"data": ...}``, or ``{"data": {}, "errors": [...]}``."""
    try:
        data = decode(uplink["bytes"], uplink["fPort"], strict=strict)
    except DecoderError as e:
        logger.warning(f"{INVALID_DATA}: {e}")
        return {"data": {}, "errors": [f"{INVALID_DATA}: {e}"]}

    return {"data": data}
