# Payload layout of the Feather M0 LoRaWAN PM sensor (fPort 1)
#
# byte 0      : payload version
# byte 1      : sensor status (see SensorStatus)
# byte 2..n-2 : tag followed by a fixed width value, see TAGS
# byte n-1    : never read as a tag
import logging
from enum import IntFlag
from typing import Callable, NamedTuple, Sequence

from .schemas import DecodedPayload

logger = logging.getLogger(__name__)


MEASUREMENT_FPORT = 1
HEADER_SIZE = 2


class DecoderError(Exception):
    pass


class UnsupportedPort(DecoderError):
    pass


class UnknownTag(DecoderError):
    pass


class TruncatedPayload(DecoderError):
    pass


class SensorStatus(IntFlag):
    OFFLINE = 0x00
    INITED = 0x01
    WARMUP = 0x02
    I2C_FAILED = 0x04
    I2C_ERROR = 0x08
    SDS011_ERROR = 0x10
    HAS_BME280 = 0x20
    HAS_SHT31 = 0x40
    HAS_SI7021 = 0x80


class TagEntry(NamedTuple):
    field: str
    width: int
    decode: Callable[[Sequence[int]], int | float]


def _uint16(b: Sequence[int]) -> int:
    return (b[0] << 8) + b[1]


def _battery(b: Sequence[int]) -> float:
    # Firmware sends vbat * 100 - 256 in a single byte
    return (b[0] + 256) / 100.0


def _temperature(b: Sequence[int]) -> float:
    value = _uint16(b)
    if b[0] & 0x80:
        value -= 0x10000
    return value / 100.0


def _humidity(b: Sequence[int]) -> int:
    return b[0]


def _tenths(b: Sequence[int]) -> float:
    return _uint16(b) / 10.0


TAGS: dict[int, TagEntry] = {
    0x01: TagEntry("battery", 1, _battery),
    0x10: TagEntry("temperature", 2, _temperature),
    0x11: TagEntry("humidity", 1, _humidity),
    0x12: TagEntry("pressure", 2, _tenths),
    0x50: TagEntry("pm25", 2, _tenths),
    0x51: TagEntry("pm10", 2, _tenths),
}


def decode(raw: Sequence[int], port: int, strict: bool = False, tags: dict[int, TagEntry] = TAGS) -> DecodedPayload:
    """Decode a measurement uplink into a field name -> value mapping.

    Only fPort 1 carries measurements, any other port gives an empty dict.
    Unknown tags are skipped one byte at a time. A known tag whose value
    would run past the end of the buffer is dropped and ends the scan.

    With ``strict`` set, the three conditions above raise UnsupportedPort,
    UnknownTag and TruncatedPayload instead.
    """
    decoded: DecodedPayload = {}

    if port != MEASUREMENT_FPORT:
        if strict:
            raise UnsupportedPort(f"fPort {port} is not a measurement port")
        return decoded

    decoded["length"] = len(raw)

    i = HEADER_SIZE
    while i < len(raw) - 1:
        tag = raw[i]
        entry = tags.get(tag)

        if entry is None:
            if strict:
                raise UnknownTag(f"Unknown tag 0x{tag:02x} at offset {i}")
            logger.debug(f"Skipping unknown tag 0x{tag:02x} at offset {i}")
            i += 1
            continue

        value_bytes = raw[i + 1:i + 1 + entry.width]
        if len(value_bytes) < entry.width:
            if strict:
                raise TruncatedPayload(f"Tag 0x{tag:02x} at offset {i} needs {entry.width} bytes, {len(value_bytes)} left")
            logger.debug(f"Dropping truncated {entry.field} value at offset {i}")
            break

        decoded[entry.field] = entry.decode(value_bytes)
        i += 1 + entry.width

    return decoded


def status_flags(raw: Sequence[int]) -> list[str]:
    """Names of the sensor status bits set in the status byte."""
    if len(raw) < HEADER_SIZE:
        return []
    status = SensorStatus(raw[1])
    if status == SensorStatus.OFFLINE:
        return [SensorStatus.OFFLINE.name]
    return [flag.name for flag in SensorStatus if flag and flag in status]
