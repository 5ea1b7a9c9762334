from typing import NotRequired, TypedDict


DecodedPayload = dict[str, int | float]


# Uplink as received from the LNS, before decoding
class Frame(TypedDict):
    raw: bytes
    devEUI: str
    fPort: int
    received_time: float


# What gets published and kept as a device's latest reading
class Reading(TypedDict):
    devEUI: str
    fPort: int
    received_time: float
    status: list[str]
    data: DecodedPayload
    errors: NotRequired[list[str]]


class InvalidJSON(Exception):
    pass


class InvalidFrame(Exception):
    pass


class InvalidConfig(Exception):
    pass
