import pytest

from airnode.decoder import (
    TAGS,
    SensorStatus,
    TruncatedPayload,
    UnknownTag,
    UnsupportedPort,
    decode,
    status_flags,
)
from tests.static import MEASUREMENT_BYTES, MEASUREMENT_DECODED, MEASUREMENT_STATUS


@pytest.mark.parametrize("raw, expected", [
    ([1, 0, 0x01, 200], {"length": 4, "battery": 4.56}),
    ([1, 0, 0x11, 55], {"length": 4, "humidity": 55}),
    ([1, 0, 0x12, 0x03, 0xE8], {"length": 5, "pressure": 100.0}),
    ([1, 0, 0x10, 0x00, 0x64], {"length": 5, "temperature": 1.0}),
    ([1, 0, 0x10, 0x80, 0x00], {"length": 5, "temperature": -327.68}),
    ([1, 0, 0x99, 7, 0x50, 0x00, 0x0A], {"length": 7, "pm25": 1.0}),
])
def test_decode_scenarios(raw, expected):
    assert decode(raw, 1) == expected


def test_decode_full_measurement():
    assert decode(MEASUREMENT_BYTES, 1) == MEASUREMENT_DECODED


def test_decode_accepts_bytes_and_list():
    assert decode(MEASUREMENT_BYTES, 1) == decode(list(MEASUREMENT_BYTES), 1)


@pytest.mark.parametrize("port", [0, 2, 10, 138, 223, -1])
def test_decode_other_port_is_empty(port):
    """Nothing is decoded, not even length"""
    assert decode(MEASUREMENT_BYTES, port) == {}


@pytest.mark.parametrize("raw", [[], [1], [1, 0], [1, 0, 0x42]])
def test_decode_short_payload_only_length(raw):
    assert decode(raw, 1) == {"length": len(raw)}


def test_decode_is_idempotent():
    first = decode(MEASUREMENT_BYTES, 1)
    second = decode(MEASUREMENT_BYTES, 1)
    assert first == second
    assert first is not second


def test_decode_last_write_wins():
    raw = [1, 0, 0x11, 40, 0x11, 60, 0x00]
    assert decode(raw, 1) == {"length": 7, "humidity": 60}


class TestTemperature:
    @pytest.mark.parametrize("b0, b1, expected", [
        (0x00, 0x00, 0.0),
        (0x7F, 0xFF, 327.67),
        (0xFF, 0xFF, -0.01),
        (0xFF, 0x9C, -1.0),
        (0xFC, 0x18, -10.0),
        (0x80, 0x00, -327.68),
    ])
    def test_two_complement(self, b0, b1, expected):
        assert decode([1, 0, 0x10, b0, b1], 1)["temperature"] == expected


class TestBatteryHumidity:
    def test_battery_range(self):
        assert decode([1, 0, 0x01, 0], 1)["battery"] == 2.56
        assert decode([1, 0, 0x01, 255], 1)["battery"] == 5.11

    def test_humidity_is_int(self):
        humidity = decode([1, 0, 0x11, 99], 1)["humidity"]
        assert humidity == 99
        assert isinstance(humidity, int)


class TestScanBoundary:
    def test_last_byte_never_read_as_tag(self):
        """A tag sitting on the final byte is not decoded"""
        assert decode([1, 0, 0x00, 0x11], 1) == {"length": 4}

    def test_one_byte_tag_uses_last_byte_as_value(self):
        assert decode([1, 0, 0x00, 0x11, 0x20], 1) == {"length": 5, "humidity": 32}

    def test_unknown_tags_skipped_one_by_one(self):
        """Each unknown byte advances the cursor by one"""
        raw = [1, 0, 0xAA, 0xBB, 0x12, 0x00, 0x64]
        assert decode(raw, 1) == {"length": 7, "pressure": 10.0}

    def test_value_bytes_not_rescanned(self):
        """0x11 inside the pm10 value must not be read as humidity"""
        raw = [1, 0, 0x51, 0x11, 0x05, 0x00]
        assert decode(raw, 1) == {"length": 6, "pm10": 435.7}


class TestTruncation:
    def test_truncated_value_dropped(self):
        raw = [1, 0, 0x11, 55, 0x12, 0x03]
        assert decode(raw, 1) == {"length": 6, "humidity": 55}

    def test_truncated_value_raises_in_strict(self):
        with pytest.raises(TruncatedPayload):
            decode([1, 0, 0x11, 55, 0x50, 0x03], 1, strict=True)


class TestStrict:
    def test_strict_valid_payload(self):
        assert decode(MEASUREMENT_BYTES, 1, strict=True) == MEASUREMENT_DECODED

    def test_strict_unsupported_port(self):
        with pytest.raises(UnsupportedPort):
            decode(MEASUREMENT_BYTES, 2, strict=True)

    def test_strict_unknown_tag(self):
        with pytest.raises(UnknownTag):
            decode([1, 0, 0x99, 7, 0x50, 0x00, 0x0A], 1, strict=True)


def test_tag_table_is_closed():
    assert sorted(TAGS) == [0x01, 0x10, 0x11, 0x12, 0x50, 0x51]
    assert {tag: entry.width for tag, entry in TAGS.items()} == {
        0x01: 1, 0x10: 2, 0x11: 1, 0x12: 2, 0x50: 2, 0x51: 2,
    }


class TestStatusFlags:
    def test_measurement_status(self):
        assert status_flags(MEASUREMENT_BYTES) == MEASUREMENT_STATUS

    def test_offline(self):
        assert status_flags([1, 0x00]) == ["OFFLINE"]

    def test_all_errors(self):
        raw = [1, SensorStatus.I2C_FAILED | SensorStatus.I2C_ERROR | SensorStatus.SDS011_ERROR]
        assert status_flags(raw) == ["I2C_FAILED", "I2C_ERROR", "SDS011_ERROR"]

    def test_too_short(self):
        assert status_flags([1]) == []


def test_decode_custom_tag_table():
    """Only the tags of the given table are decoded"""
    tags = {0x11: TAGS[0x11]}
    raw = [1, 0, 0x01, 0x11, 0x11, 50, 0x00]
    assert decode(raw, 1, tags=tags) == {"length": 7, "humidity": 17}
