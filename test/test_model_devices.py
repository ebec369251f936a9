from pytest import raises

from stormcrow.model import AttachmentState, BusLocation, DeviceKey, parse_usb_id


def test_parse_usb_id():
    assert parse_usb_id("1234") == 0x1234
    assert parse_usb_id("c52B") == 0xC52B
    assert parse_usb_id("0x046d") == 0x046D
    assert parse_usb_id("0XFFFF") == 0xFFFF
    assert parse_usb_id(" 0001 ") == 1


def test_parse_usb_id_rejects_malformed_input():
    for value in ("", "123", "12345", "0x123", "zzzz", "12 4", "0x", None, 0x1234):
        with raises(ValueError):
            parse_usb_id(value)


def test_device_key():
    key = DeviceKey.from_hex("046d", "0xC52B")
    assert key == DeviceKey(0x046D, 0xC52B)
    assert key.vendor_hex == "046d"
    assert key.product_hex == "c52b"
    assert str(key) == "046d:c52b"
    assert hash(key) == hash(DeviceKey(0x046D, 0xC52B))


def test_device_key_range():
    with raises(ValueError):
        DeviceKey(0x10000, 1)
    with raises(ValueError):
        DeviceKey(1, -1)


def test_bus_location():
    assert str(BusLocation(1, 4)) == "001/004"
    assert BusLocation(1, 4) == BusLocation(1, 4)
    assert BusLocation(1, 4) != BusLocation(4, 1)


def test_attachment_state_transitions():
    legal = {
        (AttachmentState.DETACHED, AttachmentState.ATTACHING),
        (AttachmentState.ATTACHING, AttachmentState.ATTACHED),
        (AttachmentState.ATTACHING, AttachmentState.DETACHED),
        (AttachmentState.ATTACHED, AttachmentState.DETACHING),
        (AttachmentState.DETACHING, AttachmentState.DETACHED),
    }

    for old in AttachmentState:
        for new in AttachmentState:
            assert old.can_transition_to(new) is ((old, new) in legal)


def test_attachment_state_in_flight():
    assert AttachmentState.ATTACHING.in_flight
    assert AttachmentState.DETACHING.in_flight
    assert not AttachmentState.ATTACHED.in_flight
    assert not AttachmentState.DETACHED.in_flight
