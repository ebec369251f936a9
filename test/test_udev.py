from stormcrow.model import BusLocation, DeviceEvent, DeviceEventKind, DeviceKey
from stormcrow.sources import UdevDeviceSource, parse_uevent

KEY = DeviceKey(0x046D, 0xC52B)
SYS_PATH = "/sys/devices/pci0000:00/0000:00:14.0/usb1/1-4"

PROPERTIES = {
    "ACTION": "add",
    "BUSNUM": "001",
    "DEVNUM": "004",
    "DEVTYPE": "usb_device",
    "ID_MODEL_ID": "c52b",
    "ID_VENDOR_ID": "046d",
    "PRODUCT": "46d/c52b/1211",
    "SUBSYSTEM": "usb",
}


def test_parse_uevent():
    assert parse_uevent("add", PROPERTIES) == (
        DeviceEventKind.PRESENT,
        KEY,
        BusLocation(1, 4),
    )
    assert parse_uevent("remove", {"PRODUCT": "46d/c52b/1211"}) == (
        DeviceEventKind.ABSENT,
        KEY,
        None,
    )


def test_parse_uevent_falls_back_to_id_properties():
    properties = {"ID_VENDOR_ID": "046d", "ID_MODEL_ID": "c52b", "PRODUCT": "junk"}
    assert parse_uevent("add", properties) == (DeviceEventKind.PRESENT, KEY, None)


def test_parse_uevent_ignores_other_actions():
    for action in ("bind", "unbind", "change", None):
        assert parse_uevent(action, PROPERTIES) is None


def test_process_add_and_remove():
    source = UdevDeviceSource()

    assert source.process("add", SYS_PATH, PROPERTIES) == DeviceEvent.present(
        KEY, BusLocation(1, 4)
    )
    assert source.process("bind", SYS_PATH, PROPERTIES) is None

    # Removal events may lack the ID properties
    assert source.process("remove", SYS_PATH, {}) == DeviceEvent.absent(
        KEY, BusLocation(1, 4)
    )


def test_process_unidentified_devices():
    source = UdevDeviceSource()

    assert source.process("add", SYS_PATH, {"BUSNUM": "001", "DEVNUM": "004"}) is None
    assert source.process("add", SYS_PATH, {"PRODUCT": "46d/c52b/1211"}) is None
    assert source.process("remove", SYS_PATH, {}) is None
