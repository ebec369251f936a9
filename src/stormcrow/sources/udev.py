"""Device plane that watches the USB bus of the host via udev and reports
devices appearing and disappearing.
"""

from __future__ import annotations

import pyudev

from trio.abc import SendChannel
from trio.lowlevel import wait_readable
from typing import Dict, Mapping, Optional, Tuple

from stormcrow.logger import log as base_log
from stormcrow.model import BusLocation, DeviceEvent, DeviceEventKind, DeviceKey

__all__ = ("UdevDeviceSource", "parse_uevent")

log = base_log.getChild("sources.udev")


_EVENT_KINDS = {"add": DeviceEventKind.PRESENT, "remove": DeviceEventKind.ABSENT}


def _parse_key(properties: Mapping[str, str]) -> Optional[DeviceKey]:
    # PRODUCT is "vid/pid/bcdDevice" in unpadded hex and survives removal
    product = properties.get("PRODUCT")
    if product:
        parts = product.split("/")
        if len(parts) >= 2:
            try:
                return DeviceKey(int(parts[0], 16), int(parts[1], 16))
            except ValueError:
                pass

    vendor_id = properties.get("ID_VENDOR_ID")
    product_id = properties.get("ID_MODEL_ID")
    if vendor_id and product_id:
        try:
            return DeviceKey.from_hex(vendor_id, product_id)
        except ValueError:
            pass

    return None


def _parse_bus_location(properties: Mapping[str, str]) -> Optional[BusLocation]:
    try:
        return BusLocation(int(properties["BUSNUM"]), int(properties["DEVNUM"]))
    except (KeyError, ValueError):
        return None


def parse_uevent(
    action: Optional[str], properties: Mapping[str, str]
) -> Optional[Tuple[DeviceEventKind, Optional[DeviceKey], Optional[BusLocation]]]:
    """Extracts the interesting parts of a udev event of a USB device.

    Parameters:
        action: the udev action (``add``, ``remove``, ``bind`` etc)
        properties: the properties of the udev event

    Returns:
        the kind of the event, the key of the device and its location on the
        bus; the key and the location are ``None`` if they cannot be
        determined. Returns ``None`` for events that the daemon is not
        interested in.
    """
    kind = _EVENT_KINDS.get(action or "")
    if kind is None:
        return None
    return kind, _parse_key(properties), _parse_bus_location(properties)


class UdevDeviceSource:
    """Device plane that listens for udev events of USB devices on a netlink
    socket.

    Devices are remembered by their sysfs path when they appear so removal
    events can be resolved even if they lack the vendor and product IDs.
    """

    subsystem: str
    device_type: Optional[str]

    _known_devices: Dict[str, Tuple[DeviceKey, Optional[BusLocation]]]

    def __init__(
        self, subsystem: str = "usb", device_type: Optional[str] = "usb_device"
    ):
        """Constructor.

        Parameters:
            subsystem: the udev subsystem to watch
            device_type: the udev device type to watch; ``None`` watches all
                device types in the subsystem
        """
        self.subsystem = subsystem
        self.device_type = device_type
        self._known_devices = {}

    def process(
        self, action: Optional[str], sys_path: str, properties: Mapping[str, str]
    ) -> Optional[DeviceEvent]:
        """Converts a raw udev event into a device-plane event.

        Returns:
            the device event or ``None`` if the udev event is not relevant or
            the device cannot be identified
        """
        parsed = parse_uevent(action, properties)
        if parsed is None:
            return None

        kind, key, bus_location = parsed

        if kind is DeviceEventKind.PRESENT:
            if key is None or bus_location is None:
                log.debug(f"Cannot identify device at {sys_path}, ignoring")
                return None
            self._known_devices[sys_path] = key, bus_location
            return DeviceEvent.present(key, bus_location)

        known = self._known_devices.pop(sys_path, None)
        if key is None and known is not None:
            key = known[0]
        if bus_location is None and known is not None:
            bus_location = known[1]
        if key is None:
            log.debug(f"Cannot identify removed device at {sys_path}, ignoring")
            return None

        return DeviceEvent.absent(key, bus_location)

    async def run(self, events: SendChannel[DeviceEvent]) -> None:
        """Watches the udev netlink socket and forwards device-plane events
        to the given channel until cancelled.
        """
        context = pyudev.Context()
        monitor = pyudev.Monitor.from_netlink(context)
        monitor.filter_by(subsystem=self.subsystem, device_type=self.device_type)
        monitor.start()

        log.info(f"Watching udev for {self.subsystem} devices")

        async with events:
            while True:
                await wait_readable(monitor.fileno())
                while True:
                    device = monitor.poll(timeout=0)
                    if device is None:
                        break

                    event = self.process(
                        device.action, device.sys_path, device.properties
                    )
                    if event is not None:
                        await events.send(event)
