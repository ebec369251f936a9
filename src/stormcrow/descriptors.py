"""Functions that generate the libvirt device descriptors of USB host
devices.
"""

from typing import Optional

from .model import BusLocation, DeviceKey

__all__ = ("encode",)


_HOSTDEV_TEMPLATE = """\
<hostdev mode='subsystem' type='usb'>
  <source>
    <vendor id='0x{vendor}'/>
    <product id='0x{product}'/>{address}
  </source>
</hostdev>
"""

_ADDRESS_TEMPLATE = "\n    <address bus='{bus}' device='{device}'/>"


def encode(key: DeviceKey, bus_location: Optional[BusLocation] = None) -> str:
    """Returns the libvirt ``<hostdev>`` element that describes the USB device
    with the given key at the given bus location.

    Parameters:
        key: the vendor and product ID of the device
        bus_location: the location of the device on the USB bus of the host;
            ``None`` omits the address and lets libvirt match the device on
            its vendor and product ID only

    Returns:
        the device descriptor, ready to be passed to the hypervisor
    """
    address = (
        _ADDRESS_TEMPLATE.format(bus=bus_location.bus, device=bus_location.device)
        if bus_location is not None
        else ""
    )
    return _HOSTDEV_TEMPLATE.format(
        vendor=key.vendor_hex, product=key.product_hex, address=address
    )
