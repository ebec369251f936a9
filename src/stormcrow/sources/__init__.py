"""Sources of device-plane events."""

from .udev import UdevDeviceSource, parse_uevent

__all__ = ("UdevDeviceSource", "parse_uevent")
