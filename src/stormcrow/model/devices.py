"""Value types describing USB devices and their attachment state."""

from __future__ import annotations

import re

from dataclasses import dataclass
from enum import Enum

__all__ = ("AttachmentState", "BusLocation", "DeviceKey", "parse_usb_id")


_USB_ID_PATTERN = re.compile(r"^(?:0[xX])?([0-9a-fA-F]{4})$")


def parse_usb_id(value: str) -> int:
    """Parses a USB vendor or product identifier given as exactly four
    hexadecimal digits, optionally prefixed with ``0x``.

    Parameters:
        value: the identifier to parse

    Returns:
        the numeric value of the identifier

    Raises:
        ValueError: if the identifier is not well-formed
    """
    match = _USB_ID_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"expected four hexadecimal digits, got {value!r}")
    return int(match.group(1), 16)


@dataclass(frozen=True)
class DeviceKey:
    """Identifies a USB device by its vendor and product IDs."""

    vendor_id: int
    """16-bit USB vendor ID"""

    product_id: int
    """16-bit USB product ID"""

    @classmethod
    def from_hex(cls, vendor_id: str, product_id: str) -> DeviceKey:
        """Creates a device key from vendor and product IDs given as
        hexadecimal strings.

        Raises:
            ValueError: if any of the IDs is malformed
        """
        return cls(parse_usb_id(vendor_id), parse_usb_id(product_id))

    def __post_init__(self):
        for name in ("vendor_id", "product_id"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0 or value > 0xFFFF:
                raise ValueError(f"{name} must be a 16-bit integer, got {value!r}")

    @property
    def vendor_hex(self) -> str:
        return f"{self.vendor_id:04x}"

    @property
    def product_hex(self) -> str:
        return f"{self.product_id:04x}"

    def __str__(self) -> str:
        return f"{self.vendor_hex}:{self.product_hex}"


@dataclass(frozen=True)
class BusLocation:
    """Physical location of a USB device on the host: the number of the bus
    and the address of the device on that bus.
    """

    bus: int
    device: int

    def __str__(self) -> str:
        return f"{self.bus:03}/{self.device:03}"


class AttachmentState(Enum):
    """Attachment state of a registered USB device with respect to its target
    virtual machine.
    """

    DETACHED = "detached"
    ATTACHING = "attaching"
    ATTACHED = "attached"
    DETACHING = "detaching"

    @property
    def in_flight(self) -> bool:
        """Whether a hypervisor call is in progress in this state."""
        return self in (AttachmentState.ATTACHING, AttachmentState.DETACHING)

    def can_transition_to(self, other: AttachmentState) -> bool:
        """Returns whether the state machine permits a transition from this
        state to the given state.
        """
        return other in _LEGAL_TRANSITIONS[self]


_LEGAL_TRANSITIONS = {
    AttachmentState.DETACHED: (AttachmentState.ATTACHING,),
    AttachmentState.ATTACHING: (AttachmentState.ATTACHED, AttachmentState.DETACHED),
    AttachmentState.ATTACHED: (AttachmentState.DETACHING,),
    AttachmentState.DETACHING: (AttachmentState.DETACHED,),
}
