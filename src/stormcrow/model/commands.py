"""Commands delivered by the control plane."""

from dataclasses import dataclass
from typing import Union

__all__ = ("AddCommand", "Command", "ListCommand", "QuitCommand", "RemoveCommand")


@dataclass(frozen=True)
class AddCommand:
    """Registers a USB device for automatic passthrough to a virtual machine.

    The IDs are kept in their raw string form; they are validated by the
    control-plane handler.
    """

    vm: str
    vid: str
    pid: str


@dataclass(frozen=True)
class RemoveCommand:
    """Unregisters a USB device from automatic passthrough."""

    vm: str
    vid: str
    pid: str


@dataclass(frozen=True)
class ListCommand:
    """Asks for a snapshot of the current registrations."""


@dataclass(frozen=True)
class QuitCommand:
    """Asks the daemon to shut down gracefully."""


Command = Union[AddCommand, RemoveCommand, ListCommand, QuitCommand]
