"""Model objects used throughout the daemon."""

from .actions import Action, DoAttach, DoDetach, NoOp, NO_OP
from .commands import AddCommand, Command, ListCommand, QuitCommand, RemoveCommand
from .devices import AttachmentState, BusLocation, DeviceKey, parse_usb_id
from .events import DeviceEvent, DeviceEventKind

__all__ = (
    "Action",
    "AddCommand",
    "AttachmentState",
    "BusLocation",
    "Command",
    "DeviceEvent",
    "DeviceEventKind",
    "DeviceKey",
    "DoAttach",
    "DoDetach",
    "ListCommand",
    "NoOp",
    "NO_OP",
    "QuitCommand",
    "RemoveCommand",
    "parse_usb_id",
)
