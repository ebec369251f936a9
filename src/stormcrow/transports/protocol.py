"""Wire format of the control plane.

Requests and replies are JSON objects, one per line. Requests look like
this::

    {"command": "add", "vm": "win10", "vid": "046d", "pid": "c52b"}
    {"command": "remove", "vm": "win10", "vid": "046d", "pid": "c52b"}
    {"command": "list"}
    {"command": "quit"}

Replies contain either a ``result`` or an ``error`` member.
"""

import json

from jsonschema import Draft7Validator
from jsonschema import ValidationError as SchemaValidationError
from typing import Any, Dict

from stormcrow.errors import ValidationError
from stormcrow.model import (
    AddCommand,
    Command,
    ListCommand,
    QuitCommand,
    RemoveCommand,
)
from stormcrow.registries import RegistrationInfo

__all__ = (
    "REQUEST_SCHEMA",
    "decode_request",
    "encode_error",
    "encode_reply",
    "encode_request",
)


REQUEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "command": {"enum": ["add", "remove", "list", "quit"]},
        "vm": {"type": "string"},
        "vid": {"type": "string"},
        "pid": {"type": "string"},
    },
    "required": ["command"],
    "if": {"properties": {"command": {"enum": ["add", "remove"]}}},
    "then": {"required": ["vm", "vid", "pid"]},
}
"""JSON schema of control-plane requests"""

_validator = Draft7Validator(REQUEST_SCHEMA)


def decode_request(data: bytes) -> Command:
    """Decodes a single control-plane request.

    Raises:
        ValidationError: if the request is not valid JSON or does not match
            the request schema
    """
    try:
        message = json.loads(data)
    except ValueError as ex:
        raise ValidationError(f"Malformed request: {ex}") from ex

    try:
        _validator.validate(message)
    except SchemaValidationError as ex:
        raise ValidationError(f"Malformed request: {ex.message}") from ex

    command = message["command"]
    if command == "add":
        return AddCommand(message["vm"], message["vid"], message["pid"])
    elif command == "remove":
        return RemoveCommand(message["vm"], message["vid"], message["pid"])
    elif command == "list":
        return ListCommand()
    else:
        return QuitCommand()


def encode_request(command: Command) -> bytes:
    """Encodes a control-plane request for sending it to the daemon."""
    if isinstance(command, (AddCommand, RemoveCommand)):
        name = "add" if isinstance(command, AddCommand) else "remove"
        message = {
            "command": name,
            "vm": command.vm,
            "vid": command.vid,
            "pid": command.pid,
        }
    elif isinstance(command, ListCommand):
        message = {"command": "list"}
    else:
        message = {"command": "quit"}
    return _encode(message)


def encode_reply(result: Any) -> bytes:
    """Encodes the result of a successfully handled request."""
    if isinstance(result, list):
        result = [
            item.json if isinstance(item, RegistrationInfo) else item
            for item in result
        ]
    return _encode({"result": result})


def encode_error(message: str) -> bytes:
    """Encodes the error message of a failed request."""
    return _encode({"error": message})


def _encode(message: Dict[str, Any]) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode("utf-8") + b"\n"
