"""Transports that deliver control-plane commands to the daemon."""

from .protocol import decode_request, encode_error, encode_reply, encode_request
from .unix import UnixControlServer

__all__ = (
    "UnixControlServer",
    "decode_request",
    "encode_error",
    "encode_reply",
    "encode_request",
)
