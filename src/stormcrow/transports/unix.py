"""Control plane that accepts newline-delimited JSON requests on a Unix domain
socket.
"""

from __future__ import annotations

import os
import socket as stdlib_socket

from functools import partial
from pathlib import Path
from trio import (
    BrokenResourceError,
    CancelScope,
    CapacityLimiter,
    ClosedResourceError,
    SocketListener,
    SocketStream,
    TASK_STATUS_IGNORED,
    move_on_after,
    serve_listeners,
    socket as trio_socket,
)
from typing import TYPE_CHECKING

from stormcrow.errors import StormcrowError
from stormcrow.logger import log as base_log

from .parsers import LineParser
from .protocol import decode_request, encode_error, encode_reply

if TYPE_CHECKING:
    from stormcrow.control import ControlPlaneHandler

__all__ = ("UnixControlServer",)

log = base_log.getChild("transports.unix")

#: Number of seconds to wait for a reply to be sent to a client
REPLY_TIMEOUT = 5


class UnixControlServer:
    """Server that listens for control-plane requests on a Unix domain socket
    and forwards them to a control-plane handler.
    """

    path: Path
    """Path of the socket to listen on"""

    def __init__(self, path: str, *, pool_size: int = 16, mode: int = 0o660):
        """Constructor.

        Parameters:
            path: path of the socket to listen on
            pool_size: maximum number of requests handled at the same time
            mode: file permissions of the socket
        """
        self.path = Path(path)
        self.pool_size = pool_size
        self.mode = mode

    async def run(
        self, handler: ControlPlaneHandler, *, task_status=TASK_STATUS_IGNORED
    ) -> None:
        """Serves control-plane requests until cancelled.

        Supports `trio.Nursery.start()`; the task is considered started when
        the socket is accepting connections.
        """
        listener = await self._create_listener()
        limit = CapacityLimiter(self.pool_size)

        log.info(f"Listening for control requests on {str(self.path)!r}")

        try:
            await serve_listeners(
                partial(self._handle_connection_safely, handler=handler, limit=limit),
                [listener],
                task_status=task_status,
            )
        finally:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass

    async def _create_listener(self) -> SocketListener:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.is_socket():
            # Stale socket from an earlier run
            self.path.unlink()

        sock = trio_socket.socket(stdlib_socket.AF_UNIX, stdlib_socket.SOCK_STREAM)
        try:
            await sock.bind(str(self.path))
            os.chmod(self.path, self.mode)
            sock.listen()
        except Exception:
            sock.close()
            raise

        return SocketListener(sock)

    async def _handle_connection(
        self,
        stream: SocketStream,
        *,
        handler: ControlPlaneHandler,
        limit: CapacityLimiter,
    ) -> None:
        parser = LineParser()
        async with stream:
            while True:
                data = await stream.receive_some()
                if not data:
                    break

                for message in parser.feed(data):
                    async with limit:
                        reply = await self._process(message, handler)
                    await self._send_reply(stream, reply)

    async def _handle_connection_safely(
        self,
        stream: SocketStream,
        *,
        handler: ControlPlaneHandler,
        limit: CapacityLimiter,
    ) -> None:
        """Handles a single client connection, ensuring that exceptions do not
        propagate through and bring down the server.
        """
        try:
            await self._handle_connection(stream, handler=handler, limit=limit)
        except (BrokenResourceError, ClosedResourceError):
            log.debug("Control connection closed by peer")
        except Exception as ex:
            log.exception(f"Unexpected error while handling control connection: {ex}")

    async def _process(self, message: bytes, handler: ControlPlaneHandler) -> bytes:
        try:
            command = decode_request(message)
            result = await handler.handle(command)
        except StormcrowError as ex:
            log.warning(str(ex), extra={"semantics": "response_error"})
            return encode_error(str(ex))
        else:
            return encode_reply(result)

    async def _send_reply(self, stream: SocketStream, reply: bytes) -> None:
        # Replies go out even if a Quit request cancels the intake meanwhile
        with CancelScope(shield=True):
            with move_on_after(REPLY_TIMEOUT):
                await stream.send_all(reply)
