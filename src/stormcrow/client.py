"""Command line client that sends commands to a running stormcrow daemon."""

import click
import json
import sys
import trio

from typing import Any, Dict

from .config import CONTROL
from .errors import StormcrowError
from .model import AddCommand, Command, ListCommand, QuitCommand, RemoveCommand
from .transports.parsers import LineParser
from .transports.protocol import encode_request

__all__ = ("cli", "send_request")

#: Number of seconds to wait for the reply of the daemon
REPLY_TIMEOUT = 30


async def send_request(path: str, command: Command) -> Dict[str, Any]:
    """Sends a single command to the daemon listening on the given Unix domain
    socket and waits for its reply.

    Returns:
        the decoded reply of the daemon

    Raises:
        StormcrowError: if the daemon closed the connection without replying
    """
    parser = LineParser()
    with trio.fail_after(REPLY_TIMEOUT):
        async with await trio.open_unix_socket(path) as stream:
            await stream.send_all(encode_request(command))
            while True:
                data = await stream.receive_some()
                if not data:
                    raise StormcrowError("Connection closed by the daemon")
                lines = parser.feed(data)
                if lines:
                    return json.loads(lines[0])


def _execute(ctx: click.Context, command: Command) -> Any:
    try:
        reply = trio.run(send_request, ctx.obj["socket"], command)
    except (OSError, StormcrowError, trio.TooSlowError, ValueError) as ex:
        message = str(ex) or ex.__class__.__name__
        click.echo(f"Cannot talk to the daemon: {message}", err=True)
        sys.exit(2)

    if "error" in reply:
        click.echo(click.style("Error: ", fg="red") + str(reply["error"]), err=True)
        sys.exit(1)

    return reply.get("result")


@click.group()
@click.option(
    "-s",
    "--socket",
    metavar="PATH",
    default=CONTROL["socket"],
    show_default=True,
    help="Path of the control socket of the daemon",
)
@click.pass_context
def cli(ctx: click.Context, socket: str) -> None:
    """Control a running stormcrow daemon."""
    ctx.obj = {"socket": socket}


@cli.command()
@click.argument("vm")
@click.argument("vid")
@click.argument("pid")
@click.pass_context
def add(ctx: click.Context, vm: str, vid: str, pid: str) -> None:
    """Pass the USB device VID:PID through to the virtual machine VM."""
    click.echo(_execute(ctx, AddCommand(vm, vid, pid)))


@cli.command()
@click.argument("vm")
@click.argument("vid")
@click.argument("pid")
@click.pass_context
def remove(ctx: click.Context, vm: str, vid: str, pid: str) -> None:
    """Stop passing the USB device VID:PID through to the virtual machine VM."""
    click.echo(_execute(ctx, RemoveCommand(vm, vid, pid)))


@cli.command("list")
@click.pass_context
def list_devices(ctx: click.Context) -> None:
    """List the registered USB devices."""
    rows = _execute(ctx, ListCommand()) or []
    if not rows:
        click.echo("No devices registered")
        return

    for row in rows:
        device = f"{row['vid']}:{row['pid']}"
        location = row.get("location") or "-"
        click.echo(f"{device}  {row['state']:<10} {location:<8} {row['vm']}")


@cli.command("quit")
@click.pass_context
def quit_daemon(ctx: click.Context) -> None:
    """Ask the daemon to release all devices and shut down."""
    click.echo(_execute(ctx, QuitCommand()))


if __name__ == "__main__":
    cli(prog_name="stormcrowctl")
