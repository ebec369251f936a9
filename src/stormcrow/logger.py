"""Logger object for the stormcrow daemon."""

import logging

from colorlog import ColoredFormatter as ColoredFormatterBase, default_log_colors
from colorlog.escape_codes import parse_colors
from typing import Dict, Optional

__all__ = ("ColoredFormatter", "install", "log")


log = logging.getLogger(__name__.rpartition(".")[0])


default_log_symbols = {
    "DEBUG": " ",
    "INFO": " ",
    "WARNING": "▲",  # BLACK UP-POINTING TRIANGLE
    "ERROR": "●",  # BLACK CIRCLE
    "CRITICAL": "●",  # BLACK CIRCLE
}


class ColoredFormatter(ColoredFormatterBase):
    """Logging formatter that adds colors and symbols to the log output.

    Colors are added based on the log level and the semantic information
    stored in the ``semantics`` attribute of the log record. Records may also
    carry an ``id`` attribute (typically a device key or a VM name) that is
    shown in a separate column.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        *,
        log_colors: Optional[Dict[str, str]] = None,
        semantic_colors: Optional[Dict[str, str]] = None,
        log_symbols: Optional[Dict[str, str]] = None,
    ):
        """Constructor.

        Parameters:
            fmt: the format string to use
            log_colors: mapping from log level names to color names
            semantic_colors: mapping from semantic tags to color names; used
                to override the color of INFO records
            log_symbols: mapping from log level names and semantic tags to
                symbols
        """
        if fmt is None:
            fmt = "%(log_color)s%(levelname)s:%(name)s:%(message)s"

        super().__init__(fmt, log_colors=log_colors or default_log_colors)

        self.semantic_colors = {
            key: parse_colors(value) for key, value in (semantic_colors or {}).items()
        }
        self.log_symbols = (
            log_symbols if log_symbols is not None else default_log_symbols
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format a message from a log record object."""
        if not hasattr(record, "semantics"):
            record.semantics = None
        if not hasattr(record, "id"):
            record.id = ""

        record.semantic_color = self.get_preferred_color(record)
        record.log_symbol = self.get_preferred_symbol(record)

        return super().format(record)

    def get_preferred_color(self, record: logging.LogRecord) -> str:
        """Returns the color override for the given log record, or an empty
        string if the record should be shown in the color of its level.
        """
        if record.levelname == "INFO":
            return self.semantic_colors.get(record.semantics, "")  # type: ignore
        return ""

    def get_preferred_symbol(self, record: logging.LogRecord) -> str:
        """Returns the preferred symbol for the given log record."""
        symbol = self.log_symbols.get(record.semantics)  # type: ignore
        if symbol is not None:
            return symbol
        else:
            return self.log_symbols.get(record.levelname, "")


def _create_fancy_formatter() -> logging.Formatter:
    log_colors = dict(default_log_colors)
    log_colors.update(DEBUG="bold_black", INFO="reset")

    semantic_colors = {
        "request": "bold_blue",
        "response_success": "bold_green",
        "response_error": "bold_red",
        "success": "bold_green",
        "failure": "bold_red",
    }

    log_symbols = dict(default_log_symbols)
    log_symbols.update(
        request="←",  # LEFTWARDS ARROW
        response_success="→",  # RIGHTWARDS ARROW
        response_error="→",  # RIGHTWARDS ARROW
        success="✔",  # CHECK MARK
        failure="✘",  # BALLOT X
    )

    return ColoredFormatter(
        "%(bold_black)s%(id)-9.9s "
        "%(log_color)s%(semantic_color)s%(log_symbol)s "
        "%(message)s",
        log_colors=log_colors,
        semantic_colors=semantic_colors,
        log_symbols=log_symbols,
    )


def _create_plain_formatter() -> logging.Formatter:
    return logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")


def install(level: int = logging.INFO, style: str = "fancy") -> None:
    """Install a default formatter and stream handler to the root logger of
    Python.

    This method can be used during startup to ensure that we can see the
    log messages on the console nicely.

    Parameters:
        level: the minimum level of the messages to show
        style: ``fancy`` for colored output with symbols, ``plain`` for
            timestamped plain-text output that is suitable for log files and
            the systemd journal
    """
    if style == "fancy":
        formatter = _create_fancy_formatter()
    elif style == "plain":
        formatter = _create_plain_formatter()
    else:
        raise ValueError(f"unknown log style: {style!r}")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()

    root_logger.addHandler(handler)
    root_logger.setLevel(level)
