"""Daemon that hot-plugs USB devices into running virtual machines as they
appear on the host and unplugs them when they disappear.
"""

from .version import __version__

__all__ = ("__version__",)
