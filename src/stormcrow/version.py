"""Version information for stormcrow."""

__version__ = "0.4.0"
