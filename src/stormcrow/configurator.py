"""Loading and validation of the configuration of the daemon.

The configuration is assembled from Python modules in layers; later layers
override the uppercase keys of earlier ones:

- the `.config` module of the package, holding the defaults

- the file given on the command line, or ``<app_name>.cfg`` in the current
  directory if no file was given

- the file named by the ``<APP_NAME>_SETTINGS`` environment variable
"""

import os

from importlib import import_module
from jsonschema import Draft7Validator
from logging import Logger
from typing import Any, Dict, Iterable, Optional, Tuple

__all__ = ("AppConfigurator", "Configuration", "CONFIG_SCHEMA")

Configuration = Dict[str, Any]

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "HYPERVISOR": {
            "type": "object",
            "properties": {
                "type": {"type": "string", "minLength": 1},
                "timeout": {
                    "oneOf": [
                        {"type": "number", "exclusiveMinimum": 0},
                        {"type": "null"},
                    ]
                },
            },
        },
        "CONTROL": {
            "type": "object",
            "properties": {
                "socket": {"type": "string", "minLength": 1},
                "mode": {"type": "integer", "minimum": 0},
                "pool_size": {"type": "integer", "minimum": 1},
            },
        },
        "DEVICES": {
            "type": "object",
            "properties": {
                "subsystem": {"type": "string", "minLength": 1},
                "device_type": {"type": ["string", "null"]},
            },
        },
        "REMOVE_REQUIRES_OWNER": {"type": "boolean"},
        "EVENT_QUEUE_SIZE": {"type": "integer", "minimum": 0},
    },
}

_validator = Draft7Validator(CONFIG_SCHEMA)


class AppConfigurator:
    """Loads the configuration layers of an application into a single
    configuration dictionary and validates the result.
    """

    def __init__(
        self,
        app_name: str,
        *,
        package_name: Optional[str] = None,
        log: Optional[Logger] = None,
    ):
        """Constructor.

        Parameters:
            app_name: name of the application; determines the name of the
                default configuration file and of the environment variable
            package_name: name of the package whose `.config` module holds
                the defaults
            log: logger to report loaded, missing and invalid configuration
                to
        """
        self.app_name = app_name
        self.package_name = package_name
        self.log = log

    @property
    def default_filename(self) -> str:
        """Name of the configuration file that is loaded from the current
        directory when no file is given explicitly.
        """
        return f"{self.app_name}.cfg"

    @property
    def environment_variable(self) -> str:
        """Name of the environment variable that may point to an extra
        configuration file.
        """
        return f"{self.app_name.upper()}_SETTINGS"

    def configure(self, config: Configuration, filename: Optional[str] = None) -> bool:
        """Populates the given configuration dictionary from all the layers.

        Parameters:
            config: the configuration dictionary to update
            filename: name of the configuration file given on the command line

        Returns:
            whether every mandatory file was loaded and the resulting
            configuration is valid
        """
        if self.package_name:
            _update(config, vars(import_module(".config", self.package_name)))

        for name, mandatory in self._files(filename):
            if not self._load_file(config, name, mandatory):
                return False

        return self._validate(config)

    def _files(self, filename: Optional[str]) -> Iterable[Tuple[str, bool]]:
        if filename:
            yield filename, True
        else:
            yield self.default_filename, False

        extra = os.environ.get(self.environment_variable)
        if extra:
            yield extra, True

    def _load_file(self, config: Configuration, filename: str, mandatory: bool) -> bool:
        path = os.path.abspath(filename)
        try:
            with open(path, mode="rb") as fp:
                source = fp.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            if mandatory and self.log:
                self.log.warning(f"Cannot load configuration from {filename!r}")
            return not mandatory

        namespace: Dict[str, Any] = {}
        exec(compile(source, path, "exec"), namespace)
        _update(config, namespace)

        if self.log:
            self.log.info(f"Loaded configuration from {filename!r}")

        return True

    def _validate(self, config: Configuration) -> bool:
        errors = sorted(
            _validator.iter_errors(config), key=lambda e: [str(p) for p in e.path]
        )
        if not errors:
            return True

        if self.log:
            for error in errors:
                location = ".".join(str(part) for part in error.path) or "<root>"
                self.log.error(f"Invalid configuration at {location}: {error.message}")

        return False


def _update(config: Configuration, values: Dict[str, Any]) -> None:
    """Copies the uppercase keys of the given dictionary into the
    configuration.
    """
    for key, value in values.items():
        if key.isupper():
            config[key] = value
