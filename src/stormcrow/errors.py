"""Common exception classes used in many places throughout the daemon."""

__all__ = (
    "HypervisorError",
    "OwnershipError",
    "StormcrowError",
    "ValidationError",
)


class StormcrowError(RuntimeError):
    """Base class for all stormcrow-related errors."""

    pass


class ValidationError(StormcrowError):
    """Exception thrown when a control-plane command was parameterized
    incorrectly. Nothing in the registry is modified when this exception is
    raised.
    """

    def __init__(self, message=None):
        """Constructor.

        Parameters:
            message (Optional[str]): the error message
        """
        message = message or "Invalid command"
        super().__init__(message)


class OwnershipError(ValidationError):
    """Exception thrown when a virtual machine attempts to unregister a device
    that is registered to another virtual machine.
    """

    pass


class HypervisorError(StormcrowError):
    """Exception thrown when the hypervisor failed to attach a device to or
    detach a device from a virtual machine.
    """

    def __init__(self, message=None):
        """Constructor.

        Parameters:
            message (Optional[str]): the error message
        """
        message = message or "Hypervisor operation failed"
        super().__init__(message)
