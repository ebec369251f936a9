"""Default configuration for the stormcrow daemon.

This script will be evaluated first when the daemon attempts to load its
configuration. Configuration files may import variables from this module
with `from stormcrow.config import SOMETHING`, and may also modify them if
the variables are mutable. For instance, to talk to a remote libvirt daemon,
create a configuration file containing this:

    from stormcrow.config import HYPERVISOR
    HYPERVISOR["uri"] = "qemu+ssh://root@vmhost/system"
"""

# Hypervisor that devices are attached to. Use {"type": "dry-run"} to log
# the attach and detach operations instead of carrying them out
HYPERVISOR = {
    "type": "libvirt",
    "uri": "qemu:///system",
    "timeout": 10,  # seconds to wait for a single attach or detach
    "max_workers": 4,
}

# Control plane that accepts Add, Remove, List and Quit commands
CONTROL = {"socket": "/run/stormcrow/control.sock", "mode": 0o660}

# Device plane that reports USB devices appearing and disappearing
DEVICES = {"subsystem": "usb", "device_type": "usb_device"}

# Whether a Remove command must name the virtual machine that the device is
# registered to
REMOVE_REQUIRES_OWNER = True

# Maximum number of device events waiting to be processed
EVENT_QUEUE_SIZE = 256
