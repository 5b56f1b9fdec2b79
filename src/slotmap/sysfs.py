"""
Sysfs Inspector

Reads the network interfaces, bound driver and vendor:device id of a PCI
device from sysfs, and asks ``ip`` whether an interface sits on the host
bridge.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional

from .config import CONFIG
from .core_utils import run_command
from .error_handling import ToolUnavailable
from .pci_address import PciAddress

logger = logging.getLogger(__name__)


@dataclass
class NetworkInterface:
    name: str
    mac: Optional[str] = None
    bridge: Optional[str] = None


def _read_sysfs_file(path: str) -> str:
    """Read and strip a sysfs file. Returns empty string on error."""
    try:
        with open(path, "r") as f:
            return f.read().strip()
    except OSError:
        return ""


class SysfsInspector:
    """
    Per-device sysfs lookups.

    The roots default to /sys/bus/pci/devices and /sys/class/net and can be
    pointed at a fake tree for testing.
    """

    def __init__(self, runner=run_command, pci_devices_path: str = None,
                 net_path: str = None, ip_binary: str = None, bridge_name: str = None):
        self.runner = runner
        self.pci_devices_path = pci_devices_path or CONFIG['SYSFS_PCI_DEVICES']
        self.net_path = net_path or CONFIG['SYSFS_NET']
        self.ip_binary = ip_binary or CONFIG['IP_BINARY']
        self.bridge_name = bridge_name or CONFIG['BRIDGE_NAME']

    def device_path(self, address: PciAddress) -> str:
        return os.path.join(self.pci_devices_path, address.full)

    def network_interfaces(self, address: PciAddress) -> List[NetworkInterface]:
        """Interfaces under the device's ``net`` directory, sorted by name."""
        net_dir = os.path.join(self.device_path(address), "net")
        if not os.path.isdir(net_dir):
            return []

        interfaces = []
        for name in sorted(os.listdir(net_dir)):
            mac = _read_sysfs_file(os.path.join(self.net_path, name, "address")) or None
            interfaces.append(NetworkInterface(name=name, mac=mac, bridge=self.bridge_of(name)))
        return interfaces

    def bridge_of(self, interface: str) -> Optional[str]:
        """The configured bridge name if ``interface`` is enslaved to it."""
        try:
            result = self.runner([self.ip_binary, "-o", "link", "show", interface], check=False)
        except ToolUnavailable as e:
            logger.debug(f"Cannot check bridge membership of {interface}: {e}")
            return None
        if f"master {self.bridge_name}" in result.stdout:
            return self.bridge_name
        return None

    def driver_name(self, address: PciAddress) -> Optional[str]:
        """
        The kernel driver bound to the device (e.g. 'igb', 'vfio-pci'), taken
        from the final segment of the ``driver`` symlink target.
        """
        driver_path = os.path.join(self.device_path(address), "driver")
        if not os.path.islink(driver_path):
            return None
        return os.path.basename(os.path.realpath(driver_path))

    def vendor_device_id(self, address: PciAddress) -> Optional[str]:
        """``vvvv:dddd`` from the sysfs vendor and device files."""
        vendor = _read_sysfs_file(os.path.join(self.device_path(address), "vendor"))
        device = _read_sysfs_file(os.path.join(self.device_path(address), "device"))
        if not vendor or not device:
            return None
        return f"{_strip_hex(vendor)}:{_strip_hex(device)}"


def _strip_hex(value: str) -> str:
    value = value.lower()
    return value[2:] if value.startswith("0x") else value
