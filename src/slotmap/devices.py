"""
Device Correlator

Queries lspci for device descriptions, picks out network controllers, and
groups the functions of multi-port cards by their base address.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .config import CONFIG
from .core_utils import run_command
from .error_handling import ToolUnavailable, InvalidArgument
from .pci_address import PciAddress

logger = logging.getLogger(__name__)

# The only classification rule: a case-sensitive substring test on lspci's
# description. Devices described any other way are not network devices.
NETWORK_CLASS_MARKERS = ("Ethernet controller", "Network controller")


def is_network_device(text: str) -> bool:
    """True iff ``text`` contains "Ethernet controller" or "Network controller"."""
    return any(marker in text for marker in NETWORK_CLASS_MARKERS)


@dataclass
class DeviceDescriptor:
    address: PciAddress
    class_description: str
    extra_summary: str = ""
    raw_line: str = ""

    @property
    def is_network(self) -> bool:
        return is_network_device(self.class_description)


@dataclass
class DeviceGroup:
    """The functions of one card, in discovery order."""
    base: PciAddress
    ports: List[PciAddress] = field(default_factory=list)


def parse_lspci_line(line: str) -> Optional[DeviceDescriptor]:
    """
    Parse one line of plain lspci output, e.g.
    ``01:00.0 Ethernet controller: Intel Corporation I350 (rev 01)``.
    Returns None for lines that do not start with an address.
    """
    line = line.rstrip()
    address_text, _, description = line.partition(" ")
    try:
        address = PciAddress.parse(address_text)
    except InvalidArgument:
        return None
    if address.is_base:
        return None

    class_description, sep, summary = description.strip().partition(": ")
    if not sep:
        summary = ""
    return DeviceDescriptor(
        address=address,
        class_description=class_description,
        extra_summary=summary,
        raw_line=line,
    )


def group_by_base(addresses: Sequence[PciAddress]) -> List[DeviceGroup]:
    """
    Partition addresses by base. Ports keep their input order and groups
    come out in the order their first port was seen.
    """
    groups: Dict[PciAddress, DeviceGroup] = {}
    for address in addresses:
        base = address.base
        if base not in groups:
            groups[base] = DeviceGroup(base=base)
        groups[base].ports.append(address)
    return list(groups.values())


class DeviceCorrelator:
    """Looks devices up through the PCI bus enumerator."""

    def __init__(self, runner=run_command, lspci_binary: str = None, timeout: int = None):
        self.runner = runner
        self.lspci_binary = lspci_binary or CONFIG['LSPCI_BINARY']
        self.timeout = timeout or CONFIG['COMMAND_TIMEOUT']

    def _lspci(self, *args) -> str:
        cmd = [self.lspci_binary, *args]
        try:
            result = self.runner(cmd, check=True, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            raise ToolUnavailable(
                f"lspci failed with exit code {e.returncode}",
                details=(e.stderr or "").strip() or None,
                suggestions=["Make sure pciutils is installed"],
                original_exception=e
            ) from e
        return result.stdout

    def lookup_device(self, bus_address) -> Optional[DeviceDescriptor]:
        """The first lspci line for ``bus_address``, or None if lspci prints nothing."""
        address = _as_address(bus_address)
        for line in self._lspci("-s", address.full).splitlines():
            if line.strip():
                descriptor = parse_lspci_line(line)
                if descriptor is None:
                    # Keep the line even if its address form is unexpected
                    descriptor = DeviceDescriptor(address=address, class_description=line.strip(), raw_line=line)
                return descriptor
        logger.debug(f"No lspci output for {address.full}")
        return None

    def lookup_device_verbose(self, bus_address) -> str:
        """The multi-line ``lspci -v`` description of ``bus_address``."""
        address = _as_address(bus_address)
        return self._lspci("-v", "-s", address.full).rstrip()

    def list_devices(self) -> List[DeviceDescriptor]:
        devices = []
        for line in self._lspci().splitlines():
            descriptor = parse_lspci_line(line)
            if descriptor is not None:
                devices.append(descriptor)
        return devices

    def list_network_devices(self) -> List[DeviceDescriptor]:
        """Every Ethernet or Network controller lspci reports, in its order."""
        devices = [d for d in self.list_devices() if d.is_network]
        logger.info(f"Found {len(devices)} network device functions")
        return devices

    def ports_for_base(self, base) -> List[PciAddress]:
        """Every function lspci reports for the card at ``base``."""
        base = _as_address(base).base
        return [d.address for d in self.list_devices() if d.address.base == base]

    def network_groups(self) -> List[DeviceGroup]:
        return group_by_base([d.address for d in self.list_network_devices()])


def _as_address(value) -> PciAddress:
    if isinstance(value, PciAddress):
        return value
    return PciAddress.parse(str(value))
