"""
Device report rendering.

For each card the common details (lspci summary, verbose description,
network interfaces, driver) are printed once from its first port, then the
mapping and VM passthrough usage of every port. A failing card is reported
and skipped; the rest of a batch still runs.
"""

import logging
from typing import Iterable

from rich.markup import escape

from .config import DisplayOptions
from .core_utils import print_info, print_success, print_warning, print_plain
from .devices import DeviceCorrelator, DeviceGroup
from .error_handling import (
    SlotmapError, DeviceNotFound, ClassificationMismatch, get_error_handler
)
from .passthrough import PassthroughChecker
from .pci_address import PciAddress
from .slots import SlotRecord
from .sysfs import SysfsInspector
from . import core_utils

logger = logging.getLogger(__name__)


class Reporter:
    """Prints slot, device and group sections according to DisplayOptions."""

    def __init__(self, correlator: DeviceCorrelator, sysfs: SysfsInspector,
                 checker: PassthroughChecker, options: DisplayOptions = None):
        self.correlator = correlator
        self.sysfs = sysfs
        self.checker = checker
        self.options = options or DisplayOptions()
        self.error_handler = get_error_handler()

    def show_slot(self, record: SlotRecord):
        core_utils.console.print(f"\n[green]===== Slot {escape(record.slot_number)} Details =====[/]")
        print_plain(record.raw_text_block)
        core_utils.console.print("[green]===============================[/]\n")
        if record.bus_address:
            core_utils.console.print(f"[yellow]PCI Bus Address: {escape(record.bus_address)}[/]")

    def require_network_device(self, address: PciAddress):
        """Return the lspci descriptor, or raise if it is missing or not a network controller."""
        descriptor = self.correlator.lookup_device(address)
        if descriptor is None:
            raise DeviceNotFound(f"No device details found for {address.full}")
        if not descriptor.is_network:
            raise ClassificationMismatch(
                f"Device {address.full} is not an Ethernet or Network controller",
                details=descriptor.raw_line or None
            )
        return descriptor

    def process_common(self, address: PciAddress):
        """Print the details shared by every port of a card."""
        descriptor = self.require_network_device(address)

        core_utils.console.print(f"\n[green]===== Device {escape(address.full)} Common Details =====[/]")
        core_utils.console.print("[yellow]lspci summary:[/]")
        print_plain(descriptor.raw_line)

        if self.options.verbose:
            core_utils.console.print("\n[yellow]Verbose lspci details:[/]")
            print_plain(self.correlator.lookup_device_verbose(address))

        if self.options.net:
            interfaces = self.sysfs.network_interfaces(address)
            if interfaces:
                core_utils.console.print("\n[yellow]Network Interface(s) Found:[/]")
                for iface in interfaces:
                    print_plain(f" - Interface: {iface.name}, MAC Address: {iface.mac or 'Unavailable'}")
                    if iface.bridge:
                        print_plain(f"   -> Interface {iface.name} is bridged on {iface.bridge}.")
            else:
                core_utils.console.print("\n[yellow]No network interfaces associated with this device.[/]")

        if self.options.driver:
            driver = self.sysfs.driver_name(address)
            if driver:
                core_utils.console.print(f"\n[yellow]Driver in use:[/] {escape(driver)}")
            else:
                core_utils.console.print("\n[yellow]No driver information found for this device.[/]")

    def process_mapping_vm(self, address: PciAddress):
        """Print mapping and VM passthrough usage for one port."""
        short = address.short

        if self.options.mapping:
            core_utils.console.print(f"\n[cyan]Checking PCI resource mappings for passthrough usage on {escape(address.full)}...[/]")
            mappings = self.checker.find_mapping(address)
            if mappings:
                print_success("Found PCI mapping(s):")
                for line in mappings:
                    print_plain(line)
            else:
                print_warning(f"No PCI mappings found for {escape(short)}.")

        if self.options.vms:
            core_utils.console.print(f"\n[cyan]Checking VM configuration for PCI passthrough usage on {escape(address.full)}...[/]")
            usage = self.checker.find_vm_usage(address)
            if usage:
                print_success("Found PCI passthrough usage in VM config(s):")
                for line in usage:
                    print_plain(line)
            else:
                print_warning(f"No VM configuration found for PCI device {escape(short)}.")

    def process_group(self, group: DeviceGroup) -> bool:
        """
        Print one card. Returns False if the card was skipped because its
        common details could not be shown.
        """
        base = escape(str(group.base))
        first = group.ports[0]
        core_utils.console.print(f"\n[green]######## Group for base \\[{base}] ########[/]")
        core_utils.console.print(f"[green]Common details (from first port: {escape(str(first))}):[/]")

        try:
            self.process_common(first)
        except SlotmapError as e:
            self.error_handler.handle_error(e, {'base': str(group.base)})
            print_warning(f"Skipping group for base \\[{base}].")
            return False

        for index, port in enumerate(group.ports, start=1):
            core_utils.console.print(
                f"\n[cyan]--- Port {index} ({escape(str(port))}) - Mapping & VM passthrough details ---[/]"
            )
            self.process_mapping_vm(port)

        core_utils.console.print(f"\n[cyan]######## End of Group for base \\[{base}] ########[/]")
        return True

    def process_groups(self, groups: Iterable[DeviceGroup]) -> int:
        """Print every group; returns how many were skipped or failed."""
        failures = 0
        for group in groups:
            try:
                if not self.process_group(group):
                    failures += 1
            except SlotmapError as e:
                self.error_handler.handle_error(e, {'base': str(group.base)})
                failures += 1
        if failures:
            logger.warning(f"{failures} device group(s) could not be processed")
        print_info("Completed device checks.")
        return failures
