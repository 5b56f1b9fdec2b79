"""
Interactive PCI resource mapping workflow.

Prompts for a slot, shows what the firmware and lspci report for it, then
collects the mapping fields and creates the mapping. The loop continues
until the user types 'exit' or declines to map another slot.
"""

import shlex
import socket
import logging

import questionary
from rich.table import Table

from .core_utils import (
    print_header, print_info, print_success, print_warning, print_plain,
    safe_ask, safe_text_ask
)
from .devices import DeviceCorrelator
from .error_handling import (
    SlotNotFound, BusAddressMissing, DeviceNotFound, InvalidArgument,
    MappingError, get_error_handler
)
from .mapping import (
    MappingCreator, MappingRequest, validate_mapping_name, validate_node_name,
    validate_pci_path, validate_device_id
)
from .pci_address import PciAddress, add_domain_prefix
from .report import Reporter
from .slots import SlotResolver, SlotRecord
from .sysfs import SysfsInspector
from . import core_utils

logger = logging.getLogger(__name__)

EXIT_WORD = "exit"


def _as_questionary_validator(validator):
    """Adapt a message-or-None validator to questionary's True-or-message form."""
    def _validate(value):
        return validator(value) or True
    return _validate


class MappingWorkflow:
    """The slot -> details -> mapping prompt loop."""

    def __init__(self, resolver: SlotResolver, correlator: DeviceCorrelator,
                 sysfs: SysfsInspector, creator: MappingCreator, reporter: Reporter):
        self.resolver = resolver
        self.correlator = correlator
        self.sysfs = sysfs
        self.creator = creator
        self.reporter = reporter
        self.error_handler = get_error_handler()

    def show_slot_overview(self):
        slots = self.resolver.list_slots()
        if not slots:
            print_warning("dmidecode reported no slots.")
            return

        table = Table(title="PCI Slots")
        table.add_column("Designation", style="cyan")
        table.add_column("Current Usage")
        table.add_column("Bus Address", style="yellow")
        for slot in slots:
            table.add_row(slot.designation, slot.current_usage or "-", slot.bus_address or "-")
        core_utils.console.print(table)

    def show_device(self, record: SlotRecord):
        address = PciAddress.parse(record.bus_address)
        descriptor = self.correlator.lookup_device(address)
        core_utils.console.print("--------------------------")
        if descriptor is None:
            print_warning(f"No device details found for Bus Address {record.bus_address}.")
        else:
            core_utils.console.print("[yellow]Device details from lspci:[/]")
            print_plain(descriptor.raw_line)
        core_utils.console.print("--------------------------")

    def prompt_request(self, record: SlotRecord) -> MappingRequest:
        """Ask for the mapping fields, offering defaults taken from the host."""
        default_path = add_domain_prefix(record.bus_address) if record.bus_address else ""
        default_id = ""
        if default_path:
            default_id = self.sysfs.vendor_device_id(PciAddress.parse(default_path)) or ""
        default_node = socket.gethostname().split(".")[0]
        if validate_node_name(default_node):
            default_node = ""

        name = safe_text_ask("Enter a name for this PCI mapping:",
                             validate=_as_questionary_validator(validate_mapping_name))
        node = safe_text_ask("Enter the Proxmox node name:", default=default_node,
                             validate=_as_questionary_validator(validate_node_name))
        path = safe_text_ask("Enter the PCI path (e.g., 0000:01:00.0):", default=default_path,
                             validate=_as_questionary_validator(validate_pci_path))
        device_id = safe_text_ask("Enter the device ID (vendor:device, e.g., 8086:1521):", default=default_id,
                                  validate=_as_questionary_validator(validate_device_id))
        return MappingRequest(name=name, node=node, path=path, vendor_device_id=device_id)

    def map_slot(self, record: SlotRecord) -> bool:
        """Run a resolved slot through the workflow. Returns True if a mapping was created."""
        slot_id = record.slot_number
        self.reporter.show_slot(record)
        try:
            self.show_device(record)
        except (DeviceNotFound, InvalidArgument) as e:
            self.error_handler.handle_error(e, {'slot': slot_id})

        req = self.prompt_request(record)
        cmd = self.creator.build_command(req)
        print_info(f"Command: {' '.join(shlex.quote(part) for part in cmd)}")
        if not safe_ask(questionary.confirm("Create this mapping?", default=True).ask()):
            print_warning("Mapping not created.")
            return False

        try:
            self.creator.create_mapping(req)
        except (MappingError, InvalidArgument) as e:
            self.error_handler.handle_error(e, {'slot': slot_id})
            return False

        print_success(f"PCI mapping '{req.name}' created for Slot {slot_id}.")
        return True

    def run(self) -> int:
        print_header("Proxmox PCI Resource Mapping")
        print_info("Fetching PCI slot information...")
        self.show_slot_overview()

        while True:
            slot_id = safe_text_ask(f"Enter slot number to map (or type '{EXIT_WORD}' to quit):")
            if slot_id.lower() == EXIT_WORD:
                print_info("Exiting.")
                return 0

            try:
                record = self.resolver.resolve_slot(slot_id)
            except (SlotNotFound, BusAddressMissing, InvalidArgument) as e:
                self.error_handler.handle_error(e, {'slot': slot_id})
                continue

            self.map_slot(record)

            if not safe_ask(questionary.confirm(f"Done with Slot {slot_id}. Do you want to map another slot?",
                                                default=False).ask()):
                print_info("Exiting.")
                return 0
