"""
Main entry point for slotmap.

Parses the command line, checks privileges, optionally redirects output to
a file, and dispatches to the selected mode. Returns the process exit
status: 0 on success, 1 on any reported failure, 130 when cancelled.
"""
import argparse
import logging
from contextlib import ExitStack
from dataclasses import dataclass
from typing import List, Optional

from .config import load_config, DisplayOptions
from .core_utils import (
    is_root, print_error, print_info, print_warning, redirect_output,
    run_command, setup_logging, UserCancelled
)
from .devices import DeviceCorrelator, DeviceGroup
from .error_handling import SlotmapError, PrivilegeError, InvalidArgument, get_error_handler
from .interactive import MappingWorkflow
from .mapping import MappingCreator
from .passthrough import PassthroughChecker
from .pci_address import PciAddress, add_domain_prefix, expand_port_list, has_port_list
from .report import Reporter
from .slots import SlotResolver
from .sysfs import SysfsInspector

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


class _ArgumentParser(argparse.ArgumentParser):
    """Reports bad arguments as InvalidArgument instead of exiting with status 2."""

    def error(self, message):
        raise InvalidArgument(message, suggestions=[f"Run '{self.prog} --help' for usage"])


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="slotmap",
        description="Inspect PCI slots and network devices on a Proxmox host, "
                    "check their passthrough usage and create PCI resource mappings.",
        epilog="Run as root.",
    )

    modes = parser.add_argument_group("modes (default: --list)").add_mutually_exclusive_group()
    modes.add_argument("-a", "--all", action="store_true",
                       help="process all network devices (from lspci)")
    modes.add_argument("-s", "--slot", metavar="N",
                       help="process a specific PCI slot using dmidecode")
    modes.add_argument("-p", "--pci", metavar="ID",
                       help="process a specific PCI device, e.g. 0000:c2:00.0 or 0000:e3:00.{0..3}")
    modes.add_argument("-l", "--list", action="store_true",
                       help="list all network devices grouped by base")
    modes.add_argument("-M", "--map", action="store_true",
                       help="interactively create PCI resource mappings slot by slot")

    display = parser.add_argument_group("display flags", "If none are provided, ALL are enabled.")
    display.add_argument("-m", "--mapping", action="store_true", help="show PCI mapping info")
    display.add_argument("-v", "--vms", action="store_true", help="show VM passthrough usage info")
    display.add_argument("-n", "--net", action="store_true", help="show network interface info")
    display.add_argument("-d", "--driver", action="store_true", help="show driver info")
    display.add_argument("-V", "--verbose", action="store_true", help="enable verbose lspci output")

    parser.add_argument("-o", "--output", metavar="PATH",
                        help="redirect output to the given file (plaintext)")
    parser.add_argument("--config", metavar="PATH", help="configuration file (JSON)")
    parser.add_argument("--debug", action="store_true", help="log debug messages to stderr")
    return parser


@dataclass
class Toolkit:
    resolver: SlotResolver
    correlator: DeviceCorrelator
    sysfs: SysfsInspector
    checker: PassthroughChecker
    creator: MappingCreator
    reporter: Reporter


def build_toolkit(runner=run_command, options: DisplayOptions = None) -> Toolkit:
    correlator = DeviceCorrelator(runner=runner)
    sysfs = SysfsInspector(runner=runner)
    checker = PassthroughChecker(runner=runner)
    return Toolkit(
        resolver=SlotResolver(runner=runner),
        correlator=correlator,
        sysfs=sysfs,
        checker=checker,
        creator=MappingCreator(runner=runner),
        reporter=Reporter(correlator, sysfs, checker, options),
    )


def run_slot_mode(tools: Toolkit, slot_id: str) -> int:
    print_info("Fetching PCI slot information using dmidecode...")
    record = tools.resolver.resolve_slot(slot_id)
    tools.reporter.show_slot(record)

    address = PciAddress.parse(add_domain_prefix(record.bus_address))
    tools.reporter.process_common(address)
    tools.reporter.process_mapping_vm(address)
    return EXIT_OK


def run_pci_mode(tools: Toolkit, pci_value: str) -> int:
    if has_port_list(pci_value):
        ports = expand_port_list(pci_value)
    else:
        address = PciAddress.parse(pci_value)
        ports = tools.correlator.ports_for_base(address) or [address]

    tools.reporter.require_network_device(ports[0])
    group = DeviceGroup(base=ports[0].base, ports=ports)
    return EXIT_OK if tools.reporter.process_group(group) else EXIT_FAILURE


def run_list_mode(tools: Toolkit, heading: str) -> int:
    print_info(heading)
    groups = tools.correlator.network_groups()
    if not groups:
        print_warning("No Ethernet or Network controllers found.")
        return EXIT_OK
    tools.reporter.process_groups(groups)
    return EXIT_OK


def dispatch(args, runner=run_command) -> int:
    if not is_root():
        raise PrivilegeError("Please run as root.")

    options = DisplayOptions.from_flags(
        mapping=args.mapping, vms=args.vms, net=args.net,
        driver=args.driver, verbose=args.verbose
    )
    tools = build_toolkit(runner, options)

    if args.map:
        workflow = MappingWorkflow(tools.resolver, tools.correlator, tools.sysfs,
                                   tools.creator, tools.reporter)
        return workflow.run()
    if args.slot is not None:
        return run_slot_mode(tools, args.slot)
    if args.pci is not None:
        return run_pci_mode(tools, args.pci)
    if args.all:
        return run_list_mode(tools, "Processing all network devices (Ethernet & Network controllers) from lspci...")
    return run_list_mode(tools, "Listing all network devices from lspci (grouped by base)...")


def _run(args, runner) -> int:
    config = load_config(args.config)
    setup_logging(config['LOG_DIR'], config['LOG_LEVEL'], debug=args.debug)
    logger.debug(f"Arguments: {vars(args)}")

    try:
        return dispatch(args, runner)
    except (SlotmapError, OSError) as e:
        get_error_handler().handle_error(e)
        return EXIT_FAILURE
    except (UserCancelled, KeyboardInterrupt):
        print_warning("Operation cancelled by user.")
        return EXIT_CANCELLED


def main(argv: Optional[List[str]] = None, runner=run_command) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except InvalidArgument as e:
        get_error_handler().handle_error(e)
        return EXIT_FAILURE
    except SystemExit as e:
        # --help
        return e.code or EXIT_OK

    with ExitStack() as stack:
        if args.output:
            try:
                stream = stack.enter_context(open(args.output, "w", encoding="utf-8"))
            except OSError as e:
                print_error(f"Cannot open output file {args.output}: {e}")
                return EXIT_FAILURE
            stack.enter_context(redirect_output(stream))
        return _run(args, runner)
