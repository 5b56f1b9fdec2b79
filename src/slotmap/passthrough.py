"""
Passthrough Usage Checker

Looks up whether a PCI device is already referenced by a cluster resource
mapping or by a VM's ``hostpci`` configuration. Both lookups are substring
matches on the domain-stripped address and are advisory only.
"""

import os
import re
import logging
from typing import List

from .config import CONFIG
from .core_utils import run_command
from .error_handling import ErrorSeverity, ToolUnavailable, get_error_handler
from .pci_address import PciAddress, strip_domain_prefix

logger = logging.getLogger(__name__)

VM_PASSTHROUGH_KEY = "hostpci"


def _needle(bus_address) -> str:
    if isinstance(bus_address, PciAddress):
        return bus_address.short
    return strip_domain_prefix(str(bus_address).strip())


class PassthroughChecker:
    """Queries the mapping store and the VM configuration tree."""

    def __init__(self, runner=run_command, pvesh_binary: str = None,
                 mapping_api_path: str = None, vm_config_dir: str = None, timeout: int = None):
        self.runner = runner
        self.pvesh_binary = pvesh_binary or CONFIG['PVESH_BINARY']
        self.mapping_api_path = mapping_api_path or CONFIG['MAPPING_API_PATH']
        self.vm_config_dir = vm_config_dir or CONFIG['VM_CONFIG_DIR']
        self.timeout = timeout or CONFIG['COMMAND_TIMEOUT']

    def find_mapping(self, bus_address) -> List[str]:
        """
        Lines of ``pvesh get /cluster/mapping/pci`` that mention the address.

        An empty list means "not mapped". A failing pvesh is reported as a
        warning and also yields an empty list.
        """
        needle = _needle(bus_address)
        cmd = [self.pvesh_binary, "get", self.mapping_api_path]
        try:
            result = self.runner(cmd, check=False, timeout=self.timeout)
        except ToolUnavailable as e:
            self._warn(f"Cannot query PCI mappings: {e}", original_exception=e)
            return []

        if result.returncode != 0:
            self._warn(
                f"pvesh get {self.mapping_api_path} exited with {result.returncode}: {result.stderr.strip()}",
                context={'command': cmd, 'returncode': result.returncode}
            )
            return []

        return [line for line in result.stdout.splitlines() if needle in line]

    def _warn(self, message: str, **kwargs):
        get_error_handler().handle_error(ToolUnavailable(
            message,
            severity=ErrorSeverity.WARNING,
            suggestions=["Mapping results are incomplete; check that pvesh works on this node"],
            **kwargs
        ))

    def find_vm_usage(self, bus_address) -> List[str]:
        """
        ``<path>:<line>`` for every VM config line matching ``hostpci.*<address>``.

        An empty list means "not in use". Unreadable files are skipped.
        """
        needle = _needle(bus_address)
        pattern = re.compile(VM_PASSTHROUGH_KEY + r".*" + re.escape(needle))
        matches = []

        if not os.path.isdir(self.vm_config_dir):
            logger.debug(f"VM configuration directory {self.vm_config_dir} does not exist")
            return matches

        for root, dirs, files in os.walk(self.vm_config_dir):
            dirs.sort()
            for name in sorted(files):
                path = os.path.join(root, name)
                try:
                    with open(path, "r", encoding="utf-8", errors="replace") as f:
                        for line in f:
                            line = line.rstrip("\n")
                            if pattern.search(line):
                                matches.append(f"{path}:{line}")
                except OSError as e:
                    logger.debug(f"Skipping unreadable VM config {path}: {e}")

        return matches
