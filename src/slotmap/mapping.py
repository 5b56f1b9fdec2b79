"""
Mapping Creator

Registers a PCI device as a Proxmox cluster resource mapping through
``pvesh create /cluster/mapping/pci``. The request fields are validated and
passed as separate arguments, never through a shell.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

from .config import CONFIG
from .core_utils import run_command
from .error_handling import MappingError, InvalidArgument, ToolUnavailable

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9_.-]{0,127}$')
_NODE_RE = re.compile(r'^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$')
_PATH_RE = re.compile(r'^(?:[0-9a-fA-F]{4}:)?[0-9a-fA-F]{2}:[0-9a-fA-F]{2}(?:\.[0-7])?$')
_DEVICE_ID_RE = re.compile(r'^[0-9a-fA-F]{4}:[0-9a-fA-F]{4}$')
_ERROR_LINE_RE = re.compile(r'^\s*(?:error|\d{3} parameter verification failed)', re.IGNORECASE | re.MULTILINE)


# Validators return an error message, or None when the value is acceptable.
# They double as questionary validators in the interactive workflow.

def validate_mapping_name(value: str) -> Optional[str]:
    if not _NAME_RE.fullmatch(value or ""):
        return "Mapping name must start with a letter and contain only letters, digits, '_', '.' or '-'"
    return None


def validate_node_name(value: str) -> Optional[str]:
    if not _NODE_RE.fullmatch(value or ""):
        return "Node name must be a host name (letters, digits and '-')"
    return None


def validate_pci_path(value: str) -> Optional[str]:
    if not _PATH_RE.fullmatch(value or ""):
        return "PCI path must look like 0000:01:00.0 or 0000:01:00"
    return None


def validate_device_id(value: str) -> Optional[str]:
    if not _DEVICE_ID_RE.fullmatch(value or ""):
        return "Device ID must be vendor:device in hex, e.g. 8086:1521"
    return None


@dataclass
class MappingRequest:
    name: str
    node: str
    path: str
    vendor_device_id: str

    def validate(self):
        """Raise InvalidArgument naming the first field that is rejected."""
        checks = (
            ('name', self.name, validate_mapping_name),
            ('node', self.node, validate_node_name),
            ('path', self.path, validate_pci_path),
            ('vendor_device_id', self.vendor_device_id, validate_device_id),
        )
        for field_name, value, validator in checks:
            problem = validator(value)
            if problem:
                raise InvalidArgument(f"Invalid {field_name} '{value}': {problem}")

    @property
    def map_property(self) -> str:
        return f"node={self.node},path={self.path},id={self.vendor_device_id}"


class MappingCreator:
    """Creates cluster PCI resource mappings."""

    def __init__(self, runner=run_command, pvesh_binary: str = None,
                 mapping_api_path: str = None, timeout: int = None):
        self.runner = runner
        self.pvesh_binary = pvesh_binary or CONFIG['PVESH_BINARY']
        self.mapping_api_path = mapping_api_path or CONFIG['MAPPING_API_PATH']
        self.timeout = timeout or CONFIG['COMMAND_TIMEOUT']

    def build_command(self, req: MappingRequest):
        return [
            self.pvesh_binary, "create", self.mapping_api_path,
            "--id", req.name,
            "--map", req.map_property,
        ]

    def create_mapping(self, req: MappingRequest) -> None:
        """
        Create the mapping described by ``req``.

        Raises InvalidArgument for a rejected request and MappingError when
        pvesh fails; the error carries pvesh's own message verbatim. The call
        is not idempotent: a second request with the same name fails.
        """
        req.validate()
        cmd = self.build_command(req)
        logger.info(f"Creating PCI mapping '{req.name}' ({req.map_property})")

        try:
            result = self.runner(cmd, check=False, timeout=self.timeout)
        except ToolUnavailable as e:
            logger.error(f"Cannot run pvesh to create mapping '{req.name}': {e}")
            raise MappingError(
                f"Failed to create PCI mapping '{req.name}': {e}",
                suggestions=e.suggestions,
                context={'command': cmd},
                original_exception=e
            ) from e

        output = (result.stderr or "").strip() or (result.stdout or "").strip()

        if result.returncode != 0 or _ERROR_LINE_RE.search(result.stderr or ""):
            logger.error(f"pvesh failed to create mapping '{req.name}': {output}")
            raise MappingError(
                f"Failed to create PCI mapping '{req.name}': {output or f'exit code {result.returncode}'}",
                suggestions=["Check 'pvesh get /cluster/mapping/pci' for an existing mapping with this name"],
                context={'command': cmd, 'returncode': result.returncode}
            )

        logger.info(f"PCI mapping '{req.name}' created")
