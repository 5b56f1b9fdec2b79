"""
slotmap: PCI slot inspection and resource mapping for Proxmox hosts.

Resolves hardware slots to PCI bus addresses, correlates them with network
controllers, interfaces and drivers, reports passthrough usage, and creates
cluster PCI resource mappings.
"""

from .error_handling import (
    SlotmapError, ErrorSeverity, ErrorCategory, get_error_handler,
    PrivilegeError, ToolUnavailable, SlotNotFound, BusAddressMissing,
    DeviceNotFound, ClassificationMismatch, MappingError, InvalidArgument
)
from .pci_address import PciAddress
from .slots import SlotRecord, SlotResolver
from .devices import DeviceCorrelator, DeviceDescriptor, DeviceGroup, group_by_base, is_network_device
from .passthrough import PassthroughChecker
from .mapping import MappingCreator, MappingRequest

__version__ = "1.0.0"
__all__ = [
    # Error handling exports
    'SlotmapError', 'ErrorSeverity', 'ErrorCategory', 'get_error_handler',
    'PrivilegeError', 'ToolUnavailable', 'SlotNotFound', 'BusAddressMissing',
    'DeviceNotFound', 'ClassificationMismatch', 'MappingError', 'InvalidArgument',
    # Components
    'PciAddress',
    'SlotRecord', 'SlotResolver',
    'DeviceCorrelator', 'DeviceDescriptor', 'DeviceGroup', 'group_by_base', 'is_network_device',
    'PassthroughChecker',
    'MappingCreator', 'MappingRequest',
]
