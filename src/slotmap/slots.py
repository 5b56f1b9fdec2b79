"""
Slot Resolver

Maps a hardware slot number to the PCI bus address the firmware reports for
it, using the text dump of ``dmidecode -t slot``.
"""

import re
import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from .config import CONFIG
from .core_utils import run_command
from .error_handling import (
    SlotNotFound, BusAddressMissing, ToolUnavailable, InvalidArgument
)
from .pci_address import PciAddress, strip_domain_prefix

logger = logging.getLogger(__name__)

BUS_ADDRESS_KEY = "Bus Address:"


@dataclass
class SlotRecord:
    slot_number: str
    raw_text_block: str
    bus_address: Optional[str] = None


@dataclass
class SlotSummary:
    """One row of the slot overview shown before prompting."""
    designation: str
    current_usage: Optional[str] = None
    bus_address: Optional[str] = None


def _is_blank(line: str) -> bool:
    return not line.strip()


def extract_slot_block(text: str, slot_id: str) -> Optional[str]:
    """
    Return the block for ``slot_id``: from the first line mentioning
    ``Slot <slot_id>`` up to, not including, the next blank line.

    ``Slot 1`` does not match ``Slot 10``. Returns None if no line matches.
    """
    header = re.compile(r'Slot ' + re.escape(slot_id) + r'(?!\d)')
    lines = text.splitlines()

    for index, line in enumerate(lines):
        if not header.search(line):
            continue
        block = []
        for block_line in lines[index:]:
            if _is_blank(block_line):
                break
            block.append(block_line)
        return "\n".join(block)

    return None


def extract_bus_address(block: str) -> Optional[str]:
    """The third whitespace token of the first ``Bus Address:`` line."""
    for line in block.splitlines():
        if BUS_ADDRESS_KEY in line:
            tokens = line.split()
            if len(tokens) > 2:
                return tokens[2]
    return None


def list_slots(text: str) -> List[SlotSummary]:
    """Summarise every stanza of the dump that has a ``Designation:`` line."""
    slots = []
    stanza = {}

    def _flush():
        if 'Designation' in stanza:
            slots.append(SlotSummary(
                designation=stanza['Designation'],
                current_usage=stanza.get('Current Usage'),
                bus_address=stanza.get('Bus Address'),
            ))

    for line in text.splitlines() + [""]:
        if _is_blank(line):
            _flush()
            stanza = {}
            continue
        key, sep, value = line.strip().partition(":")
        if sep and key in ('Designation', 'Current Usage', 'Bus Address'):
            stanza.setdefault(key, value.strip())

    return slots


class SlotResolver:
    """Resolves slot numbers against the hardware slot enumerator."""

    def __init__(self, runner=run_command, dmidecode_binary: str = None, timeout: int = None):
        self.runner = runner
        self.dmidecode_binary = dmidecode_binary or CONFIG['DMIDECODE_BINARY']
        self.timeout = timeout or CONFIG['COMMAND_TIMEOUT']
        self._dump = None

    def slot_dump(self, refresh: bool = False) -> str:
        """The full ``dmidecode -t slot`` output, fetched once per resolver."""
        if self._dump is not None and not refresh:
            return self._dump

        cmd = [self.dmidecode_binary, "-t", "slot"]
        try:
            result = self.runner(cmd, check=True, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            raise ToolUnavailable(
                "Failed to retrieve slot information from dmidecode",
                details=(e.stderr or "").strip() or None,
                suggestions=["Make sure dmidecode is installed and run as root"],
                original_exception=e
            ) from e

        self._dump = result.stdout
        logger.debug(f"Read {len(self._dump.splitlines())} lines of slot information")
        return self._dump

    def resolve_slot(self, slot_id: str) -> SlotRecord:
        """
        Resolve ``slot_id`` to a SlotRecord.

        Raises SlotNotFound when no block matches and BusAddressMissing when
        the block has no well-formed bus address. The address is returned without a
        leading ``0000:``.
        """
        slot_id = str(slot_id).strip()
        if not slot_id:
            raise InvalidArgument("A slot number is required")

        block = extract_slot_block(self.slot_dump(), slot_id)
        if not block:
            raise SlotNotFound(f"No information found for Slot {slot_id}")

        raw_address = extract_bus_address(block)
        if not raw_address:
            raise BusAddressMissing(
                f"Bus Address not found in the details of Slot {slot_id}",
                context={'block': block}
            )

        try:
            PciAddress.parse(raw_address)
        except InvalidArgument as e:
            raise BusAddressMissing(
                f"Slot {slot_id} reports a malformed Bus Address '{raw_address}'",
                context={'block': block},
                original_exception=e
            ) from e

        bus_address = strip_domain_prefix(raw_address)
        logger.info(f"Slot {slot_id} resolved to bus address {bus_address}")
        return SlotRecord(slot_number=slot_id, raw_text_block=block, bus_address=bus_address)

    def list_slots(self) -> List[SlotSummary]:
        return list_slots(self.slot_dump())
