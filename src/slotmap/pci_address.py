"""
PCI address parsing and formatting.

Addresses come in as ``DDDD:BB:DD.F`` or ``BB:DD.F`` (lspci omits the
domain by default, which is then assumed to be 0000). A *base* address is
the address without its function, shared by every port of a multi-port
card.
"""

import re
from dataclasses import dataclass, field, replace
from typing import List, Optional

from .error_handling import InvalidArgument

DEFAULT_DOMAIN = "0000"
DOMAIN_PREFIX = DEFAULT_DOMAIN + ":"

_ADDRESS_RE = re.compile(
    r'^(?:(?P<domain>[0-9a-fA-F]{4,8}):)?'
    r'(?P<bus>[0-9a-fA-F]{2}):'
    r'(?P<device>[0-9a-fA-F]{2})'
    r'(?:\.(?P<function>[0-7]))?$'
)
_BRACE_RE = re.compile(r'\{([^{}]*)\}')


def strip_domain_prefix(address: str) -> str:
    """Remove a literal leading ``0000:`` from an address string."""
    if address.startswith(DOMAIN_PREFIX):
        return address[len(DOMAIN_PREFIX):]
    return address


def add_domain_prefix(address: str) -> str:
    """Prefix ``0000:`` unless the address already names a domain."""
    if address.count(":") >= 2:
        return address
    return DOMAIN_PREFIX + address


@dataclass(frozen=True)
class PciAddress:
    """A PCI location; ``function`` is None for a base address."""
    domain: str
    bus: int
    device: int
    function: Optional[int] = None
    # Whether the source string carried the domain, so str() can echo it back
    has_domain: bool = field(default=True, compare=False)

    @classmethod
    def parse(cls, text: str) -> "PciAddress":
        """Parse ``DDDD:BB:DD[.F]`` or ``BB:DD[.F]``; raises InvalidArgument."""
        match = _ADDRESS_RE.match(text.strip())
        if not match:
            raise InvalidArgument(
                f"Invalid PCI address: '{text}'",
                suggestions=["Use the form 0000:01:00.0 or 01:00.0"]
            )
        function = match.group('function')
        return cls(
            domain=(match.group('domain') or DEFAULT_DOMAIN).lower(),
            bus=int(match.group('bus'), 16),
            device=int(match.group('device'), 16),
            function=int(function) if function is not None else None,
            has_domain=match.group('domain') is not None,
        )

    @property
    def base(self) -> "PciAddress":
        """The function-less address of this device."""
        return replace(self, function=None)

    @property
    def is_base(self) -> bool:
        return self.function is None

    def _format(self, with_domain: bool) -> str:
        text = f"{self.bus:02x}:{self.device:02x}"
        if self.function is not None:
            text += f".{self.function}"
        if with_domain:
            text = f"{self.domain}:{text}"
        return text

    @property
    def full(self) -> str:
        """Always includes the domain, as used by sysfs and pvesh paths."""
        return self._format(True)

    @property
    def short(self) -> str:
        """Omits the domain when it is 0000, matching plain lspci output."""
        return self._format(self.domain != DEFAULT_DOMAIN)

    def __str__(self) -> str:
        return self._format(self.has_domain or self.domain != DEFAULT_DOMAIN)


def _expand_braces(text: str) -> List[str]:
    match = _BRACE_RE.search(text)
    if not match:
        return [text]

    body = match.group(1)
    range_match = re.fullmatch(r'(\d+)(?:\.\.|-)(\d+)', body)
    if range_match:
        start, end = int(range_match.group(1)), int(range_match.group(2))
        step = 1 if end >= start else -1
        choices = [str(i) for i in range(start, end + step, step)]
    else:
        choices = [choice.strip() for choice in body.split(",")]

    head, tail = text[:match.start()], text[match.end():]
    expanded = []
    for choice in choices:
        expanded.extend(_expand_braces(f"{head}{choice}{tail}"))
    return expanded


def expand_port_list(text: str) -> List[PciAddress]:
    """
    Expand a port specification such as ``0000:e3:00.{0,1}`` or
    ``0000:e3:00.{0..3}`` into addresses, keeping the given order.
    ``{0-3}`` is accepted as a range as well.
    """
    return [PciAddress.parse(item) for item in _expand_braces(text.strip())]


def has_port_list(text: str) -> bool:
    """True when the text carries a brace list to expand."""
    return bool(_BRACE_RE.search(text))
