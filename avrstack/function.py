"""
avrstack.function
=================

The per-function record built by the analyzer.

A function is keyed by its start address, which is unique across the
listing.  Its ``callees`` are resolved exactly once, after the full pass,
and are frozen from then on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from avrstack.errors import InternalConsistencyError

# Mangled names start with <len><ident><len><ident>...; skipping the first
# two counted components keeps the informative tail of the name.
_MANGLED_PREFIX = re.compile(r"([^\d]*\d+){2}")


def short_name(name: str, width: int) -> str:
    """Return a display name of at most *width* characters."""
    if len(name) < width:
        return name
    m = _MANGLED_PREFIX.search(name)
    trim_start = len(m.group(0)) if m else 0
    if trim_start + width > len(name):
        trim_start = len(name) - width
    return name[trim_start:trim_start + width]


@dataclass(eq=False)
class AsmFunction:
    """One function of the listing.

    Attributes
    ----------
    name : str
        Label name as printed by the disassembler.
    start_address : int
        Byte address of the label; the key of the function table.
    stack_used : int
        Signed running total of stack bytes claimed by this function.
    manually_reserved : int
        Bytes reserved through explicit stack-pointer arithmetic or the
        register-save helper, as opposed to individual pushes.
    call_addresses : set[int]
        Raw call/tail-jump destinations, unresolved.
    callees : tuple[AsmFunction, ...] or None
        Resolved destinations, ``None`` until the call graph is built.
    lines : list[str]
        Every listing line owned by this function, label first.
    line_start : int
        Index of the label line in the buffer the function was built from.
    """
    name: str
    start_address: int
    line_start: int = 0
    stack_used: int = 0
    manually_reserved: int = 0
    call_addresses: Set[int] = field(default_factory=set)
    lines: List[str] = field(default_factory=list)
    _callees: Optional[Tuple["AsmFunction", ...]] = field(default=None, repr=False)

    def display_name(self, width: int = 30) -> str:
        return short_name(self.name, width)

    @property
    def callees(self) -> Tuple["AsmFunction", ...]:
        if self._callees is None:
            raise InternalConsistencyError(
                f"callees of {self.name} requested before the call graph was built"
            )
        return self._callees

    @property
    def is_resolved(self) -> bool:
        return self._callees is not None

    def resolve_callees(self, callees: Tuple["AsmFunction", ...]) -> None:
        """Freeze the resolved callee set.  May be called only once."""
        if self._callees is not None:
            raise InternalConsistencyError(f"callees of {self.name} already resolved")
        self._callees = tuple(callees)

    def __hash__(self) -> int:
        return hash(self.start_address)

    def __str__(self) -> str:
        return (f"{self.name} (stack: {self.stack_used} start: {self.start_address:X} "
                f"length: {len(self.lines)})")
