# avrstack/errors.py
"""
Error types and the diagnostic side channel.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────┐
│  AvrStackError (base)                                               │
│  ├── SourceReadError          - disassembly could not be read       │
│  ├── StackDumpFormatError     - malformed hex stack dump            │
│  └── InternalConsistencyError - API misuse (e.g. double resolve)    │
└─────────────────────────────────────────────────────────────────────┘

Analysis anomalies are *not* exceptions.  The analyzer, call-graph builder
and dump decoder record them as ``Diagnostic`` entries in a
``DiagnosticLog`` and keep going; only unreadable input or a malformed
dump aborts anything, and the latter aborts trace decoding alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, unique
from typing import Iterator, List, Optional

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════

class AvrStackError(Exception):
    """Base exception for all avrstack errors."""


class SourceReadError(AvrStackError):
    """The top-level disassembly input could not be read."""


class StackDumpFormatError(AvrStackError):
    """The stack dump text is not an even-length run of hex digits."""


class InternalConsistencyError(AvrStackError):
    """An invariant of the data model was violated by the caller."""


# ═══════════════════════════════════════════════════════════════════════
# DIAGNOSTICS
# ═══════════════════════════════════════════════════════════════════════

@unique
class Severity(Enum):
    """Diagnostic severity; maps onto a ``logging`` level."""

    INFO = ("info", logging.INFO)
    WARNING = ("warning", logging.WARNING)
    ERROR = ("error", logging.ERROR)

    def __init__(self, label: str, level: int) -> None:
        self.label = label
        self.level = level


class DiagnosticCode:
    """Stable identifiers for every diagnostic the analysis can emit."""

    MISSING_FUNCTION = "missing-function"
    TAIL_JUMP_OFFSET = "tail-jump-offset"
    DOUBLE_RESERVATION = "double-reservation"
    MISSING_FRAME_LOAD = "missing-frame-load"
    RELEASE_MISMATCH = "release-mismatch"
    DUPLICATE_FUNCTION = "duplicate-function"
    LINE_FAULT = "line-fault"
    UNKNOWN_FRAME = "unknown-frame"
    NEGATIVE_FRAME = "negative-frame"


@dataclass(frozen=True)
class Diagnostic:
    """One advisory finding, optionally tied to a line of the listing."""
    severity: Severity
    code: str
    message: str
    line_index: Optional[int] = None
    line_text: Optional[str] = None

    def __str__(self) -> str:
        where = ""
        if self.line_index is not None:
            where = f" (line {self.line_index + 1}: {(self.line_text or '').strip()})"
        return f"{self.severity.label}: [{self.code}] {self.message}{where}"


class DiagnosticLog:
    """Collects diagnostics and mirrors each one to the module logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._entries: List[Diagnostic] = []
        self._logger = logger or _log

    def record(
        self,
        severity: Severity,
        code: str,
        message: str,
        line_index: Optional[int] = None,
        line_text: Optional[str] = None,
    ) -> Diagnostic:
        diag = Diagnostic(severity, code, message, line_index, line_text)
        self._entries.append(diag)
        self._logger.log(severity.level, "%s", diag)
        return diag

    def warning(self, code: str, message: str, **where) -> Diagnostic:
        return self.record(Severity.WARNING, code, message, **where)

    def error(self, code: str, message: str, **where) -> Diagnostic:
        return self.record(Severity.ERROR, code, message, **where)

    def by_code(self, code: str) -> List[Diagnostic]:
        return [d for d in self._entries if d.code == code]

    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self._entries)

    @property
    def entries(self) -> List[Diagnostic]:
        return list(self._entries)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
