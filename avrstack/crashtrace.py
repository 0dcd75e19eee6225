"""
avrstack.crashtrace
===================

Decodes a raw stack snapshot captured from the target into a symbolic
call trace.

Dump layout
-----------
::

    SPL SPH  RAH RAL  [frame bytes]  RAH RAL  [frame bytes] ...
    \\_SP_/  \\_innermost frame____/  \\_next frame_________/

The first two bytes are the stack pointer register (low byte first).  The
rest is the stack from just above SP upwards: for each live frame, the
return address the *next inner* call pushed (big-endian, in 16-bit program
words) followed by the bytes that frame had claimed at that point.

The decoder has no frame pointers to follow.  For each return address it
finds the enclosing function, re-runs a bounded analysis of that function
up to the return point to learn how many bytes the frame held, and skips
them to reach the next return address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from avrstack.analyzer import FunctionAnalyzer
from avrstack.callgraph import CallGraph
from avrstack.config import DEFAULT_CONFIG, AnalyzerConfig
from avrstack.errors import DiagnosticCode, DiagnosticLog, StackDumpFormatError
from avrstack.function import AsmFunction

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  DUMP TEXT GRAMMAR
# ═══════════════════════════════════════════════════════════════════

DUMP_GRAMMAR = Grammar(r'''
    dump = byte*
    byte = ~"[0-9a-fA-F]{2}"
''')


class _DumpVisitor(NodeVisitor):
    """Turns a parsed dump into ``bytes``."""

    def visit_dump(self, node, visited_children):
        return bytes(visited_children)

    def visit_byte(self, node, visited_children):
        return int(node.text, 16)

    def generic_visit(self, node, visited_children):
        return visited_children or node


def parse_dump(text: str) -> bytes:
    """Parse hex dump text (whitespace ignored) into raw bytes.

    Raises
    ------
    StackDumpFormatError
        On an odd digit count, a non-hex character, or fewer than the two
        stack-pointer bytes.
    """
    compact = "".join(text.split())
    if len(compact) % 2:
        raise StackDumpFormatError(
            f"stack dump needs an even number of hex digits, got {len(compact)}"
        )
    try:
        data = _DumpVisitor().visit(DUMP_GRAMMAR.parse(compact))
    except (ParseError, VisitationError) as exc:
        raise StackDumpFormatError(f"stack dump is not hex text: {exc}") from exc
    if len(data) < 2:
        raise StackDumpFormatError("stack dump must start with the two stack pointer bytes")
    return data


# ═══════════════════════════════════════════════════════════════════
#  DECODER
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StackDumpFrame:
    """One live frame, innermost first.

    ``function`` is the bounded-pass snapshot (``None`` when the return
    address precedes every known function); ``bytes_used`` is what that
    frame held when it made the call that returns to ``return_address``.
    """
    function: Optional[AsmFunction]
    return_address: int
    bytes_used: int

    @property
    def name(self) -> str:
        return self.function.name if self.function is not None else "<unknown>"


@dataclass
class StackTrace:
    """Result of decoding one dump."""
    stack_pointer: int
    frames: List[StackDumpFrame] = field(default_factory=list)
    stack_end: int = DEFAULT_CONFIG.stack_end
    return_address_bytes: int = DEFAULT_CONFIG.return_address_bytes

    @property
    def accounted_bytes(self) -> int:
        # matches the walk: a negative frame only skips its return address
        return sum(max(f.bytes_used, 0) + self.return_address_bytes for f in self.frames)

    @property
    def total_bytes(self) -> int:
        """Bytes in use between SP and the top of SRAM."""
        return self.stack_end - self.stack_pointer - 1

    @property
    def unaccounted_bytes(self) -> int:
        return self.total_bytes - self.accounted_bytes

    @property
    def fully_accounted(self) -> bool:
        return self.unaccounted_bytes == 0


class StackDumpDecoder:
    """Walks a stack dump against a resolved function table."""

    def __init__(
        self,
        callgraph: CallGraph,
        config: AnalyzerConfig = DEFAULT_CONFIG,
        analyzer: Optional[FunctionAnalyzer] = None,
        diagnostics: Optional[DiagnosticLog] = None,
    ) -> None:
        self.callgraph = callgraph
        self.config = config
        self.analyzer = analyzer or FunctionAnalyzer(config)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()

    def trace_text(self, text: str) -> StackTrace:
        return self.trace(parse_dump(text))

    def trace(self, dump: bytes) -> StackTrace:
        if len(dump) < 2:
            raise StackDumpFormatError("stack dump must start with the two stack pointer bytes")
        trace = StackTrace(
            stack_pointer=dump[1] * 256 + dump[0],
            stack_end=self.config.stack_end,
            return_address_bytes=self.config.return_address_bytes,
        )
        ret_bytes = self.config.return_address_bytes
        pos = 2
        while pos + 2 <= len(dump):
            # the PC counts 16-bit words
            address = (dump[pos] * 256 + dump[pos + 1]) * 2
            frame = self._frame_at(address)
            trace.frames.append(frame)
            pos += ret_bytes + max(frame.bytes_used, 0)
        _log.info("decoded %d frames, SP=0x%04X", len(trace.frames), trace.stack_pointer)
        return trace

    def _frame_at(self, address: int) -> StackDumpFrame:
        owner = self.callgraph.function_containing(address)
        if owner is None:
            self.diagnostics.warning(
                DiagnosticCode.UNKNOWN_FRAME,
                f"return address 0x{address:04X} precedes every known function",
            )
            return StackDumpFrame(None, address, 0)
        snapshot = self.analyzer.analyze_part(owner, address, self.diagnostics)
        if snapshot.stack_used < 0:
            self.diagnostics.warning(
                DiagnosticCode.NEGATIVE_FRAME,
                f"{owner.name} holds {snapshot.stack_used} bytes at 0x{address:04X}",
            )
        return StackDumpFrame(snapshot, address, snapshot.stack_used)
