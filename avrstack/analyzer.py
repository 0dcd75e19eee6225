"""
avrstack.analyzer
=================

Sequential per-function stack accounting over a disassembly listing.

Two run modes
-------------
Full pass (:meth:`FunctionAnalyzer.analyze`)
    Walks the whole listing once, starting a new :class:`AsmFunction` at
    every label and accumulating pushes, frame reservations and call
    targets.  Release-phase shapes (``pop``, the negative SP update, the
    register-restore helper) are ignored: a function's worst case is the
    depth it reaches before its epilogue.

Bounded pass (:meth:`FunctionAnalyzer.analyze_part`)
    Re-walks one known function's own lines with release shapes enabled and
    stops at the first instruction whose address reaches a caller-supplied
    exclusive bound.  The result is a fresh snapshot; the catalogued
    function is never touched.

Every line is classified and applied independently.  A line whose effect
cannot be computed is reported through the pass's
:class:`~avrstack.errors.DiagnosticLog` and dropped; the pass itself never
aborts on a bad line.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence

from avrstack.classifier import ClassifiedLine, LineClassifier, LineKind
from avrstack.config import DEFAULT_CONFIG, AnalyzerConfig
from avrstack.errors import DiagnosticCode, DiagnosticLog
from avrstack.function import AsmFunction

_log = logging.getLogger(__name__)


class LineOutcome(enum.Enum):
    """What applying one line did."""

    MATCHED   = "matched"
    UNMATCHED = "unmatched"
    FAULTED   = "faulted"


@dataclass
class ParseCursor:
    """Position within a shared, read-only line buffer."""
    lines: Sequence[str]
    index: int = 0
    address: int = 0
    end_address: Optional[int] = None  # exclusive; bounded pass only

    @property
    def line(self) -> str:
        return self.lines[self.index]

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.lines)


@dataclass
class AnalysisResult:
    """Output of a full pass."""
    functions: Dict[int, AsmFunction]
    diagnostics: DiagnosticLog
    outcomes: Counter = field(default_factory=Counter)

    def by_name(self, name: str) -> Optional[AsmFunction]:
        for func in self.functions.values():
            if func.name == name:
                return func
        return None


# ===========================================================================
# Pass state
# ===========================================================================

class _Pass:
    """Mutable state of one run over one buffer."""

    def __init__(
        self,
        analyzer: "FunctionAnalyzer",
        cursor: ParseCursor,
        allow_release: bool,
        diagnostics: DiagnosticLog,
    ) -> None:
        self.config = analyzer.config
        self.classifier = analyzer.classifier
        self.cursor = cursor
        self.allow_release = allow_release
        self.diagnostics = diagnostics
        self.functions: Dict[int, AsmFunction] = {}
        self.current: Optional[AsmFunction] = None
        self.outcomes: Counter = Counter()

        self._handlers: Dict[LineKind, Callable[[ClassifiedLine], LineOutcome]] = {
            LineKind.PUSH: self._on_push,
            LineKind.SELF_CALL: self._on_self_call,
            LineKind.REGISTER_SAVE: self._on_register_save,
            LineKind.CALL: self._on_call,
            LineKind.SP_DECREMENT: self._on_reserve,
            LineKind.JUMP: self._on_jump,
        }
        if allow_release:
            self._handlers.update({
                LineKind.POP: self._on_pop,
                LineKind.SP_INCREMENT: self._on_release,
                LineKind.REGISTER_RESTORE: self._on_register_restore,
            })

    def run(self) -> None:
        while self._step():
            self.cursor.index += 1

    def _step(self) -> bool:
        cur = self.cursor
        if cur.exhausted:
            return False
        line = cur.line
        address = self.classifier.instruction_address(line)
        if address is not None:
            cur.address = address
            if cur.end_address is not None and address >= cur.end_address:
                return False

        outcome = self._apply(line)
        self.outcomes[outcome] += 1
        if self.current is not None:
            self.current.lines.append(line)
        return True

    def _apply(self, line: str) -> LineOutcome:
        try:
            classified = self.classifier.classify_at(self.cursor.lines, self.cursor.index)
            if classified.kind is LineKind.FUNCTION_START:
                return self._on_function_start(classified)
            handler = self._handlers.get(classified.kind)
            if handler is None or self.current is None:
                return LineOutcome.UNMATCHED
            return handler(classified)
        except (ArithmeticError, LookupError, TypeError, ValueError) as exc:
            return self._fault(DiagnosticCode.LINE_FAULT, f"{type(exc).__name__}: {exc}")

    def _fault(self, code: str, message: str) -> LineOutcome:
        self.diagnostics.error(
            code, message,
            line_index=self.cursor.index, line_text=self.cursor.line,
        )
        return LineOutcome.FAULTED

    # ----- growth -----------------------------------------------------------

    def _on_function_start(self, cl: ClassifiedLine) -> LineOutcome:
        func = AsmFunction(name=cl.name, start_address=cl.address, line_start=self.cursor.index)
        self.cursor.address = cl.address
        self.current = func
        if cl.address in self.functions:
            first = self.functions[cl.address]
            return self._fault(
                DiagnosticCode.DUPLICATE_FUNCTION,
                f"{cl.name} starts at 0x{cl.address:X}, already taken by {first.name}",
            )
        self.functions[cl.address] = func
        return LineOutcome.MATCHED

    def _on_push(self, cl: ClassifiedLine) -> LineOutcome:
        self.current.stack_used += 1
        return LineOutcome.MATCHED

    def _on_self_call(self, cl: ClassifiedLine) -> LineOutcome:
        # ``rcall .+0`` only grows the stack by its return address
        self.current.stack_used += self.config.return_address_bytes
        return LineOutcome.MATCHED

    def _on_register_save(self, cl: ClassifiedLine) -> LineOutcome:
        func = self.current
        loads: Dict[int, int] = {}
        for previous in reversed(func.lines):
            if len(loads) == 2:
                break
            prev = self.classifier.classify(previous)
            if prev.kind is LineKind.FRAME_LOAD and prev.register not in loads:
                loads[prev.register] = prev.amount
        if 26 not in loads or 27 not in loads:
            return self._fault(
                DiagnosticCode.MISSING_FRAME_LOAD,
                f"{func.name}: register-save helper without r26/r27 frame size",
            )
        if func.manually_reserved:
            return self._fault(
                DiagnosticCode.DOUBLE_RESERVATION,
                f"{func.name}: reserves again while {func.manually_reserved} bytes are held",
            )
        offset = cl.offset or 0
        reserved = loads[26] + loads[27] * 256 + (self.config.register_save_baseline - offset // 2)
        func.stack_used += reserved
        func.manually_reserved = reserved
        return LineOutcome.MATCHED

    def _on_call(self, cl: ClassifiedLine) -> LineOutcome:
        self.current.call_addresses.add(cl.target)
        return LineOutcome.MATCHED

    def _on_reserve(self, cl: ClassifiedLine) -> LineOutcome:
        func = self.current
        if cl.amount < self.config.reserve_threshold:
            return LineOutcome.UNMATCHED
        if func.manually_reserved:
            return self._fault(
                DiagnosticCode.DOUBLE_RESERVATION,
                f"{func.name}: reserves again while {func.manually_reserved} bytes are held",
            )
        func.stack_used += cl.amount
        func.manually_reserved = cl.amount
        return LineOutcome.MATCHED

    def _on_jump(self, cl: ClassifiedLine) -> LineOutcome:
        func = self.current
        if cl.name == func.name or cl.name in self.config.helper_names:
            return LineOutcome.UNMATCHED
        if cl.offset:
            self.diagnostics.warning(
                DiagnosticCode.TAIL_JUMP_OFFSET,
                f"outside jump with offset: {func.name} >> {cl.name}+0x{cl.offset:x}",
                line_index=self.cursor.index, line_text=cl.text,
            )
        func.call_addresses.add(cl.target)
        return LineOutcome.MATCHED

    # ----- release (bounded pass) -------------------------------------------

    def _on_pop(self, cl: ClassifiedLine) -> LineOutcome:
        self.current.stack_used -= 1
        return LineOutcome.MATCHED

    def _on_release(self, cl: ClassifiedLine) -> LineOutcome:
        func = self.current
        released = self.config.release_modulus - cl.amount
        if released != func.manually_reserved:
            self.diagnostics.warning(
                DiagnosticCode.RELEASE_MISMATCH,
                f"{func.name} released {released}, but reserved {func.manually_reserved}",
                line_index=self.cursor.index, line_text=cl.text,
            )
        func.stack_used -= released
        func.manually_reserved = 0
        return LineOutcome.MATCHED

    def _on_register_restore(self, cl: ClassifiedLine) -> LineOutcome:
        func = self.current
        func.stack_used -= func.manually_reserved
        func.manually_reserved = 0
        return LineOutcome.MATCHED


# ===========================================================================
# PUBLIC API
# ===========================================================================

class FunctionAnalyzer:
    """Builds :class:`AsmFunction` records from listing lines.

    The analyzer itself holds only configuration and the (immutable)
    classifier; all per-run state lives in a private pass object, so one
    analyzer can serve any number of full or bounded passes.
    """

    def __init__(
        self,
        config: AnalyzerConfig = DEFAULT_CONFIG,
        classifier: Optional[LineClassifier] = None,
    ) -> None:
        self.config = config
        self.classifier = classifier or LineClassifier(config)

    def analyze(
        self,
        lines: Sequence[str],
        diagnostics: Optional[DiagnosticLog] = None,
    ) -> AnalysisResult:
        """Full pass over *lines*; returns every function found."""
        diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        run = _Pass(self, ParseCursor(lines), allow_release=False, diagnostics=diagnostics)
        run.run()
        _log.info("analysed %d lines, %d functions", len(lines), len(run.functions))
        return AnalysisResult(run.functions, diagnostics, run.outcomes)

    def analyze_part(
        self,
        function: AsmFunction,
        stop_address: int,
        diagnostics: Optional[DiagnosticLog] = None,
    ) -> AsmFunction:
        """Bounded pass over *function*'s own lines up to *stop_address*.

        Returns a new :class:`AsmFunction` whose ``stack_used`` is the
        usage in effect strictly before *stop_address*.
        """
        diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        cursor = ParseCursor(
            function.lines,
            address=function.start_address,
            end_address=stop_address,
        )
        run = _Pass(self, cursor, allow_release=True, diagnostics=diagnostics)
        run.run()
        if run.current is None:
            return AsmFunction(name=function.name, start_address=function.start_address)
        return run.current
