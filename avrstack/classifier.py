"""
avrstack.classifier
===================

Recognises single lines of ``avr-objdump -d``/``-S`` output as one of a
fixed set of instruction shapes.

Input shape
-----------
A function label followed by instruction lines, possibly interleaved with
source text (``-S``)::

    00000100 <main>:
     100:	cf 93       	push	r28
     102:	0e 94 00 01 	call	0x200	; 0x200 <foo>
     106:	0c 94 00 02 	jmp	0x400	; 0x400 <bar>

Classification is a pure function of the text of a line.  The only shape
that needs more than one line is the big-frame stack-pointer update, which
``LineClassifier.classify_at`` recognises by looking ahead from its first
instruction::

     4974:	c0 50       	subi	r28, 0x00	; 0
     4976:	d8 40       	sbci	r29, 0x08	; 8
     4978:	0f b6       	in	r0, 0x3f	; 63
     497a:	f8 94       	cli
     497c:	de bf       	out	0x3e, r29	; 62

Public API
----------
    LineKind         - enum of recognised shapes
    ClassifiedLine   - one classified line
    LineClassifier   - the pattern table and classification entry points
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence, Tuple

from avrstack.config import DEFAULT_CONFIG, AnalyzerConfig


class LineKind(enum.Enum):
    """Instruction shapes, in classification priority order."""

    FUNCTION_START   = "function-start"
    PUSH             = "push"
    POP              = "pop"
    SELF_CALL        = "self-call"
    REGISTER_SAVE    = "register-save"
    REGISTER_RESTORE = "register-restore"
    CALL             = "call"
    FRAME_LOAD       = "frame-load"      # ldi r26/r27 feeding REGISTER_SAVE
    SP_LOW           = "sp-low"          # first half of an SP update
    SP_DECREMENT     = "sp-decrement"    # only from classify_at
    SP_INCREMENT     = "sp-increment"    # only from classify_at
    JUMP             = "jump"
    INSTRUCTION      = "instruction"
    UNCLASSIFIED     = "unclassified"


@dataclass(frozen=True)
class ClassifiedLine:
    """A line of the listing together with what was recognised in it.

    Only the attributes meaningful for ``kind`` are set:

    ``address``   every instruction line (and the label address)
    ``name``      FUNCTION_START label, JUMP destination label
    ``target``    CALL / JUMP destination address
    ``offset``    REGISTER_SAVE / REGISTER_RESTORE / JUMP ``+0x..`` suffix
    ``amount``    FRAME_LOAD / SP_LOW immediate; SP_DECREMENT / SP_INCREMENT
                  combined 16-bit value
    ``register``  FRAME_LOAD destination register number
    """
    kind: LineKind
    text: str
    address: Optional[int] = None
    name: Optional[str] = None
    target: Optional[int] = None
    offset: Optional[int] = None
    amount: Optional[int] = None
    register: Optional[int] = None


_HEX = r"[\da-fA-F]+"
_OPERAND = rf"(?:0x{_HEX}|\.[+-]\d+)"
_LINE_START = rf"^\s*(?P<address>{_HEX}):(?:\s+[\da-fA-F]{{2}}){{2,4}}\s+"

# Above this the SP_LOW/SP_HIGH pair encodes a negative subtract.
_SIGN_BIT = 0x8000


def _helper_jump(helper: str) -> Pattern[str]:
    """Unconditional jump into *helper*, optionally past its entry."""
    return re.compile(
        _LINE_START + rf"r?jmp\s+{_OPERAND}\s*;\s*0x{_HEX}\s+<{re.escape(helper)}"
        rf"(?:\+0x(?P<offset>{_HEX}))?>"
    )


class LineClassifier:
    """Pattern table for one helper-naming convention.

    The compiled patterns are owned by the instance and never change after
    construction, so one classifier may be shared freely.
    """

    def __init__(self, config: AnalyzerConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self._line = re.compile(_LINE_START)
        self._fn_start = re.compile(rf"^(?P<address>{_HEX}) <(?P<name>[\w.]+)>:\s*$")
        # (kind, pattern) in first-match-wins order.
        self._table: Tuple[Tuple[LineKind, Pattern[str]], ...] = (
            (LineKind.PUSH, re.compile(_LINE_START + r"push\s+r\d+\s*$")),
            (LineKind.POP, re.compile(_LINE_START + r"pop\s+r\d+\s*$")),
            (LineKind.SELF_CALL, re.compile(_LINE_START + r"rcall\s+\.\+0(?!\d)")),
            (LineKind.REGISTER_SAVE, _helper_jump(config.prologue_helper)),
            (LineKind.REGISTER_RESTORE, _helper_jump(config.epilogue_helper)),
            (LineKind.CALL, re.compile(
                _LINE_START + rf"r?call\s+{_OPERAND}\s*;\s*0x(?P<dest>{_HEX})")),
            (LineKind.FRAME_LOAD, re.compile(
                _LINE_START + rf"ldi\s+r(?P<register>2[67]),\s+0x{_HEX}\s*;\s*(?P<amount>\d+)")),
            (LineKind.SP_LOW, re.compile(
                _LINE_START + rf"su?biw?\s+r28,\s+0x{_HEX}\s*;\s*(?P<amount>\d+)")),
            (LineKind.JUMP, re.compile(
                _LINE_START + rf"r?jmp\s+{_OPERAND}\s*;\s*0x(?P<dest>{_HEX})\s*"
                rf"<(?P<name>[\w.]+)(?:\+0x(?P<offset>{_HEX}))?>")),
        )
        self._sp_carry = re.compile(_LINE_START + r"sbc\s+r29,\s+r1\b")
        self._sp_high = re.compile(
            _LINE_START + rf"sbci\s+r29,\s+0x{_HEX}\s*;\s*(?P<amount>\d+)")
        # read SREG, disable interrupts, write SPH
        self._sp_footer: Tuple[Pattern[str], ...] = (
            re.compile(_LINE_START + r"in\s+r0,\s+0x3f\b"),
            re.compile(_LINE_START + r"cli\b"),
            re.compile(_LINE_START + r"out\s+0x3e,\s+r29\b"),
        )

    # ----- single line ------------------------------------------------------

    def instruction_address(self, line: str) -> Optional[int]:
        """Address of an instruction line, ``None`` for any other text."""
        m = self._line.match(line)
        return int(m.group("address"), 16) if m else None

    def classify(self, line: str) -> ClassifiedLine:
        """Classify *line* on its own text."""
        m = self._fn_start.match(line)
        if m:
            return ClassifiedLine(
                LineKind.FUNCTION_START, line,
                address=int(m.group("address"), 16),
                name=m.group("name"),
            )

        address = self.instruction_address(line)
        if address is None:
            # source text interleaved with the listing
            return ClassifiedLine(LineKind.UNCLASSIFIED, line)

        for kind, pattern in self._table:
            m = pattern.match(line)
            if m is None:
                continue
            groups = m.groupdict()
            return ClassifiedLine(
                kind, line,
                address=address,
                name=groups.get("name"),
                target=int(groups["dest"], 16) if groups.get("dest") else None,
                offset=int(groups["offset"], 16) if groups.get("offset") else None,
                amount=int(groups["amount"]) if groups.get("amount") else None,
                register=int(groups["register"]) if groups.get("register") else None,
            )
        return ClassifiedLine(LineKind.INSTRUCTION, line, address=address)

    # ----- with look-ahead --------------------------------------------------

    def classify_at(self, lines: Sequence[str], index: int) -> ClassifiedLine:
        """Classify ``lines[index]``, folding a stack-pointer update idiom.

        An SP_LOW line followed (ignoring interleaved source text) by an
        optional high-byte adjust and the three-instruction interrupt-safe
        footer becomes SP_DECREMENT, or SP_INCREMENT when the combined
        16-bit amount is negative.  Without the footer it is ordinary
        arithmetic and comes back as INSTRUCTION.
        """
        first = self.classify(lines[index])
        if first.kind is not LineKind.SP_LOW:
            return first

        high = 0
        i = self._next_instruction(lines, index + 1)
        if i is not None:
            if self._sp_carry.match(lines[i]):
                i += 1
            else:
                m = self._sp_high.match(lines[i])
                if m:
                    high = int(m.group("amount"))
                    i += 1

        for required in self._sp_footer:
            i = self._next_instruction(lines, i)
            if i is None or not required.match(lines[i]):
                return ClassifiedLine(LineKind.INSTRUCTION, first.text, address=first.address)
            i += 1

        combined = first.amount + high * 256
        kind = LineKind.SP_INCREMENT if combined >= _SIGN_BIT else LineKind.SP_DECREMENT
        return ClassifiedLine(
            kind, first.text,
            address=first.address,
            amount=combined,
        )

    def _next_instruction(self, lines: Sequence[str], start: Optional[int]) -> Optional[int]:
        if start is None:
            return None
        for i in range(start, len(lines)):
            if self._line.match(lines[i]):
                return i
        return None
