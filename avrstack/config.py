"""
avrstack/config.py
══════════════════

Analyzer configuration.

The three arithmetic constants below were recovered empirically from the
avr-gcc runtime helpers (``__prologue_saves__`` / ``__epilogue_restores__``)
and the two-step interrupt-safe stack-pointer update the compiler emits for
large frames.  A wrong value silently skews every stack total.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

# Minimum combined stack-pointer decrement treated as a frame reservation.
# Smaller subtracts from r28:r29 are ordinary pointer arithmetic.
RESERVE_THRESHOLD: int = 1024

# ``__prologue_saves__`` pushes r2..r17 and r28/r29 (18 registers) when
# entered at offset 0; each skipped register moves the entry 2 bytes on.
REGISTER_SAVE_BASELINE: int = 18

# The release idiom subtracts a negative 16-bit amount.
RELEASE_MODULUS: int = 65536

# A call pushes a 16-bit return address.
RETURN_ADDRESS_BYTES: int = 2

# One past the top of SRAM on the ATmega targets this was tuned for.
DEFAULT_STACK_END: int = 0x900


@dataclass(frozen=True)
class AnalyzerConfig:
    """Tuning knobs for analysis and reporting."""
    reserve_threshold: int = RESERVE_THRESHOLD
    register_save_baseline: int = REGISTER_SAVE_BASELINE
    release_modulus: int = RELEASE_MODULUS
    return_address_bytes: int = RETURN_ADDRESS_BYTES
    short_name_length: int = 30
    multiline: bool = True
    include_total: bool = True
    include_used: bool = True
    stack_end: int = DEFAULT_STACK_END
    prologue_helper: str = "__prologue_saves__"
    epilogue_helper: str = "__epilogue_restores__"

    @property
    def path_separator(self) -> str:
        return "\n       " if self.multiline else " >> "

    @property
    def helper_names(self) -> frozenset:
        return frozenset((self.prologue_helper, self.epilogue_helper))

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if self.reserve_threshold <= 0:
            problems.append("reserve_threshold must be positive")
        if self.release_modulus <= self.reserve_threshold:
            problems.append("release_modulus must exceed reserve_threshold")
        if self.return_address_bytes < 0:
            problems.append("return_address_bytes must be non-negative")
        if self.short_name_length <= 0:
            problems.append("short_name_length must be positive")
        if not 0 < self.stack_end <= 0x10000:
            problems.append("stack_end must be within the 16-bit data space")
        return problems


DEFAULT_CONFIG = AnalyzerConfig()
