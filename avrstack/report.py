"""
avrstack/report.py
══════════════════

Text rendering of analysis results.

  • max-stack report : one worst path per root, ``"<total> : <path>"``
  • detailed report  : every path of every root, same line format
  • trace report     : decoded stack dump with SP reconciliation

Reports are built as lists of lines; writing them is the caller's job.
The trace report is coloured with ``termcolor`` for the console, which
leaves text uncoloured when stdout is not a terminal or NO_COLOR is set.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Union

from termcolor import colored

from avrstack.config import DEFAULT_CONFIG, AnalyzerConfig
from avrstack.crashtrace import StackTrace
from avrstack.paths import StackPath

_BANNER = " ================== Stack Trace ================="
_FOOTER = " ================== =========== ================="


def path_lines(paths: Iterable[StackPath], config: AnalyzerConfig = DEFAULT_CONFIG) -> List[str]:
    """``"<total> : <description>"`` for each path, in the given order."""
    return [f"{p.total} : {p.describe(config)}" for p in paths]


def max_stack_report(worst: Iterable[StackPath], config: AnalyzerConfig = DEFAULT_CONFIG) -> List[str]:
    ordered = sorted(worst, key=lambda p: p.total, reverse=True)
    return path_lines(ordered, config)


def detailed_report(paths: Iterable[StackPath], config: AnalyzerConfig = DEFAULT_CONFIG) -> List[str]:
    ordered = sorted(paths, key=lambda p: p.total, reverse=True)
    return path_lines(ordered, config)


def write_lines(path: Union[str, Path], lines: Iterable[str]) -> Path:
    """Write *lines* to *path*, one per line, creating parent directories."""
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return p


def trace_report(trace: StackTrace) -> List[str]:
    """Console lines describing a decoded stack dump."""
    sp = trace.stack_pointer
    lines = [
        "",
        colored(_BANNER, "cyan"),
        f"SP: {sp:04X} ({sp})",
        "",
    ]
    for frame in trace.frames:
        lines.append(f"{frame.name} : 0x{frame.return_address:04X}")
    lines.append("")

    if trace.fully_accounted:
        lines.append(colored(f"All stack accounted for ({trace.total_bytes})", "green"))
    else:
        lines.append(f"Stack accounted: {trace.accounted_bytes}")
        lines.append(f"Total stack    : {trace.total_bytes}")
        lines.append(colored(f"Unaccounted    : {trace.unaccounted_bytes}", "yellow"))
    lines.extend(["", colored(_FOOTER, "cyan"), ""])
    return lines
