#!/usr/bin/env python3
"""avrstack/main.py: CLI entry-point.

Usage examples
--------------
    # Analyse a listing; writes firmware_maxStacks.txt next to it
    python -m avrstack firmware.S

    # Pick the newest .S file in a build directory, also dump every path
    python -m avrstack --dir build/ --out max.txt --detailed all.txt

    # Decode a stack dump captured from the device (or "-" for stdin)
    python -m avrstack --source firmware.S --trace 2A08012C00F1

Exit codes
----------
    0   Success.
    1   The stack dump could not be decoded (reports were still written).
    2   Infrastructure failure (bad arguments, unreadable listing, ...).

The module doubles as ``python -m avrstack`` via ``avrstack/__main__.py``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from avrstack import __version__
from avrstack.analyzer import AnalysisResult, FunctionAnalyzer
from avrstack.callgraph import CallGraph, build_callgraph, callgraph_summary
from avrstack.config import DEFAULT_STACK_END, AnalyzerConfig
from avrstack.crashtrace import StackDumpDecoder
from avrstack.errors import DiagnosticLog, SourceReadError, StackDumpFormatError
from avrstack.paths import StackPathComputer
from avrstack.report import detailed_report, max_stack_report, trace_report, write_lines

_log = logging.getLogger("avrstack")

EXIT_OK: int = 0
EXIT_TRACE: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``avrstack`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    root = logging.getLogger("avrstack")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        root.addHandler(handler)


def newest_source(directory: Path) -> Optional[Path]:
    """The most recently created ``*.S`` file in *directory*."""
    candidates = [p for p in directory.glob("*.S") if p.is_file()]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stat().st_ctime)


def default_output(source: Path) -> Path:
    return source.with_name(f"{source.stem}_maxStacks.txt")


def read_listing(path: Path) -> List[str]:
    """Read the disassembly listing as a list of lines."""
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as exc:
        raise SourceReadError(f"cannot read {path}: {exc}") from exc


def _resolve_source(args: argparse.Namespace) -> Path:
    if args.source and args.positional:
        _log.error("give the listing either positionally or with --source, not both")
        raise SystemExit(EXIT_INFRA)
    source = args.source or args.positional
    if args.dir:
        if source:
            _log.error("Cannot specify both --source and --dir")
            raise SystemExit(EXIT_INFRA)
        directory = Path(args.dir).expanduser()
        if not directory.is_dir():
            _log.error("directory not found: %s", directory)
            raise SystemExit(EXIT_INFRA)
        found = newest_source(directory)
        if found is None:
            _log.error("Cannot find a .S file to analyse in '%s'", directory)
            raise SystemExit(EXIT_INFRA)
        return found
    if not source:
        _log.error("No source file specified")
        raise SystemExit(EXIT_INFRA)
    return Path(source).expanduser()


def _read_trace_text(args: argparse.Namespace) -> Optional[str]:
    if args.trace_file:
        text = Path(args.trace_file).expanduser().read_text(encoding="utf-8")
        lines = text.splitlines()
        return lines[0] if lines else ""
    if args.trace == "-":
        return sys.stdin.readline()
    return args.trace


# ===========================================================================
# Pipeline
# ===========================================================================

@dataclass
class Analysis:
    """Everything a full run produces before reporting."""
    result: AnalysisResult
    callgraph: CallGraph
    analyzer: FunctionAnalyzer
    paths: StackPathComputer
    diagnostics: DiagnosticLog


def analyse(lines: Sequence[str], config: AnalyzerConfig) -> Analysis:
    """Full pass, call-graph resolution and path computer, wired together."""
    diagnostics = DiagnosticLog()
    analyzer = FunctionAnalyzer(config)
    result = analyzer.analyze(lines, diagnostics)
    cg = build_callgraph(result.functions, diagnostics)
    return Analysis(result, cg, analyzer, StackPathComputer(config), diagnostics)


def _build_config(args: argparse.Namespace) -> AnalyzerConfig:
    config = AnalyzerConfig(
        stack_end=args.stack_end,
        multiline=not args.single_line,
        short_name_length=args.short_name_length,
    )
    problems = config.validate()
    if problems:
        for problem in problems:
            _log.error("invalid configuration: %s", problem)
        raise SystemExit(EXIT_INFRA)
    return config


def run(args: argparse.Namespace) -> int:
    config = _build_config(args)
    source = _resolve_source(args)
    _log.info("Analysing %s", source)
    try:
        lines = read_listing(source)
    except SourceReadError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    analysis = analyse(lines, config)
    if _log.isEnabledFor(logging.DEBUG):
        _log.debug("%s", callgraph_summary(analysis.callgraph))

    roots = analysis.callgraph.roots
    if args.detailed:
        worst, every = analysis.paths.survey(roots)
    else:
        worst, every = analysis.paths.worst_paths(roots), []
    out = Path(args.out).expanduser() if args.out else default_output(source)
    try:
        write_lines(out, max_stack_report(worst, config))
        _log.info("Wrote %d root paths to %s", len(worst), out)
        if args.detailed:
            detailed = detailed_report(every, config)
            write_lines(args.detailed, detailed)
            _log.info("Wrote %d paths to %s", len(detailed), args.detailed)
    except OSError as exc:
        _log.error("cannot write report: %s", exc)
        return EXIT_INFRA

    try:
        dump_text = _read_trace_text(args)
    except (OSError, UnicodeDecodeError) as exc:
        _log.error("cannot read stack dump: %s", exc)
        return EXIT_TRACE
    if not dump_text or not dump_text.strip():
        return EXIT_OK

    decoder = StackDumpDecoder(
        analysis.callgraph, config, analysis.analyzer, analysis.diagnostics
    )
    try:
        trace = decoder.trace_text(dump_text)
    except StackDumpFormatError as exc:
        _log.error("%s", exc)
        return EXIT_TRACE
    for line in trace_report(trace):
        print(line)
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _int_auto(text: str) -> int:
    """``int`` accepting ``0x`` prefixes."""
    return int(text, 0)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="avrstack",
        description=(
            "AVR gcc stack analyser.\n\n"
            "Estimates worst-case stack depth per root function from an\n"
            "avr-objdump listing, and decodes captured stack dumps."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              avrstack firmware.S
              avrstack --source firmware.S --out max.txt --detailed all.txt
              avrstack --dir build/ --trace -

            If --dir is given, the most recently created .S file is analysed.
            If no output is given, it is written to <source>_maxStacks.txt.
        """),
    )
    parser.add_argument("positional", nargs="?", metavar="SOURCE",
                        help="Listing to analyse (same as --source).")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--source", metavar="FILE", help="The assembly listing to analyse.")
    src.add_argument("--dir", metavar="DIR",
                     help="Directory containing the listing; newest *.S is used.")
    parser.add_argument("--out", metavar="FILE", help="Max-stack report file.")
    parser.add_argument("--detailed", metavar="FILE",
                        help="Also write every path of every root to FILE.")

    trace = parser.add_mutually_exclusive_group()
    trace.add_argument("--trace", metavar="HEX",
                       help='Stack dump as hex text ("-" reads one line from stdin).')
    trace.add_argument("--trace-file", metavar="FILE",
                       help="Read the stack dump from the first line of FILE.")

    tuning = parser.add_argument_group("tuning")
    tuning.add_argument("--stack-end", type=_int_auto, default=DEFAULT_STACK_END,
                        metavar="ADDR",
                        help=f"One past the top of SRAM (default: 0x{DEFAULT_STACK_END:X}).")
    tuning.add_argument("--single-line", action="store_true",
                        help="Join path nodes with ' >> ' instead of newlines.")
    tuning.add_argument("--short-name-length", type=int, default=30, metavar="N",
                        help="Width of function names in reports (default: 30).")

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase verbosity (-v info, -vv debug).")
    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA

    _configure_logging(args.verbose)

    try:
        return run(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
