"""avrstack: worst-case stack analysis for avr-gcc firmware.

Works from an ``avr-objdump`` disassembly listing:

analyzer
    Full pass that turns listing lines into per-function stack usage and
    raw call targets; bounded pass that replays one function up to an
    address.

callgraph
    Resolves call targets into callees and finds the root functions.

paths
    Recursion-safe enumeration of root-to-leaf stack paths and their
    worst case.

crashtrace
    Decodes a raw stack dump captured on the device into call frames.

Programmatic::

    from avrstack.main import analyse
    from avrstack.config import AnalyzerConfig

    config = AnalyzerConfig()
    analysis = analyse(listing_lines, config)
    for path in analysis.paths.worst_paths(analysis.callgraph.roots):
        print(path.total, path.describe(config))
"""

from typing import List

__version__ = "0.1.0"
__all__: List[str] = [
    "AnalyzerConfig",
    "AsmFunction",
    "CallGraph",
    "FunctionAnalyzer",
    "LineClassifier",
    "StackDumpDecoder",
    "StackPathComputer",
    "build_callgraph",
]

from avrstack.config import AnalyzerConfig  # noqa: E402
from avrstack.function import AsmFunction  # noqa: E402
from avrstack.classifier import LineClassifier  # noqa: E402
from avrstack.analyzer import FunctionAnalyzer  # noqa: E402
from avrstack.callgraph import CallGraph, build_callgraph  # noqa: E402
from avrstack.paths import StackPathComputer  # noqa: E402
from avrstack.crashtrace import StackDumpDecoder  # noqa: E402
