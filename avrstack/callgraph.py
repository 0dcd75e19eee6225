"""
avrstack.callgraph
==================

Resolves the raw call targets gathered by the full pass into a call graph.

- **Nodes** are :class:`~avrstack.function.AsmFunction` records, keyed by
  start address.
- **Edges** are the resolved ``callees`` of each function (direct calls and
  tail jumps).  A target address that is not the start of any parsed
  function is reported as ``missing-function`` and dropped.

A function is a *root* when no function lists it among its callees:
interrupt vectors, the reset entry point, and anything reachable only
through indirect jumps the listing does not resolve.

Public API
----------
    CallGraph          - read-only view over the resolved function table
    build_callgraph    - resolve every function's callees, once
    callgraph_summary  - human-readable multi-line summary
"""

from __future__ import annotations

import bisect
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional

from avrstack.errors import DiagnosticCode, DiagnosticLog
from avrstack.function import AsmFunction

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """The resolved, address-keyed function table.

    Attributes
    ----------
    functions : OrderedDict[int, AsmFunction]
        All functions in ascending start-address order.
    roots : list[AsmFunction]
        Functions no other function calls.
    diagnostics : DiagnosticLog
        Where resolution problems were recorded.
    """

    def __init__(self, functions: Mapping[int, AsmFunction], diagnostics: DiagnosticLog) -> None:
        self.functions: "OrderedDict[int, AsmFunction]" = OrderedDict(
            sorted(functions.items())
        )
        self.diagnostics = diagnostics
        self._starts: List[int] = list(self.functions)
        self._callers: Dict[int, List[AsmFunction]] = {a: [] for a in self._starts}
        self.roots: List[AsmFunction] = []

    def _index_callers(self) -> None:
        for func in self.functions.values():
            for callee in func.callees:
                self._callers[callee.start_address].append(func)
        self.roots = [
            f for f in self.functions.values() if not self._callers[f.start_address]
        ]

    # ----- lookups ----------------------------------------------------------

    def __getitem__(self, address: int) -> AsmFunction:
        return self.functions[address]

    def __contains__(self, address: int) -> bool:
        return address in self.functions

    def __len__(self) -> int:
        return len(self.functions)

    def by_name(self, name: str) -> Optional[AsmFunction]:
        for func in self.functions.values():
            if func.name == name:
                return func
        return None

    def function_containing(self, address: int) -> Optional[AsmFunction]:
        """The function with the greatest start strictly below *address*."""
        idx = bisect.bisect_left(self._starts, address)
        if idx == 0:
            return None
        return self.functions[self._starts[idx - 1]]

    def callers(self, func: AsmFunction) -> List[AsmFunction]:
        return list(self._callers.get(func.start_address, []))

    @property
    def leaves(self) -> List[AsmFunction]:
        return [f for f in self.functions.values() if not f.callees]

    # ----- whole-graph queries ----------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        return {
            "functions": len(self.functions),
            "edges": sum(len(f.callees) for f in self.functions.values()),
            "missing_targets": len(self.diagnostics.by_code(DiagnosticCode.MISSING_FUNCTION)),
            "self_recursive_functions": sum(
                1 for f in self.functions.values() if f in f.callees
            ),
            "root_functions": len(self.roots),
            "leaf_functions": len(self.leaves),
        }

    def __repr__(self) -> str:
        return f"CallGraph(functions={len(self.functions)}, roots={len(self.roots)})"


# ===========================================================================
# BUILDER
# ===========================================================================

class _CallGraphBuilder:
    """Resolve call addresses against the function table."""

    def __init__(self, functions: Mapping[int, AsmFunction], diagnostics: DiagnosticLog) -> None:
        self.cg = CallGraph(functions, diagnostics)
        self.diagnostics = diagnostics

    def build(self) -> CallGraph:
        for func in self.cg.functions.values():
            self._resolve(func)
        self.cg._index_callers()
        _log.info("call graph: %d functions, %d roots", len(self.cg), len(self.cg.roots))
        return self.cg

    def _resolve(self, func: AsmFunction) -> None:
        resolved: List[AsmFunction] = []
        for address in sorted(func.call_addresses):
            callee = self.cg.functions.get(address)
            if callee is None:
                self.diagnostics.warning(
                    DiagnosticCode.MISSING_FUNCTION,
                    f"Missing function {address:X} in {func.name}",
                )
                continue
            resolved.append(callee)
        func.resolve_callees(tuple(resolved))


# ===========================================================================
# PUBLIC API
# ===========================================================================

def build_callgraph(
    functions: Mapping[int, AsmFunction],
    diagnostics: Optional[DiagnosticLog] = None,
) -> CallGraph:
    """Resolve every function's callees and identify the roots.

    Parameters
    ----------
    functions : Mapping[int, AsmFunction]
        The function table from a full pass, keyed by start address.
    diagnostics : DiagnosticLog, optional
        Where ``missing-function`` warnings go; a fresh log if omitted.

    Raises
    ------
    InternalConsistencyError
        If any function's callees were already resolved.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    return _CallGraphBuilder(functions, diagnostics).build()


def callgraph_summary(cg: CallGraph) -> str:
    """Return a human-readable multi-line summary."""
    stats = cg.statistics()
    lines = [
        "Call Graph Summary",
        f"  Functions:            {stats['functions']}",
        f"  Edges:                {stats['edges']}",
        f"  Missing targets:      {stats['missing_targets']}",
        f"  Self-recursive funcs: {stats['self_recursive_functions']}",
        f"  Root functions:       {stats['root_functions']}",
        f"  Leaf functions:       {stats['leaf_functions']}",
        "",
        "Functions:",
    ]
    for func in cg.functions.values():
        callee_names = [c.name for c in func.callees]
        caller_names = [c.name for c in cg.callers(func)]
        lines.append(
            f"  {func.name} (+{func.stack_used}): "
            f"calls [{', '.join(callee_names)}], "
            f"called by [{', '.join(caller_names)}]"
        )
    return "\n".join(lines)
