"""
avrstack.paths
==============

Worst-case stack path search over a resolved call graph.

Every function on a path contributes its own ``stack_used`` plus the
return address its caller pushed to reach it.  Walking from a root, each
distinct root-to-leaf chain yields one :class:`StackPath` whose total is
the sum of those contributions.

Recursion is cut, not widened: when a function is met again while it is
still on the path being expanded, the branch ends in a single node marked
``<RECURSION>`` carrying only that function's own contribution.  The set
of functions on the current path is maintained strictly per branch (added
on entry, removed on every exit) so a function reached along two
independent branches is expanded on both and never mistaken for a cycle.

The traversal is an explicit stack rather than Python recursion, so call
chains deeper than the interpreter's recursion limit are fine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from avrstack.config import DEFAULT_CONFIG, AnalyzerConfig
from avrstack.function import AsmFunction


@dataclass(frozen=True)
class PathNode:
    """One function on a path."""
    function: AsmFunction
    contribution: int
    cumulative: int
    recursion: bool = False

    def label(self, config: AnalyzerConfig = DEFAULT_CONFIG) -> str:
        text = self.function.display_name(config.short_name_length)
        if config.include_used:
            total = f" = {self.cumulative}" if config.include_total else ""
            text += f" (+{self.contribution}{total})"
        if self.recursion:
            text += " <RECURSION>"
        return text


@dataclass(frozen=True)
class StackPath:
    """A call chain from a root and its cumulative stack total."""
    nodes: Tuple[PathNode, ...]
    total: int

    @property
    def root(self) -> AsmFunction:
        return self.nodes[0].function

    @property
    def leaf(self) -> AsmFunction:
        return self.nodes[-1].function

    @property
    def is_recursive(self) -> bool:
        return self.nodes[-1].recursion

    @property
    def names(self) -> List[str]:
        return [n.function.name for n in self.nodes]

    def describe(self, config: AnalyzerConfig = DEFAULT_CONFIG) -> str:
        return config.path_separator.join(n.label(config) for n in self.nodes)


@dataclass
class _Frame:
    function: AsmFunction
    node: PathNode
    pending: Iterator[AsmFunction]
    suffixes: List[StackPath] = field(default_factory=list)


class StackPathComputer:
    """Enumerates root-to-leaf stack paths."""

    def __init__(self, config: AnalyzerConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def contribution(self, func: AsmFunction) -> int:
        return func.stack_used + self.config.return_address_bytes

    def enumerate_paths(
        self,
        root: AsmFunction,
        visiting: Optional[Set[int]] = None,
    ) -> List[StackPath]:
        """Every path starting at *root*.

        *visiting* holds the start addresses of functions already on the
        caller's path; it is returned to its original contents on exit,
        including exit by exception.
        """
        return self._walk(root, visiting, worst_only=False)

    def _walk(
        self,
        root: AsmFunction,
        visiting: Optional[Set[int]],
        worst_only: bool,
    ) -> List[StackPath]:
        if visiting is None:
            visiting = set()
        stack: List[_Frame] = []
        finished: Optional[List[StackPath]] = None

        def keep(into: List[StackPath], paths: List[StackPath]) -> None:
            if not worst_only:
                into.extend(paths)
                return
            # one suffix per frame; the first of equal totals stays
            for p in paths:
                if not into or p.total > into[0].total:
                    into[:] = [p]

        def enter(func: AsmFunction, running: int) -> Optional[List[StackPath]]:
            own = self.contribution(func)
            node = PathNode(func, own, running + own)
            if func.start_address in visiting:
                return [StackPath((replace(node, recursion=True),), own)]
            pending = iter(func.callees)
            visiting.add(func.start_address)
            stack.append(_Frame(func, node, pending))
            return None

        try:
            finished = enter(root, 0)
            while stack:
                frame = stack[-1]
                callee = next(frame.pending, None)
                if callee is not None:
                    cut = enter(callee, frame.node.cumulative)
                    if cut is not None:
                        keep(frame.suffixes, cut)
                    continue

                stack.pop()
                visiting.discard(frame.function.start_address)
                own = frame.node.contribution
                if frame.suffixes:
                    paths = [
                        StackPath((frame.node,) + s.nodes, s.total + own)
                        for s in frame.suffixes
                    ]
                else:
                    paths = [StackPath((frame.node,), own)]
                if stack:
                    keep(stack[-1].suffixes, paths)
                else:
                    finished = paths
        finally:
            for frame in stack:
                visiting.discard(frame.function.start_address)
        return finished or []

    def worst_path(self, root: AsmFunction) -> StackPath:
        """The maximum-total path from *root* (first found on ties).

        Only the best suffix of each callee is carried upwards, so this
        never materialises the full path set.
        """
        return self._walk(root, None, worst_only=True)[0]

    def worst_paths(self, roots: Iterable[AsmFunction]) -> List[StackPath]:
        """One worst path per root, largest first."""
        return _by_total(self.worst_path(r) for r in roots)

    def all_paths(self, roots: Iterable[AsmFunction]) -> List[StackPath]:
        """Every path of every root, largest first."""
        paths: List[StackPath] = []
        for root in roots:
            paths.extend(self.enumerate_paths(root))
        return _by_total(paths)

    def survey(self, roots: Iterable[AsmFunction]) -> Tuple[List[StackPath], List[StackPath]]:
        """``(worst_paths, all_paths)`` from a single enumeration per root."""
        worst: List[StackPath] = []
        every: List[StackPath] = []
        for root in roots:
            paths = self.enumerate_paths(root)
            worst.append(max(paths, key=lambda p: p.total))
            every.extend(paths)
        return _by_total(worst), _by_total(every)


def _by_total(paths: Iterable[StackPath]) -> List[StackPath]:
    return sorted(paths, key=lambda p: p.total, reverse=True)
