"""Explain why a function is reachable: shortest call path from a root."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, replace

from iamreach.analysis.callgraph import CallGraph
from iamreach.analysis.reachability import ReachableSet
from iamreach.model.nodes import CallEdge, FunctionNode, Position

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """One hop of an explanation, ready to print."""
    full_name: str              # callee, cleaned
    name: str                   # callee short name
    call_type: str              # e.g. "static method call"
    defined_at: Position        # callee declaration
    called_from: Position       # call site


class PathFinder:
    """BFS over the reachable call graph with synthetic wrappers removed."""

    def __init__(self, reachable: ReachableSet) -> None:
        self.reachable = reachable
        self.roots = list(reachable.roots)
        self.graph: CallGraph = reachable.call_graph().without_synthetic(keep=self.roots)

    def find_function(self, name: str) -> FunctionNode | None:
        """Reachable source function with fully qualified ``name``.

        Falls back to an instantiation of ``name`` when only instantiations
        of a generic function are reachable.
        """
        candidates = self._candidates(name)
        return candidates[0] if candidates else None

    def why_reachable(self, name: str) -> list[CallEdge] | None:
        for fn in self._candidates(name):
            path = self.shortest_path(fn)
            if path is None:
                continue
            if path and fn.name != name:
                # Instantiations are reported under their origin
                last = path[-1]
                short_name = fn.short_name.split("[", 1)[0]
                origin = replace(fn, name=name, short_name=short_name, origin=None)
                path[-1] = replace(last, callee=origin)
            return path
        return None

    def _candidates(self, name: str) -> list[FunctionNode]:
        exact: list[FunctionNode] = []
        instances: list[FunctionNode] = []
        for fn in self.reachable:
            # Wrappers and closures have no name to match
            if fn.synthetic or fn.parent is not None:
                continue
            if fn.name == name:
                exact.append(fn)
            elif fn.origin == name:
                instances.append(fn)
        return exact + instances

    def shortest_path(self, target: FunctionNode) -> list[CallEdge] | None:
        """First path found trying each root in order, or None."""
        for root in self.roots:
            path = bfs(self.graph, root, target)
            if path is not None:
                return path
        log.debug("No call path to %s", target.name)
        return None


def bfs(graph: CallGraph, start: FunctionNode, target: FunctionNode) -> list[CallEdge] | None:
    """Shortest path from ``start`` to ``target``; [] when they are the same."""
    if start not in graph:
        return None
    visited: dict[FunctionNode, CallEdge | None] = {start: None}
    queue: deque[FunctionNode] = deque([start])

    while queue:
        current = queue.popleft()
        if current == target:
            path: list[CallEdge] = []
            edge = visited[current]
            while edge is not None:
                path.append(edge)
                edge = visited[edge.caller]
            path.reverse()
            return path

        for edge in graph.out_edges(current):
            if edge.callee not in visited:
                visited[edge.callee] = edge
                queue.append(edge.callee)

    return None


def shortest_path(reachable: ReachableSet, target: FunctionNode) -> list[CallEdge] | None:
    return PathFinder(reachable).shortest_path(target)


def create_step(edge: CallEdge) -> Step:
    site = edge.site.position if edge.site is not None else Position()
    return Step(
        full_name=edge.callee.clean_name,
        name=edge.callee.short_name,
        call_type=edge.description(),
        defined_at=edge.callee.position,
        called_from=site,
    )


def format_path(path: list[CallEdge]) -> str:
    """Render a call path for humans.

    Output looks like this:

        github.com/example/app.main
        At line 52 a static function call to run
    --> github.com/example/app.run
        Defined at /src/app/main.go:56:6
    """
    lines: list[str] = []
    for i, edge in enumerate(path):
        if i == 0:
            # Root: nothing calls it
            lines.append(f"    {edge.caller.clean_name}")
        step = create_step(edge)
        lines.append(f"    At line {step.called_from.line} a {step.call_type} to {step.name}")
        lines.append(f"--> {step.full_name}")
        lines.append(f"    Defined at {step.defined_at}")
    return "\n".join(lines)
