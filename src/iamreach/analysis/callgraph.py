"""CallGraph: nodes and ordered call edges among reachable functions."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from iamreach.model.nodes import PACKAGE_INITIALIZER, CallEdge, FunctionNode


class CallGraph:
    """Directed call graph; edge order is discovery order."""

    def __init__(self, edges: Iterable[CallEdge] = (), nodes: Iterable[FunctionNode] = ()) -> None:
        self._nodes: dict[FunctionNode, None] = {}
        self._edges: list[CallEdge] = []
        self._out: dict[FunctionNode, list[CallEdge]] = defaultdict(list)
        self._in: dict[FunctionNode, list[CallEdge]] = defaultdict(list)
        for node in nodes:
            self.add_node(node)
        for edge in edges:
            self.add_edge(edge)

    def add_node(self, node: FunctionNode) -> None:
        self._nodes.setdefault(node, None)

    def add_edge(self, edge: CallEdge) -> None:
        self.add_node(edge.caller)
        self.add_node(edge.callee)
        self._edges.append(edge)
        self._out[edge.caller].append(edge)
        self._in[edge.callee].append(edge)

    def out_edges(self, node: FunctionNode) -> list[CallEdge]:
        return self._out.get(node, [])

    def nodes(self) -> list[FunctionNode]:
        return list(self._nodes)

    def edges(self) -> list[CallEdge]:
        return list(self._edges)

    def __contains__(self, node: object) -> bool:
        return node in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def without_synthetic(self, keep: Iterable[FunctionNode] = ()) -> CallGraph:
        """Return a copy with synthetic wrapper nodes bypassed.

        Every caller of a removed node gets an edge straight to each of its
        callees, keeping the original call site. Package initializers and
        nodes in ``keep`` (normally the roots) stay.
        """
        keep = set(keep)
        out = {n: list(es) for n, es in self._out.items()}
        inc = {n: list(es) for n, es in self._in.items()}
        seen = {(e.caller, e.site, e.callee) for e in self._edges}
        edges = list(self._edges)
        removed: set[FunctionNode] = set()

        for node in self._nodes:
            if node in keep or not node.synthetic or node.synthetic == PACKAGE_INITIALIZER:
                continue
            for e_in in inc.get(node, []):
                if e_in.caller == node:
                    continue
                for e_out in out.get(node, []):
                    if e_out.callee == node:
                        continue
                    key = (e_in.caller, e_in.site, e_out.callee)
                    if key in seen:
                        continue
                    seen.add(key)
                    bypass = CallEdge(
                        caller=e_in.caller, callee=e_out.callee,
                        kind=e_in.kind, site=e_in.site,
                    )
                    edges.append(bypass)
                    out.setdefault(bypass.caller, []).append(bypass)
                    inc.setdefault(bypass.callee, []).append(bypass)
            removed.add(node)
            for e in out.pop(node, []):
                if e.callee in inc:
                    inc[e.callee] = [x for x in inc[e.callee] if x.caller != node]
            for e in inc.pop(node, []):
                if e.caller in out:
                    out[e.caller] = [x for x in out[e.caller] if x.callee != node]

        return CallGraph(
            edges=(e for e in edges if e.caller not in removed and e.callee not in removed),
            nodes=(n for n in self._nodes if n not in removed),
        )
