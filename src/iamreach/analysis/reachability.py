"""Rapid type analysis: reachable functions and the call graph among them.

Starting from the roots, a single worklist discovers functions. Static calls
are followed directly. Calls through function values are resolved against
functions whose address was taken, and interface calls against the concrete
types instantiated by reachable code. Both candidate sets only grow, so every
pending call site is re-resolved when a new candidate shows up and the loop
ends at a fixed point that does not depend on processing order.

The result over-approximates: it may contain calls no execution performs, but
never misses one that can happen.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

from iamreach.analysis.callgraph import CallGraph
from iamreach.model.nodes import CallEdge, CallKind, CallSite, FunctionNode, SiteKind
from iamreach.model.program import ProgramModel

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReachableSet:
    """Immutable result of one analysis run.

    ``functions`` maps each reachable function (discovery order) to whether
    its address was taken, i.e. it may be called through a function value or
    by reflection.
    """
    functions: Mapping[FunctionNode, bool]
    edges: tuple[CallEdge, ...]
    roots: tuple[FunctionNode, ...]
    runtime_types: tuple[str, ...]
    called: frozenset[FunctionNode]

    def __contains__(self, fn: object) -> bool:
        return fn in self.functions

    def __iter__(self) -> Iterator[FunctionNode]:
        return iter(self.functions)

    def __len__(self) -> int:
        return len(self.functions)

    def address_taken(self, fn: FunctionNode) -> bool:
        return self.functions.get(fn, False)

    def has_call_path(self, fn: FunctionNode) -> bool:
        """False for functions reachable only as address-taken values."""
        return fn in self.called

    def call_graph(self) -> CallGraph:
        return CallGraph(edges=self.edges, nodes=self.functions)


def analyze(program: ProgramModel, roots: list[FunctionNode] | None = None) -> ReachableSet:
    """Compute the functions reachable from ``roots`` (default: program roots)."""
    if roots is None:
        roots = program.roots()
    rta = _RapidTypeAnalysis(program)
    for root in roots:
        rta.add_reachable(root, address_taken=False)
    rta.run()

    called = _called_from(roots, rta.edges)
    log.info(
        "Reachability fixed point: %d functions (%d only address-taken), %d edges, %d runtime types",
        len(rta.reachable), len(rta.reachable) - len(called), len(rta.edges), len(rta.types),
    )
    return ReachableSet(
        functions=MappingProxyType(dict(rta.reachable)),
        edges=tuple(rta.edges),
        roots=tuple(roots),
        runtime_types=tuple(rta.types),
        called=frozenset(called),
    )


class _RapidTypeAnalysis:
    def __init__(self, program: ProgramModel) -> None:
        self.program = program
        self.reachable: dict[FunctionNode, bool] = {}
        self.edges: list[CallEdge] = []
        self.types: dict[str, None] = {}
        self._worklist: deque[FunctionNode] = deque()
        self._edge_keys: set[tuple[FunctionNode, CallSite, FunctionNode]] = set()
        # signature -> address-taken functions / pending dynamic call sites
        self._addr_by_sig: dict[str, list[FunctionNode]] = defaultdict(list)
        self._dynamic_sites: dict[str, list[tuple[FunctionNode, CallSite]]] = defaultdict(list)
        # (interface, method) -> pending invoke sites
        self._invoke_sites: dict[tuple[str, str], list[tuple[FunctionNode, CallSite]]] = defaultdict(list)

    def run(self) -> None:
        while self._worklist:
            self._visit(self._worklist.popleft())

    def add_reachable(self, fn: FunctionNode, address_taken: bool) -> None:
        if fn not in self.reachable:
            self.reachable[fn] = address_taken
            self._worklist.append(fn)
        elif address_taken and not self.reachable[fn]:
            self.reachable[fn] = True
        else:
            return
        if address_taken:
            self._add_address_taken(fn)

    def _add_address_taken(self, fn: FunctionNode) -> None:
        if not fn.signature:
            return
        self._addr_by_sig[fn.signature].append(fn)
        for caller, site in list(self._dynamic_sites.get(fn.signature, [])):
            self._add_edge(caller, site, fn, CallKind.DYNAMIC)

    def _add_edge(self, caller: FunctionNode, site: CallSite, callee: FunctionNode,
                  kind: CallKind) -> None:
        key = (caller, site, callee)
        if key in self._edge_keys:
            return
        self._edge_keys.add(key)
        self.edges.append(CallEdge(caller=caller, callee=callee, kind=kind, site=site))
        self.add_reachable(callee, address_taken=False)

    def _visit(self, fn: FunctionNode) -> None:
        for site in self.program.call_sites(fn):
            if site.kind is SiteKind.STATIC:
                self._add_edge(fn, site, self._lookup(site.callee), CallKind.STATIC)
            elif site.kind is SiteKind.DYNAMIC:
                if site.callee:
                    self._add_edge(fn, site, self._lookup(site.callee), CallKind.DYNAMIC)
                else:
                    self._dynamic_sites[site.signature].append((fn, site))
                    for target in list(self._addr_by_sig.get(site.signature, [])):
                        self._add_edge(fn, site, target, CallKind.DYNAMIC)
            else:
                key = (site.interface, site.method)
                self._invoke_sites[key].append((fn, site))
                for type_name in list(self.types):
                    self._dispatch(type_name, key, [(fn, site)])

        for target in self.program.address_taken(fn):
            self.add_reachable(target, address_taken=True)

        for type_name in self.program.instantiated_types(fn):
            self._add_runtime_type(type_name)

    def _add_runtime_type(self, type_name: str) -> None:
        if type_name in self.types:
            return
        self.types[type_name] = None
        log.debug("New runtime type %s", type_name)

        for key, sites in list(self._invoke_sites.items()):
            self._dispatch(type_name, key, list(sites))

        # Exported methods of runtime types are callable by reflection
        for target in self.program.method_set(type_name).values():
            if target.exported:
                self.add_reachable(target, address_taken=True)

    def _dispatch(self, type_name: str, key: tuple[str, str],
                  sites: list[tuple[FunctionNode, CallSite]]) -> None:
        interface, method = key
        if not self.program.implements(type_name, interface):
            return
        target = self.program.method_set(type_name).get(method)
        if target is None:
            return
        for caller, site in sites:
            self._add_edge(caller, site, target, CallKind.VIRTUAL)

    def _lookup(self, name: str | None) -> FunctionNode:
        fn = self.program.function(name or "")
        if fn is None:
            raise KeyError(f"call to unknown function {name}")
        return fn


def _called_from(roots: list[FunctionNode], edges: list[CallEdge]) -> set[FunctionNode]:
    """Functions connected to a root by call edges."""
    out: dict[FunctionNode, list[FunctionNode]] = defaultdict(list)
    for edge in edges:
        out[edge.caller].append(edge.callee)

    visited: set[FunctionNode] = set(roots)
    queue = deque(roots)
    while queue:
        current = queue.popleft()
        for neighbor in out.get(current, []):
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return visited
