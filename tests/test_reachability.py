"""Tests for rapid type analysis: reachable set, dispatch resolution, fixed point."""

from __future__ import annotations

import pytest

from iamreach.analysis.reachability import analyze
from iamreach.model.nodes import CallKind, CallSite, FunctionNode, Position, SiteKind
from iamreach.model.program import ProgramModel


def make_fn(name: str, signature: str = "", receiver: str | None = None) -> FunctionNode:
    return FunctionNode(
        name=f"example.com/app.{name}", short_name=name, package_path="example.com/app",
        package_name="app", signature=signature, receiver=receiver,
        position=Position("/src/app/main.go", 1, 6),
    )


def static(callee: FunctionNode, line: int = 1) -> CallSite:
    return CallSite(kind=SiteKind.STATIC, callee=callee.name, position=Position("main.go", line, 2))


def dynamic(signature: str, line: int = 1) -> CallSite:
    return CallSite(kind=SiteKind.DYNAMIC, signature=signature, position=Position("main.go", line, 2))


def invoke(interface: str, method: str, line: int = 1) -> CallSite:
    return CallSite(kind=SiteKind.INVOKE, interface=interface, method=method,
                    position=Position("main.go", line, 2))


def edge_pairs(reachable) -> set[tuple[str, str, CallKind]]:
    return {(e.caller.short_name, e.callee.short_name, e.kind) for e in reachable.edges}


class TestStaticCalls:
    def test_chain(self):
        p = ProgramModel()
        main, a, b, dead = make_fn("main"), make_fn("a"), make_fn("b"), make_fn("dead")
        p.add_function(main, calls=[static(a)])
        p.add_function(a, calls=[static(b)])
        p.add_function(b)
        p.add_function(dead, calls=[static(a)])
        p.add_root(main)

        r = analyze(p)
        assert list(r) == [main, a, b]
        assert dead not in r
        assert not r.address_taken(b)
        assert edge_pairs(r) == {("main", "a", CallKind.STATIC), ("a", "b", CallKind.STATIC)}

    def test_every_edge_callee_is_reachable(self):
        p = ProgramModel()
        main, a, b = make_fn("main"), make_fn("a"), make_fn("b")
        p.add_function(main, calls=[static(a), static(b)])
        p.add_function(a, calls=[static(main)])
        p.add_function(b, calls=[static(b)])
        p.add_root(main)

        r = analyze(p)
        assert all(e.callee in r and e.caller in r for e in r.edges)

    def test_default_roots(self):
        p = ProgramModel()
        main = make_fn("main")
        p.add_function(main)
        p.add_root(main)
        assert analyze(p).roots == (main,)

    def test_result_is_immutable(self):
        p = ProgramModel()
        main = make_fn("main")
        p.add_function(main)
        r = analyze(p, [main])
        with pytest.raises(TypeError):
            r.functions[make_fn("other")] = True


class TestFunctionValues:
    def test_address_taken_without_call(self):
        p = ProgramModel()
        main, handler = make_fn("main"), make_fn("handler", "func()")
        p.add_function(main, address_taken=[handler.name])
        p.add_function(handler)

        r = analyze(p, [main])
        assert handler in r
        assert r.address_taken(handler)
        assert not r.has_call_path(handler)

    def test_callees_of_address_taken_function_have_no_path(self):
        p = ProgramModel()
        main, handler, sdk = make_fn("main"), make_fn("handler", "func()"), make_fn("sdk")
        p.add_function(main, address_taken=[handler.name])
        p.add_function(handler, calls=[static(sdk)])
        p.add_function(sdk)

        r = analyze(p, [main])
        assert sdk in r
        assert not r.address_taken(sdk)
        assert not r.has_call_path(sdk)

    def test_dynamic_call_resolved_by_signature(self):
        p = ProgramModel()
        main, call = make_fn("main"), make_fn("call")
        handler, other = make_fn("handler", "func()"), make_fn("other", "func(int)")
        p.add_function(main, calls=[static(call)], address_taken=[handler.name, other.name])
        p.add_function(call, calls=[dynamic("func()")])
        p.add_function(handler)
        p.add_function(other)

        r = analyze(p, [main])
        pairs = edge_pairs(r)
        assert ("call", "handler", CallKind.DYNAMIC) in pairs
        assert ("call", "other", CallKind.DYNAMIC) not in pairs
        assert r.has_call_path(handler)
        assert not r.has_call_path(other)

    def test_dynamic_call_before_address_is_taken(self):
        # The call site is visited first, the function value shows up later
        p = ProgramModel()
        main, call, late = make_fn("main"), make_fn("call"), make_fn("late")
        handler = make_fn("handler", "func()")
        p.add_function(main, calls=[static(call), static(late)])
        p.add_function(call, calls=[dynamic("func()")])
        p.add_function(late, address_taken=[handler.name])
        p.add_function(handler)

        r = analyze(p, [main])
        assert ("call", "handler", CallKind.DYNAMIC) in edge_pairs(r)

    def test_dynamic_call_resolved_by_builder(self):
        p = ProgramModel()
        main, target = make_fn("main"), make_fn("target")
        site = CallSite(kind=SiteKind.DYNAMIC, callee=target.name)
        p.add_function(main, calls=[site])
        p.add_function(target)

        r = analyze(p, [main])
        assert edge_pairs(r) == {("main", "target", CallKind.DYNAMIC)}


class TestInterfaceDispatch:
    def build(self, *, instantiate: str = "main") -> tuple[ProgramModel, dict[str, FunctionNode]]:
        p = ProgramModel()
        fns = {n: make_fn(n) for n in ("main", "use", "mk", "dead")}
        fns["impl"] = make_fn("Get", receiver="*example.com/app.impl")
        p.add_function(fns["main"], calls=[static(fns["use"])]
                       + ([static(fns["mk"])] if instantiate == "main" else []))
        p.add_function(fns["use"], calls=[invoke("example.com/app.Getter", "Get")])
        p.add_function(fns["mk"], types=["*example.com/app.impl"])
        p.add_function(fns["dead"], types=["*example.com/app.impl"])
        p.add_function(fns["impl"])
        p.add_type("*example.com/app.impl", {"Get": fns["impl"].name})
        p.add_interface("example.com/app.Getter", ["Get"])
        return p, fns

    def test_interface_call_reaches_instantiated_type(self):
        p, fns = self.build()
        r = analyze(p, [fns["main"]])
        assert fns["impl"] in r
        assert ("use", "Get", CallKind.VIRTUAL) in edge_pairs(r)
        assert r.has_call_path(fns["impl"])
        assert "*example.com/app.impl" in r.runtime_types

    def test_type_instantiated_in_dead_code_does_not_count(self):
        p, fns = self.build(instantiate="nowhere")
        r = analyze(p, [fns["main"]])
        assert fns["impl"] not in r
        assert r.runtime_types == ()

    def test_type_discovered_before_call_site(self):
        p, fns = self.build()
        main = make_fn("main2")
        p.add_function(main, calls=[static(fns["mk"]), static(fns["use"])])
        r = analyze(p, [main])
        assert ("use", "Get", CallKind.VIRTUAL) in edge_pairs(r)

    def test_exported_methods_of_runtime_types_are_address_taken(self):
        p = ProgramModel()
        main = make_fn("main")
        get = make_fn("Get", receiver="*T")
        hidden = make_fn("hidden", receiver="*T")
        p.add_function(main, types=["*T"])
        p.add_function(get)
        p.add_function(hidden)
        p.add_type("*T", {"Get": get.name, "hidden": hidden.name})

        r = analyze(p, [main])
        assert get in r and r.address_taken(get)
        assert not r.has_call_path(get)
        assert hidden not in r


class TestFixedPoint:
    def build(self) -> tuple[ProgramModel, list[FunctionNode]]:
        p = ProgramModel()
        init, main, a, b = make_fn("init"), make_fn("main"), make_fn("a"), make_fn("b")
        handler = make_fn("handler", "func()")
        impl = make_fn("Get", receiver="*impl")
        p.add_function(init, calls=[static(a)])
        p.add_function(main, calls=[static(b), invoke("I", "Get")], address_taken=[handler.name])
        p.add_function(a, calls=[dynamic("func()")])
        p.add_function(b, types=["*impl"])
        p.add_function(handler)
        p.add_function(impl)
        p.add_type("*impl", {"Get": impl.name})
        p.add_interface("I", ["Get"])
        return p, [init, main]

    def test_deterministic(self):
        p, roots = self.build()
        first, second = analyze(p, roots), analyze(p, roots)
        assert list(first) == list(second)
        assert first.edges == second.edges

    def test_root_order_does_not_change_the_result(self):
        p, roots = self.build()
        forward, backward = analyze(p, roots), analyze(p, list(reversed(roots)))
        assert set(forward) == set(backward)
        assert set(forward.edges) == set(backward.edges)
        assert forward.called == backward.called

    def test_called_is_subset_of_reachable(self):
        p, roots = self.build()
        r = analyze(p, roots)
        assert r.called <= set(r)
