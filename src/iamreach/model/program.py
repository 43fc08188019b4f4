"""ProgramModel: read-only query interface over a whole-program snapshot.

Usage:
    from pathlib import Path
    from iamreach.model.program import load_program

    program = load_program([Path("program.json")], tags=["integration"])
    roots = program.roots()
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from iamreach.errors import ProgramLoadError
from iamreach.model.nodes import (
    CallSite,
    FunctionNode,
    PACKAGE_INITIALIZER,
    Position,
    SiteKind,
    SiteMode,
)
from iamreach.model.schema import (
    CallSiteDoc,
    FunctionDoc,
    PackageDoc,
    PositionDoc,
    ProgramDoc,
)

log = logging.getLogger(__name__)


class ProgramModel:
    """Function nodes, call sites and type facts for one analysis run."""

    def __init__(self) -> None:
        self._functions: dict[str, FunctionNode] = {}
        self._sites: dict[str, list[CallSite]] = {}
        self._address_taken: dict[str, list[str]] = {}
        self._types_made: dict[str, list[str]] = {}
        self._method_sets: dict[str, dict[str, str]] = {}
        self._interfaces: dict[str, frozenset[str]] = {}
        self._roots: list[FunctionNode] = []

    # ── Construction ─────────────────────────────────────────────────────

    def add_function(
        self,
        fn: FunctionNode,
        calls: Iterable[CallSite] = (),
        address_taken: Iterable[str] = (),
        types: Iterable[str] = (),
    ) -> None:
        """Add a function with its body facts (first add wins on conflict)."""
        if fn.name in self._functions:
            log.debug("Duplicate function %s ignored", fn.name)
            return
        self._functions[fn.name] = fn
        self._sites[fn.name] = list(calls)
        self._address_taken[fn.name] = list(address_taken)
        self._types_made[fn.name] = list(types)

    def add_type(self, name: str, methods: dict[str, str]) -> None:
        self._method_sets.setdefault(name, dict(methods))

    def add_interface(self, name: str, methods: Iterable[str]) -> None:
        self._interfaces.setdefault(name, frozenset(methods))

    def add_root(self, fn: FunctionNode) -> None:
        if fn not in self._roots:
            self._roots.append(fn)

    # ── Queries ──────────────────────────────────────────────────────────

    def functions(self) -> list[FunctionNode]:
        return list(self._functions.values())

    def function(self, name: str) -> FunctionNode | None:
        return self._functions.get(name)

    def call_sites(self, fn: FunctionNode) -> list[CallSite]:
        return self._sites.get(fn.name, [])

    def address_taken(self, fn: FunctionNode) -> list[FunctionNode]:
        """Functions whose value is taken (not called) inside ``fn``."""
        return [self._functions[n] for n in self._address_taken.get(fn.name, [])
                if n in self._functions]

    def instantiated_types(self, fn: FunctionNode) -> list[str]:
        """Concrete types allocated, converted or boxed into interfaces in ``fn``."""
        return self._types_made.get(fn.name, [])

    def method_set(self, type_name: str) -> dict[str, FunctionNode]:
        methods = self._method_sets.get(type_name, {})
        return {m: self._functions[f] for m, f in methods.items() if f in self._functions}

    def implements(self, type_name: str, interface: str) -> bool:
        required = self._interfaces.get(interface)
        if required is None:
            return False
        return required <= self._method_sets.get(type_name, {}).keys()

    def roots(self) -> list[FunctionNode]:
        """Entry functions: each main package's init, then main."""
        return list(self._roots)

    def __len__(self) -> int:
        return len(self._functions)


# ── Loading ──────────────────────────────────────────────────────────────


def read_program_doc(path: Path) -> ProgramDoc:
    """Parse one program model document (JSON, or YAML by extension)."""
    try:
        text = path.read_text()
        if path.suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
        return ProgramDoc.model_validate(raw or {})
    except OSError as exc:
        raise ProgramLoadError(f"cannot read program model {path}: {exc}") from exc
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ProgramLoadError(f"program model {path} is not valid JSON/YAML: {exc}") from exc
    except ValidationError as exc:
        raise ProgramLoadError(f"program model {path} is malformed:\n{exc}") from exc


def load_program(
    paths: list[Path],
    *,
    tags: list[str] | None = None,
    include_tests: bool = False,
) -> ProgramModel:
    """Load and merge program model documents into one ProgramModel.

    Args:
        paths: Documents written by the program model builder.
        tags: Selected build tags. Packages with build tags are only kept
              when one of their tags is selected.
        include_tests: Keep test-only packages (and their entry points).
    """
    docs = [read_program_doc(p) for p in paths]
    if not docs:
        raise ProgramLoadError("no program model given")
    return build_program(docs, tags=tags, include_tests=include_tests)


def build_program(
    docs: list[ProgramDoc],
    *,
    tags: list[str] | None = None,
    include_tests: bool = False,
) -> ProgramModel:
    selected_tags = set(tags or [])

    # Every name any document declares, selected or not
    declared: set[str] = set()
    for doc in docs:
        for pkg in doc.packages:
            declared.update(f.name for f in pkg.functions)
    interfaces: dict[str, frozenset[str]] = {}
    for doc in docs:
        for idoc in doc.interfaces:
            interfaces.setdefault(idoc.name, frozenset(idoc.methods))

    packages: list[PackageDoc] = []
    for doc in docs:
        for pkg in doc.packages:
            if pkg.test and not include_tests:
                log.debug("Skipping test package %s", pkg.path)
                continue
            if pkg.build_tags and not selected_tags.intersection(pkg.build_tags):
                log.debug("Skipping package %s (build tags %s)", pkg.path, pkg.build_tags)
                continue
            packages.append(pkg)

    kept = {f.name for pkg in packages for f in pkg.functions}
    program = ProgramModel()

    for pkg in packages:
        pkg_name = pkg.name or pkg.path.rsplit("/", 1)[-1]
        for fdoc in pkg.functions:
            fn = _function_node(fdoc, pkg.path, pkg_name)
            calls = [_call_site(site, fdoc.name, declared, kept, interfaces)
                     for site in fdoc.calls]
            addr = [n for n in fdoc.address_taken if _check_ref(n, fdoc.name, declared, kept)]
            program.add_function(
                fn,
                calls=[c for c in calls if c is not None],
                address_taken=addr,
                types=fdoc.types,
            )

    for doc in docs:
        for tdoc in doc.types:
            for method, fname in tdoc.methods.items():
                if fname not in declared:
                    raise ProgramLoadError(
                        f"type {tdoc.name} method {method} refers to unknown function {fname}"
                    )
            program.add_type(tdoc.name, tdoc.methods)
    for name, methods in interfaces.items():
        program.add_interface(name, methods)

    for pkg in packages:
        if not pkg.main:
            continue
        for entry in ("init", "main"):
            fn = _package_func(program, pkg, entry)
            if fn is not None:
                program.add_root(fn)

    log.info(
        "Program model loaded: %d packages, %d functions, %d roots",
        len(packages), len(program), len(program.roots()),
    )
    return program


def _function_node(fdoc: FunctionDoc, pkg_path: str, pkg_name: str) -> FunctionNode:
    return FunctionNode(
        name=fdoc.name,
        short_name=fdoc.short_name or _short_name(fdoc.name),
        package_path=pkg_path,
        package_name=pkg_name,
        position=_position(fdoc.position),
        synthetic=fdoc.synthetic,
        origin=fdoc.origin,
        parent=fdoc.parent,
        receiver=fdoc.receiver,
        signature=fdoc.signature,
    )


def _call_site(
    site: CallSiteDoc,
    caller: str,
    declared: set[str],
    kept: set[str],
    interfaces: dict[str, frozenset[str]],
) -> CallSite | None:
    if site.callee and not _check_ref(site.callee, caller, declared, kept):
        return None
    if site.kind == "invoke":
        # An unknown interface would never dispatch and hide real calls
        methods = interfaces.get(site.interface)
        if methods is None:
            raise ProgramLoadError(f"{caller} calls through unknown interface {site.interface}")
        if site.method not in methods:
            raise ProgramLoadError(
                f"{caller} calls {site.method}, which interface {site.interface} does not declare"
            )
    return CallSite(
        kind=SiteKind(site.kind),
        position=_position(site.position),
        mode=SiteMode(site.mode),
        callee=site.callee,
        signature=site.signature,
        interface=site.interface,
        method=site.method,
    )


def _check_ref(name: str, caller: str, declared: set[str], kept: set[str]) -> bool:
    """True when ``name`` is usable; raise if it is not declared anywhere."""
    if name not in declared:
        raise ProgramLoadError(f"{caller} refers to unknown function {name}")
    if name not in kept:
        log.debug("%s: reference to %s dropped (package not selected)", caller, name)
        return False
    return True


def _package_func(program: ProgramModel, pkg: PackageDoc, short: str) -> FunctionNode | None:
    for fdoc in pkg.functions:
        fn = program.function(fdoc.name)
        if fn is None or fn.short_name != short or fn.receiver or fn.parent:
            continue
        if short == "init" and fn.synthetic not in ("", PACKAGE_INITIALIZER):
            continue
        return fn
    return None


def _short_name(name: str) -> str:
    return name.rsplit(".", 1)[-1]


def _position(doc: PositionDoc) -> Position:
    return Position(filename=doc.file, line=doc.line, column=doc.column)
