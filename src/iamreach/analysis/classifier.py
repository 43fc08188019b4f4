"""Decide which reachable functions are SDK API operations.

Classification only uses static evidence: the declaring package, the
declaration file and the function name. It never drives reachability.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from iamreach.analysis.conventions import DEFAULT_GENERATIONS, ApiGeneration
from iamreach.model.nodes import FunctionNode
from iamreach.model.program import ProgramModel

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifiedCall:
    function: FunctionNode      # origin, never an instantiation
    operation: str              # canonical "service.Method"
    generation: str             # ApiGeneration.name


class CallClassifier:
    """Match functions against the naming conventions of each SDK generation."""

    def __init__(
        self,
        program: ProgramModel | None = None,
        generations: Iterable[ApiGeneration] = DEFAULT_GENERATIONS,
    ) -> None:
        self.program = program
        self.generations = tuple(generations)

    def normalize(self, fn: FunctionNode) -> FunctionNode | None:
        """Collapse instantiations to their origin; drop wrappers and closures."""
        if fn.synthetic:
            return None
        if fn.origin and self.program is not None:
            fn = self.program.function(fn.origin) or fn
        if fn.parent is not None:
            return None
        return fn

    def classify(self, fn: FunctionNode) -> ClassifiedCall | None:
        fn = self.normalize(fn)
        if fn is None:
            return None
        for gen in self.generations:
            if not fn.package_path.startswith(gen.package_prefix):
                continue
            if not gen.matches_file(fn.position.filename, fn.short_name):
                continue
            method = gen.method_name(fn.short_name)
            if method is None:
                continue
            # The package name is the service name
            return ClassifiedCall(
                function=fn,
                operation=f"{fn.package_name}.{method}",
                generation=gen.name,
            )
        return None

    def classify_all(self, functions: Iterable[FunctionNode]) -> list[ClassifiedCall]:
        """Classify in iteration order, one entry per origin function."""
        seen: set[FunctionNode] = set()
        calls: list[ClassifiedCall] = []
        for fn in functions:
            call = self.classify(fn)
            if call is None or call.function in seen:
                continue
            seen.add(call.function)
            calls.append(call)
        log.debug("Classified %d SDK calls", len(calls))
        return calls

    def candidate_names(self, operation: str) -> list[str]:
        """Fully qualified function names ``operation`` has in each generation.

        ``operation`` is ``Service.Method`` as spelled in the permission
        dataset, which keeps the capitalization v1 type names need.
        """
        names: list[str] = []
        for gen in self.generations:
            name = gen.qualified_name(operation)
            if name and name not in names:
                names.append(name)
        return names
