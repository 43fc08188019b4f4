"""Program model: the whole-program snapshot the analysis reads.

Provides:
    load_program(paths, tags=..., include_tests=...) -> ProgramModel
"""

from __future__ import annotations

from iamreach.model.nodes import CallEdge, CallKind, CallSite, FunctionNode, Position
from iamreach.model.program import ProgramModel, build_program, load_program

__all__ = [
    "CallEdge",
    "CallKind",
    "CallSite",
    "FunctionNode",
    "Position",
    "ProgramModel",
    "build_program",
    "load_program",
]
