"""Analysis package for iamreach.

Provides:
    analyze(program, roots) -> ReachableSet
    CallClassifier(program).classify_all(reachable) -> list[ClassifiedCall]
    PathFinder(reachable).shortest_path(target) -> list[CallEdge] | None
    load_bundled_map() -> PermissionMap
"""

from __future__ import annotations

from iamreach.analysis.classifier import CallClassifier, ClassifiedCall
from iamreach.analysis.paths import PathFinder, format_path
from iamreach.analysis.permissions import PermissionMap, load_bundled_map
from iamreach.analysis.reachability import ReachableSet, analyze

__all__ = [
    "CallClassifier",
    "ClassifiedCall",
    "PathFinder",
    "PermissionMap",
    "ReachableSet",
    "analyze",
    "format_path",
    "load_bundled_map",
]
