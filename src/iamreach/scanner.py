"""Unified scanner: program model -> reachability -> SDK calls -> permissions.

Usage:
    from pathlib import Path
    from iamreach.scanner import ScanOptions, scan

    result = scan([Path("program.json")], ScanOptions())
    print("\\n".join(result.lines))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field

from iamreach.analysis.classifier import CallClassifier, ClassifiedCall
from iamreach.analysis.conventions import DEFAULT_GENERATIONS, ApiGeneration
from iamreach.analysis.paths import PathFinder, format_path
from iamreach.analysis.permissions import PermissionMap, load_bundled_map
from iamreach.analysis.reachability import ReachableSet, analyze
from iamreach.errors import (
    InvalidActionError,
    NoEntryPointsError,
    NoPathError,
    NoPermissionsError,
    NoPrivilegedCallsError,
    UnknownActionError,
)
from iamreach.model.nodes import CallEdge
from iamreach.model.program import ProgramModel, load_program

log = logging.getLogger(__name__)

ACTION_RE = re.compile(r"^[A-Za-z0-9-]+:[A-Za-z0-9]+$")


class ScanOptions(BaseModel):
    include_tests: bool = False
    tags: list[str] = Field(default_factory=list)
    include_address_taken: bool = False     # calls reachable only via values/reflection
    sdk_calls: bool = False                 # print SDK operations, not permissions
    why: str | None = None                  # explain this permission


@dataclass
class ScanResult:
    """What one run found, plus the lines the selected mode prints."""
    program: ProgramModel
    reachable: ReachableSet
    calls: list[ClassifiedCall] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
    explanation: list[CallEdge] | None = None
    lines: list[str] = field(default_factory=list)


def validate_action(action: str) -> str:
    if not ACTION_RE.match(action):
        raise InvalidActionError(
            f"{action!r} is not an IAM action; use 'service:Action', for example 'ssm:GetParameter'"
        )
    return action


def scan(
    paths: list[Path],
    options: ScanOptions,
    *,
    permission_map: PermissionMap | None = None,
    generations: tuple[ApiGeneration, ...] = DEFAULT_GENERATIONS,
) -> ScanResult:
    """Run the selected mode over the program models in ``paths``."""
    if options.why:
        validate_action(options.why)

    program = load_program(paths, tags=options.tags, include_tests=options.include_tests)
    reachable = analyze_program(program)
    classifier = CallClassifier(program, generations)
    result = ScanResult(program=program, reachable=reachable)

    # Only the plain SDK call listing works without the permission dataset
    if permission_map is None and (options.why or not options.sdk_calls):
        permission_map = load_bundled_map()

    if options.why:
        path = explain(options.why, reachable, classifier, permission_map)
        result.explanation = path
        result.lines = format_path(path).splitlines()
        return result

    result.calls = find_sdk_calls(reachable, classifier, options.include_address_taken)
    if options.sdk_calls:
        result.lines = [call.operation for call in result.calls]
        return result

    result.permissions = resolve_permissions(result.calls, permission_map)
    result.lines = list(result.permissions)
    return result


def analyze_program(program: ProgramModel) -> ReachableSet:
    roots = program.roots()
    if not roots:
        raise NoEntryPointsError("no main packages: the program has no init/main entry points")
    return analyze(program, roots)


def find_sdk_calls(
    reachable: ReachableSet,
    classifier: CallClassifier,
    include_address_taken: bool = False,
) -> list[ClassifiedCall]:
    """SDK calls among the reachable functions, in discovery order."""
    candidates = []
    for fn in reachable:
        # Only reachable through a function value or reflection
        if not include_address_taken and not reachable.has_call_path(fn):
            continue
        candidates.append(fn)

    calls = classifier.classify_all(candidates)
    if not calls:
        raise NoPrivilegedCallsError("found no active use of the AWS API via the AWS SDK")
    log.info("Found %d SDK calls", len(calls))
    return calls


def resolve_permissions(calls: list[ClassifiedCall], permission_map: PermissionMap) -> list[str]:
    permissions: list[str] = []
    for call in calls:
        actions = permission_map.to_permissions(call.operation)
        if not actions:
            log.debug("%s needs no IAM permission", call.operation)
        permissions.extend(actions)
    if not permissions:
        # Some API calls need no IAM permission at all
        raise NoPermissionsError("found no needed AWS IAM permissions")
    return permissions


def explain(
    action: str,
    reachable: ReachableSet,
    classifier: CallClassifier,
    permission_map: PermissionMap,
) -> list[CallEdge]:
    """Shortest call path to any SDK call that needs ``action``."""
    operations = permission_map.to_operations(action)
    if not operations:
        raise UnknownActionError(
            f"didn't find any SDK method that requires the action {action}. Are you sure it exists?"
        )

    finder = PathFinder(reachable)
    for operation in operations:
        for name in classifier.candidate_names(operation):
            path = finder.why_reachable(name)
            if path is not None:
                log.debug("%s explained through %s", action, name)
                return path
    raise NoPathError(
        f"no call path found that requires {action}. It might only be reachable via reflection"
    )
