"""Bidirectional lookup between SDK operations and IAM actions.

The dataset maps ``Service.Method`` to the permissions that call needs::

    {"sdk_method_iam_mappings": {"SSM.GetParameter": [{"action": "ssm:GetParameter"}]}}

Both directions match case-insensitively on the exact name. When several
dataset keys differ only by case, an exact-case match wins, otherwise the
lexicographically first key.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from iamreach.errors import DatasetError

log = logging.getLogger(__name__)

BUNDLED_DATASET = Path(__file__).parent.parent / "data" / "map.json"


class PermissionRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: str
    resource_mappings: dict | None = None


class PermissionDataset(BaseModel):
    sdk_method_iam_mappings: dict[str, list[PermissionRecord]] = Field(default_factory=dict)


class PermissionMap:
    """Read-only operation <-> permission index, built once at load time."""

    def __init__(self, dataset: PermissionDataset) -> None:
        self._entries: dict[str, list[PermissionRecord]] = dict(dataset.sdk_method_iam_mappings)
        # dataset key -> distinct actions, record order
        self._actions: dict[str, tuple[str, ...]] = {}
        # lowercased operation -> candidate keys, lexicographic order
        by_operation: dict[str, list[str]] = defaultdict(list)
        # lowercased action -> operations, lexicographic order
        by_action: dict[str, list[str]] = defaultdict(list)

        for operation in sorted(self._entries):
            by_operation[operation.lower()].append(operation)
            actions = tuple(dict.fromkeys(r.action for r in self._entries[operation]))
            self._actions[operation] = actions
            for action in actions:
                ops = by_action[action.lower()]
                if operation not in ops:
                    ops.append(operation)

        self._by_operation = {k: tuple(v) for k, v in by_operation.items()}
        self._by_action = {k: tuple(v) for k, v in by_action.items()}

    @classmethod
    def from_dict(cls, raw: dict) -> PermissionMap:
        try:
            return cls(PermissionDataset.model_validate(raw))
        except ValidationError as exc:
            raise DatasetError(f"permission dataset is malformed:\n{exc}") from exc

    @classmethod
    def from_file(cls, path: Path) -> PermissionMap:
        try:
            raw = json.loads(path.read_text())
        except OSError as exc:
            raise DatasetError(f"cannot read permission dataset {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise DatasetError(f"permission dataset {path} is not valid JSON: {exc}") from exc
        return cls.from_dict(raw)

    def resolve_operation(self, operation: str) -> str | None:
        """Dataset key for ``operation``, applying the case tie-break."""
        candidates = self._by_operation.get(operation.lower())
        if not candidates:
            return None
        if operation in candidates:
            return operation
        return candidates[0]

    def to_permissions(self, operation: str) -> tuple[str, ...]:
        """Actions ``operation`` needs; () when it needs none or is unknown."""
        key = self.resolve_operation(operation)
        if key is None:
            return ()
        return self._actions[key]

    def to_operations(self, action: str) -> tuple[str, ...]:
        """Every dataset operation that needs ``action``."""
        return self._by_action.get(action.lower(), ())

    def operations(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, operation: object) -> bool:
        return isinstance(operation, str) and self.resolve_operation(operation) is not None

    def __len__(self) -> int:
        return len(self._entries)


# Module-level cache
_bundled_map: PermissionMap | None = None


def load_bundled_map() -> PermissionMap:
    """The dataset shipped with iamreach, parsed once per process."""
    global _bundled_map
    if _bundled_map is None:
        _bundled_map = PermissionMap.from_file(BUNDLED_DATASET)
        log.debug("Loaded bundled permission dataset: %d operations", len(_bundled_map))
    return _bundled_map
