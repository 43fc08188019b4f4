"""Program facts as plain frozen dataclasses: functions, call sites, call edges."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_NAME_NOISE_RE = re.compile(r"[\(\)\*]+")


class CallKind(str, Enum):
    STATIC = "static"      # callee known at compile time
    DYNAMIC = "dynamic"    # call through a function value
    VIRTUAL = "virtual"    # call through an interface method


class SiteKind(str, Enum):
    """How a call instruction names its callee in the program model."""
    STATIC = "static"
    DYNAMIC = "dynamic"
    INVOKE = "invoke"


class SiteMode(str, Enum):
    CALL = "call"
    GO = "go"
    DEFER = "defer"


# Synthetic functions that must survive synthetic-node removal
PACKAGE_INITIALIZER = "package initializer"


@dataclass(frozen=True)
class Position:
    filename: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        return f"{self.filename or '?'}:{self.line}:{self.column}"


@dataclass(frozen=True)
class FunctionNode:
    name: str                       # "(*example.com/svc.Client).Get"
    short_name: str                 # "Get"
    package_path: str = ""          # "example.com/svc"
    package_name: str = ""          # "svc"
    position: Position = field(default_factory=Position)
    synthetic: str = ""             # "" for source functions
    origin: str | None = None       # generic origin of an instantiation
    parent: str | None = None       # enclosing function of a closure
    receiver: str | None = None     # method receiver type
    signature: str = ""

    @property
    def exported(self) -> bool:
        return self.short_name[:1].isupper()

    @property
    def is_method(self) -> bool:
        return self.receiver is not None

    @property
    def clean_name(self) -> str:
        """Qualified name without pointer/receiver punctuation.

        ``(*github.com/aws/aws-sdk-go-v2/service/ssm.Client).GetParameter``
        becomes ``github.com/aws/aws-sdk-go-v2/service/ssm.Client.GetParameter``.
        """
        return _NAME_NOISE_RE.sub("", self.name)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class CallSite:
    """A call instruction inside a function body."""
    kind: SiteKind
    position: Position = field(default_factory=Position)
    mode: SiteMode = SiteMode.CALL
    callee: str | None = None       # static, or dynamic resolved by the builder
    signature: str = ""             # unresolved dynamic call
    interface: str | None = None    # invoke
    method: str | None = None       # invoke


@dataclass(frozen=True)
class CallEdge:
    caller: FunctionNode
    callee: FunctionNode
    kind: CallKind
    site: CallSite | None = None    # None for edges added by synthetic-node removal

    def description(self) -> str:
        """Human readable dispatch kind, e.g. ``static method call``."""
        if self.site is None:
            return "synthetic call"
        prefix = ""
        if self.site.mode is SiteMode.GO:
            prefix = "concurrent "
        elif self.site.mode is SiteMode.DEFER:
            prefix = "deferred "
        if self.kind is CallKind.VIRTUAL:
            return prefix + "dynamic method call"
        if self.kind is CallKind.DYNAMIC:
            return prefix + "dynamic function call"
        if self.callee.is_method:
            return prefix + "static method call"
        return prefix + "static function call"
