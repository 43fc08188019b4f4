"""Errors raised by the analysis pipeline.

The core raises these; only the CLI turns them into an exit status.
"""

from __future__ import annotations


class IamReachError(Exception):
    """Base class for every fatal condition the tool reports."""


# ── Input errors ─────────────────────────────────────────────────────────


class ProgramLoadError(IamReachError):
    """The program model could not be read or is malformed."""


class NoEntryPointsError(IamReachError):
    """No main package provides an init/main root."""


class InvalidActionError(IamReachError):
    """A permission identifier argument is not in ``service:Action`` form."""


class DatasetError(IamReachError):
    """The permission dataset could not be read or is malformed."""


class ConventionsError(IamReachError):
    """An API naming-conventions file could not be read or is malformed."""


# ── Empty results ────────────────────────────────────────────────────────


class NoPrivilegedCallsError(IamReachError):
    """No reachable function is a privileged SDK call."""


class NoPermissionsError(IamReachError):
    """SDK calls were found but none of them needs a grantable permission."""


class UnknownActionError(IamReachError):
    """No SDK operation in the dataset requires the requested action."""


class NoPathError(IamReachError):
    """The action resolves to SDK calls but none has a concrete call path."""
