"""Central extensibility point: naming conventions of each SDK generation.

A new SDK generation = a new ApiGeneration entry (or a YAML conventions file),
no classifier logic changes.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from iamreach.errors import ConventionsError

log = logging.getLogger(__name__)


class ApiGeneration(BaseModel, frozen=True):
    """How one SDK generation lays out its API operations.

    ``file_pattern`` and ``name_template`` are ``str.format`` templates with
    the fields ``function`` (declared function name), ``service`` (package
    name), ``Service`` (service name as capitalized in the dataset) and
    ``method`` (operation method).
    """
    name: str
    package_prefix: str
    file_pattern: str                                    # declaration file suffix
    name_suffix: str = ""                                # stripped from the function name
    excluded_prefixes: tuple[str, ...] = ()
    name_template: str                                   # fully qualified function name

    def matches_file(self, filename: str, function: str) -> bool:
        return filename.endswith(self.file_pattern.format(function=function))

    def method_name(self, function: str) -> str | None:
        """Operation method for ``function``, or None if it breaks the convention."""
        if self.name_suffix and not function.endswith(self.name_suffix):
            return None
        if any(function.startswith(p) for p in self.excluded_prefixes):
            return None
        if self.name_suffix:
            function = function[: -len(self.name_suffix)]
        return function or None

    def qualified_name(self, operation: str) -> str | None:
        """Fully qualified function name this generation uses for ``service.Method``."""
        service, sep, method = operation.partition(".")
        if not sep or not service or not method:
            return None
        return self.name_template.format(
            service=service.lower(), Service=service, method=method,
        )


SDK_V2 = ApiGeneration(
    name="v2",
    package_prefix="github.com/aws/aws-sdk-go-v2/service/",
    # The operation name is in the file name too
    file_pattern="/api_op_{function}.go",
    name_template="(*github.com/aws/aws-sdk-go-v2/service/{service}.Client).{method}",
)

SDK_V1 = ApiGeneration(
    name="v1",
    package_prefix="github.com/aws/aws-sdk-go/service/",
    # All v1 API calls live in api.go and carry a "Request" suffix
    file_pattern="/api.go",
    name_suffix="Request",
    excluded_prefixes=("new", "Set"),
    name_template="(*github.com/aws/aws-sdk-go/service/{service}.{Service}).{method}Request",
)

# Tried in order; the first generation that claims a function wins
DEFAULT_GENERATIONS: tuple[ApiGeneration, ...] = (SDK_V2, SDK_V1)


class ConventionsFile(BaseModel):
    generations: list[ApiGeneration] = Field(default_factory=list)
    replace_defaults: bool = False


def load_conventions(path: Path) -> tuple[ApiGeneration, ...]:
    """Load extra API generations from a YAML file.

    The file's generations are tried before the bundled ones unless
    ``replace_defaults`` is set, in which case only they are used.
    """
    try:
        raw = yaml.safe_load(path.read_text())
        conf = ConventionsFile.model_validate(raw or {})
    except OSError as exc:
        raise ConventionsError(f"cannot read conventions file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConventionsError(f"conventions file {path} is not valid YAML: {exc}") from exc
    except ValidationError as exc:
        raise ConventionsError(f"conventions file {path} is malformed:\n{exc}") from exc

    log.debug("Loaded %d API generations from %s", len(conf.generations), path)
    if conf.replace_defaults:
        return tuple(conf.generations)
    return tuple(conf.generations) + DEFAULT_GENERATIONS
