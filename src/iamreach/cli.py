"""CLI entry point for iamreach."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from iamreach import __version__
from iamreach.analysis.conventions import DEFAULT_GENERATIONS, load_conventions
from iamreach.analysis.permissions import PermissionMap
from iamreach.errors import IamReachError
from iamreach.scanner import ACTION_RE, ScanOptions, scan

log = logging.getLogger("iamreach")

EPILOG = """\b
Examples:
  iamreach program.json
  iamreach --sdk-calls program.json
  iamreach --why ssm:GetParameters program.json
"""


def _check_action(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is not None and not ACTION_RE.match(value):
        raise click.BadParameter(
            "must be an IAM action in format 'service:method', for example 'ssm:GetParameter'"
        )
    return value


@click.command(epilog=EPILOG)
@click.argument(
    "programs", nargs=-1, required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--test", "include_tests", is_flag=True, default=False,
              help="Include implicit test packages and executables.")
@click.option("--tags", default="",
              help="Comma-separated list of extra build tags.")
@click.option("--reflection", is_flag=True, default=False,
              help="Include calls that are only reachable through reflection (false positive prone).")
@click.option("--sdk-calls", is_flag=True, default=False,
              help="Print SDK calls instead of IAM actions.")
@click.option("--why", default=None, metavar="ACTION", callback=_check_action,
              help="Show a call path to an SDK call that requires a certain permission.")
@click.option("--dataset", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="Permission dataset to use instead of the bundled one.")
@click.option("--conventions", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="YAML file with additional SDK naming conventions.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose logging.")
@click.version_option(version=__version__)
def main(
    programs: tuple[Path, ...],
    include_tests: bool,
    tags: str,
    reflection: bool,
    sdk_calls: bool,
    why: str | None,
    dataset: Path | None,
    conventions: Path | None,
    verbose: bool,
) -> None:
    """Find the AWS IAM actions a Go program using the AWS SDK needs.

    PROGRAMS are program model documents (JSON or YAML) describing the
    whole program: functions, call sites and type facts.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s %(levelname)s: %(message)s",
    )

    options = ScanOptions(
        include_tests=include_tests,
        tags=[t.strip() for t in tags.split(",") if t.strip()],
        include_address_taken=reflection,
        sdk_calls=sdk_calls,
        why=why,
    )

    try:
        generations = load_conventions(conventions) if conventions else DEFAULT_GENERATIONS
        permission_map = PermissionMap.from_file(dataset) if dataset else None
        result = scan(
            list(programs),
            options,
            permission_map=permission_map,
            generations=generations,
        )
    except IamReachError as exc:
        log.debug("Scan failed", exc_info=True)
        click.echo(f"iamreach: {exc}", err=True)
        sys.exit(1)

    for line in result.lines:
        click.echo(line)


if __name__ == "__main__":
    main()
