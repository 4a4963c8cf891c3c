"""Command line interface.

Contents
--------
* :func:`cli` – click group
* ``outdated`` – report outdated dependencies of a Cargo workspace
* ``config`` – show the merged configuration
* ``info`` – show distribution metadata
* :func:`main` – console script entry point
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

import click

from . import __init__conf__
from .analyzer import Analyzer, RunConfig, roots_by_name
from .config import get_outdated_settings
from .config_show import display_config
from .errors import OutdatedError
from .lockfile import parse_workspace
from .models import ExitCodePolicy, PackageId, ScopeFilter, SortKey
from .report import report_to_dict, write_report_json

logger = logging.getLogger(__name__)

EXIT_FATAL = 2


def _split_names(values: Iterable[str]) -> frozenset[str]:
    """Accept both repeated options and comma separated lists."""
    return frozenset(name.strip() for value in values for name in value.split(",") if name.strip())


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__init__conf__.version, prog_name=__init__conf__.shell_command)
def cli() -> None:
    """Report outdated dependencies of Cargo workspaces."""


@cli.command()
@click.option("-m", "--manifest-path", type=click.Path(exists=True), default=".", show_default=True, help="Cargo.toml or its directory.")
@click.option("-r", "--root", "roots", multiple=True, help="Workspace member(s) to start from.")
@click.option("-p", "--packages", multiple=True, help="Only report these packages.")
@click.option("-x", "--exclude", multiple=True, help="Never report these packages.")
@click.option("-d", "--depth", type=click.IntRange(min=0), default=None, help="Dependency depth to report (0 = direct only).")
@click.option("-R", "--root-deps-only", is_flag=True, help="Only report direct dependencies (same as --depth 0).")
@click.option("-a", "--aggressive", is_flag=True, default=None, help="Probe towards the newest published versions.")
@click.option("--show-all", is_flag=True, default=None, help="Report up-to-date packages too.")
@click.option("--sort", "sort_key", type=click.Choice([key.value for key in SortKey]), default=None, help="Row order.")
@click.option("--exit-code", type=int, default=None, help="Exit code when anything is outdated.")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text", show_default=True)
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None, help="Write the JSON report to this file.")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity.")
@click.pass_context
def outdated(
    ctx: click.Context,
    manifest_path: str,
    roots: tuple[str, ...],
    packages: tuple[str, ...],
    exclude: tuple[str, ...],
    depth: int | None,
    root_deps_only: bool,
    aggressive: bool | None,
    show_all: bool | None,
    sort_key: str | None,
    exit_code: int | None,
    output_format: str,
    output: str | None,
    verbose: int,
) -> None:
    """Report outdated dependencies of the workspace at MANIFEST_PATH."""
    _configure_logging(verbose)
    settings = get_outdated_settings()

    policy = settings.exit_code_policy
    if exit_code is not None:
        policy = ExitCodePolicy(compatible=exit_code, incompatible=exit_code)
    config = RunConfig(
        aggressive=settings.aggressive if aggressive is None else aggressive,
        show_all=settings.show_all if show_all is None else show_all,
        sort_key=SortKey(sort_key) if sort_key else settings.sort_key,
        exit_code_policy=policy,
        timeout=settings.timeout,
        concurrency=settings.concurrency,
    )
    if root_deps_only:
        depth = 0
    elif depth is None:
        depth = settings.depth

    try:
        selected_roots: frozenset[PackageId] = frozenset()
        if roots:
            workspace_roots, _ = parse_workspace(manifest_path)
            selected_roots = roots_by_name(workspace_roots, _split_names(roots))
        scope_filter = ScopeFilter(
            roots=selected_roots,
            include=_split_names(packages),
            exclude=_split_names(exclude),
            depth=depth,
        )
        analyzer = Analyzer(config=config, index_url=settings.index_url, cargo=settings.cargo)
        report, code = analyzer.analyze(manifest_path, scope_filter)
    except OutdatedError as exc:
        click.echo(f"error: {exc}", err=True)
        ctx.exit(EXIT_FATAL)

    if output:
        write_report_json(report, output, exit_code=code)
    if output_format == "json":
        click.echo(json.dumps(report_to_dict(report, exit_code=code), indent=2))
    else:
        click.echo(report.text)
    ctx.exit(code)


@cli.command("config")
@click.option("--format", "output_format", type=click.Choice(["human", "json"]), default="human", show_default=True)
@click.option("--section", default=None, help="Only show this section.")
def config_command(output_format: str, section: str | None) -> None:
    """Show the merged configuration."""
    display_config(format=output_format, section=section)


@cli.command()
def info() -> None:
    """Show distribution metadata."""
    __init__conf__.print_info()


def main() -> None:
    """Console script entry point."""
    cli(prog_name=__init__conf__.shell_command)


__all__ = [
    "cli",
    "main",
]
