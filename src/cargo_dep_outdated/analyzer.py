"""Core analyzer that orchestrates a staleness report run.

Purpose
-------
Run the report pipeline: resolve the scope, classify every in-scope package
against the registry index, probe a relaxed resolution, diff the probe
against the lock, and build the report with its exit code.

Contents
--------
* :class:`RunConfig` - Options of one report run
* :func:`run` / :func:`run_async` - Pipeline over explicit collaborators
* :class:`Analyzer` - Stateful analyzer wired to the Cargo collaborators
* :func:`analyze_workspace` - Main API function for a Cargo workspace

System Role
-----------
The central component that coordinates all other modules to produce
the final report. This is the main entry point for the library.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .cargo_resolver import DEFAULT_CARGO, CargoResolver
from .classifier import (
    DEFAULT_CONCURRENCY,
    DEFAULT_TIMEOUT,
    CancellationFlag,
    PackageIndex,
    VersionCache,
    VersionClassifier,
)
from .diff import diff
from .errors import EmptyScope, RunCancelled
from .graph import DependencyGraph
from .index_client import DEFAULT_INDEX_URL, CratesIndexClient
from .lockfile import parse_workspace
from .models import ExitCodePolicy, PackageId, ScopeFilter, SortKey
from .probe import DependencyResolver, probe
from .report import RenderedReport, build_report, exit_status
from .scope import resolve_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Options of one report run.

    Attributes:
        aggressive: Probe towards the newest published versions instead of
            the newest compatible ones.
        show_all: Report up-to-date packages too.
        sort_key: Row order of the report.
        exit_code_policy: Exit codes per outcome.
        timeout: Seconds allowed per index query.
        concurrency: Maximum simultaneous index queries.
    """

    aggressive: bool = False
    show_all: bool = False
    sort_key: SortKey = SortKey.NAME
    exit_code_policy: ExitCodePolicy = field(default_factory=ExitCodePolicy)
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY


def _check_cancelled(cancel: CancellationFlag | None, stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise RunCancelled(f"Report run cancelled before {stage}")


async def run_async(
    workspace_roots: Iterable[PackageId],
    graph: DependencyGraph,
    scope_filter: ScopeFilter | None,
    index: PackageIndex,
    resolver: DependencyResolver,
    config: RunConfig | None = None,
    cancel: CancellationFlag | None = None,
) -> tuple[RenderedReport, int]:
    """Produce the staleness report for ``graph``.

    Every run uses a fresh version cache, so two runs over unchanged inputs
    return identical reports.

    Args:
        workspace_roots: Workspace member packages.
        graph: The locked dependency graph.
        scope_filter: User filters, None for no filtering.
        index: Registry index collaborator.
        resolver: External resolver used for the probe.
        config: Run options; defaults when None.
        cancel: Flag polled between stages and before index lookups.

    Returns:
        The rendered report and its exit code.

    Raises:
        EmptyScope: If the filters leave nothing to report.
        RunCancelled: If ``cancel`` was set during the run.
    """
    config = config or RunConfig()
    scope = resolve_scope(graph, workspace_roots, scope_filter)

    _check_cancelled(cancel, "classification")
    classifier = VersionClassifier(
        index=index,
        cache=VersionCache(),
        timeout=config.timeout,
        concurrency=config.concurrency,
    )
    packages = []
    for package_id in scope:
        node = graph.node(package_id)
        packages.append((package_id, node.requirement if node is not None else None))
    classified = await classifier.classify_many_async(packages, cancel=cancel)

    _check_cancelled(cancel, "the probe resolution")
    outcome = await asyncio.to_thread(
        probe,
        graph,
        scope,
        classified,
        resolver,
        aggressive=config.aggressive,
    )

    _check_cancelled(cancel, "the diff")
    records = diff(
        graph,
        scope,
        classified,
        outcome,
        aggressive=config.aggressive,
        show_all=config.show_all,
    )
    report = build_report(records, config.sort_key)
    code = exit_status(report.records, config.exit_code_policy)
    logger.info("Report has %d records, exit code %d", len(report.records), code)
    return report, code


def run(
    workspace_roots: Iterable[PackageId],
    graph: DependencyGraph,
    scope_filter: ScopeFilter | None,
    index: PackageIndex,
    resolver: DependencyResolver,
    config: RunConfig | None = None,
    cancel: CancellationFlag | None = None,
) -> tuple[RenderedReport, int]:
    """Synchronous wrapper for :func:`run_async`."""
    return asyncio.run(run_async(workspace_roots, graph, scope_filter, index, resolver, config, cancel))


def roots_by_name(workspace_roots: Iterable[PackageId], names: Iterable[str]) -> frozenset[PackageId]:
    """Select the workspace members called ``names``.

    Raises:
        EmptyScope: If a name matches no workspace member.
    """
    roots = list(workspace_roots)
    selected: set[PackageId] = set()
    for name in names:
        matches = [root for root in roots if root.name == name]
        if not matches:
            raise EmptyScope(f"{name!r} is not a workspace member")
        selected.update(matches)
    return frozenset(selected)


@dataclass
class Analyzer:
    """Stateful analyzer for Cargo workspaces.

    Attributes:
        config: Run options.
        index_url: Base URL of the sparse registry index.
        cargo: The cargo executable used for the probe resolution.
    """

    config: RunConfig = field(default_factory=RunConfig)
    index_url: str = DEFAULT_INDEX_URL
    cargo: str = DEFAULT_CARGO

    def __post_init__(self) -> None:
        """Validate the analyzer configuration."""
        if self.config.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.config.timeout}")
        if self.config.concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {self.config.concurrency}")

    async def analyze_async(
        self,
        manifest_path: Path | str,
        scope_filter: ScopeFilter | None = None,
        cancel: CancellationFlag | None = None,
    ) -> tuple[RenderedReport, int]:
        """Analyze the workspace at ``manifest_path`` asynchronously."""
        path = Path(manifest_path)
        logger.info("Analyzing %s", path)

        workspace_roots, graph = parse_workspace(path)
        logger.info("Locked graph has %d packages", len(graph))

        resolver = CargoResolver(path, cargo=self.cargo)
        async with CratesIndexClient(self.index_url, timeout=self.config.timeout) as index:
            return await run_async(workspace_roots, graph, scope_filter, index, resolver, self.config, cancel)

    def analyze(
        self,
        manifest_path: Path | str,
        scope_filter: ScopeFilter | None = None,
    ) -> tuple[RenderedReport, int]:
        """Synchronous wrapper for analyze_async.

        Args:
            manifest_path: A Cargo.toml or the directory containing it.
            scope_filter: User filters, None for no filtering.

        Returns:
            The rendered report and its exit code.
        """
        return asyncio.run(self.analyze_async(manifest_path, scope_filter))


def analyze_workspace(
    manifest_path: Path | str,
    *,
    scope_filter: ScopeFilter | None = None,
    config: RunConfig | None = None,
    index_url: str = DEFAULT_INDEX_URL,
    cargo: str = DEFAULT_CARGO,
) -> tuple[RenderedReport, int]:
    """Report the outdated dependencies of a Cargo workspace.

    This is the main API function for the library.

    Args:
        manifest_path: A Cargo.toml or the directory containing it.
        scope_filter: User filters, None for no filtering.
        config: Run options; defaults when None.
        index_url: Base URL of the sparse registry index.
        cargo: The cargo executable.

    Returns:
        The rendered report and its exit code.

    Example:
        >>> report, code = analyze_workspace("Cargo.toml")  # doctest: +SKIP
        >>> print(report.text)  # doctest: +SKIP
    """
    analyzer = Analyzer(config=config or RunConfig(), index_url=index_url, cargo=cargo)
    return analyzer.analyze(manifest_path, scope_filter)


__all__ = [
    "Analyzer",
    "RunConfig",
    "analyze_workspace",
    "roots_by_name",
    "run",
    "run_async",
]
