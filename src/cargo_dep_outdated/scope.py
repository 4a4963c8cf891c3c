"""Scope resolution: which packages end up in the report.

Purpose
-------
Apply the user's root, include, exclude and depth filters to the locked
graph and return the set of packages to classify and report.

Contents
--------
* :class:`Scope` - Set of in-scope packages plus roots and reach data
* :func:`resolve_scope` - Compute the scope for a graph and filter
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from .errors import EmptyScope
from .graph import DependencyGraph
from .models import PackageId, Reach, ScopeFilter

logger = logging.getLogger(__name__)


def _empty_reach() -> dict[PackageId, Reach]:
    """Return an empty reach mapping for dataclass defaults."""
    return {}


@dataclass(frozen=True, slots=True)
class Scope:
    """The packages to report, with the roots they were reached from.

    Behaves like a read-only set of :class:`PackageId`.

    Attributes:
        packages: In-scope packages.
        roots: Roots the traversal started from.
        reach: Depth and shortest path of every in-scope package.
    """

    packages: frozenset[PackageId]
    roots: tuple[PackageId, ...] = ()
    reach: Mapping[PackageId, Reach] = field(default_factory=_empty_reach)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self.packages

    def __iter__(self) -> Iterator[PackageId]:
        return iter(sorted(self.packages))

    def __len__(self) -> int:
        return len(self.packages)

    def path_to(self, package_id: PackageId) -> tuple[PackageId, ...]:
        """Return the shortest root path to ``package_id`` (just itself if unknown)."""
        found = self.reach.get(package_id)
        return found.path if found is not None else (package_id,)

    def is_direct(self, package_id: PackageId) -> bool:
        """Return True when a root declares ``package_id`` directly."""
        found = self.reach.get(package_id)
        return found is not None and found.depth == 1


def _select_roots(
    graph: DependencyGraph,
    workspace_roots: Iterable[PackageId],
    scope_filter: ScopeFilter,
) -> tuple[PackageId, ...]:
    requested = scope_filter.roots or frozenset(workspace_roots)
    roots: list[PackageId] = []
    for root in sorted(requested):
        if root in graph:
            roots.append(root)
        else:
            logger.warning("Root %s is not part of the dependency graph; ignoring it", root)
    return tuple(roots)


def resolve_scope(
    graph: DependencyGraph,
    workspace_roots: Iterable[PackageId],
    scope_filter: ScopeFilter | None = None,
) -> Scope:
    """Compute the packages that must be reported.

    Starts from ``scope_filter.roots`` (or all workspace roots), takes the
    breadth-first closure bounded by ``scope_filter.depth``, drops workspace
    members and excluded names, and intersects with ``include`` when given.
    Included names that match nothing are silently dropped.

    Args:
        graph: The locked dependency graph.
        workspace_roots: Workspace member packages.
        scope_filter: User filters; defaults to no filtering.

    Returns:
        The resolved scope.

    Raises:
        EmptyScope: If nothing is left to report.
    """
    scope_filter = scope_filter or ScopeFilter()
    roots = _select_roots(graph, workspace_roots, scope_filter)
    if not roots:
        raise EmptyScope("no root package found in the dependency graph")

    max_depth = None if scope_filter.depth is None else scope_filter.depth + 1
    closure = graph.transitive_closure(roots, max_depth=max_depth)

    selected: set[PackageId] = set()
    for pid in closure:
        node = graph.node(pid)
        if node is None or node.is_workspace_member or pid in roots:
            continue
        if pid.name in scope_filter.exclude:
            continue
        if scope_filter.include and pid.name not in scope_filter.include:
            continue
        selected.add(pid)

    if not selected:
        raise EmptyScope()

    logger.info("%d packages in scope from %d roots", len(selected), len(roots))
    return Scope(
        packages=frozenset(selected),
        roots=roots,
        reach={pid: closure[pid] for pid in selected},
    )


__all__ = [
    "Scope",
    "resolve_scope",
]
