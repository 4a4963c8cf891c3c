"""Typed dependency graph built from a locked dependency set.

Purpose
-------
Turn the flat entries of a lock file into a navigable graph of
:class:`GraphNode` objects and answer the traversal questions the scope
resolver and diff engine ask.

Contents
--------
* :class:`DependencyRef` - A reference from one lock entry to another
* :class:`LockEntry` - One package as recorded in a lock file
* :class:`GraphNode` - A package with its edges and declared requirement
* :class:`DependencyGraph` - Mapping of PackageId to GraphNode
* :func:`build_graph` - Build a graph, validating every edge

System Role
-----------
Leaf of the engine. Both the locked graph and the probe graph are
instances of :class:`DependencyGraph`. Traversal is breadth-first with a
visited set, so cycles are harmless and reported paths are shortest.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from .errors import MalformedGraph
from .models import PackageId, Reach, SourceKind
from .semver import SemVer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DependencyRef:
    """Reference from a lock entry to one of its dependencies.

    Lock files only spell out the version (and source) when the bare name
    would be ambiguous.

    Attributes:
        name: Referenced package name.
        version: Referenced version, None when the name is unique.
        source: Referenced source kind, None when unambiguous.
    """

    name: str
    version: str | None = None
    source: SourceKind | None = None


def _empty_refs() -> tuple[DependencyRef, ...]:
    """Return an empty reference tuple for dataclass defaults."""
    return ()


@dataclass(frozen=True, slots=True)
class LockEntry:
    """One package recorded in a lock file.

    Attributes:
        name: Package name.
        version: Locked version string.
        source: Where the package comes from.
        dependencies: References to the packages it depends on.
        is_workspace_member: Whether the package belongs to the workspace.
    """

    name: str
    version: str
    source: SourceKind = SourceKind.REGISTRY
    dependencies: tuple[DependencyRef, ...] = field(default_factory=_empty_refs)
    is_workspace_member: bool = False


def _empty_id_set() -> set[PackageId]:
    """Return an empty PackageId set for dataclass defaults."""
    return set()


@dataclass(slots=True)
class GraphNode:
    """A package in one graph snapshot.

    Attributes:
        package_id: The package and its resolved version.
        requirement: Version requirement as written by a workspace dependent,
            None when no workspace manifest declares it.
        dependencies: Outgoing edges.
        dependents: Incoming edges.
        is_workspace_member: Whether the package belongs to the workspace.
    """

    package_id: PackageId
    requirement: str | None = None
    dependencies: set[PackageId] = field(default_factory=_empty_id_set)
    dependents: set[PackageId] = field(default_factory=_empty_id_set)
    is_workspace_member: bool = False

    @property
    def version(self) -> SemVer:
        return self.package_id.version


class DependencyGraph:
    """Resolved dependency set keyed by :class:`PackageId`.

    Invariant: every edge target is a key of the graph. Cycles are allowed.
    """

    def __init__(self, nodes: Mapping[PackageId, GraphNode] | None = None) -> None:
        self._nodes: dict[PackageId, GraphNode] = dict(nodes or {})

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._nodes

    def __iter__(self) -> Iterator[PackageId]:
        return iter(sorted(self._nodes))

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"DependencyGraph({len(self._nodes)} nodes)"

    def node(self, package_id: PackageId) -> GraphNode | None:
        """Return the node for ``package_id`` or None."""
        return self._nodes.get(package_id)

    def find(self, name: str, source: SourceKind | None = None) -> list[PackageId]:
        """Return every package with ``name`` (and ``source``), oldest first."""
        return sorted(
            pid for pid in self._nodes if pid.name == name and (source is None or pid.source == source)
        )

    def workspace_members(self) -> list[PackageId]:
        """Return the workspace member packages in order."""
        return sorted(pid for pid, node in self._nodes.items() if node.is_workspace_member)

    def direct_dependencies_of(self, root_ids: Iterable[PackageId]) -> set[PackageId]:
        """Return the union of the direct dependencies of ``root_ids``.

        Roots that are not part of the graph contribute nothing.
        """
        result: set[PackageId] = set()
        for root in root_ids:
            node = self._nodes.get(root)
            if node is not None:
                result.update(node.dependencies)
        return result

    def transitive_closure(
        self,
        root_ids: Iterable[PackageId],
        max_depth: int | None = None,
    ) -> dict[PackageId, Reach]:
        """Breadth-first closure of ``root_ids``.

        Args:
            root_ids: Starting packages; they appear in the result at depth 0.
            max_depth: Maximum number of edges from a root, None for no limit.

        Returns:
            Every reachable package with its depth and shortest path. When
            several shortest paths exist the one through the smallest
            package ids (in sorted order) wins, so results are reproducible.
        """
        reach: dict[PackageId, Reach] = {}
        queue: deque[PackageId] = deque()
        for root in sorted(set(root_ids)):
            if root in self._nodes:
                reach[root] = Reach(depth=0, path=(root,))
                queue.append(root)

        while queue:
            current = queue.popleft()
            current_reach = reach[current]
            if max_depth is not None and current_reach.depth >= max_depth:
                continue
            for dep in sorted(self._nodes[current].dependencies):
                if dep in reach:
                    continue
                reach[dep] = Reach(depth=current_reach.depth + 1, path=(*current_reach.path, dep))
                queue.append(dep)

        return reach


def _package_id(entry: LockEntry) -> PackageId:
    try:
        version = SemVer.parse(entry.version)
    except ValueError as exc:
        raise MalformedGraph(f"package {entry.name} has invalid version {entry.version!r}") from exc
    return PackageId(name=entry.name, source=entry.source, version=version)


def _resolve_ref(
    owner: PackageId,
    ref: DependencyRef,
    by_name: Mapping[str, list[PackageId]],
) -> PackageId:
    """Find the package a dependency reference points at."""
    candidates = by_name.get(ref.name, [])
    if ref.version is not None:
        try:
            wanted = SemVer.parse(ref.version)
        except ValueError as exc:
            raise MalformedGraph(f"{owner} references {ref.name} with invalid version {ref.version!r}") from exc
        candidates = [pid for pid in candidates if pid.version == wanted]
    if ref.source is not None:
        candidates = [pid for pid in candidates if pid.source == ref.source]

    if not candidates:
        raise MalformedGraph(f"{owner} depends on {ref.name} which is missing from the lock entries")
    if len(candidates) > 1:
        versions = ", ".join(str(pid.version) for pid in candidates)
        raise MalformedGraph(f"{owner} references {ref.name} ambiguously (candidates: {versions})")
    return candidates[0]


def build_graph(
    lock_entries: Iterable[LockEntry],
    manifest_requirements: Mapping[str, Mapping[str, str]] | None = None,
) -> DependencyGraph:
    """Build a :class:`DependencyGraph` from lock entries.

    Args:
        lock_entries: Every package of the resolved dependency set.
        manifest_requirements: Declared requirements, keyed by dependent
            package name and then dependency name.

    Returns:
        The validated graph.

    Raises:
        MalformedGraph: If an edge references a package absent from the
            entries, or a reference is ambiguous.
    """
    requirements = manifest_requirements or {}
    entries = list(lock_entries)

    nodes: dict[PackageId, GraphNode] = {}
    by_name: dict[str, list[PackageId]] = {}
    for entry in entries:
        pid = _package_id(entry)
        if pid in nodes:
            logger.debug("Duplicate lock entry for %s ignored", pid)
            continue
        nodes[pid] = GraphNode(package_id=pid, is_workspace_member=entry.is_workspace_member)
        by_name.setdefault(pid.name, []).append(pid)

    for entry in entries:
        owner = _package_id(entry)
        owner_node = nodes[owner]
        declared = requirements.get(owner.name, {})
        for ref in entry.dependencies:
            target = _resolve_ref(owner, ref, by_name)
            owner_node.dependencies.add(target)
            target_node = nodes[target]
            target_node.dependents.add(owner)
            if ref.name in declared and target_node.requirement is None:
                target_node.requirement = declared[ref.name]

    logger.debug("Built dependency graph with %d nodes", len(nodes))
    return DependencyGraph(nodes)


__all__ = [
    "DependencyGraph",
    "DependencyRef",
    "GraphNode",
    "LockEntry",
    "build_graph",
]
