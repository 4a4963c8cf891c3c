"""Domain models for dependency staleness analysis (dataclasses).

Purpose
-------
Define core data structures for the staleness engine domain layer.
These are pure dataclasses used for internal business logic.

For external data serialization, use the Pydantic schemas in schemas.py.

Contents
--------
* :class:`SourceKind` - Where a package comes from (registry, git, path)
* :class:`PackageId` - Package identity plus the version in one snapshot
* :class:`ClassifiedVersion` - Compatible and absolute latest for a package
* :class:`ScopeFilter` - User filters deciding which packages are reported
* :class:`Reach` - Distance and shortest path from a root
* :class:`RecordKind` - Direct, transitive or unresolvable
* :class:`StalenessRecord` - One row of the report
* :class:`SortKey` - Report ordering
* :class:`ExitCodePolicy` - Exit codes per staleness outcome

Data Flow Pattern
-----------------
Lock file → Pydantic (validate) → Dataclass (domain) → Pydantic (serialize) → Report
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .semver import SemVer


class SourceKind(str, Enum):
    """Origin of a package.

    Attributes:
        REGISTRY: Published on a package registry; the only kind with an index.
        GIT: Checked out from a git repository.
        PATH: Local path dependency, including workspace members.
    """

    REGISTRY = "registry"
    GIT = "git"
    PATH = "path"


@dataclass(frozen=True, slots=True, order=True)
class PackageId:
    """A package at a specific version within one graph snapshot.

    Identity across snapshots is ``(name, source)``; the version is what
    changes between the locked graph and the probe graph.

    Attributes:
        name: Package name as published.
        source: Where the package comes from.
        version: Resolved version in this snapshot.
    """

    name: str
    source: SourceKind
    version: SemVer

    @property
    def identity(self) -> tuple[str, SourceKind]:
        return (self.name, self.source)

    def __str__(self) -> str:
        return f"{self.name} {self.version}"


@dataclass(frozen=True, slots=True)
class ClassifiedVersion:
    """Outcome of classifying one package against the index.

    Attributes:
        current: The locked version.
        compatible_latest: Newest version matching the declared requirement,
            None when unknown.
        absolute_latest: Newest version overall, None when unknown.
        requirement_unsatisfiable: No published version matches the declared
            requirement at all.
        error: Why the index could not answer, None on success.
    """

    current: SemVer
    compatible_latest: SemVer | None = None
    absolute_latest: SemVer | None = None
    requirement_unsatisfiable: bool = False
    error: str | None = None

    @property
    def is_degraded(self) -> bool:
        return self.error is not None


def _empty_id_set() -> frozenset[PackageId]:
    """Return an empty PackageId set for dataclass defaults."""
    return frozenset()


def _empty_name_set() -> frozenset[str]:
    """Return an empty name set for dataclass defaults."""
    return frozenset()


@dataclass(frozen=True, slots=True)
class ScopeFilter:
    """User supplied restrictions on what gets reported.

    Attributes:
        roots: Workspace members to start from; empty means every member.
        include: Package names to restrict the report to; empty means all.
        exclude: Package names to leave out.
        depth: Maximum depth below the direct dependencies of a root
            (0 = direct dependencies only), None for no limit.
    """

    roots: frozenset[PackageId] = field(default_factory=_empty_id_set)
    include: frozenset[str] = field(default_factory=_empty_name_set)
    exclude: frozenset[str] = field(default_factory=_empty_name_set)
    depth: int | None = None

    def __post_init__(self) -> None:
        if self.depth is not None and self.depth < 0:
            raise ValueError(f"depth must not be negative, got {self.depth}")


@dataclass(frozen=True, slots=True)
class Reach:
    """How a package is reached from the roots.

    Attributes:
        depth: Number of edges from the nearest root (roots are 0).
        path: Shortest path from that root to the package, both inclusive.
    """

    depth: int
    path: tuple[PackageId, ...]


class RecordKind(str, Enum):
    """How a reported package relates to the roots.

    Attributes:
        DIRECT: Declared by an in-scope root.
        TRANSITIVE: Pulled in by another dependency.
        UNRESOLVABLE: The probe resolution failed for this package, so the
            values are per-package maxima that may not be jointly achievable.
    """

    DIRECT = "direct"
    TRANSITIVE = "transitive"
    UNRESOLVABLE = "unresolvable"


def _empty_notes() -> tuple[str, ...]:
    """Return an empty notes tuple for dataclass defaults."""
    return ()


@dataclass(frozen=True, slots=True)
class StalenessRecord:
    """One reportable package.

    Attributes:
        package_id: The locked package.
        current: The locked version.
        compatible_latest: Newest achievable version within the requirement.
        absolute_latest: Newest version ignoring the requirement.
        reached_via: Dependency path from a root to this package.
        kind: Direct, transitive or unresolvable.
        notes: Annotations for packages that could not be fully classified.
        incompatible: The newest published version lies outside the declared
            requirement.
        removed: The package no longer appears in the probe resolution.
    """

    package_id: PackageId
    current: SemVer
    compatible_latest: SemVer | None
    absolute_latest: SemVer | None
    reached_via: tuple[PackageId, ...]
    kind: RecordKind
    notes: tuple[str, ...] = field(default_factory=_empty_notes)
    incompatible: bool = False
    removed: bool = False

    @property
    def name(self) -> str:
        return self.package_id.name

    @property
    def is_outdated(self) -> bool:
        candidates = (self.compatible_latest, self.absolute_latest)
        return any(latest is not None and self.current < latest for latest in candidates)


class SortKey(str, Enum):
    """Report ordering.

    Attributes:
        NAME: Lexicographic by package name (default).
        MAGNITUDE: Largest version distance first.
    """

    NAME = "name"
    MAGNITUDE = "magnitude"


@dataclass(frozen=True, slots=True)
class ExitCodePolicy:
    """Process exit codes per staleness outcome.

    Attributes:
        up_to_date: Nothing is outdated.
        compatible: Outdated packages exist, all upgradable within requirements.
        incompatible: At least one package has a newer incompatible version.
    """

    up_to_date: int = 0
    compatible: int = 0
    incompatible: int = 0


__all__ = [
    "ClassifiedVersion",
    "ExitCodePolicy",
    "PackageId",
    "Reach",
    "RecordKind",
    "ScopeFilter",
    "SortKey",
    "SourceKind",
    "StalenessRecord",
]
