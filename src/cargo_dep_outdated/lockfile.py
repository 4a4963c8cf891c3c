"""Reader for Cargo workspaces: manifests and lock file.

Purpose
-------
Locate a Cargo workspace, read the requirements its members declare and
the packages its Cargo.lock records, and build the locked
:class:`~cargo_dep_outdated.graph.DependencyGraph`.

Contents
--------
* :class:`WorkspaceMember` - One member package and its parsed manifest
* :class:`CargoWorkspace` - Workspace root plus members
* :func:`load_toml` - Load a TOML file, raising ParseError on failure
* :func:`load_workspace` - Discover the workspace around a manifest
* :func:`declared_requirements` - Requirements declared by a manifest
* :func:`load_lock_entries` - Lock entries from a Cargo.lock file
* :func:`parse_workspace` - Workspace roots and locked graph in one call

System Role
-----------
The manifest/lock parser collaborator. It is the only module that knows
Cargo's file layout; the engine sees graphs and package ids.
"""

from __future__ import annotations

import logging
import re
import tomllib
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

from pydantic import ValidationError

from .errors import ParseError
from .graph import DependencyGraph, DependencyRef, LockEntry, build_graph
from .models import PackageId, SourceKind
from .schemas import CargoDependencySpec, CargoLockSchema

logger = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"
LOCK_NAME = "Cargo.lock"
DEPENDENCY_TABLES = ("dependencies", "dev-dependencies", "build-dependencies")

# "name", "name version" or "name version (source)"
_RE_LOCK_REF = re.compile(r"^(?P<name>[A-Za-z0-9_.-]+)(?:\s+(?P<version>\S+))?(?:\s+\((?P<source>[^)]+)\))?$")


def load_toml(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file.

    Raises:
        ParseError: If the file is missing or not valid TOML.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as exc:
        raise ParseError(f"{path} does not exist") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ParseError(f"{path} is not valid TOML: {exc}") from exc


def _get_nested(data: Mapping[str, Any], path: str) -> Any | None:
    """Get a nested value from a dict using dot notation."""
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = cast("dict[str, Any]", current).get(key)
        if current is None:
            return None
    return current


def source_kind(source: str | None) -> SourceKind:
    """Map a Cargo source string (``registry+...``, ``git+...``) to a kind."""
    if source is None:
        return SourceKind.PATH
    if source.startswith("git+"):
        return SourceKind.GIT
    return SourceKind.REGISTRY


@dataclass(slots=True)
class WorkspaceMember:
    """A package that belongs to the workspace.

    Attributes:
        name: Package name.
        manifest_path: Absolute path of its Cargo.toml.
        data: Parsed manifest.
    """

    name: str
    manifest_path: Path
    data: dict[str, Any]

    @property
    def directory(self) -> Path:
        return self.manifest_path.parent


def _empty_members() -> list[WorkspaceMember]:
    """Return an empty member list for dataclass defaults."""
    return []


@dataclass(slots=True)
class CargoWorkspace:
    """A Cargo workspace (a single package is a workspace of one).

    Attributes:
        root: Directory holding the root manifest and Cargo.lock.
        root_data: Parsed root manifest.
        members: Member packages, root package first when it has one.
    """

    root: Path
    root_data: dict[str, Any]
    members: list[WorkspaceMember] = field(default_factory=_empty_members)

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_NAME

    @property
    def member_names(self) -> frozenset[str]:
        return frozenset(member.name for member in self.members)


def find_manifest(path: Path | str) -> Path:
    """Return the Cargo.toml for ``path`` (a manifest or a directory).

    Raises:
        ParseError: If no manifest exists there.
    """
    candidate = Path(path).resolve()
    if candidate.is_dir():
        candidate = candidate / MANIFEST_NAME
    if not candidate.is_file():
        raise ParseError(f"No {MANIFEST_NAME} found at {candidate}")
    return candidate


def _member(manifest_path: Path) -> WorkspaceMember | None:
    data = load_toml(manifest_path)
    name = _get_nested(data, "package.name")
    if not isinstance(name, str):
        return None
    return WorkspaceMember(name=name, manifest_path=manifest_path, data=data)


def _member_manifests(root: Path, root_data: Mapping[str, Any]) -> Iterator[Path]:
    patterns = _get_nested(root_data, "workspace.members") or []
    excluded = {(root / entry).resolve() for entry in (_get_nested(root_data, "workspace.exclude") or [])}
    seen: set[Path] = set()
    for pattern in cast("list[str]", patterns):
        for directory in sorted(root.glob(pattern)):
            manifest = (directory / MANIFEST_NAME).resolve()
            if directory.resolve() in excluded or manifest in seen or not manifest.is_file():
                continue
            seen.add(manifest)
            yield manifest


def load_workspace(path: Path | str) -> CargoWorkspace:
    """Discover the workspace defined by the manifest at ``path``.

    Raises:
        ParseError: If a manifest is missing or invalid, or the workspace
            has no member package.
    """
    root_manifest = find_manifest(path)
    root_data = load_toml(root_manifest)
    workspace = CargoWorkspace(root=root_manifest.parent, root_data=root_data)

    root_member = _member(root_manifest)
    if root_member is not None:
        workspace.members.append(root_member)
    for manifest in _member_manifests(workspace.root, root_data):
        if manifest == root_manifest:
            continue
        member = _member(manifest)
        if member is not None:
            workspace.members.append(member)

    if not workspace.members:
        raise ParseError(f"{root_manifest} defines no package and no workspace members")
    logger.debug("Workspace %s has %d members", workspace.root, len(workspace.members))
    return workspace


def dependency_tables(data: Mapping[str, Any]) -> Iterator[dict[str, Any]]:
    """Yield every dependency table of a manifest, including ``target.*`` ones."""
    for table_name in DEPENDENCY_TABLES:
        table = data.get(table_name)
        if isinstance(table, dict):
            yield cast("dict[str, Any]", table)
    targets = data.get("target")
    if isinstance(targets, dict):
        for target in cast("dict[str, Any]", targets).values():
            if not isinstance(target, dict):
                continue
            for table_name in DEPENDENCY_TABLES:
                table = cast("dict[str, Any]", target).get(table_name)
                if isinstance(table, dict):
                    yield cast("dict[str, Any]", table)


def parse_dependency_spec(key: str, spec: Any) -> tuple[str, CargoDependencySpec] | None:
    """Return ``(package name, spec)`` for one manifest entry, honouring renames."""
    if isinstance(spec, str):
        return key, CargoDependencySpec(version=spec)
    if isinstance(spec, dict):
        try:
            parsed = CargoDependencySpec.model_validate(spec)
        except ValidationError as exc:
            raise ParseError(f"Invalid dependency specification for {key}: {exc}") from exc
        return parsed.package or key, parsed
    logger.debug("Ignoring dependency %s with unsupported specification %r", key, spec)
    return None


def declared_requirements(
    data: Mapping[str, Any],
    workspace_data: Mapping[str, Any] | None = None,
) -> dict[str, str]:
    """Return ``{package name: requirement}`` declared by a manifest.

    Dependencies inherited with ``workspace = true`` take their requirement
    from ``[workspace.dependencies]`` of the root manifest. Dependencies
    without a version (pure path or git) are omitted. The first declaration
    of a name wins.
    """
    inherited = cast("dict[str, Any]", _get_nested(workspace_data or {}, "workspace.dependencies") or {})
    requirements: dict[str, str] = {}
    for table in dependency_tables(data):
        for key, spec in table.items():
            parsed = parse_dependency_spec(key, spec)
            if parsed is None:
                continue
            name, dep_spec = parsed
            if dep_spec.workspace and key in inherited:
                inherited_spec = parse_dependency_spec(key, inherited[key])
                if inherited_spec is not None:
                    name, dep_spec = inherited_spec
            if dep_spec.version and name not in requirements:
                requirements[name] = dep_spec.version
    return requirements


def _parse_lock_ref(raw: str) -> DependencyRef:
    match = _RE_LOCK_REF.match(raw.strip())
    if not match:
        raise ParseError(f"Invalid dependency reference in {LOCK_NAME}: {raw!r}")
    source = match.group("source")
    return DependencyRef(
        name=match.group("name"),
        version=match.group("version"),
        source=source_kind(source) if source else None,
    )


def load_lock_entries(lock_path: Path, member_names: frozenset[str] = frozenset()) -> list[LockEntry]:
    """Read the packages recorded in a Cargo.lock file.

    Args:
        lock_path: Path of the lock file.
        member_names: Names of the workspace members (path packages with
            these names are flagged as members).

    Raises:
        ParseError: If the lock file is missing or malformed.
    """
    data = load_toml(lock_path)
    try:
        lock = CargoLockSchema.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"{lock_path} is not a valid lock file: {exc}") from exc

    entries = [
        LockEntry(
            name=package.name,
            version=package.version,
            source=source_kind(package.source),
            dependencies=tuple(_parse_lock_ref(ref) for ref in package.dependencies),
            is_workspace_member=package.source is None and package.name in member_names,
        )
        for package in lock.package
    ]
    logger.debug("Read %d lock entries from %s", len(entries), lock_path)
    return entries


def workspace_requirements(workspace: CargoWorkspace) -> dict[str, dict[str, str]]:
    """Return the declared requirements of every member, keyed by member name."""
    return {member.name: declared_requirements(member.data, workspace.root_data) for member in workspace.members}


def graph_from_lock(
    workspace: CargoWorkspace,
    lock_path: Path,
    requirements: Mapping[str, Mapping[str, str]] | None = None,
) -> tuple[list[PackageId], DependencyGraph]:
    """Build the graph recorded in ``lock_path`` for ``workspace``."""
    entries = load_lock_entries(lock_path, workspace.member_names)
    graph = build_graph(entries, requirements if requirements is not None else workspace_requirements(workspace))
    roots = graph.workspace_members()
    if not roots:
        raise ParseError(f"{lock_path} records none of the workspace members {sorted(workspace.member_names)}")
    return roots, graph


def parse_workspace(path: Path | str) -> tuple[list[PackageId], DependencyGraph]:
    """Read the workspace at ``path`` and build its locked dependency graph.

    Args:
        path: A Cargo.toml or the directory containing it.

    Returns:
        The workspace member package ids and the locked graph.

    Raises:
        ParseError: If a manifest or the lock file is missing or malformed.
        MalformedGraph: If the lock file references unknown packages.
    """
    workspace = load_workspace(path)
    logger.info("Reading %s", workspace.lock_path)
    return graph_from_lock(workspace, workspace.lock_path)


__all__ = [
    "CargoWorkspace",
    "DEPENDENCY_TABLES",
    "LOCK_NAME",
    "MANIFEST_NAME",
    "WorkspaceMember",
    "declared_requirements",
    "dependency_tables",
    "find_manifest",
    "graph_from_lock",
    "load_lock_entries",
    "load_toml",
    "load_workspace",
    "parse_dependency_spec",
    "parse_workspace",
    "source_kind",
    "workspace_requirements",
]
