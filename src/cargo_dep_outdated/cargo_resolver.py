"""External resolver backed by ``cargo update`` in a throwaway project.

Purpose
-------
Resolve a :class:`~cargo_dep_outdated.probe.SyntheticManifest` with Cargo's
own resolver: the workspace manifests and lock file are copied into a
temporary directory, the overrides are written into the copies, and
``cargo update`` re-resolves the copy. The real project is never touched.

Contents
--------
* :class:`CargoResolver` - Resolver collaborator for the probe pass
* :func:`rewrite_manifest` - Apply overrides to a parsed manifest
"""

from __future__ import annotations

import copy
import logging
import shutil
import subprocess
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

import tomli_w

from .errors import ResolutionFailure
from .graph import DependencyGraph
from .lockfile import (
    DEPENDENCY_TABLES,
    LOCK_NAME,
    MANIFEST_NAME,
    CargoWorkspace,
    WorkspaceMember,
    declared_requirements,
    graph_from_lock,
    load_workspace,
    parse_dependency_spec,
)
from .probe import SyntheticManifest

logger = logging.getLogger(__name__)

DEFAULT_CARGO = "cargo"
DEFAULT_TIMEOUT = 300.0

# Cargo refuses manifests without a target; the copy never gets compiled.
_DUMMY_BIN = {"name": "cargo-dep-outdated-probe", "path": "probe.rs"}


def _absolute_path(spec: dict[str, Any], original_dir: Path) -> None:
    path = spec.get("path")
    if isinstance(path, str) and not Path(path).is_absolute():
        spec["path"] = str((original_dir / path).resolve())


def _pin_outside_paths(table: dict[str, Any], original_dir: Path, inside: frozenset[Path]) -> None:
    for spec in table.values():
        if not isinstance(spec, dict):
            continue
        path = cast("dict[str, Any]", spec).get("path")
        if isinstance(path, str) and (original_dir / path).resolve() not in inside:
            _absolute_path(cast("dict[str, Any]", spec), original_dir)


def _rewrite_table(table: dict[str, Any], overrides: Mapping[str, str], original_dir: Path, inside: frozenset[Path]) -> None:
    for key in list(table):
        spec = table[key]
        parsed = parse_dependency_spec(key, spec)
        if parsed is None:
            continue
        name, _ = parsed
        requirement = overrides.get(name)
        if isinstance(spec, str):
            if requirement is not None:
                table[key] = requirement
            continue
        spec = dict(cast("dict[str, Any]", spec))
        if requirement is not None and not spec.get("workspace"):
            spec["version"] = requirement
        path = spec.get("path")
        if isinstance(path, str) and (original_dir / path).resolve() not in inside:
            _absolute_path(spec, original_dir)
        table[key] = spec


def rewrite_manifest(
    data: Mapping[str, Any],
    overrides: Mapping[str, str],
    original_dir: Path,
    workspace_dirs: frozenset[Path] = frozenset(),
    inherited_overrides: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return a copy of a manifest with requirements replaced.

    Args:
        data: Parsed manifest.
        overrides: Package name → new requirement.
        original_dir: Directory of the original manifest, used to make
            path dependencies and ``[patch]``/``[replace]`` paths outside the
            workspace absolute.
        workspace_dirs: Directories of workspace members, whose relative
            paths stay valid inside the copy.
        inherited_overrides: Replacements for ``[workspace.dependencies]``,
            which members inherit with ``workspace = true``.

    Returns:
        The rewritten manifest; ``data`` is left untouched.
    """
    manifest = copy.deepcopy(dict(data))
    if "package" in manifest:
        manifest["bin"] = [dict(_DUMMY_BIN)]
        manifest.pop("lib", None)
        for table_name in ("example", "test", "bench"):
            manifest.pop(table_name, None)
        manifest["package"]["build"] = False
        manifest["package"]["autobins"] = False
        manifest["package"]["autoexamples"] = False
        manifest["package"]["autotests"] = False
        manifest["package"]["autobenches"] = False

    for table_name in DEPENDENCY_TABLES:
        table = manifest.get(table_name)
        if isinstance(table, dict):
            _rewrite_table(cast("dict[str, Any]", table), overrides, original_dir, workspace_dirs)

    targets = manifest.get("target")
    if isinstance(targets, dict):
        for target in cast("dict[str, Any]", targets).values():
            if not isinstance(target, dict):
                continue
            for table_name in DEPENDENCY_TABLES:
                table = cast("dict[str, Any]", target).get(table_name)
                if isinstance(table, dict):
                    _rewrite_table(cast("dict[str, Any]", table), overrides, original_dir, workspace_dirs)

    patches = manifest.get("patch")
    if isinstance(patches, dict):
        for patch in cast("dict[str, Any]", patches).values():
            if isinstance(patch, dict):
                _pin_outside_paths(cast("dict[str, Any]", patch), original_dir, workspace_dirs)
    replace = manifest.get("replace")
    if isinstance(replace, dict):
        _pin_outside_paths(cast("dict[str, Any]", replace), original_dir, workspace_dirs)

    workspace = manifest.get("workspace")
    inherited = workspace.get("dependencies") if isinstance(workspace, dict) else None
    if isinstance(inherited, dict):
        _rewrite_table(cast("dict[str, Any]", inherited), inherited_overrides or {}, original_dir, workspace_dirs)

    return manifest


class CargoResolver:
    """Resolve synthetic manifests by running ``cargo update`` on a copy.

    Attributes:
        workspace_root: Directory of the workspace's root manifest.
        cargo: The cargo executable.
        timeout: Seconds allowed for ``cargo update``.
    """

    def __init__(self, workspace_root: Path | str, cargo: str = DEFAULT_CARGO, timeout: float = DEFAULT_TIMEOUT) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.workspace_root = Path(workspace_root)
        self.cargo = cargo
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"CargoResolver(workspace_root={str(self.workspace_root)!r}, cargo={self.cargo!r})"

    def _write_copy(self, workspace: CargoWorkspace, manifest: SyntheticManifest, temp_root: Path) -> None:
        member_dirs = frozenset(member.directory.resolve() for member in workspace.members)
        inherited = self._inherited_overrides(manifest, workspace)
        written: set[Path] = set()
        for member in workspace.members:
            self._write_member(member, workspace, manifest, temp_root, member_dirs, inherited)
            written.add(member.manifest_path)

        root_manifest = workspace.root / MANIFEST_NAME
        if root_manifest not in written:
            data = rewrite_manifest(workspace.root_data, {}, workspace.root, member_dirs, inherited)
            self._dump(data, temp_root / MANIFEST_NAME)

        if workspace.lock_path.is_file():
            shutil.copyfile(workspace.lock_path, temp_root / LOCK_NAME)

    def _write_member(
        self,
        member: WorkspaceMember,
        workspace: CargoWorkspace,
        manifest: SyntheticManifest,
        temp_root: Path,
        member_dirs: frozenset[Path],
        inherited: Mapping[str, str],
    ) -> None:
        overrides = dict(manifest.overrides.get(member.name, {}))
        data = rewrite_manifest(member.data, overrides, member.directory, member_dirs, inherited)
        destination = temp_root / member.directory.relative_to(workspace.root)
        destination.mkdir(parents=True, exist_ok=True)
        self._dump(data, destination / MANIFEST_NAME)
        (destination / _DUMMY_BIN["path"]).write_text("fn main() {}\n", encoding="utf-8")

    @staticmethod
    def _inherited_overrides(manifest: SyntheticManifest, workspace: CargoWorkspace) -> dict[str, str]:
        merged: dict[str, str] = {}
        for member in workspace.members:
            merged.update(manifest.overrides.get(member.name, {}))
        return merged

    @staticmethod
    def _dump(data: Mapping[str, Any], path: Path) -> None:
        with path.open("wb") as f:
            tomli_w.dump(dict(data), f)

    def _run_cargo(self, manifest_path: Path) -> None:
        command = [self.cargo, "update", "--manifest-path", str(manifest_path)]
        logger.debug("Running %s", " ".join(command))
        try:
            completed = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ResolutionFailure(f"cargo executable {self.cargo!r} not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise ResolutionFailure(f"cargo update timed out after {self.timeout:g}s") from exc
        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout or "").strip().splitlines()
            reason = detail[-1] if detail else f"exit status {completed.returncode}"
            raise ResolutionFailure(f"cargo update failed: {reason}")

    def resolve(self, manifest: SyntheticManifest) -> DependencyGraph:
        """Resolve ``manifest`` and return the resulting dependency graph.

        Raises:
            ResolutionFailure: If cargo is missing, times out, or finds no
                consistent solution.
        """
        workspace = load_workspace(self.workspace_root)
        with tempfile.TemporaryDirectory(prefix="cargo-dep-outdated-") as temp_dir:
            temp_root = Path(temp_dir)
            self._write_copy(workspace, manifest, temp_root)
            self._run_cargo(temp_root / MANIFEST_NAME)

            lock_path = temp_root / LOCK_NAME
            if not lock_path.is_file():
                raise ResolutionFailure("cargo update did not produce a lock file")
            requirements = {
                member.name: {
                    **declared_requirements(member.data, workspace.root_data),
                    **manifest.overrides.get(member.name, {}),
                }
                for member in workspace.members
            }
            _, graph = graph_from_lock(workspace, lock_path, requirements)
        logger.info("Probe resolution produced %d packages", len(graph))
        return graph


__all__ = [
    "CargoResolver",
    "rewrite_manifest",
]
