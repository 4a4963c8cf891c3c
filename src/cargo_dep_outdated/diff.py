"""Diff engine: turn graph, classification and probe into staleness records.

Purpose
-------
Compare each in-scope package's locked version with what the classifier
found and what the probe resolution actually reached, and emit one
:class:`StalenessRecord` per reportable package.

Contents
--------
* :func:`diff` - Produce the ordered staleness records
* :func:`locate_in_probe` - Find a locked package's counterpart in the probe graph
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from .classifier import effective_requirement
from .graph import DependencyGraph
from .models import ClassifiedVersion, PackageId, RecordKind, StalenessRecord
from .probe import ProbeOutcome
from .scope import Scope
from .semver import SemVer, VersionReq

logger = logging.getLogger(__name__)


def locate_in_probe(probe_graph: DependencyGraph, path: Sequence[PackageId]) -> PackageId | None:
    """Find the probe-graph package that corresponds to the end of ``path``.

    Follows the same chain of package identities from the root the locked
    package was reached from. Falls back to a unique identity match when the
    chain breaks; returns None when the package is gone or ambiguous.
    """
    target = path[-1]
    walked = _walk(probe_graph, path)
    if walked is not None:
        return walked
    matches = probe_graph.find(target.name, target.source)
    if len(matches) == 1:
        return matches[0]
    return None


def _walk(probe_graph: DependencyGraph, path: Sequence[PackageId]) -> PackageId | None:
    roots = probe_graph.find(path[0].name, path[0].source)
    if not roots:
        return None
    current = roots[-1]
    for step in path[1:]:
        node = probe_graph.node(current)
        if node is None:
            return None
        following = [dep for dep in sorted(node.dependencies) if dep.identity == step.identity]
        if not following:
            return None
        current = following[-1]
    return current


def _notes_for(result: ClassifiedVersion, requirement: str | None) -> list[str]:
    notes: list[str] = []
    if result.error is not None:
        notes.append(result.error)
    elif result.requirement_unsatisfiable:
        notes.append(f"requirement {requirement or '^' + str(result.current)} matches no published version")
    return notes


def _apply_probe(
    package_id: PackageId,
    req: VersionReq,
    compatible: SemVer | None,
    absolute: SemVer | None,
    resolved: SemVer,
    *,
    aggressive: bool,
    notes: list[str],
) -> tuple[SemVer | None, SemVer | None]:
    """Let the resolution-consistent probe value override the classifier's answer."""
    current = package_id.version
    resolved = max(resolved, current)

    if aggressive:
        if resolved != absolute:
            logger.debug("Probe reached %s for %s (classifier: %s)", resolved, package_id.name, absolute)
            absolute = resolved if compatible is None else max(resolved, compatible)
        return compatible, absolute

    if resolved == compatible:
        return compatible, absolute
    if not req.matches(resolved) and resolved != current:
        notes.append(f"probe resolved {resolved}, outside requirement {req}")
        return compatible, absolute
    logger.debug("Probe reached %s for %s (classifier: %s)", resolved, package_id.name, compatible)
    compatible = resolved
    if absolute is not None and absolute < compatible:
        absolute = compatible
    return compatible, absolute


def diff(
    graph: DependencyGraph,
    scope: Scope,
    classified: Mapping[PackageId, ClassifiedVersion],
    probe: ProbeOutcome | None,
    *,
    aggressive: bool = False,
    show_all: bool = False,
) -> list[StalenessRecord]:
    """Produce the staleness records for every reportable in-scope package.

    A record is emitted when the package is behind its compatible or absolute
    latest version, when it could not be fully classified, or always when
    ``show_all`` is set.

    Args:
        graph: The locked graph.
        scope: Packages in scope.
        classified: Classifier results.
        probe: Probe outcome, None to report classifier results only.
        aggressive: Whether the probe targeted absolute latest versions.
        show_all: Also emit packages that are up to date.

    Returns:
        Records ordered by package id.
    """
    records: list[StalenessRecord] = []
    for package_id in scope:
        node = graph.node(package_id)
        requirement = node.requirement if node is not None else None
        result = classified.get(package_id, ClassifiedVersion(current=package_id.version))
        notes = _notes_for(result, requirement)
        req = effective_requirement(package_id.name, package_id.version, requirement)
        removed = False
        compatible, absolute = result.compatible_latest, result.absolute_latest
        path = scope.path_to(package_id)

        if probe is not None and package_id in probe.affected:
            kind = RecordKind.UNRESOLVABLE
            notes.append(f"probe resolution failed: {probe.failure}")
        else:
            kind = RecordKind.DIRECT if scope.is_direct(package_id) else RecordKind.TRANSITIVE
            if probe is not None and probe.graph is not None and result.error is None:
                located = locate_in_probe(probe.graph, path)
                if located is None:
                    removed = True
                    notes.append("not present in probe resolution")
                else:
                    compatible, absolute = _apply_probe(
                        package_id,
                        req,
                        compatible,
                        absolute,
                        located.version,
                        aggressive=aggressive,
                        notes=notes,
                    )

        record = StalenessRecord(
            package_id=package_id,
            current=package_id.version,
            compatible_latest=compatible,
            absolute_latest=absolute,
            reached_via=path,
            kind=kind,
            notes=tuple(notes),
            incompatible=absolute is not None and absolute > package_id.version and not req.matches(absolute),
            removed=removed,
        )
        degraded = result.error is not None or result.requirement_unsatisfiable
        if show_all or degraded or removed or record.is_outdated:
            records.append(record)

    logger.info("%d of %d in-scope packages reported", len(records), len(scope))
    return records


__all__ = [
    "diff",
    "locate_in_probe",
]
