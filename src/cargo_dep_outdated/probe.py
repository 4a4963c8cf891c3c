"""Probe pass: ask the real resolver what a relaxed manifest would resolve to.

Purpose
-------
A package's newest compatible version is not necessarily reachable once
its siblings' requirements are taken into account (diamond dependencies).
The probe rewrites the requirements of every in-scope direct dependency
together and hands the result to the external resolver, so the reported
upgrades are jointly achievable.

Contents
--------
* :class:`SyntheticManifest` - Relaxed requirements per workspace member
* :class:`DependencyResolver` - Protocol for the external resolver
* :class:`ProbeOutcome` - Probe graph or captured resolution failure
* :func:`build_synthetic_manifest` - Rewrite requirements for the probe
* :func:`probe` - Run the probe pass

System Role
-----------
Sits between the classifier and the diff engine. The probe graph lives
only for the duration of one run and is never written anywhere.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from .errors import ResolutionFailure
from .graph import DependencyGraph
from .models import ClassifiedVersion, PackageId, SourceKind
from .scope import Scope
from .semver import SemVer

logger = logging.getLogger(__name__)


def _empty_overrides() -> dict[str, dict[str, str]]:
    """Return an empty override mapping for dataclass defaults."""
    return {}


def _empty_id_set() -> frozenset[PackageId]:
    """Return an empty PackageId set for dataclass defaults."""
    return frozenset()


@dataclass(frozen=True, slots=True)
class SyntheticManifest:
    """Requirement overrides for the probe resolution.

    Attributes:
        overrides: Workspace member name → dependency name → new requirement.
            Dependencies not listed keep what the member declares.
        relaxed: Packages whose requirement was rewritten.
        aggressive: Whether targets are absolute rather than compatible latest.
    """

    overrides: Mapping[str, Mapping[str, str]] = field(default_factory=_empty_overrides)
    relaxed: frozenset[PackageId] = field(default_factory=_empty_id_set)
    aggressive: bool = False

    def requirement_for(self, member: str, dependency: str) -> str | None:
        return self.overrides.get(member, {}).get(dependency)


class DependencyResolver(Protocol):
    """External resolver collaborator.

    ``resolve`` returns the graph the relaxed manifest resolves to, and
    signals infeasibility by raising (or returning) :class:`ResolutionFailure`.
    """

    def resolve(self, manifest: SyntheticManifest) -> DependencyGraph | ResolutionFailure: ...


@dataclass(frozen=True, slots=True)
class ProbeOutcome:
    """Result of one probe pass.

    Attributes:
        manifest: The synthetic manifest that was resolved.
        graph: The probe graph, None when resolution failed.
        failure: The captured resolution failure, if any.
        affected: Packages degraded by the failure.
    """

    manifest: SyntheticManifest
    graph: DependencyGraph | None = None
    failure: ResolutionFailure | None = None
    affected: frozenset[PackageId] = field(default_factory=_empty_id_set)

    @property
    def succeeded(self) -> bool:
        return self.graph is not None


def relaxed_requirement(current: SemVer, target: SemVer) -> str:
    """Requirement accepting anything from ``current`` up to ``target``."""
    return f">={current}, <={target}"


def build_synthetic_manifest(
    graph: DependencyGraph,
    scope: Scope,
    classified: Mapping[PackageId, ClassifiedVersion],
    *,
    aggressive: bool = False,
) -> SyntheticManifest:
    """Rewrite the requirements of in-scope direct dependencies.

    Only requirements written in workspace manifests can be rewritten;
    transitive packages follow from the resolver re-resolving the graph.
    Registry packages without a classified target keep their requirement.

    Args:
        graph: The locked graph.
        scope: Packages in scope.
        classified: Classifier results.
        aggressive: Target ``absolute_latest`` instead of ``compatible_latest``.

    Returns:
        The synthetic manifest.
    """
    overrides: dict[str, dict[str, str]] = {}
    relaxed: set[PackageId] = set()

    for package_id in scope:
        if package_id.source is not SourceKind.REGISTRY:
            continue
        result = classified.get(package_id)
        if result is None:
            continue
        target = result.absolute_latest if aggressive else result.compatible_latest
        if target is None:
            continue
        node = graph.node(package_id)
        if node is None:
            continue
        requirement = relaxed_requirement(package_id.version, target)
        for dependent in sorted(node.dependents):
            dependent_node = graph.node(dependent)
            if dependent_node is None or not dependent_node.is_workspace_member:
                continue
            overrides.setdefault(dependent.name, {})[package_id.name] = requirement
            relaxed.add(package_id)

    logger.debug("Synthetic manifest relaxes %d packages", len(relaxed))
    return SyntheticManifest(overrides=overrides, relaxed=frozenset(relaxed), aggressive=aggressive)


def _affected_by(failure: ResolutionFailure, manifest: SyntheticManifest, scope: Scope) -> frozenset[PackageId]:
    if failure.packages:
        named = {pid for pid in scope if pid.name in failure.packages}
        if named:
            return frozenset(named)
    if manifest.relaxed:
        return manifest.relaxed
    return frozenset(scope)


def probe(
    graph: DependencyGraph,
    scope: Scope,
    classified: Mapping[PackageId, ClassifiedVersion],
    resolver: DependencyResolver,
    *,
    aggressive: bool = False,
) -> ProbeOutcome:
    """Resolve a relaxed manifest and capture the resulting probe graph.

    A :class:`ResolutionFailure` does not abort the run: it is recorded in
    the outcome together with the packages it affects.

    Args:
        graph: The locked graph.
        scope: Packages in scope.
        classified: Classifier results.
        resolver: The external resolver.
        aggressive: Target ``absolute_latest`` instead of ``compatible_latest``.

    Returns:
        The probe outcome.
    """
    manifest = build_synthetic_manifest(graph, scope, classified, aggressive=aggressive)
    logger.info("Probing resolution with %d relaxed requirements", len(manifest.relaxed))
    try:
        result = resolver.resolve(manifest)
    except ResolutionFailure as exc:
        result = exc

    if isinstance(result, ResolutionFailure):
        affected = _affected_by(result, manifest, scope)
        logger.warning("Probe resolution failed (%s); %d packages degraded", result, len(affected))
        return ProbeOutcome(manifest=manifest, failure=result, affected=affected)

    logger.debug("Probe graph has %d packages", len(result))
    return ProbeOutcome(manifest=manifest, graph=result)


__all__ = [
    "DependencyResolver",
    "ProbeOutcome",
    "SyntheticManifest",
    "build_synthetic_manifest",
    "probe",
    "relaxed_requirement",
]
