"""Version classification against a package index.

Purpose
-------
For each package, work out the newest version its requirement allows
("compatible latest") and the newest version published at all ("absolute
latest"), querying the registry index concurrently.

Contents
--------
* :class:`PackageIndex` - Protocol for the registry index collaborator
* :class:`VersionCache` - Run-scoped cache of index answers
* :func:`classify` - Pure classification of one package
* :class:`VersionClassifier` - Concurrent classifier with timeouts and cancellation

System Role
-----------
Annotates the locked graph before the probe pass. A failing index lookup
only degrades the packages it concerns; the run carries on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .errors import IndexUnavailable, RunCancelled
from .models import ClassifiedVersion, PackageId, SourceKind
from .semver import SemVer, VersionReq, caret_of

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_CONCURRENCY = 10


class PackageIndex(Protocol):
    """Registry index collaborator.

    ``available_versions`` must be safe to call concurrently for different
    packages. The returned sequence is consumed once; a new call re-queries.
    It raises :class:`IndexUnavailable` when the registry cannot answer.
    """

    async def available_versions(self, name: str) -> Iterable[str | SemVer] | AsyncIterable[str | SemVer]: ...


class CancellationFlag(Protocol):
    """Anything with an ``is_set`` method (``threading.Event``, ``asyncio.Event``)."""

    def is_set(self) -> bool: ...


class VersionCache:
    """Index answers for the lifetime of one report run.

    Index sequences cannot be restarted, so answers are stored materialised.
    A fresh cache is created per run; nothing is shared across runs.
    """

    def __init__(self) -> None:
        self._versions: dict[str, tuple[str, ...]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._versions

    def __len__(self) -> int:
        return len(self._versions)

    def get(self, name: str) -> tuple[str, ...] | None:
        return self._versions.get(name)

    def put(self, name: str, versions: Iterable[str]) -> tuple[str, ...]:
        stored = tuple(versions)
        self._versions[name] = stored
        return stored


def effective_requirement(package_name: str, current: SemVer, requirement: str | VersionReq | None) -> VersionReq:
    """Return the requirement to classify against (``^current`` when unknown)."""
    if isinstance(requirement, VersionReq):
        return requirement
    if not requirement:
        return caret_of(current)
    try:
        return VersionReq.parse(requirement)
    except ValueError:
        logger.warning("Unparseable requirement %r for %s; assuming ^%s", requirement, package_name, current)
        return caret_of(current)


def _candidates(package_name: str, current: SemVer, available: Iterable[str | SemVer]) -> list[SemVer]:
    """Parse, filter and sort the published versions, newest first.

    Prereleases are dropped unless ``current`` is a prerelease, in which case
    only prereleases from the same channel are kept. Versions differing only
    in build metadata collapse to the lexicographically greater literal.
    """
    best: dict[SemVer, SemVer] = {}
    for raw in available:
        if isinstance(raw, SemVer):
            version = raw
        else:
            try:
                version = SemVer.parse(raw)
            except ValueError:
                logger.debug("Skipping unparseable version %r of %s", raw, package_name)
                continue
        if version.is_prerelease and (not current.is_prerelease or version.channel != current.channel):
            continue
        kept = best.get(version)
        if kept is None or str(version) > str(kept):
            best[version] = version
    return sorted(best.values(), reverse=True)


def classify(
    package_name: str,
    current: SemVer,
    requirement: str | VersionReq | None,
    available: Iterable[str | SemVer],
) -> ClassifiedVersion:
    """Classify one package against the versions its index publishes.

    Args:
        package_name: Package name, for diagnostics.
        current: The locked version.
        requirement: Declared requirement; None means ``^current``.
        available: Published versions in any order.

    Returns:
        The compatible and absolute latest versions (each ``>= current``).
        ``requirement_unsatisfiable`` is set when no published version
        matches the requirement.

    Example:
        >>> result = classify("foo", SemVer.parse("1.2.0"), "^1", ["1.2.0", "1.3.0", "2.0.0"])
        >>> str(result.compatible_latest), str(result.absolute_latest)
        ('1.3.0', '2.0.0')
    """
    req = effective_requirement(package_name, current, requirement)
    candidates = _candidates(package_name, current, available)

    compatible: SemVer | None = None
    absolute: SemVer | None = None
    any_match = False
    for version in candidates:
        matched = req.matches(version)
        any_match = any_match or matched
        if version < current:
            continue
        if absolute is None:
            absolute = version
        if compatible is None and matched:
            compatible = version

    if not any_match:
        logger.warning("Requirement %s of %s matches no published version", req, package_name)

    return ClassifiedVersion(
        current=current,
        compatible_latest=compatible,
        absolute_latest=absolute,
        requirement_unsatisfiable=not any_match,
    )


def _is_cancelled(cancel: CancellationFlag | None) -> bool:
    return cancel is not None and cancel.is_set()


@dataclass
class VersionClassifier:
    """Classify many packages concurrently against one index.

    Attributes:
        index: The registry index collaborator.
        cache: Run-scoped cache of index answers.
        timeout: Seconds allowed for each index query.
        concurrency: Maximum simultaneous index queries.
    """

    index: PackageIndex
    cache: VersionCache = field(default_factory=VersionCache)
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY

    def __post_init__(self) -> None:
        """Validate the classifier configuration."""
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")

    async def _collect(self, name: str) -> tuple[str, ...]:
        answer = await self.index.available_versions(name)
        if isinstance(answer, AsyncIterable):
            return tuple([str(version) async for version in answer])
        return tuple(str(version) for version in answer)

    async def fetch_versions(self, name: str) -> tuple[str, ...]:
        """Return the published versions of ``name``, querying the index once per run.

        Raises:
            IndexUnavailable: If the index fails or the query times out.
        """
        cached = self.cache.get(name)
        if cached is not None:
            return cached
        try:
            versions = await asyncio.wait_for(self._collect(name), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise IndexUnavailable(name, f"timed out after {self.timeout:g}s") from exc
        logger.debug("Index returned %d versions for %s", len(versions), name)
        return self.cache.put(name, versions)

    async def classify_async(self, package_id: PackageId, requirement: str | None) -> ClassifiedVersion:
        """Classify a single package, degrading instead of raising on index failure."""
        if package_id.source is not SourceKind.REGISTRY:
            return ClassifiedVersion(current=package_id.version)
        try:
            versions = await self.fetch_versions(package_id.name)
        except IndexUnavailable as exc:
            logger.warning("Could not classify %s: %s", package_id, exc.reason)
            return ClassifiedVersion(current=package_id.version, error=str(exc))
        return classify(package_id.name, package_id.version, requirement, versions)

    async def classify_many_async(
        self,
        packages: Sequence[tuple[PackageId, str | None]],
        cancel: CancellationFlag | None = None,
    ) -> dict[PackageId, ClassifiedVersion]:
        """Classify ``packages`` with at most ``concurrency`` index queries in flight.

        One lookup task is created per distinct package name; each task owns
        the result slots of the packages with that name.

        Args:
            packages: ``(package_id, declared requirement)`` pairs.
            cancel: Flag checked before every index lookup is dispatched.

        Returns:
            Classification for every package.

        Raises:
            RunCancelled: If ``cancel`` was set before all lookups were dispatched.
        """
        results: list[ClassifiedVersion | None] = [None] * len(packages)
        slots_by_name: dict[str, list[int]] = {}
        for slot, (package_id, _) in enumerate(packages):
            if package_id.source is SourceKind.REGISTRY:
                slots_by_name.setdefault(package_id.name, []).append(slot)
            else:
                results[slot] = ClassifiedVersion(current=package_id.version)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def lookup(slots: list[int]) -> None:
            async with semaphore:
                if _is_cancelled(cancel):
                    raise RunCancelled("Report run cancelled during classification")
                for slot in slots:
                    package_id, requirement = packages[slot]
                    results[slot] = await self.classify_async(package_id, requirement)

        tasks = [asyncio.create_task(lookup(slots_by_name[name])) for name in sorted(slots_by_name)]
        try:
            await asyncio.gather(*tasks)
        except RunCancelled:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        classified: dict[PackageId, ClassifiedVersion] = {}
        for (package_id, _), result in zip(packages, results):
            if result is not None:
                classified[package_id] = result
        logger.info("Classified %d packages (%d index lookups)", len(classified), len(slots_by_name))
        return classified


__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_TIMEOUT",
    "CancellationFlag",
    "PackageIndex",
    "VersionCache",
    "VersionClassifier",
    "classify",
    "effective_requirement",
]
