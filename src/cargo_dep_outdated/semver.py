"""Semantic versions and Cargo-style version requirements.

Purpose
-------
Provide the version arithmetic the staleness engine relies on: a totally
ordered :class:`SemVer` value and a :class:`VersionReq` predicate that speaks
the requirement dialect found in Cargo manifests.

Contents
--------
* :class:`SemVer` - ``major.minor.patch[-pre][+build]`` with SemVer 2.0 ordering
* :class:`VersionReq` - parsed requirement (``^1.2``, ``~0.3``, ``>=1, <2``...)
* :func:`caret_of` - requirement accepting versions compatible with a version

System Role
-----------
Pure value layer with no dependencies. Every other module compares versions
exclusively through these types.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache

_RE_SEMVER = re.compile(
    r"^\s*v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?\s*$"
)
_RE_PARTIAL = re.compile(
    r"^(\d+|[*xX])(?:\.(\d+|[*xX]))?(?:\.(\d+|[*xX]))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)
_RE_COMPARATOR = re.compile(r"^(\^|~|=|>=|<=|>|<)?\s*(.+)$")
_WILDCARDS = frozenset({"*", "x", "X"})


def _prerelease_key(pre: tuple[str, ...]) -> tuple[tuple[int, int, str], ...]:
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in pre)


@dataclass(frozen=True, slots=True, eq=False)
class SemVer:
    """A semantic version.

    Equality, ordering and hashing ignore build metadata; ``str()`` keeps it.

    Attributes:
        major: Major version number.
        minor: Minor version number.
        patch: Patch version number.
        pre: Dot-separated prerelease identifiers, empty for a release.
        build: Build metadata as written, empty when absent.
    """

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: str = ""

    @classmethod
    def parse(cls, text: str) -> SemVer:
        """Parse a version string like ``1.2.3-rc.1+build.5``.

        Raises:
            ValueError: If the string is not a full semantic version.
        """
        return _parse_semver(text)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.pre)

    @property
    def release(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def channel(self) -> tuple[int, int, int, str]:
        """Release triple plus the first prerelease identifier (``alpha``, ``rc``...)."""
        return (self.major, self.minor, self.patch, self.pre[0] if self.pre else "")

    def _key(self) -> tuple[object, ...]:
        if self.pre:
            return (self.major, self.minor, self.patch, 0, _prerelease_key(self.pre))
        return (self.major, self.minor, self.patch, 1, ())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + self.build
        return text

    def __repr__(self) -> str:
        return f"SemVer('{self}')"

    def __hash__(self) -> int:
        return hash(self._key())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() < other._key()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() <= other._key()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() > other._key()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() >= other._key()


@lru_cache(maxsize=4096)
def _parse_semver(text: str) -> SemVer:
    match = _RE_SEMVER.match(text)
    if not match:
        msg = f"Invalid semantic version: {text!r}"
        raise ValueError(msg)
    major, minor, patch, pre, build = match.groups()
    return SemVer(
        major=int(major),
        minor=int(minor),
        patch=int(patch),
        pre=tuple(pre.split(".")) if pre else (),
        build=build or "",
    )


@dataclass(frozen=True, slots=True)
class _Bound:
    """A single primitive comparison against a full version."""

    op: str
    version: SemVer

    def matches(self, version: SemVer) -> bool:
        if self.op == "==":
            return version == self.version
        if self.op == ">=":
            return version >= self.version
        if self.op == ">":
            return version > self.version
        if self.op == "<=":
            return version <= self.version
        return version < self.version


def _partial_numbers(raw: str) -> tuple[int | None, int | None, int | None, tuple[str, ...]]:
    match = _RE_PARTIAL.match(raw)
    if not match:
        msg = f"Invalid version in requirement: {raw!r}"
        raise ValueError(msg)
    parts = match.group(1, 2, 3)
    numbers: list[int | None] = []
    seen_wildcard = False
    for part in parts:
        if part is None or part in _WILDCARDS:
            seen_wildcard = seen_wildcard or part is not None
            numbers.append(None)
        elif seen_wildcard or (numbers and numbers[-1] is None):
            msg = f"Invalid wildcard placement in requirement: {raw!r}"
            raise ValueError(msg)
        else:
            numbers.append(int(part))
    pre = tuple(match.group(4).split(".")) if match.group(4) else ()
    if pre and numbers[2] is None:
        msg = f"Prerelease requires a full version: {raw!r}"
        raise ValueError(msg)
    return numbers[0], numbers[1], numbers[2], pre


def _expand(op: str, raw: str) -> list[_Bound]:
    """Expand one Cargo comparator into primitive bounds."""
    major, minor, patch, pre = _partial_numbers(raw)
    if major is None:
        return []

    low = SemVer(major, minor or 0, patch or 0, pre)

    if op == "^":
        if major > 0 or minor is None:
            upper = SemVer(major + 1, 0, 0)
        elif minor > 0 or patch is None:
            upper = SemVer(0, minor + 1, 0)
        else:
            upper = SemVer(0, 0, patch + 1)
        return [_Bound(">=", low), _Bound("<", upper)]

    if op == "~":
        upper = SemVer(major + 1, 0, 0) if minor is None else SemVer(major, minor + 1, 0)
        return [_Bound(">=", low), _Bound("<", upper)]

    if op in ("=", "*"):
        if minor is None:
            return [_Bound(">=", low), _Bound("<", SemVer(major + 1, 0, 0))]
        if patch is None:
            return [_Bound(">=", low), _Bound("<", SemVer(major, minor + 1, 0))]
        return [_Bound("==", low)]

    if op == ">":
        if minor is None:
            return [_Bound(">=", SemVer(major + 1, 0, 0))]
        if patch is None:
            return [_Bound(">=", SemVer(major, minor + 1, 0))]
        return [_Bound(">", low)]

    if op == ">=":
        return [_Bound(">=", low)]

    if op == "<":
        return [_Bound("<", low)]

    # "<="
    if minor is None:
        return [_Bound("<", SemVer(major + 1, 0, 0))]
    if patch is None:
        return [_Bound("<", SemVer(major, minor + 1, 0))]
    return [_Bound("<=", low)]


def _parse_comparator(text: str) -> tuple[list[_Bound], tuple[int, int, int] | None]:
    match = _RE_COMPARATOR.match(text.strip())
    if not match:
        msg = f"Invalid requirement comparator: {text!r}"
        raise ValueError(msg)
    op, raw = match.group(1), match.group(2).strip()
    if op is None:
        head = raw.split(".", 1)[0]
        wildcard = head in _WILDCARDS or any(part in _WILDCARDS for part in raw.split("."))
        op = "*" if wildcard else "^"
    bounds = _expand(op, raw)
    major, minor, patch, pre = _partial_numbers(raw)
    prerelease_triple = (major, minor or 0, patch or 0) if pre and major is not None else None
    return bounds, prerelease_triple


@dataclass(frozen=True, slots=True)
class VersionReq:
    """A parsed version requirement.

    A version matches when it satisfies every comparator. Prerelease versions
    only match if some comparator explicitly names a prerelease of the same
    ``major.minor.patch``, mirroring Cargo.

    Attributes:
        text: The requirement as written.
    """

    text: str
    _bounds: tuple[_Bound, ...] = field(default=(), repr=False, compare=False)
    _prerelease_triples: frozenset[tuple[int, int, int]] = field(
        default=frozenset(), repr=False, compare=False
    )

    @classmethod
    def parse(cls, text: str) -> VersionReq:
        """Parse a requirement such as ``"^1.2"`` or ``">=1.0, <2.0"``.

        Raises:
            ValueError: If any comparator cannot be parsed.
        """
        return _parse_requirement(text)

    def matches(self, version: SemVer) -> bool:
        """Return True if ``version`` satisfies this requirement."""
        if version.is_prerelease and version.release not in self._prerelease_triples:
            return False
        return all(bound.matches(version) for bound in self._bounds)

    def __str__(self) -> str:
        return self.text


@lru_cache(maxsize=1024)
def _parse_requirement(text: str) -> VersionReq:
    stripped = text.strip()
    if not stripped:
        msg = "Empty version requirement"
        raise ValueError(msg)
    bounds: list[_Bound] = []
    triples: set[tuple[int, int, int]] = set()
    for piece in stripped.split(","):
        piece_bounds, triple = _parse_comparator(piece)
        bounds.extend(piece_bounds)
        if triple is not None:
            triples.add(triple)
    return VersionReq(text=stripped, _bounds=tuple(bounds), _prerelease_triples=frozenset(triples))


def caret_of(version: SemVer) -> VersionReq:
    """Return the requirement Cargo writes for a bare ``version`` (``^version``)."""
    return VersionReq.parse(f"^{version}")


__all__ = [
    "SemVer",
    "VersionReq",
    "caret_of",
]
