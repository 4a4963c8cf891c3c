"""Error taxonomy for the staleness engine.

Fatal errors (:class:`MalformedGraph`, :class:`EmptyScope`,
:class:`ParseError`) abort a run. Recoverable errors
(:class:`IndexUnavailable`, :class:`ResolutionFailure`) are caught by the
engine and turned into annotations on the affected records.
"""

from __future__ import annotations

from collections.abc import Iterable


class OutdatedError(Exception):
    """Base class for every error raised by cargo_dep_outdated."""


class MalformedGraph(OutdatedError):
    """A lock entry references a package that is not part of the entry set.

    This signals a broken resolver invariant upstream, not a user mistake.
    """


class EmptyScope(OutdatedError):
    """No package is left to report after applying the scope filter."""

    def __init__(self, detail: str = "") -> None:
        message = "No packages in scope; check the --root, --packages, --exclude and --depth arguments"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ParseError(OutdatedError):
    """A manifest or lock file could not be read or understood."""


class IndexUnavailable(OutdatedError):
    """The registry index could not answer for one package."""

    def __init__(self, package: str, reason: str) -> None:
        super().__init__(f"index unavailable for {package}: {reason}")
        self.package = package
        self.reason = reason


class ResolutionFailure(OutdatedError):
    """The external resolver found no consistent solution for the probe manifest.

    Attributes:
        packages: Package names the resolver blamed, empty when unknown.
    """

    def __init__(self, message: str, packages: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.packages = frozenset(packages)


class RunCancelled(OutdatedError):
    """The report run was cancelled at a safe point."""


__all__ = [
    "EmptyScope",
    "IndexUnavailable",
    "MalformedGraph",
    "OutdatedError",
    "ParseError",
    "ResolutionFailure",
    "RunCancelled",
]
