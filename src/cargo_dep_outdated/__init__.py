"""Public package surface for dependency staleness reports.

This package reports which dependencies of a Cargo workspace are behind
their newest compatible or newest published version, and whether the
upgrade would actually resolve.

Main API
--------
* :func:`analyze_workspace` - Report the outdated dependencies of a workspace
* :func:`run` - Run the pipeline over explicit collaborators
* :class:`Analyzer` - Stateful analyzer wired to crates.io and cargo
* :class:`StalenessRecord` - One row of the report
"""

from __future__ import annotations

from .__init__conf__ import print_info
from .analyzer import Analyzer, RunConfig, analyze_workspace, run, run_async
from .config import get_config
from .errors import (
    EmptyScope,
    IndexUnavailable,
    MalformedGraph,
    OutdatedError,
    ParseError,
    ResolutionFailure,
    RunCancelled,
)
from .graph import DependencyGraph, LockEntry, build_graph
from .models import (
    ClassifiedVersion,
    ExitCodePolicy,
    PackageId,
    RecordKind,
    ScopeFilter,
    SortKey,
    SourceKind,
    StalenessRecord,
)
from .report import RenderedReport, build_report, exit_status, write_report_json
from .semver import SemVer, VersionReq

__all__ = [
    "Analyzer",
    "ClassifiedVersion",
    "DependencyGraph",
    "EmptyScope",
    "ExitCodePolicy",
    "IndexUnavailable",
    "LockEntry",
    "MalformedGraph",
    "OutdatedError",
    "PackageId",
    "ParseError",
    "RecordKind",
    "RenderedReport",
    "ResolutionFailure",
    "RunCancelled",
    "RunConfig",
    "ScopeFilter",
    "SemVer",
    "SortKey",
    "SourceKind",
    "StalenessRecord",
    "VersionReq",
    "analyze_workspace",
    "build_graph",
    "build_report",
    "exit_status",
    "get_config",
    "print_info",
    "run",
    "run_async",
    "write_report_json",
]
