"""Analyzer stories: the whole report run from graph to exit code.

Index and resolver are in-memory fakes, so each story states exactly what
the registry publishes and what the resolver can reach.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from types import TracebackType
from typing import Any

import pytest

from cargo_dep_outdated import analyzer as analyzer_module
from cargo_dep_outdated.analyzer import Analyzer, RunConfig, analyze_workspace, roots_by_name, run
from cargo_dep_outdated.errors import EmptyScope, IndexUnavailable, ResolutionFailure, RunCancelled
from cargo_dep_outdated.graph import DependencyGraph, DependencyRef, LockEntry, build_graph
from cargo_dep_outdated.models import ExitCodePolicy, PackageId, RecordKind, ScopeFilter, SortKey, SourceKind
from cargo_dep_outdated.probe import SyntheticManifest
from cargo_dep_outdated.semver import SemVer


def v(text: str) -> SemVer:
    return SemVer.parse(text)


APP = PackageId(name="app", source=SourceKind.PATH, version=v("0.1.0"))

PUBLISHED = {
    "foo": ["1.2.0", "1.3.0", "1.4.0", "2.0.0"],
    "bar": ["2.0.0"],
}


def locked_graph(foo: str = "1.2.0") -> DependencyGraph:
    """app -> foo, bar, baz."""
    return build_graph(
        [
            LockEntry(
                name="app",
                version="0.1.0",
                source=SourceKind.PATH,
                dependencies=(DependencyRef("foo"), DependencyRef("bar"), DependencyRef("baz")),
                is_workspace_member=True,
            ),
            LockEntry(name="foo", version=foo),
            LockEntry(name="bar", version="2.0.0"),
            LockEntry(name="baz", version="0.1.0"),
        ],
        {"app": {"foo": "^1", "bar": "^2", "baz": "0.1"}},
    )


class FakeIndex:
    def __init__(self, versions: dict[str, list[str]], failing: tuple[str, ...] = ("baz",)) -> None:
        self.versions = versions
        self.failing = failing
        self.calls: list[str] = []

    async def available_versions(self, name: str) -> list[str]:
        self.calls.append(name)
        if name in self.failing:
            raise IndexUnavailable(name, "connection reset")
        return self.versions.get(name, [])


class FakeResolver:
    def __init__(self, answer: DependencyGraph | ResolutionFailure) -> None:
        self.answer = answer
        self.manifests: list[SyntheticManifest] = []

    def resolve(self, manifest: SyntheticManifest) -> DependencyGraph:
        self.manifests.append(manifest)
        if isinstance(self.answer, ResolutionFailure):
            raise self.answer
        return self.answer


def run_default(**overrides: Any) -> tuple[Any, int]:
    arguments: dict[str, Any] = {
        "workspace_roots": [APP],
        "graph": locked_graph(),
        "scope_filter": None,
        "index": FakeIndex(PUBLISHED),
        "resolver": FakeResolver(locked_graph("1.3.0")),
        "config": None,
    }
    arguments.update(overrides)
    return run(**arguments)


# ════════════════════════════════════════════════════════════════════════════
# run: the complete pipeline
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
def test_run_reports_outdated_and_degraded_packages() -> None:
    report, code = run_default()

    by_name = {record.name: record for record in report.records}
    assert set(by_name) == {"foo", "baz"}
    assert by_name["foo"].compatible_latest == v("1.3.0")
    assert by_name["foo"].absolute_latest == v("2.0.0")
    assert by_name["baz"].compatible_latest is None
    assert code == 0


@pytest.mark.os_agnostic
def test_run_lists_unclassified_packages() -> None:
    report, _ = run_default()

    assert report.unclassified == ("baz 0.1.0: index unavailable for baz: connection reset",)


@pytest.mark.os_agnostic
def test_run_include_filter_reports_only_named_packages() -> None:
    report, _ = run_default(scope_filter=ScopeFilter(include=frozenset({"foo"})))

    assert [record.name for record in report.records] == ["foo"]


@pytest.mark.os_agnostic
def test_run_applies_exit_code_policy() -> None:
    policy = ExitCodePolicy(up_to_date=0, compatible=3, incompatible=4)

    _, code = run_default(config=RunConfig(exit_code_policy=policy))

    assert code == 4


@pytest.mark.os_agnostic
def test_run_upgrade_within_requirement_uses_compatible_code_after_resolution() -> None:
    policy = ExitCodePolicy(up_to_date=0, compatible=1, incompatible=2)
    index = FakeIndex({"foo": ["1.2.0", "1.3.0", "1.4.0"], "bar": ["2.0.0"], "baz": ["0.1.0"]}, failing=())

    report, code = run_default(index=index, resolver=FakeResolver(locked_graph("1.3.0")), config=RunConfig(exit_code_policy=policy))

    foo = report.records[0]
    assert (foo.compatible_latest, foo.absolute_latest) == (v("1.3.0"), v("1.4.0"))
    assert foo.incompatible is False
    assert code == 1


@pytest.mark.os_agnostic
def test_run_up_to_date_workspace_uses_up_to_date_code() -> None:
    policy = ExitCodePolicy(up_to_date=7, compatible=3, incompatible=4)
    index = FakeIndex({"foo": ["1.2.0"], "bar": ["2.0.0"], "baz": ["0.1.0"]}, failing=())

    report, code = run_default(index=index, resolver=FakeResolver(locked_graph()), config=RunConfig(exit_code_policy=policy))

    assert report.records == ()
    assert code == 7


@pytest.mark.os_agnostic
def test_run_relaxes_requirements_for_the_probe() -> None:
    resolver = FakeResolver(locked_graph("1.3.0"))

    run_default(resolver=resolver)

    assert resolver.manifests[0].requirement_for("app", "foo") == ">=1.2.0, <=1.4.0"


@pytest.mark.os_agnostic
def test_run_aggressive_mode_targets_absolute_latest() -> None:
    resolver = FakeResolver(locked_graph("2.0.0"))

    report, _ = run_default(resolver=resolver, config=RunConfig(aggressive=True))

    assert resolver.manifests[0].requirement_for("app", "foo") == ">=1.2.0, <=2.0.0"
    foo = next(record for record in report.records if record.name == "foo")
    assert foo.absolute_latest == v("2.0.0")


@pytest.mark.os_agnostic
def test_run_marks_packages_unresolvable_when_probe_fails() -> None:
    resolver = FakeResolver(ResolutionFailure("failed to select a version for foo", packages=["foo"]))

    report, _ = run_default(resolver=resolver)

    foo = next(record for record in report.records if record.name == "foo")
    assert foo.kind is RecordKind.UNRESOLVABLE
    assert foo.compatible_latest == v("1.4.0")


@pytest.mark.os_agnostic
def test_run_is_idempotent() -> None:
    first, first_code = run_default()
    second, second_code = run_default()

    assert first.text == second.text
    assert first_code == second_code


@pytest.mark.os_agnostic
def test_run_uses_a_fresh_cache_per_run() -> None:
    index = FakeIndex(PUBLISHED)

    run_default(index=index)
    run_default(index=index)

    assert index.calls.count("foo") == 2


@pytest.mark.os_agnostic
def test_run_magnitude_sort_orders_major_jumps_first() -> None:
    report, _ = run_default(config=RunConfig(sort_key=SortKey.MAGNITUDE, show_all=True))

    assert report.records[0].name == "foo"


@pytest.mark.os_agnostic
def test_run_propagates_empty_scope() -> None:
    with pytest.raises(EmptyScope):
        run_default(scope_filter=ScopeFilter(include=frozenset({"nothing"})))


@pytest.mark.os_agnostic
def test_run_honours_cancellation() -> None:
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RunCancelled):
        run_default(cancel=cancel)


# ════════════════════════════════════════════════════════════════════════════
# roots_by_name
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
def test_roots_by_name_selects_members() -> None:
    assert roots_by_name([APP], ["app"]) == frozenset({APP})


@pytest.mark.os_agnostic
def test_roots_by_name_rejects_unknown_members() -> None:
    with pytest.raises(EmptyScope, match="not a workspace member"):
        roots_by_name([APP], ["ghost"])


# ════════════════════════════════════════════════════════════════════════════
# Analyzer: wiring the Cargo collaborators
# ════════════════════════════════════════════════════════════════════════════

MANIFEST = '[package]\nname = "app"\nversion = "0.1.0"\n\n[dependencies]\nfoo = "^1"\nbar = "^2"\n'
LOCK = """\
[[package]]
name = "app"
version = "0.1.0"
dependencies = ["bar", "foo"]

[[package]]
name = "bar"
version = "2.0.0"
source = "registry+https://github.com/rust-lang/crates.io-index"

[[package]]
name = "foo"
version = "1.2.0"
source = "registry+https://github.com/rust-lang/crates.io-index"
"""


class FakeIndexClient(FakeIndex):
    """Async context manager standing in for the HTTP index client."""

    def __init__(self, index_url: str, timeout: float) -> None:
        super().__init__(PUBLISHED, failing=())
        self.index_url = index_url

    async def __aenter__(self) -> FakeIndexClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        return None


class PassThroughResolver:
    """Resolver that reports the locked graph unchanged."""

    def __init__(self, workspace_root: Path, cargo: str) -> None:
        self.workspace_root = workspace_root
        self.cargo = cargo

    def resolve(self, manifest: SyntheticManifest) -> DependencyGraph:
        return analyzer_module.parse_workspace(self.workspace_root)[1]


@pytest.fixture
def cargo_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "Cargo.toml").write_text(MANIFEST, encoding="utf-8")
    (tmp_path / "Cargo.lock").write_text(LOCK, encoding="utf-8")
    monkeypatch.setattr(analyzer_module, "CratesIndexClient", FakeIndexClient)
    monkeypatch.setattr(analyzer_module, "CargoResolver", PassThroughResolver)
    return tmp_path


@pytest.mark.os_agnostic
def test_analyzer_reports_a_workspace_on_disk(cargo_project: Path) -> None:
    report, code = Analyzer().analyze(cargo_project)

    assert [record.name for record in report.records] == ["foo"]
    assert report.records[0].compatible_latest == v("1.2.0")
    assert report.records[0].absolute_latest == v("2.0.0")
    assert code == 0


@pytest.mark.os_agnostic
def test_analyze_workspace_passes_filters_through(cargo_project: Path) -> None:
    report, _ = analyze_workspace(cargo_project, scope_filter=ScopeFilter(include=frozenset({"bar"})), config=RunConfig(show_all=True))

    assert [record.name for record in report.records] == ["bar"]


@pytest.mark.os_agnostic
def test_analyzer_async_entry_point(cargo_project: Path) -> None:
    report, _ = asyncio.run(Analyzer().analyze_async(cargo_project))

    assert len(report.records) == 1


@pytest.mark.os_agnostic
def test_analyzer_rejects_invalid_settings() -> None:
    with pytest.raises(ValueError, match="timeout"):
        Analyzer(config=RunConfig(timeout=0))
    with pytest.raises(ValueError, match="concurrency"):
        Analyzer(config=RunConfig(concurrency=-1))
