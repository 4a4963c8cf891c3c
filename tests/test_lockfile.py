"""Cargo workspace stories: manifests, members and the lock file.

The reader is the only place that knows Cargo's file layout. These tests
build small workspaces on disk and check what the engine gets to see.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from cargo_dep_outdated.errors import ParseError
from cargo_dep_outdated.lockfile import (
    declared_requirements,
    load_lock_entries,
    load_workspace,
    parse_dependency_spec,
    parse_workspace,
    source_kind,
)
from cargo_dep_outdated.models import PackageId, SourceKind
from cargo_dep_outdated.semver import SemVer

REGISTRY = "registry+https://github.com/rust-lang/crates.io-index"

SINGLE_MANIFEST = """\
[package]
name = "app"
version = "0.1.0"

[dependencies]
serde = { version = "1.0", features = ["derive"] }
rand = "0.7"
local = { path = "../local" }

[dev-dependencies]
tempfile = "3"

[target.'cfg(unix)'.dependencies]
libc = "0.2"
"""

SINGLE_LOCK = f"""\
version = 3

[[package]]
name = "app"
version = "0.1.0"
dependencies = [
 "libc",
 "rand",
 "serde",
 "tempfile",
]

[[package]]
name = "libc"
version = "0.2.60"
source = "{REGISTRY}"

[[package]]
name = "rand"
version = "0.7.3"
source = "{REGISTRY}"
dependencies = [
 "libc",
]

[[package]]
name = "serde"
version = "1.0.100"
source = "{REGISTRY}"

[[package]]
name = "tempfile"
version = "3.1.0"
source = "{REGISTRY}"
"""


def write_single(tmp_path: Path) -> Path:
    (tmp_path / "Cargo.toml").write_text(SINGLE_MANIFEST, encoding="utf-8")
    (tmp_path / "Cargo.lock").write_text(SINGLE_LOCK, encoding="utf-8")
    return tmp_path


def write_workspace(tmp_path: Path) -> Path:
    (tmp_path / "Cargo.toml").write_text(
        '[workspace]\nmembers = ["crates/*"]\nexclude = ["crates/skipped"]\n\n'
        '[workspace.dependencies]\nserde = "1.0.90"\n',
        encoding="utf-8",
    )
    for name, body in {
        "core": '[dependencies]\nserde = { workspace = true }\n',
        "cli": '[dependencies]\ncore = { path = "../core" }\nargs = { package = "clap", version = "2" }\n',
        "skipped": "",
    }.items():
        directory = tmp_path / "crates" / name
        directory.mkdir(parents=True)
        (directory / "Cargo.toml").write_text(f'[package]\nname = "{name}"\nversion = "0.1.0"\n\n{body}', encoding="utf-8")
    (tmp_path / "Cargo.lock").write_text(
        f"""\
version = 3

[[package]]
name = "clap"
version = "2.33.0"
source = "{REGISTRY}"

[[package]]
name = "cli"
version = "0.1.0"
dependencies = [
 "clap",
 "core",
]

[[package]]
name = "core"
version = "0.1.0"
dependencies = [
 "serde",
]

[[package]]
name = "serde"
version = "1.0.100"
source = "{REGISTRY}"
""",
        encoding="utf-8",
    )
    return tmp_path


# ════════════════════════════════════════════════════════════════════════════
# Small helpers
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
@pytest.mark.parametrize(
    ("source", "expected"),
    [
        (None, SourceKind.PATH),
        ("git+https://github.com/x/y?branch=main#abc", SourceKind.GIT),
        (REGISTRY, SourceKind.REGISTRY),
        ("sparse+https://index.crates.io/", SourceKind.REGISTRY),
    ],
)
def test_source_kind_classifies_lock_sources(source: str | None, expected: SourceKind) -> None:
    assert source_kind(source) is expected


@pytest.mark.os_agnostic
def test_parse_dependency_spec_honours_renames() -> None:
    parsed = parse_dependency_spec("args", {"package": "clap", "version": "2"})

    assert parsed is not None
    assert parsed[0] == "clap"
    assert parsed[1].version == "2"


@pytest.mark.os_agnostic
def test_declared_requirements_reads_all_tables() -> None:
    requirements = declared_requirements(tomllib.loads(SINGLE_MANIFEST))

    assert requirements == {"serde": "1.0", "rand": "0.7", "tempfile": "3", "libc": "0.2"}


@pytest.mark.os_agnostic
def test_declared_requirements_resolves_workspace_inheritance() -> None:
    member = {"dependencies": {"serde": {"workspace": True}}}
    root = {"workspace": {"dependencies": {"serde": "1.0.90"}}}

    assert declared_requirements(member, root) == {"serde": "1.0.90"}


# ════════════════════════════════════════════════════════════════════════════
# Reading workspaces from disk
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
def test_single_package_workspace_builds_graph(tmp_path: Path) -> None:
    roots, graph = parse_workspace(write_single(tmp_path))

    app = PackageId(name="app", source=SourceKind.PATH, version=SemVer.parse("0.1.0"))
    assert roots == [app]
    assert len(graph) == 5
    serde = graph.node(PackageId(name="serde", source=SourceKind.REGISTRY, version=SemVer.parse("1.0.100")))
    assert serde is not None and serde.requirement == "1.0"


@pytest.mark.os_agnostic
def test_parse_workspace_accepts_manifest_file_path(tmp_path: Path) -> None:
    roots, _ = parse_workspace(write_single(tmp_path) / "Cargo.toml")

    assert [root.name for root in roots] == ["app"]


@pytest.mark.os_agnostic
def test_virtual_workspace_expands_member_globs(tmp_path: Path) -> None:
    workspace = load_workspace(write_workspace(tmp_path))

    assert workspace.member_names == frozenset({"cli", "core"})


@pytest.mark.os_agnostic
def test_virtual_workspace_graph_carries_inherited_and_renamed_requirements(tmp_path: Path) -> None:
    roots, graph = parse_workspace(write_workspace(tmp_path))

    assert [root.name for root in roots] == ["cli", "core"]
    clap = graph.find("clap")[0]
    serde = graph.find("serde")[0]
    assert graph.node(clap).requirement == "2"  # type: ignore[union-attr]
    assert graph.node(serde).requirement == "1.0.90"  # type: ignore[union-attr]


@pytest.mark.os_agnostic
def test_lock_entries_flag_only_members_as_workspace(tmp_path: Path) -> None:
    entries = load_lock_entries(write_single(tmp_path) / "Cargo.lock", frozenset({"app"}))

    members = [entry.name for entry in entries if entry.is_workspace_member]
    assert members == ["app"]


@pytest.mark.os_agnostic
def test_missing_manifest_raises_parse_error(tmp_path: Path) -> None:
    with pytest.raises(ParseError, match="Cargo.toml"):
        parse_workspace(tmp_path)


@pytest.mark.os_agnostic
def test_invalid_toml_raises_parse_error(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text("[package\nname = ", encoding="utf-8")

    with pytest.raises(ParseError, match="not valid TOML"):
        parse_workspace(tmp_path)


@pytest.mark.os_agnostic
def test_missing_lock_file_raises_parse_error(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(SINGLE_MANIFEST, encoding="utf-8")

    with pytest.raises(ParseError, match="does not exist"):
        parse_workspace(tmp_path)


@pytest.mark.os_agnostic
def test_lock_without_members_raises_parse_error(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(SINGLE_MANIFEST, encoding="utf-8")
    (tmp_path / "Cargo.lock").write_text(f'[[package]]\nname = "serde"\nversion = "1.0.0"\nsource = "{REGISTRY}"\n', encoding="utf-8")

    with pytest.raises(ParseError, match="none of the workspace members"):
        parse_workspace(tmp_path)
