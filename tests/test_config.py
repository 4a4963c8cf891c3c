"""Configuration stories: bundled defaults, env overrides and display.

Only the bundled defaults and in-memory mappings are used, so the stories
do not depend on configuration files present on the machine.
"""

from __future__ import annotations

import json
import tomllib
from typing import Any

import click
import pytest

from cargo_dep_outdated import config as config_module
from cargo_dep_outdated.config import get_default_config_path, get_outdated_settings, settings_from_mapping
from cargo_dep_outdated.config_show import render_config
from cargo_dep_outdated.models import ExitCodePolicy, SortKey


def bundled_defaults() -> dict[str, Any]:
    with get_default_config_path().open("rb") as f:
        return tomllib.load(f)


class StaticConfig:
    """Stand-in for the layered Config object."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


# ════════════════════════════════════════════════════════════════════════════
# Bundled defaults
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
def test_default_config_ships_with_the_package() -> None:
    assert get_default_config_path().is_file()


@pytest.mark.os_agnostic
def test_default_settings_match_documented_defaults() -> None:
    settings = settings_from_mapping(bundled_defaults()["outdated"])

    assert settings.aggressive is False
    assert settings.show_all is False
    assert settings.sort_key is SortKey.NAME
    assert settings.depth is None
    assert settings.exit_code_policy == ExitCodePolicy()
    assert settings.timeout == 30.0
    assert settings.concurrency == 10
    assert settings.index_url == "https://index.crates.io"
    assert settings.cargo == "cargo"


@pytest.mark.os_agnostic
def test_settings_read_configured_values() -> None:
    settings = settings_from_mapping(
        {"sort_key": "magnitude", "depth": 0, "exit_code_compatible": 1, "exit_code_incompatible": 2, "aggressive": True}
    )

    assert settings.sort_key is SortKey.MAGNITUDE
    assert settings.depth == 0
    assert settings.exit_code_policy == ExitCodePolicy(up_to_date=0, compatible=1, incompatible=2)
    assert settings.aggressive is True


@pytest.mark.os_agnostic
def test_unknown_sort_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        settings_from_mapping({"sort_key": "random"})


# ════════════════════════════════════════════════════════════════════════════
# Native environment overrides
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
def test_environment_overrides_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARGO_DEP_OUTDATED_TIMEOUT", "5")
    monkeypatch.setenv("CARGO_DEP_OUTDATED_CONCURRENCY", "2")
    monkeypatch.setenv("CARGO_DEP_OUTDATED_INDEX_URL", "http://mirror.local")

    settings = settings_from_mapping({"timeout": 60.0, "concurrency": 20})

    assert settings.timeout == 5.0
    assert settings.concurrency == 2
    assert settings.index_url == "http://mirror.local"


@pytest.mark.os_agnostic
def test_invalid_environment_values_are_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARGO_DEP_OUTDATED_CONCURRENCY", "many")

    assert settings_from_mapping({"concurrency": 4}).concurrency == 4


@pytest.mark.os_agnostic
def test_get_outdated_settings_reads_the_outdated_section(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "get_config", lambda: StaticConfig({"outdated": {"show_all": True}}))

    assert get_outdated_settings().show_all is True


# ════════════════════════════════════════════════════════════════════════════
# render_config: the config command output
# ════════════════════════════════════════════════════════════════════════════

SAMPLE = {"outdated": {"aggressive": False, "sort_key": "name", "timeout": 30.0}}


@pytest.mark.os_agnostic
def test_render_config_human_looks_like_toml() -> None:
    text = render_config(SAMPLE)

    assert text.splitlines() == ["[outdated]", "aggressive = false", 'sort_key = "name"', "timeout = 30.0"]


@pytest.mark.os_agnostic
def test_render_config_json_round_trips() -> None:
    assert json.loads(render_config(SAMPLE, format="json")) == SAMPLE


@pytest.mark.os_agnostic
def test_render_config_missing_section_fails() -> None:
    with pytest.raises(click.ClickException, match="not found"):
        render_config(SAMPLE, section="nope")
