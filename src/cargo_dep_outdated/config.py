"""Layered configuration for report runs.

Purpose
-------
Reads the ``[outdated]`` settings through lib_layered_config, which stacks
the bundled defaults, system and user config files, a ``.env`` file and
``CARGO_DEP_OUTDATED___*`` environment variables. A handful of short
``CARGO_DEP_OUTDATED_*`` variables override the merged result.

Contents
--------
* :func:`get_config` – the merged, cached configuration
* :func:`get_default_config_path` – the bundled ``defaultconfig.toml``
* :func:`settings_from_mapping` – typed settings from an ``[outdated]`` table
* :func:`get_outdated_settings` – settings for the current process

The vendor, app and slug identifiers live in
:mod:`cargo_dep_outdated.__init__conf__`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from lib_layered_config import Config, read_config

from . import __init__conf__
from .models import ExitCodePolicy, SortKey

logger = logging.getLogger(__name__)

# Environment variable prefix for native (short) env vars
_ENV_PREFIX = "CARGO_DEP_OUTDATED_"


def get_default_config_path() -> Path:
    """Return the bundled defaults file, the lowest configuration layer."""
    return Path(__file__).parent / "defaultconfig.toml"


@lru_cache(maxsize=1)
def get_config(*, start_dir: str | None = None) -> Config:
    """Merge every configuration layer, lowest first: defaults, app, host, user, dotenv, env.

    Args:
        start_dir: Where the .env search starts; the working directory when None.

    Returns:
        The merged configuration. Cached for the life of the process.
    """
    return read_config(
        vendor=__init__conf__.LAYEREDCONF_VENDOR,
        app=__init__conf__.LAYEREDCONF_APP,
        slug=__init__conf__.LAYEREDCONF_SLUG,
        default_file=get_default_config_path(),
        start_dir=start_dir,
    )


@dataclass(frozen=True, slots=True)
class OutdatedSettings:
    """Immutable settings for a report run.

    Attributes:
        aggressive: Probe towards absolute latest versions.
        show_all: Report up-to-date packages too.
        sort_key: Row order of the report.
        depth: Scope depth, None for unbounded.
        exit_code_policy: Exit codes per outcome.
        timeout: Maximum seconds to wait for an index query.
        concurrency: Maximum number of simultaneous index queries.
        index_url: Base URL of the sparse registry index.
        cargo: The cargo executable.
    """

    aggressive: bool
    show_all: bool
    sort_key: SortKey
    depth: int | None
    exit_code_policy: ExitCodePolicy
    timeout: float
    concurrency: int
    index_url: str
    cargo: str


def _env_override(key: str, value: Any, convert: type) -> Any:
    raw = os.environ.get(f"{_ENV_PREFIX}{key}")
    if not raw:
        return value
    try:
        return convert(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s%s=%r", _ENV_PREFIX, key, raw)
        return value


def settings_from_mapping(section: Mapping[str, Any]) -> OutdatedSettings:
    """Build settings from an ``[outdated]`` section, applying native env overrides.

    Raises:
        ValueError: If ``sort_key`` is not a known sort order.
    """
    depth = int(section.get("depth", -1))
    timeout = _env_override("TIMEOUT", section.get("timeout", 30.0), float)
    concurrency = _env_override("CONCURRENCY", section.get("concurrency", 10), int)
    index_url = _env_override("INDEX_URL", section.get("index_url", "https://index.crates.io"), str)

    return OutdatedSettings(
        aggressive=bool(section.get("aggressive", False)),
        show_all=bool(section.get("show_all", False)),
        sort_key=SortKey(str(section.get("sort_key", SortKey.NAME.value))),
        depth=None if depth < 0 else depth,
        exit_code_policy=ExitCodePolicy(
            compatible=int(section.get("exit_code_compatible", 0)),
            incompatible=int(section.get("exit_code_incompatible", 0)),
        ),
        timeout=float(timeout),
        concurrency=int(concurrency),
        index_url=str(index_url),
        cargo=str(section.get("cargo", "cargo")),
    )


def get_outdated_settings() -> OutdatedSettings:
    """Get report settings from configuration with environment variable overrides.

    Settings are resolved in the following precedence order (highest wins):
    1. Native environment variables (CARGO_DEP_OUTDATED_TIMEOUT, etc.)
    2. lib_layered_config environment variables (CARGO_DEP_OUTDATED___OUTDATED__*, etc.)
    3. User config file (~/.config/cargo-dep-outdated/config.toml)
    4. Host config file
    5. Application config file
    6. Default config (bundled defaultconfig.toml)

    Returns:
        OutdatedSettings with resolved values.
    """
    return settings_from_mapping(get_config().get("outdated", default={}))


__all__ = [
    "OutdatedSettings",
    "get_config",
    "get_default_config_path",
    "get_outdated_settings",
    "settings_from_mapping",
]
