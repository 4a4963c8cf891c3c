"""Rendering of the merged configuration for the ``config`` CLI command.

Contents
--------
* :func:`render_config` – merged configuration as TOML-like text or JSON
* :func:`display_config` – echo the rendering to stdout
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, cast

import click

from .config import get_config


def _format_value(value: Any) -> str:
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _render_section(section_name: str, section_data: Any) -> list[str]:
    lines = [f"[{section_name}]"]
    if isinstance(section_data, dict):
        for key, value in cast("dict[str, Any]", section_data).items():
            lines.append(f"{key} = {_format_value(value)}")
    else:
        lines.append(str(section_data))
    return lines


def render_config(data: Mapping[str, Any], *, format: str = "human", section: str | None = None) -> str:
    """Render configuration data.

    Args:
        data: Merged configuration.
        format: "human" for TOML-like text, "json" for JSON.
        section: Only render this section when given.

    Raises:
        click.ClickException: If ``section`` is missing or empty.
    """
    if section:
        section_data = data.get(section)
        if not section_data:
            raise click.ClickException(f"Section '{section}' not found or empty")
        data = {section: section_data}

    if format.lower() == "json":
        return json.dumps(dict(data), indent=2)

    blocks = ["\n".join(_render_section(name, value)) for name, value in data.items()]
    return "\n\n".join(blocks)


def display_config(*, format: str = "human", section: str | None = None) -> None:
    """Display the current merged configuration from all sources.

    Example:
        >>> display_config(section="outdated")  # doctest: +SKIP
        [outdated]
        aggressive = false
        ...
    """
    click.echo(render_config(get_config().as_dict(), format=format, section=section))


__all__ = [
    "display_config",
    "render_config",
]
