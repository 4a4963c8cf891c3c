"""Distribution metadata and layered configuration identifiers.

Kept in a module of its own so the CLI banner, the HTTP user agent and the
configuration loader read the same values.
"""

from __future__ import annotations

import click

name = "cargo_dep_outdated"
title = "Report outdated dependencies of Cargo workspaces"
version = "1.0.0"
homepage = "https://github.com/cargo-dep-outdated/cargo_dep_outdated"
author = "cargo_dep_outdated contributors"
shell_command = "cargo-dep-outdated"

# Identifiers used by lib_layered_config to locate the configuration files
LAYEREDCONF_VENDOR = "cargo-dep-outdated"
LAYEREDCONF_APP = "cargo-dep-outdated"
LAYEREDCONF_SLUG = "cargo-dep-outdated"


def print_info() -> None:
    """Print the distribution metadata.

    Example:
        >>> print_info()  # doctest: +ELLIPSIS
        Info for cargo_dep_outdated:
        ...
    """
    fields = (
        ("name", name),
        ("title", title),
        ("version", version),
        ("homepage", homepage),
        ("author", author),
        ("shell_command", shell_command),
    )
    pad = max(len(label) for label, _ in fields)
    click.echo(f"Info for {name}:\n")
    for label, value in fields:
        click.echo(f"    {label.ljust(pad)} = {value}")
