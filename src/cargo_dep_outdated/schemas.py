"""Pydantic schemas for external data boundaries.

Purpose
-------
Define Pydantic models for data that crosses system boundaries:
- Input: Cargo.lock packages, Cargo.toml dependency specs, sparse index lines
- Output: JSON serialization of staleness reports

These models handle validation, coercion, and serialization at the edges
while internal business logic uses lightweight dataclasses.

Data Flow Pattern
-----------------
External Input → Pydantic (validate) → Dataclass (domain) → Pydantic (serialize) → External Output
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .models import RecordKind, SourceKind


class StalenessRecordSchema(BaseModel):
    """Pydantic schema for serializing one staleness record to JSON."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    name: str = Field(description="The name of the package")
    source: SourceKind = Field(description="Where the package comes from")
    current: str = Field(description="Locked version")
    compatible_latest: str | None = Field(description="Newest achievable version within the requirement")
    absolute_latest: str | None = Field(description="Newest published version")
    kind: RecordKind = Field(description="Direct, transitive or unresolvable")
    reached_via: list[str] = Field(default_factory=list, description="Dependency path from a root")
    notes: list[str] = Field(default_factory=list, description="Why the package could not be fully classified")
    incompatible: bool = Field(default=False, description="Newest version lies outside the declared requirement")
    removed: bool = Field(default=False, description="Package is gone from the probe resolution")


def _empty_record_list() -> list[StalenessRecordSchema]:
    """Return empty list for default factory."""
    return []


def _empty_str_list() -> list[str]:
    """Return empty string list for default factory."""
    return []


class ReportSchema(BaseModel):
    """Pydantic schema for complete report serialization."""

    model_config = ConfigDict(frozen=True)

    records: list[StalenessRecordSchema] = Field(default_factory=_empty_record_list)
    outdated_count: int = 0
    unclassified: list[str] = Field(default_factory=_empty_str_list)
    exit_code: int | None = None


class IndexLineSchema(BaseModel):
    """Schema for one line of a sparse registry index file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    vers: str
    yanked: bool = False


class CargoLockPackageSchema(BaseModel):
    """Schema for a ``[[package]]`` entry of Cargo.lock."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    version: str
    source: str | None = None
    dependencies: list[str] = Field(default_factory=_empty_str_list)


def _empty_package_list() -> list[CargoLockPackageSchema]:
    """Return empty list for default factory."""
    return []


class CargoLockSchema(BaseModel):
    """Schema for a whole Cargo.lock file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    version: int | None = None
    package: list[CargoLockPackageSchema] = Field(default_factory=_empty_package_list)


class CargoDependencySpec(BaseModel):
    """Schema for a Cargo dependency specification in table form.

    Handles dependencies like:
    serde = {version = "1.0", features = ["derive"]}
    rand_core = {package = "rand_core", path = "../rand_core"}
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    version: str | None = None
    path: str | None = None
    git: str | None = None
    package: str | None = None
    branch: str | None = None
    tag: str | None = None
    rev: str | None = None
    registry: str | None = None
    optional: bool = False
    workspace: bool = False


__all__ = [
    "CargoDependencySpec",
    "CargoLockPackageSchema",
    "CargoLockSchema",
    "IndexLineSchema",
    "ReportSchema",
    "StalenessRecordSchema",
]
