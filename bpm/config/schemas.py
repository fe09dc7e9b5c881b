"""Pydantic schemas for bpm configuration and metadata files.

This module defines the data models for:
- package.json (package manifest)
- bpm.yaml (project configuration)
- config.yaml (user settings)
- metadata.json (local cache entry record)
- registry.json (file-based registry index)
"""

import re
from pathlib import Path
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field, field_validator

from bpm.errors import ParseError
from bpm.utils.version import SemVer, VersionConstraint

DEFAULT_PLATFORM = "all"

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")


def _check_constraint(value: str) -> str:
    try:
        VersionConstraint(value)
    except ParseError as e:
        raise ValueError(str(e)) from e
    return value


def _check_version(value: str) -> str:
    try:
        SemVer.parse(value)
    except ParseError as e:
        raise ValueError(str(e)) from e
    return value


def _check_name(value: str) -> str:
    if not value:
        raise ValueError("Package name cannot be empty")
    if not _NAME_PATTERN.match(value):
        raise ValueError(
            f"Invalid package name {value!r}: must start with a letter or digit and "
            "contain only letters, digits, dots, hyphens and underscores"
        )
    return value


ConstraintText = Annotated[str, AfterValidator(_check_constraint)]
VersionText = Annotated[str, AfterValidator(_check_version)]
PackageName = Annotated[str, AfterValidator(_check_name)]


# =============================================================================
# Package Manifest (package.json)
# =============================================================================


class PackageManifest(BaseModel):
    """Package manifest (package.json) schema."""

    name: PackageName
    version: VersionText
    platform: str = DEFAULT_PLATFORM
    description: str = ""
    dependencies: dict[str, ConstraintText] = Field(default_factory=dict)
    files: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("platform")
    @classmethod
    def validate_platform(cls, v: str) -> str:
        if not _NAME_PATTERN.match(v):
            raise ValueError(f"Invalid platform: {v!r}")
        return v


# =============================================================================
# Project Configuration (bpm.yaml)
# =============================================================================


class ProjectConfig(BaseModel):
    """Project configuration (bpm.yaml) schema."""

    name: str | None = None
    registry: str | None = None
    dependencies: dict[str, ConstraintText] = Field(default_factory=dict)


# =============================================================================
# User Settings (~/.bpm/config.yaml)
# =============================================================================


class Settings(BaseModel):
    """User-level settings."""

    registry: str = "https://getbpm.org/"
    cache_dir: Path | None = None
    platforms: list[str] = Field(default_factory=lambda: [DEFAULT_PLATFORM])
    max_workers: int = Field(default=4, ge=1, le=32)
    timeout: int = Field(default=30, ge=1)
    retries: int = Field(default=3, ge=1)
    email: str | None = None
    api_key: str | None = None


# =============================================================================
# Local Cache Entry Record (metadata.json)
# =============================================================================


class CacheMetadata(BaseModel):
    """Record stored next to every cached archive."""

    name: str
    version: str
    platform: str = DEFAULT_PLATFORM
    dependencies: list[tuple[str, str]] = Field(default_factory=list)
    fetched_at: float
    checksum: str


# =============================================================================
# File Registry Index (registry.json)
# =============================================================================


class RegistryRelease(BaseModel):
    """One published (version, platform) of a package."""

    version: VersionText
    platform: str = DEFAULT_PLATFORM
    file: str
    checksum: str | None = None
    yanked: bool = False


class RegistryPackage(BaseModel):
    """All releases of a package known to a registry."""

    name: str
    releases: list[RegistryRelease] = Field(default_factory=list)


class RegistryUser(BaseModel):
    """A registry account."""

    password_sha256: str
    api_key: str


class RegistryIndexFile(BaseModel):
    """registry.json schema."""

    packages: dict[str, RegistryPackage] = Field(default_factory=dict)
    users: dict[str, RegistryUser] = Field(default_factory=dict)
