"""Package identity model."""

from __future__ import annotations

from dataclasses import dataclass, field

from bpm.config.schemas import DEFAULT_PLATFORM, CacheMetadata, PackageManifest
from bpm.utils.version import SemVer, VersionConstraint

Dependency = tuple[str, VersionConstraint]


@dataclass(frozen=True)
class PackageSpec:
    """An immutable, concrete package.

    Identity is (name, version, platform); dependencies do not take part in
    equality or hashing.
    """

    name: str
    version: SemVer
    platform: str = DEFAULT_PLATFORM
    dependencies: tuple[Dependency, ...] = field(default=(), compare=False)

    @property
    def identity(self) -> tuple[str, SemVer, str]:
        return (self.name, self.version, self.platform)

    @property
    def full_name(self) -> str:
        """Name used for archive files and unpack directories."""
        return f"{self.name}-{self.version}"

    @property
    def cache_key(self) -> str:
        return f"{self.name}-{self.version}-{self.platform}"

    @classmethod
    def from_manifest(cls, manifest: PackageManifest) -> PackageSpec:
        return cls(
            name=manifest.name,
            version=SemVer.parse(manifest.version),
            platform=manifest.platform,
            dependencies=tuple(
                (dep_name, VersionConstraint(dep_spec))
                for dep_name, dep_spec in manifest.dependencies.items()
            ),
        )

    @classmethod
    def from_metadata(cls, metadata: CacheMetadata) -> PackageSpec:
        return cls(
            name=metadata.name,
            version=SemVer.parse(metadata.version),
            platform=metadata.platform,
            dependencies=tuple(
                (dep_name, VersionConstraint(dep_spec))
                for dep_name, dep_spec in metadata.dependencies
            ),
        )

    def __str__(self) -> str:
        if self.platform == DEFAULT_PLATFORM:
            return f"{self.name} ({self.version})"
        return f"{self.name} ({self.version} {self.platform})"
