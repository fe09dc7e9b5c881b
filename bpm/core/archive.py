"""Package archive format.

A package archive is a gzip tarball (``<name>-<version>.bpkg``) holding a
single top-level directory ``<name>-<version>/`` with a ``package.json``
manifest and the package files.
"""

from __future__ import annotations

import json
import logging
import tarfile
import zlib
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from bpm.config.schemas import PackageManifest
from bpm.core.package import PackageSpec
from bpm.errors import AccessDeniedError, CorruptArchiveError, VerificationError
from bpm.utils.filesystem import compute_file_hash
from bpm.utils.version import SemVer

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".bpkg"
MANIFEST_FILE = "package.json"


@dataclass(frozen=True)
class PackageArchive:
    """A package archive on disk together with the PackageSpec it carries."""

    path: Path
    spec: PackageSpec
    manifest: PackageManifest
    checksum: str

    @property
    def filename(self) -> str:
        return self.path.name


def archive_filename(spec: PackageSpec) -> str:
    return f"{spec.full_name}{ARCHIVE_SUFFIX}"


def read_archive(path: Path) -> PackageArchive:
    """Open an archive and load its manifest.

    Args:
        path: Path to the archive

    Returns:
        PackageArchive describing the file

    Raises:
        CorruptArchiveError: If the file is not a well-formed package archive
        AccessDeniedError: If the file cannot be read
    """
    try:
        with tarfile.open(path, "r:gz") as tar:
            members = tar.getmembers()
            top_levels = {Path(m.name).parts[0] for m in members if Path(m.name).parts}
            if len(top_levels) != 1:
                raise CorruptArchiveError(
                    f"{path} must contain exactly one top-level directory", str(path)
                )
            top = top_levels.pop()

            try:
                manifest_member = tar.getmember(f"{top}/{MANIFEST_FILE}")
            except KeyError as e:
                raise CorruptArchiveError(f"{path} has no {MANIFEST_FILE}", str(path)) from e

            handle = tar.extractfile(manifest_member)
            if handle is None:
                raise CorruptArchiveError(f"{path}: {MANIFEST_FILE} is not a file", str(path))
            with handle:
                data = json.load(handle)
    except PermissionError as e:
        raise AccessDeniedError(f"Permission denied reading {path}", str(path)) from e
    except FileNotFoundError as e:
        raise CorruptArchiveError(f"Archive not found: {path}", str(path)) from e
    except (tarfile.TarError, zlib.error, EOFError, OSError) as e:
        raise CorruptArchiveError(f"{path} is not a valid package archive: {e}", str(path)) from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptArchiveError(f"Invalid {MANIFEST_FILE} in {path}: {e}", str(path)) from e

    try:
        manifest = PackageManifest.model_validate(data)
    except PydanticValidationError as e:
        raise CorruptArchiveError(f"Invalid {MANIFEST_FILE} in {path}: {e}", str(path)) from e

    spec = PackageSpec.from_manifest(manifest)
    if top != spec.full_name:
        raise CorruptArchiveError(
            f"{path}: top-level directory {top!r} does not match {spec.full_name!r}", str(path)
        )

    return PackageArchive(path=path, spec=spec, manifest=manifest, checksum=compute_file_hash(path))


def verify_archive(path: Path, name: str, version: SemVer, platform: str) -> PackageArchive:
    """Check that an archive carries exactly the requested package.

    Raises:
        CorruptArchiveError: If the archive is malformed
        VerificationError: If the archive holds a different package
    """
    archive = read_archive(path)
    expected = (name, version, platform)
    if archive.spec.identity != expected:
        found = archive.spec
        raise VerificationError(
            f"Downloaded archive for {name} {version} ({platform}) contains "
            f"{found.name} {found.version} ({found.platform})",
            name=name,
            version=str(version),
        )
    logger.debug("Verified archive %s (%s)", path, archive.checksum)
    return archive
