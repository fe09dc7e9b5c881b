"""Package unpacking into a working directory."""

import logging
import shutil
import tarfile
from pathlib import Path

from bpm.config.parser import ConfigError, load_json, save_json
from bpm.core.archive import read_archive
from bpm.core.package import PackageSpec
from bpm.errors import AccessDeniedError, CorruptArchiveError, UnpackConflictError
from bpm.utils.filesystem import extract_tarball, make_staging_directory, publish_directory

logger = logging.getLogger(__name__)

MARKER_FILE = ".bpm-spec.json"


class Unpacker:
    """Extracts package archives to ``<target_dir>/<name>-<version>``.

    Extraction happens in a sibling staging directory that is renamed into
    place once complete. Each unpacked directory carries a marker recording
    which package it holds, so repeating an unpack is a no-op and unpacking
    a different package over it is refused.
    """

    def _check_existing(self, dest: Path, spec: PackageSpec) -> None:
        marker = dest / MARKER_FILE
        if not marker.is_file():
            raise UnpackConflictError(
                f"{dest} already exists and was not unpacked by bpm", str(dest)
            )
        try:
            recorded = load_json(marker)
        except ConfigError as e:
            raise UnpackConflictError(f"{dest} has an unreadable {MARKER_FILE}", str(dest)) from e

        identity = (spec.name, str(spec.version), spec.platform)
        found = (recorded.get("name"), recorded.get("version"), recorded.get("platform"))
        if found != identity:
            raise UnpackConflictError(
                f"{dest} already holds {found[0]} {found[1]} ({found[2]}), not {spec}",
                str(dest),
            )

    def unpack(self, archive_path: Path, target_dir: Path) -> PackageSpec:
        """Unpack an archive.

        Args:
            archive_path: Package archive to extract
            target_dir: Directory to unpack into

        Returns:
            PackageSpec of the unpacked package

        Raises:
            CorruptArchiveError: If the archive is malformed
            AccessDeniedError: If the archive or target cannot be accessed
            UnpackConflictError: If the destination holds something else
        """
        archive = read_archive(archive_path)
        spec = archive.spec
        dest = target_dir / spec.full_name

        if dest.exists():
            self._check_existing(dest, spec)
            logger.info("%s is already unpacked at %s", spec, dest)
            return spec

        try:
            staging = make_staging_directory(target_dir, spec.full_name)
        except PermissionError as e:
            raise AccessDeniedError(
                f"Permission denied writing to {target_dir}", str(target_dir)
            ) from e

        try:
            extracted = extract_tarball(archive_path, staging / "content")
            save_json(
                extracted / MARKER_FILE,
                {
                    "name": spec.name,
                    "version": str(spec.version),
                    "platform": spec.platform,
                    "checksum": archive.checksum,
                },
            )
            if not publish_directory(extracted, dest):
                self._check_existing(dest, spec)
        except PermissionError as e:
            raise AccessDeniedError(
                f"Permission denied writing to {target_dir}", str(target_dir)
            ) from e
        except (tarfile.TarError, ValueError) as e:
            raise CorruptArchiveError(
                f"Cannot extract {archive_path}: {e}", str(archive_path)
            ) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info("Unpacked %s into %s", spec, dest)
        return spec
