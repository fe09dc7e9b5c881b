"""Package building.

The Builder turns a directory with a ``package.json`` manifest into a
package archive, validating the manifest and the listed files first.
"""

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from bpm.config.parser import ConfigError, load_json
from bpm.config.schemas import PackageManifest
from bpm.core.archive import (
    ARCHIVE_SUFFIX,
    MANIFEST_FILE,
    PackageArchive,
    archive_filename,
    read_archive,
)
from bpm.core.package import PackageSpec
from bpm.errors import ValidationError
from bpm.utils.filesystem import create_tarball

logger = logging.getLogger(__name__)


def format_validation_errors(error: PydanticValidationError) -> list[str]:
    """Flatten pydantic errors into "field: message" lines."""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "manifest"
        messages.append(f"{location}: {item['msg']}")
    return messages


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts)


class Builder:
    """Builds package archives from a manifest directory."""

    def __init__(self, output_dir: Path | None = None):
        """Initialize the builder.

        Args:
            output_dir: Where archives are written (defaults to the manifest's directory)
        """
        self.output_dir = output_dir

    def _check_files(self, source_dir: Path, entries: list[str]) -> list[str]:
        errors = []
        root = source_dir.resolve()
        for entry in entries:
            path = (source_dir / entry).resolve()
            if not path.is_relative_to(root):
                errors.append(f"files: {entry} is outside the package directory")
            elif not path.exists():
                errors.append(f"files: {entry} does not exist")
        return errors

    def _collect_files(self, source_dir: Path, entries: list[str]) -> list[Path]:
        """Expand listed entries into relative file paths.

        With no entries the whole package directory is walked. Walked
        directories skip hidden files and previously built archives; files
        listed by name are always included.
        """
        selected: set[Path] = {Path(MANIFEST_FILE)}

        for entry in entries or ["."]:
            path = source_dir / entry
            if path.is_dir():
                selected.update(self._walk(source_dir, path))
            else:
                selected.add(path.relative_to(source_dir))
        return sorted(selected)

    @staticmethod
    def _walk(source_dir: Path, directory: Path) -> Iterator[Path]:
        for path in directory.rglob("*"):
            relative = path.relative_to(source_dir)
            if not path.is_file() or path.is_symlink() or _is_hidden(relative):
                continue
            if path.suffix != ARCHIVE_SUFFIX:
                yield relative

    def build(self, manifest_path: Path) -> PackageArchive:
        """Build a package archive.

        Args:
            manifest_path: Path to package.json, or the directory holding it

        Returns:
            PackageArchive for the written file

        Raises:
            ValidationError: Listing every problem found in the manifest
        """
        if manifest_path.is_dir():
            manifest_path = manifest_path / MANIFEST_FILE
        source_dir = manifest_path.parent

        try:
            data = load_json(manifest_path)
        except ConfigError as e:
            raise ValidationError([str(e)], str(manifest_path)) from e

        errors: list[str] = []
        manifest: PackageManifest | None = None
        try:
            manifest = PackageManifest.model_validate(data)
        except PydanticValidationError as e:
            errors.extend(format_validation_errors(e))

        entries = data.get("files")
        if isinstance(entries, list):
            errors.extend(self._check_files(source_dir, [str(entry) for entry in entries]))

        if errors or manifest is None:
            logger.info("Validation of %s failed with %d error(s)", manifest_path, len(errors))
            raise ValidationError(errors, str(manifest_path))

        spec = PackageSpec.from_manifest(manifest)
        output_dir = self.output_dir or source_dir
        archive_path = output_dir / archive_filename(spec)
        partial_path = archive_path.with_name(f".{archive_path.name}.tmp")

        files = self._collect_files(source_dir, manifest.files)
        logger.info("Building %s from %d file(s)", spec, len(files))
        try:
            create_tarball(source_dir, partial_path, spec.full_name, files)
            os.replace(partial_path, archive_path)
        finally:
            partial_path.unlink(missing_ok=True)

        archive = read_archive(archive_path)
        logger.info("Built %s (%s)", archive_path, archive.checksum)
        return archive
