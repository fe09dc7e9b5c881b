"""Local file system registry client."""

from __future__ import annotations

import hashlib
import logging
import secrets
import shutil
from pathlib import Path
from urllib.parse import urlparse

from pydantic import ValidationError

from bpm.config.parser import ConfigError, load_json, save_json
from bpm.config.schemas import (
    RegistryIndexFile,
    RegistryPackage,
    RegistryRelease,
    RegistryUser,
)
from bpm.core.archive import ARCHIVE_SUFFIX, read_archive
from bpm.core.index import PackageIndex
from bpm.errors import AccessDeniedError, NotFoundError
from bpm.registry.base import RegistryClient, RegistrySession
from bpm.utils.version import SemVer

logger = logging.getLogger(__name__)

INDEX_FILE = "registry.json"


def _hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class LocalRegistryClient(RegistryClient):
    """Registry client for a directory on the local file system.

    The directory holds a registry.json index next to the package archives.
    It implements the whole registry interface, including accounts and
    yanking, which makes it usable as an offline or team-share registry.

    URL format:
    - file:///path/to/registry (absolute path)
    - file:../relative/path (relative path)
    """

    def __init__(self, url: str):
        """Initialize the local registry client.

        Args:
            url: Local file URL (file:// or file:) or a plain path
        """
        self._url = url
        self._path = self._parse_url(url)

        logger.info("Initializing local registry client for %s", self._path)

    def _parse_url(self, url: str) -> Path:
        """Parse a file URL to a Path."""
        if url.startswith("file://"):
            # Absolute path
            parsed = urlparse(url)
            return Path(parsed.path)
        elif url.startswith("file:"):
            # Relative path (file:../path or file:./path)
            return Path(url[5:]).resolve()
        else:
            # Assume it's a path
            return Path(url).resolve()

    @property
    def protocol(self) -> str:
        return "file"

    @property
    def url(self) -> str:
        return self._url

    @property
    def path(self) -> Path:
        """Get the local path this client points to."""
        return self._path

    def _load_index(self) -> RegistryIndexFile:
        """Load registry.json, treating a missing file as an empty registry."""
        if not self._path.is_dir():
            raise NotFoundError(f"Registry not found: {self._path} is not a directory")

        index_file = self._path / INDEX_FILE
        if not index_file.exists():
            return RegistryIndexFile()

        try:
            return RegistryIndexFile.model_validate(load_json(index_file))
        except ValidationError as e:
            raise ConfigError(f"Invalid {INDEX_FILE}: {e}", index_file) from e

    def _save_index(self, data: RegistryIndexFile) -> None:
        save_json(self._path / INDEX_FILE, data.model_dump(mode="json"))

    @staticmethod
    def _available(package: RegistryPackage) -> list[RegistryRelease]:
        return [release for release in package.releases if not release.yanked]

    @staticmethod
    def _find_releases(
        data: RegistryIndexFile, name: str, version: SemVer
    ) -> list[RegistryRelease]:
        package = data.packages.get(name)
        if package is None:
            return []
        return [r for r in package.releases if SemVer.parse(r.version) == version]

    def search(self, name: str) -> PackageIndex:
        logger.debug("Searching local registry for '%s'", name)
        data = self._load_index()
        index = PackageIndex()
        package = data.packages.get(name)
        if package is not None:
            for release in self._available(package):
                index.add(name, release.version, release.platform)
        return index

    def full_index(self) -> PackageIndex:
        data = self._load_index()
        index = PackageIndex()
        for name, package in data.packages.items():
            for release in self._available(package):
                index.add(name, release.version, release.platform)
        return index

    def download(self, name: str, version: SemVer, platform: str, dest: Path) -> Path:
        data = self._load_index()
        for release in self._find_releases(data, name, version):
            if release.platform == platform and not release.yanked:
                source = self._path / release.file
                if not source.is_file():
                    break
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, dest)
                logger.debug("Copied %s to %s", source, dest)
                return dest

        raise NotFoundError(
            f"Can't find package {name} {version} ({platform}) in {self._url}",
            name=name,
            version=str(version),
        )

    def add_user(self, email: str, password: str) -> str:
        """Create or reset an account.

        Returns:
            The account's API key
        """
        data = self._load_index()
        api_key = secrets.token_hex(16)
        data.users[email] = RegistryUser(password_sha256=_hash_password(password), api_key=api_key)
        self._save_index(data)
        return api_key

    def login(self, email: str, password: str) -> RegistrySession | None:
        data = self._load_index()
        user = data.users.get(email)
        if user is None or user.password_sha256 != _hash_password(password):
            logger.info("Login failed for %s", email)
            return None
        return RegistrySession(registry=self._url, token=user.api_key, email=email)

    def _authorize(self, data: RegistryIndexFile, session: RegistrySession) -> None:
        if not session.valid or session.token not in {u.api_key for u in data.users.values()}:
            raise AccessDeniedError(f"Access denied to {self._url}")

    def push(self, archive_path: Path, session: RegistrySession) -> str:
        data = self._load_index()
        self._authorize(data, session)

        archive = read_archive(archive_path)
        spec = archive.spec
        package = data.packages.setdefault(spec.name, RegistryPackage(name=spec.name))
        for release in package.releases:
            if SemVer.parse(release.version) == spec.version and release.platform == spec.platform:
                return f"Repushing of package versions is not allowed: {spec}"

        filename = f"{spec.cache_key}{ARCHIVE_SUFFIX}"
        shutil.copyfile(archive_path, self._path / filename)
        package.releases.append(
            RegistryRelease(
                version=str(spec.version),
                platform=spec.platform,
                file=filename,
                checksum=archive.checksum,
            )
        )
        self._save_index(data)
        logger.info("Pushed %s to %s", spec, self._url)
        return f"Successfully registered {spec}"

    def yank(self, name: str, version: SemVer, session: RegistrySession) -> str:
        data = self._load_index()
        self._authorize(data, session)

        releases = self._find_releases(data, name, version)
        if not releases:
            raise NotFoundError(
                f"This package could not be found: {name} ({version})",
                name=name,
                version=str(version),
            )
        if all(release.yanked for release in releases):
            return f"{name} ({version}) has already been yanked"

        for release in releases:
            release.yanked = True
        self._save_index(data)
        return f"Successfully yanked {name} ({version})"

    def unyank(self, name: str, version: SemVer, session: RegistrySession) -> str:
        data = self._load_index()
        self._authorize(data, session)

        releases = self._find_releases(data, name, version)
        if not releases:
            raise NotFoundError(
                f"This package could not be found: {name} ({version})",
                name=name,
                version=str(version),
            )
        if not any(release.yanked for release in releases):
            return f"{name} ({version}) is already available"

        for release in releases:
            release.yanked = False
        self._save_index(data)
        return f"Successfully unyanked {name} ({version})"
