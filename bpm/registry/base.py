"""Abstract base class for registry clients."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from bpm.core.index import PackageIndex
from bpm.utils.version import SemVer


@dataclass
class RegistrySession:
    """An authenticated registry session.

    Created by a successful login and passed explicitly to every call that
    needs authentication. Invalidated on logout or process exit.
    """

    registry: str
    token: str
    email: str | None = None
    created_at: float = field(default_factory=time.time)
    valid: bool = True

    def invalidate(self) -> None:
        self.valid = False

    @property
    def auth_header(self) -> dict[str, str]:
        return {"Authorization": self.token}


class RegistryClient(ABC):
    """Abstract base class for registry clients.

    Registry clients handle searching package indexes, downloading package
    archives and the authenticated publishing calls.
    """

    @property
    @abstractmethod
    def protocol(self) -> str:
        """Get the protocol this client handles (e.g., "file", "https")."""
        ...

    @property
    @abstractmethod
    def url(self) -> str:
        """Get the registry URL."""
        ...

    @abstractmethod
    def search(self, name: str) -> PackageIndex:
        """Get every available (not yanked) release of a package.

        Args:
            name: Package name

        Returns:
            PackageIndex holding only that package (empty if unknown)
        """
        ...

    @abstractmethod
    def full_index(self) -> PackageIndex:
        """Get every available release of every package."""
        ...

    @abstractmethod
    def download(self, name: str, version: SemVer, platform: str, dest: Path) -> Path:
        """Download a package archive.

        Args:
            name: Package name
            version: Exact version
            platform: Package platform
            dest: File to write the archive to

        Returns:
            Path to the downloaded archive

        Raises:
            NotFoundError: If the registry has no such archive
            NetworkError: If the transfer failed after retries
        """
        ...

    @abstractmethod
    def login(self, email: str, password: str) -> RegistrySession | None:
        """Exchange credentials for a session.

        Returns:
            RegistrySession on success, None for wrong credentials
        """
        ...

    @abstractmethod
    def push(self, archive_path: Path, session: RegistrySession) -> str:
        """Publish an archive. Returns the registry's status message."""
        ...

    @abstractmethod
    def yank(self, name: str, version: SemVer, session: RegistrySession) -> str:
        """Hide a published version from resolution. Returns a status message."""
        ...

    @abstractmethod
    def unyank(self, name: str, version: SemVer, session: RegistrySession) -> str:
        """Make a yanked version available again. Returns a status message."""
        ...
