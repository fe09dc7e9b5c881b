"""Publishing, yanking and unyanking packages on a registry."""

import logging
from pathlib import Path

from bpm.core.archive import read_archive
from bpm.errors import NotLoggedInError
from bpm.registry.base import RegistryClient, RegistrySession
from bpm.utils.version import SemVer

logger = logging.getLogger(__name__)


class Publisher:
    """Authenticated registry operations.

    Every operation needs a valid session and raises NotLoggedInError
    otherwise, before contacting the registry.
    """

    def __init__(self, client: RegistryClient, session: RegistrySession | None):
        self.client = client
        self.session = session

    def _require_session(self) -> RegistrySession:
        if self.session is None or not self.session.valid:
            raise NotLoggedInError()
        return self.session

    def push(self, archive_path: Path) -> str:
        """Publish a package archive.

        The archive is read locally first so malformed files never reach the
        registry.

        Returns:
            Status message from the registry

        Raises:
            NotLoggedInError: Without an active session
            CorruptArchiveError: If the archive is malformed
        """
        session = self._require_session()
        archive = read_archive(archive_path)
        logger.info("Pushing %s to %s", archive.spec, self.client.url)
        return self.client.push(archive_path, session)

    def yank(self, name: str, version: SemVer | str) -> str:
        """Hide a published version from resolution.

        Raises:
            NotLoggedInError: Without an active session
            NotFoundError: If the registry does not know the version
        """
        session = self._require_session()
        version = SemVer.parse(version) if isinstance(version, str) else version
        logger.info("Yanking %s %s from %s", name, version, self.client.url)
        return self.client.yank(name, version, session)

    def unyank(self, name: str, version: SemVer | str) -> str:
        """Make a yanked version available again. Idempotent.

        Raises:
            NotLoggedInError: Without an active session
            NotFoundError: If the registry does not know the version
        """
        session = self._require_session()
        version = SemVer.parse(version) if isinstance(version, str) else version
        logger.info("Unyanking %s %s on %s", name, version, self.client.url)
        return self.client.unyank(name, version, session)
