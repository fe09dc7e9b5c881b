"""Download, verify and commit package archives to the local cache."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from bpm.core.archive import verify_archive
from bpm.registry.base import RegistryClient
from bpm.registry.cache import CacheEntry, LocalCache
from bpm.utils.version import SemVer

logger = logging.getLogger(__name__)


class Fetcher:
    """Materializes a remote package into the local cache.

    Archives are downloaded to a private temporary directory, verified, and
    only then handed to LocalCache, which publishes them atomically. A crash
    or interrupt at any point leaves the cache unchanged.
    """

    def __init__(self, cache: LocalCache, client: RegistryClient, unpack: bool = False):
        """Initialize the fetcher.

        Args:
            cache: Cache to commit verified archives to
            client: Registry to download from
            unpack: Also store extracted contents in cache entries
        """
        self.cache = cache
        self.client = client
        self.unpack = unpack

    def fetch(self, name: str, version: SemVer, platform: str) -> CacheEntry:
        """Make sure a package is in the cache.

        Args:
            name: Package name
            version: Exact version
            platform: Package platform

        Returns:
            The cache entry, existing or newly committed

        Raises:
            NotFoundError: If the registry does not have the archive
            NetworkError: If downloading failed after retries
            VerificationError: If the archive holds a different package
            CorruptArchiveError: If the archive is malformed
        """
        existing = self.cache.get(name, version, platform)
        if existing is not None:
            logger.debug("%s %s (%s) already cached, skipping download", name, version, platform)
            return existing

        temp_dir = Path(tempfile.mkdtemp(prefix="bpm_fetch_"))
        try:
            archive_path = self.client.download(
                name, version, platform, temp_dir / f"{name}-{version}.bpkg"
            )
            archive = verify_archive(archive_path, name, version, platform)
            entry = self.cache.put(archive.spec, archive_path, archive.checksum, unpack=self.unpack)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        logger.info("Fetched %s %s (%s)", name, version, platform)
        return entry
