"""Registry client factory."""

import logging
from urllib.parse import urlparse

from bpm.config.schemas import Settings
from bpm.errors import BpmError
from bpm.registry.base import RegistryClient
from bpm.registry.local import LocalRegistryClient

logger = logging.getLogger(__name__)


class UnsupportedProtocolError(BpmError):
    """Error when a registry URL uses an unsupported protocol."""

    def __init__(self, protocol: str, url: str):
        self.protocol = protocol
        self.url = url
        super().__init__(f"Unsupported registry protocol: {protocol} (in {url})")


def create_registry_client(url: str, settings: Settings | None = None) -> RegistryClient:
    """Create a registry client for the given URL.

    Args:
        url: Registry URL (file://, file:, https:// or a plain path)
        settings: Optional settings supplying timeout and retry counts

    Returns:
        Appropriate RegistryClient instance

    Raises:
        UnsupportedProtocolError: If the protocol is not supported
    """
    logger.debug("Creating registry client for URL: %s", url)

    # Handle file: URLs (both file:// and file:)
    if url.startswith("file:"):
        return LocalRegistryClient(url)

    parsed = urlparse(url)
    protocol = parsed.scheme.lower()

    if protocol == "":
        # Treat as local path
        return LocalRegistryClient(url)
    elif protocol == "https":
        from bpm.registry.https import HttpsRegistryClient

        if settings is None:
            return HttpsRegistryClient(url)
        return HttpsRegistryClient(url, timeout=settings.timeout, retries=settings.retries)
    else:
        logger.error("Unsupported protocol: %s in URL %s", protocol, url)
        raise UnsupportedProtocolError(protocol, url)


def normalize_source(source: str) -> str:
    """Normalize a source string to a standard URL format.

    Args:
        source: Source URL or path

    Returns:
        Normalized URL string
    """
    if source.startswith("file:"):
        return source
    if source.startswith(("./", "../")):
        return f"file:{source}"
    if source.startswith("/"):
        return f"file://{source}"
    return source
