"""HTTPS registry client for remote packages."""

from __future__ import annotations

import base64
import json
import logging
import ssl
import time
from http.client import HTTPException
from pathlib import Path
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode, urlparse
from urllib.request import Request, urlopen

from pydantic import ValidationError

from bpm.config.schemas import RegistryPackage
from bpm.core.index import PackageIndex
from bpm.errors import AccessDeniedError, BpmError, NetworkError, NotFoundError
from bpm.registry.base import RegistryClient, RegistrySession
from bpm.utils.version import SemVer

logger = logging.getLogger(__name__)


class HttpsRegistryError(BpmError):
    """Non-transient error interacting with an HTTPS registry."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class HttpsRegistryClient(RegistryClient):
    """Registry client for an HTTPS registry API.

    Endpoints, relative to the registry URL:
    - GET    packages/<name>.json        releases of one package
    - GET    index.json                  [name, version, platform] of every release
    - GET    archives/<name>-<version>-<platform>.bpkg
    - POST   api/v1/api_key              basic auth -> API key
    - POST   api/v1/packages             publish an archive
    - DELETE api/v1/packages/yank        form: name, version
    - PUT    api/v1/packages/unyank      form: name, version

    Transport failures (connection errors, timeouts, truncated or broken
    responses, HTTP 5xx) are retried
    with linear backoff; every other failure is permanent.
    """

    DEFAULT_TIMEOUT = 30  # seconds
    DEFAULT_RETRIES = 3
    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        url: str,
        timeout: int | None = None,
        retries: int | None = None,
        backoff: float = 0.5,
    ):
        """Initialize the HTTPS registry client.

        Args:
            url: HTTPS URL (https://example.com/path/)
            timeout: Request timeout in seconds (default: 30)
            retries: Attempts per request for transient failures (default: 3)
            backoff: Seconds to wait after the first failed attempt, grows linearly
        """
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._retries = retries or self.DEFAULT_RETRIES
        self._backoff = backoff

        logger.info("Initializing HTTPS registry client for %s", url)

        parsed = urlparse(url)
        if parsed.scheme != "https":
            raise HttpsRegistryError(
                f"Invalid URL scheme: {parsed.scheme} (expected https)",
                url=url,
            )
        self._url = url.rstrip("/") + "/"

        self._ssl_context = ssl.create_default_context()

    @property
    def protocol(self) -> str:
        return "https"

    @property
    def url(self) -> str:
        return self._url

    def _request(
        self,
        path: str,
        method: str = "GET",
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
        sink: Path | None = None,
    ) -> bytes:
        """Make an HTTP request, retrying transient failures.

        Args:
            path: Path relative to the registry URL
            method: HTTP method (default: GET)
            data: Optional request body
            headers: Optional request headers
            sink: Stream the response body into this file instead of returning it

        Returns:
            Response body as bytes (empty when streamed to sink)

        Raises:
            NotFoundError: On HTTP 404
            AccessDeniedError: On HTTP 401/403
            HttpsRegistryError: On any other 4xx
            NetworkError: When every attempt failed with a transient error
        """
        url = f"{self._url}{path}"
        last_error: NetworkError | None = None
        last_cause: Exception | None = None

        for attempt in range(1, self._retries + 1):
            logger.debug("Making %s request to %s (attempt %d)", method, url, attempt)
            request = Request(url, data=data, method=method)
            for key, value in (headers or {}).items():
                request.add_header(key, value)

            try:
                with urlopen(request, timeout=self._timeout, context=self._ssl_context) as response:
                    if sink is None:
                        result: bytes = response.read()
                        logger.debug("Request successful, received %d bytes", len(result))
                        return result

                    sink.parent.mkdir(parents=True, exist_ok=True)
                    with open(sink, "wb") as f:
                        for chunk in iter(lambda: response.read(self.CHUNK_SIZE), b""):
                            f.write(chunk)
                    logger.debug("Downloaded %s (%d bytes)", url, sink.stat().st_size)
                    return b""
            except HTTPError as e:
                if e.code == 404:
                    raise NotFoundError(f"Not found: {url}") from e
                if e.code in (401, 403):
                    raise AccessDeniedError(f"Access denied: HTTP {e.code} for {url}") from e
                if e.code < 500:
                    raise HttpsRegistryError(
                        f"HTTP {e.code}: {e.reason} for {url}",
                        url=url,
                        status_code=e.code,
                    ) from e
                last_error = NetworkError(
                    f"HTTP {e.code}: {e.reason} for {url}", url=url, status_code=e.code
                )
                last_cause = e
            except (URLError, TimeoutError, ConnectionError) as e:
                reason = getattr(e, "reason", e)
                last_error = NetworkError(f"Failed to connect to {url}: {reason}", url=url)
                last_cause = e
            except (HTTPException, ssl.SSLError) as e:
                # Connection dropped mid-response; sink is rewritten on the next attempt
                last_error = NetworkError(f"Transfer from {url} failed: {e!r}", url=url)
                last_cause = e

            logger.warning("%s (attempt %d of %d)", last_error, attempt, self._retries)
            if attempt < self._retries:
                time.sleep(self._backoff * attempt)

        assert last_error is not None
        raise last_error from last_cause

    def _get_json(self, path: str) -> Any:
        content = self._request(path)
        try:
            return json.loads(content.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HttpsRegistryError(
                f"Invalid JSON from {self._url}{path}: {e}", url=f"{self._url}{path}"
            ) from e

    def search(self, name: str) -> PackageIndex:
        """Get available releases of a package.

        Raises:
            NetworkError: If the registry cannot be reached
            HttpsRegistryError: If the response is malformed
        """
        logger.debug("Searching %s for '%s'", self._url, name)
        try:
            payload = self._get_json(f"packages/{quote(name)}.json")
        except NotFoundError:
            logger.debug("Package '%s' not found in %s", name, self._url)
            return PackageIndex()

        try:
            package = RegistryPackage.model_validate(payload)
        except ValidationError as e:
            raise HttpsRegistryError(f"Invalid package data for {name}: {e}", url=self._url) from e

        index = PackageIndex()
        for release in package.releases:
            if not release.yanked:
                index.add(name, release.version, release.platform)
        return index

    def full_index(self) -> PackageIndex:
        payload = self._get_json("index.json")
        index = PackageIndex()
        try:
            for name, version, platform in payload:
                index.add(name, version, platform)
        except (TypeError, ValueError) as e:
            raise HttpsRegistryError(f"Invalid index from {self._url}: {e}", url=self._url) from e
        return index

    def download(self, name: str, version: SemVer, platform: str, dest: Path) -> Path:
        filename = quote(f"{name}-{version}-{platform}.bpkg")
        logger.info("Downloading %s %s (%s) from %s", name, version, platform, self._url)
        try:
            self._request(f"archives/{filename}", sink=dest)
        except NotFoundError as e:
            raise NotFoundError(
                f"Can't find package {name} {version} ({platform}) in {self._url}",
                name=name,
                version=str(version),
            ) from e
        return dest

    def login(self, email: str, password: str) -> RegistrySession | None:
        credentials = base64.b64encode(f"{email}:{password}".encode()).decode("ascii")
        try:
            token = self._request(
                "api/v1/api_key",
                method="POST",
                data=b"",
                headers={"Authorization": f"Basic {credentials}"},
            )
        except AccessDeniedError:
            logger.info("Login failed for %s", email)
            return None
        return RegistrySession(registry=self._url, token=token.decode("utf-8").strip(), email=email)

    def push(self, archive_path: Path, session: RegistrySession) -> str:
        body = self._request(
            "api/v1/packages",
            method="POST",
            data=archive_path.read_bytes(),
            headers={**session.auth_header, "Content-Type": "application/octet-stream"},
        )
        return body.decode("utf-8")

    def _form(
        self, path: str, method: str, name: str, version: SemVer, session: RegistrySession
    ) -> str:
        try:
            body = self._request(
                path,
                method=method,
                data=urlencode({"name": name, "version": str(version)}).encode("ascii"),
                headers={
                    **session.auth_header,
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            )
        except NotFoundError as e:
            raise NotFoundError(
                f"This package could not be found: {name} ({version})",
                name=name,
                version=str(version),
            ) from e
        return body.decode("utf-8")

    def yank(self, name: str, version: SemVer, session: RegistrySession) -> str:
        return self._form("api/v1/packages/yank", "DELETE", name, version, session)

    def unyank(self, name: str, version: SemVer, session: RegistrySession) -> str:
        return self._form("api/v1/packages/unyank", "PUT", name, version, session)
