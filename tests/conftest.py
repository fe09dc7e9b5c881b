"""Shared fixtures for bpm tests."""

import io
import json
import shutil
import tarfile
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from bpm.registry.base import RegistrySession
from bpm.registry.cache import LocalCache
from bpm.registry.local import LocalRegistryClient
from bpm.utils.version import SemVer

ArchiveFactory = Callable[..., Path]


def _add_bytes(tar: tarfile.TarFile, name: str, content: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(content)
    tar.addfile(info, io.BytesIO(content))


def write_archive(
    dest_dir: Path,
    name: str,
    version: str,
    platform: str = "all",
    dependencies: dict[str, str] | None = None,
    files: dict[str, str] | None = None,
    top: str | None = None,
) -> Path:
    """Write a package archive the way `bpm build` lays it out."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    top = top or f"{name}-{SemVer.parse(version)}"
    manifest = {
        "name": name,
        "version": version,
        "platform": platform,
        "dependencies": dependencies or {},
    }
    path = dest_dir / f"{name}-{version}-{platform}.bpkg"
    with tarfile.open(path, "w:gz") as tar:
        _add_bytes(tar, f"{top}/package.json", json.dumps(manifest).encode())
        for rel_path, content in (files or {}).items():
            _add_bytes(tar, f"{top}/{rel_path}", content.encode())
    return path


class RegistryHarness:
    """A file registry with one account, for publishing test packages."""

    EMAIL = "dev@example.com"
    PASSWORD = "secret"

    def __init__(self, root: Path):
        root.mkdir(parents=True, exist_ok=True)
        self.root = root
        self.client = LocalRegistryClient(str(root))
        api_key = self.client.add_user(self.EMAIL, self.PASSWORD)
        self.session = RegistrySession(registry=str(root), token=api_key, email=self.EMAIL)
        self._build_dir = root.parent / f"{root.name}-build"

    def publish(
        self,
        name: str,
        version: str,
        platform: str = "all",
        dependencies: dict[str, str] | None = None,
        files: dict[str, str] | None = None,
    ) -> Path:
        archive = write_archive(
            self._build_dir, name, version, platform, dependencies=dependencies, files=files
        )
        message = self.client.push(archive, self.session)
        assert message.startswith("Successfully registered"), message
        return archive


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory."""
    path = Path(tempfile.mkdtemp(prefix="bpm_test_"))
    yield path
    if path.exists():
        shutil.rmtree(path)


@pytest.fixture
def archive_factory(temp_dir: Path) -> ArchiveFactory:
    """Build package archives in a scratch directory."""
    build_dir = temp_dir / "archives"

    def factory(name: str, version: str, **kwargs) -> Path:
        dest_dir = kwargs.pop("dest_dir", build_dir)
        return write_archive(dest_dir, name, version, **kwargs)

    return factory


@pytest.fixture
def registry(temp_dir: Path) -> RegistryHarness:
    """An empty file registry with a logged-in account."""
    return RegistryHarness(temp_dir / "registry")


@pytest.fixture
def cache(temp_dir: Path) -> LocalCache:
    """An empty local cache."""
    return LocalCache(temp_dir / "cache")
