"""Tests for bpm.registry.local module."""

from pathlib import Path

import pytest

from bpm.config.parser import ConfigError
from bpm.errors import AccessDeniedError, BpmError, CorruptArchiveError, NotFoundError
from bpm.registry.base import RegistrySession
from bpm.registry.local import LocalRegistryClient
from bpm.utils.version import SemVer


class TestLocalRegistryClientInit:
    """Tests for LocalRegistryClient initialization."""

    def test_parses_file_url_absolute(self, temp_dir: Path):
        """Parses absolute file:// URL."""
        client = LocalRegistryClient(f"file://{temp_dir}")
        assert client.path == temp_dir

    def test_parses_plain_path(self, temp_dir: Path):
        """Parses plain path."""
        client = LocalRegistryClient(str(temp_dir))
        # Use resolve() to handle macOS /var -> /private/var symlink
        assert client.path.resolve() == temp_dir.resolve()

    def test_protocol_property(self, temp_dir: Path):
        """Protocol property returns 'file'."""
        assert LocalRegistryClient(str(temp_dir)).protocol == "file"


class TestLocalRegistrySearch:
    """Tests for search() and full_index()."""

    def test_empty_registry(self, temp_dir: Path):
        """A directory without registry.json is an empty registry."""
        client = LocalRegistryClient(str(temp_dir))

        assert len(client.search("foo")) == 0
        assert len(client.full_index()) == 0

    def test_missing_directory(self, temp_dir: Path):
        """A registry directory that does not exist raises NotFoundError."""
        client = LocalRegistryClient(str(temp_dir / "nowhere"))

        with pytest.raises(NotFoundError, match="Registry not found"):
            client.search("foo")

    def test_invalid_index(self, temp_dir: Path):
        """A malformed registry.json raises ConfigError."""
        (temp_dir / "registry.json").write_text('{"packages": {"foo": 1}}')

        with pytest.raises(ConfigError, match="Invalid registry.json"):
            LocalRegistryClient(str(temp_dir)).search("foo")

    def test_index_not_an_object(self, temp_dir: Path):
        """A registry.json holding a list is a bpm error, not a crash."""
        (temp_dir / "registry.json").write_text("[1, 2]")

        with pytest.raises(BpmError, match="must contain an object"):
            LocalRegistryClient(str(temp_dir)).full_index()

    def test_search_lists_published(self, registry):
        """Published releases appear in search results."""
        registry.publish("foo", "1.0.0")
        registry.publish("foo", "1.1.0", platform="linux")
        registry.publish("bar", "2.0.0")

        assert registry.client.search("foo").query("foo") == {
            (SemVer(1, 0, 0), "all"),
            (SemVer(1, 1, 0), "linux"),
        }
        assert registry.client.full_index().names() == ["bar", "foo"]


class TestLocalRegistryDownload:
    """Tests for download()."""

    def test_download_copies_archive(self, registry, temp_dir: Path):
        """Downloads copy the stored archive."""
        source = registry.publish("foo", "1.0.0")
        dest = temp_dir / "download" / "foo.bpkg"

        result = registry.client.download("foo", SemVer(1, 0, 0), "all", dest)

        assert result == dest
        assert dest.read_bytes() == source.read_bytes()

    def test_download_unknown(self, registry, temp_dir: Path):
        """Unknown packages raise NotFoundError."""
        with pytest.raises(NotFoundError, match="Can't find package foo 1.0.0"):
            registry.client.download("foo", SemVer(1, 0, 0), "all", temp_dir / "x.bpkg")


class TestLocalRegistryAccounts:
    """Tests for login() and authorization."""

    def test_login_success(self, registry):
        """Valid credentials give a session holding the API key."""
        session = registry.client.login(registry.EMAIL, registry.PASSWORD)

        assert session is not None
        assert session.token == registry.session.token
        assert session.email == registry.EMAIL

    def test_login_wrong_password(self, registry):
        """Wrong credentials give None."""
        assert registry.client.login(registry.EMAIL, "wrong") is None
        assert registry.client.login("nobody@example.com", "secret") is None

    def test_push_requires_known_key(self, registry, archive_factory):
        """Pushing with an unknown key is refused."""
        session = RegistrySession(registry="x", token="not-a-key")

        with pytest.raises(AccessDeniedError):
            registry.client.push(archive_factory("foo", "1.0.0"), session)

    def test_invalidated_session_refused(self, registry, archive_factory):
        """An invalidated session cannot push."""
        registry.session.invalidate()

        with pytest.raises(AccessDeniedError):
            registry.client.push(archive_factory("foo", "1.0.0"), registry.session)


class TestLocalRegistryPush:
    """Tests for push()."""

    def test_push_registers(self, registry, archive_factory):
        """A new version is registered."""
        message = registry.client.push(archive_factory("foo", "1.0"), registry.session)

        assert message == "Successfully registered foo (1.0.0)"
        assert (registry.root / "foo-1.0.0-all.bpkg").exists()

    def test_repush_refused(self, registry, archive_factory):
        """The same version cannot be pushed twice."""
        registry.publish("foo", "1.0.0")

        message = registry.client.push(archive_factory("foo", "1.0.0"), registry.session)

        assert message == "Repushing of package versions is not allowed: foo (1.0.0)"

    def test_push_corrupt_archive(self, registry, temp_dir: Path):
        """Malformed archives are rejected before anything is stored."""
        junk = temp_dir / "junk.bpkg"
        junk.write_bytes(b"junk")

        with pytest.raises(CorruptArchiveError):
            registry.client.push(junk, registry.session)


class TestLocalRegistryYank:
    """Tests for yank() and unyank()."""

    def test_yank_hides_version(self, registry):
        """Yanked versions disappear from search."""
        registry.publish("foo", "1.0.0")
        registry.publish("foo", "1.1.0")

        message = registry.client.yank("foo", SemVer(1, 1, 0), registry.session)

        assert message == "Successfully yanked foo (1.1.0)"
        assert registry.client.search("foo").query("foo") == {(SemVer(1, 0, 0), "all")}

    def test_yank_twice(self, registry):
        """Yanking a yanked version reports it."""
        registry.publish("foo", "1.0.0")
        registry.client.yank("foo", SemVer(1, 0, 0), registry.session)

        message = registry.client.yank("foo", SemVer(1, 0, 0), registry.session)

        assert message == "foo (1.0.0) has already been yanked"

    def test_yank_unknown(self, registry):
        """Unknown versions raise NotFoundError."""
        with pytest.raises(NotFoundError, match="This package could not be found: foo"):
            registry.client.yank("foo", SemVer(9, 9, 9), registry.session)

    def test_unyank_restores(self, registry):
        """Unyank makes the version available again."""
        registry.publish("foo", "1.0.0")
        registry.client.yank("foo", SemVer(1, 0, 0), registry.session)

        message = registry.client.unyank("foo", SemVer(1, 0, 0), registry.session)

        assert message == "Successfully unyanked foo (1.0.0)"
        assert len(registry.client.search("foo")) == 1

    def test_unyank_is_idempotent(self, registry):
        """Unyanking an available version succeeds without change."""
        registry.publish("foo", "1.0.0")

        message = registry.client.unyank("foo", SemVer(1, 0, 0), registry.session)

        assert message == "foo (1.0.0) is already available"
        assert len(registry.client.search("foo")) == 1

    def test_yanked_version_not_downloadable(self, registry, temp_dir: Path):
        """Yanked releases cannot be downloaded."""
        registry.publish("foo", "1.0.0")
        registry.client.yank("foo", SemVer(1, 0, 0), registry.session)

        with pytest.raises(NotFoundError):
            registry.client.download("foo", SemVer(1, 0, 0), "all", temp_dir / "x.bpkg")
