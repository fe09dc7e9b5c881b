"""Tests for bpm.utils.filesystem module."""

import io
import tarfile
from pathlib import Path

import pytest

from bpm.utils.filesystem import (
    atomic_write_text,
    compute_file_hash,
    create_tarball,
    extract_tarball,
    make_staging_directory,
    publish_directory,
)


class TestStagingAndPublish:
    """Tests for staging directories and atomic publishing."""

    def test_staging_directory_is_hidden(self, temp_dir: Path):
        """Staging directories are hidden .tmp siblings."""
        staging = make_staging_directory(temp_dir / "parent", "foo-1.0.0")

        assert staging.parent == temp_dir / "parent"
        assert staging.name.startswith(".foo-1.0.0-")
        assert staging.name.endswith(".tmp")
        assert staging.is_dir()

    def test_publish_renames_into_place(self, temp_dir: Path):
        """Publishing moves the staged content to its destination."""
        staging = make_staging_directory(temp_dir, "pkg")
        (staging / "file.txt").write_text("content")
        dest = temp_dir / "pkg"

        assert publish_directory(staging, dest) is True
        assert (dest / "file.txt").read_text() == "content"
        assert not staging.exists()

    def test_publish_onto_existing_keeps_first(self, temp_dir: Path):
        """When the destination exists the staged copy is discarded."""
        dest = temp_dir / "pkg"
        dest.mkdir()
        (dest / "file.txt").write_text("first")
        staging = make_staging_directory(temp_dir, "pkg")
        (staging / "file.txt").write_text("second")

        assert publish_directory(staging, dest) is False
        assert (dest / "file.txt").read_text() == "first"
        assert not staging.exists()


class TestAtomicWriteText:
    """Tests for atomic_write_text()."""

    def test_writes_and_replaces(self, temp_dir: Path):
        """Writes new files and replaces existing ones."""
        path = temp_dir / "sub" / "file.json"
        atomic_write_text(path, "one")
        atomic_write_text(path, "two")

        assert path.read_text() == "two"
        assert [p.name for p in path.parent.iterdir()] == ["file.json"]


class TestTarballs:
    """Tests for create_tarball() and extract_tarball()."""

    def test_create_and_extract(self, temp_dir: Path):
        """Files are stored under a single top-level directory."""
        source = temp_dir / "src"
        (source / "lib").mkdir(parents=True)
        (source / "package.json").write_text("{}")
        (source / "lib" / "main.js").write_text("code")

        tarball = create_tarball(
            source,
            temp_dir / "out" / "pkg.bpkg",
            "pkg-1.0.0",
            [Path("package.json"), Path("lib/main.js")],
        )
        extracted = extract_tarball(tarball, temp_dir / "extract")

        assert extracted == temp_dir / "extract" / "pkg-1.0.0"
        assert (extracted / "lib" / "main.js").read_text() == "code"

    def test_extract_rejects_path_traversal(self, temp_dir: Path):
        """Members escaping the destination are refused."""
        tarball = temp_dir / "evil.bpkg"
        with tarfile.open(tarball, "w:gz") as tar:
            info = tarfile.TarInfo("../escape.txt")
            info.size = 4
            tar.addfile(info, io.BytesIO(b"evil"))

        with pytest.raises(ValueError, match="Unsafe path"):
            extract_tarball(tarball, temp_dir / "extract")
        assert not (temp_dir / "escape.txt").exists()

    def test_extract_rejects_links(self, temp_dir: Path):
        """Symbolic links are refused."""
        tarball = temp_dir / "link.bpkg"
        with tarfile.open(tarball, "w:gz") as tar:
            info = tarfile.TarInfo("pkg/link")
            info.type = tarfile.SYMTYPE
            info.linkname = "/etc/passwd"
            tar.addfile(info)

        with pytest.raises(ValueError, match="Links are not allowed"):
            extract_tarball(tarball, temp_dir / "extract")


class TestComputeFileHash:
    """Tests for compute_file_hash()."""

    def test_sha256_prefix(self, temp_dir: Path):
        """Hashes carry the algorithm name."""
        path = temp_dir / "data"
        path.write_bytes(b"")

        assert compute_file_hash(path) == (
            "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )
