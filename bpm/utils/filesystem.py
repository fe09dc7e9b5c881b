"""Filesystem utilities for bpm."""

import hashlib
import os
import shutil
import tarfile
import tempfile
from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists

    Returns:
        The directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def make_staging_directory(parent: Path, prefix: str) -> Path:
    """Create a hidden staging directory next to a final destination.

    Staging inside the same parent keeps the later rename on one filesystem.
    """
    ensure_directory(parent)
    return Path(tempfile.mkdtemp(prefix=f".{prefix}-", suffix=".tmp", dir=parent))


def publish_directory(staging: Path, dest: Path) -> bool:
    """Atomically rename a fully written staging directory into place.

    Args:
        staging: Directory holding the complete content
        dest: Final location

    Returns:
        True if this call published the content, False if dest already
        existed (the staging directory is discarded in that case)
    """
    try:
        os.rename(staging, dest)
        return True
    except OSError:
        if dest.is_dir():
            shutil.rmtree(staging, ignore_errors=True)
            return False
        raise


def atomic_write_text(path: Path, content: str) -> None:
    """Write a text file by writing a temporary sibling and renaming it.

    Args:
        path: Target file path
        content: Content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def extract_tarball(tarball_path: Path, dest_dir: Path) -> Path:
    """Extract a tarball to a destination directory.

    Args:
        tarball_path: Path to the gzip tarball
        dest_dir: Destination directory

    Returns:
        Path to the extracted content directory

    Raises:
        ValueError: If a member would escape dest_dir
        tarfile.TarError: If the archive cannot be read
    """
    dest_dir.mkdir(parents=True, exist_ok=True)

    with tarfile.open(tarball_path, "r:gz") as tar:
        # Security: prevent path traversal
        for member in tar.getmembers():
            member_path = Path(member.name)
            if member_path.is_absolute() or ".." in member_path.parts:
                raise ValueError(f"Unsafe path in tarball: {member.name}")
            if member.issym() or member.islnk():
                raise ValueError(f"Links are not allowed in packages: {member.name}")
        tar.extractall(dest_dir)

    # If there's a single top-level directory, return its path
    contents = [p for p in dest_dir.iterdir() if not p.name.startswith(".")]
    if len(contents) == 1 and contents[0].is_dir():
        return contents[0]
    return dest_dir


def create_tarball(source_dir: Path, tarball_path: Path, arcname: str, files: list[Path]) -> Path:
    """Create a gzip tarball holding selected files under one top-level directory.

    Args:
        source_dir: Directory the files are relative to
        tarball_path: Path for the output tarball
        arcname: Name of the top-level directory inside the archive
        files: Files to include, relative to source_dir

    Returns:
        Path to the created tarball
    """
    tarball_path.parent.mkdir(parents=True, exist_ok=True)

    with tarfile.open(tarball_path, "w:gz") as tar:
        for rel_path in sorted(files):
            tar.add(source_dir / rel_path, arcname=f"{arcname}/{rel_path.as_posix()}")

    return tarball_path


def compute_file_hash(path: Path, algorithm: str = "sha256") -> str:
    """Compute the hash of a file.

    Args:
        path: Path to the file
        algorithm: Hash algorithm (default: sha256)

    Returns:
        "<algorithm>:<hex digest>"
    """
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return f"{algorithm}:{hasher.hexdigest()}"
