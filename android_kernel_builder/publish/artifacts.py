"""Build artifact discovery and upload.

This module handles:
- Listing the files of the build directory with sizes and checksums
- Uploading them as a named CI artifact through an injectable client
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path
from typing import Protocol

from android_kernel_builder.types import ArtifactConfig, ArtifactInfo

logger = logging.getLogger(__name__)

ANYKERNEL3_ARTIFACT = "Anykernel3-flasher"
BOOTIMG_ARTIFACT = "kernel-built-bootimg"

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


class ArtifactError(Exception):
    """Raised when build artifacts cannot be uploaded."""

    def __init__(self, message: str, code: str = "artifact_error") -> None:
        super().__init__(message)
        self.code = code


class ArtifactClient(Protocol):
    """Uploads a set of files as one named artifact."""

    def upload_artifact(self, name: str, files: list[Path], root_dir: Path) -> None: ...


class DirectoryArtifactClient:
    """Artifact client that copies artifacts into a local directory.

    Each artifact becomes ``<dest>/<name>/`` with the files laid out
    relative to the root directory they were uploaded from.
    """

    def __init__(self, dest: Path) -> None:
        self.dest = dest

    def upload_artifact(self, name: str, files: list[Path], root_dir: Path) -> None:
        target = self.dest / name
        for file in files:
            out = target / file.relative_to(root_dir)
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(file, out)
        logger.info("Stored artifact %s (%d files) in %s", name, len(files), target)


def compute_file_hash(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def artifact_name(anykernel3: bool) -> str:
    """Return the artifact name for a packaging mode."""
    return ANYKERNEL3_ARTIFACT if anykernel3 else BOOTIMG_ARTIFACT


def _list_files(build_dir: Path) -> list[Path]:
    return [path for path in sorted(build_dir.rglob("*")) if path.is_file()]


def artifact_exists(build_dir: Path) -> bool:
    """Whether the build directory exists and is not empty."""
    return build_dir.is_dir() and any(build_dir.iterdir())


def get_artifact_info(build_dir: Path, with_checksum: bool = False) -> list[ArtifactInfo]:
    """Describe the top-level files of the build directory.

    Directories are ignored.

    Args:
        build_dir: Build output directory.
        with_checksum: Also compute SHA-256 digests.

    Returns:
        One ArtifactInfo per file, sorted by name.
    """
    if not build_dir.is_dir():
        return []

    infos = []
    for path in sorted(build_dir.iterdir()):
        if not path.is_file():
            continue
        infos.append(
            ArtifactInfo(
                name=path.name,
                path=path,
                size_bytes=path.stat().st_size,
                sha256=compute_file_hash(path) if with_checksum else None,
            )
        )
    return infos


def log_artifacts(build_dir: Path) -> None:
    """Log the files of the build directory with their sizes."""
    if not build_dir.is_dir():
        logger.info("Build directory does not exist")
        return

    infos = get_artifact_info(build_dir)
    if not infos:
        logger.info("No artifacts found")
        return

    logger.info("Build artifacts:")
    for info in infos:
        logger.info("  %s (%.2f MB)", info.name, info.size_mb)


def upload_artifacts(config: ArtifactConfig, client: ArtifactClient) -> str | None:
    """Upload the build directory as a CI artifact.

    Releases publish their files through the release instead, so nothing
    is uploaded when ``config.release`` is set.

    Args:
        config: Artifact configuration.
        client: Artifact client.

    Returns:
        The artifact name, or None when skipped.

    Raises:
        ArtifactError: If the build directory is missing or empty, or the
            upload fails.
    """
    if config.release:
        logger.info("Release enabled, skipping artifact upload")
        return None

    build_dir = config.build_dir
    if not build_dir.is_dir():
        raise ArtifactError(f"Build directory not found: {build_dir}", code="no_build_dir")
    if not any(build_dir.iterdir()):
        raise ArtifactError("No files found in build directory", code="empty_build_dir")

    files = _list_files(build_dir)
    if not files:
        raise ArtifactError("No files to upload", code="no_files")

    name = artifact_name(config.anykernel3)
    try:
        client.upload_artifact(name, files, build_dir)
    except (OSError, RuntimeError) as e:
        raise ArtifactError(f"Failed to upload artifacts: {e}", code="upload_failed") from e

    logger.info("Uploaded artifact %s (%d files)", name, len(files))
    return name


__all__ = [
    "ANYKERNEL3_ARTIFACT",
    "BOOTIMG_ARTIFACT",
    "ArtifactClient",
    "ArtifactError",
    "DirectoryArtifactClient",
    "artifact_exists",
    "artifact_name",
    "compute_file_hash",
    "get_artifact_info",
    "log_artifacts",
    "upload_artifacts",
]
