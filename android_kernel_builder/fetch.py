"""Downloads and archive extraction.

This module handles:
- Streaming downloads with httpx
- Extraction of zip and tar (plain, gz, xz, bz2) archives with path
  traversal checks
"""

from __future__ import annotations

import hashlib
import logging
import os
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import httpx

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".gz", ".tar.xz", ".xz", ".tar.bz2", ".bz2")
ZIP_SUFFIXES = (".zip",)


class DownloadError(Exception):
    """Raised when a download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        """Initialize DownloadError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class ExtractionError(Exception):
    """Raised when archive extraction fails."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        """Initialize ExtractionError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


@dataclass
class DownloadResult:
    """Result of a download."""

    path: Path
    checksum: str
    size_bytes: int


def url_filename(url: str) -> str:
    """Return the last path component of a URL, without query string."""
    path = httpx.URL(url).path
    return PurePosixPath(path).name


def archive_format(name: str) -> str | None:
    """Classify a file or URL name by archive format.

    Args:
        name: File name or URL.

    Returns:
        "zip", "tar" or None when the name is not a known archive.
    """
    lowered = url_filename(name).lower() if "://" in name else name.lower()
    if lowered.endswith(ZIP_SUFFIXES):
        return "zip"
    if lowered.endswith(TAR_SUFFIXES):
        return "tar"
    return None


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Download a file.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, checksum, and size.

    Raises:
        DownloadError: If download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)
    part_path = dest_path.with_name(f".{dest_path.name}.part")

    try:
        with client.stream("GET", url, timeout=timeout, follow_redirects=True) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()

            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with part_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        part_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        part_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        part_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    os.replace(part_path, dest_path)
    checksum = sha256.hexdigest()
    logger.info(
        "Downloaded %s (%d bytes, checksum: %s)",
        dest_path.name,
        total_bytes,
        checksum[:16] + "...",
    )
    return DownloadResult(path=dest_path, checksum=checksum, size_bytes=total_bytes)


def _check_member_name(name: str, archive_path: Path) -> None:
    member_path = PurePosixPath(name)
    if member_path.is_absolute() or ".." in member_path.parts:
        raise ExtractionError(
            f"Refusing to extract {name} from {archive_path.name}: path traversal detected",
            code="path_traversal",
        )


def extract_zip(archive_path: Path, dest_dir: Path) -> Path:
    """Extract a zip archive.

    Unix permission bits stored in the archive are restored so extracted
    compiler binaries stay executable.

    Args:
        archive_path: Path to the archive file.
        dest_dir: Destination directory.

    Returns:
        The destination directory.

    Raises:
        ExtractionError: If extraction fails.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with zipfile.ZipFile(archive_path) as zf:
            members = zf.infolist()
            for member in members:
                _check_member_name(member.filename, archive_path)
            for member in members:
                extracted = Path(zf.extract(member, dest_dir))
                mode = (member.external_attr >> 16) & 0o777
                if mode and not member.is_dir():
                    extracted.chmod(mode)
    except zipfile.BadZipFile as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="zip_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    return dest_dir


def extract_tar(archive_path: Path, dest_dir: Path) -> Path:
    """Extract a tar archive, compressed or not.

    Args:
        archive_path: Path to the archive file.
        dest_dir: Destination directory.

    Returns:
        The destination directory.

    Raises:
        ExtractionError: If extraction fails.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        # "r:*" detects gzip, xz and bzip2 compression transparently
        with tarfile.open(archive_path, "r:*") as tar:
            members = tar.getmembers()
            if not members:
                raise ExtractionError(
                    f"Archive {archive_path} is empty",
                    code="empty_archive",
                )
            for member in members:
                _check_member_name(member.name, archive_path)
            tar.extractall(dest_dir, filter="data")
    except tarfile.TarError as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    return dest_dir


def extract_archive(archive_path: Path, dest_dir: Path, remove_archive: bool = False) -> Path:
    """Extract a zip or tar archive by its file name.

    Args:
        archive_path: Path to the archive file.
        dest_dir: Destination directory.
        remove_archive: Whether to remove the archive after extraction.

    Returns:
        The destination directory.

    Raises:
        ExtractionError: If the format is unknown or extraction fails.
    """
    fmt = archive_format(archive_path.name)
    if fmt == "zip":
        extract_zip(archive_path, dest_dir)
    elif fmt == "tar":
        extract_tar(archive_path, dest_dir)
    else:
        raise ExtractionError(
            f"Unsupported archive format: {archive_path.name}",
            code="unsupported_format",
        )

    if remove_archive:
        archive_path.unlink()
        logger.debug("Removed archive %s", archive_path)

    return dest_dir


__all__ = [
    "DOWNLOAD_TIMEOUT",
    "DownloadError",
    "DownloadResult",
    "ExtractionError",
    "archive_format",
    "download_file",
    "extract_archive",
    "extract_tar",
    "extract_zip",
    "url_filename",
]
