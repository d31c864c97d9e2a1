"""Tests for the fetch module.

These tests use mocked HTTP responses to test downloading and build
real archives in tmp_path to test extraction.
"""

import hashlib
import io
import tarfile
import zipfile
from pathlib import Path

import httpx
import pytest
import respx

from android_kernel_builder.fetch import (
    DownloadError,
    ExtractionError,
    archive_format,
    download_file,
    extract_archive,
    extract_tar,
    extract_zip,
    url_filename,
)


def _make_tar(path: Path, files: dict[str, bytes], mode: str = "w:gz") -> Path:
    with tarfile.open(path, mode) as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return path


class TestArchiveFormat:
    """Tests for archive_format and url_filename."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("clang-r487747c.tar.gz", "tar"),
            ("toolchain.tgz", "tar"),
            ("gcc.tar.xz", "tar"),
            ("gcc.tar.bz2", "tar"),
            ("image.xz", "tar"),
            ("AnyKernel3.zip", "zip"),
            ("TOOLCHAIN.ZIP", "zip"),
            ("https://github.com/kdrag0n/proton-clang", None),
            ("boot.img", None),
        ],
    )
    def test_classifies_names(self, name, expected):
        """Should classify archives by suffix."""
        assert archive_format(name) == expected

    def test_url_query_is_ignored(self):
        """Should look at the URL path only."""
        assert archive_format("https://example.com/clang.tar.gz?raw=true") == "tar"
        assert url_filename("https://example.com/a/b/clang.tar.gz?raw=true") == "clang.tar.gz"


class TestDownloadFile:
    """Tests for download_file function."""

    @respx.mock
    def test_download_success(self, tmp_path: Path):
        """Should write the body and return its checksum and size."""
        content = b"kernel toolchain bytes"
        respx.get("https://example.com/clang.tar.gz").mock(return_value=httpx.Response(200, content=content))

        dest = tmp_path / "nested" / "clang.tar.gz"
        with httpx.Client() as client:
            result = download_file(client, "https://example.com/clang.tar.gz", dest)

        assert dest.read_bytes() == content
        assert result.path == dest
        assert result.size_bytes == len(content)
        assert result.checksum == hashlib.sha256(content).hexdigest()
        assert list(dest.parent.iterdir()) == [dest]

    @respx.mock
    def test_download_http_error(self, tmp_path: Path):
        """Should raise DownloadError with http_error code and leave no file."""
        respx.get("https://example.com/missing.img").mock(return_value=httpx.Response(404))

        dest = tmp_path / "missing.img"
        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            download_file(client, "https://example.com/missing.img", dest)

        assert exc_info.value.code == "http_error"
        assert "404" in str(exc_info.value)
        assert not dest.exists()

    @respx.mock
    def test_download_network_error(self, tmp_path: Path):
        """Should map connection failures to network_error."""
        respx.get("https://example.com/boot.img").mock(side_effect=httpx.ConnectError("refused"))

        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            download_file(client, "https://example.com/boot.img", tmp_path / "boot.img")

        assert exc_info.value.code == "network_error"

    @respx.mock
    def test_download_timeout(self, tmp_path: Path):
        """Should map timeouts to the timeout code."""
        respx.get("https://example.com/boot.img").mock(side_effect=httpx.ReadTimeout("slow"))

        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            download_file(client, "https://example.com/boot.img", tmp_path / "boot.img")

        assert exc_info.value.code == "timeout"

    @respx.mock
    def test_failed_download_keeps_existing_file(self, tmp_path: Path):
        """A failed download should not clobber a previous copy."""
        respx.get("https://example.com/boot.img").mock(side_effect=httpx.ReadTimeout("slow"))
        dest = tmp_path / "boot.img"
        dest.write_bytes(b"previous")

        with httpx.Client() as client, pytest.raises(DownloadError):
            download_file(client, "https://example.com/boot.img", dest)

        assert dest.read_bytes() == b"previous"
        assert list(tmp_path.iterdir()) == [dest]


class TestExtractTar:
    """Tests for extract_tar function."""

    def test_extracts_gzip(self, tmp_path: Path):
        """Should extract a gzip tarball."""
        archive = _make_tar(tmp_path / "clang.tar.gz", {"bin/clang": b"#!/bin/sh\n"})

        extract_tar(archive, tmp_path / "out")

        assert (tmp_path / "out" / "bin" / "clang").read_bytes() == b"#!/bin/sh\n"

    def test_extracts_xz(self, tmp_path: Path):
        """Should detect xz compression."""
        archive = _make_tar(tmp_path / "gcc.tar.xz", {"gcc/bin/aarch64-linux-gnu-gcc": b"x"}, mode="w:xz")

        extract_archive(archive, tmp_path / "out")

        assert (tmp_path / "out" / "gcc" / "bin" / "aarch64-linux-gnu-gcc").exists()

    def test_rejects_traversal(self, tmp_path: Path):
        """Should refuse members escaping the destination."""
        archive = _make_tar(tmp_path / "evil.tar.gz", {"../evil": b"x"})

        with pytest.raises(ExtractionError) as exc_info:
            extract_tar(archive, tmp_path / "out")

        assert exc_info.value.code == "path_traversal"
        assert not (tmp_path / "evil").exists()

    def test_empty_archive(self, tmp_path: Path):
        """Should refuse an empty tarball."""
        archive = _make_tar(tmp_path / "empty.tar.gz", {})

        with pytest.raises(ExtractionError) as exc_info:
            extract_tar(archive, tmp_path / "out")

        assert exc_info.value.code == "empty_archive"

    def test_corrupt_archive(self, tmp_path: Path):
        """Should wrap tarfile errors."""
        archive = tmp_path / "broken.tar.gz"
        archive.write_bytes(b"not a tarball")

        with pytest.raises(ExtractionError) as exc_info:
            extract_tar(archive, tmp_path / "out")

        assert exc_info.value.code == "tar_error"


class TestExtractZip:
    """Tests for extract_zip function."""

    def test_restores_permissions(self, tmp_path: Path):
        """Should keep executable bits stored in the zip."""
        archive = tmp_path / "tc.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            info = zipfile.ZipInfo("bin/clang")
            info.external_attr = 0o755 << 16
            zf.writestr(info, "#!/bin/sh\n")

        extract_zip(archive, tmp_path / "out")

        clang = tmp_path / "out" / "bin" / "clang"
        assert clang.read_text() == "#!/bin/sh\n"
        assert clang.stat().st_mode & 0o111

    def test_rejects_absolute_member(self, tmp_path: Path):
        """Should refuse absolute member names."""
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("/etc/passwd", "x")

        with pytest.raises(ExtractionError) as exc_info:
            extract_zip(archive, tmp_path / "out")

        assert exc_info.value.code == "path_traversal"

    def test_bad_zip(self, tmp_path: Path):
        """Should wrap BadZipFile."""
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"nope")

        with pytest.raises(ExtractionError) as exc_info:
            extract_zip(archive, tmp_path / "out")

        assert exc_info.value.code == "zip_error"


class TestExtractArchive:
    """Tests for extract_archive function."""

    def test_unsupported_format(self, tmp_path: Path):
        """Should refuse unknown file types."""
        archive = tmp_path / "boot.img"
        archive.write_bytes(b"ANDROID!")

        with pytest.raises(ExtractionError) as exc_info:
            extract_archive(archive, tmp_path / "out")

        assert exc_info.value.code == "unsupported_format"

    def test_remove_archive(self, tmp_path: Path):
        """Should delete the archive when asked."""
        archive = _make_tar(tmp_path / "tc.tar.gz", {"bin/ld": b"x"})

        extract_archive(archive, tmp_path / "out", remove_archive=True)

        assert not archive.exists()
        assert (tmp_path / "out" / "bin" / "ld").exists()
