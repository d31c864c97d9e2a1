"""Tests for publish/release.py module.

The GitHub REST API is mocked with respx.
"""

import json
from pathlib import Path

import httpx
import pytest
import respx

from android_kernel_builder.errors import InputValidationError
from android_kernel_builder.publish.release import (
    GitHubClient,
    ReleaseError,
    cleanup_old_releases,
    create_release,
    release_body,
    release_tag,
)
from android_kernel_builder.types import ArtifactInfo, FeatureFlags, ReleaseConfig

API = "https://api.github.com"
REPO_API = f"{API}/repos/owner/kernel"
UPLOAD_URL = "https://uploads.github.com/repos/owner/kernel/releases/1/assets{?name,label}"


def _config(build_dir: Path, **kwargs) -> ReleaseConfig:
    values = {
        "token": "ghp_test",
        "build_dir": build_dir,
        "kernel_url": "https://github.com/owner/android_kernel",
        "kernel_branch": "lineage-21",
        "config": "vendor/sm8250_defconfig",
        "arch": "arm64",
        "features": FeatureFlags(kernelsu=True, kvm=True),
        "repository": "owner/kernel",
        "sha": "abc123",
    }
    values.update(kwargs)
    return ReleaseConfig(**values)


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
    build = tmp_path / "build"
    build.mkdir()
    (build / "AnyKernel3-flasher.zip").write_bytes(b"zip")
    return build


class TestReleaseBody:
    """Tests for release_tag and release_body functions."""

    def test_tag(self):
        """Tags should be last-ci-<sha>."""
        assert release_tag("abc123") == "last-ci-abc123"
        assert release_tag(None) == "last-ci-local"

    def test_body(self, tmp_path: Path):
        """Should list build information and feature flags."""
        body = release_body(_config(tmp_path))

        assert "## Build information" in body
        assert "- Kernel: https://github.com/owner/android_kernel" in body
        assert "- Defconfig: vendor/sm8250_defconfig" in body
        assert "- KernelSU: true" in body
        assert "- NetHunter: false" in body
        assert "- KVM: true" in body
        assert "## SHA-256" not in body

    def test_body_with_checksums(self, tmp_path: Path):
        """Should add checksums when known."""
        assets = [ArtifactInfo(name="boot.img", path=tmp_path / "boot.img", size_bytes=1, sha256="deadbeef")]

        body = release_body(_config(tmp_path), assets)

        assert "- `boot.img`: `deadbeef`" in body


class TestCreateRelease:
    """Tests for create_release function."""

    @respx.mock
    def test_creates_and_uploads(self, build_dir: Path):
        """Should create the release and upload each file."""
        create = respx.post(f"{REPO_API}/releases").mock(
            return_value=httpx.Response(
                201,
                json={"id": 1, "html_url": "https://github.com/owner/kernel/releases/tag/last-ci-abc123", "upload_url": UPLOAD_URL},
            )
        )
        upload = respx.post("https://uploads.github.com/repos/owner/kernel/releases/1/assets").mock(
            return_value=httpx.Response(201, json={"id": 10})
        )

        with httpx.Client() as http:
            url = create_release(_config(build_dir), http=http)

        assert url.endswith("last-ci-abc123")
        payload = json.loads(create.calls[0].request.content)
        assert payload["tag_name"] == "last-ci-abc123"
        assert payload["name"] == "Last CI build kernel"
        assert payload["make_latest"] == "true"
        assert payload["target_commitish"] == "abc123"
        assert create.calls[0].request.headers["Authorization"] == "Bearer ghp_test"

        request = upload.calls[0].request
        assert request.url.params["name"] == "AnyKernel3-flasher.zip"
        assert request.headers["Content-Type"] == "application/octet-stream"
        assert request.content == b"zip"

    def test_requires_token(self, build_dir: Path):
        """Should refuse to release without a token."""
        with pytest.raises(InputValidationError, match="access-token is required when release is set to true"):
            create_release(_config(build_dir, token=""))

    def test_requires_repository(self, build_dir: Path):
        """Should refuse to release without a repository."""
        with pytest.raises(InputValidationError, match="GITHUB_REPOSITORY is not set"):
            create_release(_config(build_dir, repository=None))

    def test_requires_files(self, tmp_path: Path):
        """Should refuse to release an empty build directory."""
        (tmp_path / "build").mkdir()
        with pytest.raises(ReleaseError, match="No files to release"):
            create_release(_config(tmp_path / "build"))

    @respx.mock
    def test_api_error(self, build_dir: Path):
        """API failures should be wrapped."""
        respx.post(f"{REPO_API}/releases").mock(return_value=httpx.Response(422, json={"message": "already_exists"}))

        with httpx.Client() as http, pytest.raises(ReleaseError) as exc_info:
            create_release(_config(build_dir), http=http)

        assert str(exc_info.value).startswith("Failed to create release:")
        assert exc_info.value.code == "api_error"


class TestCleanupOldReleases:
    """Tests for cleanup_old_releases function."""

    @respx.mock
    def test_deletes_beyond_keep(self):
        """Should delete CI releases past the newest `keep` and leave others."""
        respx.get(f"{REPO_API}/releases").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"id": 5, "tag_name": "last-ci-e"},
                    {"id": 4, "tag_name": "v1.0"},
                    {"id": 3, "tag_name": "last-ci-c"},
                    {"id": 2, "tag_name": "last-ci-b"},
                    {"id": 1, "tag_name": "last-ci-a"},
                ],
            )
        )
        delete_release = respx.delete(url__regex=rf"{REPO_API}/releases/\d+").mock(return_value=httpx.Response(204))
        delete_tag = respx.delete(url__regex=rf"{REPO_API}/git/refs/tags/.+").mock(return_value=httpx.Response(204))

        with httpx.Client() as http:
            deleted = cleanup_old_releases("ghp_test", "owner/kernel", 2, http=http)

        assert deleted == ["last-ci-b", "last-ci-a"]
        assert [c.request.url.path.rsplit("/", 1)[1] for c in delete_release.calls] == ["2", "1"]
        assert delete_tag.calls[0].request.url.path.endswith("/git/refs/tags/last-ci-b")

    @respx.mock
    def test_failure_only_warns(self, caplog):
        """API failures should be logged, not raised."""
        respx.get(f"{REPO_API}/releases").mock(return_value=httpx.Response(500))

        with caplog.at_level("WARNING"), httpx.Client() as http:
            deleted = cleanup_old_releases("ghp_test", "owner/kernel", 1, http=http)

        assert deleted == []
        assert "Failed to cleanup old releases" in caplog.text


class TestGitHubClient:
    """Tests for GitHubClient class."""

    @respx.mock
    def test_headers(self):
        """Should send the REST API headers."""
        route = respx.get(f"{REPO_API}/releases").mock(return_value=httpx.Response(200, json=[]))

        with httpx.Client() as http:
            assert GitHubClient("t", "owner/kernel", http=http).list_releases() == []

        headers = route.calls[0].request.headers
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert route.calls[0].request.url.params["per_page"] == "100"
