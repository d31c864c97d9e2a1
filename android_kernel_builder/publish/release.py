"""GitHub release publishing.

This module handles:
- Creating a ``last-ci-<sha>`` release and uploading the build directory
  as its assets
- Pruning old CI releases and their tags

The GitHub REST API is called directly with httpx.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from android_kernel_builder.errors import InputValidationError
from android_kernel_builder.publish.artifacts import get_artifact_info
from android_kernel_builder.types import ArtifactInfo, ReleaseConfig

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
CI_TAG_PREFIX = "last-ci-"
RELEASE_NAME = "Last CI build kernel"
API_TIMEOUT = 60.0
UPLOAD_TIMEOUT = 600.0


class ReleaseError(Exception):
    """Raised when a release cannot be published."""

    def __init__(self, message: str, code: str = "release_error") -> None:
        super().__init__(message)
        self.code = code


class GitHubClient:
    """Minimal client for the GitHub releases API.

    Attributes:
        repository: ``owner/repo`` slug.
    """

    def __init__(
        self,
        token: str,
        repository: str,
        api_url: str = GITHUB_API_URL,
        http: httpx.Client | None = None,
    ) -> None:
        self.repository = repository
        self._api_url = api_url.rstrip("/")
        self._http = http or httpx.Client(timeout=API_TIMEOUT)
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _url(self, path: str) -> str:
        return f"{self._api_url}/repos/{self.repository}/{path}"

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        response = self._http.request(method, url, headers=headers, **kwargs)
        response.raise_for_status()
        return response

    def create_release(self, tag: str, name: str, body: str, target: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "tag_name": tag,
            "name": name,
            "body": body,
            "make_latest": "true",
        }
        if target:
            payload["target_commitish"] = target
        return self._request("POST", self._url("releases"), json=payload).json()

    def upload_asset(self, upload_url: str, path: Path) -> dict[str, Any]:
        # upload_url is a URI template: .../assets{?name,label}
        url = upload_url.split("{", 1)[0]
        response = self._request(
            "POST",
            url,
            params={"name": path.name},
            content=path.read_bytes(),
            headers={"Content-Type": "application/octet-stream"},
            timeout=UPLOAD_TIMEOUT,
        )
        return response.json()

    def list_releases(self, per_page: int = 100) -> list[dict[str, Any]]:
        return self._request("GET", self._url("releases"), params={"per_page": per_page}).json()

    def delete_release(self, release_id: int) -> None:
        self._request("DELETE", self._url(f"releases/{release_id}"))

    def delete_tag(self, tag: str) -> None:
        self._request("DELETE", self._url(f"git/refs/tags/{tag}"))


def release_tag(sha: str | None) -> str:
    """Return the tag of the CI release for a commit."""
    return f"{CI_TAG_PREFIX}{sha or 'local'}"


def release_body(config: ReleaseConfig, assets: list[ArtifactInfo] | None = None) -> str:
    """Render the release notes.

    Args:
        config: Release configuration.
        assets: Uploaded files; listed with their checksums when known.

    Returns:
        Markdown text.
    """
    features = config.features
    lines = [
        "## Build information",
        "",
        f"- Kernel: {config.kernel_url}",
        f"- Branch: {config.kernel_branch}",
        f"- Defconfig: {config.config}",
        f"- Architecture: {config.arch}",
        "",
        "## Features",
        "",
        f"- KernelSU: {str(features.kernelsu).lower()}",
        f"- NetHunter: {str(features.nethunter).lower()}",
        f"- LXC: {str(features.lxc).lower()}",
        f"- KVM: {str(features.kvm).lower()}",
        f"- Re-Kernel: {str(features.rekernel).lower()}",
        f"- Baseband-guard: {str(features.bbg).lower()}",
    ]
    checksums = [a for a in assets or [] if a.sha256]
    if checksums:
        lines += ["", "## SHA-256", ""]
        lines += [f"- `{a.name}`: `{a.sha256}`" for a in checksums]
    return "\n".join(lines) + "\n"


def _client_for(config: ReleaseConfig, api_url: str, http: httpx.Client | None) -> GitHubClient:
    if not config.repository:
        raise InputValidationError("GITHUB_REPOSITORY is not set", code="missing_repository")
    return GitHubClient(config.token, config.repository, api_url=api_url, http=http)


def create_release(
    config: ReleaseConfig,
    api_url: str = GITHUB_API_URL,
    http: httpx.Client | None = None,
) -> str:
    """Publish the build directory as a GitHub release.

    Args:
        config: Release configuration.
        api_url: Base URL of the GitHub REST API.
        http: HTTPX client; a new one is created when omitted.

    Returns:
        The HTML URL of the release.

    Raises:
        InputValidationError: If the token or repository is missing.
        ReleaseError: If there is nothing to release or the API call fails.
    """
    if not config.token:
        raise InputValidationError(
            "access-token is required when release is set to true",
            code="missing_token",
        )

    assets = get_artifact_info(config.build_dir, with_checksum=True)
    if not assets:
        raise ReleaseError("No files to release", code="no_files")

    client = _client_for(config, api_url, http)
    tag = release_tag(config.sha)

    try:
        release = client.create_release(tag, RELEASE_NAME, release_body(config, assets), config.sha)
        logger.info("Created release: %s", release.get("html_url", tag))
        for asset in assets:
            client.upload_asset(release["upload_url"], asset.path)
            logger.info("Uploaded: %s", asset.name)
    except (httpx.HTTPError, KeyError) as e:
        raise ReleaseError(f"Failed to create release: {e}", code="api_error") from e

    return release.get("html_url", tag)


def cleanup_old_releases(
    token: str,
    repository: str,
    keep: int,
    api_url: str = GITHUB_API_URL,
    http: httpx.Client | None = None,
) -> list[str]:
    """Delete CI releases beyond the newest ``keep`` and their tags.

    Releases whose tag does not start with ``last-ci-`` are never touched.
    Failures are logged as warnings.

    Args:
        token: GitHub token.
        repository: ``owner/repo`` slug.
        keep: Number of CI releases to keep.
        api_url: Base URL of the GitHub REST API.
        http: HTTPX client; a new one is created when omitted.

    Returns:
        Tags of the deleted releases.
    """
    client = GitHubClient(token, repository, api_url=api_url, http=http)
    deleted: list[str] = []
    try:
        # The API lists releases newest first
        ci_releases = [
            r for r in client.list_releases() if str(r.get("tag_name", "")).startswith(CI_TAG_PREFIX)
        ]
        for release in ci_releases[keep:]:
            tag = release["tag_name"]
            client.delete_release(release["id"])
            client.delete_tag(tag)
            deleted.append(tag)
            logger.info("Deleted old release: %s", tag)
    except (httpx.HTTPError, KeyError) as e:
        logger.warning("Failed to cleanup old releases: %s", e)
    return deleted


__all__ = [
    "CI_TAG_PREFIX",
    "GITHUB_API_URL",
    "GitHubClient",
    "RELEASE_NAME",
    "ReleaseError",
    "cleanup_old_releases",
    "create_release",
    "release_body",
    "release_tag",
]
