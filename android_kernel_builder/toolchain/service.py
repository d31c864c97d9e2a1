"""Toolchain acquisition.

Toolchains are installed under the home directory as ``clang``,
``gcc-64`` and ``gcc-32``. Archive URLs are downloaded and extracted,
anything else is treated as a git repository and shallow-cloned.
"""

from __future__ import annotations

import dataclasses
import logging
import tempfile
from pathlib import Path

import httpx

from android_kernel_builder.errors import InputValidationError, reject_leading_hyphen
from android_kernel_builder.fetch import archive_format, download_file, extract_archive, url_filename
from android_kernel_builder.process import CommandRunner
from android_kernel_builder.toolchain.normalize import (
    GCC32_DIR,
    GCC64_DIR,
    normalize_gcc_dirs,
    normalize_toolchain_dir,
)
from android_kernel_builder.types import ToolchainConfig, ToolchainPaths

logger = logging.getLogger(__name__)

CLANG_DIR = "clang"

AOSP_CLANG_URL = (
    "https://android.googlesource.com/platform/prebuilts/clang/host/linux-x86"
    "/+archive/refs/heads/{branch}/{name}.tar.gz"
)
AOSP_CLANG_MAIN_BRANCH = "mirror-goog-main-llvm-toolchain-source"

AOSP_GCC64_URL = (
    "https://android.googlesource.com/platform/prebuilts/gcc/linux-x86/aarch64/aarch64-linux-android-4.9"
)
AOSP_GCC32_URL = (
    "https://android.googlesource.com/platform/prebuilts/gcc/linux-x86/arm/arm-linux-androideabi-4.9"
)
# Last release branch shipping the GCC prebuilts
AOSP_GCC_DEFAULT_BRANCH = "android11-release"

SYSTEM_GCC64_PREFIX = "aarch64-linux-gnu"
SYSTEM_GCC32_PREFIX = "arm-linux-gnueabihf"


def get_system_toolchain_paths() -> ToolchainPaths:
    """Return the toolchain description for the distribution cross compilers."""
    return ToolchainPaths(
        gcc64_prefix=SYSTEM_GCC64_PREFIX,
        gcc32_prefix=SYSTEM_GCC32_PREFIX,
    )


def aosp_clang_url(version: str, android_version: str = "") -> str:
    """Build the download URL of an AOSP Clang prebuilt.

    Args:
        version: Clang revision, e.g. "r487747c".
        android_version: Android release whose branch to use; the LLVM
            toolchain mirror branch is used when empty.

    Returns:
        Archive URL on android.googlesource.com.
    """
    branch = f"android{android_version}-release" if android_version else AOSP_CLANG_MAIN_BRANCH
    name = version if version.startswith("clang-") else f"clang-{version}"
    return AOSP_CLANG_URL.format(branch=branch, name=name)


def download_and_extract(
    runner: CommandRunner,
    client: httpx.Client,
    url: str,
    dest: Path,
    branch: str | None = None,
    name: str | None = None,
) -> Path:
    """Fetch a toolchain into dest.

    Archives (zip, tar, gz, xz, bz2) are downloaded and extracted; any
    other URL is cloned with ``git clone --depth=1``.

    Args:
        runner: Command runner.
        client: HTTPX client instance.
        url: Archive or repository URL.
        dest: Target directory.
        branch: Branch to clone (repositories only).
        name: Label used in log messages.

    Returns:
        The target directory.

    Raises:
        InputValidationError: If url or branch look like options.
        DownloadError: If a download fails.
        ExtractionError: If extraction fails.
        CommandError: If git fails.
    """
    label = name or dest.name
    reject_leading_hyphen(url, f"{label} url")

    if archive_format(url) is not None:
        logger.info("Downloading %s toolchain from %s", label, url)
        with tempfile.TemporaryDirectory(prefix="akb-") as tmp:
            archive = Path(tmp) / url_filename(url)
            download_file(client, url, archive)
            extract_archive(archive, dest)
        return dest

    logger.info("Cloning %s toolchain from %s", label, url)
    dest.parent.mkdir(parents=True, exist_ok=True)
    cmd = ["git", "clone", "--depth=1"]
    if branch:
        reject_leading_hyphen(branch, f"{label} branch")
        cmd += ["-b", branch]
    cmd += ["--", url, str(dest)]
    runner.run(cmd)
    return dest


def setup_toolchains(
    runner: CommandRunner,
    client: httpx.Client,
    config: ToolchainConfig,
    home: Path,
) -> ToolchainPaths:
    """Install the selected toolchains.

    Args:
        runner: Command runner.
        client: HTTPX client instance.
        config: Toolchain selection.
        home: Directory to install toolchains into.

    Returns:
        ToolchainPaths of the installed toolchains. When nothing was
        installed the distribution cross compilers are described instead.

    Raises:
        InputValidationError: If AOSP Clang is selected without AOSP GCC.
    """
    if config.aosp_clang and not config.aosp_gcc:
        raise InputValidationError(
            "AOSP GCC is required when using AOSP Clang",
            code="aosp_gcc_required",
        )

    clang_path: Path | None = None
    if config.aosp_clang:
        clang_path = home / CLANG_DIR
        url = aosp_clang_url(config.aosp_clang_version, config.android_version)
        download_and_extract(runner, client, url, clang_path, name="AOSP Clang")
    elif config.other_clang_url:
        clang_path = home / CLANG_DIR
        download_and_extract(
            runner,
            client,
            config.other_clang_url,
            clang_path,
            branch=config.other_clang_branch or None,
            name="Clang",
        )
    if clang_path is not None:
        normalize_toolchain_dir(clang_path, "Clang")

    if config.aosp_gcc:
        branch = (
            f"android{config.android_version}-release"
            if config.android_version
            else AOSP_GCC_DEFAULT_BRANCH
        )
        download_and_extract(runner, client, AOSP_GCC64_URL, home / GCC64_DIR, branch=branch, name="AOSP GCC 64")
        download_and_extract(runner, client, AOSP_GCC32_URL, home / GCC32_DIR, branch=branch, name="AOSP GCC 32")
    else:
        if config.other_gcc64_url:
            download_and_extract(
                runner,
                client,
                config.other_gcc64_url,
                home / GCC64_DIR,
                branch=config.other_gcc64_branch or None,
                name="GCC 64",
            )
        if config.other_gcc32_url:
            download_and_extract(
                runner,
                client,
                config.other_gcc32_url,
                home / GCC32_DIR,
                branch=config.other_gcc32_branch or None,
                name="GCC 32",
            )

    gcc = normalize_gcc_dirs(home)
    system = get_system_toolchain_paths()

    if clang_path is None and gcc.gcc64_path is None and gcc.gcc32_path is None:
        logger.info("No toolchain selected, using the system toolchain")
        return system

    return dataclasses.replace(
        gcc,
        clang_path=clang_path,
        gcc64_prefix=gcc.gcc64_prefix or system.gcc64_prefix,
        gcc32_prefix=gcc.gcc32_prefix or system.gcc32_prefix,
    )


__all__ = [
    "AOSP_CLANG_MAIN_BRANCH",
    "AOSP_GCC32_URL",
    "AOSP_GCC64_URL",
    "CLANG_DIR",
    "SYSTEM_GCC32_PREFIX",
    "SYSTEM_GCC64_PREFIX",
    "aosp_clang_url",
    "download_and_extract",
    "get_system_toolchain_paths",
    "setup_toolchains",
]
