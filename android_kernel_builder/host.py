"""Host environment checks and system package installation."""

from __future__ import annotations

import logging
import os
import platform
import sys
from collections.abc import Sequence
from pathlib import Path

from android_kernel_builder import actions
from android_kernel_builder.errors import InputValidationError
from android_kernel_builder.process import CommandResult, CommandRunner
from android_kernel_builder.types import PackageManager

logger = logging.getLogger(__name__)

APT_PACKAGES = (
    "git",
    "make",
    "bc",
    "bison",
    "flex",
    "ccache",
    "cpio",
    "curl",
    "zip",
    "unzip",
    "python3",
    "libssl-dev",
    "libelf-dev",
    "libncurses-dev",
    "device-tree-compiler",
    "lz4",
    "xz-utils",
    "zstd",
    "rsync",
    "opam",
    "build-essential",
    "binutils-aarch64-linux-gnu",
    "binutils-arm-linux-gnueabihf",
    "gcc-aarch64-linux-gnu",
    "gcc-arm-linux-gnueabihf",
)

PACMAN_PACKAGES = (
    "git",
    "make",
    "bc",
    "bison",
    "flex",
    "ccache",
    "cpio",
    "curl",
    "zip",
    "unzip",
    "python",
    "openssl",
    "libelf",
    "ncurses",
    "dtc",
    "lz4",
    "xz",
    "zstd",
    "rsync",
    "opam",
    "base-devel",
    "aarch64-linux-gnu-gcc",
)

APT_CLANG_PACKAGES = ("clang", "lld")
APT_BINUTILS_PACKAGES = ("binutils-aarch64-linux-gnu", "binutils-arm-linux-gnueabihf")
PACMAN_CLANG_PACKAGES = ("clang", "lld", "llvm")

_HOST_ARCHS = {
    "aarch64": "arm",
    "arm64": "arm",
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
}


def detect_host_arch(machine: str | None = None) -> str:
    """Return the host architecture name used to pick prebuilt binaries.

    Args:
        machine: Machine name; defaults to ``platform.machine()``.

    Returns:
        ``arm`` for ARM hosts, ``x86_64`` for 64-bit x86, otherwise the
        machine name unchanged.
    """
    machine = (machine or platform.machine()).lower()
    if machine.startswith("arm"):
        return "arm"
    return _HOST_ARCHS.get(machine, machine)


def detect_package_manager(root: Path = Path("/")) -> PackageManager:
    """Detect the system package manager from its binary location."""
    for manager in (PackageManager.APT, PackageManager.PACMAN):
        if any((root / d / manager.value).exists() for d in ("usr/bin", "bin")):
            return manager
    return PackageManager.UNKNOWN


def check_environment(root: Path = Path("/")) -> PackageManager:
    """Ensure the run happens on a GitHub Actions Linux runner.

    Returns:
        The detected package manager.

    Raises:
        InputValidationError: Outside GitHub Actions, on a non-Linux host or
            without apt or pacman.
    """
    manager = detect_package_manager(root)
    if not actions.is_github_actions() or not sys.platform.startswith("linux") or manager is PackageManager.UNKNOWN:
        raise InputValidationError(
            "This action requires GitHub Actions Linux runners",
            code="unsupported_environment",
        )
    return manager


def is_root() -> bool:
    """Whether the process runs as root. False where uids do not exist."""
    getuid = getattr(os, "getuid", None)
    return getuid is not None and getuid() == 0


def sudo_prefix() -> list[str]:
    """Return ``["sudo"]`` unless running as root."""
    return [] if is_root() else ["sudo"]


def sudo_exec(runner: CommandRunner, args: Sequence[str], **kwargs) -> CommandResult:
    """Run a command with sudo unless already root."""
    return runner.run([*sudo_prefix(), *args], **kwargs)


def _require_manager(manager: PackageManager | None) -> PackageManager:
    manager = manager or detect_package_manager()
    if manager is PackageManager.UNKNOWN:
        raise InputValidationError("No supported package manager found", code="unknown_package_manager")
    return manager


def install_dependencies(runner: CommandRunner, manager: PackageManager | None = None) -> None:
    """Install the packages needed to build a kernel.

    Raises:
        InputValidationError: If no supported package manager is found.
        CommandError: If the package manager fails.
    """
    manager = _require_manager(manager)
    with actions.group("Installing dependencies"):
        if manager is PackageManager.APT:
            sudo_exec(runner, ["apt-get", "update"])
            sudo_exec(runner, ["apt-get", "install", "--no-install-recommends", "-y", *APT_PACKAGES])
        else:
            sudo_exec(runner, ["pacman", "-Syyu", "--noconfirm"])
            sudo_exec(runner, ["pacman", "-S", "--noconfirm", "--needed", *PACMAN_PACKAGES])


def install_system_clang(runner: CommandRunner, manager: PackageManager | None = None) -> None:
    """Install the distribution Clang and LLD."""
    manager = _require_manager(manager)
    with actions.group("Installing system Clang"):
        if manager is PackageManager.APT:
            sudo_exec(runner, ["apt-get", "install", "-y", *APT_CLANG_PACKAGES])
            sudo_exec(runner, ["apt-get", "install", "-y", *APT_BINUTILS_PACKAGES])
        else:
            sudo_exec(runner, ["pacman", "-S", "--noconfirm", *PACMAN_CLANG_PACKAGES])


__all__ = [
    "APT_PACKAGES",
    "PACMAN_PACKAGES",
    "check_environment",
    "detect_host_arch",
    "detect_package_manager",
    "install_dependencies",
    "install_system_clang",
    "is_root",
    "sudo_exec",
    "sudo_prefix",
]
