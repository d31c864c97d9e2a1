"""Workspace cleanup.

Cleanup is best effort: a path that cannot be removed is reported as a
warning and the remaining steps still run.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from android_kernel_builder import actions
from android_kernel_builder.builds.cache import clear_ccache
from android_kernel_builder.packaging.packager import ANYKERNEL3_DIR, BOOT_IMAGE, MAGISKBOOT, SPLIT_DIR
from android_kernel_builder.process import CommandError, CommandRunner
from android_kernel_builder.toolchain.normalize import GCC32_DIR, GCC64_DIR
from android_kernel_builder.toolchain.service import CLANG_DIR

logger = logging.getLogger(__name__)

BUILD_ENV_VARS = (
    "CMD_PATH",
    "CMD_CC",
    "CMD_CROSS_COMPILE",
    "CMD_CROSS_COMPILE_ARM32",
    "CMD_CLANG_TRIPLE",
    "USE_CCACHE",
    "CCACHE_DIR",
)


@dataclass
class CleanOptions:
    """What clean_all removes besides the kernel and build directories.

    Attributes:
        kernel_dir: Kernel source directory.
        build_dir: Build output directory.
        work_dir: Directory holding AnyKernel3, boot.img and magiskboot.
        home: Directory the toolchains are installed in.
        toolchains: Remove the installed toolchains.
        ccache: Clear the ccache.
        env: Unset the build environment variables.
    """

    kernel_dir: Path = field(default_factory=lambda: Path("kernel"))
    build_dir: Path = field(default_factory=lambda: Path("build"))
    work_dir: Path = field(default_factory=Path.cwd)
    home: Path = field(default_factory=Path.home)
    toolchains: bool = False
    ccache: bool = False
    env: bool = False


def _remove_dir(path: Path) -> bool:
    if not path.is_dir():
        return False
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
        return False
    return True


def _remove_file(path: Path) -> bool:
    if not path.is_file() and not path.is_symlink():
        return False
    try:
        path.unlink()
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
        return False
    return True


def clean_kernel_source(kernel_dir: Path) -> bool:
    """Remove the kernel source tree."""
    if kernel_dir.is_dir():
        logger.info("Removing kernel source: %s", kernel_dir)
    return _remove_dir(kernel_dir)


def clean_build_artifacts(build_dir: Path) -> bool:
    """Remove the build output directory."""
    if build_dir.is_dir():
        logger.info("Removing build directory: %s", build_dir)
    return _remove_dir(build_dir)


def clean_toolchains(home: Path) -> list[Path]:
    """Remove the installed Clang and GCC toolchains.

    Returns:
        The directories that were removed.
    """
    removed = []
    for name in (CLANG_DIR, GCC64_DIR, GCC32_DIR):
        path = home / name
        if _remove_dir(path):
            logger.info("Removed toolchain: %s", path)
            removed.append(path)
    return removed


def clean_anykernel3(work_dir: Path) -> bool:
    """Remove the AnyKernel3 checkout."""
    return _remove_dir(work_dir / ANYKERNEL3_DIR)


def clean_env_vars(names: Iterable[str] = BUILD_ENV_VARS) -> None:
    """Unset build environment variables of the current process."""
    for name in names:
        os.environ.pop(name, None)


def clean_temp_files(work_dir: Path) -> list[Path]:
    """Remove the downloaded boot image and magiskboot."""
    return [path for path in (work_dir / BOOT_IMAGE, work_dir / MAGISKBOOT) if _remove_file(path)]


def clean_split_dir(work_dir: Path) -> bool:
    """Remove the magiskboot unpack directory."""
    return _remove_dir(work_dir / SPLIT_DIR)


def clean_all(options: CleanOptions, runner: CommandRunner | None = None) -> None:
    """Remove everything a run left behind.

    Args:
        options: What to clean.
        runner: Command runner, needed to clear the ccache.
    """
    with actions.group("Cleaning up"):
        clean_kernel_source(options.kernel_dir)
        clean_build_artifacts(options.build_dir)
        clean_anykernel3(options.work_dir)
        clean_temp_files(options.work_dir)
        clean_split_dir(options.work_dir)

        if options.toolchains:
            clean_toolchains(options.home)

        if options.ccache:
            try:
                clear_ccache(runner or CommandRunner())
            except CommandError as e:
                logger.warning("Failed to clear ccache: %s", e)

        if options.env:
            clean_env_vars()


__all__ = [
    "BUILD_ENV_VARS",
    "CleanOptions",
    "clean_all",
    "clean_anykernel3",
    "clean_build_artifacts",
    "clean_env_vars",
    "clean_kernel_source",
    "clean_split_dir",
    "clean_temp_files",
    "clean_toolchains",
]
