"""Kernel source tree helpers.

This module handles:
- Cloning the kernel and an optional vendor tree
- Reading the kernel version from the top-level Makefile
- Resolving defconfig, output and boot image paths
- Locating the kernel image, DTB and DTBO produced by a build
- Providing mkdtboimg for trees that still call it with Python 2
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from android_kernel_builder.errors import PathTraversalError, reject_leading_hyphen
from android_kernel_builder.process import CommandRunner
from android_kernel_builder.types import KernelVersion

logger = logging.getLogger(__name__)

# Image names in order of preference: images with an appended DTB first,
# then compressed images, then raw images.
KERNEL_IMAGE_CANDIDATES = (
    "Image.gz-dtb",
    "Image.lz4-dtb",
    "zImage-dtb",
    "Image-dtb",
    "Image.gz",
    "Image.lz4",
    "Image.bz2",
    "Image.lzma",
    "zImage",
    "bzImage",
    "Image",
)

DTB_CANDIDATES = ("dtb", "dtb.img")
DTBO_CANDIDATES = ("dtbo.img",)

_MAKEFILE_FIELD = re.compile(r"^(VERSION|PATCHLEVEL|SUBLEVEL)\s*=\s*(\d+)", re.MULTILINE)


class KernelSourceError(Exception):
    """Raised when the kernel tree is missing something required."""

    def __init__(self, message: str, code: str = "kernel_source_error") -> None:
        super().__init__(message)
        self.code = code


def clone_kernel(
    runner: CommandRunner,
    url: str,
    branch: str,
    depth: int,
    dest: Path,
) -> None:
    """Clone the kernel repository with its submodules.

    Args:
        runner: Command runner.
        url: Repository URL.
        branch: Branch or tag to check out.
        depth: Clone depth; 0 clones the full history.
        dest: Target directory.

    Raises:
        InputValidationError: If url or branch look like options.
        CommandError: If git fails.
    """
    reject_leading_hyphen(url, "kernel-url")
    reject_leading_hyphen(branch, "kernel-branch")
    dest.parent.mkdir(parents=True, exist_ok=True)

    cmd = ["git", "clone", "--recursive", "-b", branch]
    if depth > 0:
        cmd += ["--depth", str(depth)]
    cmd += ["--", url, str(dest)]
    runner.run(cmd)


def clone_vendor(
    runner: CommandRunner,
    url: str,
    branch: str,
    depth: int,
    dest: Path,
    kernel_dir: Path,
    workspace_dir: Path,
) -> None:
    """Clone a vendor repository and merge its ``vendor`` directory.

    The ``vendor`` directory of the clone is copied into both the kernel
    tree and the workspace root, which is where vendor defconfigs and
    firmware paths are expected by different kernel trees.

    Args:
        runner: Command runner.
        url: Repository URL.
        branch: Branch to check out.
        depth: Clone depth; 0 clones the full history.
        dest: Directory to clone into.
        kernel_dir: Kernel source directory.
        workspace_dir: Workspace root.
    """
    reject_leading_hyphen(url, "vendor-url")
    reject_leading_hyphen(branch, "vendor-branch")

    cmd = ["git", "clone", "-b", branch]
    if depth > 0:
        cmd += ["--depth", str(depth)]
    cmd += ["--", url, str(dest)]
    runner.run(cmd)

    vendor_src = dest / "vendor"
    if vendor_src.is_dir():
        logger.info("Copying vendor directory to kernel and root")
        shutil.copytree(vendor_src, kernel_dir / "vendor", dirs_exist_ok=True)
        shutil.copytree(vendor_src, workspace_dir / "vendor", dirs_exist_ok=True)


def get_kernel_version(kernel_dir: Path) -> KernelVersion:
    """Read VERSION, PATCHLEVEL and SUBLEVEL from the kernel Makefile.

    Missing fields read as 0.

    Args:
        kernel_dir: Kernel source directory.

    Returns:
        Parsed KernelVersion.

    Raises:
        KernelSourceError: If the Makefile does not exist.
    """
    makefile = kernel_dir / "Makefile"
    if not makefile.is_file():
        raise KernelSourceError(f"Makefile not found in {kernel_dir}", code="no_makefile")

    fields: dict[str, int] = {}
    for name, value in _MAKEFILE_FIELD.findall(makefile.read_text(errors="replace")):
        fields.setdefault(name, int(value))

    version = KernelVersion(
        version=fields.get("VERSION", 0),
        patchlevel=fields.get("PATCHLEVEL", 0),
        sublevel=fields.get("SUBLEVEL", 0),
    )
    logger.info("Kernel version: %s (GKI: %s)", version, version.is_gki)
    return version


def get_config_path(kernel_dir: Path, arch: str, config: str) -> Path:
    """Return the defconfig path ``arch/<arch>/configs/<config>``.

    Args:
        kernel_dir: Kernel source directory.
        arch: Kernel architecture.
        config: Defconfig name, may contain subdirectories.

    Returns:
        Path of the defconfig file.

    Raises:
        PathTraversalError: If arch or config contain "..".
    """
    if ".." in arch or ".." in config:
        raise PathTraversalError(f"Invalid arch or config: path traversal detected ({arch}/{config})")
    return kernel_dir / "arch" / arch / "configs" / config


def config_exists(kernel_dir: Path, arch: str, config: str) -> bool:
    """Whether the defconfig exists in the kernel tree."""
    return get_config_path(kernel_dir, arch, config).is_file()


def get_out_dir(kernel_dir: Path) -> Path:
    """Return the build output directory of a kernel tree."""
    return kernel_dir / "out"


def get_boot_dir(kernel_dir: Path, arch: str) -> Path:
    """Return the directory the build places boot images in."""
    return get_out_dir(kernel_dir) / "arch" / arch / "boot"


def _first_existing(directory: Path, names: tuple[str, ...]) -> Path | None:
    for name in names:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def find_kernel_image(kernel_dir: Path, arch: str) -> Path | None:
    """Locate the kernel image produced by a build.

    Args:
        kernel_dir: Kernel source directory.
        arch: Kernel architecture.

    Returns:
        Path of the preferred image, or None if none was built.
    """
    return _first_existing(get_boot_dir(kernel_dir, arch), KERNEL_IMAGE_CANDIDATES)


def find_dtb_file(kernel_dir: Path, arch: str) -> Path | None:
    """Locate a combined DTB produced by a build."""
    return _first_existing(get_boot_dir(kernel_dir, arch), DTB_CANDIDATES)


def find_dtbo_file(kernel_dir: Path, arch: str) -> Path | None:
    """Locate a DTBO image produced by a build."""
    return _first_existing(get_boot_dir(kernel_dir, arch), DTBO_CANDIDATES)


def setup_mkdtboimg(
    runner: CommandRunner,
    kernel_dir: Path,
    resources_dir: Path,
    sudo: list[str] | None = None,
) -> None:
    """Provide a Python 3 mkdtboimg.py for trees that need one.

    Trees whose ``scripts/Makefile.lib`` runs mkdtboimg with python2 get
    their in-tree copy replaced. Trees that use the ufdt copy get it
    installed at ``ufdt/libufdt/utils/src``. Otherwise it is installed as
    ``/usr/local/bin/mkdtboimg``.

    Args:
        runner: Command runner.
        kernel_dir: Kernel source directory.
        resources_dir: Directory holding the bundled mkdtboimg.py.
        sudo: Command prefix used for the system-wide install.
    """
    bundled = resources_dir / "mkdtboimg.py"
    if not bundled.is_file():
        logger.warning("Bundled mkdtboimg.py not found in %s", resources_dir)
        return

    makefile_lib = kernel_dir / "scripts" / "Makefile.lib"
    content = makefile_lib.read_text(errors="replace") if makefile_lib.is_file() else ""

    if "python2" in content:
        target = kernel_dir / "scripts" / "dtc" / "libfdt" / "mkdtboimg.py"
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(bundled, target)
        logger.info("Replaced %s with a Python 3 version", target)
    elif "ufdt" in content:
        target_dir = kernel_dir / "ufdt" / "libufdt" / "utils" / "src"
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(bundled, target_dir / "mkdtboimg.py")
        logger.info("Installed mkdtboimg.py into %s", target_dir)
    else:
        runner.run([*(sudo or []), "cp", "-v", str(bundled), "/usr/local/bin/mkdtboimg"])
        runner.run([*(sudo or []), "chmod", "+x", "/usr/local/bin/mkdtboimg"])


__all__ = [
    "DTBO_CANDIDATES",
    "DTB_CANDIDATES",
    "KERNEL_IMAGE_CANDIDATES",
    "KernelSourceError",
    "clone_kernel",
    "clone_vendor",
    "config_exists",
    "find_dtb_file",
    "find_dtbo_file",
    "find_kernel_image",
    "get_boot_dir",
    "get_config_path",
    "get_kernel_version",
    "get_out_dir",
    "setup_mkdtboimg",
]
