"""Packaging of a built kernel.

A kernel is shipped either as an AnyKernel3 flasher (zip for releases,
plain tree otherwise) or as a repacked ``boot.img``, in which case the
stock boot image is unpacked with magiskboot and its kernel replaced.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

import httpx

from android_kernel_builder.errors import InputValidationError, reject_leading_hyphen
from android_kernel_builder.fetch import download_file
from android_kernel_builder.kernel.source import (
    find_dtb_file,
    find_dtbo_file,
    find_kernel_image,
    get_boot_dir,
)
from android_kernel_builder.process import CommandRunner
from android_kernel_builder.types import PackageConfig

logger = logging.getLogger(__name__)

ANYKERNEL3_DEFAULT_URL = "https://github.com/osm0sis/AnyKernel3"
ANYKERNEL3_DIR = "AnyKernel3"
FLASHER_ZIP = "AnyKernel3-flasher.zip"
ANYKERNEL3_REMOVED = (".git", ".gitattributes", ".gitignore", "README.md")

BOOT_IMAGE = "boot.img"
MAGISKBOOT = "magiskboot"
SPLIT_DIR = "split"
REPACKED_IMAGE = "new-boot.img"

_GENERIC_ANYKERNEL = (
    (re.compile(r"^BLOCK=.*;$", re.MULTILINE), "BLOCK=auto;"),
    (re.compile(r"^do\.devicecheck=1$", re.MULTILINE), "do.devicecheck=0"),
    (re.compile(r"^IS_SLOT_DEVICE=.*;$", re.MULTILINE), "IS_SLOT_DEVICE=auto;"),
)
_KERNEL_FMT = re.compile(r"KERNEL_FMT\s+\[([^\]]+)\]")


class PackagingError(Exception):
    """Raised when the kernel cannot be packaged."""

    def __init__(self, message: str, code: str = "packaging_error") -> None:
        super().__init__(message)
        self.code = code


def _require_kernel_image(config: PackageConfig) -> Path:
    image = find_kernel_image(config.kernel_dir, config.arch)
    if image is None:
        raise PackagingError(
            f"No kernel image found in {get_boot_dir(config.kernel_dir, config.arch)}",
            code="no_kernel_image",
        )
    return image


def make_anykernel_generic(script: Path) -> None:
    """Rewrite anykernel.sh so it flashes on any device.

    Block detection and slot detection are set to ``auto`` and the device
    check is turned off.
    """
    content = script.read_text(errors="replace")
    for pattern, replacement in _GENERIC_ANYKERNEL:
        content = pattern.sub(replacement, content)
    script.write_text(content)


def package_anykernel3(runner: CommandRunner, config: PackageConfig) -> Path:
    """Package the kernel as an AnyKernel3 flasher.

    Args:
        runner: Command runner.
        config: Packaging configuration.

    Returns:
        The flasher zip for releases, otherwise the build directory.

    Raises:
        InputValidationError: If the AnyKernel3 URL looks like an option.
        PackagingError: If no kernel image was built.
        CommandError: If git or zip fail.
    """
    url = config.anykernel3_url or ANYKERNEL3_DEFAULT_URL
    reject_leading_hyphen(url, "anykernel3-url")

    ak3_dir = config.work_dir / ANYKERNEL3_DIR
    if ak3_dir.exists():
        shutil.rmtree(ak3_dir)
    runner.run(["git", "clone", "--depth=1", "--", url, str(ak3_dir)])

    script = ak3_dir / "anykernel.sh"
    if url == ANYKERNEL3_DEFAULT_URL and script.is_file():
        make_anykernel_generic(script)

    image = _require_kernel_image(config)
    shutil.copyfile(image, ak3_dir / image.name)
    logger.info("Copied %s", image.name)

    dtbo = find_dtbo_file(config.kernel_dir, config.arch)
    if dtbo is not None:
        shutil.copyfile(dtbo, ak3_dir / dtbo.name)
    else:
        logger.info("DTBO not found, skipping")

    dtb = find_dtb_file(config.kernel_dir, config.arch)
    if dtb is not None:
        shutil.copyfile(dtb, ak3_dir / dtb.name)
    else:
        logger.info("DTB not found, skipping")

    for name in ANYKERNEL3_REMOVED:
        path = ak3_dir / name
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()

    config.build_dir.mkdir(parents=True, exist_ok=True)
    if config.release:
        flasher = config.build_dir.resolve() / FLASHER_ZIP
        runner.run(["zip", "-r9", str(flasher), "."], cwd=ak3_dir)
        logger.info("Created %s", flasher)
        return flasher

    shutil.copytree(ak3_dir, config.build_dir, dirs_exist_ok=True)
    return config.build_dir


def fetch_magiskboot(
    client: httpx.Client,
    dest: Path,
    host_arch: str,
    resources_dir: Path | None = None,
    url_template: str | None = None,
) -> Path:
    """Provide a magiskboot binary for the host architecture.

    Args:
        client: HTTPX client instance.
        dest: Where to place the binary.
        host_arch: Host architecture, e.g. ``x86_64`` or ``arm``.
        resources_dir: Directory holding ``magiskboot/magiskboot_<arch>``.
        url_template: Download URL with an ``{arch}`` placeholder; takes
            precedence over the bundled copy.

    Returns:
        Path of the executable.

    Raises:
        PackagingError: If no source for magiskboot is available.
    """
    if url_template:
        download_file(client, url_template.format(arch=host_arch), dest)
    else:
        bundled = (resources_dir or Path.cwd()) / "magiskboot" / f"magiskboot_{host_arch}"
        if not bundled.is_file():
            raise PackagingError(f"magiskboot not found: {bundled}", code="magiskboot_missing")
        shutil.copyfile(bundled, dest)
    dest.chmod(0o755)
    return dest


def package_bootimg(
    runner: CommandRunner,
    client: httpx.Client,
    config: PackageConfig,
    host_arch: str,
    resources_dir: Path | None = None,
    magiskboot_url: str | None = None,
) -> Path:
    """Repack a stock boot image with the built kernel.

    Args:
        runner: Command runner.
        client: HTTPX client instance.
        config: Packaging configuration.
        host_arch: Host architecture used to pick magiskboot.
        resources_dir: Directory holding the bundled magiskboot.
        magiskboot_url: magiskboot download URL template.

    Returns:
        Path of ``boot.img`` in the build directory.

    Raises:
        InputValidationError: If the boot image URL is missing or looks
            like an option.
        PackagingError: If no kernel image was built or repacking failed.
        DownloadError: If a download fails.
        CommandError: If magiskboot fails.
    """
    if not config.bootimg_url:
        raise InputValidationError(
            "bootimg-url input is required when anykernel3 is set to false",
            code="missing_bootimg_url",
        )
    reject_leading_hyphen(config.bootimg_url, "bootimg-url")

    work_dir = config.work_dir
    work_dir.mkdir(parents=True, exist_ok=True)
    stock = download_file(client, config.bootimg_url, work_dir / BOOT_IMAGE).path
    magiskboot = fetch_magiskboot(client, work_dir / MAGISKBOOT, host_arch, resources_dir, magiskboot_url)

    split_dir = work_dir / SPLIT_DIR
    split_dir.mkdir(parents=True, exist_ok=True)
    unpack_log = split_dir / "unpack.log"
    runner.run([str(magiskboot.resolve()), "unpack", str(stock.resolve())], cwd=split_dir, log_path=unpack_log)

    match = _KERNEL_FMT.search(unpack_log.read_text(errors="replace")) if unpack_log.is_file() else None
    kernel_format = match.group(1) if match else "raw"
    logger.info("Stock kernel format: %s", kernel_format)

    # magiskboot recompresses a raw kernel to the stock format on repack
    raw_image = get_boot_dir(config.kernel_dir, config.arch) / "Image"
    image = raw_image if raw_image.is_file() else _require_kernel_image(config)
    shutil.copyfile(image, split_dir / "kernel")
    logger.info("Replaced kernel with %s", image.name)

    runner.run([str(magiskboot.resolve()), "repack", str(stock.resolve())], cwd=split_dir)

    repacked = split_dir / REPACKED_IMAGE
    if not repacked.is_file():
        raise PackagingError("magiskboot did not produce a boot image", code="repack_failed")

    config.build_dir.mkdir(parents=True, exist_ok=True)
    result = config.build_dir / BOOT_IMAGE
    shutil.move(str(repacked), str(result))
    logger.info("Created %s", result)
    return result


def package_kernel(
    runner: CommandRunner,
    client: httpx.Client,
    config: PackageConfig,
    host_arch: str,
    resources_dir: Path | None = None,
    magiskboot_url: str | None = None,
) -> Path:
    """Package the kernel as AnyKernel3 or boot.img depending on config."""
    if config.anykernel3:
        return package_anykernel3(runner, config)
    return package_bootimg(runner, client, config, host_arch, resources_dir, magiskboot_url)


__all__ = [
    "ANYKERNEL3_DEFAULT_URL",
    "ANYKERNEL3_DIR",
    "BOOT_IMAGE",
    "FLASHER_ZIP",
    "MAGISKBOOT",
    "PackagingError",
    "SPLIT_DIR",
    "fetch_magiskboot",
    "make_anykernel_generic",
    "package_anykernel3",
    "package_bootimg",
    "package_kernel",
]
