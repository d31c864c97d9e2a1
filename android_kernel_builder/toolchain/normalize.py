"""Toolchain directory normalization.

Toolchain archives and repositories differ in layout: some put ``bin/`` at
the top level, others nest everything one directory down. Normalization
moves the nested ``bin``, ``lib`` and ``lib64`` directories up so every
toolchain ends up with ``<dir>/bin``. A directory that already has ``bin/``
is left alone, which makes normalization idempotent.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from android_kernel_builder.types import ToolchainPaths

logger = logging.getLogger(__name__)

HOISTED_DIRS = ("bin", "lib", "lib64")

GCC64_DIR = "gcc-64"
GCC32_DIR = "gcc-32"

_GCC_BINARY = re.compile(r"^(.+)-gcc$")
_BINUTILS_BINARY = re.compile(r"^(.+)-(ld|as|ar)$")


def normalize_toolchain_dir(path: Path, label: str) -> bool:
    """Ensure a toolchain directory has ``bin/`` at its top level.

    Args:
        path: Toolchain directory.
        label: Name used in log messages.

    Returns:
        True if directories were moved, False if nothing had to change.
    """
    if not path.is_dir():
        logger.warning("%s directory not found: %s", label, path)
        return False
    if (path / "bin").is_dir():
        return False

    nested = next(
        (
            child
            for child in sorted(path.iterdir())
            if child.is_dir() and (child / "bin").is_dir()
        ),
        None,
    )
    if nested is None:
        logger.warning("No bin directory found in %s toolchain at %s", label, path)
        return False

    for name in HOISTED_DIRS:
        src = nested / name
        if not src.is_dir():
            continue
        dest = path / name
        dest.mkdir(parents=True, exist_ok=True)
        for entry in src.iterdir():
            shutil.move(str(entry), str(dest / entry.name))
        src.rmdir()

    logger.info("Normalized %s toolchain: moved %s up from %s", label, "/".join(HOISTED_DIRS), nested.name)
    return True


def _bin_names(bin_dir: Path) -> list[str]:
    return sorted(
        entry.name
        for entry in bin_dir.iterdir()
        if not entry.name.startswith(".") and not entry.is_dir()
    )


def detect_gcc_prefix(gcc_dir: Path) -> str | None:
    """Infer the cross-compile prefix of a GCC toolchain.

    The folder name is tried first (``<folder>-gcc`` present in ``bin/``),
    then any ``<prefix>-gcc`` binary, then binutils names
    (``<prefix>-ld``, ``-as``, ``-ar``).

    Args:
        gcc_dir: GCC toolchain directory.

    Returns:
        Prefix without the trailing dash, or None when ``bin/`` is missing
        or no binary matches.
    """
    bin_dir = gcc_dir / "bin"
    if not bin_dir.is_dir():
        return None

    names = _bin_names(bin_dir)

    if f"{gcc_dir.name}-gcc" in names:
        return gcc_dir.name

    for pattern in (_GCC_BINARY, _BINUTILS_BINARY):
        for name in names:
            match = pattern.match(name)
            if match:
                return match.group(1)

    return None


def normalize_gcc_dirs(home: Path) -> ToolchainPaths:
    """Normalize ``gcc-64`` and ``gcc-32`` under home and detect prefixes.

    Args:
        home: Directory the toolchains were installed into.

    Returns:
        ToolchainPaths with the GCC paths and prefixes that were found.
    """
    found: dict[str, tuple[Path | None, str | None]] = {}
    for dirname in (GCC64_DIR, GCC32_DIR):
        gcc_dir = home / dirname
        if not gcc_dir.is_dir():
            found[dirname] = (None, None)
            continue
        normalize_toolchain_dir(gcc_dir, dirname)
        prefix = detect_gcc_prefix(gcc_dir)
        if prefix:
            logger.info("Detected %s prefix: %s", dirname, prefix)
        else:
            logger.warning("Could not detect the cross-compile prefix of %s", gcc_dir)
        found[dirname] = (gcc_dir, prefix)

    gcc64_path, gcc64_prefix = found[GCC64_DIR]
    gcc32_path, gcc32_prefix = found[GCC32_DIR]
    return ToolchainPaths(
        gcc64_path=gcc64_path,
        gcc32_path=gcc32_path,
        gcc64_prefix=gcc64_prefix,
        gcc32_prefix=gcc32_prefix,
    )


__all__ = [
    "GCC32_DIR",
    "GCC64_DIR",
    "HOISTED_DIRS",
    "detect_gcc_prefix",
    "normalize_gcc_dirs",
    "normalize_toolchain_dir",
]
