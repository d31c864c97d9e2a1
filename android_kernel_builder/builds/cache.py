"""ccache integration.

This module handles:
- ccache environment and compiler wrapper symlinks
- Size limit, statistics and clearing through the ccache CLI
- Persisting the ccache directory between runs as tarballs in a local
  cache store

Restoring and saving the cache is best effort: failures are logged as
warnings and never abort a build.
"""

from __future__ import annotations

import logging
import os
import tarfile
import time
from pathlib import Path

from android_kernel_builder import actions
from android_kernel_builder.process import CommandRunner

logger = logging.getLogger(__name__)

CCACHE_DIR_NAME = ".ccache"
CCACHE_BINARY = Path("/usr/bin/ccache")
CCACHE_LINK_DIR = Path("/usr/lib/ccache")
CCACHE_PATH_DIRS = (Path("/usr/lib/ccache"), Path("/usr/local/opt/ccache/libexec"))
CCACHE_COMPILERS = ("gcc", "g++", "clang", "clang++", "cc", "c++")
DEFAULT_MAX_SIZE = "4G"

CACHE_KEY_PREFIX = "ccache"
ARCHIVE_SUFFIX = ".tar.gz"


def get_ccache_dir(home: Path) -> Path:
    """Return the ccache directory under home."""
    return home / CCACHE_DIR_NAME


def get_ccache_env(home: Path) -> dict[str, str]:
    """Return the environment variables that enable ccache."""
    return {
        "USE_CCACHE": "1",
        "CCACHE_DIR": str(get_ccache_dir(home)),
    }


def add_ccache_to_path(candidates: tuple[Path, ...] = CCACHE_PATH_DIRS) -> list[Path]:
    """Put the ccache compiler wrapper directories on PATH.

    Returns:
        The directories that existed and were added.
    """
    added = []
    for directory in candidates:
        if directory.is_dir():
            actions.add_path(directory)
            added.append(directory)
    return added


def setup_ccache_symlinks(
    link_dir: Path = CCACHE_LINK_DIR,
    ccache_binary: Path = CCACHE_BINARY,
) -> None:
    """Create compiler wrapper symlinks pointing at ccache.

    Existing entries are left alone. Errors are logged and ignored.
    """
    try:
        link_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Failed to create %s: %s", link_dir, e)
        return

    for compiler in CCACHE_COMPILERS:
        link = link_dir / compiler
        if link.exists() or link.is_symlink():
            continue
        try:
            link.symlink_to(ccache_binary)
        except OSError as e:
            logger.warning("Failed to create ccache symlink %s: %s", link, e)


def show_ccache_stats(runner: CommandRunner) -> None:
    """Print ccache statistics in a collapsed log group."""
    with actions.group("ccache statistics"):
        runner.run(["ccache", "-s"], check=False)


def clear_ccache(runner: CommandRunner) -> None:
    """Remove all cached objects."""
    logger.info("Clearing ccache...")
    runner.run(["ccache", "-C"])


def cache_key(defconfig: str, run_id: str | None = None) -> str:
    """Return the cache key for a defconfig.

    Args:
        defconfig: Defconfig name; path separators are flattened.
        run_id: Unique suffix, typically the commit SHA; defaults to the
            current time.

    Returns:
        Key of the form ``ccache-<defconfig>-<id>``.
    """
    name = defconfig.replace("/", "_")
    return f"{CACHE_KEY_PREFIX}-{name}-{run_id or int(time.time())}"


def restore_prefix(defconfig: str) -> str:
    """Return the key prefix restored when no exact key exists."""
    return f"{CACHE_KEY_PREFIX}-{defconfig.replace('/', '_')}-"


class LocalCacheStore:
    """Directory of cache tarballs addressed by key.

    Attributes:
        root: Directory the tarballs are stored in.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def _archive(self, key: str) -> Path:
        return self.root / f"{key}{ARCHIVE_SUFFIX}"

    def _find(self, key: str, restore_keys: list[str]) -> Path | None:
        exact = self._archive(key)
        if exact.is_file():
            return exact
        if not self.root.is_dir():
            return None
        for prefix in restore_keys:
            matches = sorted(
                self.root.glob(f"{prefix}*{ARCHIVE_SUFFIX}"),
                key=lambda p: p.stat().st_mtime,
                reverse=True,
            )
            if matches:
                return matches[0]
        return None

    def restore(self, directory: Path, key: str, restore_keys: list[str] | None = None) -> str | None:
        """Extract a cached directory.

        Args:
            directory: Directory to restore into.
            key: Exact key to look up first.
            restore_keys: Key prefixes tried in order; the newest entry of
                the first prefix with matches wins.

        Returns:
            The key that was restored, or None on a cache miss.
        """
        archive = self._find(key, restore_keys or [])
        if archive is None:
            return None

        directory.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(directory, filter="data")
        return archive.name[: -len(ARCHIVE_SUFFIX)]

    def save(self, directory: Path, key: str) -> Path:
        """Store a directory under key.

        Returns:
            Path of the written tarball.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        archive = self._archive(key)
        tmp = archive.with_name(f".{archive.name}.tmp")
        with tarfile.open(tmp, "w:gz") as tar:
            tar.add(directory, arcname=".")
        os.replace(tmp, archive)
        return archive


def setup_ccache(
    runner: CommandRunner,
    store: LocalCacheStore,
    defconfig: str,
    home: Path,
    max_size: str = DEFAULT_MAX_SIZE,
    run_id: str | None = None,
) -> str | None:
    """Prepare ccache and restore a previous cache.

    Args:
        runner: Command runner.
        store: Cache store.
        defconfig: Defconfig name the cache is keyed by.
        home: Directory holding the ccache directory.
        max_size: Size limit passed to ``ccache -M``.
        run_id: Suffix of the exact key looked up first.

    Returns:
        The restored key, or None on a miss or error.
    """
    ccache_dir = get_ccache_dir(home)
    ccache_dir.mkdir(parents=True, exist_ok=True)
    runner.run(["ccache", "-M", max_size], env=get_ccache_env(home))

    try:
        restored = store.restore(
            ccache_dir,
            cache_key(defconfig, run_id),
            [restore_prefix(defconfig)],
        )
    except (OSError, tarfile.TarError) as e:
        logger.warning("Failed to restore cache: %s", e)
        return None

    if restored is None:
        logger.info("Cache not found")
    else:
        logger.info("Cache restored from key: %s", restored)
    return restored


def save_ccache(
    store: LocalCacheStore,
    defconfig: str,
    home: Path,
    run_id: str | None = None,
) -> str | None:
    """Save the ccache directory.

    Returns:
        The key the cache was saved under, or None on error.
    """
    key = cache_key(defconfig, run_id)
    try:
        store.save(get_ccache_dir(home), key)
    except (OSError, tarfile.TarError) as e:
        logger.warning("Failed to save cache: %s", e)
        return None
    logger.info("Cache saved with key: %s", key)
    return key


__all__ = [
    "CCACHE_COMPILERS",
    "CCACHE_PATH_DIRS",
    "LocalCacheStore",
    "add_ccache_to_path",
    "cache_key",
    "clear_ccache",
    "get_ccache_dir",
    "get_ccache_env",
    "restore_prefix",
    "save_ccache",
    "setup_ccache",
    "setup_ccache_symlinks",
    "show_ccache_stats",
]
