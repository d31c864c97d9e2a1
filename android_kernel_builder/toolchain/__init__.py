"""Toolchain provisioning module.

This module handles:
- Downloading toolchain archives or cloning toolchain repositories
- Normalizing toolchain layouts so `bin/` sits at the top level
- Detecting GCC cross-compile prefixes
"""

from android_kernel_builder.toolchain.normalize import (
    detect_gcc_prefix,
    normalize_gcc_dirs,
    normalize_toolchain_dir,
)
from android_kernel_builder.toolchain.service import (
    download_and_extract,
    get_system_toolchain_paths,
    setup_toolchains,
)

__all__ = [
    "detect_gcc_prefix",
    "download_and_extract",
    "get_system_toolchain_paths",
    "normalize_gcc_dirs",
    "normalize_toolchain_dir",
    "setup_toolchains",
]
