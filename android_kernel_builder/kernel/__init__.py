"""Kernel source tree module.

This module handles:
- Cloning kernel and vendor sources
- Kernel version detection and defconfig path resolution
- `.config` / defconfig edits
- Optional feature patches (KernelSU, NetHunter, LXC, BBG, Re-Kernel)
"""

from android_kernel_builder.kernel.source import (
    KernelSourceError,
    clone_kernel,
    clone_vendor,
    get_config_path,
    get_kernel_version,
)

__all__ = [
    "KernelSourceError",
    "clone_kernel",
    "clone_vendor",
    "get_config_path",
    "get_kernel_version",
]
