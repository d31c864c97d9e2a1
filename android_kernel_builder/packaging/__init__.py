"""Kernel packaging module.

This module handles:
- AnyKernel3 flasher packaging
- boot.img repacking with magiskboot
"""

from android_kernel_builder.packaging.packager import (
    PackagingError,
    package_anykernel3,
    package_bootimg,
    package_kernel,
)

__all__ = ["PackagingError", "package_anykernel3", "package_bootimg", "package_kernel"]
