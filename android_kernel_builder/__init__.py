"""Android Kernel Builder - CI orchestration for Android kernel builds.

This package clones kernel sources, provisions cross toolchains, applies
optional feature patches, drives the kernel build system and packages the
resulting image as a boot.img or AnyKernel3 flasher.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
