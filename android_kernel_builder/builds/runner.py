"""Kernel build runner.

This module handles:
- Composing `make` arguments for Clang, GCC and the system toolchain
- Putting the toolchain `bin/` directories and ccache settings into the
  build environment
- Running `make <defconfig>` and the full build with output captured to
  `out/build.log`
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from android_kernel_builder.builds.cache import get_ccache_env
from android_kernel_builder.builds.make_args import filter_make_args
from android_kernel_builder.errors import InputValidationError, reject_leading_hyphen
from android_kernel_builder.kernel.source import get_boot_dir, get_out_dir
from android_kernel_builder.process import CommandError, CommandRunner
from android_kernel_builder.toolchain.service import SYSTEM_GCC32_PREFIX, SYSTEM_GCC64_PREFIX
from android_kernel_builder.types import Arch, BuildConfig, ToolchainPaths

logger = logging.getLogger(__name__)

BUILD_LOG_NAME = "build.log"
CLANG_TRIPLE = "aarch64-linux-gnu-"

VALID_ARCHS = frozenset(a.value for a in Arch)


def validate_build_config(config: BuildConfig) -> None:
    """Reject a defconfig name that looks like an option and unknown archs.

    Raises:
        InputValidationError: If the config or arch is invalid.
    """
    reject_leading_hyphen(config.config, "config input")
    if config.arch not in VALID_ARCHS:
        raise InputValidationError(
            f"Invalid architecture: {config.arch}. Must be one of: {', '.join(a.value for a in Arch)}",
            code="invalid_arch",
        )


def toolchain_make_args(arch: str, toolchain: ToolchainPaths, use_ccache: bool = False) -> list[str]:
    """Compose the compiler selection arguments.

    Clang builds use LLVM binutils and the GCC prefixes only for
    CROSS_COMPILE. Without Clang the GCC toolchains are used directly,
    falling back to the distribution cross compilers when no GCC was
    installed.

    Args:
        arch: Kernel architecture.
        toolchain: Installed toolchains.
        use_ccache: Wrap the compiler with ccache.

    Returns:
        List of ``KEY=value`` make arguments.
    """
    prefix64 = toolchain.gcc64_prefix or SYSTEM_GCC64_PREFIX
    prefix32 = toolchain.gcc32_prefix or SYSTEM_GCC32_PREFIX
    ccache = "ccache " if use_ccache else ""

    if arch == Arch.ARM.value:
        cross = [f"CROSS_COMPILE={prefix32}-"]
    else:
        cross = [f"CROSS_COMPILE={prefix64}-", f"CROSS_COMPILE_ARM32={prefix32}-"]

    if toolchain.clang_path is not None:
        return [
            f"CC={ccache}clang",
            f"CLANG_TRIPLE={CLANG_TRIPLE}",
            *cross,
            "LLVM=1",
            "LLVM_IAS=1",
        ]

    gcc_prefix = prefix32 if arch == Arch.ARM.value else prefix64
    args = list(cross)
    if use_ccache:
        args.insert(0, f"CC=ccache {gcc_prefix}-gcc")
    return args


def compose_make_args(config: BuildConfig, jobs: int | None = None) -> list[str]:
    """Compose the arguments shared by the defconfig and the build step.

    Args:
        config: Build configuration.
        jobs: Parallel jobs; defaults to the CPU count.

    Returns:
        Arguments in order: output dir, arch, jobs, toolchain, then the
        filtered extra arguments.
    """
    jobs = jobs or os.cpu_count() or 1
    return [
        "O=out",
        f"ARCH={config.arch}",
        f"-j{jobs}",
        *toolchain_make_args(config.arch, config.toolchain, config.use_ccache),
        *filter_make_args(config.extra_make_args),
    ]


def build_environment(config: BuildConfig, home: Path | None = None) -> dict[str, str]:
    """Return the environment overrides for make.

    Args:
        config: Build configuration.
        home: Directory holding the ccache directory.

    Returns:
        Variables merged over the current environment by the runner.
    """
    bins = [
        str(path / "bin")
        for path in (
            config.toolchain.clang_path,
            config.toolchain.gcc64_path,
            config.toolchain.gcc32_path,
        )
        if path is not None
    ]
    env = {"PATH": os.pathsep.join([*bins, os.environ.get("PATH", "")])}
    if config.use_ccache:
        env.update(get_ccache_env(home or Path.home()))
    return env


def build_kernel(
    runner: CommandRunner,
    config: BuildConfig,
    home: Path | None = None,
    timeout: float | None = None,
) -> bool:
    """Configure and build the kernel.

    Args:
        runner: Command runner.
        config: Build configuration.
        home: Directory holding the ccache directory.
        timeout: Timeout for the full build in seconds.

    Returns:
        True if both make invocations succeeded.

    Raises:
        InputValidationError: If the config or arch is invalid.
    """
    validate_build_config(config)

    out_dir = get_out_dir(config.kernel_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    log_path = out_dir / BUILD_LOG_NAME
    # Both make steps append to this log
    log_path.unlink(missing_ok=True)

    args = compose_make_args(config)
    env = build_environment(config, home)

    try:
        logger.info("Configuring kernel with %s", config.config)
        runner.run(
            ["make", *args, config.config],
            cwd=config.kernel_dir,
            env=env,
            log_path=log_path,
        )

        logger.info("Building kernel, log: %s", log_path)
        runner.run(
            ["make", *args],
            cwd=config.kernel_dir,
            env=env,
            log_path=log_path,
            timeout=timeout,
        )
    except CommandError as e:
        logger.debug("Build command failed: %s", e)
        return False

    return True


def is_build_successful(kernel_dir: Path, arch: str) -> bool:
    """Whether the build left a kernel image in the boot directory."""
    boot_dir = get_boot_dir(kernel_dir, arch)
    if not boot_dir.is_dir():
        return False
    return any("Image" in entry.name for entry in boot_dir.iterdir())


__all__ = [
    "BUILD_LOG_NAME",
    "VALID_ARCHS",
    "build_environment",
    "build_kernel",
    "compose_make_args",
    "is_build_successful",
    "toolchain_make_args",
    "validate_build_config",
]
