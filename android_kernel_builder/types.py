"""Shared type definitions for android_kernel_builder.

This module contains the value structs assembled once per run and shared
across subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Arch(str, Enum):
    """Kernel architectures accepted by the build system."""

    ARM = "arm"
    ARM64 = "arm64"
    X86 = "x86"
    X86_64 = "x86_64"
    RISCV = "riscv"
    RISCV64 = "riscv64"
    MIPS = "mips"
    MIPS64 = "mips64"


class PackageManager(str, Enum):
    """Host package managers the dependency installer understands."""

    APT = "apt"
    PACMAN = "pacman"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class KernelVersion:
    """Kernel version parsed from the top-level Makefile."""

    version: int
    patchlevel: int
    sublevel: int

    @property
    def is_gki(self) -> bool:
        """Whether the kernel is a Generic Kernel Image (5.10 and newer)."""
        return (self.version, self.patchlevel) >= (5, 10)

    def __str__(self) -> str:
        return f"{self.version}.{self.patchlevel}.{self.sublevel}"


@dataclass(frozen=True)
class ToolchainPaths:
    """File-system locations of the compilers used for a build."""

    clang_path: Path | None = None
    gcc64_path: Path | None = None
    gcc32_path: Path | None = None
    gcc64_prefix: str | None = None
    gcc32_prefix: str | None = None


@dataclass(frozen=True)
class ToolchainConfig:
    """Toolchain selection inputs."""

    aosp_clang: bool = False
    aosp_clang_version: str = ""
    aosp_gcc: bool = False
    android_version: str = ""
    other_clang_url: str = ""
    other_clang_branch: str = ""
    other_gcc64_url: str = ""
    other_gcc64_branch: str = ""
    other_gcc32_url: str = ""
    other_gcc32_branch: str = ""


@dataclass(frozen=True)
class BuildConfig:
    """Inputs for a single kernel build."""

    kernel_dir: Path
    arch: str
    config: str
    toolchain: ToolchainPaths = field(default_factory=ToolchainPaths)
    extra_make_args: list[str] = field(default_factory=list)
    use_ccache: bool = False


@dataclass(frozen=True)
class PackageConfig:
    """Inputs for packaging a built kernel."""

    kernel_dir: Path
    arch: str
    anykernel3: bool
    build_dir: Path
    work_dir: Path
    bootimg_url: str | None = None
    anykernel3_url: str | None = None
    release: bool = False


@dataclass(frozen=True)
class ArtifactConfig:
    """Inputs for uploading build outputs as a CI artifact."""

    build_dir: Path
    anykernel3: bool
    release: bool = False


@dataclass(frozen=True)
class FeatureFlags:
    """Optional features enabled for a build, reported in release notes."""

    kernelsu: bool = False
    nethunter: bool = False
    lxc: bool = False
    kvm: bool = False
    rekernel: bool = False
    bbg: bool = False


@dataclass(frozen=True)
class ReleaseConfig:
    """Inputs for publishing build outputs as a GitHub release."""

    token: str
    build_dir: Path
    kernel_url: str
    kernel_branch: str
    config: str
    arch: str
    features: FeatureFlags = field(default_factory=FeatureFlags)
    repository: str | None = None
    sha: str | None = None


@dataclass
class ArtifactInfo:
    """Information about a file in the build directory."""

    name: str
    path: Path
    size_bytes: int
    sha256: str | None = None

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


__all__ = [
    "Arch",
    "ArtifactConfig",
    "ArtifactInfo",
    "BuildConfig",
    "FeatureFlags",
    "KernelVersion",
    "PackageConfig",
    "PackageManager",
    "ReleaseConfig",
    "ToolchainConfig",
    "ToolchainPaths",
]
