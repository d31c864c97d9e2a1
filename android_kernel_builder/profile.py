"""Build profiles.

A build profile holds every input of a run: sources, toolchain, features,
packaging and publishing. Profiles are validated with pydantic and can be
loaded from YAML or JSON files; CLI options override profile values.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from android_kernel_builder.builds.make_args import parse_extra_make_args
from android_kernel_builder.types import Arch, FeatureFlags, ToolchainConfig


def _no_leading_hyphen(value: str | None, name: str) -> str | None:
    if value and value.startswith("-"):
        raise ValueError(f"{name} must not start with a hyphen")
    return value


class ToolchainSchema(BaseModel):
    """Toolchain selection.

    Attributes:
        aosp_clang: Use the AOSP Clang prebuilt (requires aosp_gcc).
        aosp_clang_version: AOSP Clang revision, e.g. ``r487747c``.
        aosp_gcc: Use the AOSP GCC 4.9 prebuilts.
        android_version: Android release whose prebuilt branch is used.
        other_clang_url: Archive or git URL of a third-party Clang.
        other_gcc64_url: Archive or git URL of a third-party 64-bit GCC.
        other_gcc32_url: Archive or git URL of a third-party 32-bit GCC.
    """

    model_config = ConfigDict(extra="forbid")

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

    @field_validator(
        "other_clang_url",
        "other_clang_branch",
        "other_gcc64_url",
        "other_gcc64_branch",
        "other_gcc32_url",
        "other_gcc32_branch",
    )
    @classmethod
    def validate_no_option(cls, v: str, info: ValidationInfo) -> str:
        """Reject values that would be parsed as git options."""
        return _no_leading_hyphen(v, info.field_name) or ""

    def to_config(self) -> ToolchainConfig:
        return ToolchainConfig(**self.model_dump())


class FeaturesSchema(BaseModel):
    """Optional kernel features."""

    model_config = ConfigDict(extra="forbid")

    kernelsu: bool = False
    ksu_version: str = "main"
    ksu_lkm: bool = False
    ksu_other: bool = False
    ksu_url: str | None = None
    nethunter: bool = False
    nethunter_patch: bool = False
    lxc: bool = False
    lxc_patch: bool = False
    kvm: bool = False
    rekernel: bool = False
    bbg: bool = False
    disable_lto: bool = False

    @field_validator("ksu_version")
    @classmethod
    def validate_ksu_version(cls, v: str) -> str:
        """Reject versions that would be parsed as script options."""
        return _no_leading_hyphen(v, "ksu-version") or "main"

    def to_flags(self) -> FeatureFlags:
        return FeatureFlags(
            kernelsu=self.kernelsu,
            nethunter=self.nethunter,
            lxc=self.lxc,
            kvm=self.kvm,
            rekernel=self.rekernel,
            bbg=self.bbg,
        )


class BuildProfile(BaseModel):
    """All inputs of a kernel build run."""

    model_config = ConfigDict(extra="forbid")

    # Sources
    kernel_url: str = Field(description="Kernel repository URL")
    kernel_branch: str = Field(default="main", description="Kernel branch or tag")
    kernel_dir: Path = Field(default=Path("kernel"), description="Kernel checkout directory")
    depth: int = Field(default=1, ge=0, description="Clone depth, 0 for full history")
    vendor: bool = False
    vendor_url: str | None = None
    vendor_branch: str | None = None
    vendor_dir: Path = Path("vendor")

    # Build
    arch: Arch = Arch.ARM64
    config: str = Field(default="defconfig", description="Defconfig name")
    toolchain: ToolchainSchema = Field(default_factory=ToolchainSchema)
    extra_make_args: list[str] = Field(default_factory=list)
    ccache: bool = False
    features: FeaturesSchema = Field(default_factory=FeaturesSchema)

    # Packaging
    anykernel3: bool = False
    anykernel3_url: str | None = None
    bootimg_url: str | None = None
    build_dir: Path = Path("build")

    # Publishing
    release: bool = False
    keep_releases: int | None = Field(default=None, ge=0)

    # Run control
    check_environment: bool = True
    install_dependencies: bool = True
    cleanup: bool = False

    @field_validator("kernel_url", "kernel_branch", "vendor_url", "vendor_branch", "anykernel3_url", "bootimg_url")
    @classmethod
    def validate_no_option(cls, v: str | None, info: ValidationInfo) -> str | None:
        """Reject values that would be parsed as command options."""
        return _no_leading_hyphen(v, info.field_name.replace("_", "-"))

    @field_validator("config")
    @classmethod
    def validate_config(cls, v: str) -> str:
        """Validate the defconfig name."""
        if v.startswith("-"):
            raise ValueError("config input must not start with a hyphen")
        if ".." in v:
            raise ValueError("config must not contain '..'")
        return v

    @field_validator("extra_make_args", mode="before")
    @classmethod
    def parse_make_args(cls, v: Any) -> Any:
        """Accept the JSON array text form as well as a list."""
        if isinstance(v, str):
            return parse_extra_make_args(v)
        return v


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the content is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the content is not an object.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_profile_data(path: Path) -> dict[str, Any]:
    """Load raw profile data, picking the format from the file extension.

    Raises:
        ValueError: If the extension is not .yaml, .yml or .json.
    """
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml(path)
    elif suffix == ".json":
        return load_json(path)
    else:
        raise ValueError(
            f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json"
        )


def load_profile(path: Path, overrides: dict[str, Any] | None = None) -> BuildProfile:
    """Load and validate a build profile.

    Args:
        path: Profile file (YAML or JSON).
        overrides: Top-level values replacing those in the file.

    Returns:
        Validated BuildProfile.

    Raises:
        ValueError: If the extension is not supported.
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If data does not match the schema.
    """
    data = load_profile_data(path)
    data.update(overrides or {})
    return BuildProfile.model_validate(data)


__all__ = [
    "BuildProfile",
    "FeaturesSchema",
    "ToolchainSchema",
    "load_json",
    "load_profile",
    "load_profile_data",
    "load_yaml",
]
