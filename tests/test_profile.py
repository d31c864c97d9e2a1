"""Tests for build profile loading and validation."""

import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from android_kernel_builder.profile import (
    BuildProfile,
    FeaturesSchema,
    ToolchainSchema,
    load_profile,
    load_profile_data,
)
from android_kernel_builder.types import Arch, FeatureFlags, ToolchainConfig

PROFILE = {
    "kernel_url": "https://github.com/LineageOS/android_kernel_xiaomi_sm8250",
    "kernel_branch": "lineage-21",
    "config": "vendor/kona-perf_defconfig",
    "toolchain": {"aosp_clang": True, "aosp_clang_version": "r487747c", "aosp_gcc": True},
    "features": {"kernelsu": True, "kvm": True},
    "anykernel3": True,
    "ccache": True,
}


class TestBuildProfile:
    """Tests for BuildProfile schema."""

    def test_defaults(self):
        """Only the kernel URL is required."""
        profile = BuildProfile(kernel_url="https://github.com/x/kernel")

        assert profile.kernel_branch == "main"
        assert profile.arch is Arch.ARM64
        assert profile.config == "defconfig"
        assert profile.depth == 1
        assert not profile.anykernel3
        assert profile.features == FeaturesSchema()

    def test_full_profile(self):
        """Should validate nested toolchain and features."""
        profile = BuildProfile.model_validate(PROFILE)

        assert profile.toolchain.to_config() == ToolchainConfig(
            aosp_clang=True, aosp_clang_version="r487747c", aosp_gcc=True
        )
        assert profile.features.to_flags() == FeatureFlags(kernelsu=True, kvm=True)

    def test_extra_make_args_json_text(self):
        """Should accept the JSON array text form."""
        profile = BuildProfile(kernel_url="https://github.com/x/kernel", extra_make_args='["V=1", "-j4"]')
        assert profile.extra_make_args == ["V=1", "-j4"]

    def test_invalid_extra_make_args_json(self):
        """Invalid JSON text should become an empty list."""
        profile = BuildProfile(kernel_url="https://github.com/x/kernel", extra_make_args="not json")
        assert profile.extra_make_args == []

    @pytest.mark.parametrize(
        ("field", "value", "message"),
        [
            ("config", "-defconfig", "config input must not start with a hyphen"),
            ("config", "../../etc/passwd", "config must not contain '..'"),
            ("kernel_url", "--upload-pack=evil", "kernel-url must not start with a hyphen"),
            ("bootimg_url", "-o", "bootimg-url must not start with a hyphen"),
        ],
    )
    def test_rejects_bad_inputs(self, field, value, message):
        """Should reject option-like and traversing values."""
        data = {"kernel_url": "https://github.com/x/kernel", field: value}
        with pytest.raises(ValidationError, match=message):
            BuildProfile.model_validate(data)

    def test_rejects_unknown_arch(self):
        """Should only accept known architectures."""
        with pytest.raises(ValidationError):
            BuildProfile(kernel_url="https://github.com/x/kernel", arch="sparc")

    def test_rejects_unknown_keys(self):
        """Typos should be reported."""
        with pytest.raises(ValidationError):
            BuildProfile.model_validate({"kernel_url": "https://github.com/x/kernel", "kernal_branch": "x"})

    def test_toolchain_rejects_option_urls(self):
        """Toolchain URLs must not look like options."""
        with pytest.raises(ValidationError, match="other_clang_url must not start with a hyphen"):
            ToolchainSchema(other_clang_url="-x")


class TestLoadProfile:
    """Tests for profile file loading."""

    def test_yaml(self, tmp_path: Path):
        """Should load YAML profiles."""
        path = tmp_path / "sm8250.yaml"
        path.write_text(yaml.safe_dump(PROFILE))

        profile = load_profile(path)

        assert profile.kernel_branch == "lineage-21"
        assert profile.features.kernelsu

    def test_json_with_overrides(self, tmp_path: Path):
        """CLI overrides should replace file values."""
        path = tmp_path / "sm8250.json"
        path.write_text(json.dumps(PROFILE))

        profile = load_profile(path, {"kernel_branch": "lineage-22", "release": True})

        assert profile.kernel_branch == "lineage-22"
        assert profile.release

    def test_empty_yaml(self, tmp_path: Path):
        """An empty file should load as no data."""
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_profile_data(path) == {}

    def test_non_mapping(self, tmp_path: Path):
        """A YAML list should be rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="Expected a YAML mapping"):
            load_profile_data(path)

    def test_unsupported_extension(self, tmp_path: Path):
        """Should reject unknown extensions."""
        path = tmp_path / "profile.toml"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported file extension"):
            load_profile_data(path)

    def test_missing_file(self, tmp_path: Path):
        """Should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_profile(tmp_path / "missing.yaml")
