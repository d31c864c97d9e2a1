"""Tests for host module."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from android_kernel_builder.errors import InputValidationError
from android_kernel_builder.host import (
    APT_PACKAGES,
    PACMAN_PACKAGES,
    check_environment,
    detect_host_arch,
    detect_package_manager,
    install_dependencies,
    install_system_clang,
    sudo_prefix,
)
from android_kernel_builder.types import PackageManager


def _root_with(tmp_path: Path, binary: str) -> Path:
    bin_dir = tmp_path / "usr" / "bin"
    bin_dir.mkdir(parents=True)
    (bin_dir / binary).write_text("")
    return tmp_path


class TestDetectHostArch:
    """Tests for detect_host_arch function."""

    @pytest.mark.parametrize(
        ("machine", "expected"),
        [
            ("x86_64", "x86_64"),
            ("AMD64", "x86_64"),
            ("aarch64", "arm"),
            ("armv7l", "arm"),
            ("arm64", "arm"),
            ("riscv64", "riscv64"),
        ],
    )
    def test_machines(self, machine, expected):
        """Should map machine names to prebuilt arch names."""
        assert detect_host_arch(machine) == expected


class TestPackageManager:
    """Tests for package manager detection and environment checks."""

    def test_apt(self, tmp_path: Path):
        """Should detect apt."""
        assert detect_package_manager(_root_with(tmp_path, "apt")) is PackageManager.APT

    def test_pacman(self, tmp_path: Path):
        """Should detect pacman."""
        assert detect_package_manager(_root_with(tmp_path, "pacman")) is PackageManager.PACMAN

    def test_unknown(self, tmp_path: Path):
        """Should report unknown without either."""
        assert detect_package_manager(tmp_path) is PackageManager.UNKNOWN

    def test_check_environment_on_runner(self, tmp_path: Path, monkeypatch):
        """Should pass on a Linux Actions runner."""
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        monkeypatch.setattr(sys, "platform", "linux")

        assert check_environment(_root_with(tmp_path, "apt")) is PackageManager.APT

    def test_check_environment_outside_actions(self, tmp_path: Path, monkeypatch):
        """Should fail outside GitHub Actions."""
        monkeypatch.delenv("GITHUB_ACTIONS", raising=False)

        with pytest.raises(InputValidationError, match="This action requires GitHub Actions Linux runners"):
            check_environment(_root_with(tmp_path, "apt"))

    def test_check_environment_non_linux(self, tmp_path: Path, monkeypatch):
        """Should fail on other operating systems."""
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        monkeypatch.setattr(sys, "platform", "darwin")

        with pytest.raises(InputValidationError):
            check_environment(_root_with(tmp_path, "apt"))


class TestInstall:
    """Tests for package installation."""

    def test_apt_as_user(self, fake_runner):
        """Should update and install with sudo."""
        with patch("android_kernel_builder.host.is_root", return_value=False):
            install_dependencies(fake_runner, PackageManager.APT)

        assert fake_runner.commands[0] == ["sudo", "apt-get", "update"]
        assert fake_runner.commands[1][:5] == ["sudo", "apt-get", "install", "--no-install-recommends", "-y"]
        assert fake_runner.commands[1][5:] == list(APT_PACKAGES)

    def test_pacman_as_root(self, fake_runner):
        """Should not use sudo as root."""
        with patch("android_kernel_builder.host.is_root", return_value=True):
            install_dependencies(fake_runner, PackageManager.PACMAN)
            assert sudo_prefix() == []

        assert fake_runner.commands[0] == ["pacman", "-Syyu", "--noconfirm"]
        assert fake_runner.commands[1] == ["pacman", "-S", "--noconfirm", "--needed", *PACMAN_PACKAGES]

    def test_unknown_manager(self, fake_runner):
        """Should refuse an unknown package manager."""
        with pytest.raises(InputValidationError):
            install_dependencies(fake_runner, PackageManager.UNKNOWN)

    def test_system_clang_apt(self, fake_runner):
        """Should install clang, lld and binutils."""
        with patch("android_kernel_builder.host.is_root", return_value=True):
            install_system_clang(fake_runner, PackageManager.APT)

        assert fake_runner.commands[0] == ["apt-get", "install", "-y", "clang", "lld"]
        assert "binutils-aarch64-linux-gnu" in fake_runner.commands[1]
