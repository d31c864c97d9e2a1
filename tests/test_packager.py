"""Tests for packaging/packager.py module."""

from pathlib import Path

import httpx
import pytest
import respx

from android_kernel_builder.errors import InputValidationError
from android_kernel_builder.packaging.packager import (
    PackagingError,
    fetch_magiskboot,
    make_anykernel_generic,
    package_anykernel3,
    package_bootimg,
    package_kernel,
)
from android_kernel_builder.types import PackageConfig

ANYKERNEL_SH = """\
do.devicecheck=1
do.modules=0
device.name1=maguro
BLOCK=/dev/block/platform/omap/omap_hsmmc.0/by-name/boot;
IS_SLOT_DEVICE=0;
"""

BOOT_URL = "https://example.com/stock/boot.img"


def _kernel_tree(tmp_path: Path, images=("Image.gz-dtb",), extras=()) -> Path:
    kernel = tmp_path / "kernel"
    boot = kernel / "out" / "arch" / "arm64" / "boot"
    boot.mkdir(parents=True)
    for name in (*images, *extras):
        (boot / name).write_bytes(name.encode())
    return kernel


def _config(tmp_path: Path, kernel: Path, **kwargs) -> PackageConfig:
    values = {
        "kernel_dir": kernel,
        "arch": "arm64",
        "anykernel3": True,
        "build_dir": tmp_path / "build",
        "work_dir": tmp_path,
    }
    values.update(kwargs)
    return PackageConfig(**values)


def _fake_ak3_clone(call):
    dest = Path(call.args[-1])
    (dest / ".git").mkdir(parents=True)
    (dest / "README.md").write_text("readme")
    (dest / "anykernel.sh").write_text(ANYKERNEL_SH)
    (dest / "tools").mkdir()
    (dest / "tools" / "ak3-core.sh").write_text("core")


class TestMakeAnykernelGeneric:
    """Tests for make_anykernel_generic function."""

    def test_rewrites_script(self, tmp_path: Path):
        """Should set auto detection and disable the device check."""
        script = tmp_path / "anykernel.sh"
        script.write_text(ANYKERNEL_SH)

        make_anykernel_generic(script)

        content = script.read_text()
        assert "BLOCK=auto;" in content
        assert "do.devicecheck=0" in content
        assert "IS_SLOT_DEVICE=auto;" in content
        assert "device.name1=maguro" in content


class TestPackageAnykernel3:
    """Tests for package_anykernel3 function."""

    def test_tree_output(self, fake_runner, tmp_path: Path):
        """Should fill the build directory with the flasher tree."""
        fake_runner.on("git", _fake_ak3_clone)
        kernel = _kernel_tree(tmp_path, extras=("dtbo.img",))

        result = package_anykernel3(fake_runner, _config(tmp_path, kernel))

        build = tmp_path / "build"
        assert result == build
        assert (build / "Image.gz-dtb").read_bytes() == b"Image.gz-dtb"
        assert (build / "dtbo.img").exists()
        assert (build / "tools" / "ak3-core.sh").exists()
        assert not (build / ".git").exists()
        assert not (build / "README.md").exists()
        assert "BLOCK=auto;" in (build / "anykernel.sh").read_text()

    def test_release_zip(self, fake_runner, tmp_path: Path):
        """Releases should zip the flasher into the build directory."""
        fake_runner.on("git", _fake_ak3_clone)
        kernel = _kernel_tree(tmp_path)

        result = package_anykernel3(fake_runner, _config(tmp_path, kernel, release=True))

        zip_call = fake_runner.calls_to("zip")[0]
        assert zip_call.args[:2] == ["zip", "-r9"]
        assert zip_call.args[2] == str((tmp_path / "build").resolve() / "AnyKernel3-flasher.zip")
        assert zip_call.cwd == tmp_path / "AnyKernel3"
        assert result.name == "AnyKernel3-flasher.zip"

    def test_custom_url_keeps_script(self, fake_runner, tmp_path: Path):
        """A custom AnyKernel3 is used as provided."""
        fake_runner.on("git", _fake_ak3_clone)
        kernel = _kernel_tree(tmp_path)

        package_anykernel3(fake_runner, _config(tmp_path, kernel, anykernel3_url="https://github.com/me/AnyKernel3"))

        assert "do.devicecheck=1" in (tmp_path / "build" / "anykernel.sh").read_text()
        assert fake_runner.commands[0][-2] == "https://github.com/me/AnyKernel3"

    def test_replaces_previous_checkout(self, fake_runner, tmp_path: Path):
        """A stale AnyKernel3 directory should be removed first."""
        stale = tmp_path / "AnyKernel3"
        stale.mkdir()
        (stale / "stale").write_text("x")
        fake_runner.on("git", _fake_ak3_clone)

        package_anykernel3(fake_runner, _config(tmp_path, _kernel_tree(tmp_path)))

        assert not (stale / "stale").exists()

    def test_missing_image(self, fake_runner, tmp_path: Path):
        """Should fail without a kernel image."""
        fake_runner.on("git", _fake_ak3_clone)
        kernel = _kernel_tree(tmp_path, images=())

        with pytest.raises(PackagingError) as exc_info:
            package_anykernel3(fake_runner, _config(tmp_path, kernel))
        assert exc_info.value.code == "no_kernel_image"


class TestFetchMagiskboot:
    """Tests for fetch_magiskboot function."""

    def test_bundled(self, tmp_path: Path):
        """Should copy the bundled binary for the host arch."""
        resources = tmp_path / "resources"
        (resources / "magiskboot").mkdir(parents=True)
        (resources / "magiskboot" / "magiskboot_x86_64").write_bytes(b"ELF")

        with httpx.Client() as client:
            path = fetch_magiskboot(client, tmp_path / "magiskboot", "x86_64", resources)

        assert path.read_bytes() == b"ELF"
        assert path.stat().st_mode & 0o111

    @respx.mock
    def test_url_template(self, tmp_path: Path):
        """Should download from the template URL."""
        respx.get("https://example.com/magiskboot-arm").mock(return_value=httpx.Response(200, content=b"ELF"))

        with httpx.Client() as client:
            path = fetch_magiskboot(
                client, tmp_path / "magiskboot", "arm", url_template="https://example.com/magiskboot-{arch}"
            )

        assert path.read_bytes() == b"ELF"

    def test_missing(self, tmp_path: Path):
        """Should fail without a bundled binary."""
        with httpx.Client() as client, pytest.raises(PackagingError):
            fetch_magiskboot(client, tmp_path / "magiskboot", "riscv64", tmp_path)


class TestPackageBootimg:
    """Tests for package_bootimg function."""

    def _resources(self, tmp_path: Path) -> Path:
        resources = tmp_path / "resources"
        (resources / "magiskboot").mkdir(parents=True)
        (resources / "magiskboot" / "magiskboot_x86_64").write_bytes(b"ELF")
        return resources

    def _fake_magiskboot(self, call):
        split = call.cwd
        if call.args[1] == "unpack":
            call.log_path.write_text("HEADER_VER [2]\nKERNEL_SZ [123]\nKERNEL_FMT [gzip]\n")
            (split / "kernel").write_bytes(b"stock")
        else:
            assert (split / "kernel").read_bytes() == b"Image"
            (split / "new-boot.img").write_bytes(b"repacked")

    @respx.mock
    def test_repack(self, fake_runner, tmp_path: Path, caplog):
        """Should replace the stock kernel with the raw Image and repack."""
        respx.get(BOOT_URL).mock(return_value=httpx.Response(200, content=b"ANDROID!"))
        fake_runner.on("magiskboot", self._fake_magiskboot)
        kernel = _kernel_tree(tmp_path, images=("Image", "Image.gz"))
        config = _config(tmp_path, kernel, anykernel3=False, bootimg_url=BOOT_URL)

        with caplog.at_level("INFO"), httpx.Client() as client:
            result = package_bootimg(fake_runner, client, config, "x86_64", self._resources(tmp_path))

        assert result == tmp_path / "build" / "boot.img"
        assert result.read_bytes() == b"repacked"
        assert [c.args[1] for c in fake_runner.calls] == ["unpack", "repack"]
        assert "Stock kernel format: gzip" in caplog.text

    def test_requires_url(self, fake_runner, tmp_path: Path):
        """Should require the boot image URL."""
        config = _config(tmp_path, _kernel_tree(tmp_path), anykernel3=False)

        with httpx.Client() as client, pytest.raises(InputValidationError) as exc_info:
            package_bootimg(fake_runner, client, config, "x86_64")

        assert str(exc_info.value) == "bootimg-url input is required when anykernel3 is set to false"

    @respx.mock
    def test_repack_failure(self, fake_runner, tmp_path: Path):
        """Should fail when magiskboot produces nothing."""
        respx.get(BOOT_URL).mock(return_value=httpx.Response(200, content=b"ANDROID!"))
        config = _config(tmp_path, _kernel_tree(tmp_path, images=("Image",)), anykernel3=False, bootimg_url=BOOT_URL)

        with httpx.Client() as client, pytest.raises(PackagingError) as exc_info:
            package_bootimg(fake_runner, client, config, "x86_64", self._resources(tmp_path))

        assert exc_info.value.code == "repack_failed"


class TestPackageKernel:
    """Tests for package_kernel dispatch."""

    def test_dispatches_to_anykernel3(self, fake_runner, tmp_path: Path):
        """anykernel3=True should produce the flasher tree."""
        fake_runner.on("git", _fake_ak3_clone)

        with httpx.Client() as client:
            result = package_kernel(fake_runner, client, _config(tmp_path, _kernel_tree(tmp_path)), "x86_64")

        assert result == tmp_path / "build"
