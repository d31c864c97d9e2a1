"""Optional feature patches applied to the kernel tree.

Each feature delegates the heavy lifting to an external script: the
upstream setup script for KernelSU and Baseband-guard, or a helper script
shipped in the resources directory for Re-Kernel, NetHunter and LXC.
Script URLs supplied by the user must be HTTPS URLs on a GitHub host.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import Path

import httpx

from android_kernel_builder.errors import validate_trusted_url
from android_kernel_builder.fetch import download_file
from android_kernel_builder.kernel.kconfig import (
    append_config,
    is_config_enabled,
    set_config,
)
from android_kernel_builder.process import CommandRunner
from android_kernel_builder.types import KernelVersion

logger = logging.getLogger(__name__)

KERNELSU_SETUP_URL = "https://raw.githubusercontent.com/tiann/KernelSU/main/kernel/setup.sh"
BBG_SETUP_URL = "https://github.com/vc-teahouse/Baseband-guard/raw/main/setup.sh"

# Last KernelSU release supporting non-GKI kernels
KERNELSU_NON_GKI_VERSION = "v0.9.5"

BBG_LSM_NAME = "baseband_guard"


class PatchError(Exception):
    """Raised when a feature patch cannot be applied."""

    def __init__(self, message: str, code: str = "patch_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class KernelSUOptions:
    """KernelSU inputs.

    Attributes:
        version: Branch or tag passed to the setup script.
        lkm: Build KernelSU as a loadable module.
        other: Use the setup script at ``url`` instead of upstream KernelSU.
        url: Setup script URL of a KernelSU fork.
    """

    version: str = "main"
    lkm: bool = False
    other: bool = False
    url: str | None = None


def _bundled_script(resources_dir: Path, *parts: str) -> Path:
    script = resources_dir.joinpath(*parts)
    if not script.is_file():
        raise PatchError(f"Bundled script not found: {script}", code="script_missing")
    return script


def _opam_shell(command: str) -> list[str]:
    return ["bash", "-c", f"eval $(opam env) && {command}"]


def setup_kernelsu(
    runner: CommandRunner,
    client: httpx.Client,
    kernel_dir: Path,
    config_path: Path,
    options: KernelSUOptions,
    kernel_version: KernelVersion,
    resources_dir: Path,
) -> None:
    """Integrate KernelSU into the kernel tree.

    Args:
        runner: Command runner.
        client: HTTPX client used to fetch the setup script.
        kernel_dir: Kernel source directory.
        config_path: Defconfig edited for LKM mode.
        options: KernelSU inputs.
        kernel_version: Version of the kernel tree.
        resources_dir: Directory holding the coccinelle hook patches.

    Raises:
        UntrustedURLError: If a custom setup URL is not trusted.
        CommandError: If the setup script or coccinelle fails.
    """
    setup_url = KERNELSU_SETUP_URL
    if options.other:
        if not options.url:
            raise PatchError("ksu-url is required when ksu-other is set", code="missing_url")
        setup_url = validate_trusted_url(options.url, "ksu-url")

    if (kernel_dir / "KernelSU").exists():
        logger.info("KernelSU has been initialized, skipping.")
        return

    version = options.version
    if not kernel_version.is_gki and not options.other:
        logger.warning(
            "KernelSU has dropped support for non-GKI kernels, using %s",
            KERNELSU_NON_GKI_VERSION,
        )
        version = KERNELSU_NON_GKI_VERSION

    script = kernel_dir / "ksu_setup.sh"
    download_file(client, setup_url, script)
    runner.run(["bash", script.name, version], cwd=kernel_dir)

    kprobes = is_config_enabled(config_path, "CONFIG_KPROBES")

    if options.lkm:
        if kprobes:
            set_config(config_path, "CONFIG_KSU", "m")
        else:
            kconfig = kernel_dir / "drivers" / "kernelsu" / "Kconfig"
            if kconfig.is_file():
                content = kconfig.read_text(errors="replace")
                kconfig.write_text(re.sub(r"^(\s*)default y$", r"\1default m", content, flags=re.MULTILINE))
            else:
                logger.warning("KernelSU Kconfig not found, cannot build it as a module")

    if not kernel_version.is_gki and not kprobes:
        apply_kernelsu_hooks(runner, kernel_dir, resources_dir)


def apply_kernelsu_hooks(runner: CommandRunner, kernel_dir: Path, resources_dir: Path) -> None:
    """Add the KernelSU syscall hooks with coccinelle.

    Kernels without kprobes need the hooks compiled in. The semantic
    patches are taken from ``<resources>/kernelsu/*.cocci``.

    Args:
        runner: Command runner.
        kernel_dir: Kernel source directory.
        resources_dir: Resources directory.
    """
    patches = sorted((resources_dir / "kernelsu").glob("*.cocci"))
    if not patches:
        logger.warning("No KernelSU hook patches found in %s", resources_dir / "kernelsu")

    runner.run(["opam", "init", "--disable-sandboxing", "--yes"])
    runner.run(_opam_shell("opam install --yes coccinelle"))

    for patch in patches:
        logger.info("Applying %s", patch.name)
        runner.run(
            _opam_shell(
                f"spatch --very-quiet --sp-file {shlex.quote(str(patch))} --dir . --in-place"
            ),
            cwd=kernel_dir,
        )


def add_lsm(kconfig_path: Path, lsm: str) -> bool:
    """Add an LSM to the default lists of ``config LSM``.

    Args:
        kconfig_path: ``security/Kconfig`` of the kernel.
        lsm: LSM name to add.

    Returns:
        True if the LSM is listed afterwards, False when the kernel has no
        ``config LSM`` default list (kernels older than 5.1).
    """
    if not kconfig_path.is_file():
        return False

    lines = kconfig_path.read_text(errors="replace").splitlines(keepends=True)
    in_block = False
    listed = False
    changed = False

    for i, line in enumerate(lines):
        stripped = line.strip()
        if not line[:1].isspace() and stripped:
            in_block = stripped == "config LSM"
            continue
        if not in_block:
            continue
        match = re.match(r'(\s*default\s+")([^"]*)(".*)', line, re.DOTALL)
        if not match:
            continue
        listed = True
        if lsm not in match.group(2).split(","):
            entries = f"{match.group(2)},{lsm}" if match.group(2) else lsm
            lines[i] = f"{match.group(1)}{entries}{match.group(3)}"
            changed = True

    if changed:
        kconfig_path.write_text("".join(lines))
    return listed


def setup_bbg(
    runner: CommandRunner,
    client: httpx.Client,
    kernel_dir: Path,
    config_path: Path,
) -> None:
    """Integrate Baseband-guard.

    Args:
        runner: Command runner.
        client: HTTPX client used to fetch the setup script.
        kernel_dir: Kernel source directory.
        config_path: Defconfig that gets CONFIG_BBG=y.
    """
    script = kernel_dir / "bbg_setup.sh"
    download_file(client, BBG_SETUP_URL, script)
    runner.run(["bash", script.name], cwd=kernel_dir)

    if not add_lsm(kernel_dir / "security" / "Kconfig", BBG_LSM_NAME):
        logger.warning("Could not add %s to the LSM list", BBG_LSM_NAME)
    append_config(config_path, "CONFIG_BBG=y")


def setup_rekernel(runner: CommandRunner, kernel_dir: Path, resources_dir: Path) -> None:
    """Apply the Re-Kernel patch."""
    script = _bundled_script(resources_dir, "rekernel", "patch.py")
    runner.run(["python3", str(script)], cwd=kernel_dir)


def setup_nethunter(
    runner: CommandRunner,
    kernel_dir: Path,
    config_path: Path,
    resources_dir: Path,
    patch: bool = False,
) -> None:
    """Enable the Kali NetHunter config options and optional source patches.

    Args:
        runner: Command runner.
        kernel_dir: Kernel source directory.
        config_path: Defconfig to edit.
        resources_dir: Resources directory.
        patch: Also patch the kernel sources.
    """
    config_script = _bundled_script(resources_dir, "nethunter", "config.py")
    runner.run(["python3", str(config_script), str(config_path)])
    if patch:
        patch_script = _bundled_script(resources_dir, "nethunter", "patch.py")
        runner.run(["python3", str(patch_script)], cwd=kernel_dir)


def setup_lxc(
    runner: CommandRunner,
    kernel_dir: Path,
    config_path: Path,
    resources_dir: Path,
    patch: bool = False,
) -> None:
    """Enable the LXC/Docker config options and optional source patches.

    Args:
        runner: Command runner.
        kernel_dir: Kernel source directory.
        config_path: Defconfig to edit.
        resources_dir: Resources directory.
        patch: Also patch the kernel sources.
    """
    config_script = _bundled_script(resources_dir, "lxc", "config.py")
    runner.run(["python3", str(config_script), str(config_path)])
    if patch:
        patch_script = _bundled_script(resources_dir, "lxc", "patch_cocci.py")
        runner.run(["python3", str(patch_script)], cwd=kernel_dir)


__all__ = [
    "BBG_LSM_NAME",
    "BBG_SETUP_URL",
    "KERNELSU_NON_GKI_VERSION",
    "KERNELSU_SETUP_URL",
    "KernelSUOptions",
    "PatchError",
    "add_lsm",
    "apply_kernelsu_hooks",
    "setup_bbg",
    "setup_kernelsu",
    "setup_lxc",
    "setup_nethunter",
    "setup_rekernel",
]
