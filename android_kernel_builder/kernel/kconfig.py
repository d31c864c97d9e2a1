"""Edits of kernel ``.config`` and defconfig files.

Config files are line oriented ``CONFIG_X=value`` text. Disabled options
may also appear as ``# CONFIG_X is not set``. Edits replace the existing
assignment of an option in place or append a new one.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

LTO_OPTIONS = ("CONFIG_LTO", "CONFIG_LTO_CLANG", "CONFIG_THINLTO")

KVM_OPTIONS = (
    "CONFIG_VIRTUALIZATION=y",
    "CONFIG_KVM=y",
    "CONFIG_KVM_MMIO=y",
    "CONFIG_KVM_ARM_HOST=y",
)


def _assignment_pattern(key: str) -> re.Pattern[str]:
    escaped = re.escape(key)
    return re.compile(rf"^(?:{escaped}=.*|# {escaped} is not set)$", re.MULTILINE)


def read_kernel_config(config_path: Path) -> str:
    """Return the config file content, or "" if it does not exist."""
    if not config_path.is_file():
        return ""
    return config_path.read_text(errors="replace")


def write_kernel_config(config_path: Path, content: str) -> None:
    """Replace the config file content."""
    config_path.write_text(content)


def get_config_value(config_path: Path, key: str) -> str | None:
    """Return the raw value assigned to an option.

    Quotes are kept, e.g. ``"value"`` for string options.

    Args:
        config_path: Config file.
        key: Option name including the ``CONFIG_`` prefix.

    Returns:
        The value, or None when the option is not assigned.
    """
    match = re.search(
        rf"^{re.escape(key)}=(.*)$",
        read_kernel_config(config_path),
        re.MULTILINE,
    )
    return match.group(1) if match else None


def is_config_enabled(config_path: Path, key: str) -> bool:
    """Whether an option is built in (``=y``)."""
    return get_config_value(config_path, key) == "y"


def set_config(config_path: Path, key: str, value: str) -> None:
    """Assign a value to an option, replacing any existing assignment.

    Args:
        config_path: Config file.
        key: Option name including the ``CONFIG_`` prefix.
        value: Value without the ``=``.
    """
    if not config_path.is_file():
        logger.warning("Config file not found: %s", config_path)
        return

    content = config_path.read_text(errors="replace")
    line = f"{key}={value}"
    pattern = _assignment_pattern(key)
    if pattern.search(content):
        content = pattern.sub(lambda _m: line, content)
    else:
        if content and not content.endswith("\n"):
            content += "\n"
        content += f"{line}\n"
    config_path.write_text(content)


def append_config(config_path: Path, line: str) -> None:
    """Append a raw line to a config file."""
    with config_path.open("a") as f:
        f.write(f"{line}\n")


def disable_lto(config_path: Path) -> None:
    """Turn off link time optimization.

    Args:
        config_path: Config file.
    """
    if not config_path.is_file():
        logger.warning("Config file not found: %s", config_path)
        return

    for key in LTO_OPTIONS:
        set_config(config_path, key, "n")
    set_config(config_path, "CONFIG_LTO_NONE", "y")
    logger.info("Disabled LTO in %s", config_path.name)


def enable_kvm(config_path: Path) -> None:
    """Enable KVM support."""
    for line in KVM_OPTIONS:
        append_config(config_path, line)
    logger.info("Enabled KVM in %s", config_path.name)


def apply_kernel_config(config_path: Path, *, lto: bool = True, kvm: bool = False) -> None:
    """Apply the optional config tweaks selected for a build.

    Args:
        config_path: Defconfig to edit.
        lto: Keep LTO as configured; False turns it off.
        kvm: Enable KVM.
    """
    if not lto:
        disable_lto(config_path)
    if kvm:
        enable_kvm(config_path)


__all__ = [
    "KVM_OPTIONS",
    "LTO_OPTIONS",
    "append_config",
    "apply_kernel_config",
    "disable_lto",
    "enable_kvm",
    "get_config_value",
    "is_config_enabled",
    "read_kernel_config",
    "set_config",
    "write_kernel_config",
]
