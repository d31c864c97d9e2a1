"""Filtering of user supplied `make` arguments.

Variables that select the compiler, the shell, the target architecture or
the output directory are owned by the builder. User arguments that try to
override them are dropped. Nothing else is inspected: values containing
shell metacharacters pass through unchanged, since commands are never run
through a shell and quoting them is left to the caller.
"""

from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)

DENIED_MAKE_KEYS = frozenset(
    {
        "CC",
        "CXX",
        "LD",
        "AS",
        "AR",
        "NM",
        "STRIP",
        "OBJCOPY",
        "OBJDUMP",
        "READELF",
        "HOSTCC",
        "HOSTCXX",
        "HOSTLD",
        "KBUILD_HOSTCC",
        "KBUILD_HOSTCXX",
        "CROSS_COMPILE",
        "CROSS_COMPILE_ARM32",
        "CROSS_COMPILE_COMPAT",
        "CLANG_TRIPLE",
        "LLVM",
        "LLVM_IAS",
        "CLVM",
        "SHELL",
        "ARCH",
        "SUBARCH",
        "O",
        "MAKE",
        "MAKEFLAGS",
    }
)


def make_arg_key(arg: str) -> str | None:
    """Return the variable name of a ``KEY=value`` argument.

    Args:
        arg: A single make argument.

    Returns:
        The part before the first ``=`` without the operator characters of
        ``:=``, ``::=``, ``+=``, ``?=`` and ``!=``, or None for options and
        targets.
    """
    if "=" not in arg:
        return None
    return arg.split("=", 1)[0].rstrip(":+?!").strip()


def filter_make_args(args: list[str]) -> list[str]:
    """Drop arguments that override builder-owned make variables.

    Args:
        args: Candidate make arguments.

    Returns:
        The remaining arguments, unchanged and in their original order.
    """
    kept: list[str] = []
    for arg in args:
        key = make_arg_key(arg)
        if key is not None and key in DENIED_MAKE_KEYS:
            logger.warning("Ignoring make argument that overrides %s", key)
            continue
        kept.append(arg)
    return kept


def parse_extra_make_args(raw: str | None) -> list[str]:
    """Parse the extra make arguments input.

    The input is a JSON array of strings, e.g. ``["-j8", "V=1"]``.

    Args:
        raw: JSON text; may be empty.

    Returns:
        The parsed arguments, or an empty list when the input is empty,
        not valid JSON or not an array.
    """
    if not raw or not raw.strip():
        return []

    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("extra-make-args is not valid JSON, ignoring it")
        return []

    if not isinstance(value, list):
        logger.warning("extra-make-args must be a JSON array, ignoring it")
        return []

    return [str(item) for item in value]


__all__ = [
    "DENIED_MAKE_KEYS",
    "filter_make_args",
    "make_arg_key",
    "parse_extra_make_args",
]
