"""GitHub Actions workflow command helpers.

Log groups are written to stdout as ``::group::`` / ``::endgroup::``
markers. PATH additions and step outputs go to the files named by
GITHUB_PATH and GITHUB_OUTPUT when running inside a workflow; outside one
they only affect the current process.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


def is_github_actions() -> bool:
    """Whether the process runs inside a GitHub Actions job."""
    return os.environ.get("GITHUB_ACTIONS") == "true"


@contextmanager
def group(title: str) -> Iterator[None]:
    """Fold everything logged inside the block under a collapsible group.

    Args:
        title: Group title shown in the job log.
    """
    sys.stdout.write(f"::group::{title}\n")
    sys.stdout.flush()
    try:
        yield
    finally:
        sys.stdout.write("::endgroup::\n")
        sys.stdout.flush()


def add_path(path: Path | str) -> None:
    """Prepend a directory to PATH for this process and later steps."""
    path_str = str(path)
    os.environ["PATH"] = f"{path_str}{os.pathsep}{os.environ.get('PATH', '')}"
    github_path = os.environ.get("GITHUB_PATH")
    if github_path:
        with open(github_path, "a", encoding="utf-8") as f:
            f.write(f"{path_str}\n")
    logger.debug("Added %s to PATH", path_str)


def set_output(name: str, value: str) -> None:
    """Publish a step output."""
    github_output = os.environ.get("GITHUB_OUTPUT")
    if github_output:
        with open(github_output, "a", encoding="utf-8") as f:
            f.write(f"{name}={value}\n")
    logger.debug("Output %s=%s", name, value)


__all__ = ["add_path", "group", "is_github_actions", "set_output"]
