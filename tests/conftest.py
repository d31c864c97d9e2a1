"""Shared fixtures.

The recording runner stands in for CommandRunner so tests never start
external programs.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest

from android_kernel_builder.process import CommandError, CommandResult


@dataclass
class Call:
    """A command recorded by FakeRunner."""

    args: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    log_path: Path | None = None
    timeout: float | None = None


class FakeRunner:
    """Records commands instead of running them.

    Use ``fail(program)`` to make a program exit non-zero and
    ``on(program, handler)`` to emulate its side effects; the handler gets
    the recorded Call.
    """

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self._failures: dict[str, int] = {}
        self._handlers: dict[str, Callable[[Call], None]] = {}

    def fail(self, program: str, returncode: int = 2) -> None:
        self._failures[program] = returncode

    def on(self, program: str, handler: Callable[[Call], None]) -> None:
        self._handlers[program] = handler

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        log_path: Path | None = None,
        capture: bool = False,
        check: bool = True,
        timeout: float | None = None,
    ) -> CommandResult:
        argv = [str(a) for a in args]
        call = Call(args=argv, cwd=cwd, env=env, log_path=log_path, timeout=timeout)
        self.calls.append(call)

        program = Path(argv[0]).name
        handler = self._handlers.get(program)
        if handler is not None:
            handler(call)

        returncode = self._failures.get(program, 0)
        if check and returncode != 0:
            raise CommandError(f"{program} failed", returncode=returncode)
        return CommandResult(args=argv, returncode=returncode)

    @property
    def commands(self) -> list[list[str]]:
        return [c.args for c in self.calls]

    def calls_to(self, program: str) -> list[Call]:
        return [c for c in self.calls if Path(c.args[0]).name == program]


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Recording command runner."""
    return FakeRunner()
