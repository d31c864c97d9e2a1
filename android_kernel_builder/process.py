"""External process execution.

Every external program (git, make, zip, bash, ccache, magiskboot, the
package manager) is started through :class:`CommandRunner`. Arguments are
always passed as a list and never through a shell. Tests replace the runner
with a recording fake.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import sys
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when an external command fails or cannot be started."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        code: str = "command_failed",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.code = code


@dataclass
class CommandResult:
    """Result of an external command.

    Attributes:
        args: The command that was executed.
        returncode: Process exit code.
        output: Captured stdout (empty unless capture was requested).
    """

    args: list[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Run external commands synchronously, one at a time."""

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
        """Execute a command.

        Args:
            args: Program and arguments.
            cwd: Working directory.
            env: Variables merged over the current environment.
            log_path: When given, output is echoed and appended to this file.
            capture: Capture stdout and return it in the result.
            check: Raise CommandError on a non-zero exit code.
            timeout: Timeout in seconds (None = no timeout).

        Returns:
            CommandResult with the exit code and captured output.

        Raises:
            CommandError: If the command cannot be started, times out, or
                exits non-zero while ``check`` is set.
        """
        argv = [str(a) for a in args]
        cmd_str = shlex.join(argv)
        logger.info("$ %s", cmd_str)

        full_env: dict[str, str] | None = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            if log_path is not None:
                returncode = self._run_tee(argv, cwd, full_env, log_path, timeout)
                output = ""
            else:
                completed = subprocess.run(
                    argv,
                    cwd=cwd,
                    env=full_env,
                    capture_output=capture,
                    text=True,
                    timeout=timeout,
                    check=False,
                )
                returncode = completed.returncode
                output = completed.stdout if capture else ""
        except subprocess.TimeoutExpired as e:
            raise CommandError(
                f"Command timed out after {timeout} seconds: {cmd_str}",
                returncode=-1,
                code="timeout",
            ) from e
        except OSError as e:
            raise CommandError(
                f"Failed to execute {argv[0]}: {e}",
                code="execution_error",
            ) from e

        if check and returncode != 0:
            raise CommandError(
                f"Command failed with exit code {returncode}: {cmd_str}",
                returncode=returncode,
            )
        return CommandResult(args=argv, returncode=returncode, output=output)

    def _run_tee(
        self,
        argv: list[str],
        cwd: Path | None,
        env: dict[str, str] | None,
        log_path: Path,
        timeout: float | None,
    ) -> int:
        """Run a command, copying its combined output to stdout and a log.

        Output is pumped by a reader thread so the timeout also applies to
        commands that hang without printing anything.
        """
        log_path.parent.mkdir(parents=True, exist_ok=True)

        with log_path.open("a", encoding="utf-8") as log_file:
            log_file.write(f"# Command: {shlex.join(argv)}\n")
            log_file.write(f"# Started: {datetime.now(timezone.utc).isoformat()}\n")
            log_file.write(f"# CWD: {cwd or Path.cwd()}\n")
            log_file.flush()

            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                start_new_session=True,
            )
            assert proc.stdout is not None

            def pump(stream: IO[str]) -> None:
                for line in stream:
                    sys.stdout.write(line)
                    log_file.write(line)

            reader = threading.Thread(target=pump, args=(proc.stdout,), daemon=True)
            with proc:
                reader.start()
                try:
                    returncode = proc.wait(timeout=timeout)
                except subprocess.TimeoutExpired:
                    # Children such as the compilers of make hold the pipe open too
                    os.killpg(proc.pid, signal.SIGKILL)
                    proc.wait()
                    reader.join()
                    log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
                    raise
                reader.join()

            log_file.write(f"\n# Exit code: {returncode}\n")
        return returncode


__all__ = ["CommandError", "CommandResult", "CommandRunner"]
