"""External command runner.

Every build tool, ``git`` and ``systemctl`` invocation goes through
``run_command`` so callers get a typed outcome: a ``CommandResult`` when the
process ran (whatever its exit status) or a ``ProcessSpawnError`` /
``ProcessTimeoutError`` when it could not run to completion. Callers decide
whether a non-zero status is fatal by calling ``CommandResult.check()``.
"""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from pulldeploy.errors import ProcessExitError, ProcessSpawnError, ProcessTimeoutError
from pulldeploy.logging import get_logger

log = get_logger("pulldeploy.process")

_MASK = "***"
_STDERR_TAIL = 500


def redact(text: str, secrets: Iterable[str]) -> str:
    """Replace every non-empty secret in *text* with a mask."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, _MASK)
    return text


def format_command(argv: Sequence[str], secrets: Iterable[str] = ()) -> str:
    return redact(shlex.join(argv), secrets)


@dataclass
class CommandResult:
    """A command that ran to completion."""

    command: str  # redacted, for logs and errors
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    def check(self) -> CommandResult:
        """Return self, or raise ProcessExitError on a non-zero status."""
        if self.returncode != 0:
            raise ProcessExitError(self.command, self.returncode, self.stderr[-_STDERR_TAIL:])
        return self


async def run_command(
    argv: Sequence[str],
    *,
    cwd: str | Path | None = None,
    timeout: float | None = None,
    secrets: Iterable[str] = (),
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run *argv* (no shell) and wait for it to exit.

    *env* replaces the inherited environment when given.

    Raises:
        ProcessSpawnError: the executable or working directory is unusable.
        ProcessTimeoutError: *timeout* elapsed; the process is killed.
    """
    secrets = tuple(secrets)
    command = format_command(argv, secrets)
    log.debug("command_started", cmd=command, cwd=str(cwd) if cwd else None)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )
    except OSError as exc:
        raise ProcessSpawnError(command, redact(str(exc), secrets)) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        log.warning("command_timeout", cmd=command, timeout=timeout)
        raise ProcessTimeoutError(command, timeout or 0) from None

    result = CommandResult(
        command=command,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=redact(stdout.decode(errors="replace"), secrets),
        stderr=redact(stderr.decode(errors="replace"), secrets),
    )
    if not result.succeeded:
        log.warning(
            "command_failed",
            cmd=command,
            returncode=result.returncode,
            stderr=result.stderr[-_STDERR_TAIL:],
        )
    return result
