"""Workspace materializer.

Clones the watched repository into a fresh directory under the pull
directory. Directory names come from the current time
(``day_month_year_hourminute``); when a name is already taken, for example
by a run earlier in the same minute, a two-digit counter is appended
(``01_Sep_2024_1308_01``, ``..._02``, ...).
"""

from __future__ import annotations

import base64
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from pulldeploy.constants import (
    GIT_TOKEN_USERNAME,
    MAX_DESTINATION_ATTEMPTS,
    WORKSPACE_NAME_SEGMENTS,
    WORKSPACE_TIME_FORMAT,
)
from pulldeploy.errors import (
    CloneError,
    DestinationExhaustedError,
    FolderFormatError,
    ProcessError,
    WorkspaceExistsError,
)
from pulldeploy.logging import get_logger
from pulldeploy.process import run_command

log = get_logger("pulldeploy.workspace")

_EXISTS_MARKER = "already exists and is not an empty directory"


def workspace_dirname(now: datetime | None = None) -> str:
    """Return the timestamped workspace name, e.g. ``01_Sep_2024_1308``."""
    return (now or datetime.now()).strftime(WORKSPACE_TIME_FORMAT)


def resolve_destination(
    path: str,
    exists: bool,
    *,
    path_exists: Callable[[str], bool] = os.path.exists,
    max_attempts: int = MAX_DESTINATION_ATTEMPTS,
) -> str:
    """Return a workspace path that does not collide with an existing one.

    The last path component must split on ``_`` into at least four
    segments. If *exists* is false, *path* is then returned unchanged.
    Otherwise the name is rebuilt from its first four segments and suffixed
    with ``_01``, ``_02``, ... until *path_exists* reports a free candidate.

    Raises:
        FolderFormatError: the name has fewer than four segments.
        DestinationExhaustedError: all *max_attempts* candidates exist.
    """
    parent, name = os.path.split(path)
    segments = name.split("_")
    if len(segments) < WORKSPACE_NAME_SEGMENTS:
        raise FolderFormatError(path)
    if not exists:
        return path

    base = os.path.join(parent, "_".join(segments[:WORKSPACE_NAME_SEGMENTS]))

    for index in range(1, max_attempts + 1):
        candidate = f"{base}_{index:02d}"
        if not path_exists(candidate):
            return candidate
    raise DestinationExhaustedError(path, max_attempts)


def _is_occupied(destination: str) -> bool:
    path = Path(destination)
    if not path.exists():
        return False
    if not path.is_dir():
        return True
    return any(path.iterdir())


def _git_env() -> dict[str, str]:
    """Host environment with git's messages forced to untranslated English."""
    env = dict(os.environ)
    env.pop("LANGUAGE", None)
    env["LC_ALL"] = "C"
    return env


def _auth_header(token: str) -> str:
    credentials = f"{GIT_TOKEN_USERNAME}:{token}".encode()
    return "Authorization: Basic " + base64.b64encode(credentials).decode("ascii")


class WorkspaceMaterializer:
    """Clones the repository into collision-free workspace directories."""

    def __init__(self, git_binary: str = "git", timeout: float | None = None) -> None:
        self._git = git_binary
        self._timeout = timeout

    async def materialize(
        self,
        url: str,
        token: str,
        base_path: str | Path,
        branch: str | None = None,
    ) -> Path:
        """Clone *url* into *base_path*, or a numbered sibling if it is taken.

        Returns the path actually cloned into.

        Raises:
            CloneError: the clone failed for any reason but an existing destination.
            WorkspaceNameError: no free destination name could be derived.
        """
        destination = str(base_path)
        try:
            await self.clone(url, token, destination, branch)
        except WorkspaceExistsError:
            destination = resolve_destination(destination, True)
            log.info("workspace_destination_updated", destination=destination)
            await self.clone(url, token, destination, branch)

        log.info("workspace_cloned", destination=destination)
        return Path(destination)

    async def clone(
        self,
        url: str,
        token: str,
        destination: str,
        branch: str | None = None,
    ) -> None:
        """Run ``git clone`` with token credentials into *destination*.

        Raises:
            WorkspaceExistsError: *destination* is a non-empty directory.
            CloneError: git could not be run or exited non-zero.
        """
        if _is_occupied(destination):
            raise WorkspaceExistsError(destination, f"'{destination}' {_EXISTS_MARKER}")

        header = _auth_header(token)
        argv = [self._git, "-c", f"http.extraHeader={header}", "clone"]
        if branch:
            argv += ["--branch", branch, "--single-branch"]
        argv += ["--", url, destination]

        try:
            result = await run_command(
                argv, timeout=self._timeout, secrets=(header, token), env=_git_env()
            )
        except ProcessError as exc:
            raise CloneError(destination, str(exc)) from exc

        if result.succeeded:
            return
        stderr = result.stderr.strip()
        if _EXISTS_MARKER in stderr:
            raise WorkspaceExistsError(destination, stderr, result.returncode)
        raise CloneError(destination, stderr or "git clone failed", result.returncode)
