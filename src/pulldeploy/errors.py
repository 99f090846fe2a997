"""Exception taxonomy for the deployment pipeline.

Three families matter to callers:

* fatal errors terminate the watcher (``AuthorizationError``,
  ``MalformedResponseError``, ``WorkspaceNameError``, ``ConfigError``);
* ``PipelineRunError`` aborts the run for the current commit, the watcher
  keeps polling;
* ``ProcessError`` is a per-service soft failure, logged and recorded but
  never stops the run.
"""

from __future__ import annotations


class PullDeployError(Exception):
    """Base class for all pulldeploy errors."""


class ConfigError(PullDeployError):
    """The deployment configuration could not be loaded or is invalid."""


# ---------------------------------------------------------------------------
# Repository host API
# ---------------------------------------------------------------------------


class AuthorizationError(PullDeployError):
    """The repository host rejected our credentials (HTTP 401)."""

    def __init__(self, url: str, status_code: int = 401) -> None:
        super().__init__(f"Failed to fetch data: {status_code} (unauthorized) from {url}")
        self.url = url
        self.status_code = status_code


class MalformedResponseError(PullDeployError):
    """The repository host answered 2xx with a body we cannot interpret."""


# ---------------------------------------------------------------------------
# Workspace naming
# ---------------------------------------------------------------------------


class WorkspaceNameError(PullDeployError):
    """No usable workspace directory name could be derived."""


class FolderFormatError(WorkspaceNameError):
    """The base path does not split into day, month, year and time segments."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Failed to format folder name {path!r}: expected at least four "
            "underscore-separated segments (day_month_year_time)"
        )
        self.path = path


class DestinationExhaustedError(WorkspaceNameError):
    """Every numbered candidate for a workspace name already exists."""

    def __init__(self, path: str, attempts: int) -> None:
        super().__init__(
            f"No free workspace name for {path!r} after {attempts} attempts; "
            "remove old workspaces or try again in a minute"
        )
        self.path = path
        self.attempts = attempts


# ---------------------------------------------------------------------------
# Per-run hard failures
# ---------------------------------------------------------------------------


class PipelineRunError(PullDeployError):
    """A failure that aborts the pipeline run for the current commit."""


class CloneError(PipelineRunError):
    """``git clone`` failed for a reason other than an existing destination."""

    def __init__(self, destination: str, message: str, returncode: int | None = None) -> None:
        super().__init__(f"Failed to clone into {destination}: {message}")
        self.destination = destination
        self.returncode = returncode


class WorkspaceExistsError(CloneError):
    """The clone destination already exists and is not empty."""


class NoSupportedProjectError(PipelineRunError):
    """No recognised key file was found under the service directory."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Couldn't find any supported key-file in {path}")
        self.path = path


class RelocationError(PipelineRunError):
    """Replacing the deployment directory with a build artifact failed."""


# ---------------------------------------------------------------------------
# External processes (per-service soft failures)
# ---------------------------------------------------------------------------


class ProcessError(PullDeployError):
    """An external command could not be run or did not succeed."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(f"{message}: {command}")
        self.command = command


class ProcessSpawnError(ProcessError):
    """The command could not be started at all (missing binary, bad cwd, ...)."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(command, f"Failed to spawn ({reason})")
        self.reason = reason


class ProcessExitError(ProcessError):
    """The command ran but exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        super().__init__(command, f"Command exited with status {returncode}")
        self.returncode = returncode
        self.stderr = stderr


class ProcessTimeoutError(ProcessError):
    """The command did not finish within its timeout and was killed."""

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(command, f"Command timed out after {timeout:g}s")
        self.timeout = timeout
