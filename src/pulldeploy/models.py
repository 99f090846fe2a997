"""Data models shared across the deployment pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pulldeploy.constants import CARGO_MANIFEST, GLEAM_MANIFEST, GO_MANIFEST, NODEJS_MANIFEST
from pulldeploy.errors import ConfigError, MalformedResponseError

# https://github.com/<author>/<name>[.git][/]  or  <author>/<name>
_REPOSITORY_RE = re.compile(
    r"^(?:https?://[^/]+/)?(?P<author>[A-Za-z0-9_.-]+)/(?P<name>[A-Za-z0-9_.-]+?)(?:\.git)?/?$"
)


@dataclass(frozen=True)
class RepositoryRef:
    """The remote repository being watched. Immutable for the process lifetime."""

    url: str  # commits API endpoint that is polled
    author: str
    name: str
    clone_url: str

    @classmethod
    def parse(
        cls,
        repository: str,
        branch: str,
        api_url: str = "https://api.github.com",
        web_url: str = "https://github.com",
    ) -> RepositoryRef:
        """Build a reference from a repository URL or ``author/name`` shorthand."""
        m = _REPOSITORY_RE.match(repository.strip())
        if m is None:
            raise ConfigError(
                f"Unrecognised repository {repository!r}; expected "
                "https://github.com/<author>/<name> or <author>/<name>"
            )
        author, name = m.group("author"), m.group("name")
        return cls(
            url=f"{api_url.rstrip('/')}/repos/{author}/{name}/commits/{branch}",
            author=author,
            name=name,
            clone_url=f"{web_url.rstrip('/')}/{author}/{name}.git",
        )

    @property
    def full_name(self) -> str:
        return f"{self.author}/{self.name}"


@dataclass(frozen=True)
class Commit:
    """Latest commit as reported by the repository host."""

    sha: str

    @classmethod
    def from_payload(cls, data: Any) -> Commit:
        """Extract the commit from a decoded JSON body.

        Raises MalformedResponseError if there is no non-empty string ``sha``.
        """
        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Expected a JSON object with a 'sha' field, got {type(data).__name__}"
            )
        sha = data.get("sha")
        if not isinstance(sha, str) or not sha:
            raise MalformedResponseError("Response body has no 'sha' field")
        return cls(sha=sha)

    @property
    def short_sha(self) -> str:
        return self.sha[:12]


class KeyFileKind(Enum):
    """Recognised build-system key files, valued by their filename."""

    RUST = CARGO_MANIFEST
    GO = GO_MANIFEST
    GLEAM = GLEAM_MANIFEST
    NODEJS = NODEJS_MANIFEST

    @property
    def filename(self) -> str:
        return self.value

    @classmethod
    def from_filename(cls, filename: str) -> KeyFileKind | None:
        for kind in cls:
            if kind.value == filename:
                return kind
        return None


@dataclass
class BuildResult:
    """Outcome of the build dispatcher for one service."""

    artifact_path: Path
    kind: KeyFileKind
    key_file: Path
    build_succeeded: bool = True
    returncode: int | None = None
    executable: Path | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact_path": str(self.artifact_path),
            "kind": self.kind.name.lower(),
            "key_file": str(self.key_file),
            "build_succeeded": self.build_succeeded,
            "returncode": self.returncode,
            "executable": str(self.executable) if self.executable else None,
            "error": self.error,
        }


class UnitAction(Enum):
    """Init-system command issued for a unit."""

    START = "start"
    RESTART = "restart"


@dataclass
class ReconcileResult:
    """Outcome of reconciling one systemd unit."""

    unit: str
    unit_path: Path
    action: UnitAction
    created: bool
    returncode: int | None = None


@dataclass
class ServiceOutcome:
    """What happened to one configured service during a run."""

    name: str
    steps_completed: list[str] = field(default_factory=list)
    build: BuildResult | None = None
    deployed_path: str | None = None
    unit_action: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and (self.build is None or self.build.build_succeeded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "steps_completed": self.steps_completed,
            "build": self.build.to_dict() if self.build else None,
            "deployed_path": self.deployed_path,
            "unit_action": self.unit_action,
            "error": self.error,
        }


@dataclass
class RunReport:
    """Result of one pipeline run for one commit."""

    sha: str
    workspace: str | None = None
    services: list[ServiceOutcome] = field(default_factory=list)
    error: str | None = None
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    completed_at: str | None = None
    duration_seconds: float | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(s.ok for s in self.services)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha": self.sha,
            "workspace": self.workspace,
            "services": [s.to_dict() for s in self.services],
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_seconds": self.duration_seconds,
        }
