"""Build dispatcher.

Finds the key file (build manifest) of a service, runs the matching build
command in the manifest's directory and reports where the deployable
artifact is.

Supported key files:

- ``Cargo.toml``: ``cargo build --release``, artifact ``target/release``
- ``go.mod``: ``go build .``, artifact is the manifest directory
- ``gleam.toml``: ``gleam export erlang-shipment``, artifact ``build/erlang-shipment``
- ``package.json``: no build step, the manifest directory is deployed as is

A failed build is logged and recorded on the ``BuildResult`` but does not
stop the service from being relocated and restarted.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from pulldeploy.constants import GLEAM_SHIPMENT_DIR, RUST_RELEASE_DIR
from pulldeploy.errors import NoSupportedProjectError, ProcessError
from pulldeploy.logging import get_logger
from pulldeploy.models import BuildResult, KeyFileKind
from pulldeploy.process import run_command

log = get_logger("pulldeploy.build")


def read_go_module(key_file: Path) -> str | None:
    """Return the module path declared in a ``go.mod``, if any."""
    with key_file.open(encoding="utf-8", errors="replace") as fh:
        for line in fh:
            line = line.split("//", 1)[0].strip()
            if line.startswith("module "):
                module = line.removeprefix("module ").strip().strip('"`')
                return module or None
    return None


def _go_executable(project_dir: Path, key_file: Path) -> Path | None:
    module = read_go_module(key_file)
    if module is None:
        return None
    return project_dir / module.rsplit("/", 1)[-1]


def _no_executable(project_dir: Path, key_file: Path) -> Path | None:
    return None


@dataclass(frozen=True)
class Toolchain:
    """How to build one kind of project and where its output lands."""

    kind: KeyFileKind
    build_command: list[str] | None
    artifact_path: Callable[[Path], Path]
    executable: Callable[[Path, Path], Path | None] = _no_executable


TOOLCHAINS: dict[KeyFileKind, Toolchain] = {
    KeyFileKind.RUST: Toolchain(
        kind=KeyFileKind.RUST,
        build_command=["cargo", "build", "--release"],
        artifact_path=lambda project: project / RUST_RELEASE_DIR,
    ),
    KeyFileKind.GO: Toolchain(
        kind=KeyFileKind.GO,
        build_command=["go", "build", "."],
        # go build writes the binary into the project root
        artifact_path=lambda project: project,
        executable=_go_executable,
    ),
    KeyFileKind.GLEAM: Toolchain(
        kind=KeyFileKind.GLEAM,
        build_command=["gleam", "export", "erlang-shipment"],
        artifact_path=lambda project: project / GLEAM_SHIPMENT_DIR,
    ),
    KeyFileKind.NODEJS: Toolchain(
        kind=KeyFileKind.NODEJS,
        build_command=None,
        artifact_path=lambda project: project,
    ),
}


def find_key_file(root: str | Path) -> tuple[Path, KeyFileKind]:
    """Return the first recognised key file under *root* and its kind.

    The tree is walked top-down following symlinks; files in a directory are
    checked before its subdirectories and siblings are visited in sorted
    order, so the first match is deterministic. Symlink loops are skipped.

    Raises:
        NoSupportedProjectError: no key file exists anywhere under *root*.
    """
    visited: set[str] = set()
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        real = os.path.realpath(dirpath)
        if real in visited:
            dirnames[:] = []
            continue
        visited.add(real)
        dirnames.sort()

        for filename in sorted(filenames):
            kind = KeyFileKind.from_filename(filename)
            if kind is None:
                continue
            path = Path(dirpath, filename)
            if path.is_file():
                return path, kind

    raise NoSupportedProjectError(str(root))


class BuildDispatcher:
    """Detects a service's toolchain and builds it."""

    def __init__(
        self,
        toolchains: Mapping[KeyFileKind, Toolchain] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._toolchains = dict(toolchains or TOOLCHAINS)
        self._timeout = timeout

    async def dispatch(self, service_path: str | Path) -> BuildResult:
        """Build the project found under *service_path*.

        Raises:
            NoSupportedProjectError: no supported key file was found.
        """
        key_file, kind = find_key_file(service_path)
        project_dir = key_file.parent
        log.info("key_file_found", key_file=kind.filename, path=str(key_file))

        toolchain = self._toolchains.get(kind)
        if toolchain is None:
            raise NoSupportedProjectError(str(service_path))

        result = BuildResult(
            artifact_path=toolchain.artifact_path(project_dir),
            kind=kind,
            key_file=key_file,
        )

        if toolchain.build_command is not None:
            await self._run_build(toolchain.build_command, project_dir, result)

        try:
            result.executable = toolchain.executable(project_dir, key_file)
        except OSError as exc:
            log.warning("key_file_unreadable", path=str(key_file), error=str(exc))

        if result.executable is not None:
            log.info("executable_expected", executable=str(result.executable))
        elif kind is KeyFileKind.GO:
            log.info("go_module_not_declared", artifact=str(result.artifact_path))
        return result

    async def _run_build(self, argv: list[str], project_dir: Path, result: BuildResult) -> None:
        start = time.monotonic()
        try:
            outcome = await run_command(argv, cwd=project_dir, timeout=self._timeout)
        except ProcessError as exc:
            result.build_succeeded = False
            result.error = str(exc)
            log.error("build_failed", project=str(project_dir), error=str(exc))
            return

        elapsed = round(time.monotonic() - start, 2)
        result.returncode = outcome.returncode
        if outcome.succeeded:
            log.info(
                "build_finished",
                project=str(project_dir),
                returncode=outcome.returncode,
                duration_seconds=elapsed,
            )
            return

        result.build_succeeded = False
        result.error = f"{outcome.command} exited with status {outcome.returncode}"
        log.error(
            "build_failed",
            project=str(project_dir),
            returncode=outcome.returncode,
            duration_seconds=elapsed,
        )
