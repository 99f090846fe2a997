"""Artifact relocator.

Replaces ``<destination_base>/<service_name>`` with a freshly built
artifact: whatever is at the destination is removed first, then the
artifact is moved into place. The two steps are not atomic; a crash in
between leaves the service without an artifact until the next deployment.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from pulldeploy.errors import RelocationError
from pulldeploy.logging import get_logger

log = get_logger("pulldeploy.relocate")


def relocate_artifact(source: str | Path, destination_base: str | Path, service_name: str) -> Path:
    """Move *source* to ``destination_base / service_name``, replacing it.

    Returns the destination path.

    Raises:
        RelocationError: the old artifact could not be removed or the new
            one could not be moved into place.
    """
    source = Path(source)
    destination = Path(destination_base) / service_name

    if not source.exists():
        raise RelocationError(f"Build artifact {source} does not exist")

    try:
        if destination.is_dir() and not destination.is_symlink():
            shutil.rmtree(destination)
            log.info("previous_artifact_removed", destination=str(destination))
        elif destination.exists() or destination.is_symlink():
            destination.unlink()
            log.info("previous_artifact_removed", destination=str(destination))
    except OSError as exc:
        raise RelocationError(f"Failed to remove existing {destination}: {exc}") from exc

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(destination))
    except OSError as exc:
        raise RelocationError(f"Failed to move {source} to {destination}: {exc}") from exc

    log.info("artifact_relocated", source=str(source), destination=str(destination))
    return destination
