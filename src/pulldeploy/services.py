"""Service reconciler for systemd units.

A unit file that does not exist yet is written from the configured lines
and the service is started. An existing unit file is left untouched and
the service is restarted.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from pathlib import Path

from pulldeploy.logging import get_logger
from pulldeploy.models import ReconcileResult, UnitAction
from pulldeploy.process import run_command

log = get_logger("pulldeploy.services")


class UnitState(Enum):
    ABSENT = "absent"
    PRESENT = "present"


def unit_state(unit_path: Path) -> UnitState:
    return UnitState.PRESENT if unit_path.exists() else UnitState.ABSENT


def write_unit_file(unit_path: Path, lines: Sequence[str]) -> None:
    """Write *lines* verbatim, each terminated by a newline."""
    with unit_path.open("w", encoding="utf-8") as fh:
        for line in lines:
            fh.write(f"{line}\n")


class ServiceReconciler:
    """Makes one systemd unit reflect the latest deployed artifact."""

    def __init__(self, systemctl_binary: str = "systemctl", timeout: float | None = None) -> None:
        self._systemctl = systemctl_binary
        self._timeout = timeout

    async def reconcile(
        self,
        unit_filename: str,
        unit_dir: str | Path,
        lines: Sequence[str],
    ) -> ReconcileResult:
        """Create-and-start or restart *unit_filename*.

        Returns the issued action.

        Raises:
            ProcessExitError: ``systemctl`` exited non-zero.
            OSError: the unit file could not be written.
            ProcessSpawnError: ``systemctl`` could not be started.
            ProcessTimeoutError: ``systemctl`` did not finish in time.
        """
        unit_path = Path(unit_dir) / unit_filename

        if unit_state(unit_path) is UnitState.ABSENT:
            write_unit_file(unit_path, lines)
            log.info("unit_file_created", unit=unit_filename, path=str(unit_path), lines=len(lines))
            action, created = UnitAction.START, True
        else:
            action, created = UnitAction.RESTART, False

        outcome = await run_command(
            [self._systemctl, action.value, unit_filename], timeout=self._timeout
        )
        outcome.check()

        log.info("service_reconciled", unit=unit_filename, action=action.value)
        return ReconcileResult(
            unit=unit_filename,
            unit_path=unit_path,
            action=action,
            created=created,
            returncode=outcome.returncode,
        )
