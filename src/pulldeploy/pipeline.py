"""Deployment pipeline: one run per new commit.

Lifecycle:
1. Clone the repository into a fresh timestamped workspace
2. For each configured service, in order:
   a. detect the key file under the service directory and build it
   b. replace the service's deployment directory with the build output
   c. create-and-start or restart the service's systemd unit

Clone failures, missing key files and relocation errors abort the run and
skip the remaining services. Build and systemctl failures are logged on the
service's outcome and the run moves on.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from pulldeploy.build import BuildDispatcher
from pulldeploy.config import DeployConfig, ServiceConfig, Settings, get_settings
from pulldeploy.errors import PipelineRunError, ProcessError, ProcessExitError
from pulldeploy.logging import get_logger
from pulldeploy.models import Commit, RepositoryRef, RunReport, ServiceOutcome
from pulldeploy.relocate import relocate_artifact
from pulldeploy.services import ServiceReconciler
from pulldeploy.workspace import WorkspaceMaterializer, workspace_dirname

log = get_logger("pulldeploy.pipeline")


def service_source_path(workspace: Path, custom_dir: str | None) -> Path:
    """Directory of the service's project inside the workspace."""
    return workspace / custom_dir if custom_dir else workspace


class DeploymentPipeline:
    """Runs materialize, build, relocate and reconcile for a commit."""

    def __init__(
        self,
        config: DeployConfig,
        repository: RepositoryRef,
        settings: Settings | None = None,
        materializer: WorkspaceMaterializer | None = None,
        dispatcher: BuildDispatcher | None = None,
        reconciler: ServiceReconciler | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        settings = settings or get_settings()
        self._config = config
        self._repository = repository
        self._materializer = materializer or WorkspaceMaterializer(git_binary=settings.git_binary)
        self._dispatcher = dispatcher or BuildDispatcher()
        self._reconciler = reconciler or ServiceReconciler(
            systemctl_binary=settings.systemctl_binary
        )
        self._clock = clock

    async def run(self, commit: Commit) -> RunReport:
        """Deploy *commit*. Per-run failures are recorded on the report.

        Errors outside the ``PipelineRunError`` family (workspace naming,
        programming errors) propagate to the caller.
        """
        start = time.monotonic()
        report = RunReport(sha=commit.sha, started_at=self._clock().isoformat())
        log.info(
            "pipeline_run_started",
            sha=commit.short_sha,
            repository=self._repository.full_name,
            services=len(self._config.services),
        )

        try:
            await self._execute(report)
        except PipelineRunError as exc:
            report.error = str(exc)
        finally:
            report.duration_seconds = round(time.monotonic() - start, 2)
            report.completed_at = self._clock().isoformat()

        if report.error is not None:
            log.error(
                "pipeline_run_failed",
                sha=commit.short_sha,
                error=report.error,
                skipped=len(self._config.services) - len(report.services),
                report=report.to_dict(),
            )
        else:
            log.info(
                "pipeline_run_finished",
                sha=commit.short_sha,
                ok=report.ok,
                duration_seconds=report.duration_seconds,
                report=report.to_dict(),
            )
        return report

    async def _execute(self, report: RunReport) -> None:
        base_path = Path(self._config.pull_dir) / workspace_dirname(self._clock())
        workspace = await self._materializer.materialize(
            self._repository.clone_url,
            self._config.token.get_secret_value(),
            base_path,
            branch=self._config.branch,
        )
        report.workspace = str(workspace)

        for service in self._config.services:
            outcome = ServiceOutcome(name=service.name)
            report.services.append(outcome)
            try:
                await self._deploy_service(workspace, service, outcome)
            except PipelineRunError as exc:
                outcome.error = str(exc)
                raise

    async def _deploy_service(
        self, workspace: Path, service: ServiceConfig, outcome: ServiceOutcome
    ) -> None:
        source = service_source_path(workspace, service.custom_dir)

        build = await self._dispatcher.dispatch(source)
        outcome.build = build
        outcome.steps_completed.append("build" if build.build_succeeded else "build_failed")

        deployed = relocate_artifact(build.artifact_path, service.build_dir, service.name)
        outcome.deployed_path = str(deployed)
        outcome.steps_completed.append("relocate")

        try:
            result = await self._reconciler.reconcile(
                service.svc_filename,
                self._config.sys_svc_dir,
                service.svc_file_contents,
            )
        except ProcessExitError as exc:
            outcome.error = (
                f"Failed to reconcile service {service.svc_filename} "
                f"(status code {exc.returncode})"
            )
            log.error(
                "service_reconcile_failed",
                unit=service.svc_filename,
                cmd=exc.command,
                returncode=exc.returncode,
            )
            return
        except (ProcessError, OSError) as exc:
            outcome.error = f"Failed to reconcile {service.svc_filename}: {exc}"
            log.error("service_reconcile_failed", unit=service.svc_filename, error=str(exc))
            return

        outcome.unit_action = result.action.value
        outcome.steps_completed.append(result.action.value)
