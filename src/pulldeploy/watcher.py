"""Commit watcher.

Polls the repository host for the latest commit on the configured branch
and runs the deployment pipeline whenever the commit differs from the last
one processed. The last processed sha (the watermark) is threaded through
``poll_once`` explicitly rather than kept on the instance.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from pulldeploy import __version__
from pulldeploy.config import Settings, get_settings
from pulldeploy.constants import USER_AGENT
from pulldeploy.errors import AuthorizationError, MalformedResponseError
from pulldeploy.logging import get_logger
from pulldeploy.models import Commit, RepositoryRef, RunReport
from pulldeploy.pipeline import DeploymentPipeline

log = get_logger("pulldeploy.watcher")


class CommitWatcher:
    """Watches one repository branch and deploys each new commit once."""

    def __init__(
        self,
        repository: RepositoryRef,
        token: str,
        pipeline: DeploymentPipeline,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        settings = settings or get_settings()
        self._repository = repository
        self._token = token
        self._pipeline = pipeline
        self._interval = settings.poll_interval_seconds
        self._timeout = settings.http_timeout_seconds
        self._advance_on_failure = settings.advance_on_failure
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_latest_commit(self) -> Commit | None:
        """Ask the repository host for the latest commit.

        Returns None for non-2xx answers other than 401, which are retried
        on the next poll.

        Raises:
            AuthorizationError: the host answered 401.
            MalformedResponseError: the body is not JSON or carries no sha.
            httpx.TransportError: the request could not be completed.
        """
        client = await self._get_client()
        resp = await client.get(
            self._repository.url,
            headers={
                "Authorization": f"token {self._token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": f"{USER_AGENT}/{__version__}",
            },
        )

        if resp.status_code == 401:
            raise AuthorizationError(self._repository.url)

        if not 200 <= resp.status_code < 300:
            log.warning(
                "commit_poll_failed",
                status=resp.status_code,
                url=self._repository.url,
            )
            return None

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Response body is not valid JSON: {exc}") from exc
        return Commit.from_payload(data)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def poll_once(self, last_sha: str) -> str:
        """Run one poll cycle and return the new watermark."""
        commit = await self.fetch_latest_commit()
        if commit is None or commit.sha == last_sha:
            return last_sha

        log.info("new_commit_detected", sha=commit.short_sha, previous=last_sha[:12] or None)
        report: RunReport = await self._pipeline.run(commit)

        if report.error is not None and not self._advance_on_failure:
            log.warning("watermark_not_advanced", sha=commit.short_sha, error=report.error)
            return last_sha
        return commit.sha

    async def run_forever(self, last_sha: str = "") -> None:
        """Poll until a fatal error propagates."""
        log.info(
            "commit_watcher_started",
            repository=self._repository.full_name,
            url=self._repository.url,
            interval_seconds=self._interval,
        )
        try:
            while True:
                last_sha = await self.poll_once(last_sha)
                await self._sleep(self._interval)
        finally:
            await self.close()
