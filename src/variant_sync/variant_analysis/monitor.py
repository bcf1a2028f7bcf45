"""Submit, poll and cancel variant analysis runs against a job source."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from variant_sync.errors import JobSourceError
from variant_sync.variant_analysis.models import (
    Repository,
    RepositoryOutcome,
    RepositoryOutcomeKind,
    VariantAnalysisStatus,
)
from variant_sync.variant_analysis.registry import RecordStatus
from variant_sync.variant_analysis.run import VariantAnalysisRun
from variant_sync.variant_analysis.skip_classifier import (
    not_found_outcomes,
    resolve_repository_status,
)

logger = logging.getLogger(__name__)

_RUN_STATUS_ALIASES: dict[str, VariantAnalysisStatus] = {
    "requested": VariantAnalysisStatus.REQUESTED,
    "queued": VariantAnalysisStatus.REQUESTED,
    "in_progress": VariantAnalysisStatus.IN_PROGRESS,
    "running": VariantAnalysisStatus.IN_PROGRESS,
    "succeeded": VariantAnalysisStatus.SUCCEEDED,
    "completed": VariantAnalysisStatus.SUCCEEDED,
    "failed": VariantAnalysisStatus.FAILED,
    "canceled": VariantAnalysisStatus.CANCELED,
    "cancelled": VariantAnalysisStatus.CANCELED,
}


@dataclass(slots=True)
class VariantAnalysisSubmission:
    """Request to run one query across a repository set."""

    query_ref: str
    repositories: tuple[Repository, ...]


@dataclass(slots=True)
class RepositoryStatusEvent:
    """Raw per-repository status as reported by the job source."""

    repository: Repository
    status: str
    result_ref: str | None = None
    result_count: int | None = None


@dataclass(slots=True)
class RunStatusUpdate:
    """One poll response from the job source."""

    status: str
    repositories: list[RepositoryStatusEvent] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    failure_reason: str | None = None


class VariantAnalysisSource(Protocol):
    """Interface of the remote job source."""

    async def submit(self, submission: VariantAnalysisSubmission) -> str:
        """Submit the run and return its identifier."""
        raise NotImplementedError

    async def fetch_status(self, run_id: str) -> RunStatusUpdate:
        """Return the latest job status with any repository statuses."""
        raise NotImplementedError

    async def cancel(self, run_id: str) -> None:
        """Ask the job source to stop scheduling work for the run."""
        raise NotImplementedError


@dataclass(slots=True)
class MonitorSummary:
    """Aggregate monitor counters for one run."""

    polls: int = 0
    poll_failures: int = 0
    outcomes_recorded: int = 0
    outcomes_ignored: int = 0
    final_status: VariantAnalysisStatus | None = None


def resolve_run_status(raw_status: str) -> VariantAnalysisStatus | None:
    """Map a raw job status onto a lifecycle state; unknown values map to ``None``."""

    return _RUN_STATUS_ALIASES.get(raw_status.strip().lower().replace("-", "_"))


class VariantAnalysisMonitor:
    """Drives runs from a job source with a fixed poll interval."""

    def __init__(
        self,
        *,
        source: VariantAnalysisSource,
        poll_interval_seconds: float = 5.0,
        max_consecutive_poll_failures: int = 5,
        display_limit: int = 0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.poll_interval_seconds = poll_interval_seconds
        self.max_consecutive_poll_failures = max_consecutive_poll_failures
        self.display_limit = display_limit
        self._sleep = sleep

    async def submit(
        self,
        *,
        query_ref: str,
        repositories: Iterable[Repository],
    ) -> VariantAnalysisRun:
        """Submit a run and return its state machine in ``requested``."""

        targeted = tuple(repositories)
        run_id = await self.source.submit(
            VariantAnalysisSubmission(query_ref=query_ref, repositories=targeted),
        )
        logger.info(
            "Submitted variant analysis %s for %s: %d repositories",
            run_id,
            query_ref,
            len(targeted),
        )
        return VariantAnalysisRun(
            run_id=run_id,
            query_ref=query_ref,
            repositories=targeted,
            display_limit=self.display_limit,
        )

    async def monitor(self, run: VariantAnalysisRun) -> MonitorSummary:
        """Poll until the job source reports a terminal job status."""

        summary = MonitorSummary()
        consecutive_failures = 0
        while True:
            try:
                update = await self.source.fetch_status(run.run_id)
            except JobSourceError as error:
                summary.poll_failures += 1
                consecutive_failures += 1
                logger.warning(
                    "Polling variant analysis %s failed (%d/%d, transient=%s): %s",
                    run.run_id,
                    consecutive_failures,
                    self.max_consecutive_poll_failures,
                    error.transient,
                    error,
                )
                if (
                    not error.transient
                    or consecutive_failures >= self.max_consecutive_poll_failures
                ):
                    if not run.is_terminal:
                        run.complete(VariantAnalysisStatus.FAILED, failure_reason=str(error))
                    break
                await self._sleep(self.poll_interval_seconds)
                continue

            consecutive_failures = 0
            summary.polls += 1
            job_status = self.apply_update(run, update, summary=summary)
            if job_status is not None and job_status.is_terminal:
                break
            await self._sleep(self.poll_interval_seconds)

        summary.final_status = run.status
        return summary

    async def cancel(self, run: VariantAnalysisRun) -> None:
        """Cancel locally, then ask the job source to stop scheduling work."""

        run.cancel()
        await self.source.cancel(run.run_id)

    def apply_update(
        self,
        run: VariantAnalysisRun,
        update: RunStatusUpdate,
        *,
        summary: MonitorSummary | None = None,
    ) -> VariantAnalysisStatus | None:
        """Feed one poll response into ``run``; returns the resolved job status."""

        job_status = resolve_run_status(update.status)
        if job_status is None:
            logger.warning(
                "Variant analysis %s reported unknown job status %r; still polling",
                run.run_id,
                update.status,
            )
        elif (
            job_status is VariantAnalysisStatus.IN_PROGRESS
            and run.status is VariantAnalysisStatus.REQUESTED
        ):
            run.mark_in_progress()

        results = run.apply_outcomes(_outcomes_from_update(update))
        if summary is not None:
            for result in results:
                if result.accepted:
                    summary.outcomes_recorded += 1
                elif result.status is not RecordStatus.DUPLICATE:
                    summary.outcomes_ignored += 1

        if job_status is None or not job_status.is_terminal:
            return job_status
        if run.is_terminal:
            logger.info(
                "Variant analysis %s finished upstream as %s after local %s",
                run.run_id,
                job_status.value,
                run.status.value,
            )
        elif job_status is VariantAnalysisStatus.CANCELED:
            run.cancel()
        else:
            run.complete(job_status, failure_reason=update.failure_reason)
        return job_status


def _outcomes_from_update(update: RunStatusUpdate) -> list[RepositoryOutcome]:
    outcomes: list[RepositoryOutcome] = []
    for event in update.repositories:
        resolution = resolve_repository_status(event.status)
        if resolution is None:
            continue
        succeeded = resolution.kind is RepositoryOutcomeKind.SUCCEEDED
        outcomes.append(
            RepositoryOutcome(
                repository=event.repository,
                kind=resolution.kind,
                result_ref=event.result_ref if succeeded else None,
                result_count=event.result_count if succeeded else None,
                detail=(
                    event.status if resolution.kind is RepositoryOutcomeKind.FAILED else None
                ),
            ),
        )
    outcomes.extend(not_found_outcomes(update.not_found))
    return outcomes
