"""Lifecycle state machine for one variant analysis run."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from variant_sync.errors import InvalidRunTransition
from variant_sync.storage.common import utc_now
from variant_sync.variant_analysis.models import (
    Repository,
    RepositoryOutcome,
    RepositoryOutcomeKind,
    VariantAnalysisSnapshot,
    VariantAnalysisStatus,
)
from variant_sync.variant_analysis.registry import (
    RecordResult,
    RecordStatus,
    RepositoryResultRegistry,
)
from variant_sync.variant_analysis.skip_classifier import SkipTally

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[VariantAnalysisSnapshot], None]

_ALLOWED_TRANSITIONS: dict[VariantAnalysisStatus, frozenset[VariantAnalysisStatus]] = {
    VariantAnalysisStatus.REQUESTED: frozenset(
        {VariantAnalysisStatus.IN_PROGRESS, VariantAnalysisStatus.CANCELED},
    ),
    VariantAnalysisStatus.IN_PROGRESS: frozenset(
        {
            VariantAnalysisStatus.SUCCEEDED,
            VariantAnalysisStatus.FAILED,
            VariantAnalysisStatus.CANCELED,
        },
    ),
    VariantAnalysisStatus.SUCCEEDED: frozenset(),
    VariantAnalysisStatus.FAILED: frozenset(),
    VariantAnalysisStatus.CANCELED: frozenset(),
}
_CLOSED_STATUSES = frozenset({VariantAnalysisStatus.SUCCEEDED, VariantAnalysisStatus.FAILED})


class VariantAnalysisRun:
    """Owns one run's lifecycle, outcome registry and skip tally.

    Every transition and every accepted outcome pushes a full snapshot to
    subscribers. A canceled run keeps accepting outcomes because repositories
    may have finished before the cancellation was observed; succeeded and
    failed runs are read-only.
    """

    def __init__(
        self,
        *,
        run_id: str,
        query_ref: str,
        repositories: Iterable[Repository] = (),
        display_limit: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.run_id = run_id
        self.query_ref = query_ref
        self.display_limit = display_limit
        self._clock = clock
        self._status = VariantAnalysisStatus.REQUESTED
        self._registry = RepositoryResultRegistry(repositories)
        self._tally = SkipTally()
        self._failure_reason: str | None = None
        self._revision = 0
        self._created_at = clock()
        self._updated_at = self._created_at
        self._dirty = False
        self._listeners: list[SnapshotListener] = []

    @property
    def status(self) -> VariantAnalysisStatus:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return self._status.is_terminal

    @property
    def registry(self) -> RepositoryResultRegistry:
        return self._registry

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener; returns a callable that unsubscribes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def mark_in_progress(self) -> VariantAnalysisSnapshot:
        """Enter ``in_progress``; repeated calls are no-ops."""

        if self._status is not VariantAnalysisStatus.IN_PROGRESS:
            self._transition(VariantAnalysisStatus.IN_PROGRESS)
        return self._publish_if_dirty()

    def apply_outcome(self, outcome: RepositoryOutcome) -> RecordResult:
        """Record one repository outcome and push a snapshot if it changed anything."""

        result = self._record(outcome)
        self._publish_if_dirty()
        return result

    def apply_outcomes(self, outcomes: Iterable[RepositoryOutcome]) -> list[RecordResult]:
        """Record a batch of outcomes and push at most one snapshot for it."""

        results = [self._record(outcome) for outcome in outcomes]
        self._publish_if_dirty()
        return results

    def apply_summary(self, repositories: Iterable[Repository]) -> int:
        """Register more targeted repositories without changing state."""

        if self._status in _CLOSED_STATUSES:
            return 0
        added = self._registry.add_targets(repositories)
        if added:
            self._touch()
            self._publish_if_dirty()
        return added

    def complete(
        self,
        status: VariantAnalysisStatus,
        *,
        failure_reason: str | None = None,
    ) -> VariantAnalysisSnapshot:
        """Apply the upstream terminal signal."""

        if status not in _CLOSED_STATUSES:
            raise ValueError(f"Unsupported completion status: {status}")
        if self._status is VariantAnalysisStatus.REQUESTED:
            self._transition(VariantAnalysisStatus.IN_PROGRESS)
        self._transition(status)
        if status is VariantAnalysisStatus.FAILED:
            self._failure_reason = failure_reason
        return self._publish_if_dirty()

    def cancel(self) -> VariantAnalysisSnapshot:
        """User cancellation; recorded outcomes stay valid."""

        self._transition(VariantAnalysisStatus.CANCELED)
        return self._publish_if_dirty()

    def snapshot(self) -> VariantAnalysisSnapshot:
        """Build the current full snapshot."""

        registry = self._registry
        return VariantAnalysisSnapshot(
            run_id=self.run_id,
            query_ref=self.query_ref,
            status=self._status,
            revision=self._revision,
            total_repository_count=registry.targeted_count,
            succeeded_count=registry.count(RepositoryOutcomeKind.SUCCEEDED),
            failed_count=registry.count(RepositoryOutcomeKind.FAILED),
            canceled_count=registry.count(RepositoryOutcomeKind.CANCELED),
            pending_count=registry.pending_count,
            skipped_repos=self._tally.snapshot(self.display_limit),
            failure_reason=self._failure_reason,
            created_at=self._created_at,
            updated_at=self._updated_at,
        )

    def _record(self, outcome: RepositoryOutcome) -> RecordResult:
        if self._status in _CLOSED_STATUSES:
            logger.warning(
                "Variant analysis %s is %s; ignoring late outcome for %s",
                self.run_id,
                self._status.value,
                outcome.full_name,
            )
            return RecordResult(
                status=RecordStatus.RUN_CLOSED,
                offered=outcome,
                stored=self._registry.outcome_for(outcome.full_name),
            )
        if self._status is VariantAnalysisStatus.REQUESTED:
            self._transition(VariantAnalysisStatus.IN_PROGRESS)

        result = self._registry.record(outcome)
        if result.accepted:
            self._tally.add(outcome)
            self._touch()
        return result

    def _transition(self, target: VariantAnalysisStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self._status]:
            raise InvalidRunTransition(
                run_id=self.run_id,
                status_from=self._status.value,
                status_to=target.value,
            )
        logger.info(
            "Variant analysis %s: %s -> %s",
            self.run_id,
            self._status.value,
            target.value,
        )
        self._status = target
        self._touch()

    def _touch(self) -> None:
        self._revision += 1
        self._updated_at = self._clock()
        self._dirty = True

    def _publish_if_dirty(self) -> VariantAnalysisSnapshot:
        snapshot = self.snapshot()
        if not self._dirty:
            return snapshot
        self._dirty = False
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot
