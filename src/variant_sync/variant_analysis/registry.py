"""Append-only registry of per-repository outcomes for one run."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from variant_sync.variant_analysis.models import (
    Repository,
    RepositoryOutcome,
    RepositoryOutcomeKind,
)

logger = logging.getLogger(__name__)


class RecordStatus(str, Enum):
    """What happened to one offered outcome."""

    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"
    RUN_CLOSED = "run_closed"


@dataclass(frozen=True, slots=True)
class RecordResult:
    """Result of offering an outcome; ``stored`` is what the registry now holds."""

    status: RecordStatus
    offered: RepositoryOutcome
    stored: RepositoryOutcome | None

    @property
    def accepted(self) -> bool:
        return self.status is RecordStatus.RECORDED


class RepositoryResultRegistry:
    """Records exactly one terminal outcome per repository.

    Outcomes arrive in any order. The first outcome for a repository wins:
    reapplying it is a no-op and a different outcome is reported back as a
    conflict without touching the stored one.
    """

    def __init__(self, repositories: Iterable[Repository] = ()) -> None:
        self._targeted: dict[str, Repository] = {}
        self._outcomes: dict[str, RepositoryOutcome] = {}
        self._counts: Counter[RepositoryOutcomeKind] = Counter()
        self.add_targets(repositories)

    def add_targets(self, repositories: Iterable[Repository]) -> int:
        """Register targeted repositories; returns how many were new."""

        added = 0
        for repository in repositories:
            if repository.full_name in self._targeted:
                continue
            self._targeted[repository.full_name] = repository
            added += 1
        return added

    def record(self, outcome: RepositoryOutcome) -> RecordResult:
        """Store ``outcome`` unless the repository already has one."""

        existing = self._outcomes.get(outcome.full_name)
        if existing is not None:
            if existing.same_outcome_as(outcome):
                return RecordResult(status=RecordStatus.DUPLICATE, offered=outcome, stored=existing)
            logger.warning(
                "Ignoring conflicting outcome for %s: stored=%s offered=%s",
                outcome.full_name,
                existing.kind.value,
                outcome.kind.value,
            )
            return RecordResult(status=RecordStatus.CONFLICT, offered=outcome, stored=existing)

        if outcome.full_name not in self._targeted:
            logger.debug("Outcome for untargeted repository %s; adding it", outcome.full_name)
            self._targeted[outcome.full_name] = outcome.repository
        self._outcomes[outcome.full_name] = outcome
        self._counts[outcome.kind] += 1
        return RecordResult(status=RecordStatus.RECORDED, offered=outcome, stored=outcome)

    def outcome_for(self, full_name: str) -> RepositoryOutcome | None:
        return self._outcomes.get(full_name)

    def outcomes(self) -> list[RepositoryOutcome]:
        """Recorded outcomes in arrival order."""

        return list(self._outcomes.values())

    def count(self, kind: RepositoryOutcomeKind) -> int:
        return self._counts[kind]

    def pending_repositories(self) -> list[Repository]:
        return [
            repository
            for full_name, repository in self._targeted.items()
            if full_name not in self._outcomes
        ]

    @property
    def targeted_count(self) -> int:
        return len(self._targeted)

    @property
    def recorded_count(self) -> int:
        return len(self._outcomes)

    @property
    def pending_count(self) -> int:
        return self.targeted_count - self.recorded_count
