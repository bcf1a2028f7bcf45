"""Deterministic classification of repository outcomes into skip groups."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from variant_sync.variant_analysis.models import (
    SKIP_OUTCOME_KINDS,
    Repository,
    RepositoryOutcome,
    RepositoryOutcomeKind,
    SkippedRepositories,
    SkippedRepositoryGroup,
)

logger = logging.getLogger(__name__)

SKIP_CLASSIFIER_VERSION = 1

_NON_TERMINAL_STATUSES: tuple[str, ...] = (
    "pending",
    "queued",
    "in_progress",
)
_STATUS_RULES: tuple[tuple[str, RepositoryOutcomeKind, tuple[str, ...]], ...] = (
    ("succeeded", RepositoryOutcomeKind.SUCCEEDED, ("succeeded", "success", "completed")),
    ("canceled", RepositoryOutcomeKind.CANCELED, ("canceled", "cancelled")),
    ("failed", RepositoryOutcomeKind.FAILED, ("failed", "failure", "timed_out", "timeout")),
    (
        "access_mismatch",
        RepositoryOutcomeKind.ACCESS_MISMATCH,
        ("access_mismatch", "access_mismatch_repos"),
    ),
    (
        "no_codeql_db",
        RepositoryOutcomeKind.NO_CODEQL_DB,
        ("no_codeql_db", "no_codeql_db_repos", "no_database"),
    ),
    ("not_found", RepositoryOutcomeKind.NOT_FOUND, ("not_found", "not_found_repos")),
    ("over_limit", RepositoryOutcomeKind.OVER_LIMIT, ("over_limit", "over_limit_repos")),
)


@dataclass(slots=True)
class StatusResolution:
    """Normalized outcome kind for one raw job-source status."""

    kind: RepositoryOutcomeKind
    matched_rule: str
    raw_status: str

    def to_event_details(self) -> dict[str, object]:
        """Serialize classifier diagnostics for logs."""

        return {
            "classifier_version": SKIP_CLASSIFIER_VERSION,
            "kind": self.kind.value,
            "matched_rule": self.matched_rule,
            "raw_status": self.raw_status,
        }


def resolve_repository_status(raw_status: str) -> StatusResolution | None:
    """Map a raw repository status onto an outcome kind.

    Returns ``None`` while the repository is still pending. Statuses nobody
    recognises become ``FAILED`` so they stay countable instead of raising.
    """

    normalized = _normalize_status(raw_status)
    if normalized in _NON_TERMINAL_STATUSES:
        return None

    for rule, kind, aliases in _STATUS_RULES:
        if normalized in aliases:
            return StatusResolution(kind=kind, matched_rule=rule, raw_status=raw_status)

    return StatusResolution(
        kind=RepositoryOutcomeKind.FAILED,
        matched_rule="fallback_unrecognized",
        raw_status=raw_status,
    )


def not_found_outcomes(full_names: Iterable[str]) -> list[RepositoryOutcome]:
    """Build not-found outcomes for repositories known only by name.

    Names that are not ``owner/name`` are logged and dropped.
    """

    outcomes: list[RepositoryOutcome] = []
    for full_name in dict.fromkeys(full_names):
        try:
            repository = Repository.stub(full_name)
        except ValueError:
            logger.warning("Ignoring malformed not-found repository name %r", full_name)
            continue
        outcomes.append(
            RepositoryOutcome(repository=repository, kind=RepositoryOutcomeKind.NOT_FOUND),
        )
    return outcomes


class SkipTally:
    """Running per-reason tally of skipped repositories.

    ``add`` is O(1) amortized: one membership check and one list append.
    Built groups are cached per reason, so a snapshot only rebuilds the group
    that changed since the previous one.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._repositories: dict[RepositoryOutcomeKind, list[Repository]] = {
            kind: [] for kind in SKIP_OUTCOME_KINDS
        }
        self._groups: dict[RepositoryOutcomeKind, SkippedRepositoryGroup | None] = {
            kind: None for kind in SKIP_OUTCOME_KINDS
        }

    def add(self, outcome: RepositoryOutcome) -> bool:
        """Count ``outcome`` if it is a skip; returns whether a group changed."""

        if not outcome.kind.is_skip or outcome.full_name in self._seen:
            return False
        self._seen.add(outcome.full_name)
        self._repositories[outcome.kind].append(outcome.repository)
        self._groups[outcome.kind] = None
        return True

    def count(self, kind: RepositoryOutcomeKind) -> int:
        return len(self._repositories[kind])

    def group(self, kind: RepositoryOutcomeKind) -> SkippedRepositoryGroup:
        """Full, untruncated group for ``kind``."""

        cached = self._groups[kind]
        if cached is None:
            repositories = self._repositories[kind]
            cached = SkippedRepositoryGroup(
                repository_count=len(repositories),
                repositories=tuple(repositories),
            )
            self._groups[kind] = cached
        return cached

    def snapshot(self, display_limit: int = 0) -> SkippedRepositories:
        """Build the four groups; ``display_limit`` trims lists, never counts."""

        groups = {kind: self.group(kind).truncated(display_limit) for kind in SKIP_OUTCOME_KINDS}
        return SkippedRepositories(
            access_mismatch_repos=groups[RepositoryOutcomeKind.ACCESS_MISMATCH],
            no_codeql_db_repos=groups[RepositoryOutcomeKind.NO_CODEQL_DB],
            not_found_repos=groups[RepositoryOutcomeKind.NOT_FOUND],
            over_limit_repos=groups[RepositoryOutcomeKind.OVER_LIMIT],
        )


def classify(
    outcomes: Iterable[RepositoryOutcome],
    *,
    display_limit: int = 0,
) -> SkippedRepositories:
    """Group skipped repositories by reason; the first outcome per repository wins."""

    tally = SkipTally()
    claimed: set[str] = set()
    for outcome in outcomes:
        if outcome.full_name in claimed:
            continue
        claimed.add(outcome.full_name)
        tally.add(outcome)
    return tally.snapshot(display_limit)


def _normalize_status(raw_status: str) -> str:
    return raw_status.strip().lower().replace("-", "_").replace(" ", "_")
