"""Domain models for variant analysis runs and per-repository outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class VariantAnalysisStatus(str, Enum):
    """Run lifecycle states."""

    REQUESTED = "requested"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        VariantAnalysisStatus.SUCCEEDED,
        VariantAnalysisStatus.FAILED,
        VariantAnalysisStatus.CANCELED,
    },
)


class RepositoryOutcomeKind(str, Enum):
    """Terminal outcome tag recorded for one repository in one run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    ACCESS_MISMATCH = "access_mismatch"
    NO_CODEQL_DB = "no_codeql_db"
    NOT_FOUND = "not_found"
    OVER_LIMIT = "over_limit"

    @property
    def is_skip(self) -> bool:
        return self in SKIP_OUTCOME_KINDS


SKIP_OUTCOME_KINDS: tuple[RepositoryOutcomeKind, ...] = (
    RepositoryOutcomeKind.ACCESS_MISMATCH,
    RepositoryOutcomeKind.NO_CODEQL_DB,
    RepositoryOutcomeKind.NOT_FOUND,
    RepositoryOutcomeKind.OVER_LIMIT,
)


@dataclass(frozen=True, slots=True)
class Repository:
    """Remote repository; identity is ``owner/name``, metadata is optional."""

    full_name: str
    id: int | None = None
    private: bool | None = None
    stargazers_count: int | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        owner, separator, name = self.full_name.partition("/")
        if not separator or not owner or not name or "/" in name:
            raise ValueError(f"Repository full_name must be 'owner/name', got {self.full_name!r}")

    @classmethod
    def stub(cls, full_name: str) -> Repository:
        """Repository known only by identity, e.g. from a bulk not-found response."""

        return cls(full_name=full_name)

    @property
    def owner(self) -> str:
        return self.full_name.partition("/")[0]

    @property
    def name(self) -> str:
        return self.full_name.partition("/")[2]

    @property
    def has_metadata(self) -> bool:
        return any(
            value is not None
            for value in (self.id, self.private, self.stargazers_count, self.updated_at)
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize for outbound messages; stubs carry only ``fullName``."""

        payload: dict[str, Any] = {"fullName": self.full_name}
        if self.id is not None:
            payload["id"] = self.id
        if self.private is not None:
            payload["private"] = self.private
        if self.stargazers_count is not None:
            payload["stargazersCount"] = self.stargazers_count
        if self.updated_at is not None:
            payload["updatedAt"] = self.updated_at.isoformat()
        return payload


@dataclass(frozen=True, slots=True)
class RepositoryOutcome:
    """Outcome of one repository; results of successful analyses stay out-of-band."""

    repository: Repository
    kind: RepositoryOutcomeKind
    result_ref: str | None = None
    result_count: int | None = None
    detail: str | None = None

    @property
    def full_name(self) -> str:
        return self.repository.full_name

    def same_outcome_as(self, other: RepositoryOutcome) -> bool:
        """Whether reapplying ``other`` would be a no-op for this repository."""

        return (
            self.full_name == other.full_name
            and self.kind == other.kind
            and self.result_ref == other.result_ref
        )


@dataclass(frozen=True, slots=True)
class SkippedRepositoryGroup:
    """Repositories skipped for one reason; the count stays authoritative when truncated."""

    repository_count: int = 0
    repositories: tuple[Repository, ...] = ()

    def __post_init__(self) -> None:
        if self.repository_count < 0:
            raise ValueError("repository_count must be >= 0")
        if self.repository_count < len(self.repositories):
            raise ValueError(
                "repository_count cannot be smaller than the number of listed repositories",
            )

    @property
    def is_truncated(self) -> bool:
        return self.repository_count > len(self.repositories)

    def truncated(self, limit: int) -> SkippedRepositoryGroup:
        """Keep at most ``limit`` listed repositories, preserving the full count."""

        if limit <= 0 or len(self.repositories) <= limit:
            return self
        return SkippedRepositoryGroup(
            repository_count=self.repository_count,
            repositories=self.repositories[:limit],
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "repositoryCount": self.repository_count,
            "repositories": [repository.to_payload() for repository in self.repositories],
        }


@dataclass(frozen=True, slots=True)
class SkippedRepositories:
    """The four disjoint skip groups of one run."""

    access_mismatch_repos: SkippedRepositoryGroup = field(default_factory=SkippedRepositoryGroup)
    no_codeql_db_repos: SkippedRepositoryGroup = field(default_factory=SkippedRepositoryGroup)
    not_found_repos: SkippedRepositoryGroup = field(default_factory=SkippedRepositoryGroup)
    over_limit_repos: SkippedRepositoryGroup = field(default_factory=SkippedRepositoryGroup)

    def group(self, kind: RepositoryOutcomeKind) -> SkippedRepositoryGroup:
        """Return the group for a skip outcome kind."""

        if kind is RepositoryOutcomeKind.ACCESS_MISMATCH:
            return self.access_mismatch_repos
        if kind is RepositoryOutcomeKind.NO_CODEQL_DB:
            return self.no_codeql_db_repos
        if kind is RepositoryOutcomeKind.NOT_FOUND:
            return self.not_found_repos
        if kind is RepositoryOutcomeKind.OVER_LIMIT:
            return self.over_limit_repos
        raise ValueError(f"Outcome kind {kind.value!r} is not a skip reason")

    @property
    def total_count(self) -> int:
        return sum(self.group(kind).repository_count for kind in SKIP_OUTCOME_KINDS)

    def to_payload(self) -> dict[str, Any]:
        return {
            "accessMismatchRepos": self.access_mismatch_repos.to_payload(),
            "noCodeqlDbRepos": self.no_codeql_db_repos.to_payload(),
            "notFoundRepos": self.not_found_repos.to_payload(),
            "overLimitRepos": self.over_limit_repos.to_payload(),
        }


@dataclass(frozen=True, slots=True)
class VariantAnalysisSnapshot:
    """Full, self-contained view of one run; consumers replace, never patch."""

    run_id: str
    query_ref: str
    status: VariantAnalysisStatus
    revision: int
    total_repository_count: int
    succeeded_count: int
    failed_count: int
    canceled_count: int
    pending_count: int
    skipped_repos: SkippedRepositories
    failure_reason: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def skipped_count(self) -> int:
        return self.skipped_repos.total_count

    def to_payload(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "queryRef": self.query_ref,
            "status": self.status.value,
            "revision": self.revision,
            "totalRepositoryCount": self.total_repository_count,
            "succeededCount": self.succeeded_count,
            "failedCount": self.failed_count,
            "canceledCount": self.canceled_count,
            "pendingCount": self.pending_count,
            "skippedRepos": self.skipped_repos.to_payload(),
            "failureReason": self.failure_reason,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
