from __future__ import annotations

import logging

import allure
import pytest

from tests.factories import make_outcome
from variant_sync.variant_analysis.models import (
    SKIP_OUTCOME_KINDS,
    Repository,
    RepositoryOutcomeKind,
    SkippedRepositoryGroup,
)
from variant_sync.variant_analysis.skip_classifier import (
    SKIP_CLASSIFIER_VERSION,
    SkipTally,
    classify,
    not_found_outcomes,
    resolve_repository_status,
)

pytestmark = [
    allure.epic("Variant Analysis"),
    allure.feature("Skip Classification"),
]


def test_classifier_version_is_stable() -> None:
    assert SKIP_CLASSIFIER_VERSION == 1


@pytest.mark.parametrize(
    ("raw_status", "expected_kind", "expected_rule"),
    [
        ("succeeded", RepositoryOutcomeKind.SUCCEEDED, "succeeded"),
        ("Cancelled", RepositoryOutcomeKind.CANCELED, "canceled"),
        ("timed-out", RepositoryOutcomeKind.FAILED, "failed"),
        ("accessMismatchRepos", RepositoryOutcomeKind.FAILED, "fallback_unrecognized"),
        ("access_mismatch", RepositoryOutcomeKind.ACCESS_MISMATCH, "access_mismatch"),
        ("no codeql db", RepositoryOutcomeKind.NO_CODEQL_DB, "no_codeql_db"),
        ("NOT_FOUND", RepositoryOutcomeKind.NOT_FOUND, "not_found"),
        ("over_limit_repos", RepositoryOutcomeKind.OVER_LIMIT, "over_limit"),
    ],
)
def test_resolve_repository_status_maps_aliases(
    raw_status: str,
    expected_kind: RepositoryOutcomeKind,
    expected_rule: str,
) -> None:
    resolution = resolve_repository_status(raw_status)

    assert resolution is not None
    assert resolution.kind is expected_kind
    assert resolution.matched_rule == expected_rule
    assert resolution.raw_status == raw_status


@pytest.mark.parametrize("raw_status", ["pending", "queued", "in-progress", " In_Progress "])
def test_resolve_repository_status_returns_none_while_pending(raw_status: str) -> None:
    assert resolve_repository_status(raw_status) is None


def test_unrecognized_status_falls_back_to_failed_with_details() -> None:
    resolution = resolve_repository_status("exploded")

    assert resolution is not None
    assert resolution.kind is RepositoryOutcomeKind.FAILED
    assert resolution.to_event_details() == {
        "classifier_version": 1,
        "kind": "failed",
        "matched_rule": "fallback_unrecognized",
        "raw_status": "exploded",
    }


def test_skip_groups_are_disjoint_and_cover_every_repository() -> None:
    outcomes = [
        make_outcome("octo/a", RepositoryOutcomeKind.ACCESS_MISMATCH),
        make_outcome("octo/b", RepositoryOutcomeKind.SUCCEEDED),
        make_outcome("octo/c", RepositoryOutcomeKind.NOT_FOUND),
        make_outcome("octo/d", RepositoryOutcomeKind.NO_CODEQL_DB),
        make_outcome("octo/e", RepositoryOutcomeKind.OVER_LIMIT),
        make_outcome("octo/f", RepositoryOutcomeKind.CANCELED),
        make_outcome("octo/g", RepositoryOutcomeKind.FAILED),
        make_outcome("octo/h", RepositoryOutcomeKind.NOT_FOUND),
        # A second outcome for an already classified repository is ignored.
        make_outcome("octo/a", RepositoryOutcomeKind.OVER_LIMIT),
    ]

    skipped = classify(outcomes)

    groups = [skipped.group(kind) for kind in SKIP_OUTCOME_KINDS]
    grouped_names = [repo.full_name for group in groups for repo in group.repositories]
    assert len(grouped_names) == len(set(grouped_names))

    not_skipped = {"octo/b", "octo/f", "octo/g"}
    assert set(grouped_names).isdisjoint(not_skipped)
    assert set(grouped_names) | not_skipped == {f"octo/{name}" for name in "abcdefgh"}

    assert skipped.access_mismatch_repos.repository_count == 1
    assert skipped.over_limit_repos.repository_count == 1
    assert skipped.not_found_repos.repository_count == 2
    assert skipped.total_count == 5


def test_classify_truncates_lists_but_keeps_counts() -> None:
    outcomes = [
        make_outcome(f"octo/missing-{index}", RepositoryOutcomeKind.NOT_FOUND)
        for index in range(5)
    ]

    skipped = classify(outcomes, display_limit=2)

    group = skipped.not_found_repos
    assert group.repository_count == 5
    assert [repo.full_name for repo in group.repositories] == [
        "octo/missing-0",
        "octo/missing-1",
    ]
    assert group.is_truncated


def test_skip_tally_ignores_non_skips_and_repeats() -> None:
    tally = SkipTally()

    assert tally.add(make_outcome("octo/a", RepositoryOutcomeKind.OVER_LIMIT))
    assert not tally.add(make_outcome("octo/a", RepositoryOutcomeKind.OVER_LIMIT))
    assert not tally.add(make_outcome("octo/b", RepositoryOutcomeKind.SUCCEEDED))

    assert tally.count(RepositoryOutcomeKind.OVER_LIMIT) == 1
    assert tally.snapshot().total_count == 1


def test_not_found_outcomes_are_deduplicated_stubs() -> None:
    outcomes = not_found_outcomes(["octo/gone", "octo/gone", "octo/lost"])

    assert [outcome.full_name for outcome in outcomes] == ["octo/gone", "octo/lost"]
    assert all(outcome.kind is RepositoryOutcomeKind.NOT_FOUND for outcome in outcomes)
    assert not outcomes[0].repository.has_metadata
    assert outcomes[0].repository.to_payload() == {"fullName": "octo/gone"}


def test_not_found_outcomes_drop_malformed_names(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        outcomes = not_found_outcomes(["not-a-valid-name", "octo/gone", "octo/"])

    assert [outcome.full_name for outcome in outcomes] == ["octo/gone"]
    assert "not-a-valid-name" in caplog.text


def test_skip_tally_snapshot_reuses_unchanged_groups() -> None:
    tally = SkipTally()
    tally.add(make_outcome("octo/a", RepositoryOutcomeKind.OVER_LIMIT))
    tally.add(make_outcome("octo/b", RepositoryOutcomeKind.NOT_FOUND))
    first = tally.snapshot()

    tally.add(make_outcome("octo/c", RepositoryOutcomeKind.NOT_FOUND))
    second = tally.snapshot()

    assert second.over_limit_repos is first.over_limit_repos
    assert second.not_found_repos is not first.not_found_repos
    assert second.not_found_repos.repository_count == 2
    assert [repo.full_name for repo in second.not_found_repos.repositories] == [
        "octo/b",
        "octo/c",
    ]


def test_skip_group_payload_uses_wire_names() -> None:
    skipped = classify([make_outcome("octo/a", RepositoryOutcomeKind.NO_CODEQL_DB)])

    payload = skipped.to_payload()

    assert set(payload) == {
        "accessMismatchRepos",
        "noCodeqlDbRepos",
        "notFoundRepos",
        "overLimitRepos",
    }
    assert payload["noCodeqlDbRepos"]["repositoryCount"] == 1
    assert payload["noCodeqlDbRepos"]["repositories"][0]["fullName"] == "octo/a"
    assert payload["overLimitRepos"] == {"repositoryCount": 0, "repositories": []}


def test_skip_group_rejects_inconsistent_counts() -> None:
    with pytest.raises(ValueError, match="cannot be smaller"):
        SkippedRepositoryGroup(repository_count=0, repositories=(Repository.stub("octo/a"),))


def test_group_lookup_rejects_non_skip_kind() -> None:
    skipped = classify([])

    with pytest.raises(ValueError, match="not a skip reason"):
        skipped.group(RepositoryOutcomeKind.SUCCEEDED)


@pytest.mark.parametrize("full_name", ["octo", "/repo", "octo/", "octo/repo/extra"])
def test_repository_requires_owner_and_name(full_name: str) -> None:
    with pytest.raises(ValueError, match="owner/name"):
        Repository(full_name=full_name)
