"""Variant analysis run lifecycle and skip classification."""

from variant_sync.variant_analysis.models import (
    Repository,
    RepositoryOutcome,
    RepositoryOutcomeKind,
    SkippedRepositories,
    SkippedRepositoryGroup,
    VariantAnalysisSnapshot,
    VariantAnalysisStatus,
)
from variant_sync.variant_analysis.registry import (
    RecordResult,
    RecordStatus,
    RepositoryResultRegistry,
)
from variant_sync.variant_analysis.run import VariantAnalysisRun
from variant_sync.variant_analysis.skip_classifier import SkipTally, classify

__all__ = [
    "RecordResult",
    "RecordStatus",
    "Repository",
    "RepositoryOutcome",
    "RepositoryOutcomeKind",
    "RepositoryResultRegistry",
    "SkipTally",
    "SkippedRepositories",
    "SkippedRepositoryGroup",
    "VariantAnalysisRun",
    "VariantAnalysisSnapshot",
    "VariantAnalysisStatus",
    "classify",
]
