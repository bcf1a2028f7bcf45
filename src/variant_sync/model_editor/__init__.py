"""Modeled-API editing state: in-progress tracking, reconciliation, generation."""

from variant_sync.model_editor.in_progress import InProgressMethods, InProgressTracker
from variant_sync.model_editor.models import (
    ExternalApiUsage,
    Mode,
    ModeledMethod,
    ModeledMethodType,
    Provenance,
)
from variant_sync.model_editor.reconciler import MergeResult, ModelState, ModelStateReconciler

__all__ = [
    "ExternalApiUsage",
    "InProgressMethods",
    "InProgressTracker",
    "MergeResult",
    "Mode",
    "ModelState",
    "ModelStateReconciler",
    "ModeledMethod",
    "ModeledMethodType",
    "Provenance",
]
