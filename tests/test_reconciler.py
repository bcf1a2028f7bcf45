from __future__ import annotations

import allure

from tests.factories import generated_source, sink
from variant_sync.model_editor.models import ModeledMethod
from variant_sync.model_editor.reconciler import ModelState, ModelStateReconciler

pytestmark = [
    allure.epic("Model Editor"),
    allure.feature("Model Reconciliation"),
]


def _reconciler() -> tuple[ModelStateReconciler, list[ModelState]]:
    reconciler = ModelStateReconciler()
    states: list[ModelState] = []
    reconciler.subscribe(states.append)
    return reconciler, states


def test_user_edit_survives_generated_batch() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_user_edit("s1", sink())

    merge = reconciler.apply_generated("pkgA", {"s1": generated_source()})

    assert merge.preserved == ("s1",)
    assert merge.replaced == ()
    assert reconciler.get("s1") == sink()
    assert "s1" in reconciler.modified_signatures


def test_generated_replaces_none_and_marks_modified() -> None:
    reconciler, states = _reconciler()
    reconciler.load_initial({"s1": ModeledMethod.none()})

    merge = reconciler.apply_generated("pkgA", {"s1": generated_source()})

    assert merge.replaced == ("s1",)
    assert reconciler.get("s1") == generated_source()
    assert reconciler.modified_signatures == {"s1"}
    assert states[-1].modified_signatures == {"s1"}


def test_later_generation_replaces_earlier_generated_value() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_generated("pkgA", {"s1": generated_source("remote")})

    merge = reconciler.apply_generated("pkgA", {"s1": generated_source("local")})

    assert merge.replaced == ("s1",)
    assert reconciler.get("s1") == generated_source("local")


def test_user_edit_of_generated_value_is_not_overwritten() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_generated("pkgA", {"s1": generated_source("remote")})
    reconciler.apply_user_edit("s1", sink("path-injection"))

    merge = reconciler.apply_generated("pkgA", {"s1": generated_source("local")})

    assert merge.touched == ("s1",)
    assert merge.preserved == ("s1",)
    assert reconciler.get("s1") == sink("path-injection")


def test_user_edit_matching_earlier_generation_is_not_overwritten() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_generated("pkgA", {"s1": generated_source("remote")})
    reconciler.apply_user_edit("s1", sink())
    reconciler.apply_user_edit("s1", generated_source("remote"))

    merge = reconciler.apply_generated("pkgA", {"s1": generated_source("local")})

    assert merge.preserved == ("s1",)
    assert reconciler.get("s1") == generated_source("remote")


def test_loaded_models_win_over_generation() -> None:
    reconciler, _ = _reconciler()
    reconciler.load_initial({"s1": sink()})

    merge = reconciler.apply_generated("pkgA", {"s1": generated_source(), "s2": generated_source()})

    assert merge.preserved == ("s1",)
    assert merge.replaced == ("s2",)
    assert reconciler.modified_signatures == {"s1", "s2"}


def test_load_initial_keeps_existing_entries_and_is_idempotent() -> None:
    reconciler, states = _reconciler()
    reconciler.apply_user_edit("s1", sink("xss"))

    first = reconciler.load_initial({"s1": sink(), "s2": sink()})
    second = reconciler.load_initial({"s1": sink(), "s2": sink()})

    assert first == 1
    assert second == 0
    assert reconciler.get("s1") == sink("xss")
    assert len(states) == 2


def test_mark_saved_removes_exactly_the_subset() -> None:
    reconciler, _ = _reconciler()
    for signature in ("s1", "s2", "s3"):
        reconciler.apply_user_edit(signature, sink())

    cleared = reconciler.mark_saved({"s1", "s3", "unknown"})

    assert cleared == {"s1", "s3"}
    assert reconciler.modified_signatures == {"s2"}
    assert set(reconciler.modeled_methods) == {"s1", "s2", "s3"}


def test_listeners_receive_full_state_after_each_mutation() -> None:
    reconciler, states = _reconciler()

    reconciler.apply_user_edit("s1", sink())
    reconciler.apply_generated("pkgA", {"s2": generated_source()})
    reconciler.mark_saved({"s1"})

    assert len(states) == 3
    assert dict(states[-1].modeled_methods) == {"s1": sink(), "s2": generated_source()}
    assert states[-1].modified_signatures == {"s2"}


def test_empty_batch_does_not_notify() -> None:
    reconciler, states = _reconciler()

    merge = reconciler.apply_generated("pkgA", {})

    assert merge.touched == ()
    assert states == []
