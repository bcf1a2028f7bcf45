from __future__ import annotations

import asyncio

import allure
import pytest

from tests.factories import ScriptedGenerator, generated_source, make_usage, sink
from variant_sync.errors import ConflictError
from variant_sync.model_editor.generation import GenerationCoordinator, GenerationStatus
from variant_sync.model_editor.in_progress import InProgressTracker
from variant_sync.model_editor.models import Mode
from variant_sync.model_editor.reconciler import ModelStateReconciler

pytestmark = [
    allure.epic("Model Editor"),
    allure.feature("Background Generation"),
]


def _coordinator(
    generator: ScriptedGenerator,
) -> tuple[GenerationCoordinator, InProgressTracker, ModelStateReconciler]:
    tracker = InProgressTracker()
    reconciler = ModelStateReconciler()
    coordinator = GenerationCoordinator(
        tracker=tracker,
        reconciler=reconciler,
        generator=generator,
    )
    return coordinator, tracker, reconciler


@pytest.mark.asyncio
async def test_generation_merges_batches_and_frees_tracker() -> None:
    generator = ScriptedGenerator([{"s1": generated_source()}, {"s2": generated_source()}])
    coordinator, tracker, reconciler = _coordinator(generator)

    task = coordinator.start(
        "pkgA",
        [make_usage("s1"), make_usage("s2")],
        mode=Mode.APPLICATION,
    )
    assert task is not None
    assert tracker.state.methods_for("pkgA") == {"s1", "s2"}

    result = await task

    assert result.status is GenerationStatus.COMPLETED
    assert result.batches == 2
    assert result.replaced == 2
    assert reconciler.modified_signatures == {"s1", "s2"}
    assert not tracker.is_in_progress("s1")
    assert coordinator.running_packages() == frozenset()


@pytest.mark.asyncio
async def test_stop_frees_signatures_and_late_batch_still_merges() -> None:
    generator = ScriptedGenerator(hold=True)
    coordinator, tracker, reconciler = _coordinator(generator)
    task = coordinator.start(
        "pkgA",
        [make_usage("s1"), make_usage("s2")],
        mode=Mode.APPLICATION,
    )
    assert task is not None
    await generator.started.wait()

    assert coordinator.stop("pkgA")
    assert not tracker.is_in_progress("s1")
    assert not tracker.is_in_progress("s2")

    with pytest.raises(asyncio.CancelledError):
        await task

    assert generator.on_batch is not None
    generator.on_batch({"s1": generated_source()})

    assert reconciler.get("s1") == generated_source()
    assert "s1" in reconciler.modified_signatures


@pytest.mark.asyncio
async def test_only_unmodeled_usages_are_requested() -> None:
    generator = ScriptedGenerator()
    coordinator, _, reconciler = _coordinator(generator)
    reconciler.apply_user_edit("s1", sink())

    task = coordinator.start(
        "pkgA",
        [make_usage("s1"), make_usage("s2"), make_usage("other", package_name="pkgB")],
        mode=Mode.FRAMEWORK,
    )
    assert task is not None
    await task

    request = generator.requests[0]
    assert request.signatures == ("s2",)
    assert request.mode is Mode.FRAMEWORK
    assert request.modeled_methods["s1"] == sink()


@pytest.mark.asyncio
async def test_nothing_to_generate_returns_none() -> None:
    generator = ScriptedGenerator()
    coordinator, tracker, reconciler = _coordinator(generator)
    reconciler.apply_user_edit("s1", sink())

    assert coordinator.start("pkgA", [make_usage("s1")], mode=Mode.APPLICATION) is None
    assert tracker.state.to_payload() == {}


@pytest.mark.asyncio
async def test_second_start_for_running_package_returns_same_task() -> None:
    generator = ScriptedGenerator(hold=True)
    coordinator, _, _ = _coordinator(generator)
    usages = [make_usage("s1")]

    first = coordinator.start("pkgA", usages, mode=Mode.APPLICATION)
    second = coordinator.start("pkgA", usages, mode=Mode.APPLICATION)

    assert first is second
    await coordinator.aclose()
    assert first is not None and first.cancelled()


@pytest.mark.asyncio
async def test_conflicting_package_is_rejected_without_spawning() -> None:
    generator = ScriptedGenerator(hold=True)
    coordinator, tracker, _ = _coordinator(generator)
    coordinator.start("pkgA", [make_usage("shared")], mode=Mode.APPLICATION)

    with pytest.raises(ConflictError):
        coordinator.start(
            "pkgB",
            [make_usage("shared", package_name="pkgB")],
            mode=Mode.APPLICATION,
        )

    assert coordinator.running_packages() == {"pkgA"}
    assert tracker.state.package_for("shared") == "pkgA"
    await coordinator.aclose()


@pytest.mark.asyncio
async def test_generator_failure_is_reported_in_result() -> None:
    generator = ScriptedGenerator(
        [{"s1": generated_source()}],
        error=RuntimeError("model endpoint unavailable"),
    )
    coordinator, tracker, reconciler = _coordinator(generator)

    task = coordinator.start("pkgA", [make_usage("s1"), make_usage("s2")], mode=Mode.APPLICATION)
    assert task is not None
    result = await task

    assert result.status is GenerationStatus.FAILED
    assert result.error_summary == "model endpoint unavailable"
    assert result.batches == 1
    assert reconciler.get("s1") == generated_source()
    assert not tracker.is_in_progress("s2")


@pytest.mark.asyncio
async def test_restart_after_stop_is_not_freed_by_old_task() -> None:
    generator = ScriptedGenerator(hold=True)
    coordinator, tracker, _ = _coordinator(generator)
    old = coordinator.start("pkgA", [make_usage("s1")], mode=Mode.APPLICATION)
    await generator.started.wait()
    coordinator.stop("pkgA")
    new = coordinator.start("pkgA", [make_usage("s1")], mode=Mode.APPLICATION)

    assert old is not new
    await asyncio.gather(old, return_exceptions=True)

    assert tracker.is_in_progress("s1")
    await coordinator.aclose()
