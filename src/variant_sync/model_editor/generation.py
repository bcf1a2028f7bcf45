"""Background model generation, one cancellable task per package."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from variant_sync.model_editor.in_progress import InProgressTracker
from variant_sync.model_editor.models import ExternalApiUsage, Mode, ModeledMethod
from variant_sync.model_editor.reconciler import ModelStateReconciler

logger = logging.getLogger(__name__)

BatchCallback = Callable[[Mapping[str, ModeledMethod]], None]


class GenerationStatus(str, Enum):
    """How a generation task ended when it was not cancelled."""

    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Input handed to the model generator for one package."""

    package_name: str
    usages: tuple[ExternalApiUsage, ...]
    modeled_methods: Mapping[str, ModeledMethod]
    mode: Mode

    @property
    def signatures(self) -> tuple[str, ...]:
        return tuple(usage.signature for usage in self.usages)


class ModelGenerator(Protocol):
    """Interface of the background model generator."""

    async def generate(self, request: GenerationRequest, on_batch: BatchCallback) -> None:
        """Produce models for the request, delivering them in batches."""
        raise NotImplementedError


@dataclass(slots=True)
class GenerationResult:
    """Counters for one finished generation task."""

    package_name: str
    status: GenerationStatus = GenerationStatus.COMPLETED
    batches: int = 0
    replaced: int = 0
    preserved: int = 0
    error_summary: str | None = None


class GenerationCoordinator:
    """Starts and stops per-package generation tasks.

    The tracker gates what the presentation may edit; data acceptance goes
    through the reconciler's merge policy only, so batches that arrive after
    ``stop`` are still merged.
    """

    def __init__(
        self,
        *,
        tracker: InProgressTracker,
        reconciler: ModelStateReconciler,
        generator: ModelGenerator,
    ) -> None:
        self.tracker = tracker
        self.reconciler = reconciler
        self.generator = generator
        self._tasks: dict[str, asyncio.Task[GenerationResult]] = {}

    def running_packages(self) -> frozenset[str]:
        return frozenset(self._tasks)

    def start(
        self,
        package_name: str,
        usages: Iterable[ExternalApiUsage],
        *,
        mode: Mode,
    ) -> asyncio.Task[GenerationResult] | None:
        """Start generating the package's unmodeled usages.

        Raises ``ConflictError`` when another package is generating any of
        them. Returns ``None`` when there is nothing left to generate.
        """

        existing = self._tasks.get(package_name)
        if existing is not None:
            logger.info("Generation for package %s is already running", package_name)
            return existing

        candidates = tuple(
            usage
            for usage in usages
            if usage.package_name == package_name and not self._is_modeled(usage.signature)
        )
        if not candidates:
            logger.info("Nothing to generate for package %s", package_name)
            return None

        request = GenerationRequest(
            package_name=package_name,
            usages=candidates,
            modeled_methods=self.reconciler.modeled_methods,
            mode=mode,
        )
        self.tracker.start(package_name, request.signatures)
        task = asyncio.create_task(self._run(request), name=f"generate:{package_name}")
        self._tasks[package_name] = task
        return task

    def stop(self, package_name: str) -> bool:
        """Free the package's signatures now and cancel its task."""

        task = self._tasks.pop(package_name, None)
        self.tracker.stop(package_name)
        if task is None:
            return False
        if not task.done():
            task.cancel()
        return True

    async def aclose(self) -> None:
        """Cancel every running task and wait for them to unwind."""

        tasks = list(self._tasks.values())
        for package_name in list(self._tasks):
            self.stop(package_name)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, request: GenerationRequest) -> GenerationResult:
        package_name = request.package_name
        result = GenerationResult(package_name=package_name)

        def _on_batch(batch: Mapping[str, ModeledMethod]) -> None:
            merge = self.reconciler.apply_generated(package_name, batch)
            result.batches += 1
            result.replaced += len(merge.replaced)
            result.preserved += len(merge.preserved)

        try:
            await self.generator.generate(request, _on_batch)
        except asyncio.CancelledError:
            logger.info(
                "Generation for package %s cancelled after %d batches",
                package_name,
                result.batches,
            )
            raise
        except Exception as error:  # noqa: BLE001
            logger.exception("Generation for package %s failed", package_name)
            result.status = GenerationStatus.FAILED
            result.error_summary = str(error)
        finally:
            if self._tasks.get(package_name) is asyncio.current_task():
                del self._tasks[package_name]
                self.tracker.stop(package_name)

        logger.info(
            "Generation for package %s %s: batches=%d replaced=%d preserved=%d",
            package_name,
            result.status.value,
            result.batches,
            result.replaced,
            result.preserved,
        )
        return result

    def _is_modeled(self, signature: str) -> bool:
        method = self.reconciler.get(signature)
        return method is not None and method.is_modeled
