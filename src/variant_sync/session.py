"""Explicitly constructed session wiring the model editor and variant analysis runs.

A session owns the in-progress tracker, the model state reconciler, the
generation coordinator and the attached variant analysis runs. Every state
change is broadcast as a full-state message through one ``OutboundChannel``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Protocol

from variant_sync.config import Settings
from variant_sync.errors import PersistenceFailure, VariantSyncError
from variant_sync.model_editor.generation import (
    GenerationCoordinator,
    GenerationResult,
    ModelGenerator,
)
from variant_sync.model_editor.in_progress import InProgressMethods, InProgressTracker
from variant_sync.model_editor.models import (
    ExternalApiUsage,
    Mode,
    ModeledMethod,
    calculate_modeled_percentage,
    usages_by_package,
    visible_usages,
)
from variant_sync.model_editor.reconciler import ModelState, ModelStateReconciler
from variant_sync.protocol.channel import MessageTransport, OutboundChannel
from variant_sync.protocol.messages import (
    SetExternalApiUsagesMessage,
    SetInProgressMethodsMessage,
    SetModeledMethodsMessage,
    SetVariantAnalysisMessage,
    SetViewStateMessage,
)
from variant_sync.storage.model_store import ModelPersistence
from variant_sync.variant_analysis.models import (
    Repository,
    VariantAnalysisSnapshot,
    VariantAnalysisStatus,
)
from variant_sync.variant_analysis.monitor import (
    MonitorSummary,
    VariantAnalysisMonitor,
    VariantAnalysisSource,
)
from variant_sync.variant_analysis.run import VariantAnalysisRun

logger = logging.getLogger(__name__)


class ExternalApiUsageSource(Protocol):
    """Interface of the external API usage query."""

    async def fetch_usages(self, mode: Mode) -> list[ExternalApiUsage]:
        """Return every external API usage for the current database and mode."""
        raise NotImplementedError


class WorkspaceActions(Protocol):
    """Editor actions the session can trigger but does not implement."""

    async def open_database(self) -> None:
        raise NotImplementedError

    async def open_extension_pack(self) -> None:
        raise NotImplementedError


class SyncSession:
    """One model editing session plus the variant analysis runs it displays."""

    def __init__(
        self,
        *,
        settings: Settings,
        transport: MessageTransport,
        usage_source: ExternalApiUsageSource,
        persistence: ModelPersistence,
        generator: ModelGenerator,
        workspace: WorkspaceActions,
        job_source: VariantAnalysisSource | None = None,
    ) -> None:
        self.settings = settings
        self.channel = OutboundChannel(transport)
        self.usage_source = usage_source
        self.persistence = persistence
        self.workspace = workspace
        self.tracker = InProgressTracker()
        self.reconciler = ModelStateReconciler()
        self.coordinator = GenerationCoordinator(
            tracker=self.tracker,
            reconciler=self.reconciler,
            generator=generator,
        )
        self.monitor: VariantAnalysisMonitor | None = None
        if job_source is not None:
            self.monitor = VariantAnalysisMonitor(
                source=job_source,
                poll_interval_seconds=settings.variant_analysis.poll_interval_seconds,
                max_consecutive_poll_failures=(
                    settings.variant_analysis.max_consecutive_poll_failures
                ),
                display_limit=settings.variant_analysis.skipped_repository_display_limit,
            )
        self.mode = settings.model_editor.default_mode
        self.hide_modeled_apis = settings.model_editor.hide_modeled_apis
        self._usages: tuple[ExternalApiUsage, ...] = ()
        self._runs: dict[str, VariantAnalysisRun] = {}
        self._monitor_tasks: dict[str, asyncio.Task[MonitorSummary]] = {}
        self._closed = False

        self.tracker.subscribe(self._on_in_progress_changed)
        self.reconciler.subscribe(self._on_model_state_changed)

    @property
    def usages(self) -> tuple[ExternalApiUsage, ...]:
        return self._usages

    def run(self, run_id: str) -> VariantAnalysisRun | None:
        return self._runs.get(run_id)

    async def refresh(self) -> None:
        """Reload usages for the current mode and merge in saved models."""

        usages = await self.usage_source.fetch_usages(self.mode)
        saved = await self.persistence.load()
        self._usages = tuple(usages)
        added = self.reconciler.load_initial(saved)
        if not added:
            self._on_model_state_changed(self.reconciler.state())
        self._publish_usages()
        logger.info(
            "Refreshed %d external API usages in %s mode (%d saved models loaded)",
            len(self._usages),
            self.mode.value,
            added,
        )

    async def save(
        self,
        signatures: Iterable[str],
        methods: Mapping[str, ModeledMethod] | None = None,
    ) -> frozenset[str]:
        """Persist ``signatures`` atomically and clear them from the modified set.

        Models submitted with the request are applied as user edits first.
        On ``PersistenceFailure`` the modified set is left untouched.
        """

        requested = tuple(dict.fromkeys(signatures))
        for signature in requested:
            submitted = (methods or {}).get(signature)
            if submitted is not None and self.reconciler.get(signature) != submitted:
                self.reconciler.apply_user_edit(signature, submitted)

        by_signature = {usage.signature: usage for usage in self._usages}
        unknown = [signature for signature in requested if signature not in by_signature]
        if unknown:
            logger.warning(
                "Skipping %d signatures without a known usage: %s",
                len(unknown),
                ", ".join(unknown),
            )
        to_save = [by_signature[signature] for signature in requested if signature in by_signature]
        if not to_save:
            return frozenset()

        models = {
            usage.signature: self.reconciler.get(usage.signature) or ModeledMethod.none()
            for usage in to_save
        }
        try:
            await self.persistence.save(to_save, models)
        except PersistenceFailure as error:
            logger.warning("Saving %d modeled methods failed: %s", len(to_save), error)
            raise
        self._publish_usages()
        # Edits that landed while the save was in flight stay modified.
        unchanged = [
            signature
            for signature, method in models.items()
            if (self.reconciler.get(signature) or ModeledMethod.none()) == method
        ]
        return self.reconciler.mark_saved(unchanged)

    def generate(self, package_name: str) -> asyncio.Task[GenerationResult] | None:
        """Start background generation for the package's unmodeled usages."""

        package_usages = usages_by_package(self._usages).get(package_name, [])
        return self.coordinator.start(package_name, package_usages, mode=self.mode)

    def stop_generate(self, package_name: str) -> bool:
        return self.coordinator.stop(package_name)

    async def switch_mode(self, mode: Mode) -> None:
        """Change the modeling mode and reload usages for it."""

        if mode is self.mode:
            self._publish_view_state()
            return
        logger.info("Switching modeling mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self._publish_view_state()
        await self.refresh()

    def toggle_hide_modeled(self) -> bool:
        self.hide_modeled_apis = not self.hide_modeled_apis
        self._publish_view_state()
        self._publish_usages()
        return self.hide_modeled_apis

    async def open_database(self) -> None:
        await self.workspace.open_database()

    async def open_extension_pack(self) -> None:
        await self.workspace.open_extension_pack()

    def set_modeled_method(self, signature: str, method: ModeledMethod) -> None:
        self.reconciler.apply_user_edit(signature, method)

    async def submit_variant_analysis(
        self,
        *,
        query_ref: str,
        repositories: Iterable[Repository],
    ) -> VariantAnalysisRun:
        """Submit a run through the job source and monitor it in the background."""

        if self.monitor is None:
            raise VariantSyncError("No variant analysis job source is configured")
        run = await self.monitor.submit(query_ref=query_ref, repositories=repositories)
        self.attach_run(run)
        self._monitor_tasks[run.run_id] = asyncio.create_task(
            self._monitor_run(run),
            name=f"monitor:{run.run_id}",
        )
        return run

    def attach_run(self, run: VariantAnalysisRun) -> None:
        """Broadcast every snapshot of ``run``, starting with the current one."""

        if run.run_id in self._runs:
            return
        self._runs[run.run_id] = run
        run.subscribe(self._on_snapshot)
        self._on_snapshot(run.snapshot())

    async def cancel_variant_analysis(self, run_id: str) -> bool:
        """Cancel a run; already-recorded outcomes stay valid."""

        run = self._runs.get(run_id)
        if run is None:
            logger.warning("Cannot cancel unknown variant analysis %s", run_id)
            return False
        if run.is_terminal:
            logger.info(
                "Variant analysis %s already finished as %s",
                run_id,
                run.status.value,
            )
            return False
        if self.monitor is not None:
            await self.monitor.cancel(run)
        else:
            run.cancel()
        return True

    async def aclose(self) -> None:
        """Stop generation and monitoring; the session is unusable afterwards."""

        if self._closed:
            return
        self._closed = True
        await self.coordinator.aclose()
        tasks = list(self._monitor_tasks.values())
        self._monitor_tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Session closed (%d runs attached)", len(self._runs))

    async def _monitor_run(self, run: VariantAnalysisRun) -> MonitorSummary:
        assert self.monitor is not None
        try:
            summary = await self.monitor.monitor(run)
        except Exception as error:
            logger.exception("Monitoring variant analysis %s failed", run.run_id)
            if not run.is_terminal:
                run.complete(
                    VariantAnalysisStatus.FAILED,
                    failure_reason=f"Monitoring failed: {error}",
                )
            return MonitorSummary(final_status=run.status)
        finally:
            if self._monitor_tasks.get(run.run_id) is asyncio.current_task():
                del self._monitor_tasks[run.run_id]
        logger.info(
            "Variant analysis %s monitored to %s: polls=%d failures=%d recorded=%d",
            run.run_id,
            run.status.value,
            summary.polls,
            summary.poll_failures,
            summary.outcomes_recorded,
        )
        return summary

    def _on_snapshot(self, snapshot: VariantAnalysisSnapshot) -> None:
        self.channel.send(SetVariantAnalysisMessage(snapshot=snapshot))

    def _on_in_progress_changed(self, package_name: str, state: InProgressMethods) -> None:
        self.channel.send(SetInProgressMethodsMessage(package_name=package_name, in_progress=state))

    def _on_model_state_changed(self, state: ModelState) -> None:
        self.channel.send(
            SetModeledMethodsMessage(
                modeled_methods=state.modeled_methods,
                modified_signatures=state.modified_signatures,
            ),
        )

    def _publish_view_state(self) -> None:
        self.channel.send(
            SetViewStateMessage(mode=self.mode, hide_modeled_apis=self.hide_modeled_apis),
        )

    def _publish_usages(self) -> None:
        self.channel.send(
            SetExternalApiUsagesMessage(
                usages=tuple(
                    visible_usages(self._usages, hide_modeled_apis=self.hide_modeled_apis),
                ),
                modeled_percentage=calculate_modeled_percentage(self._usages),
            ),
        )
