"""Shared test fixtures."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from tests.factories import (
    InMemoryPersistence,
    RecordingTransport,
    RecordingWorkspace,
    ScriptedGenerator,
    ScriptedJobSource,
    StaticUsageSource,
    make_usage,
)
from variant_sync.config import Settings, VariantAnalysisSettings
from variant_sync.model_editor.models import ExternalApiUsage, Mode
from variant_sync.session import SyncSession


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings with an isolated database and no poll delay."""
    base = Settings(db_path=tmp_path / "variant_sync.db")
    return replace(
        base,
        variant_analysis=VariantAnalysisSettings(
            poll_interval_seconds=0.0,
            max_consecutive_poll_failures=2,
        ),
    )


@pytest.fixture()
def usages() -> dict[Mode, list[ExternalApiUsage]]:
    return {
        Mode.APPLICATION: [
            make_usage("org.a.Client#get", "pkgA"),
            make_usage("org.a.Client#put", "pkgA"),
            make_usage("org.b.Runner#run", "pkgB", supported=True),
        ],
        Mode.FRAMEWORK: [
            make_usage("org.fw.Handler#handle", "pkgFw"),
        ],
    }


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture()
def workspace() -> RecordingWorkspace:
    return RecordingWorkspace()


@pytest.fixture()
def make_session(settings, usages, transport, persistence, workspace):
    """Build a session around the in-memory fakes; override collaborators via kwargs."""

    def _make(
        *,
        generator: ScriptedGenerator | None = None,
        job_source: ScriptedJobSource | None = None,
        store: InMemoryPersistence | None = None,
    ) -> SyncSession:
        return SyncSession(
            settings=settings,
            transport=transport,
            usage_source=StaticUsageSource(usages),
            persistence=store or persistence,
            generator=generator or ScriptedGenerator(),
            workspace=workspace,
            job_source=job_source,
        )

    return _make
