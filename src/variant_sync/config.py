"""Runtime configuration for variant analysis runs and model editing sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from variant_sync.model_editor.models import Mode


@dataclass(slots=True)
class VariantAnalysisSettings:
    """Run monitoring settings."""

    poll_interval_seconds: float = 5.0
    max_consecutive_poll_failures: int = 5
    skipped_repository_display_limit: int = 0


@dataclass(slots=True)
class ModelEditorSettings:
    """Model editing session settings."""

    default_mode: Mode = Mode.APPLICATION
    hide_modeled_apis: bool = True


@dataclass(slots=True)
class StorageSettings:
    """SQLite model store settings."""

    busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".variant_sync.db")
    variant_analysis: VariantAnalysisSettings = field(default_factory=VariantAnalysisSettings)
    model_editor: ModelEditorSettings = field(default_factory=ModelEditorSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("VARIANT_SYNC_DB_PATH", ".variant_sync.db")),
            variant_analysis=VariantAnalysisSettings(
                poll_interval_seconds=float(
                    os.getenv("VARIANT_SYNC_POLL_INTERVAL_SECONDS", "5.0"),
                ),
                max_consecutive_poll_failures=int(
                    os.getenv("VARIANT_SYNC_MAX_CONSECUTIVE_POLL_FAILURES", "5"),
                ),
                skipped_repository_display_limit=int(
                    os.getenv("VARIANT_SYNC_SKIPPED_REPOSITORY_DISPLAY_LIMIT", "0"),
                ),
            ),
            model_editor=ModelEditorSettings(
                default_mode=_env_mode("VARIANT_SYNC_DEFAULT_MODE", default=Mode.APPLICATION),
                hide_modeled_apis=_env_bool("VARIANT_SYNC_HIDE_MODELED_APIS", default=True),
            ),
            storage=StorageSettings(
                busy_timeout_ms=int(os.getenv("VARIANT_SYNC_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any setting is out of range."""

        if self.variant_analysis.poll_interval_seconds < 0:
            raise ValueError("VARIANT_SYNC_POLL_INTERVAL_SECONDS must be >= 0.")
        if self.variant_analysis.max_consecutive_poll_failures <= 0:
            raise ValueError("VARIANT_SYNC_MAX_CONSECUTIVE_POLL_FAILURES must be > 0.")
        if self.variant_analysis.skipped_repository_display_limit < 0:
            raise ValueError("VARIANT_SYNC_SKIPPED_REPOSITORY_DISPLAY_LIMIT must be >= 0.")
        if self.storage.busy_timeout_ms <= 0:
            raise ValueError("VARIANT_SYNC_SQLITE_BUSY_TIMEOUT_MS must be > 0.")


def _env_mode(name: str, default: Mode) -> Mode:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    try:
        return Mode(normalized)
    except ValueError as error:
        supported = ", ".join(mode.value for mode in Mode)
        raise ValueError(
            f"Invalid modeling mode for {name}: {value!r}. Expected one of: {supported}",
        ) from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
