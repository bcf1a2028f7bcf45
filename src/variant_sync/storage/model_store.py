"""Persistence of saved models."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, col, select

from variant_sync.errors import PersistenceFailure
from variant_sync.model_editor.models import (
    ExternalApiUsage,
    ModeledMethod,
    ModeledMethodType,
    Provenance,
)
from variant_sync.storage.common import build_sqlite_engine, utc_now
from variant_sync.storage.tables import SavedModeledMethod

logger = logging.getLogger(__name__)


class ModelPersistence(Protocol):
    """Interface of durable model storage."""

    async def load(self) -> dict[str, ModeledMethod]:
        """Return every saved model keyed by signature."""
        raise NotImplementedError

    async def save(
        self,
        usages: Sequence[ExternalApiUsage],
        methods: Mapping[str, ModeledMethod],
    ) -> None:
        """Store the models of ``usages`` atomically or raise ``PersistenceFailure``."""
        raise NotImplementedError


class SqlModelStore:
    """Model persistence backed by SQLModel + SQLite.

    A save runs in one session and commits once, so either every given
    signature is stored or none is. Unmodeled (``none``) entries delete the
    saved row.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def init_schema(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    async def load(self) -> dict[str, ModeledMethod]:
        return await asyncio.to_thread(self.load_sync)

    async def save(
        self,
        usages: Sequence[ExternalApiUsage],
        methods: Mapping[str, ModeledMethod],
    ) -> None:
        await asyncio.to_thread(self.save_sync, usages, methods)

    def load_sync(self) -> dict[str, ModeledMethod]:
        try:
            with Session(self.engine) as session:
                rows = session.exec(
                    select(SavedModeledMethod).order_by(col(SavedModeledMethod.signature).asc()),
                ).all()
        except SQLAlchemyError as error:
            raise PersistenceFailure(f"Loading saved models failed: {error}") from error
        return {row.signature: _to_modeled_method(row) for row in rows}

    def save_sync(
        self,
        usages: Sequence[ExternalApiUsage],
        methods: Mapping[str, ModeledMethod],
    ) -> None:
        signatures = [usage.signature for usage in usages if usage.signature in methods]
        now = utc_now()
        try:
            with Session(self.engine) as session:
                for usage in usages:
                    method = methods.get(usage.signature)
                    if method is None:
                        continue
                    row = session.get(SavedModeledMethod, usage.signature)
                    if not method.is_modeled:
                        if row is not None:
                            session.delete(row)
                        continue
                    if row is None:
                        row = SavedModeledMethod(
                            signature=usage.signature,
                            package_name=usage.package_name,
                            model_type=method.type.value,
                            updated_at=now,
                        )
                    row.package_name = usage.package_name
                    row.type_name = usage.type_name
                    row.method_name = usage.method_name
                    row.method_parameters = usage.method_parameters
                    row.model_type = method.type.value
                    row.input = method.input
                    row.output = method.output
                    row.kind = method.kind
                    row.provenance = method.provenance.value
                    row.updated_at = now
                    session.add(row)
                session.commit()
        except SQLAlchemyError as error:
            raise PersistenceFailure(
                f"Saving {len(signatures)} modeled methods failed: {error}",
                signatures=signatures,
            ) from error
        logger.info("Saved %d modeled methods to %s", len(signatures), self.db_path)


def _to_modeled_method(row: SavedModeledMethod) -> ModeledMethod:
    return ModeledMethod(
        type=ModeledMethodType(row.model_type),
        input=row.input,
        output=row.output,
        kind=row.kind,
        provenance=Provenance(row.provenance),
    )
