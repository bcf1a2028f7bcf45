"""Routes inbound messages to session operations."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, assert_never

from variant_sync.errors import UnknownMessageKind
from variant_sync.protocol.messages import (
    CancelVariantAnalysisMessage,
    GenerateMessage,
    InboundMessage,
    OpenDatabaseMessage,
    OpenExtensionPackMessage,
    RefreshMessage,
    SaveMessage,
    SetModeledMethodMessage,
    StopGenerateMessage,
    SwitchModeMessage,
    ToggleHideModeledMessage,
    parse_inbound,
)

if TYPE_CHECKING:
    from variant_sync.session import SyncSession

logger = logging.getLogger(__name__)


class CommandCompletion(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MessageDispatcher:
    """Parses inbound payloads and runs the matching session operation.

    Rejected payloads raise ``UnknownMessageKind``; errors raised by the
    operation propagate to the caller after the completion has been logged.
    The session stays usable either way.
    """

    def __init__(
        self,
        session: SyncSession,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self._clock = clock

    async def dispatch(self, payload: object) -> CommandCompletion:
        try:
            message = parse_inbound(payload)
        except UnknownMessageKind as error:
            logger.warning("Rejected inbound message: %s", error)
            raise

        command = type(message).__name__
        started = self._clock()
        completion = CommandCompletion.FAILED
        try:
            await self.handle(message)
            completion = CommandCompletion.SUCCESS
        except asyncio.CancelledError:
            completion = CommandCompletion.CANCELLED
            raise
        finally:
            logger.info(
                "Command %s completed: status=%s duration_ms=%d",
                command,
                completion.value,
                round((self._clock() - started) * 1000),
            )
        return completion

    async def handle(self, message: InboundMessage) -> None:
        session = self.session
        match message:
            case RefreshMessage():
                await session.refresh()
            case SaveMessage(signatures=signatures, methods=methods):
                await session.save(signatures, methods)
            case GenerateMessage(package_name=package_name):
                session.generate(package_name)
            case StopGenerateMessage(package_name=package_name):
                session.stop_generate(package_name)
            case SwitchModeMessage(mode=mode):
                await session.switch_mode(mode)
            case ToggleHideModeledMessage():
                session.toggle_hide_modeled()
            case OpenDatabaseMessage():
                await session.open_database()
            case OpenExtensionPackMessage():
                await session.open_extension_pack()
            case SetModeledMethodMessage(signature=signature, method=method):
                session.set_modeled_method(signature, method)
            case CancelVariantAnalysisMessage(run_id=run_id):
                await session.cancel_variant_analysis(run_id)
            case _:
                assert_never(message)
