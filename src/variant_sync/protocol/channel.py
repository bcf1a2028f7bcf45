"""Ordered, acknowledged delivery of outbound messages."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Protocol

from variant_sync.errors import TransportError
from variant_sync.protocol.messages import OutboundMessage, outbound_payload

logger = logging.getLogger(__name__)


class MessageTransport(Protocol):
    """Interface of the presentation-side message sink."""

    def post(self, payload: dict[str, Any]) -> None:
        """Deliver one payload or raise ``TransportError``."""
        raise NotImplementedError


class OutboundChannel:
    """Posts full-state messages in sequence order until they are acknowledged.

    Each message gets a ``seq`` number. Posting stops at the first transport
    failure so nothing is delivered out of order; the next ``send`` or
    ``resend_pending`` picks up from the first undelivered message.
    Acknowledgements are cumulative.
    """

    def __init__(self, transport: MessageTransport) -> None:
        self.transport = transport
        self._pending: deque[tuple[int, dict[str, Any]]] = deque()
        self._next_seq = 1
        self._delivered_seq = 0
        self._acked_seq = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def acked_seq(self) -> int:
        return self._acked_seq

    def send(self, message: OutboundMessage) -> int:
        """Queue ``message`` and post whatever is deliverable; returns its sequence number."""

        seq = self._next_seq
        self._next_seq += 1
        payload = outbound_payload(message)
        payload["seq"] = seq
        self._pending.append((seq, payload))
        self._flush()
        return seq

    def acknowledge(self, seq: int) -> int:
        """Drop every pending message up to and including ``seq``; returns how many."""

        dropped = 0
        while self._pending and self._pending[0][0] <= seq:
            self._pending.popleft()
            dropped += 1
        if seq > self._acked_seq:
            self._acked_seq = seq
            self._delivered_seq = max(self._delivered_seq, seq)
        return dropped

    def resend_pending(self) -> int:
        """Post every unacknowledged message again, in order; returns how many went out."""

        self._delivered_seq = self._acked_seq
        return self._flush()

    def _flush(self) -> int:
        posted = 0
        for seq, payload in self._pending:
            if seq <= self._delivered_seq:
                continue
            try:
                self.transport.post(payload)
            except TransportError as error:
                logger.warning(
                    "Posting outbound message seq=%d kind=%s failed; %d pending: %s",
                    seq,
                    payload.get("t"),
                    len(self._pending),
                    error,
                )
                break
            self._delivered_seq = seq
            posted += 1
        return posted
