"""Message protocol between the session and its presentation surface."""

from variant_sync.protocol.channel import MessageTransport, OutboundChannel
from variant_sync.protocol.messages import (
    PROTOCOL_VERSION,
    InboundMessage,
    OutboundMessage,
    outbound_payload,
    parse_inbound,
)

__all__ = [
    "PROTOCOL_VERSION",
    "InboundMessage",
    "MessageTransport",
    "OutboundChannel",
    "OutboundMessage",
    "outbound_payload",
    "parse_inbound",
]
