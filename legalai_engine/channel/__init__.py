"""Client side of the event channel: reconnecting connection + transports."""

from legalai_engine.channel.client import ChannelOptions, EventChannelClient, backoff_delay
from legalai_engine.channel.transport import ChannelClosed, WebSocketTransport

__all__ = [
    "ChannelClosed",
    "ChannelOptions",
    "EventChannelClient",
    "WebSocketTransport",
    "backoff_delay",
]
