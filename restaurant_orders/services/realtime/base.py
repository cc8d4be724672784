"""
Event Relay Abstract Base Class

A relay carries published envelopes to every process that may hold live
connections, then hands each envelope to the local distributor for
delivery. Two implementations exist:

    - LocalEventRelay: single process, delivers immediately
    - RedisEventRelay: Redis pub/sub fan-out across worker processes

``publish`` must never block the caller: implementations either deliver
synchronously into in-memory outboxes or schedule the network write.

Author: Khalil Bannouri
Version: 1.0.0
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class EventEnvelope:
    """
    One event addressed to one channel.

    Attributes:
        channel: Target channel name (e.g. "location_3", "user_12")
        event: Event name pushed to clients (e.g. "newOrder")
        data: JSON-serializable payload
        exclude_connection_id: Connection that must not receive it (the sender)
    """
    channel: str
    event: str
    data: Any
    exclude_connection_id: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({
            "channel": self.channel,
            "event": self.event,
            "data": self.data,
            "exclude": self.exclude_connection_id,
        })

    @classmethod
    def from_json(cls, raw: str) -> "EventEnvelope":
        body = json.loads(raw)
        return cls(
            channel=body["channel"],
            event=body["event"],
            data=body.get("data"),
            exclude_connection_id=body.get("exclude"),
        )


DeliverCallback = Callable[[EventEnvelope], int]


class BaseEventRelay(ABC):
    """Abstract base class for realtime relays."""

    def __init__(self):
        self._deliver: Optional[DeliverCallback] = None

    def attach(self, deliver: DeliverCallback) -> None:
        """Register the local delivery callback (the distributor)."""
        self._deliver = deliver

    def deliver_locally(self, envelope: EventEnvelope) -> int:
        if self._deliver is None:
            return 0
        return self._deliver(envelope)

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the relay name."""
        pass

    @abstractmethod
    async def start(self) -> None:
        """Open connections / listeners."""
        pass

    @abstractmethod
    def publish(self, envelope: EventEnvelope) -> None:
        """Hand an envelope to the relay without blocking."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Flush pending publishes and release resources."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check relay connectivity."""
        pass
