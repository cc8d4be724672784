"""
Event Distributor

Explicit registry of live connections and the channels they belong to.

Channels:
    - user_<id>: personal channel, joined automatically on connect
    - location_<id>: joined and left explicitly, idempotently

Each connection owns a bounded outbox drained by its own writer, so
publishing is a non-blocking enqueue. A full outbox drops the event for
that connection only. Nothing is persisted or replayed: a connection that
joins after an event was published never receives it.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import threading
import uuid
from collections import defaultdict
from enum import Enum
from typing import Any, Optional

from restaurant_orders.core.security import AuthenticatedUser
from restaurant_orders.services.realtime.base import BaseEventRelay, EventEnvelope

logger = logging.getLogger(__name__)


class RealtimeEvent(str, Enum):
    """Server-to-client push names."""
    NEW_ORDER = "newOrder"
    ORDER_CREATED = "orderCreated"
    ORDER_STATUS_UPDATED = "orderStatusUpdated"
    ORDER_CANCELLED = "orderCancelled"
    USER_TYPING = "userTyping"
    ERROR = "error"


def user_channel(user_id: int) -> str:
    return f"user_{user_id}"


def location_channel(location_id: int) -> str:
    return f"location_{location_id}"


class ConnectionHandle:
    """
    One live connection's identity and outbox.

    Attributes:
        connection_id: Unique id for this connection
        user: Identity verified at connect time
        outbox: Pending pushes, drained by the transport writer
        dropped: Pushes discarded because the outbox was full
    """

    def __init__(self, user: AuthenticatedUser, outbox_size: int = 100):
        self.connection_id = uuid.uuid4().hex
        self.user = user
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.dropped = 0

    def push(self, event: str, data: Any) -> bool:
        """Enqueue a push without waiting. Returns False if it was dropped."""
        try:
            self.outbox.put_nowait({"event": event, "data": data})
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Outbox full for connection {self.connection_id} "
                f"(user {self.user.user_id}), dropped {event}"
            )
            return False

    def __repr__(self):
        return f"<ConnectionHandle {self.connection_id} user={self.user.user_id}>"


class EventDistributor:
    """
    Channel registry plus publish entry points.

    Registry mutations and delivery snapshots are guarded by one lock; no
    lock is held while anything awaits.
    """

    def __init__(self, relay: BaseEventRelay, outbox_size: int = 100):
        self.relay = relay
        self.outbox_size = outbox_size

        self._lock = threading.Lock()
        self._connections: dict[str, ConnectionHandle] = {}
        self._channels: dict[str, set[str]] = defaultdict(set)
        self._memberships: dict[str, set[str]] = defaultdict(set)

        relay.attach(self.deliver_local)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        await self.relay.start()

    async def stop(self) -> None:
        await self.relay.stop()

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    # =========================================================================
    # REGISTRY
    # =========================================================================

    def connect(self, user: AuthenticatedUser) -> ConnectionHandle:
        """Register a new connection and join its personal channel."""
        handle = ConnectionHandle(user, outbox_size=self.outbox_size)
        with self._lock:
            self._connections[handle.connection_id] = handle
        self.join(handle, user_channel(user.user_id))
        logger.info(f"User {user.email} connected ({handle.connection_id})")
        return handle

    def disconnect(self, handle: ConnectionHandle) -> None:
        """Tear down every membership of a connection."""
        with self._lock:
            self._connections.pop(handle.connection_id, None)
            for channel in self._memberships.pop(handle.connection_id, set()):
                members = self._channels.get(channel)
                if members is None:
                    continue
                members.discard(handle.connection_id)
                if not members:
                    del self._channels[channel]
        logger.info(f"User {handle.user.email} disconnected ({handle.connection_id})")

    def join(self, handle: ConnectionHandle, channel: str) -> bool:
        """Add a connection to a channel. Returns False if already a member."""
        with self._lock:
            if handle.connection_id not in self._connections:
                return False
            members = self._channels[channel]
            if handle.connection_id in members:
                return False
            members.add(handle.connection_id)
            self._memberships[handle.connection_id].add(channel)
        logger.debug(f"{handle.connection_id} joined {channel}")
        return True

    def leave(self, handle: ConnectionHandle, channel: str) -> bool:
        """Remove a connection from a channel. Returns False if not a member."""
        with self._lock:
            members = self._channels.get(channel)
            if not members or handle.connection_id not in members:
                return False
            members.discard(handle.connection_id)
            if not members:
                del self._channels[channel]
            self._memberships[handle.connection_id].discard(channel)
        logger.debug(f"{handle.connection_id} left {channel}")
        return True

    def members(self, channel: str) -> set[str]:
        with self._lock:
            return set(self._channels.get(channel, ()))

    def channels_of(self, handle: ConnectionHandle) -> set[str]:
        with self._lock:
            return set(self._memberships.get(handle.connection_id, ()))

    # =========================================================================
    # PUBLISH / DELIVER
    # =========================================================================

    def publish(
        self,
        channel: str,
        event: str,
        data: Any,
        exclude: Optional[ConnectionHandle] = None,
    ) -> None:
        """Publish an event to a channel through the relay."""
        self.relay.publish(
            EventEnvelope(
                channel=channel,
                event=event,
                data=data,
                exclude_connection_id=exclude.connection_id if exclude else None,
            )
        )

    def deliver_local(self, envelope: EventEnvelope) -> int:
        """Push an envelope into the outbox of every local member."""
        with self._lock:
            targets = [
                self._connections[connection_id]
                for connection_id in self._channels.get(envelope.channel, ())
                if connection_id != envelope.exclude_connection_id
                and connection_id in self._connections
            ]

        delivered = 0
        for handle in targets:
            if handle.push(envelope.event, envelope.data):
                delivered += 1
        return delivered

    def publish_order_event(
        self,
        order_payload: dict,
        location_event: RealtimeEvent,
        personal_event: RealtimeEvent,
    ) -> None:
        """Publish an order to its location channel and its owner's channel."""
        self.publish(
            location_channel(order_payload["location_id"]),
            location_event.value,
            order_payload,
        )
        self.publish(
            user_channel(order_payload["user_id"]),
            personal_event.value,
            order_payload,
        )
