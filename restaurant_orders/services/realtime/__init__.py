"""
Realtime Event Distributor Factory

Returns a distributor wired to the local or Redis relay based on ENV_MODE.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from restaurant_orders.core.config import get_settings
from restaurant_orders.services.realtime.base import BaseEventRelay, EventEnvelope
from restaurant_orders.services.realtime.connection import ConnectionSession
from restaurant_orders.services.realtime.distributor import (
    ConnectionHandle,
    EventDistributor,
    RealtimeEvent,
    location_channel,
    user_channel,
)
from restaurant_orders.services.realtime.local import LocalEventRelay
from restaurant_orders.services.realtime.redis_relay import RedisEventRelay

logger = logging.getLogger(__name__)


@lru_cache()
def get_event_distributor() -> EventDistributor:
    """Get the process-wide event distributor."""
    settings = get_settings()

    if settings.use_redis_relay:
        logger.info(f"Realtime: Using RedisEventRelay ({settings.env_mode.value} mode)")
        relay: BaseEventRelay = RedisEventRelay(
            settings.redis_url,
            channel_prefix=settings.realtime_channel_prefix,
        )
    else:
        logger.info("Realtime: Using LocalEventRelay (development mode)")
        relay = LocalEventRelay()

    return EventDistributor(relay, outbox_size=settings.realtime_outbox_size)


def reset_event_distributor() -> None:
    """Clear the cached distributor instance."""
    get_event_distributor.cache_clear()


__all__ = [
    "get_event_distributor",
    "reset_event_distributor",
    "BaseEventRelay",
    "ConnectionHandle",
    "ConnectionSession",
    "EventDistributor",
    "EventEnvelope",
    "LocalEventRelay",
    "RealtimeEvent",
    "RedisEventRelay",
    "location_channel",
    "user_channel",
]
