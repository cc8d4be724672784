"""
Local Event Relay

Single-process relay for development and single-worker deployments.
Publishing delivers straight into the in-process registry.
"""

import logging

from restaurant_orders.services.realtime.base import BaseEventRelay, EventEnvelope

logger = logging.getLogger(__name__)


class LocalEventRelay(BaseEventRelay):
    """In-process relay. Cannot reach connections held by other workers."""

    @property
    def provider_name(self) -> str:
        return "local"

    async def start(self) -> None:
        logger.info("LocalEventRelay started")

    def publish(self, envelope: EventEnvelope) -> None:
        delivered = self.deliver_locally(envelope)
        logger.debug(f"{envelope.event} -> {envelope.channel} ({delivered} connections)")

    async def stop(self) -> None:
        logger.info("LocalEventRelay stopped")

    async def health_check(self) -> bool:
        return True
