"""
Order Lifecycle Manager

Orchestrates every order operation:

    create_order:  location check -> catalog snapshot -> pricing
                   -> one atomic unit of work -> publish
    set_status:    kitchen/admin only, unconditional, publish
    cancel_order:  owner or staff, PENDING only, publish
    get_order / list_orders: customer callers see only their own orders

Publication happens strictly after commit. A publication failure is
logged and never turns a committed operation into an error.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_orders.core.config import get_settings
from restaurant_orders.core.errors import (
    Forbidden,
    InvalidTransition,
    LocationNotFound,
    OrderNotFound,
)
from restaurant_orders.core.security import AuthenticatedUser, ensure_role
from restaurant_orders.models import Order, OrderStatus, UserRole
from restaurant_orders.schemas import OrderResponse
from restaurant_orders.services.catalog import BaseCatalogReader, SqlCatalogReader
from restaurant_orders.services.pricing import (
    CartEntry,
    PricedOrderDraft,
    price_cart,
    resolve_catalog_snapshot,
)
from restaurant_orders.services.realtime.distributor import EventDistributor, RealtimeEvent
from restaurant_orders.services.store import (
    BaseOrderStore,
    OrderFilter,
    OrderPage,
    OrderVisibility,
    SqlOrderStore,
)

logger = logging.getLogger(__name__)

STATUS_SETTERS = (UserRole.KITCHEN, UserRole.ADMIN)


def serialize_order(order: Order) -> dict:
    """Render a hydrated order as the JSON payload pushed to clients."""
    return OrderResponse.model_validate(order).model_dump(mode="json")


class OrderLifecycleManager:
    """
    Order creation, status transitions and reads.

    Attributes:
        catalog: Read-only catalog access
        store: Durable order records
        distributor: Realtime fan-out
    """

    def __init__(
        self,
        catalog: BaseCatalogReader,
        store: BaseOrderStore,
        distributor: EventDistributor,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ):
        self.catalog = catalog
        self.store = store
        self.distributor = distributor
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _visibility_for(caller: AuthenticatedUser) -> OrderVisibility:
        if caller.role == UserRole.CUSTOMER:
            return OrderVisibility(owner_id=caller.user_id)
        return OrderVisibility.unrestricted()

    async def _reload(self, order_id: int) -> Order:
        order = await self.store.find_order(order_id, OrderVisibility.unrestricted())
        if order is None:
            raise OrderNotFound(f"Order #{order_id} not found")
        return order

    def _publish(
        self,
        order: Order,
        location_event: RealtimeEvent,
        personal_event: RealtimeEvent,
    ) -> None:
        try:
            self.distributor.publish_order_event(
                serialize_order(order),
                location_event=location_event,
                personal_event=personal_event,
            )
        except Exception as e:
            logger.exception(f"Failed to publish {location_event.value} for order #{order.id}: {e}")

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_order(
        self,
        caller: AuthenticatedUser,
        location_id: int,
        cart: Sequence[CartEntry],
    ) -> Order:
        """
        Price a cart and persist it as one PENDING order.

        Raises:
            LocationNotFound: Location absent or inactive
            ValidationFailure: Empty cart, bad quantity, unavailable item,
                item from another location
            NotFound: Unknown menu item or customization
            PersistenceFailure / Conflict: Unit of work rolled back
        """
        location = await self.catalog.get_location(location_id)
        if location is None or not location.is_active:
            raise LocationNotFound("Location not found or inactive")

        snapshot = await resolve_catalog_snapshot(self.catalog, cart)
        draft = price_cart(cart, location_id, snapshot)

        async def persist(store: BaseOrderStore) -> int:
            return await self._persist_draft(store, caller.user_id, draft)

        order_id = await self.store.run_atomic(persist)
        logger.info(
            f"Order #{order_id} created by user {caller.user_id} "
            f"at location {location_id} (total {draft.total})"
        )

        order = await self._reload(order_id)
        self._publish(order, RealtimeEvent.NEW_ORDER, RealtimeEvent.ORDER_CREATED)
        return order

    @staticmethod
    async def _persist_draft(
        store: BaseOrderStore,
        user_id: int,
        draft: PricedOrderDraft,
    ) -> int:
        order_id = await store.insert_order(
            user_id=user_id,
            location_id=draft.location_id,
            total=draft.total,
            status=OrderStatus.PENDING,
        )
        for line in draft.lines:
            line_id = await store.insert_order_line(
                order_id=order_id,
                menu_item_id=line.menu_item_id,
                quantity=line.quantity,
                price_at_time=line.price_at_time,
            )
            for customization in line.customizations:
                await store.insert_order_line_customization(
                    order_line_id=line_id,
                    customization_id=customization.customization_id,
                    quantity=customization.quantity,
                    price_at_time=customization.price_at_time,
                )
        return order_id

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def set_status(
        self,
        caller: AuthenticatedUser,
        order_id: int,
        status: OrderStatus,
    ) -> Order:
        """
        Set any status on an order. Kitchen and admin only.

        Raises:
            Forbidden: Caller is not KITCHEN or ADMIN
            OrderNotFound: No such order
        """
        ensure_role(caller, STATUS_SETTERS)

        existing = await self.store.find_order(order_id, OrderVisibility.unrestricted())
        if existing is None:
            raise OrderNotFound(f"Order #{order_id} not found")
        previous = existing.status

        async def apply(store: BaseOrderStore) -> bool:
            return await store.update_order_status(order_id, status)

        if not await self.store.run_atomic(apply):
            raise OrderNotFound(f"Order #{order_id} not found")

        order = await self._reload(order_id)
        logger.info(
            f"Order #{order_id} status {previous.value} -> {status.value} "
            f"by user {caller.user_id}"
        )
        self._publish(order, RealtimeEvent.ORDER_STATUS_UPDATED, RealtimeEvent.ORDER_STATUS_UPDATED)
        return order

    async def cancel_order(self, caller: AuthenticatedUser, order_id: int) -> Order:
        """
        Cancel a PENDING order.

        Raises:
            OrderNotFound: No such order
            Forbidden: Customer cancelling someone else's order
            InvalidTransition: Order is no longer PENDING
        """
        existing = await self.store.find_order(order_id, OrderVisibility.unrestricted())
        if existing is None:
            raise OrderNotFound(f"Order #{order_id} not found")

        if caller.role == UserRole.CUSTOMER and existing.user_id != caller.user_id:
            raise Forbidden("Not authorized to cancel this order")

        if existing.status != OrderStatus.PENDING:
            raise InvalidTransition("Order cannot be cancelled at this stage")

        async def apply(store: BaseOrderStore) -> bool:
            return await store.update_order_status(
                order_id,
                OrderStatus.CANCELLED,
                expected=OrderStatus.PENDING,
            )

        if not await self.store.run_atomic(apply):
            raise InvalidTransition("Order cannot be cancelled at this stage")

        order = await self._reload(order_id)
        logger.info(f"Order #{order_id} cancelled by user {caller.user_id}")
        self._publish(order, RealtimeEvent.ORDER_CANCELLED, RealtimeEvent.ORDER_CANCELLED)
        return order

    # =========================================================================
    # READS
    # =========================================================================

    async def get_order(self, caller: AuthenticatedUser, order_id: int) -> Order:
        order = await self.store.find_order(order_id, self._visibility_for(caller))
        if order is None:
            raise OrderNotFound(f"Order #{order_id} not found")
        return order

    async def list_orders(
        self,
        caller: AuthenticatedUser,
        status: Optional[OrderStatus] = None,
        location_id: Optional[int] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> OrderPage:
        """List visible orders, newest first."""
        page = max(page, 1)
        page_size = min(max(page_size or self.default_page_size, 1), self.max_page_size)

        order_filter = OrderFilter(
            visibility=self._visibility_for(caller),
            status=status,
            location_id=location_id,
        )
        return await self.store.list_orders(order_filter, page=page, page_size=page_size)


def build_lifecycle_manager(
    db: AsyncSession,
    distributor: EventDistributor,
) -> OrderLifecycleManager:
    """Wire the SQL adapters for one database session."""
    settings = get_settings()
    return OrderLifecycleManager(
        catalog=SqlCatalogReader(db),
        store=SqlOrderStore(db),
        distributor=distributor,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
