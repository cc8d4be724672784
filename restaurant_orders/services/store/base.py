"""
Order Store Abstract Base Class

Defines the transactional interface for durable order records. All writes
of one lifecycle operation run inside ``run_atomic``: either every row of
the unit of work is committed, or the whole unit is rolled back and the
caller receives a single ``PersistenceFailure`` / ``Conflict``.

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from restaurant_orders.models import Order, OrderStatus

T = TypeVar("T")


@dataclass(frozen=True)
class OrderVisibility:
    """
    Read-time visibility filter.

    Attributes:
        owner_id: When set, only orders placed by this user are visible
    """
    owner_id: Optional[int] = None

    @classmethod
    def unrestricted(cls) -> "OrderVisibility":
        return cls()


@dataclass(frozen=True)
class OrderFilter:
    """
    Listing filter.

    Attributes:
        visibility: Read-time visibility applied before any other filter
        status: Only orders in this status
        location_id: Only orders placed at this location
    """
    visibility: OrderVisibility = OrderVisibility()
    status: Optional[OrderStatus] = None
    location_id: Optional[int] = None


@dataclass(frozen=True)
class OrderPage:
    """One page of orders plus the total match count."""
    orders: Sequence[Order]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.page_size) if self.page_size else 0


class BaseOrderStore(ABC):
    """Durable order / order-line / customization-line records."""

    @abstractmethod
    async def run_atomic(self, work: Callable[["BaseOrderStore"], Awaitable[T]]) -> T:
        """
        Execute ``work`` as one unit of work.

        Raises:
            Conflict: A store constraint was violated
            PersistenceFailure: Store unavailable or transaction aborted
        """
        pass

    @abstractmethod
    async def insert_order(
        self,
        user_id: int,
        location_id: int,
        total: Decimal,
        status: OrderStatus = OrderStatus.PENDING,
    ) -> int:
        """Insert an order row and return its id."""
        pass

    @abstractmethod
    async def insert_order_line(
        self,
        order_id: int,
        menu_item_id: int,
        quantity: int,
        price_at_time: Decimal,
    ) -> int:
        """Insert an order line row and return its id."""
        pass

    @abstractmethod
    async def insert_order_line_customization(
        self,
        order_line_id: int,
        customization_id: int,
        quantity: int,
        price_at_time: Decimal,
    ) -> int:
        """Insert a customization snapshot row and return its id."""
        pass

    @abstractmethod
    async def update_order_status(
        self,
        order_id: int,
        status: OrderStatus,
        expected: Optional[OrderStatus] = None,
    ) -> bool:
        """
        Set an order's status.

        Args:
            order_id: Order to update
            status: New status
            expected: When given, update only if the current status matches

        Returns:
            bool: True if a row was updated
        """
        pass

    @abstractmethod
    async def find_order(
        self,
        order_id: int,
        visibility: OrderVisibility,
    ) -> Optional[Order]:
        """Return the hydrated order, or None if absent or not visible."""
        pass

    @abstractmethod
    async def list_orders(
        self,
        order_filter: OrderFilter,
        page: int,
        page_size: int,
    ) -> OrderPage:
        """Return one page of hydrated orders, newest first."""
        pass
