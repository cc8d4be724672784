"""
SQLAlchemy Order Store

Persists orders through the request's AsyncSession. The unit of work
shares the session transaction: rows inserted by ``work`` are flushed so
later rows can reference their ids, and become visible to other sessions
only when ``run_atomic`` commits.
"""

import logging
from decimal import Decimal
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from restaurant_orders.core.errors import Conflict, OrderingError, PersistenceFailure
from restaurant_orders.models import (
    Order,
    OrderLine,
    OrderLineCustomization,
    OrderStatus,
)
from restaurant_orders.services.store.base import (
    BaseOrderStore,
    OrderFilter,
    OrderPage,
    OrderVisibility,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlOrderStore(BaseOrderStore):
    """Order store backed by the relational database."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed: {e}")

    async def run_atomic(self, work: Callable[[BaseOrderStore], Awaitable[T]]) -> T:
        try:
            result = await work(self)
            await self.session.commit()
            return result

        except OrderingError:
            await self._rollback()
            raise
        except IntegrityError as e:
            await self._rollback()
            logger.warning(f"Unit of work rejected by store constraint: {e.orig}")
            raise Conflict("Order conflicts with stored data, nothing was saved") from e
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception(f"Unit of work aborted: {e}")
            raise PersistenceFailure() from e
        except Exception as e:
            await self._rollback()
            logger.exception(f"Unexpected error inside unit of work: {e}")
            raise PersistenceFailure() from e

    # =========================================================================
    # WRITES
    # =========================================================================

    async def insert_order(
        self,
        user_id: int,
        location_id: int,
        total: Decimal,
        status: OrderStatus = OrderStatus.PENDING,
    ) -> int:
        order = Order(
            user_id=user_id,
            location_id=location_id,
            total=total,
            status=status,
        )
        self.session.add(order)
        await self.session.flush()
        return order.id

    async def insert_order_line(
        self,
        order_id: int,
        menu_item_id: int,
        quantity: int,
        price_at_time: Decimal,
    ) -> int:
        line = OrderLine(
            order_id=order_id,
            menu_item_id=menu_item_id,
            quantity=quantity,
            price_at_time=price_at_time,
        )
        self.session.add(line)
        await self.session.flush()
        return line.id

    async def insert_order_line_customization(
        self,
        order_line_id: int,
        customization_id: int,
        quantity: int,
        price_at_time: Decimal,
    ) -> int:
        row = OrderLineCustomization(
            order_line_id=order_line_id,
            customization_id=customization_id,
            quantity=quantity,
            price_at_time=price_at_time,
        )
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def update_order_status(
        self,
        order_id: int,
        status: OrderStatus,
        expected: Optional[OrderStatus] = None,
    ) -> bool:
        stmt = update(Order).where(Order.id == order_id)
        if expected is not None:
            stmt = stmt.where(Order.status == expected)
        result = await self.session.execute(
            stmt.values(status=status).execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    # =========================================================================
    # READS
    # =========================================================================

    async def _read(self, stmt):
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.exception(f"Order read failed: {e}")
            raise PersistenceFailure() from e

    @staticmethod
    def _hydrated():
        """Order query loading everything a client needs to display it."""
        return (
            select(Order)
            .options(
                selectinload(Order.location),
                selectinload(Order.user),
                selectinload(Order.lines).selectinload(OrderLine.menu_item),
                selectinload(Order.lines)
                .selectinload(OrderLine.customizations)
                .selectinload(OrderLineCustomization.customization),
            )
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _apply_filter(stmt, order_filter: OrderFilter):
        if order_filter.visibility.owner_id is not None:
            stmt = stmt.where(Order.user_id == order_filter.visibility.owner_id)
        if order_filter.status is not None:
            stmt = stmt.where(Order.status == order_filter.status)
        if order_filter.location_id is not None:
            stmt = stmt.where(Order.location_id == order_filter.location_id)
        return stmt

    async def find_order(
        self,
        order_id: int,
        visibility: OrderVisibility,
    ) -> Optional[Order]:
        stmt = self._apply_filter(
            self._hydrated().where(Order.id == order_id),
            OrderFilter(visibility=visibility),
        )
        result = await self._read(stmt)
        return result.scalar_one_or_none()

    async def list_orders(
        self,
        order_filter: OrderFilter,
        page: int,
        page_size: int,
    ) -> OrderPage:
        count_query = self._apply_filter(select(func.count(Order.id)), order_filter)
        total_result = await self._read(count_query)
        total = total_result.scalar() or 0

        query = (
            self._apply_filter(self._hydrated(), order_filter)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._read(query)
        orders = result.scalars().all()

        return OrderPage(orders=orders, total=total, page=page, page_size=page_size)
