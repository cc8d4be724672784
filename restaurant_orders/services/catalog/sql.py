"""
SQLAlchemy Catalog Reader

Reads catalog records through the request's AsyncSession.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_orders.core.errors import PersistenceFailure
from restaurant_orders.models import Customization, Location, MenuItem
from restaurant_orders.services.catalog.base import (
    BaseCatalogReader,
    CustomizationRecord,
    LocationRecord,
    MenuItemRecord,
)

logger = logging.getLogger(__name__)


class SqlCatalogReader(BaseCatalogReader):
    """Catalog reader backed by the relational store."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get(self, model, key: int):
        try:
            return await self.session.get(model, key)
        except SQLAlchemyError as e:
            logger.exception(f"Catalog read failed for {model.__name__} #{key}: {e}")
            raise PersistenceFailure() from e

    async def get_location(self, location_id: int) -> Optional[LocationRecord]:
        location = await self._get(Location, location_id)
        if location is None:
            return None
        return LocationRecord(
            id=location.id,
            name=location.name,
            is_active=location.is_active,
        )

    async def get_menu_item(self, menu_item_id: int) -> Optional[MenuItemRecord]:
        item = await self._get(MenuItem, menu_item_id)
        if item is None:
            return None
        return MenuItemRecord(
            id=item.id,
            location_id=item.location_id,
            title=item.title,
            price=item.price,
            is_available=item.is_available,
            category=item.category,
        )

    async def get_customization(self, customization_id: int) -> Optional[CustomizationRecord]:
        customization = await self._get(Customization, customization_id)
        if customization is None:
            return None
        return CustomizationRecord(
            id=customization.id,
            menu_item_id=customization.menu_item_id,
            name=customization.name,
            price=customization.price,
        )
