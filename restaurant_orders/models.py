"""
SQLAlchemy Database Models

Relational schema for multi-location ordering:
- Users with a closed role set
- Locations owning menu items and their customizations
- Orders with snapshot-priced lines and customization lines

Author: Khalil Bannouri
Version: 1.0.0
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Text,
    Enum,
    Boolean,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from restaurant_orders.database import Base
import enum


class UserRole(str, enum.Enum):
    """Closed, flat role set. No hierarchy beyond per-operation allow-lists."""
    CUSTOMER = "CUSTOMER"
    WAITER = "WAITER"
    KITCHEN = "KITCHEN"
    ADMIN = "ADMIN"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


# Money columns: two decimal places, never floats
Money = Numeric(10, 2, asdecimal=True)


class User(Base):
    """Registered account. Role changes only through administrative action."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    role = Column(
        Enum(UserRole),
        default=UserRole.CUSTOMER,
        nullable=False,
        index=True
    )
    loyalty_points = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    orders = relationship("Order", back_populates="user")

    def __repr__(self):
        return f"<User #{self.id} - {self.email} - {self.role.value}>"


class Location(Base):
    """A restaurant site. Inactive locations reject new orders."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    address = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    menu_items = relationship("MenuItem", back_populates="location")

    def __repr__(self):
        return f"<Location #{self.id} - {self.name}>"


class MenuItem(Base):
    """
    A dish offered at exactly one location.

    The price here is live catalog data; orders copy it into
    ``OrderLine.price_at_time`` at creation and never read it again.
    """
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Money, nullable=False)
    category = Column(String(50), nullable=False)
    image_url = Column(String(500), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    location = relationship("Location", back_populates="menu_items")
    customizations = relationship("Customization", back_populates="menu_item")

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.title} - {self.price}>"


class Customization(Base):
    """An add-on priced independently of its menu item."""
    __tablename__ = "customizations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    price = Column(Money, nullable=False)
    category = Column(String(50), nullable=False)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    menu_item = relationship("MenuItem", back_populates="customizations")

    def __repr__(self):
        return f"<Customization #{self.id} - {self.name} - {self.price}>"


class Order(Base):
    """
    Main Order table.

    ``total`` is computed once at creation from the snapshot lines and is
    immutable afterwards. Orders are never deleted, only terminated.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    total = Column(Money, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    location = relationship("Location")
    user = relationship("User", back_populates="orders")
    lines = relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.id",
    )

    def __repr__(self):
        return f"<Order #{self.id} - location {self.location_id} - {self.status.value} - {self.total}>"


class OrderLine(Base):
    """Snapshot of one cart entry."""
    __tablename__ = "order_lines"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_at_time = Column(Money, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="lines")
    menu_item = relationship("MenuItem")
    customizations = relationship(
        "OrderLineCustomization",
        back_populates="order_line",
        order_by="OrderLineCustomization.id",
    )

    def __repr__(self):
        return f"<OrderLine #{self.id} - {self.quantity} x {self.price_at_time}>"


class OrderLineCustomization(Base):
    """Snapshot of one customization applied to an order line."""
    __tablename__ = "order_line_customizations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_line_id = Column(Integer, ForeignKey("order_lines.id"), nullable=False, index=True)
    customization_id = Column(Integer, ForeignKey("customizations.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price_at_time = Column(Money, nullable=False)

    order_line = relationship("OrderLine", back_populates="customizations")
    customization = relationship("Customization")

    def __repr__(self):
        return f"<OrderLineCustomization #{self.id} - {self.quantity} x {self.price_at_time}>"
