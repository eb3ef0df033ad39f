"""
SQLAlchemy Database Models

Tables behind the group ordering flow:
- Stores and their menus (products)
- Daily group order windows with a deadline
- Order line items placed against a group
- Admin accounts for the back office

Author: Khalil Bannouri
Version: 1.0.0
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from group_order.database import Base


class Store(Base):
    """
    Restaurant a group can order from.

    The name is the business key: creating a store with an existing
    name updates that store instead of adding a second one.
    """
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    phone = Column(String(30), nullable=True)

    # Public URL shown on the pages, and the storage key used to delete it
    image_url = Column(String(500), nullable=True)
    image_path = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Store #{self.id} - {self.name}>"


class Product(Base):
    """Menu item of one store. Unique per (store, name)."""
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("store_id", "name", name="uq_products_store_name"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Product #{self.id} - {self.name} ${self.price}>"


class DailyGroup(Base):
    """
    One ordering window: "today we order from X until T".

    Several groups can be open on the same day.
    """
    __tablename__ = "daily_groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    order_date = Column(Date, nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    name = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    store = relationship("Store", lazy="selectin")

    @property
    def display_name(self) -> str:
        return self.name or f"Group #{self.id}"

    def __repr__(self):
        return f"<DailyGroup #{self.id} - store {self.store_id} - until {self.end_time}>"


class Order(Base):
    """
    One purchaser's line item in a group.

    customer_name is free text typed by the purchaser; it is not an
    authenticated identity.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("daily_groups.id"), nullable=False, index=True)
    item_name = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    customer_name = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Order #{self.id} - {self.customer_name} - {self.item_name} x{self.quantity}>"


class AdminUser(Base):
    """Back office account allowed to manage stores and menus."""
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<AdminUser {self.email}>"
