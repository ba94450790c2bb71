"""Order snapshots received from the commerce subsystem.

The engine never edits orders; rows here are upserted from order events so
earnings can be recomputed from local state. Every status check goes
through `normalize_order_status`, `is_delivered` and `is_cancelled`.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_engine.database import Base
from affiliate_engine.db_types import UUIDType


class OrderStatus(str, Enum):
    """Canonical order status."""
    PENDING = "PENDING"                    # Order placed
    CONFIRMED = "CONFIRMED"                # Accepted by the store
    PREPARING = "PREPARING"                # Being prepared
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"  # Left the store
    DELIVERED = "DELIVERED"                # Delivered to the customer
    CANCELLED = "CANCELLED"                # Cancelled
    RETURNED = "RETURNED"                  # Returned after delivery


# Stores send pt-BR keys and lower-case English variants
ORDER_STATUS_ALIASES = {
    "pendente": OrderStatus.PENDING,
    "pending": OrderStatus.PENDING,
    "novo": OrderStatus.PENDING,
    "new": OrderStatus.PENDING,
    "confirmado": OrderStatus.CONFIRMED,
    "confirmed": OrderStatus.CONFIRMED,
    "aceito": OrderStatus.CONFIRMED,
    "preparando": OrderStatus.PREPARING,
    "em_preparo": OrderStatus.PREPARING,
    "preparing": OrderStatus.PREPARING,
    "saiu_para_entrega": OrderStatus.OUT_FOR_DELIVERY,
    "em_entrega": OrderStatus.OUT_FOR_DELIVERY,
    "a_caminho": OrderStatus.OUT_FOR_DELIVERY,
    "out_for_delivery": OrderStatus.OUT_FOR_DELIVERY,
    "shipped": OrderStatus.OUT_FOR_DELIVERY,
    "entregue": OrderStatus.DELIVERED,
    "delivered": OrderStatus.DELIVERED,
    "concluido": OrderStatus.DELIVERED,
    "cancelado": OrderStatus.CANCELLED,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
    "devolvido": OrderStatus.RETURNED,
    "returned": OrderStatus.RETURNED,
}


def normalize_order_status(value) -> str:
    """
    Map an incoming status to the canonical UPPERCASE value.

    Unknown store-defined statuses are kept (uppercased); they count as
    "in processing" everywhere.
    """
    if value is None:
        return OrderStatus.PENDING.value
    if isinstance(value, OrderStatus):
        return value.value
    raw = str(value).strip()
    key = raw.lower().replace(" ", "_").replace("-", "_")
    if key in ORDER_STATUS_ALIASES:
        return ORDER_STATUS_ALIASES[key].value
    return raw.upper().replace(" ", "_").replace("-", "_")


def is_delivered(status) -> bool:
    return normalize_order_status(status) == OrderStatus.DELIVERED.value


def is_cancelled(status) -> bool:
    return normalize_order_status(status) in (
        OrderStatus.CANCELLED.value,
        OrderStatus.RETURNED.value,
    )


class Order(Base):
    """Order snapshot."""
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_orders_store_status', 'store_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    store_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[str] = mapped_column(
        String(50),
        default="PENDING",
        nullable=False,
        comment="Canonical OrderStatus or store-defined status"
    )

    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position"
    )

    def is_delivered(self) -> bool:
        return is_delivered(self.status)

    def is_cancelled(self) -> bool:
        return is_cancelled(self.status)

    def __repr__(self) -> str:
        return f"<Order(number={self.order_number}, status={self.status})>"


class OrderItem(Base):
    """Order line snapshot."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    line_discount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Coupon discount applied to this line"
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem(product={self.product_id}, qty={self.quantity})>"
