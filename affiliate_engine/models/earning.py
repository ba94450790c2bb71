"""Affiliate earning ledger models.

One AffiliateEarning exists per (order, store affiliate). Its items hold the
per-line resolution so dashboards can explain every cent, and
CommissionRecalcLog keeps the audit trail of recomputations.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Numeric, Text,
    UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_engine.database import Base
from affiliate_engine.db_types import UUIDType


class EarningStatus(str, Enum):
    """Earning status."""
    PENDING = "PENDING"       # Recorded, order in processing or maturing
    APPROVED = "APPROVED"     # Approved by store staff
    PAID = "PAID"             # Fully settled by withdrawals
    CANCELLED = "CANCELLED"   # Order cancelled (amount kept for audit)


class CommissionSource(str, Enum):
    """Which rule produced an item's commission."""
    SPECIFIC_PRODUCT = "SPECIFIC_PRODUCT"
    CATEGORY = "CATEGORY"
    DEFAULT = "DEFAULT"
    NONE = "NONE"


class AffiliateEarning(Base):
    """
    Commission generated by one order for one store affiliate.

    Created the first time an order carrying the affiliate's coupon is
    placed. Mutated by order status changes and payouts. Never deleted.
    """
    __tablename__ = "affiliate_earnings"
    __table_args__ = (
        UniqueConstraint("order_id", "store_affiliate_id", name="uq_affiliate_earning_order_link"),
        Index('ix_affiliate_earnings_status', 'status'),
        Index('ix_affiliate_earnings_affiliate_store', 'affiliate_id', 'store_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order reference (denormalized for reporting)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    order_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Last order status seen by the ledger"
    )

    # Attribution
    store_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    affiliate_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("affiliates.id", ondelete="CASCADE"),
        nullable=False
    )
    store_affiliate_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("store_affiliates.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    coupon_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Amounts
    order_total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Order value after coupon discount"
    )
    commission_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Sum of per-item commissions"
    )
    settled_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Portion covered by paid withdrawals"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default="PENDING",
        nullable=False,
        comment="PENDING, APPROVED, PAID, CANCELLED"
    )

    # Maturity
    commission_available_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    maturity_days_applied: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Store maturity days in force when the order was delivered"
    )
    availability_estimated: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Stamped from created_at; reconcile when delivered_at arrives"
    )

    # Last withdrawal that settled part of this earning
    withdrawal_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("affiliate_withdrawal_requests.id", ondelete="SET NULL"),
        nullable=True
    )

    # Status History
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    items: Mapped[List["AffiliateEarningItem"]] = relationship(
        "AffiliateEarningItem",
        back_populates="earning",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<AffiliateEarning(order={self.order_number}, amount={self.commission_amount}, status={self.status})>"


class AffiliateEarningItem(Base):
    """Per-item commission breakdown of an earning."""
    __tablename__ = "affiliate_earning_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    earning_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("affiliate_earnings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    product_category: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    item_subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    item_discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    item_value_with_discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_coupon_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)

    commission_type: Mapped[str] = mapped_column(String(50), nullable=False)
    commission_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="SPECIFIC_PRODUCT, CATEGORY, DEFAULT, NONE"
    )

    earning: Mapped["AffiliateEarning"] = relationship(
        "AffiliateEarning",
        back_populates="items"
    )

    def __repr__(self) -> str:
        return f"<AffiliateEarningItem(product={self.product_id}, amount={self.commission_amount})>"


class CommissionRecalcLog(Base):
    """Audit row written when an existing earning is recomputed with new totals."""
    __tablename__ = "affiliate_commission_recalc_logs"
    __table_args__ = (
        Index('ix_recalc_logs_store_date', 'store_id', 'recalculated_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    earning_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("affiliate_earnings.id", ondelete="CASCADE"),
        nullable=False
    )
    store_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    store_affiliate_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    affiliate_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    order_total_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_amount_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    items_count_before: Mapped[int] = mapped_column(Integer, nullable=False)
    order_total_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_amount_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    items_count_after: Mapped[int] = mapped_column(Integer, nullable=False)
    commission_difference: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    recalculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CommissionRecalcLog(order={self.order_number}, diff={self.commission_difference})>"
