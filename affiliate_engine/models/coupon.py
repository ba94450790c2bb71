"""
Coupon models used for affiliate attribution.

A coupon belongs to a store and restricts which items it discounts through
its scope. Affiliates are attributed through the store_affiliate_coupons
junction; `Coupon.store_affiliate_id` is the legacy single link kept for
coupons created before the junction existed.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_engine.database import Base
from affiliate_engine.db_types import UUIDType, JSONType


class DiscountType(str, Enum):
    """Discount type enumeration."""
    PERCENTAGE = "PERCENTAGE"  # e.g., 10% off
    FIXED = "FIXED"            # e.g., R$10 off


class CouponScope(str, Enum):
    """Which items a coupon discounts."""
    ALL = "ALL"
    CATEGORY = "CATEGORY"
    PRODUCT = "PRODUCT"


class Coupon(Base):
    """
    Store coupon.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        UniqueConstraint("store_id", "code", name="uq_coupon_store_code"),
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

    # Coupon Code
    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Coupon code, stored uppercase"
    )

    # Discount Type & Value
    discount_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="PERCENTAGE",
        comment="PERCENTAGE, FIXED"
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00")
    )

    # Scope
    scope: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="ALL",
        comment="ALL, CATEGORY, PRODUCT"
    )
    category_names: Mapped[Optional[List[str]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Category names discounted when scope is CATEGORY"
    )
    product_ids: Mapped[Optional[List[str]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Product ids discounted when scope is PRODUCT"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Legacy single affiliate link
    store_affiliate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("store_affiliates.id", ondelete="SET NULL"),
        nullable=True
    )

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

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code}, scope={self.scope})>"


class StoreAffiliateCoupon(Base):
    """
    Coupon attribution to a store affiliate.

    A coupon is attributed to at most one link at a time. Once an earning has
    been recorded through the coupon the link cannot be changed.
    """
    __tablename__ = "store_affiliate_coupons"
    __table_args__ = (
        UniqueConstraint("coupon_id", name="uq_store_affiliate_coupon"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    store_affiliate_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("store_affiliates.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<StoreAffiliateCoupon(coupon={self.coupon_id}, link={self.store_affiliate_id})>"
