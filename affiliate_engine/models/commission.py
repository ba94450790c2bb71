"""Per-affiliate commission rules.

A rule overrides the StoreAffiliate default for one product or one
category. At most one active rule exists per (link, target); creating a new
rule for the same target deactivates the previous one.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_engine.database import Base
from affiliate_engine.db_types import UUIDType

if TYPE_CHECKING:
    from affiliate_engine.models.affiliate import StoreAffiliate


class RuleTarget(str, Enum):
    """What a commission rule applies to."""
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"


class CommissionRule(Base):
    """
    Product- or category-level commission override for one store affiliate.
    """
    __tablename__ = "affiliate_commission_rules"
    __table_args__ = (
        Index(
            'uq_commission_rule_active_target',
            'store_affiliate_id', 'applies_to', 'target_key',
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
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

    applies_to: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="PRODUCT, CATEGORY"
    )
    product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    category_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    target_key: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="product_id, or lower-cased trimmed category name"
    )

    commission_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="PERCENTAGE, FIXED"
    )
    commission_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    store_affiliate: Mapped["StoreAffiliate"] = relationship(
        "StoreAffiliate",
        back_populates="rules"
    )

    def __repr__(self) -> str:
        return (
            f"<CommissionRule(applies_to={self.applies_to}, target={self.target_key}, "
            f"{self.commission_type}={self.commission_value})>"
        )
