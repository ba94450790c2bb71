"""Affiliate and per-store affiliate link models.

An Affiliate is a third party who drives sales with coupons. The
StoreAffiliate link is the per-store contract: invite status, the default
commission and whether that default is enabled.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_engine.database import Base
from affiliate_engine.db_types import UUIDType

if TYPE_CHECKING:
    from affiliate_engine.models.store import Store
    from affiliate_engine.models.commission import CommissionRule


# ==================== ENUMS (stored as VARCHAR) ====================

class AffiliateStatus(str, Enum):
    """Affiliate account status (soft delete only)."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class StoreAffiliateStatus(str, Enum):
    """Store ↔ affiliate link status."""
    INVITED = "INVITED"      # Invite sent, not yet accepted
    ACTIVE = "ACTIVE"        # Accepted, earning commissions
    REJECTED = "REJECTED"    # Invite declined or link revoked


class CommissionType(str, Enum):
    """How a commission value is applied to an item."""
    PERCENTAGE = "PERCENTAGE"  # value% of the item value after discount
    FIXED = "FIXED"            # value per unit, capped at item value


# ==================== MODELS ====================

class Affiliate(Base):
    """
    Affiliate identity and payout key.

    Created on registration or invite acceptance. Never hard-deleted.
    """
    __tablename__ = "affiliates"
    __table_args__ = (
        Index('ix_affiliates_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True
    )
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # PIX key used for payouts (CPF, CNPJ, e-mail, phone or random key)
    pix_key: Mapped[Optional[str]] = mapped_column(String(140), nullable=True)

    status: Mapped[str] = mapped_column(
        String(50),
        default="ACTIVE",
        nullable=False,
        comment="ACTIVE, INACTIVE"
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

    store_links: Mapped[List["StoreAffiliate"]] = relationship(
        "StoreAffiliate",
        back_populates="affiliate"
    )

    def __repr__(self) -> str:
        return f"<Affiliate(email={self.email}, status={self.status})>"


class StoreAffiliate(Base):
    """
    Binds one Affiliate to one Store.

    Carries the default commission used when no product or category rule
    matches an item.
    """
    __tablename__ = "store_affiliates"
    __table_args__ = (
        UniqueConstraint("store_id", "affiliate_id", name="uq_store_affiliate"),
        Index('ix_store_affiliates_status', 'status'),
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
    affiliate_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("affiliates.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default="INVITED",
        nullable=False,
        comment="INVITED, ACTIVE, REJECTED"
    )

    # Default commission
    default_commission_type: Mapped[str] = mapped_column(
        String(50),
        default="PERCENTAGE",
        nullable=False,
        comment="PERCENTAGE, FIXED"
    )
    default_commission_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    commission_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="When false the default commission is ignored"
    )

    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
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

    # Relationships
    affiliate: Mapped["Affiliate"] = relationship(
        "Affiliate",
        back_populates="store_links"
    )
    store: Mapped["Store"] = relationship("Store")
    rules: Mapped[List["CommissionRule"]] = relationship(
        "CommissionRule",
        back_populates="store_affiliate"
    )

    def __repr__(self) -> str:
        return f"<StoreAffiliate(store={self.store_id}, affiliate={self.affiliate_id}, status={self.status})>"
