"""Affiliate withdrawal requests."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_engine.database import Base
from affiliate_engine.db_types import UUIDType


class WithdrawalStatus(str, Enum):
    """Withdrawal request status. PAID and REJECTED are terminal."""
    PENDING = "PENDING"
    PAID = "PAID"
    REJECTED = "REJECTED"


class WithdrawalRequest(Base):
    """
    An affiliate's ask to be paid out the available balance of one store.

    At most one PENDING request exists per (affiliate, store).
    """
    __tablename__ = "affiliate_withdrawal_requests"
    __table_args__ = (
        Index(
            'uq_withdrawal_pending_per_store',
            'affiliate_id', 'store_id',
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index('ix_withdrawal_requests_store_status', 'store_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    affiliate_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("affiliates.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    store_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False
    )
    store_affiliate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("store_affiliates.id", ondelete="SET NULL"),
        nullable=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    pix_key: Mapped[str] = mapped_column(String(140), nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default="PENDING",
        nullable=False,
        comment="PENDING, PAID, REJECTED"
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_proof: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Receipt URL or transfer reference"
    )

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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
        return f"<WithdrawalRequest(amount={self.amount}, status={self.status})>"
