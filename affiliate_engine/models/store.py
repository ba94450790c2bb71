"""Store configuration read by the affiliate engine."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_engine.config import settings
from affiliate_engine.database import Base
from affiliate_engine.db_types import UUIDType


class Store(Base):
    """
    Storefront tenant.

    Only the fields the commission engine needs are mapped here; catalog and
    presentation settings live with the storefront subsystem.
    """
    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Carência: days after delivery before a commission can be withdrawn
    affiliate_commission_maturity_days: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=lambda: settings.DEFAULT_MATURITY_DAYS,
        comment="Days after delivery before commission becomes withdrawable"
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
        return f"<Store(name={self.name}, maturity_days={self.affiliate_commission_maturity_days})>"
