"""
Maturity (carência) calculator.

A commission becomes withdrawable ``maturity_days`` after the order was
delivered. The availability instant is stamped on the earning once, at the
transition to delivered, together with the maturity days in force at that
moment, so later changes to the store setting never move it.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.config import settings
from affiliate_engine.core.timeutils import as_utc, utcnow
from affiliate_engine.models.store import Store


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaturityStamp:
    """Availability instant and whether it was derived from created_at."""
    available_at: datetime
    estimated: bool = False


def compute_available_at(
    delivered_at: Optional[datetime],
    created_at: datetime,
    maturity_days: int,
) -> MaturityStamp:
    """
    Compute when a delivered order's commission becomes withdrawable.

    When the delivery timestamp is unknown the order creation time is used
    and the stamp is flagged as estimated so it can be reconciled later.
    """
    days = max(int(maturity_days or 0), 0)
    if delivered_at is not None:
        return MaturityStamp(available_at=as_utc(delivered_at) + timedelta(days=days))
    return MaturityStamp(
        available_at=as_utc(created_at) + timedelta(days=days),
        estimated=True,
    )


def is_matured(available_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Unknown availability is never matured."""
    if available_at is None:
        return False
    return as_utc(available_at) <= as_utc(now or utcnow())


def time_until_available(
    available_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> Optional[timedelta]:
    """Remaining time until availability, zero once matured, None when unknown."""
    if available_at is None:
        return None
    remaining = as_utc(available_at) - as_utc(now or utcnow())
    if remaining <= timedelta(0):
        return timedelta(0)
    return remaining


def countdown(available_at: Optional[datetime], now: Optional[datetime] = None) -> Dict:
    """Countdown split into days/hours/minutes for dashboards."""
    remaining = time_until_available(available_at, now)
    if remaining is None:
        return {"is_available": False, "days": None, "hours": None, "minutes": None}

    total_seconds = int(remaining.total_seconds())
    return {
        "is_available": total_seconds == 0,
        "days": total_seconds // 86400,
        "hours": (total_seconds % 86400) // 3600,
        "minutes": (total_seconds % 3600) // 60,
    }


async def get_store_maturity_days(db: AsyncSession, store_id: uuid.UUID) -> int:
    """Read the store's maturity setting, falling back to the configured default."""
    result = await db.execute(
        select(Store.affiliate_commission_maturity_days).where(Store.id == store_id)
    )
    days = result.scalar_one_or_none()
    if days is None:
        logger.warning(
            f"Store {store_id} has no maturity setting, using default {settings.DEFAULT_MATURITY_DAYS} days"
        )
        return settings.DEFAULT_MATURITY_DAYS
    return days
