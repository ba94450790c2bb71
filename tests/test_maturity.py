"""Maturity period calculation."""
import uuid
from datetime import datetime, timedelta, timezone

from affiliate_engine.config import settings
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.maturity import (
    compute_available_at,
    countdown,
    get_store_maturity_days,
    is_matured,
    time_until_available,
)


DELIVERED = datetime(2026, 3, 1, 15, 30, tzinfo=timezone.utc)
CREATED = datetime(2026, 2, 27, 10, 0, tzinfo=timezone.utc)


class TestComputeAvailableAt:
    def test_delivered_plus_days(self):
        stamp = compute_available_at(DELIVERED, CREATED, 7)

        assert stamp.available_at == datetime(2026, 3, 8, 15, 30, tzinfo=timezone.utc)
        assert stamp.estimated is False

    def test_zero_days_is_available_at_delivery(self):
        assert compute_available_at(DELIVERED, CREATED, 0).available_at == DELIVERED

    def test_missing_delivery_falls_back_to_creation(self):
        stamp = compute_available_at(None, CREATED, 7)

        assert stamp.available_at == CREATED + timedelta(days=7)
        assert stamp.estimated is True

    def test_naive_timestamps_are_utc(self):
        stamp = compute_available_at(DELIVERED.replace(tzinfo=None), CREATED, 1)

        assert stamp.available_at == DELIVERED + timedelta(days=1)


class TestIsMatured:
    def test_boundary_is_inclusive(self):
        available_at = DELIVERED + timedelta(days=7)

        assert is_matured(available_at, available_at) is True
        assert is_matured(available_at, available_at - timedelta(seconds=1)) is False

    def test_unknown_availability_never_matures(self):
        assert is_matured(None, DELIVERED) is False


class TestCountdown:
    def test_remaining_time(self):
        available_at = DELIVERED + timedelta(days=2, hours=3, minutes=15)

        result = countdown(available_at, DELIVERED)

        assert result == {"is_available": False, "days": 2, "hours": 3, "minutes": 15}

    def test_matured(self):
        assert time_until_available(DELIVERED, DELIVERED + timedelta(hours=1)) == timedelta(0)
        assert countdown(DELIVERED, DELIVERED + timedelta(hours=1))["is_available"] is True

    def test_unknown(self):
        assert countdown(None)["days"] is None


class TestStoreMaturityDays:
    async def test_reads_store_setting(self, db, store):
        await AffiliateService(db).set_store_maturity_days(store.id, 14)

        assert await get_store_maturity_days(db, store.id) == 14

    async def test_unknown_store_uses_default(self, db):
        assert await get_store_maturity_days(db, uuid.uuid4()) == settings.DEFAULT_MATURITY_DAYS
