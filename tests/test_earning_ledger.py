"""Earning ledger: recording, recompute, order status transitions and balance buckets."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from affiliate_engine.core.exceptions import ValidationError
from affiliate_engine.core.timeutils import as_utc
from affiliate_engine.models.earning import AffiliateEarning, CommissionSource, EarningStatus
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.coupon_service import CouponService
from affiliate_engine.services.earning_ledger import (
    BUCKET_AVAILABLE,
    BUCKET_CANCELLED,
    BUCKET_MATURING,
    BUCKET_PENDING_PROCESSING,
    EarningLedger,
    classify_earning,
)
from affiliate_engine.services.rule_store import RuleStore
from affiliate_engine.services.withdrawal_service import WithdrawalService

from tests.conftest import pizza_items


async def count_earnings(db) -> int:
    result = await db.execute(select(func.count()).select_from(AffiliateEarning))
    return result.scalar()


class TestRecording:
    async def test_coupon_order_records_earning(self, db, coupon, ingest):
        result = await ingest(coupon_code="maria10", order_number="PED-1", items=pizza_items())

        assert result.attributed is True
        earning = result.earnings[0]
        assert earning.commission_amount == Decimal("5.94")
        assert earning.order_total == Decimal("59.40")
        assert earning.status == EarningStatus.PENDING.value
        assert earning.coupon_id == coupon.id

        items = await EarningLedger(db).get_earning_items(earning.id)
        assert {i.product_id: i.commission_amount for i in items} == {
            "PIZZA-1": Decimal("4.50"),
            "SODA-1": Decimal("1.44"),
        }
        assert {i.commission_source for i in items} == {CommissionSource.DEFAULT.value}

    async def test_rules_are_applied(self, db, link, coupon, ingest):
        store = RuleStore(db)
        await store.create_rule(link.id, "PRODUCT", "PIZZA-1", "FIXED", "3")
        await store.create_rule(link.id, "CATEGORY", "bebidas", "PERCENTAGE", "50")

        result = await ingest(coupon_code="MARIA10", items=pizza_items())

        assert result.earnings[0].commission_amount == Decimal("10.20")

    async def test_replay_is_idempotent(self, db, store, coupon, ingest):
        order_id = uuid.uuid4()
        await ingest(order_id, coupon_code="MARIA10", items=pizza_items())
        await ingest(order_id, coupon_code="MARIA10", items=pizza_items())

        assert await count_earnings(db) == 1
        assert await EarningLedger(db).list_recalc_logs(store.id) == []

    async def test_edit_recomputes_and_logs(self, db, store, coupon, ingest):
        order_id = uuid.uuid4()
        await ingest(order_id, coupon_code="MARIA10", order_number="PED-2", items=pizza_items())
        result = await ingest(order_id, coupon_code="MARIA10", order_number="PED-2", items=pizza_items()[:1])

        earning = result.earnings[0]
        assert earning.commission_amount == Decimal("4.50")
        assert len(await EarningLedger(db).get_earning_items(earning.id)) == 1

        logs = await EarningLedger(db).list_recalc_logs(store.id)
        assert len(logs) == 1
        assert logs[0].commission_amount_before == Decimal("5.94")
        assert logs[0].commission_amount_after == Decimal("4.50")
        assert logs[0].commission_difference == Decimal("-1.44")
        assert logs[0].items_count_before == 2
        assert logs[0].items_count_after == 1
        assert logs[0].reason == "order_updated"

        summary = await EarningLedger(db).get_recalc_summary(store.id)
        assert summary["total_recalculations"] == 1
        assert summary["negative_count"] == 1
        assert summary["total_negative_variation"] == Decimal("1.44")

    async def test_order_without_coupon_has_no_earning(self, db, coupon, ingest):
        result = await ingest(items=pizza_items())

        assert result.attributed is False
        assert await count_earnings(db) == 0

    async def test_unknown_coupon_has_no_earning(self, db, coupon, ingest):
        result = await ingest(coupon_code="OUTRO", items=pizza_items())

        assert result.earnings == []

    async def test_invited_link_earns_nothing(self, db, store, ingest):
        service = AffiliateService(db)
        other = await service.register_affiliate(name="Joao Lima", email="joao@example.com")
        invite = await service.invite_affiliate(store.id, other.id, "PERCENTAGE", Decimal("10"))
        coupons = CouponService(db)
        coupon = await coupons.create_coupon(store_id=store.id, code="JOAO5")
        await coupons.link_coupon(coupon.id, invite.id)

        result = await ingest(coupon_code="JOAO5", items=pizza_items())

        assert result.attributed is False
        assert await count_earnings(db) == 0

    async def test_concurrent_insert_recomputes_existing(self, db, coupon, ingest, monkeypatch):
        original = EarningLedger._record
        attempts = []

        async def racing_record(self, *args):
            attempts.append(args)
            if len(attempts) == 1:
                raise IntegrityError("INSERT INTO affiliate_earnings", {}, Exception("duplicate key"))
            return await original(self, *args)

        monkeypatch.setattr(EarningLedger, "_record", racing_record)

        result = await ingest(coupon_code="MARIA10", items=pizza_items())

        assert len(attempts) == 2
        assert result.earnings[0].commission_amount == Decimal("5.94")
        assert await count_earnings(db) == 1


class TestOrderStatus:
    async def test_delivery_stamps_availability_once(self, db, store, coupon, ingest, past):
        order_id = uuid.uuid4()
        await ingest(order_id, coupon_code="MARIA10", items=pizza_items(), created_at=past["created_at"])

        result = await ingest(order_id, status="entregue", delivered_at=past["delivered_at"])
        earning = result.earnings[0]
        assert earning.order_status == "DELIVERED"
        assert as_utc(earning.commission_available_at) == past["delivered_at"] + timedelta(days=7)
        assert earning.maturity_days_applied == 7
        assert earning.availability_estimated is False

        # A later setting change or a replayed delivery never moves the stamp
        await AffiliateService(db).set_store_maturity_days(store.id, 30)
        result = await ingest(order_id, status="DELIVERED", delivered_at=datetime.now(timezone.utc))
        earning = result.earnings[0]
        assert as_utc(earning.commission_available_at) == past["delivered_at"] + timedelta(days=7)
        assert earning.maturity_days_applied == 7

    async def test_missing_delivery_timestamp_is_reconciled(self, db, coupon, ingest, past):
        order_id = uuid.uuid4()
        await ingest(order_id, coupon_code="MARIA10", items=pizza_items(), created_at=past["created_at"])

        result = await ingest(order_id, status="DELIVERED")
        earning = result.earnings[0]
        assert earning.availability_estimated is True
        assert as_utc(earning.commission_available_at) == past["created_at"] + timedelta(days=7)

        result = await ingest(order_id, status="DELIVERED", delivered_at=past["delivered_at"])
        earning = result.earnings[0]
        assert earning.availability_estimated is False
        assert as_utc(earning.commission_available_at) == past["delivered_at"] + timedelta(days=7)

    async def test_cancellation_is_terminal(self, db, affiliate, store, coupon, ingest):
        order_id = uuid.uuid4()
        await ingest(order_id, coupon_code="MARIA10", items=pizza_items())

        result = await ingest(order_id, status="cancelado")
        assert result.earnings[0].status == EarningStatus.CANCELLED.value
        assert result.earnings[0].cancelled_at is not None

        result = await ingest(order_id, status="PREPARING")
        assert result.earnings[0].status == EarningStatus.CANCELLED.value

        summary = await EarningLedger(db).get_summary(affiliate.id, store.id)
        assert summary["cancelled"] == Decimal("5.94")
        assert summary["earned"] == Decimal("0")
        assert summary["available_for_withdrawal"] == Decimal("0")

    async def test_cancel_after_payout_keeps_paid_earning(self, db, coupon, ingest, past):
        order_id = uuid.uuid4()
        result = await ingest(order_id, coupon_code="MARIA10", items=pizza_items(), **past)
        await ingest(order_id, status="DELIVERED", delivered_at=past["delivered_at"])
        await EarningLedger(db).update_status(result.earnings[0].id, "PAID")

        result = await ingest(order_id, status="RETURNED")

        earning = result.earnings[0]
        assert earning.status == EarningStatus.PAID.value
        assert earning.settled_amount == Decimal("5.94")

    async def test_paid_earning_is_not_recomputed(self, db, coupon, ingest, past):
        order_id = uuid.uuid4()
        result = await ingest(order_id, coupon_code="MARIA10", items=pizza_items(), status="DELIVERED", **past)
        await EarningLedger(db).update_status(result.earnings[0].id, "PAID")

        result = await ingest(order_id, coupon_code="MARIA10", items=pizza_items()[:1])

        assert result.earnings[0].commission_amount == Decimal("5.94")

    async def test_late_delivery_time_keeps_stamp_after_payout(self, db, affiliate, store, coupon, ingest, past):
        order_id = uuid.uuid4()
        await ingest(order_id, coupon_code="MARIA10", items=pizza_items(), created_at=past["created_at"])
        await ingest(order_id, status="DELIVERED")

        withdrawals = WithdrawalService(db)
        request = await withdrawals.request_withdrawal(affiliate.id, store.id, amount="2.00")
        await withdrawals.settle(request.id, "PAID")

        delivered_at = datetime.now(timezone.utc) - timedelta(days=1)
        result = await ingest(order_id, status="DELIVERED", delivered_at=delivered_at)

        earning = result.earnings[0]
        assert as_utc(earning.commission_available_at) == past["created_at"] + timedelta(days=7)
        assert earning.availability_estimated is False

        summary = await EarningLedger(db).get_summary(affiliate.id, store.id)
        assert summary["earned"] == Decimal("5.94")
        assert summary["maturing"] == Decimal("0")
        assert summary["available_for_withdrawal"] == Decimal("3.94")
        assert summary["paid"] == Decimal("2.00")
        assert summary["maturing"] + summary["available_for_withdrawal"] + summary["paid"] == summary["earned"]


class TestStaffOverride:
    async def test_paid_settles_full_amount(self, db, coupon, ingest):
        result = await ingest(coupon_code="MARIA10", items=pizza_items(), status="DELIVERED")

        earning = await EarningLedger(db).update_status(result.earnings[0].id, "paid")

        assert earning.status == EarningStatus.PAID.value
        assert earning.settled_amount == Decimal("5.94")
        assert earning.paid_at is not None

    async def test_cancelled_cannot_be_paid(self, db, coupon, ingest):
        order_id = uuid.uuid4()
        await ingest(order_id, coupon_code="MARIA10", items=pizza_items())
        result = await ingest(order_id, status="CANCELLED")

        with pytest.raises(ValidationError):
            await EarningLedger(db).update_status(result.earnings[0].id, "PAID")

    async def test_unknown_status(self, db, coupon, ingest):
        result = await ingest(coupon_code="MARIA10", items=pizza_items())

        with pytest.raises(ValidationError):
            await EarningLedger(db).update_status(result.earnings[0].id, "ARCHIVED")

    async def test_undelivered_earning_cannot_be_paid(self, db, affiliate, store, coupon, ingest):
        result = await ingest(coupon_code="MARIA10", items=pizza_items())
        ledger = EarningLedger(db)

        with pytest.raises(ValidationError):
            await ledger.update_status(result.earnings[0].id, "PAID")

        summary = await ledger.get_summary(affiliate.id, store.id)
        assert summary["earned"] == Decimal("0")
        assert summary["paid"] == Decimal("0")
        assert summary["pending_processing"] == Decimal("5.94")


class TestSummary:
    async def test_every_earning_lands_in_one_bucket(self, db, affiliate, store, coupon, ingest, past):
        now = datetime.now(timezone.utc)

        # Still being prepared
        await ingest(coupon_code="MARIA10", items=pizza_items(), status="PREPARING")

        # Delivered yesterday, maturing for six more days
        maturing = await ingest(
            coupon_code="MARIA10", items=pizza_items(), status="DELIVERED",
            created_at=now - timedelta(days=2), delivered_at=now - timedelta(days=1),
        )

        # Delivered ten days ago, available
        available = await ingest(coupon_code="MARIA10", items=pizza_items(), status="DELIVERED", **past)

        # Cancelled
        cancelled_id = uuid.uuid4()
        await ingest(cancelled_id, coupon_code="MARIA10", items=pizza_items())
        cancelled = await ingest(cancelled_id, status="CANCELLED")

        assert classify_earning(maturing.earnings[0], now) == BUCKET_MATURING
        assert classify_earning(available.earnings[0], now) == BUCKET_AVAILABLE
        assert classify_earning(cancelled.earnings[0], now) == BUCKET_CANCELLED

        summary = await EarningLedger(db).get_summary(affiliate.id, store.id, now=now)

        counts = summary["counts"]
        assert counts["total"] == 4
        assert counts["pending_processing"] == counts["maturing"] == counts["available"] == 1
        assert counts["cancelled"] == 1
        assert counts["paid"] == 0
        assert summary["pending_processing"] == Decimal("5.94")
        assert summary["maturing"] == Decimal("5.94")
        assert summary["available_for_withdrawal"] == Decimal("5.94")
        assert summary["cancelled"] == Decimal("5.94")
        assert summary["earned"] == Decimal("11.88")
        assert summary["paid"] == Decimal("0")
        assert as_utc(summary["next_available_at"]) == as_utc(maturing.earnings[0].commission_available_at)

    async def test_not_delivered_is_pending_processing(self, coupon, ingest):
        result = await ingest(coupon_code="MARIA10", items=pizza_items(), status="OUT_FOR_DELIVERY")

        assert classify_earning(result.earnings[0]) == BUCKET_PENDING_PROCESSING
