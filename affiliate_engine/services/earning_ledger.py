"""
Earning Ledger.

Keeps one AffiliateEarning per (order, store affiliate), rewrites its
per-item breakdown on every recompute, follows the order through
fulfillment and exposes the balance aggregates dashboards and the
withdrawal flow rely on.

Earning buckets (exactly one per earning, see `classify_earning`):
    CANCELLED           order cancelled/returned, excluded from every money total
    PAID                fully settled
    PENDING_PROCESSING  order neither delivered nor cancelled
    MATURING            delivered, availability unknown or still in the future
    AVAILABLE           delivered and matured, unsettled part is withdrawable
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.core.enum_utils import get_enum_value, to_enum
from affiliate_engine.core.exceptions import NotFound, ValidationError
from affiliate_engine.core.timeutils import as_utc, utcnow
from affiliate_engine.db_types import ZERO, to_money
from affiliate_engine.models.affiliate import StoreAffiliate
from affiliate_engine.models.coupon import Coupon
from affiliate_engine.models.earning import (
    AffiliateEarning,
    AffiliateEarningItem,
    CommissionRecalcLog,
    EarningStatus,
)
from affiliate_engine.models.order import Order, normalize_order_status, is_cancelled, is_delivered
from affiliate_engine.services.commission_resolver import (
    ItemCommission,
    default_from_link,
    item_from_order_item,
    resolve_order_items,
    scope_from_coupon,
    total_commission,
)
from affiliate_engine.services.maturity import compute_available_at, get_store_maturity_days
from affiliate_engine.services.rule_store import RuleStore


logger = logging.getLogger(__name__)


BUCKET_CANCELLED = "CANCELLED"
BUCKET_PAID = "PAID"
BUCKET_PENDING_PROCESSING = "PENDING_PROCESSING"
BUCKET_MATURING = "MATURING"
BUCKET_AVAILABLE = "AVAILABLE"

# Staff overrides allowed by update_status
ALLOWED_TRANSITIONS = {
    EarningStatus.PENDING.value: {
        EarningStatus.APPROVED.value,
        EarningStatus.PAID.value,
        EarningStatus.CANCELLED.value,
    },
    EarningStatus.APPROVED.value: {
        EarningStatus.PAID.value,
        EarningStatus.CANCELLED.value,
    },
}


def classify_earning(earning: AffiliateEarning, now: Optional[datetime] = None) -> str:
    """Place an earning in exactly one balance bucket."""
    if earning.status == EarningStatus.CANCELLED.value:
        return BUCKET_CANCELLED
    if not is_delivered(earning.order_status):
        return BUCKET_PENDING_PROCESSING
    if earning.status == EarningStatus.PAID.value:
        return BUCKET_PAID

    available_at = as_utc(earning.commission_available_at)
    if available_at is None or available_at > as_utc(now or utcnow()):
        return BUCKET_MATURING
    return BUCKET_AVAILABLE


def unsettled(earning: AffiliateEarning) -> Decimal:
    remaining = to_money(earning.commission_amount) - to_money(earning.settled_amount)
    if remaining < ZERO:
        return ZERO
    return remaining


def summarize_earnings(earnings: List[AffiliateEarning], now: Optional[datetime] = None) -> Dict:
    """Aggregate balance totals and per-bucket counts over a set of earnings."""
    now = now or utcnow()
    totals = {
        "earned": ZERO,
        "maturing": ZERO,
        "available_for_withdrawal": ZERO,
        "paid": ZERO,
        "pending_processing": ZERO,
        "cancelled": ZERO,
    }
    counts = {
        "total": 0,
        "maturing": 0,
        "available": 0,
        "paid": 0,
        "pending_processing": 0,
        "cancelled": 0,
    }
    next_available_at = None

    for earning in earnings:
        counts["total"] += 1
        bucket = classify_earning(earning, now)
        amount = to_money(earning.commission_amount)

        if bucket == BUCKET_CANCELLED:
            totals["cancelled"] += amount
            counts["cancelled"] += 1
            continue

        if bucket == BUCKET_PENDING_PROCESSING:
            totals["pending_processing"] += amount
            counts["pending_processing"] += 1
            continue

        totals["earned"] += amount
        totals["paid"] += to_money(earning.settled_amount)

        if bucket == BUCKET_PAID:
            counts["paid"] += 1
        elif bucket == BUCKET_MATURING:
            totals["maturing"] += amount
            counts["maturing"] += 1
            available_at = as_utc(earning.commission_available_at)
            if available_at and (next_available_at is None or available_at < next_available_at):
                next_available_at = available_at
        else:
            totals["available_for_withdrawal"] += unsettled(earning)
            counts["available"] += 1

    summary = {key: to_money(value) for key, value in totals.items()}
    summary["counts"] = counts
    summary["next_available_at"] = next_available_at
    return summary


class EarningLedger:
    """Service for affiliate earnings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Recording ====================

    async def record_order(
        self,
        order: Order,
        store_affiliate: StoreAffiliate,
        coupon: Optional[Coupon] = None,
        reason: str = "order_updated",
    ) -> AffiliateEarning:
        """
        Create or recompute the earning for (order, store affiliate).

        Idempotent: a replay recomputes the existing row in place. The
        order's current status is applied right after.
        """
        order_id = order.id
        link_id = store_affiliate.id
        coupon_id = coupon.id if coupon else None

        try:
            return await self._record(order_id, link_id, coupon_id, reason)
        except IntegrityError:
            # Another request inserted the same (order, link) first
            await self.db.rollback()
            logger.warning(f"Concurrent earning insert for order {order_id}, recomputing existing earning")
            return await self._record(order_id, link_id, coupon_id, reason)

    async def _record(
        self,
        order_id: uuid.UUID,
        link_id: uuid.UUID,
        coupon_id: Optional[uuid.UUID],
        reason: str,
    ) -> AffiliateEarning:
        order = await self._load_order(order_id)
        link = await self.db.get(StoreAffiliate, link_id)
        if not link:
            raise NotFound("Store affiliate not found", {"store_affiliate_id": str(link_id)})
        coupon = await self.db.get(Coupon, coupon_id) if coupon_id else None

        rules = await RuleStore(self.db).get_rule_snapshots(link.id)
        breakdown = resolve_order_items(
            [item_from_order_item(item) for item in order.items],
            rules,
            default_from_link(link),
            scope_from_coupon(coupon),
        )
        commission_amount = total_commission(breakdown)
        order_total = self._order_total(order, breakdown)

        result = await self.db.execute(
            select(AffiliateEarning)
            .options(selectinload(AffiliateEarning.items))
            .where(
                AffiliateEarning.order_id == order.id,
                AffiliateEarning.store_affiliate_id == link.id,
            )
            .with_for_update()
        )
        earning = result.scalar_one_or_none()

        if earning is None:
            earning = AffiliateEarning(
                id=uuid.uuid4(),
                order_id=order.id,
                order_number=order.order_number,
                order_date=order.created_at,
                order_status=normalize_order_status(order.status),
                store_id=link.store_id,
                affiliate_id=link.affiliate_id,
                store_affiliate_id=link.id,
                coupon_id=coupon.id if coupon else None,
                order_total=order_total,
                commission_amount=commission_amount,
                settled_amount=ZERO,
                status=EarningStatus.PENDING.value,
                items=self._build_items(breakdown),
            )
            self.db.add(earning)
            await self.db.flush()
            logger.info(
                f"Earning created: order={order.order_number} link={link.id} commission={commission_amount}"
            )
        elif self._is_frozen(earning):
            logger.info(
                f"Earning {earning.id} is {earning.status} with settled {earning.settled_amount}, "
                f"keeping recorded amounts for order {order.order_number}"
            )
        else:
            self._recompute(earning, order, breakdown, order_total, commission_amount, reason)
            if coupon and earning.coupon_id is None:
                earning.coupon_id = coupon.id

        await self._apply_order_status(earning, order)
        await self.db.commit()
        return earning

    async def _load_order(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFound("Order not found", {"order_id": str(order_id)})
        return order

    @staticmethod
    def _order_total(order: Order, breakdown: List[ItemCommission]) -> Decimal:
        if order.total_amount is not None and to_money(order.total_amount) > ZERO:
            return to_money(order.total_amount)
        return to_money(sum((line.value_after_discount for line in breakdown), ZERO))

    @staticmethod
    def _is_frozen(earning: AffiliateEarning) -> bool:
        """Paid, cancelled or partially settled earnings keep their recorded amounts."""
        return (
            earning.status in (EarningStatus.PAID.value, EarningStatus.CANCELLED.value)
            or to_money(earning.settled_amount) > ZERO
        )

    @staticmethod
    def _build_items(breakdown: List[ItemCommission]) -> List[AffiliateEarningItem]:
        return [
            AffiliateEarningItem(
                id=uuid.uuid4(),
                order_item_id=line.item.order_item_id,
                product_id=line.item.product_id,
                product_name=line.item.product_name,
                product_category=line.item.category,
                quantity=line.item.quantity,
                item_subtotal=line.item.subtotal,
                item_discount=to_money(line.item.line_discount),
                item_value_with_discount=line.value_after_discount,
                is_coupon_eligible=line.is_eligible,
                commission_type=line.resolution.commission_type,
                commission_value=line.resolution.commission_value,
                commission_amount=line.amount,
                commission_source=line.resolution.source,
            )
            for line in breakdown
        ]

    def _recompute(
        self,
        earning: AffiliateEarning,
        order: Order,
        breakdown: List[ItemCommission],
        order_total: Decimal,
        commission_amount: Decimal,
        reason: str,
    ) -> None:
        before_total = to_money(earning.order_total)
        before_commission = to_money(earning.commission_amount)
        before_count = len(earning.items)

        earning.items.clear()
        earning.items.extend(self._build_items(breakdown))
        earning.order_total = order_total
        earning.commission_amount = commission_amount
        earning.order_number = order.order_number

        if before_total != order_total or before_commission != commission_amount:
            self.db.add(CommissionRecalcLog(
                id=uuid.uuid4(),
                order_id=order.id,
                order_number=order.order_number,
                earning_id=earning.id,
                store_id=earning.store_id,
                store_affiliate_id=earning.store_affiliate_id,
                affiliate_id=earning.affiliate_id,
                order_total_before=before_total,
                commission_amount_before=before_commission,
                items_count_before=before_count,
                order_total_after=order_total,
                commission_amount_after=commission_amount,
                items_count_after=len(breakdown),
                commission_difference=commission_amount - before_commission,
                reason=reason,
            ))
            logger.info(
                f"Earning {earning.id} recalculated: commission {before_commission} -> {commission_amount} "
                f"({reason})"
            )

    # ==================== Status transitions ====================

    async def on_order_status_changed(self, order: Order) -> List[AffiliateEarning]:
        """Re-evaluate every earning linked to the order."""
        result = await self.db.execute(
            select(AffiliateEarning)
            .where(AffiliateEarning.order_id == order.id)
            .with_for_update()
        )
        earnings = list(result.scalars().all())

        for earning in earnings:
            await self._apply_order_status(earning, order)

        await self.db.commit()
        return earnings

    async def _apply_order_status(self, earning: AffiliateEarning, order: Order) -> None:
        status = normalize_order_status(order.status)

        if is_cancelled(status):
            if earning.status == EarningStatus.CANCELLED.value:
                earning.order_status = status
                return
            if earning.status == EarningStatus.PAID.value or to_money(earning.settled_amount) > ZERO:
                logger.warning(
                    f"Order {order.order_number} is {status} but earning {earning.id} was already paid "
                    f"({earning.settled_amount}); leaving it untouched"
                )
                return
            earning.order_status = status
            earning.status = EarningStatus.CANCELLED.value
            earning.cancelled_at = utcnow()
            logger.info(f"Earning {earning.id} cancelled with order {order.order_number}")
            return

        if earning.status == EarningStatus.CANCELLED.value:
            # Cancelled earnings stay cancelled even if the order is reopened
            logger.warning(
                f"Order {order.order_number} moved to {status} after cancellation; earning {earning.id} stays cancelled"
            )
            return

        earning.order_status = status
        if not is_delivered(status):
            return

        if earning.commission_available_at is None:
            days = await get_store_maturity_days(self.db, earning.store_id)
            stamp = compute_available_at(order.delivered_at, order.created_at, days)
            earning.commission_available_at = stamp.available_at
            earning.maturity_days_applied = days
            earning.availability_estimated = stamp.estimated
            if stamp.estimated:
                logger.warning(
                    f"Order {order.order_number} delivered without delivered_at; "
                    f"availability of earning {earning.id} estimated from created_at"
                )
        elif earning.availability_estimated and order.delivered_at is not None:
            if earning.status == EarningStatus.PAID.value or to_money(earning.settled_amount) > ZERO:
                # Money already left on the estimated stamp; the stamp becomes final
                earning.availability_estimated = False
                logger.warning(
                    f"Order {order.order_number} delivery time arrived after earning {earning.id} was paid "
                    f"({earning.settled_amount}); keeping availability {earning.commission_available_at}"
                )
                return
            days = earning.maturity_days_applied
            if days is None:
                days = await get_store_maturity_days(self.db, earning.store_id)
            stamp = compute_available_at(order.delivered_at, order.created_at, days)
            earning.commission_available_at = stamp.available_at
            earning.maturity_days_applied = days
            earning.availability_estimated = False
            logger.info(f"Earning {earning.id} availability reconciled to {stamp.available_at.isoformat()}")

    async def update_status(self, earning_id: uuid.UUID, status) -> AffiliateEarning:
        """Staff override of an earning's status."""
        target = to_enum(status, EarningStatus)
        if target is None:
            raise ValidationError(f"Invalid earning status: {get_enum_value(status)}")

        result = await self.db.execute(
            select(AffiliateEarning)
            .where(AffiliateEarning.id == earning_id)
            .with_for_update()
        )
        earning = result.scalar_one_or_none()
        if not earning:
            raise NotFound("Earning not found", {"earning_id": str(earning_id)})

        allowed = ALLOWED_TRANSITIONS.get(earning.status, set())
        if target.value not in allowed:
            raise ValidationError(
                f"Cannot change earning from {earning.status} to {target.value}",
                {"current": earning.status, "requested": target.value}
            )

        if target == EarningStatus.PAID and not is_delivered(earning.order_status):
            raise ValidationError(
                f"Cannot pay an earning whose order is {earning.order_status}",
                {"order_status": earning.order_status}
            )

        now = utcnow()
        if target == EarningStatus.APPROVED:
            earning.approved_at = now
        elif target == EarningStatus.PAID:
            earning.settled_amount = to_money(earning.commission_amount)
            earning.paid_at = now
        elif target == EarningStatus.CANCELLED:
            if to_money(earning.settled_amount) > ZERO:
                raise ValidationError(
                    "Cannot cancel an earning that has been partially paid",
                    {"settled_amount": str(earning.settled_amount)}
                )
            earning.cancelled_at = now

        previous = earning.status
        earning.status = target.value
        await self.db.commit()
        await self.db.refresh(earning)

        logger.info(f"Earning {earning_id} status {previous} -> {target.value}")
        return earning

    # ==================== Aggregates ====================

    async def _query_earnings(
        self,
        affiliate_id: uuid.UUID,
        store_id: Optional[uuid.UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AffiliateEarning]:
        query = select(AffiliateEarning).where(AffiliateEarning.affiliate_id == affiliate_id)
        if store_id:
            query = query.where(AffiliateEarning.store_id == store_id)
        if start:
            query = query.where(AffiliateEarning.order_date >= start)
        if end:
            query = query.where(AffiliateEarning.order_date <= end)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_summary(
        self,
        affiliate_id: uuid.UUID,
        store_id: Optional[uuid.UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Dict:
        """Balance aggregates for an affiliate, optionally per store and time window."""
        earnings = await self._query_earnings(affiliate_id, store_id, start, end)
        summary = summarize_earnings(earnings, now)
        summary["affiliate_id"] = affiliate_id
        summary["store_id"] = store_id
        return summary

    async def get_available_earnings(
        self,
        affiliate_id: uuid.UUID,
        store_id: uuid.UUID,
        now: Optional[datetime] = None,
        for_update: bool = False,
    ) -> List[AffiliateEarning]:
        """Matured, unsettled earnings, oldest availability first."""
        query = select(AffiliateEarning).where(
            AffiliateEarning.affiliate_id == affiliate_id,
            AffiliateEarning.store_id == store_id,
            AffiliateEarning.status.in_([EarningStatus.PENDING.value, EarningStatus.APPROVED.value]),
            AffiliateEarning.commission_available_at.is_not(None),
        ).order_by(AffiliateEarning.commission_available_at, AffiliateEarning.order_date)
        if for_update:
            query = query.with_for_update()

        result = await self.db.execute(query)
        now = now or utcnow()
        return [
            earning for earning in result.scalars().all()
            if classify_earning(earning, now) == BUCKET_AVAILABLE and unsettled(earning) > ZERO
        ]

    async def get_available_balance(
        self,
        affiliate_id: uuid.UUID,
        store_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Decimal:
        earnings = await self.get_available_earnings(affiliate_id, store_id, now)
        return to_money(sum((unsettled(e) for e in earnings), ZERO))

    # ==================== Queries ====================

    async def list_earnings(
        self,
        affiliate_id: Optional[uuid.UUID] = None,
        store_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[AffiliateEarning], int]:
        query = select(AffiliateEarning)
        if affiliate_id:
            query = query.where(AffiliateEarning.affiliate_id == affiliate_id)
        if store_id:
            query = query.where(AffiliateEarning.store_id == store_id)
        if status:
            query = query.where(AffiliateEarning.status == status.upper())

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        query = query.order_by(AffiliateEarning.order_date.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_earning(self, earning_id: uuid.UUID) -> AffiliateEarning:
        earning = await self.db.get(AffiliateEarning, earning_id)
        if not earning:
            raise NotFound("Earning not found", {"earning_id": str(earning_id)})
        return earning

    async def get_earning_items(self, earning_id: uuid.UUID) -> List[AffiliateEarningItem]:
        await self.get_earning(earning_id)
        result = await self.db.execute(
            select(AffiliateEarningItem)
            .where(AffiliateEarningItem.earning_id == earning_id)
            .order_by(AffiliateEarningItem.product_name)
        )
        return list(result.scalars().all())

    async def list_recalc_logs(
        self,
        store_id: uuid.UUID,
        limit: int = 100,
    ) -> List[CommissionRecalcLog]:
        result = await self.db.execute(
            select(CommissionRecalcLog)
            .where(CommissionRecalcLog.store_id == store_id)
            .order_by(CommissionRecalcLog.recalculated_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_recalc_summary(self, store_id: uuid.UUID) -> Dict:
        """Recalculation audit totals for a store."""
        result = await self.db.execute(
            select(CommissionRecalcLog.commission_difference)
            .where(CommissionRecalcLog.store_id == store_id)
        )
        differences = [to_money(d) for d in result.scalars().all()]

        positive = [d for d in differences if d > ZERO]
        negative = [d for d in differences if d < ZERO]
        total_positive = to_money(sum(positive, ZERO))
        total_negative = to_money(sum((-d for d in negative), ZERO))

        average = ZERO
        if differences:
            average = to_money((total_positive - total_negative) / len(differences))

        return {
            "total_recalculations": len(differences),
            "positive_count": len(positive),
            "negative_count": len(negative),
            "neutral_count": len(differences) - len(positive) - len(negative),
            "total_positive_variation": total_positive,
            "total_negative_variation": total_negative,
            "average_variation": average,
        }
