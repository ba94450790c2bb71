"""
Order sync.

Ingests order events from the order subsystem into local order snapshots
and routes them to the earning ledger. An event with items is the full
order (record or recompute through coupon attribution); an event without
items only moves the status.
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.core.exceptions import NotFound
from affiliate_engine.core.timeutils import utcnow
from affiliate_engine.db_types import ZERO, to_money
from affiliate_engine.models.affiliate import StoreAffiliateStatus
from affiliate_engine.models.earning import AffiliateEarning
from affiliate_engine.models.order import Order, OrderItem, normalize_order_status
from affiliate_engine.models.store import Store
from affiliate_engine.schemas.order import OrderEvent
from affiliate_engine.services.coupon_service import CouponService, normalize_code
from affiliate_engine.services.earning_ledger import EarningLedger


logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    order: Order
    attributed: bool = False
    earnings: List[AffiliateEarning] = field(default_factory=list)


class OrderSyncService:
    """Service for order events."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = EarningLedger(db)
        self.coupons = CouponService(db)

    async def _get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def ingest_order_event(self, event: OrderEvent) -> IngestResult:
        if not await self.db.get(Store, event.store_id):
            raise NotFound("Store not found", {"store_id": str(event.store_id)})

        order = await self._get_order(event.order_id)
        is_new = order is None
        if is_new:
            order = Order(
                id=event.order_id,
                store_id=event.store_id,
                created_at=event.created_at or utcnow(),
                items=[],
            )
            self.db.add(order)

        previous_status = order.status
        order.status = normalize_order_status(event.status)
        if event.order_number:
            order.order_number = event.order_number
        if event.coupon_code is not None:
            order.coupon_code = normalize_code(event.coupon_code) or None
        if event.delivered_at is not None:
            order.delivered_at = event.delivered_at
        if event.discount_amount is not None:
            order.discount_amount = to_money(event.discount_amount)

        has_items = event.items is not None
        if has_items:
            order.items.clear()
            for position, item in enumerate(event.items):
                order.items.append(OrderItem(
                    id=uuid.uuid4(),
                    position=position,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    category=item.category,
                    quantity=item.quantity,
                    unit_price=to_money(item.unit_price),
                    line_discount=to_money(item.line_discount),
                ))
            if event.total_amount is not None:
                order.total_amount = to_money(event.total_amount)
            else:
                order.total_amount = to_money(sum(
                    (Decimal(i.unit_price) * i.quantity - Decimal(i.line_discount) for i in event.items),
                    ZERO,
                ))
        elif event.total_amount is not None:
            order.total_amount = to_money(event.total_amount)

        await self.db.commit()
        logger.info(
            f"Order event: order={order.order_number or order.id} status {previous_status} -> {order.status} "
            f"items={'yes' if has_items else 'no'}"
        )

        result = IngestResult(order=order)

        attribution = None
        if has_items and order.coupon_code:
            attribution = await self.coupons.find_attribution(order.store_id, order.coupon_code)

        if attribution:
            coupon, link = attribution
            if link.status == StoreAffiliateStatus.ACTIVE.value:
                earning = await self.ledger.record_order(
                    order,
                    link,
                    coupon,
                    reason="order_created" if is_new else "order_updated",
                )
                result.attributed = True
                result.earnings = [earning]
                return result
            logger.info(
                f"Coupon {coupon.code} belongs to link {link.id} in status {link.status}; "
                f"no new earning for order {order.order_number}"
            )

        result.earnings = await self.ledger.on_order_status_changed(order)
        result.attributed = bool(result.earnings)
        return result
