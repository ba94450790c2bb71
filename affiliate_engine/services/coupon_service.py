"""
Coupon attribution.

Coupons are attributed to store affiliates through the
store_affiliate_coupons junction. Once an earning has been recorded through
a coupon, its attribution is permanent: it can neither be moved to another
link nor removed.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.core.enum_utils import get_enum_value, to_enum
from affiliate_engine.core.exceptions import CouponAttributionLocked, NotFound, ValidationError
from affiliate_engine.db_types import ZERO, to_money
from affiliate_engine.models.affiliate import StoreAffiliate
from affiliate_engine.models.coupon import Coupon, CouponScope, DiscountType, StoreAffiliateCoupon
from affiliate_engine.models.earning import AffiliateEarning
from affiliate_engine.models.store import Store


logger = logging.getLogger(__name__)


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class CouponService:
    """Service for coupons and their affiliate attribution."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_coupon(
        self,
        store_id: uuid.UUID,
        code: str,
        discount_type=DiscountType.PERCENTAGE,
        discount_value=ZERO,
        scope=CouponScope.ALL,
        category_names: Optional[List[str]] = None,
        product_ids: Optional[List[str]] = None,
    ) -> Coupon:
        if not await self.db.get(Store, store_id):
            raise NotFound("Store not found", {"store_id": str(store_id)})

        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("Coupon code is required")

        discount_kind = to_enum(discount_type, DiscountType)
        if discount_kind is None:
            raise ValidationError(f"Invalid discount type: {get_enum_value(discount_type)}")
        scope_kind = to_enum(scope, CouponScope)
        if scope_kind is None:
            raise ValidationError(f"Invalid coupon scope: {get_enum_value(scope)}")

        value = to_money(discount_value)
        if value < ZERO:
            raise ValidationError("Discount value cannot be negative")
        if discount_kind == DiscountType.PERCENTAGE and value > Decimal("100"):
            raise ValidationError("Percentage discount cannot exceed 100")

        existing = await self.get_coupon_by_code(store_id, normalized)
        if existing:
            raise ValidationError(f"Coupon '{normalized}' already exists", {"coupon_id": str(existing.id)})

        coupon = Coupon(
            id=uuid.uuid4(),
            store_id=store_id,
            code=normalized,
            discount_type=discount_kind.value,
            discount_value=value,
            scope=scope_kind.value,
            category_names=list(category_names or []),
            product_ids=[str(p) for p in (product_ids or [])],
            is_active=True,
        )
        self.db.add(coupon)
        await self.db.commit()
        await self.db.refresh(coupon)
        return coupon

    async def get_coupon(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.db.get(Coupon, coupon_id)
        if not coupon:
            raise NotFound("Coupon not found", {"coupon_id": str(coupon_id)})
        return coupon

    async def get_coupon_by_code(self, store_id: uuid.UUID, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(
                Coupon.store_id == store_id,
                Coupon.code == normalize_code(code),
            )
        )
        return result.scalar_one_or_none()

    async def _count_earnings(self, coupon_id: uuid.UUID, exclude_link: Optional[uuid.UUID] = None) -> int:
        query = select(func.count(AffiliateEarning.id)).where(AffiliateEarning.coupon_id == coupon_id)
        if exclude_link:
            query = query.where(AffiliateEarning.store_affiliate_id != exclude_link)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def _get_link_row(self, coupon_id: uuid.UUID) -> Optional[StoreAffiliateCoupon]:
        result = await self.db.execute(
            select(StoreAffiliateCoupon)
            .where(StoreAffiliateCoupon.coupon_id == coupon_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def link_coupon(self, coupon_id: uuid.UUID, store_affiliate_id: uuid.UUID) -> StoreAffiliateCoupon:
        """Attribute a coupon to a store affiliate."""
        coupon = await self.get_coupon(coupon_id)
        link = await self.db.get(StoreAffiliate, store_affiliate_id)
        if not link:
            raise NotFound("Store affiliate not found", {"store_affiliate_id": str(store_affiliate_id)})
        if link.store_id != coupon.store_id:
            raise ValidationError("Coupon and affiliate belong to different stores")

        current = await self._get_link_row(coupon_id)
        if current and current.store_affiliate_id == store_affiliate_id:
            return current

        locked = await self._count_earnings(coupon_id, exclude_link=store_affiliate_id)
        if locked:
            raise CouponAttributionLocked(
                f"Coupon {coupon.code} already has {locked} earning(s) attributed to another affiliate",
                {"coupon_id": str(coupon_id), "earnings": locked}
            )

        if current:
            logger.info(f"Coupon {coupon.code} moved from link {current.store_affiliate_id} to {store_affiliate_id}")
            current.store_affiliate_id = store_affiliate_id
            row = current
        else:
            row = StoreAffiliateCoupon(
                id=uuid.uuid4(),
                store_affiliate_id=store_affiliate_id,
                coupon_id=coupon_id,
            )
            self.db.add(row)

        # Keep the legacy column in step for readers that still use it
        coupon.store_affiliate_id = store_affiliate_id

        await self.db.commit()
        await self.db.refresh(row)
        logger.info(f"Coupon {coupon.code} linked to store affiliate {store_affiliate_id}")
        return row

    async def unlink_coupon(self, coupon_id: uuid.UUID) -> None:
        coupon = await self.get_coupon(coupon_id)

        locked = await self._count_earnings(coupon_id)
        if locked:
            raise CouponAttributionLocked(
                f"Coupon {coupon.code} has {locked} earning(s) and cannot be unlinked",
                {"coupon_id": str(coupon_id), "earnings": locked}
            )

        current = await self._get_link_row(coupon_id)
        if current:
            await self.db.delete(current)
        coupon.store_affiliate_id = None

        await self.db.commit()
        logger.info(f"Coupon {coupon.code} unlinked")

    async def list_coupon_links(self, store_affiliate_id: uuid.UUID) -> List[Coupon]:
        result = await self.db.execute(
            select(Coupon)
            .join(StoreAffiliateCoupon, StoreAffiliateCoupon.coupon_id == Coupon.id)
            .where(StoreAffiliateCoupon.store_affiliate_id == store_affiliate_id)
            .order_by(Coupon.code)
        )
        return list(result.scalars().all())

    async def find_attribution(
        self,
        store_id: uuid.UUID,
        coupon_code: Optional[str],
    ) -> Optional[Tuple[Coupon, StoreAffiliate]]:
        """
        Resolve which store affiliate an order's coupon belongs to.

        The junction wins; coupons created before it existed fall back to
        the legacy single link.
        """
        if not normalize_code(coupon_code):
            return None

        coupon = await self.get_coupon_by_code(store_id, coupon_code)
        if not coupon:
            return None

        result = await self.db.execute(
            select(StoreAffiliate)
            .join(StoreAffiliateCoupon, StoreAffiliateCoupon.store_affiliate_id == StoreAffiliate.id)
            .where(StoreAffiliateCoupon.coupon_id == coupon.id)
        )
        link = result.scalar_one_or_none()

        if link is None and coupon.store_affiliate_id:
            link = await self.db.get(StoreAffiliate, coupon.store_affiliate_id)

        if link is None:
            return None
        return coupon, link
