"""Coupon attribution to store affiliates."""
import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from affiliate_engine.core.exceptions import CouponAttributionLocked, NotFound, ValidationError
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.coupon_service import CouponService, normalize_code

from tests.conftest import pizza_items


@pytest_asyncio.fixture
async def second_link(db, store):
    service = AffiliateService(db)
    other = await service.register_affiliate(name="Joao Lima", email="joao@example.com", pix_key="joao@pix.com")
    invite = await service.invite_affiliate(store.id, other.id, "FIXED", Decimal("1"))
    return await service.accept_invite(invite.id)


class TestCreateCoupon:
    async def test_code_is_normalized(self, db, store):
        coupon = await CouponService(db).create_coupon(store_id=store.id, code=" verao10 ")

        assert coupon.code == "VERAO10"
        assert normalize_code(" verao10 ") == "VERAO10"

    async def test_duplicate_code_per_store(self, db, store):
        service = CouponService(db)
        await service.create_coupon(store_id=store.id, code="VERAO10")

        with pytest.raises(ValidationError):
            await service.create_coupon(store_id=store.id, code="verao10")

    async def test_percentage_above_hundred(self, db, store):
        with pytest.raises(ValidationError):
            await CouponService(db).create_coupon(store_id=store.id, code="X", discount_value=Decimal("120"))


class TestAttribution:
    async def test_find_by_code_any_case(self, db, store, link, coupon):
        attribution = await CouponService(db).find_attribution(store.id, "maria10")

        assert attribution is not None
        found_coupon, found_link = attribution
        assert found_coupon.id == coupon.id
        assert found_link.id == link.id

    async def test_unlinked_coupon_has_no_attribution(self, db, store):
        coupon = await CouponService(db).create_coupon(store_id=store.id, code="SEMDONO")

        assert await CouponService(db).find_attribution(store.id, coupon.code) is None
        assert await CouponService(db).find_attribution(store.id, "") is None

    async def test_legacy_link_is_used_without_junction(self, db, store, link):
        service = CouponService(db)
        coupon = await service.create_coupon(store_id=store.id, code="ANTIGO")
        coupon.store_affiliate_id = link.id
        await db.commit()

        _, found_link = await service.find_attribution(store.id, "ANTIGO")

        assert found_link.id == link.id

    async def test_relink_before_any_earning(self, db, store, coupon, second_link):
        service = CouponService(db)
        await service.link_coupon(coupon.id, second_link.id)

        _, found_link = await service.find_attribution(store.id, coupon.code)
        assert found_link.id == second_link.id

    async def test_relink_same_link_is_idempotent(self, db, link, coupon):
        row = await CouponService(db).link_coupon(coupon.id, link.id)

        assert row.store_affiliate_id == link.id

    async def test_attribution_locked_after_earning(self, db, coupon, second_link, ingest):
        await ingest(coupon_code="MARIA10", items=pizza_items())
        service = CouponService(db)

        with pytest.raises(CouponAttributionLocked):
            await service.link_coupon(coupon.id, second_link.id)
        with pytest.raises(CouponAttributionLocked):
            await service.unlink_coupon(coupon.id)

    async def test_unlink(self, db, store, coupon, link):
        service = CouponService(db)
        await service.unlink_coupon(coupon.id)

        assert await service.find_attribution(store.id, coupon.code) is None
        assert await service.list_coupon_links(link.id) == []

    async def test_link_across_stores_rejected(self, db, link):
        other_store = await AffiliateService(db).create_store("Outra Loja")
        coupon = await CouponService(db).create_coupon(store_id=other_store.id, code="FORA")

        with pytest.raises(ValidationError):
            await CouponService(db).link_coupon(coupon.id, link.id)

    async def test_unknown_coupon(self, db, link):
        with pytest.raises(NotFound):
            await CouponService(db).link_coupon(uuid.uuid4(), link.id)
