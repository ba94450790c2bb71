"""Seed a demo store with one affiliate, rules and a linked coupon."""
import asyncio
from decimal import Decimal

from affiliate_engine.database import get_db_session, init_db
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.coupon_service import CouponService
from affiliate_engine.services.rule_store import RuleStore


async def seed():
    """Seed demo data."""
    await init_db()

    async with get_db_session() as db:
        print("Seeding data...")

        # 1. Store and affiliate
        affiliates = AffiliateService(db)
        store = await affiliates.create_store("Pizzaria Demo", maturity_days=7)
        maria = await affiliates.register_affiliate(
            name="Maria Souza",
            email="maria.demo@example.com",
            pix_key="maria.demo@pix.com",
        )
        print(f"Store: {store.id}")
        print(f"Affiliate: {maria.id}")

        # 2. Link with a 10% default commission
        link = await affiliates.invite_affiliate(store.id, maria.id, "PERCENTAGE", Decimal("10"))
        link = await affiliates.accept_invite(link.id)

        # 3. Rules
        print("Creating commission rules...")
        rules = RuleStore(db)
        await rules.create_rule(link.id, "CATEGORY", "Bebidas", "PERCENTAGE", Decimal("5"))
        await rules.create_rule(link.id, "PRODUCT", "PIZZA-GG", "FIXED", Decimal("4"))

        # 4. Coupon
        coupons = CouponService(db)
        coupon = await coupons.create_coupon(store_id=store.id, code="MARIA10", discount_value=Decimal("10"))
        await coupons.link_coupon(coupon.id, link.id)
        print(f"Coupon {coupon.code} linked to store affiliate {link.id}")

    print("Seeding complete!")


if __name__ == "__main__":
    asyncio.run(seed())
