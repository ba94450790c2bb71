"""Commission rule storage and validation."""
import uuid
from decimal import Decimal

import pytest

from affiliate_engine.core.exceptions import NotFound, ValidationError
from affiliate_engine.services.commission_resolver import CategoryTarget, Fixed, Percentage, ProductTarget
from affiliate_engine.services.rule_store import RuleStore, validate_commission


class TestValidateCommission:
    def test_normalizes_type_and_value(self):
        assert validate_commission("percentage", "12.345") == ("PERCENTAGE", Decimal("12.35"))

    @pytest.mark.parametrize("commission_type, value", [
        ("PERCENTAGE", "-1"),
        ("PERCENTAGE", "100.01"),
        ("FIXED", "abc"),
        ("TIERED", "5"),
    ])
    def test_rejects(self, commission_type, value):
        with pytest.raises(ValidationError):
            validate_commission(commission_type, value)

    def test_fixed_above_hundred_is_allowed(self):
        assert validate_commission("FIXED", 150) == ("FIXED", Decimal("150.00"))


class TestRuleStore:
    async def test_create_category_rule(self, db, link):
        rule = await RuleStore(db).create_rule(link.id, "CATEGORY", " Bebidas ", "PERCENTAGE", "5")

        assert rule.is_active is True
        assert rule.target_key == "bebidas"
        assert rule.category_name == "Bebidas"
        assert rule.product_id is None

    async def test_new_rule_replaces_active_rule_for_same_target(self, db, link):
        store = RuleStore(db)
        first = await store.create_rule(link.id, "CATEGORY", "Bebidas", "PERCENTAGE", "5")
        second = await store.create_rule(link.id, "category", "BEBIDAS", "FIXED", "1")

        active = await store.list_rules(link.id)
        everything = await store.list_rules(link.id, include_inactive=True)

        assert [r.id for r in active] == [second.id]
        assert len(everything) == 2
        await db.refresh(first)
        assert first.is_active is False
        assert first.deactivated_at is not None

    async def test_product_and_category_rules_coexist(self, db, link):
        store = RuleStore(db)
        await store.create_rule(link.id, "PRODUCT", "X", "FIXED", "2")
        await store.create_rule(link.id, "CATEGORY", "Bebidas", "PERCENTAGE", "5")

        snapshots = await store.get_rule_snapshots(link.id)

        targets = {type(s.target): s for s in snapshots}
        assert targets[ProductTarget].target == ProductTarget("X")
        assert targets[ProductTarget].kind == Fixed(Decimal("2.00"))
        assert targets[CategoryTarget].kind == Percentage(Decimal("5.00"))

    async def test_deactivated_rule_is_not_resolved(self, db, link):
        store = RuleStore(db)
        rule = await store.create_rule(link.id, "PRODUCT", "X", "FIXED", "2")

        await store.deactivate_rule(rule.id)

        assert await store.get_rule_snapshots(link.id) == []

    async def test_blank_target_rejected(self, db, link):
        with pytest.raises(ValidationError):
            await RuleStore(db).create_rule(link.id, "PRODUCT", "   ", "FIXED", "2")

    async def test_invalid_target_kind_rejected(self, db, link):
        with pytest.raises(ValidationError):
            await RuleStore(db).create_rule(link.id, "BRAND", "Acme", "FIXED", "2")

    async def test_unknown_link(self, db):
        with pytest.raises(NotFound):
            await RuleStore(db).create_rule(uuid.uuid4(), "PRODUCT", "X", "FIXED", "2")

    async def test_set_default_commission(self, db, link):
        updated = await RuleStore(db).set_default_commission(link.id, "fixed", "3.5", enabled=False)

        assert updated.default_commission_type == "FIXED"
        assert updated.default_commission_value == Decimal("3.50")
        assert updated.commission_enabled is False

    async def test_set_default_commission_keeps_flag(self, db, link):
        updated = await RuleStore(db).set_default_commission(link.id, "PERCENTAGE", "15")

        assert updated.commission_enabled is True
