"""Commission resolution: precedence, scope eligibility and amount calculation."""
from decimal import Decimal

import pytest

from affiliate_engine.models.earning import CommissionSource
from affiliate_engine.services.commission_resolver import (
    ALL_ITEMS,
    CategoryTarget,
    DefaultCommission,
    Fixed,
    ItemSnapshot,
    Percentage,
    ProductTarget,
    RuleSnapshot,
    ScopeSnapshot,
    commission_kind,
    compute_item_commission,
    item_value_after_discount,
    resolve,
    resolve_item,
    resolve_order_items,
    total_commission,
)


DEFAULT_10 = DefaultCommission(kind=Percentage(Decimal("10")))
BEBIDAS_5 = RuleSnapshot(target=CategoryTarget("Bebidas"), kind=Percentage(Decimal("5")))
PRODUCT_X_FIXED_2 = RuleSnapshot(target=ProductTarget("X"), kind=Fixed(Decimal("2")))


def item(product_id="X", category="Bebidas", quantity=1, unit_price="10", line_discount="0"):
    return ItemSnapshot(
        product_id=product_id,
        category=category,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        line_discount=Decimal(line_discount),
    )


class TestPrecedence:
    def test_product_rule_beats_category_and_default(self):
        line = resolve_item(item(quantity=2), [BEBIDAS_5, PRODUCT_X_FIXED_2], DEFAULT_10)

        assert line.resolution.source == CommissionSource.SPECIFIC_PRODUCT.value
        assert line.amount == Decimal("4.00")

    def test_category_rule_beats_default(self):
        line = resolve_item(item(product_id="Y"), [BEBIDAS_5, PRODUCT_X_FIXED_2], DEFAULT_10)

        assert line.resolution.source == CommissionSource.CATEGORY.value
        assert line.amount == Decimal("0.50")

    def test_category_match_ignores_case_and_spaces(self):
        resolution = resolve(item(product_id="Y", category="  bebidas "), [BEBIDAS_5], None)

        assert resolution.source == CommissionSource.CATEGORY.value

    def test_default_applies_without_rules(self):
        line = resolve_item(item(product_id="Y", category="Pizzas"), [BEBIDAS_5], DEFAULT_10)

        assert line.resolution.source == CommissionSource.DEFAULT.value
        assert line.amount == Decimal("1.00")

    def test_disabled_default_gives_no_commission(self):
        default = DefaultCommission(kind=Percentage(Decimal("10")), enabled=False)
        line = resolve_item(item(category=None), [], default)

        assert line.resolution.source == CommissionSource.NONE.value
        assert line.amount == Decimal("0")

    def test_zero_default_gives_no_commission(self):
        default = DefaultCommission(kind=Fixed(Decimal("0")))

        assert resolve(item(), [], default).source == CommissionSource.NONE.value

    def test_rule_without_default(self):
        line = resolve_item(item(), [PRODUCT_X_FIXED_2], None)

        assert line.amount == Decimal("2.00")


class TestAmounts:
    def test_percentage_on_value_after_discount(self):
        amount = compute_item_commission(
            Percentage(Decimal("10")),
            item(quantity=2, unit_price="50", line_discount="20"),
        )

        assert amount == Decimal("8.00")

    def test_fixed_is_per_unit(self):
        amount = compute_item_commission(Fixed(Decimal("1.50")), item(quantity=3, unit_price="20"))

        assert amount == Decimal("4.50")

    def test_fixed_capped_at_item_value(self):
        amount = compute_item_commission(Fixed(Decimal("20")), item(unit_price="10", line_discount="3"))

        assert amount == Decimal("7.00")

    def test_discount_above_price_floors_at_zero(self):
        line = item(unit_price="10", line_discount="15")

        assert item_value_after_discount(line) == Decimal("0")
        assert compute_item_commission(Fixed(Decimal("2")), line) == Decimal("0")

    def test_rounds_half_up_to_cents(self):
        amount = compute_item_commission(Percentage(Decimal("12.5")), item(unit_price="0.99"))

        assert amount == Decimal("0.12")
        assert compute_item_commission(Percentage(Decimal("5")), item(unit_price="0.30")) == Decimal("0.02")

    def test_unknown_kind_raises(self):
        with pytest.raises(TypeError):
            compute_item_commission(object(), item())


class TestScope:
    def test_item_outside_coupon_scope_earns_nothing(self):
        scope = ScopeSnapshot(scope="CATEGORY", category_names=("Pizzas",))
        line = resolve_item(item(), [PRODUCT_X_FIXED_2], DEFAULT_10, scope)

        assert line.is_eligible is False
        assert line.resolution.source == CommissionSource.NONE.value
        assert line.amount == Decimal("0")

    def test_product_scope(self):
        scope = ScopeSnapshot(scope="PRODUCT", product_ids=("X",))

        assert resolve_item(item(), [], DEFAULT_10, scope).is_eligible is True
        assert resolve_item(item(product_id="Y"), [], DEFAULT_10, scope).is_eligible is False

    def test_order_total(self):
        breakdown = resolve_order_items(
            [
                item(quantity=2),
                item(product_id="Y", category="Pizzas", unit_price="40", line_discount="4"),
            ],
            [BEBIDAS_5, PRODUCT_X_FIXED_2],
            DEFAULT_10,
            ALL_ITEMS,
        )

        assert [line.amount for line in breakdown] == [Decimal("4.00"), Decimal("3.60")]
        assert total_commission(breakdown) == Decimal("7.60")


class TestCommissionKind:
    def test_builds_from_stored_values(self):
        assert commission_kind("percentage", "7.5") == Percentage(Decimal("7.5"))
        assert commission_kind("FIXED", 3) == Fixed(Decimal("3"))

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            commission_kind("TIERED", 1)
