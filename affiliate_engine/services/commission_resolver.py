"""
Commission Resolver.

Pure functions deciding how much commission one order item generates for a
store affiliate. Nothing here touches the database: callers build the
snapshots (see the ``*_from_*`` helpers at the bottom) and the ledger
persists the result.

Precedence per item:
    1. Active product rule matching the item's product_id
    2. Active category rule matching the item's category (case-insensitive, trimmed)
    3. StoreAffiliate default, only when enabled and value > 0
    4. NONE (commission 0)

Items outside the attributing coupon's scope contribute zero whatever
rules exist.
"""
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from affiliate_engine.db_types import ZERO, to_money
from affiliate_engine.models.affiliate import CommissionType
from affiliate_engine.models.coupon import CouponScope
from affiliate_engine.models.commission import RuleTarget
from affiliate_engine.models.earning import CommissionSource


HUNDRED = Decimal("100")


# ==================== Tagged unions ====================

@dataclass(frozen=True)
class ProductTarget:
    """Rule applies to one product."""
    product_id: str


@dataclass(frozen=True)
class CategoryTarget:
    """Rule applies to every product of a category."""
    name: str

    @property
    def key(self) -> str:
        return normalize_category(self.name)


@dataclass(frozen=True)
class Percentage:
    """value% of the item value after discount."""
    value: Decimal


@dataclass(frozen=True)
class Fixed:
    """value per unit, capped at the item value after discount."""
    value: Decimal


Target = Union[ProductTarget, CategoryTarget]
CommissionKind = Union[Percentage, Fixed]


# ==================== Snapshots ====================

@dataclass(frozen=True)
class RuleSnapshot:
    """Active commission rule as seen by the resolver."""
    target: Target
    kind: CommissionKind
    rule_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class DefaultCommission:
    """StoreAffiliate default commission."""
    kind: CommissionKind
    enabled: bool = True


@dataclass(frozen=True)
class ItemSnapshot:
    """Order item fields the resolver reads."""
    product_id: str
    quantity: int
    unit_price: Decimal
    line_discount: Decimal = ZERO
    category: Optional[str] = None
    product_name: Optional[str] = None
    order_item_id: Optional[uuid.UUID] = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(Decimal(self.unit_price) * self.quantity)


@dataclass(frozen=True)
class ScopeSnapshot:
    """Which items the attributing coupon discounts."""
    scope: str = CouponScope.ALL.value
    category_names: Tuple[str, ...] = ()
    product_ids: Tuple[str, ...] = ()


ALL_ITEMS = ScopeSnapshot()


@dataclass(frozen=True)
class Resolution:
    """The single rule picked for an item."""
    source: str
    kind: Optional[CommissionKind] = None
    rule_id: Optional[uuid.UUID] = None

    @property
    def commission_type(self) -> str:
        if isinstance(self.kind, Fixed):
            return CommissionType.FIXED.value
        return CommissionType.PERCENTAGE.value

    @property
    def commission_value(self) -> Decimal:
        if self.kind is None:
            return ZERO
        return to_money(self.kind.value)


NO_COMMISSION = Resolution(source=CommissionSource.NONE.value)


@dataclass(frozen=True)
class ItemCommission:
    """Resolved commission for one item, persisted as an earning item row."""
    item: ItemSnapshot
    is_eligible: bool
    resolution: Resolution
    value_after_discount: Decimal
    amount: Decimal = field(default=ZERO)


# ==================== Core functions ====================

def normalize_category(name: Optional[str]) -> str:
    """Category names compare case-insensitively with surrounding spaces removed."""
    return (name or "").strip().lower()


def item_value_after_discount(item: ItemSnapshot) -> Decimal:
    """unit_price * quantity - line_discount, never below zero."""
    value = Decimal(item.unit_price) * item.quantity - Decimal(item.line_discount or ZERO)
    if value < ZERO:
        return ZERO
    return to_money(value)


def is_item_eligible(item: ItemSnapshot, scope: Optional[ScopeSnapshot] = None) -> bool:
    """
    Check whether the coupon scope covers the item.

    No scope (order attributed without a coupon restriction) means every
    item is eligible.
    """
    if scope is None or scope.scope == CouponScope.ALL.value:
        return True
    if scope.scope == CouponScope.PRODUCT.value:
        return item.product_id in scope.product_ids
    if scope.scope == CouponScope.CATEGORY.value:
        category = normalize_category(item.category)
        return category in {normalize_category(c) for c in scope.category_names}
    return False


def resolve(
    item: ItemSnapshot,
    rules: Sequence[RuleSnapshot],
    default: Optional[DefaultCommission],
) -> Resolution:
    """Pick the single applicable commission for an item."""
    for rule in rules:
        if isinstance(rule.target, ProductTarget) and rule.target.product_id == item.product_id:
            return Resolution(
                source=CommissionSource.SPECIFIC_PRODUCT.value,
                kind=rule.kind,
                rule_id=rule.rule_id,
            )

    category = normalize_category(item.category)
    if category:
        for rule in rules:
            if isinstance(rule.target, CategoryTarget) and rule.target.key == category:
                return Resolution(
                    source=CommissionSource.CATEGORY.value,
                    kind=rule.kind,
                    rule_id=rule.rule_id,
                )

    if default is not None and default.enabled and default.kind.value > ZERO:
        return Resolution(source=CommissionSource.DEFAULT.value, kind=default.kind)

    return NO_COMMISSION


def compute_item_commission(kind: Optional[CommissionKind], item: ItemSnapshot) -> Decimal:
    """Commission amount for an item under the given kind, in cents."""
    value_after = item_value_after_discount(item)
    if kind is None:
        return ZERO

    if isinstance(kind, Percentage):
        amount = Decimal(kind.value) / HUNDRED * value_after
    elif isinstance(kind, Fixed):
        amount = Decimal(kind.value) * item.quantity
    else:
        raise TypeError(f"Unknown commission kind: {kind!r}")

    # Commission never exceeds what the customer actually paid for the item
    return min(to_money(amount), value_after)


def resolve_item(
    item: ItemSnapshot,
    rules: Sequence[RuleSnapshot],
    default: Optional[DefaultCommission],
    scope: Optional[ScopeSnapshot] = None,
) -> ItemCommission:
    value_after = item_value_after_discount(item)
    if not is_item_eligible(item, scope):
        return ItemCommission(
            item=item,
            is_eligible=False,
            resolution=NO_COMMISSION,
            value_after_discount=value_after,
        )

    resolution = resolve(item, rules, default)
    return ItemCommission(
        item=item,
        is_eligible=True,
        resolution=resolution,
        value_after_discount=value_after,
        amount=compute_item_commission(resolution.kind, item),
    )


def resolve_order_items(
    items: Iterable[ItemSnapshot],
    rules: Sequence[RuleSnapshot],
    default: Optional[DefaultCommission],
    scope: Optional[ScopeSnapshot] = None,
) -> List[ItemCommission]:
    """Per-item breakdown for a whole order."""
    return [resolve_item(item, rules, default, scope) for item in items]


def total_commission(breakdown: Iterable[ItemCommission]) -> Decimal:
    return to_money(sum((line.amount for line in breakdown), ZERO))


# ==================== Snapshot builders ====================

def commission_kind(commission_type: str, value) -> CommissionKind:
    """Build a CommissionKind from the stored VARCHAR type and value."""
    normalized = str(commission_type or "").strip().upper()
    amount = Decimal(str(value if value is not None else 0))
    if normalized == CommissionType.PERCENTAGE.value:
        return Percentage(amount)
    if normalized == CommissionType.FIXED.value:
        return Fixed(amount)
    raise ValueError(f"Unknown commission type: {commission_type}")


def rule_snapshot_from_model(rule) -> RuleSnapshot:
    """Convert a CommissionRule row."""
    if rule.applies_to == RuleTarget.PRODUCT.value:
        target = ProductTarget(product_id=rule.product_id)
    else:
        target = CategoryTarget(name=rule.category_name or rule.target_key)
    return RuleSnapshot(
        target=target,
        kind=commission_kind(rule.commission_type, rule.commission_value),
        rule_id=rule.id,
    )


def default_from_link(store_affiliate) -> DefaultCommission:
    """Convert the default commission carried by a StoreAffiliate row."""
    return DefaultCommission(
        kind=commission_kind(
            store_affiliate.default_commission_type,
            store_affiliate.default_commission_value,
        ),
        enabled=bool(store_affiliate.commission_enabled),
    )


def scope_from_coupon(coupon) -> ScopeSnapshot:
    if coupon is None:
        return ALL_ITEMS
    return ScopeSnapshot(
        scope=(coupon.scope or CouponScope.ALL.value).upper(),
        category_names=tuple(coupon.category_names or ()),
        product_ids=tuple(str(p) for p in (coupon.product_ids or ())),
    )


def item_from_order_item(order_item) -> ItemSnapshot:
    return ItemSnapshot(
        product_id=str(order_item.product_id),
        quantity=order_item.quantity,
        unit_price=Decimal(order_item.unit_price),
        line_discount=Decimal(order_item.line_discount or ZERO),
        category=order_item.category,
        product_name=order_item.product_name,
        order_item_id=order_item.id,
    )
