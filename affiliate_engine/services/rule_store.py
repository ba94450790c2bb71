"""
Commission Rule Store.

Holds product- and category-level commission overrides per store affiliate
and the affiliate's default commission. Rules are validated on creation;
creating a rule for a target that already has one replaces it.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.core.enum_utils import get_enum_value, to_enum
from affiliate_engine.core.exceptions import NotFound, ValidationError
from affiliate_engine.db_types import ZERO, to_money
from affiliate_engine.models.affiliate import CommissionType, StoreAffiliate
from affiliate_engine.models.commission import CommissionRule, RuleTarget
from affiliate_engine.services.commission_resolver import (
    RuleSnapshot,
    normalize_category,
    rule_snapshot_from_model,
)


logger = logging.getLogger(__name__)

MAX_PERCENTAGE = Decimal("100")


def validate_commission(commission_type, commission_value) -> Tuple[str, Decimal]:
    """
    Validate a commission type/value pair.

    Returns the normalized UPPERCASE type and the value in cents.
    Raises ValidationError for unknown types, negative values and
    percentages above 100.
    """
    kind = to_enum(commission_type, CommissionType)
    if kind is None:
        raise ValidationError(
            f"Invalid commission type: {get_enum_value(commission_type)}",
            {"commission_type": get_enum_value(commission_type)}
        )

    try:
        value = Decimal(str(commission_value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Commission value must be a number", {"commission_value": commission_value})

    if not value.is_finite():
        raise ValidationError("Commission value must be a number", {"commission_value": str(value)})
    if value < ZERO:
        raise ValidationError("Commission value cannot be negative", {"commission_value": str(value)})
    if kind == CommissionType.PERCENTAGE and value > MAX_PERCENTAGE:
        raise ValidationError(
            "Percentage commission cannot exceed 100",
            {"commission_value": str(value)}
        )

    return kind.value, to_money(value)


class RuleStore:
    """Service for per-affiliate commission rules."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_link(self, store_affiliate_id: uuid.UUID) -> StoreAffiliate:
        link = await self.db.get(StoreAffiliate, store_affiliate_id)
        if not link:
            raise NotFound("Store affiliate not found", {"store_affiliate_id": str(store_affiliate_id)})
        return link

    async def create_rule(
        self,
        store_affiliate_id: uuid.UUID,
        applies_to,
        target: Optional[str],
        commission_type,
        commission_value,
    ) -> CommissionRule:
        """
        Create a product or category rule.

        Any active rule for the same (link, target) is deactivated first, so
        the newest rule replaces it.
        """
        await self._get_link(store_affiliate_id)

        target_kind = to_enum(applies_to, RuleTarget)
        if target_kind is None:
            raise ValidationError(
                f"Invalid rule target: {get_enum_value(applies_to)}",
                {"applies_to": get_enum_value(applies_to)}
            )

        raw_target = (target or "").strip()
        if not raw_target:
            raise ValidationError(
                "Product id is required" if target_kind == RuleTarget.PRODUCT else "Category name is required",
                {"applies_to": target_kind.value}
            )

        type_value, value = validate_commission(commission_type, commission_value)

        if target_kind == RuleTarget.PRODUCT:
            target_key = raw_target
            product_id, category_name = raw_target, None
        else:
            target_key = normalize_category(raw_target)
            product_id, category_name = None, raw_target

        # Replace, never accumulate
        existing_result = await self.db.execute(
            select(CommissionRule)
            .where(
                CommissionRule.store_affiliate_id == store_affiliate_id,
                CommissionRule.applies_to == target_kind.value,
                CommissionRule.target_key == target_key,
                CommissionRule.is_active == True,  # noqa: E712
            )
            .with_for_update()
        )
        now = datetime.now(timezone.utc)
        for previous in existing_result.scalars().all():
            previous.is_active = False
            previous.deactivated_at = now
            logger.info(f"Replacing commission rule {previous.id} for {target_kind.value} '{target_key}'")
        await self.db.flush()

        rule = CommissionRule(
            id=uuid.uuid4(),
            store_affiliate_id=store_affiliate_id,
            applies_to=target_kind.value,
            product_id=product_id,
            category_name=category_name,
            target_key=target_key,
            commission_type=type_value,
            commission_value=value,
            is_active=True,
        )
        self.db.add(rule)
        await self.db.commit()
        await self.db.refresh(rule)

        logger.info(
            f"Commission rule created: link={store_affiliate_id} {target_kind.value}='{target_key}' "
            f"{type_value}={value}"
        )
        return rule

    async def list_rules(
        self,
        store_affiliate_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> List[CommissionRule]:
        query = select(CommissionRule).where(CommissionRule.store_affiliate_id == store_affiliate_id)
        if not include_inactive:
            query = query.where(CommissionRule.is_active == True)  # noqa: E712
        query = query.order_by(CommissionRule.applies_to, CommissionRule.created_at)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_rule(self, rule_id: uuid.UUID) -> CommissionRule:
        rule = await self.db.get(CommissionRule, rule_id)
        if not rule:
            raise NotFound("Commission rule not found", {"rule_id": str(rule_id)})
        return rule

    async def deactivate_rule(self, rule_id: uuid.UUID) -> CommissionRule:
        rule = await self.get_rule(rule_id)
        if rule.is_active:
            rule.is_active = False
            rule.deactivated_at = datetime.now(timezone.utc)
            await self.db.commit()
            await self.db.refresh(rule)
            logger.info(f"Commission rule {rule_id} deactivated")
        return rule

    async def set_default_commission(
        self,
        store_affiliate_id: uuid.UUID,
        commission_type,
        commission_value,
        enabled: Optional[bool] = None,
    ) -> StoreAffiliate:
        """Update the link's default commission. `enabled=None` keeps the current flag."""
        link = await self._get_link(store_affiliate_id)
        type_value, value = validate_commission(commission_type, commission_value)

        link.default_commission_type = type_value
        link.default_commission_value = value
        if enabled is not None:
            link.commission_enabled = enabled

        await self.db.commit()
        await self.db.refresh(link)

        logger.info(
            f"Default commission for link {store_affiliate_id} set to {type_value}={value} "
            f"(enabled={link.commission_enabled})"
        )
        return link

    async def get_rule_snapshots(self, store_affiliate_id: uuid.UUID) -> List[RuleSnapshot]:
        """Active rules of a link as resolver snapshots."""
        rules = await self.list_rules(store_affiliate_id)
        return [rule_snapshot_from_model(rule) for rule in rules]
