"""
Commission rule API Endpoints

- Product / category rules per store affiliate
- Default commission
- Resolution preview (what an order would earn, without recording it)
"""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from affiliate_engine.api.deps import DB
from affiliate_engine.core.exceptions import AffiliateEngineError
from affiliate_engine.schemas.affiliate import DefaultCommissionUpdate, StoreAffiliateResponse
from affiliate_engine.schemas.commission import (
    CommissionRuleCreate,
    CommissionRuleResponse,
    ItemCommissionResponse,
    ResolutionPreviewRequest,
    ResolutionPreviewResponse,
)
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.commission_resolver import (
    ItemSnapshot,
    default_from_link,
    resolve_order_items,
    scope_from_coupon,
    total_commission,
)
from affiliate_engine.services.coupon_service import CouponService
from affiliate_engine.services.rule_store import RuleStore


router = APIRouter()


@router.get("/store-affiliates/{store_affiliate_id}/rules", response_model=list[CommissionRuleResponse])
async def list_rules(
    store_affiliate_id: UUID,
    db: DB,
    include_inactive: bool = Query(False),
):
    return await RuleStore(db).list_rules(store_affiliate_id, include_inactive=include_inactive)


@router.post(
    "/store-affiliates/{store_affiliate_id}/rules",
    response_model=CommissionRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule(store_affiliate_id: UUID, data: CommissionRuleCreate, db: DB):
    """
    Create a product or category rule.

    An active rule for the same target is replaced.
    """
    try:
        return await RuleStore(db).create_rule(
            store_affiliate_id=store_affiliate_id,
            applies_to=data.applies_to,
            target=data.target,
            commission_type=data.commission_type,
            commission_value=data.commission_value,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/commission-rules/{rule_id}", response_model=CommissionRuleResponse)
async def deactivate_rule(rule_id: UUID, db: DB):
    try:
        return await RuleStore(db).deactivate_rule(rule_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/store-affiliates/{store_affiliate_id}/default-commission", response_model=StoreAffiliateResponse)
async def set_default_commission(store_affiliate_id: UUID, data: DefaultCommissionUpdate, db: DB):
    try:
        return await RuleStore(db).set_default_commission(
            store_affiliate_id,
            data.commission_type,
            data.commission_value,
            enabled=data.commission_enabled,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/store-affiliates/{store_affiliate_id}/resolve-preview",
    response_model=ResolutionPreviewResponse,
)
async def preview_resolution(store_affiliate_id: UUID, data: ResolutionPreviewRequest, db: DB):
    """Resolve commissions for the given items with the link's current rules."""
    try:
        link = await AffiliateService(db).get_store_affiliate(store_affiliate_id)
        coupon = await CouponService(db).get_coupon(data.coupon_id) if data.coupon_id else None
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    rules = await RuleStore(db).get_rule_snapshots(store_affiliate_id)
    breakdown = resolve_order_items(
        [
            ItemSnapshot(
                product_id=item.product_id,
                product_name=item.product_name,
                category=item.category,
                quantity=item.quantity,
                unit_price=Decimal(item.unit_price),
                line_discount=Decimal(item.line_discount),
            )
            for item in data.items
        ],
        rules,
        default_from_link(link),
        scope_from_coupon(coupon),
    )

    return ResolutionPreviewResponse(
        store_affiliate_id=store_affiliate_id,
        items=[
            ItemCommissionResponse(
                product_id=line.item.product_id,
                product_name=line.item.product_name,
                category=line.item.category,
                quantity=line.item.quantity,
                item_value_with_discount=line.value_after_discount,
                is_coupon_eligible=line.is_eligible,
                commission_source=line.resolution.source,
                commission_type=line.resolution.commission_type,
                commission_value=line.resolution.commission_value,
                commission_amount=line.amount,
            )
            for line in breakdown
        ],
        total_commission=total_commission(breakdown),
    )
