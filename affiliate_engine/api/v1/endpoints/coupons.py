"""
Coupon API Endpoints

Store coupons and their affiliate attribution. Attribution becomes
permanent once an earning was recorded through the coupon.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from affiliate_engine.api.deps import DB
from affiliate_engine.core.exceptions import AffiliateEngineError
from affiliate_engine.schemas.affiliate import (
    AttributionResponse,
    CouponCreate,
    CouponLinkRequest,
    CouponLinkResponse,
    CouponResponse,
    StoreAffiliateResponse,
)
from affiliate_engine.services.coupon_service import CouponService


router = APIRouter()


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(data: CouponCreate, db: DB):
    try:
        return await CouponService(db).create_coupon(
            store_id=data.store_id,
            code=data.code,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            scope=data.scope,
            category_names=data.category_names,
            product_ids=data.product_ids,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/attribution", response_model=AttributionResponse)
async def find_attribution(
    db: DB,
    store_id: UUID,
    code: str = Query(..., min_length=1),
):
    """Which store affiliate a coupon code is attributed to."""
    attribution = await CouponService(db).find_attribution(store_id, code)
    if not attribution:
        raise HTTPException(status_code=404, detail="Coupon is not attributed to an affiliate")

    coupon, link = attribution
    return AttributionResponse(
        coupon=CouponResponse.model_validate(coupon),
        store_affiliate=StoreAffiliateResponse.model_validate(link),
    )


@router.get("/{coupon_id}", response_model=CouponResponse)
async def get_coupon(coupon_id: UUID, db: DB):
    try:
        return await CouponService(db).get_coupon(coupon_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{coupon_id}/affiliate", response_model=CouponLinkResponse)
async def link_coupon(coupon_id: UUID, data: CouponLinkRequest, db: DB):
    """Attribute the coupon to a store affiliate."""
    try:
        return await CouponService(db).link_coupon(coupon_id, data.store_affiliate_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{coupon_id}/affiliate", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_coupon(coupon_id: UUID, db: DB):
    try:
        await CouponService(db).unlink_coupon(coupon_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
