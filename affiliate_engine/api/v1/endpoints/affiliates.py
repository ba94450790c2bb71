"""
Affiliate administration API Endpoints

- Affiliate registration & profile
- Stores and maturity configuration
- Store invites (StoreAffiliate links)
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from affiliate_engine.api.deps import DB
from affiliate_engine.core.exceptions import AffiliateEngineError
from affiliate_engine.schemas.affiliate import (
    AffiliateCreate,
    AffiliateList,
    AffiliateResponse,
    AffiliateUpdate,
    CouponResponse,
    StoreAffiliateInvite,
    StoreAffiliateResponse,
    StoreCreate,
    StoreMaturityUpdate,
    StoreResponse,
)
from affiliate_engine.schemas.earning import RecalcAuditResponse, RecalcLogResponse, RecalcSummary
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.coupon_service import CouponService
from affiliate_engine.services.earning_ledger import EarningLedger


router = APIRouter()


# ==================== Affiliates ====================

@router.post("/affiliates", response_model=AffiliateResponse, status_code=status.HTTP_201_CREATED)
async def register_affiliate(data: AffiliateCreate, db: DB):
    """Register a new affiliate."""
    try:
        service = AffiliateService(db)
        return await service.register_affiliate(
            name=data.name,
            email=data.email,
            phone=data.phone,
            pix_key=data.pix_key,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/affiliates", response_model=AffiliateList)
async def list_affiliates(
    db: DB,
    status: Optional[str] = Query(None, description="ACTIVE, INACTIVE"),
    search: Optional[str] = Query(None, description="Search by name or email"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """List affiliates with pagination."""
    service = AffiliateService(db)
    affiliates, total = await service.list_affiliates(status=status, search=search, page=page, page_size=page_size)
    return {
        "items": affiliates,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/affiliates/{affiliate_id}", response_model=AffiliateResponse)
async def get_affiliate(affiliate_id: UUID, db: DB):
    try:
        return await AffiliateService(db).get_affiliate(affiliate_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/affiliates/{affiliate_id}", response_model=AffiliateResponse)
async def update_affiliate(affiliate_id: UUID, data: AffiliateUpdate, db: DB):
    """Update affiliate profile (name, email, phone, PIX key)."""
    try:
        service = AffiliateService(db)
        return await service.update_affiliate(affiliate_id, **data.model_dump(exclude_unset=True))
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/affiliates/{affiliate_id}", response_model=AffiliateResponse)
async def deactivate_affiliate(affiliate_id: UUID, db: DB):
    """Deactivate an affiliate. Affiliates are never hard-deleted."""
    try:
        return await AffiliateService(db).deactivate_affiliate(affiliate_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ==================== Stores ====================

@router.post("/stores", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
async def create_store(data: StoreCreate, db: DB):
    try:
        return await AffiliateService(db).create_store(
            name=data.name,
            maturity_days=data.affiliate_commission_maturity_days,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/stores/{store_id}", response_model=StoreResponse)
async def get_store(store_id: UUID, db: DB):
    try:
        return await AffiliateService(db).get_store(store_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/stores/{store_id}/maturity", response_model=StoreResponse)
async def set_store_maturity(store_id: UUID, data: StoreMaturityUpdate, db: DB):
    """
    Change the store's commission maturity period.

    Earnings already delivered keep the period applied when they were
    stamped.
    """
    try:
        return await AffiliateService(db).set_store_maturity_days(store_id, data.maturity_days)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/stores/{store_id}/commission-audit", response_model=RecalcAuditResponse)
async def get_commission_audit(
    store_id: UUID,
    db: DB,
    limit: int = Query(100, ge=1, le=500),
):
    """Commission recalculation logs and their summary for a store."""
    ledger = EarningLedger(db)
    logs = await ledger.list_recalc_logs(store_id, limit=limit)
    summary = await ledger.get_recalc_summary(store_id)
    return RecalcAuditResponse(
        logs=[RecalcLogResponse.model_validate(log) for log in logs],
        summary=RecalcSummary(**summary),
    )


# ==================== Store affiliates ====================

@router.post("/store-affiliates", response_model=StoreAffiliateResponse, status_code=status.HTTP_201_CREATED)
async def invite_affiliate(data: StoreAffiliateInvite, db: DB):
    """Invite an affiliate to a store. Re-inviting returns the existing link."""
    try:
        return await AffiliateService(db).invite_affiliate(
            store_id=data.store_id,
            affiliate_id=data.affiliate_id,
            default_commission_type=data.default_commission_type,
            default_commission_value=data.default_commission_value,
            commission_enabled=data.commission_enabled,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/store-affiliates", response_model=list[StoreAffiliateResponse])
async def list_store_affiliates(
    db: DB,
    store_id: Optional[UUID] = None,
    affiliate_id: Optional[UUID] = None,
    status: Optional[str] = Query(None, description="INVITED, ACTIVE, REJECTED"),
):
    return await AffiliateService(db).list_store_affiliates(
        store_id=store_id,
        affiliate_id=affiliate_id,
        status=status,
    )


@router.get("/store-affiliates/{store_affiliate_id}", response_model=StoreAffiliateResponse)
async def get_store_affiliate(store_affiliate_id: UUID, db: DB):
    try:
        return await AffiliateService(db).get_store_affiliate(store_affiliate_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/store-affiliates/{store_affiliate_id}/accept", response_model=StoreAffiliateResponse)
async def accept_invite(store_affiliate_id: UUID, db: DB):
    try:
        return await AffiliateService(db).accept_invite(store_affiliate_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/store-affiliates/{store_affiliate_id}/reject", response_model=StoreAffiliateResponse)
async def reject_invite(store_affiliate_id: UUID, db: DB):
    try:
        return await AffiliateService(db).reject_invite(store_affiliate_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/store-affiliates/{store_affiliate_id}/coupons", response_model=list[CouponResponse])
async def list_affiliate_coupons(store_affiliate_id: UUID, db: DB):
    """Coupons attributed to a store affiliate."""
    return await CouponService(db).list_coupon_links(store_affiliate_id)
