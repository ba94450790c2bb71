"""
Withdrawal API Endpoints

- Available balance
- Withdrawal requests (one PENDING per affiliate and store)
- Settlement (PAID / REJECTED) returning the payout instruction
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from affiliate_engine.api.deps import DB
from affiliate_engine.core.exceptions import AffiliateEngineError
from affiliate_engine.schemas.withdrawal import (
    AvailableBalanceResponse,
    PayoutInstructionResponse,
    SettlementResponse,
    WithdrawalCreate,
    WithdrawalList,
    WithdrawalResponse,
    WithdrawalSettle,
    WithdrawalStats,
)
from affiliate_engine.services.withdrawal_service import WithdrawalService


router = APIRouter()


@router.get("/balance", response_model=AvailableBalanceResponse)
async def get_available_balance(affiliate_id: UUID, store_id: UUID, db: DB):
    """Withdrawable amount for an affiliate in a store."""
    service = WithdrawalService(db)
    return AvailableBalanceResponse(
        affiliate_id=affiliate_id,
        store_id=store_id,
        available=await service.get_available_balance(affiliate_id, store_id),
        has_pending_request=await service.has_pending_request(affiliate_id, store_id),
    )


@router.get("/stats", response_model=WithdrawalStats)
async def get_withdrawal_stats(
    db: DB,
    store_id: Optional[UUID] = None,
    affiliate_id: Optional[UUID] = None,
):
    stats = await WithdrawalService(db).get_stats(store_id=store_id, affiliate_id=affiliate_id)
    return WithdrawalStats(**stats)


@router.post("", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(data: WithdrawalCreate, db: DB):
    """
    Request a withdrawal.

    Leave `amount` empty to withdraw the whole available balance.
    """
    try:
        return await WithdrawalService(db).request_withdrawal(
            affiliate_id=data.affiliate_id,
            store_id=data.store_id,
            amount=data.amount,
            pix_key=data.pix_key,
            notes=data.notes,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=WithdrawalList)
async def list_withdrawals(
    db: DB,
    store_id: Optional[UUID] = None,
    affiliate_id: Optional[UUID] = None,
    status: Optional[str] = Query(None, description="PENDING, PAID, REJECTED"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    requests, total = await WithdrawalService(db).list_requests(
        store_id=store_id,
        affiliate_id=affiliate_id,
        status=status,
        page=page,
        page_size=page_size,
    )
    return {
        "items": requests,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/{request_id}", response_model=WithdrawalResponse)
async def get_withdrawal(request_id: UUID, db: DB):
    try:
        return await WithdrawalService(db).get_request(request_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{request_id}/settle", response_model=SettlementResponse)
async def settle_withdrawal(request_id: UUID, data: WithdrawalSettle, db: DB):
    """Mark a pending request as PAID or REJECTED."""
    try:
        result = await WithdrawalService(db).settle(
            request_id,
            data.outcome,
            admin_notes=data.admin_notes,
            payment_proof=data.payment_proof,
        )
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    instruction = None
    if result.payout_instruction:
        p = result.payout_instruction
        instruction = PayoutInstructionResponse(
            withdrawal_request_id=p.withdrawal_request_id,
            affiliate_id=p.affiliate_id,
            store_id=p.store_id,
            amount=p.amount,
            pix_key=p.pix_key,
            currency=p.currency,
        )
    return SettlementResponse(
        request=WithdrawalResponse.model_validate(result.request),
        payout_instruction=instruction,
    )
