"""
Order event webhook.

The order subsystem posts every order creation, edit and status change
here. Replays are safe: earnings are upserted by (order, store affiliate).
"""

from fastapi import APIRouter, HTTPException

from affiliate_engine.api.deps import DB
from affiliate_engine.core.exceptions import AffiliateEngineError
from affiliate_engine.schemas.earning import EarningResponse
from affiliate_engine.schemas.order import OrderEvent, OrderEventResult
from affiliate_engine.services.order_sync_service import OrderSyncService


router = APIRouter()


@router.post("", response_model=OrderEventResult)
async def ingest_order_event(event: OrderEvent, db: DB):
    try:
        result = await OrderSyncService(db).ingest_order_event(event)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return OrderEventResult(
        order_id=result.order.id,
        status=result.order.status,
        attributed=result.attributed,
        earnings=[EarningResponse.model_validate(e) for e in result.earnings],
    )
