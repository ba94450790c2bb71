"""Pydantic schemas for order events sent by the order subsystem."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from affiliate_engine.schemas.base import BaseCreateSchema
from affiliate_engine.schemas.earning import EarningResponse


class OrderEventItem(BaseModel):
    """Order line as sent in an order event"""
    product_id: str = Field(..., min_length=1, max_length=64)
    product_name: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=200)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    line_discount: Decimal = Field(default=Decimal("0"), ge=0, description="Coupon discount applied to this line")


class OrderEvent(BaseCreateSchema):
    """
    Order created/updated or status changed.

    An event carrying `items` is treated as the full order (recorded or
    recomputed); an event without items only changes the status.
    """
    order_id: UUID
    store_id: UUID
    order_number: Optional[str] = Field(None, max_length=50)
    status: str = Field(..., min_length=1, max_length=50, description="Order status; pt-BR aliases accepted")
    created_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    coupon_code: Optional[str] = Field(None, max_length=50)
    total_amount: Optional[Decimal] = Field(None, ge=0, description="Order value after coupon discount")
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    items: Optional[List[OrderEventItem]] = None


class OrderEventResult(BaseModel):
    """Outcome of ingesting an order event"""
    order_id: UUID
    status: str
    attributed: bool
    earnings: List[EarningResponse] = []
