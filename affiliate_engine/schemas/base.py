"""
Base Schema Classes for Pydantic Models

RULE: every response schema that reads from an ORM row (`from_attributes=True`)
MUST inherit from BaseResponseSchema, and every request body from
BaseCreateSchema or BaseUpdateSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas read from SQLAlchemy models.

    Usage:
        class EarningResponse(BaseResponseSchema):
            id: UUID
            commission_amount: Decimal
            commission_available_at: Optional[datetime] = None
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Dashboards send string UUIDs and lowercase enum values; unknown fields
    are ignored so older clients keep working.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional by default for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
    )
