"""
Base Schema Classes for Pydantic Models

RULE: response schemas that read from ORM models inherit from
BaseResponseSchema; request bodies inherit from BaseCreateSchema.
"""
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas.

    Usage:
        class ShippingTierResponse(BaseResponseSchema):
            id: UUID
            shipping_rate: Decimal
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for request bodies.

    Accepts string UUIDs from clients and ignores unknown fields.
    """
    model_config = ConfigDict(
        extra='ignore',
    )
