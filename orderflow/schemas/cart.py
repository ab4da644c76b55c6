"""Cart schemas."""
from decimal import Decimal
from typing import List
from uuid import UUID

from pydantic import Field

from orderflow.schemas.base import BaseCreateSchema, BaseResponseSchema


class CartItemAdd(BaseCreateSchema):
    customer_id: UUID
    variant_id: UUID
    quantity: int = Field(1, ge=1)


class CartItemResponse(BaseResponseSchema):
    id: UUID
    variant_id: UUID
    quantity: int
    unit_price: Decimal
    applicable_price: Decimal


class CartResponse(BaseResponseSchema):
    id: UUID
    customer_id: UUID
    items: List[CartItemResponse]
