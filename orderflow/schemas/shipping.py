"""Shipping rate and tier schemas."""
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from orderflow.schemas.base import BaseCreateSchema, BaseResponseSchema


class DestinationInput(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = "US"


class PackageDimensions(BaseModel):
    length: float = Field(10, gt=0)
    width: float = Field(8, gt=0)
    height: float = Field(4, gt=0)


class RequiredItemInput(BaseModel):
    variant_id: UUID
    quantity: int = Field(..., ge=1)


class RateQuoteRequest(BaseCreateSchema):
    """Quote from one warehouse to a destination."""
    warehouse_id: UUID
    destination: DestinationInput
    weight_oz: Optional[float] = Field(None, gt=0)
    dimensions: Optional[PackageDimensions] = None
    carrier_code: Optional[str] = None


class CheckoutRateRequest(BaseCreateSchema):
    """Pick the fulfilling warehouse for the items, then quote from it."""
    destination: DestinationInput
    items: List[RequiredItemInput] = Field(..., min_length=1)
    weight_oz: Optional[float] = Field(None, gt=0)
    dimensions: Optional[PackageDimensions] = None
    carrier_code: Optional[str] = None


class CarrierRateResponse(BaseResponseSchema):
    amount: Decimal
    carrier: str
    service: str
    estimated_days: Optional[int] = None
    rate_id: Optional[str] = None
    guaranteed: bool = False
    trackable: bool = True


class RateQuoteResponse(BaseModel):
    best: CarrierRateResponse
    rates: List[CarrierRateResponse]
    distance_km: float
    warehouse_name: str
    warehouse_location: str


class StockDetailResponse(BaseModel):
    available: int
    required: int


class CheckoutRateResponse(BaseModel):
    warehouse_id: UUID
    warehouse_name: str
    distance_km: float
    stock_available: bool
    stock_details: Dict[str, StockDetailResponse]
    quote: RateQuoteResponse


class ShippingTierResponse(BaseResponseSchema):
    id: UUID
    min_subtotal: Decimal
    max_subtotal: Optional[Decimal] = None
    shipping_rate: Decimal
    is_active: bool
