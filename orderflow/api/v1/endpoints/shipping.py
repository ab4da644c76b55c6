"""
Shipping API endpoints.

Handles:
- Carrier rate quote from a given warehouse
- Checkout quote: optimal warehouse selection plus carrier rates
- Flat-rate shipping tiers
"""

import logging
from dataclasses import asdict
from typing import List

from fastapi import APIRouter

from orderflow.api.deps import DB, Quoter
from orderflow.schemas.shipping import (
    CheckoutRateRequest,
    CheckoutRateResponse,
    RateQuoteRequest,
    RateQuoteResponse,
    ShippingTierResponse,
    StockDetailResponse,
)
from orderflow.services.allocation_service import RequiredItem
from orderflow.services.shipping_service import ShippingService
from orderflow.services.shipstation_service import RateQuote

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Shipping"])


def _quote_response(quote: RateQuote) -> RateQuoteResponse:
    return RateQuoteResponse(
        best=asdict(quote.best),
        rates=[asdict(rate) for rate in quote.rates],
        distance_km=quote.distance_km,
        warehouse_name=quote.warehouse_name,
        warehouse_location=quote.warehouse_location,
    )


@router.post(
    "/rates",
    response_model=RateQuoteResponse,
    summary="Quote carrier rates from a warehouse",
    description="Live ShipStation rates from the given warehouse to a destination, cheapest first.",
)
async def get_rates(
    data: RateQuoteRequest,
    db: DB,
    quoter: Quoter,
):
    service = ShippingService(db, quoter=quoter)
    quote = await service.quote_from_warehouse(
        data.warehouse_id,
        data.destination,
        weight_oz=data.weight_oz,
        dimensions=data.dimensions.model_dump() if data.dimensions else None,
        carrier_code=data.carrier_code,
    )
    return _quote_response(quote)


@router.post(
    "/checkout-rates",
    response_model=CheckoutRateResponse,
    summary="Quote shipping for a checkout",
    description=(
        "Pick the warehouse that should fulfill the items (nearest with full stock, "
        "else nearest overall) and quote carrier rates from it."
    ),
)
async def get_checkout_rates(
    data: CheckoutRateRequest,
    db: DB,
    quoter: Quoter,
):
    service = ShippingService(db, quoter=quoter)
    items = [RequiredItem(variant_id=item.variant_id, quantity=item.quantity) for item in data.items]
    result = await service.checkout_quote(
        data.destination,
        items,
        weight_oz=data.weight_oz,
        dimensions=data.dimensions.model_dump() if data.dimensions else None,
        carrier_code=data.carrier_code,
    )

    selection = result.selection
    return CheckoutRateResponse(
        warehouse_id=selection.warehouse.id,
        warehouse_name=selection.warehouse.name,
        distance_km=selection.distance_km,
        stock_available=selection.stock_available,
        stock_details={
            str(variant_id): StockDetailResponse(available=detail.available, required=detail.required)
            for variant_id, detail in selection.stock_details.items()
        },
        quote=_quote_response(result.quote),
    )


@router.get(
    "/tiers",
    response_model=List[ShippingTierResponse],
    summary="List active shipping tiers",
)
async def list_shipping_tiers(db: DB, quoter: Quoter):
    service = ShippingService(db, quoter=quoter)
    return await service.get_active_tiers()
