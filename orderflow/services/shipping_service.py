"""
Shipping Service.

Database-facing shipping operations:
1. Quote from a specific warehouse to a destination
2. Checkout quote: pick the fulfilling warehouse for the items, then quote
3. Active flat-rate shipping tiers for the storefront
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.exceptions import NotFoundError
from orderflow.models.product import Variant
from orderflow.models.shipping import ShippingTier
from orderflow.models.warehouse import Location
from orderflow.services.allocation_service import WarehouseSelection, WarehouseSelector
from orderflow.services.shipstation_service import RateQuote, RateQuoter

logger = logging.getLogger(__name__)


@dataclass
class CheckoutShippingQuote:
    selection: WarehouseSelection
    quote: RateQuote


class ShippingService:
    """Service for shipping rates and tiers."""

    def __init__(self, db: AsyncSession, quoter: Optional[RateQuoter] = None):
        self.db = db
        self.quoter = quoter or RateQuoter()
        self.selector = WarehouseSelector(db)

    async def get_active_tiers(self) -> List[ShippingTier]:
        result = await self.db.execute(
            select(ShippingTier)
            .where(ShippingTier.is_active == True)  # noqa: E712
            .order_by(ShippingTier.min_subtotal)
        )
        return list(result.scalars().all())

    async def get_warehouse(self, warehouse_id: uuid.UUID) -> Location:
        warehouse = await self.db.get(Location, warehouse_id)
        if not warehouse:
            raise NotFoundError("Warehouse not found")
        return warehouse

    async def estimate_weight_oz(self, items: Sequence[Any]) -> Optional[float]:
        """Total package weight from variant unit weights; None when nothing is known."""
        variant_ids = [item.variant_id for item in items]
        result = await self.db.execute(select(Variant).where(Variant.id.in_(variant_ids)))
        weights = {v.id: Decimal(str(v.weight_oz or 0)) for v in result.scalars().all()}
        total = sum((weights.get(item.variant_id, Decimal("0")) * item.quantity for item in items), Decimal("0"))
        return float(total) if total > 0 else None

    async def quote_from_warehouse(
        self,
        warehouse_id: uuid.UUID,
        destination: Any,
        weight_oz: Optional[float] = None,
        dimensions: Optional[Dict[str, float]] = None,
        carrier_code: Optional[str] = None,
    ) -> RateQuote:
        warehouse = await self.get_warehouse(warehouse_id)
        return await self.quoter.quote(warehouse, destination, weight_oz, dimensions, carrier_code)

    async def checkout_quote(
        self,
        destination: Any,
        items: Sequence[Any],
        weight_oz: Optional[float] = None,
        dimensions: Optional[Dict[str, float]] = None,
        carrier_code: Optional[str] = None,
    ) -> CheckoutShippingQuote:
        """
        Select the optimal warehouse for the destination and items, then
        quote shipping from it.

        Raises:
            NoWarehouseAvailable: no active warehouse
            RateQuoteError: carrier rate service failed
        """
        selection = await self.selector.find_optimal_warehouse(
            destination.city, destination.state, destination.country, items
        )
        if weight_oz is None:
            weight_oz = await self.estimate_weight_oz(items)

        quote = await self.quoter.quote(selection.warehouse, destination, weight_oz, dimensions, carrier_code)
        logger.info(
            f"Checkout quote from {selection.warehouse.name}: ${quote.best.amount} "
            f"({quote.best.carrier}), stock_available={selection.stock_available}"
        )
        return CheckoutShippingQuote(selection=selection, quote=quote)
