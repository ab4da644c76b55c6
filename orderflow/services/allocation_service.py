"""
Warehouse Selection Service.

Picks the warehouse that should fulfill an order:
1. Geolocate the destination once
2. Geolocate each active warehouse and measure the haversine distance
3. Check every required item against that warehouse's inventory rows
4. Nearest stock-sufficient warehouse wins
5. Otherwise the nearest warehouse overall, flagged stock_available=False
   with the per-item shortfall map

A degraded selection is a result, not an error. Only "no active
warehouse at all" raises.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orderflow.core.exceptions import NoWarehouseAvailable
from orderflow.models.warehouse import Location
from orderflow.services.geo_service import (
    Coordinates,
    calculate_distance,
    get_location_coordinates,
)

logger = logging.getLogger(__name__)


@dataclass
class RequiredItem:
    variant_id: uuid.UUID
    quantity: int


@dataclass
class StockDetail:
    available: int
    required: int
    sell_when_out_of_stock: bool = False

    @property
    def sufficient(self) -> bool:
        return self.available >= self.required or self.sell_when_out_of_stock


@dataclass
class WarehouseSelection:
    warehouse: Location
    distance_km: float
    stock_available: bool
    stock_details: Dict[uuid.UUID, StockDetail] = field(default_factory=dict)
    coordinates: Optional[Coordinates] = None

    @property
    def shortfall(self) -> Dict[uuid.UUID, StockDetail]:
        return {vid: d for vid, d in self.stock_details.items() if not d.sufficient}


def merge_required_items(items: Iterable[Any]) -> List[RequiredItem]:
    """Collapse repeated variants into one requirement each, keeping first-seen order."""
    quantities: Dict[uuid.UUID, int] = {}
    for item in items:
        quantities[item.variant_id] = quantities.get(item.variant_id, 0) + int(item.quantity)
    return [RequiredItem(variant_id=vid, quantity=qty) for vid, qty in quantities.items()]


def check_warehouse_stock(warehouse: Location, items: Sequence[RequiredItem]) -> Dict[uuid.UUID, StockDetail]:
    """Availability of every required item at one warehouse. A missing row means zero."""
    rows = {inv.variant_id: inv for inv in (warehouse.inventory or [])}
    details: Dict[uuid.UUID, StockDetail] = {}
    for item in items:
        row = rows.get(item.variant_id)
        details[item.variant_id] = StockDetail(
            available=row.available if row is not None else 0,
            required=item.quantity,
            sell_when_out_of_stock=bool(row.sell_when_out_of_stock) if row is not None else False,
        )
    return details


def select_warehouse(
    destination: Coordinates,
    warehouses: Sequence[Location],
    items: Sequence[Any],
) -> WarehouseSelection:
    """
    Choose among already-loaded warehouses (inventory eagerly loaded).

    Ties in distance are broken by warehouse name, then id, so the answer
    never depends on query order.
    """
    if not warehouses:
        raise NoWarehouseAvailable("No active warehouses found")

    required = merge_required_items(items)
    candidates: List[WarehouseSelection] = []

    for warehouse in warehouses:
        coords = get_location_coordinates(warehouse.city, warehouse.state, warehouse.country)
        details = check_warehouse_stock(warehouse, required)
        candidates.append(
            WarehouseSelection(
                warehouse=warehouse,
                distance_km=calculate_distance(destination, coords),
                stock_available=all(d.sufficient for d in details.values()),
                stock_details=details,
                coordinates=coords,
            )
        )

    candidates.sort(key=lambda c: (c.distance_km, c.warehouse.name or "", str(c.warehouse.id)))

    for candidate in candidates:
        if candidate.stock_available:
            return candidate

    return candidates[0]


class WarehouseSelector:
    """Loads active warehouses and runs the selection against them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active_warehouses(self) -> List[Location]:
        result = await self.db.execute(
            select(Location)
            .where(Location.is_active == True)  # noqa: E712
            .options(selectinload(Location.inventory))
            .order_by(Location.name, Location.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def ensure_active_warehouses(self) -> int:
        """Raise NoWarehouseAvailable unless at least one active warehouse exists."""
        result = await self.db.execute(
            select(func.count(Location.id)).where(Location.is_active == True)  # noqa: E712
        )
        count = result.scalar() or 0
        if count == 0:
            raise NoWarehouseAvailable("No active warehouses found")
        return count

    async def find_optimal_warehouse(
        self,
        city: Optional[str],
        state: Optional[str],
        country: Optional[str],
        items: Sequence[Any],
    ) -> WarehouseSelection:
        """
        Select the fulfilling warehouse for a destination.

        Args:
            city, state, country: Destination (only city refines the lookup)
            items: Objects with variant_id and quantity

        Returns:
            WarehouseSelection; stock_available=False marks a degraded pick
        """
        warehouses = await self.get_active_warehouses()
        if not warehouses:
            raise NoWarehouseAvailable("No active warehouses found")

        destination = get_location_coordinates(city, state, country)
        selection = select_warehouse(destination, warehouses, items)

        if selection.stock_available:
            logger.info(
                f"Selected warehouse {selection.warehouse.name} "
                f"({selection.distance_km:.1f} km) with sufficient stock"
            )
        else:
            shortfall = {str(k): (d.available, d.required) for k, d in selection.shortfall.items()}
            logger.warning(
                f"No warehouse has sufficient stock; using nearest {selection.warehouse.name} "
                f"({selection.distance_km:.1f} km), shortfall (available, required): {shortfall}"
            )
        return selection
