"""
Stock Reservation Service.

Records stock committed to orders by bumping Inventory.reserved_qty:
1. reserve_from_warehouse() - primary path against the selected warehouse
2. emergency_reserve() - best-effort path against any row for the variant

No sufficiency check happens here; the warehouse selector already made
that call. Each item is committed on its own, so a failure on item N
leaves items 1..N-1 reserved.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.core.exceptions import ReservationFailure
from orderflow.models.inventory import Inventory

logger = logging.getLogger(__name__)


@dataclass
class EmergencyReservationResult:
    reserved: List[Inventory] = field(default_factory=list)
    missing_variants: List[uuid.UUID] = field(default_factory=list)
    failed_variants: List[uuid.UUID] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_variants and not self.failed_variants


class InventoryReservationManager:
    """Atomic reserved_qty increments on (variant, warehouse) inventory rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find_row_id(self, variant_id: uuid.UUID, location_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.db.execute(
            select(Inventory.id).where(
                Inventory.variant_id == variant_id,
                Inventory.location_id == location_id,
            )
        )
        return result.scalar_one_or_none()

    async def ensure_inventory_row(self, variant_id: uuid.UUID, location_id: uuid.UUID) -> uuid.UUID:
        """
        Return the id of the (variant, warehouse) row, creating an empty one
        when absent. A concurrent insert of the same row surfaces as an
        IntegrityError and is resolved by reading the winner's row.
        """
        row_id = await self._find_row_id(variant_id, location_id)
        if row_id is not None:
            return row_id

        row = Inventory(
            variant_id=variant_id,
            location_id=location_id,
            quantity=0,
            reserved_qty=0,
            low_stock_alert=settings.DEFAULT_LOW_STOCK_ALERT,
        )
        self.db.add(row)
        try:
            await self.db.commit()
            logger.info(f"Created inventory row for variant {variant_id} at warehouse {location_id}")
            return row.id
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Inventory row for variant {variant_id} at {location_id} created concurrently, re-reading")

        row_id = await self._find_row_id(variant_id, location_id)
        if row_id is None:
            raise ReservationFailure(
                f"Inventory row for variant {variant_id} at warehouse {location_id} could not be created"
            )
        return row_id

    async def increment_reserved(self, inventory_id: uuid.UUID, quantity: int) -> Inventory:
        """Single UPDATE ... SET reserved_qty = reserved_qty + n, committed immediately."""
        await self.db.execute(
            update(Inventory)
            .where(Inventory.id == inventory_id)
            .values(
                reserved_qty=Inventory.reserved_qty + quantity,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        result = await self.db.execute(
            select(Inventory)
            .where(Inventory.id == inventory_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def reserve_from_warehouse(self, warehouse_id: uuid.UUID, items: Sequence[Any]) -> List[Inventory]:
        """
        Reserve every item at one warehouse.

        Args:
            warehouse_id: Selected warehouse (Location.id)
            items: Objects with variant_id and quantity

        Returns:
            Updated inventory rows, in item order

        Raises:
            ReservationFailure: on the first item that cannot be reserved
        """
        reserved: List[Inventory] = []
        for item in items:
            try:
                row_id = await self.ensure_inventory_row(item.variant_id, warehouse_id)
                row = await self.increment_reserved(row_id, int(item.quantity))
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Reservation failed for variant {item.variant_id} at {warehouse_id}: {e}")
                raise ReservationFailure(
                    f"Failed to reserve variant {item.variant_id} at warehouse {warehouse_id}",
                    details={"reserved_count": len(reserved)},
                ) from e

            logger.info(
                f"Reserved {item.quantity} of variant {item.variant_id} at warehouse {warehouse_id} "
                f"(reserved now {row.reserved_qty}, on hand {row.quantity})"
            )
            reserved.append(row)
        return reserved

    async def emergency_reserve(self, items: Sequence[Any]) -> EmergencyReservationResult:
        """
        Increment any existing row for each variant, ignoring warehouse.

        Never raises: missing rows and storage failures are logged and
        reported in the result.
        """
        outcome = EmergencyReservationResult()
        for item in items:
            try:
                result = await self.db.execute(
                    select(Inventory.id)
                    .where(Inventory.variant_id == item.variant_id)
                    .order_by(Inventory.id)
                    .limit(1)
                )
                row_id = result.scalar_one_or_none()
                if row_id is None:
                    logger.error(f"Emergency reservation: no inventory row for variant {item.variant_id}")
                    outcome.missing_variants.append(item.variant_id)
                    continue

                row = await self.increment_reserved(row_id, int(item.quantity))
                outcome.reserved.append(row)
                logger.warning(
                    f"Emergency reservation: {item.quantity} of variant {item.variant_id} "
                    f"at warehouse {row.location_id}"
                )
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Emergency reservation failed for variant {item.variant_id}: {e}")
                outcome.failed_variants.append(item.variant_id)
        return outcome
