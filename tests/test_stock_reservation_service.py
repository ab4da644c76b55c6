"""Tests for atomic stock reservation and the emergency fallback."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from orderflow.config import settings
from orderflow.core.exceptions import ReservationFailure
from orderflow.models.inventory import Inventory
from orderflow.services.allocation_service import RequiredItem
from orderflow.services.stock_reservation_service import InventoryReservationManager


async def inventory_rows(session_factory, variant_id):
    async with session_factory() as session:
        result = await session.execute(
            select(Inventory).where(Inventory.variant_id == variant_id).order_by(Inventory.id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
class TestReserveFromWarehouse:
    async def test_increments_reserved_qty(self, db, seed, session_factory):
        variant = await seed.variant("SKU-1")
        warehouse = await seed.warehouse("NY DC", "New York", "NY")
        await seed.stock(variant, warehouse, quantity=10, reserved=1)

        rows = await InventoryReservationManager(db).reserve_from_warehouse(
            warehouse.id, [RequiredItem(variant.id, 3)]
        )

        assert rows[0].reserved_qty == 4
        stored = await inventory_rows(session_factory, variant.id)
        assert stored[0].reserved_qty == 4
        assert stored[0].quantity == 10

    async def test_creates_missing_row(self, db, seed, session_factory):
        variant = await seed.variant("SKU-1")
        warehouse = await seed.warehouse("NY DC", "New York", "NY")

        await InventoryReservationManager(db).reserve_from_warehouse(warehouse.id, [RequiredItem(variant.id, 2)])

        stored = await inventory_rows(session_factory, variant.id)
        assert len(stored) == 1
        assert stored[0].quantity == 0
        assert stored[0].reserved_qty == 2
        assert stored[0].low_stock_alert == settings.DEFAULT_LOW_STOCK_ALERT

    async def test_reserved_may_exceed_on_hand(self, db, seed, session_factory):
        variant = await seed.variant("SKU-1")
        warehouse = await seed.warehouse("NY DC", "New York", "NY")
        await seed.stock(variant, warehouse, quantity=1, oversell=True)

        await InventoryReservationManager(db).reserve_from_warehouse(warehouse.id, [RequiredItem(variant.id, 5)])

        stored = await inventory_rows(session_factory, variant.id)
        assert stored[0].reserved_qty == 5
        assert stored[0].available == 0

    async def test_concurrent_reservations_are_not_lost(self, seed, session_factory):
        variant = await seed.variant("SKU-1")
        warehouse = await seed.warehouse("NY DC", "New York", "NY")
        await seed.stock(variant, warehouse, quantity=100)

        async def reserve_one():
            async with session_factory() as session:
                await InventoryReservationManager(session).reserve_from_warehouse(
                    warehouse.id, [RequiredItem(variant.id, 1)]
                )

        await asyncio.gather(*(reserve_one() for _ in range(50)))

        stored = await inventory_rows(session_factory, variant.id)
        assert len(stored) == 1
        assert stored[0].reserved_qty == 50

    async def test_concurrent_row_creation_yields_one_row(self, seed, session_factory):
        variant = await seed.variant("SKU-1")
        warehouse = await seed.warehouse("NY DC", "New York", "NY")

        async def reserve_one():
            async with session_factory() as session:
                await InventoryReservationManager(session).reserve_from_warehouse(
                    warehouse.id, [RequiredItem(variant.id, 1)]
                )

        await asyncio.gather(*(reserve_one() for _ in range(10)))

        stored = await inventory_rows(session_factory, variant.id)
        assert len(stored) == 1
        assert stored[0].reserved_qty == 10

    async def test_partial_failure_keeps_earlier_items(self, db, seed, session_factory):
        first = await seed.variant("SKU-1")
        second = await seed.variant("SKU-2")
        warehouse = await seed.warehouse("NY DC", "New York", "NY")
        await seed.stock(first, warehouse, quantity=10)
        await seed.stock(second, warehouse, quantity=10)

        manager = InventoryReservationManager(db)
        real_increment = manager.increment_reserved
        calls = []

        async def flaky_increment(inventory_id, quantity):
            calls.append(inventory_id)
            if len(calls) == 2:
                raise OperationalError("UPDATE inventory", {}, Exception("database is locked"))
            return await real_increment(inventory_id, quantity)

        manager.increment_reserved = flaky_increment

        with pytest.raises(ReservationFailure) as exc_info:
            await manager.reserve_from_warehouse(
                warehouse.id, [RequiredItem(first.id, 2), RequiredItem(second.id, 3)]
            )

        assert exc_info.value.details["reserved_count"] == 1
        assert (await inventory_rows(session_factory, first.id))[0].reserved_qty == 2
        assert (await inventory_rows(session_factory, second.id))[0].reserved_qty == 0


@pytest.mark.asyncio
class TestEmergencyReserve:
    async def test_uses_any_row_for_variant(self, db, seed, session_factory):
        variant = await seed.variant("SKU-1")
        warehouse = await seed.warehouse("LA DC", "Los Angeles", "CA")
        await seed.stock(variant, warehouse, quantity=3)

        outcome = await InventoryReservationManager(db).emergency_reserve([RequiredItem(variant.id, 2)])

        assert outcome.complete
        assert outcome.reserved[0].location_id == warehouse.id
        assert (await inventory_rows(session_factory, variant.id))[0].reserved_qty == 2

    async def test_missing_variant_reported_not_raised(self, db, seed, session_factory):
        stocked = await seed.variant("SKU-1")
        unstocked = await seed.variant("SKU-2")
        warehouse = await seed.warehouse("LA DC", "Los Angeles", "CA")
        await seed.stock(stocked, warehouse, quantity=3)

        outcome = await InventoryReservationManager(db).emergency_reserve(
            [RequiredItem(unstocked.id, 1), RequiredItem(stocked.id, 1)]
        )

        assert not outcome.complete
        assert outcome.missing_variants == [unstocked.id]
        assert len(outcome.reserved) == 1
        async with session_factory() as session:
            count = await session.scalar(select(func.count(Inventory.id)))
        assert count == 1

    async def test_storage_failure_reported_not_raised(self, db, seed):
        variant = await seed.variant("SKU-1")
        warehouse = await seed.warehouse("LA DC", "Los Angeles", "CA")
        await seed.stock(variant, warehouse, quantity=3)

        manager = InventoryReservationManager(db)
        manager.increment_reserved = AsyncMock(
            side_effect=OperationalError("UPDATE inventory", {}, Exception("disk I/O error"))
        )

        outcome = await manager.emergency_reserve([RequiredItem(variant.id, 1)])

        assert outcome.failed_variants == [variant.id]
        assert outcome.reserved == []
