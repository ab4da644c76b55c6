"""Tests for warehouse selection."""

import pytest

from orderflow.core.exceptions import NoWarehouseAvailable
from orderflow.services.allocation_service import (
    RequiredItem,
    WarehouseSelector,
    merge_required_items,
    select_warehouse,
)
from orderflow.services.geo_service import MAJOR_CITIES


def test_merge_required_items_sums_duplicates():
    a, b = "variant-a", "variant-b"
    merged = merge_required_items([RequiredItem(a, 2), RequiredItem(b, 1), RequiredItem(a, 3)])
    assert [(m.variant_id, m.quantity) for m in merged] == [(a, 5), (b, 1)]


def test_select_warehouse_requires_candidates():
    with pytest.raises(NoWarehouseAvailable):
        select_warehouse(MAJOR_CITIES["Boston"], [], [])


@pytest.mark.asyncio
class TestWarehouseSelector:
    async def test_prefers_farther_warehouse_with_stock(self, db, seed):
        variant = await seed.variant("SKU-1")
        near = await seed.warehouse("Philadelphia DC", "Philadelphia", "PA")
        far = await seed.warehouse("Chicago DC", "Chicago", "IL")
        await seed.stock(variant, near, quantity=1)
        await seed.stock(variant, far, quantity=50)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "New York", "NY", "US", [RequiredItem(variant.id, 5)]
        )

        assert selection.warehouse.id == far.id
        assert selection.stock_available is True
        assert selection.stock_details[variant.id].available == 50

    async def test_nearest_wins_when_both_have_stock(self, db, seed):
        variant = await seed.variant("SKU-1")
        near = await seed.warehouse("Philadelphia DC", "Philadelphia", "PA")
        far = await seed.warehouse("Chicago DC", "Chicago", "IL")
        await seed.stock(variant, near, quantity=10)
        await seed.stock(variant, far, quantity=10)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "New York", "NY", "US", [RequiredItem(variant.id, 5)]
        )

        assert selection.warehouse.id == near.id

    async def test_degraded_selection_returns_nearest(self, db, seed):
        variant = await seed.variant("SKU-1")
        near = await seed.warehouse("Philadelphia DC", "Philadelphia", "PA")
        far = await seed.warehouse("Chicago DC", "Chicago", "IL")
        await seed.stock(variant, near, quantity=2)
        await seed.stock(variant, far, quantity=3)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "New York", "NY", "US", [RequiredItem(variant.id, 5)]
        )

        assert selection.warehouse.id == near.id
        assert selection.stock_available is False
        assert selection.shortfall[variant.id].available == 2
        assert selection.shortfall[variant.id].required == 5

    async def test_reserved_stock_is_not_available(self, db, seed):
        variant = await seed.variant("SKU-1")
        near = await seed.warehouse("Philadelphia DC", "Philadelphia", "PA")
        far = await seed.warehouse("Chicago DC", "Chicago", "IL")
        await seed.stock(variant, near, quantity=10, reserved=8)
        await seed.stock(variant, far, quantity=10)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "New York", "NY", "US", [RequiredItem(variant.id, 5)]
        )

        assert selection.warehouse.id == far.id

    async def test_missing_inventory_row_counts_as_zero(self, db, seed):
        variant = await seed.variant("SKU-1")
        await seed.warehouse("Boston DC", "Boston", "MA")

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "Boston", "MA", "US", [RequiredItem(variant.id, 1)]
        )

        assert selection.stock_available is False
        assert selection.stock_details[variant.id].available == 0

    async def test_oversell_row_counts_as_sufficient(self, db, seed):
        variant = await seed.variant("SKU-1")
        near = await seed.warehouse("Philadelphia DC", "Philadelphia", "PA")
        far = await seed.warehouse("Chicago DC", "Chicago", "IL")
        await seed.stock(variant, near, quantity=0, oversell=True)
        await seed.stock(variant, far, quantity=50)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "New York", "NY", "US", [RequiredItem(variant.id, 5)]
        )

        assert selection.warehouse.id == near.id
        assert selection.stock_available is True

    async def test_every_item_must_be_covered(self, db, seed):
        filter_ = await seed.variant("SKU-1")
        pump = await seed.variant("SKU-2")
        near = await seed.warehouse("Philadelphia DC", "Philadelphia", "PA")
        far = await seed.warehouse("Chicago DC", "Chicago", "IL")
        await seed.stock(filter_, near, quantity=10)
        await seed.stock(filter_, far, quantity=10)
        await seed.stock(pump, far, quantity=1)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "New York", "NY", "US", [RequiredItem(filter_.id, 2), RequiredItem(pump.id, 1)]
        )

        assert selection.warehouse.id == far.id

    async def test_distance_tie_breaks_by_name(self, db, seed):
        variant = await seed.variant("SKU-1")
        zulu = await seed.warehouse("Zulu DC", "Denver", "CO")
        alpha = await seed.warehouse("Alpha DC", "Denver", "CO")
        await seed.stock(variant, zulu, quantity=10)
        await seed.stock(variant, alpha, quantity=10)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            "Denver", "CO", "US", [RequiredItem(variant.id, 1)]
        )

        assert selection.warehouse.id == alpha.id

    async def test_unknown_destination_uses_centroid(self, db, seed):
        variant = await seed.variant("SKU-1")
        kc = await seed.warehouse("Kansas City DC", "Kansas City", "MO")
        await seed.warehouse("Seattle DC", "Seattle", "WA")
        await seed.stock(variant, kc, quantity=10)

        selection = await WarehouseSelector(db).find_optimal_warehouse(
            None, None, None, [RequiredItem(variant.id, 1)]
        )

        assert selection.warehouse.id == kc.id

    async def test_inactive_warehouses_ignored(self, db, seed):
        variant = await seed.variant("SKU-1")
        closed = await seed.warehouse("Closed DC", "New York", "NY", is_active=False)
        await seed.stock(variant, closed, quantity=10)

        with pytest.raises(NoWarehouseAvailable):
            await WarehouseSelector(db).find_optimal_warehouse("New York", "NY", "US", [RequiredItem(variant.id, 1)])

        with pytest.raises(NoWarehouseAvailable):
            await WarehouseSelector(db).ensure_active_warehouses()
