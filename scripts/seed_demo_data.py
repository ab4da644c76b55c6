"""
Seed Demo Checkout Data.

Creates:
1. Warehouses - New York and Los Angeles
2. Shipping Tiers - flat rates by discounted subtotal
3. Variants - with bulk price tiers and an enterprise segment price
4. Inventory - stock per variant per warehouse
5. Customers - one B2C and one B2B

Usage:
    python -m scripts.seed_demo_data
"""
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from orderflow.database import async_session_factory, init_db
from orderflow.models.customer import Customer, CustomerType
from orderflow.models.inventory import Inventory
from orderflow.models.product import BulkPrice, SegmentPrice, Variant
from orderflow.models.shipping import ShippingTier
from orderflow.models.warehouse import Location


WAREHOUSES = [
    {"name": "NY Fulfillment Center", "address": "500 W 33rd St", "city": "New York", "state": "NY", "postal_code": "10001"},
    {"name": "LA Fulfillment Center", "address": "1200 S Alameda St", "city": "Los Angeles", "state": "CA", "postal_code": "90021"},
]

SHIPPING_TIERS = [
    (Decimal("0.00"), Decimal("50.00"), Decimal("9.99")),
    (Decimal("50.00"), Decimal("200.00"), Decimal("4.99")),
    (Decimal("200.00"), None, Decimal("0.00")),
]

VARIANTS = [
    {
        "sku": "FLT-1000",
        "name": "Replacement Filter",
        "product_name": "Water Filter",
        "regular_price": Decimal("10.00"),
        "sale_price": Decimal("0.00"),
        "weight_oz": Decimal("12"),
        "bulk": [(10, 49, Decimal("8.00")), (50, None, Decimal("7.00"))],
        "enterprise": Decimal("9.00"),
        "stock": {"NY Fulfillment Center": 5, "LA Fulfillment Center": 200},
    },
    {
        "sku": "PMP-2000",
        "name": "Booster Pump",
        "product_name": "Booster Pump",
        "regular_price": Decimal("149.00"),
        "sale_price": Decimal("129.00"),
        "weight_oz": Decimal("80"),
        "bulk": [],
        "enterprise": None,
        "stock": {"NY Fulfillment Center": 20, "LA Fulfillment Center": 20},
    },
]

CUSTOMERS = [
    {"email": "jane@example.com", "first_name": "Jane", "last_name": "Doe", "customer_type": CustomerType.B2C.value},
    {"email": "buyer@acme.example", "first_name": "Sam", "last_name": "Buyer", "company_name": "Acme Supply",
     "customer_type": CustomerType.B2B.value},
]


async def seed_warehouses(db):
    """Create warehouses that do not exist yet; returns them by name."""
    warehouses = {}
    for data in WAREHOUSES:
        result = await db.execute(select(Location).where(Location.name == data["name"]))
        warehouse = result.scalar_one_or_none()
        if warehouse:
            print(f"  Warehouse exists: {data['name']}")
        else:
            warehouse = Location(country="US", is_active=True, **data)
            db.add(warehouse)
            await db.flush()
            print(f"  Created warehouse: {data['name']}")
        warehouses[data["name"]] = warehouse
    return warehouses


async def seed_shipping_tiers(db):
    result = await db.execute(select(ShippingTier))
    if result.scalars().first():
        print("  Shipping tiers already exist")
        return
    for min_subtotal, max_subtotal, rate in SHIPPING_TIERS:
        db.add(ShippingTier(min_subtotal=min_subtotal, max_subtotal=max_subtotal, shipping_rate=rate, is_active=True))
    print(f"  Created {len(SHIPPING_TIERS)} shipping tiers")


async def seed_variants(db, warehouses):
    for data in VARIANTS:
        result = await db.execute(select(Variant).where(Variant.sku == data["sku"]))
        if result.scalar_one_or_none():
            print(f"  Variant exists: {data['sku']}")
            continue

        variant = Variant(
            sku=data["sku"],
            name=data["name"],
            product_name=data["product_name"],
            regular_price=data["regular_price"],
            sale_price=data["sale_price"],
            weight_oz=data["weight_oz"],
        )
        db.add(variant)
        await db.flush()

        for min_qty, max_qty, price in data["bulk"]:
            db.add(BulkPrice(variant_id=variant.id, min_qty=min_qty, max_qty=max_qty, price=price))
        if data["enterprise"] is not None:
            db.add(SegmentPrice(variant_id=variant.id, customer_type=CustomerType.ENTERPRISE_1.value, regular_price=data["enterprise"]))

        for warehouse_name, quantity in data["stock"].items():
            db.add(
                Inventory(
                    variant_id=variant.id,
                    location_id=warehouses[warehouse_name].id,
                    quantity=quantity,
                    reserved_qty=0,
                )
            )
        print(f"  Created variant: {data['sku']}")


async def seed_customers(db):
    for data in CUSTOMERS:
        result = await db.execute(select(Customer).where(Customer.email == data["email"]))
        if result.scalar_one_or_none():
            print(f"  Customer exists: {data['email']}")
            continue
        db.add(Customer(**data))
        print(f"  Created customer: {data['email']}")


async def main():
    print("Seeding demo checkout data...")
    await init_db()

    async with async_session_factory() as db:
        warehouses = await seed_warehouses(db)
        await seed_shipping_tiers(db)
        await seed_variants(db, warehouses)
        await seed_customers(db)
        await db.commit()

    print("Demo data seeded successfully!")


if __name__ == "__main__":
    asyncio.run(main())
