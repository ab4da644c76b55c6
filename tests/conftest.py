"""
Pytest configuration and fixtures for the checkout core tests.

Every test gets its own SQLite file database. Seeding goes through a
separate session so the session under test starts with an empty
identity map, the same as a fresh request would.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import pytest
import pytest_asyncio

from orderflow.core.exceptions import GatewayUnreachable
from orderflow.database import build_engine, build_session_factory, init_db
from orderflow.models.cart import Cart, CartItem
from orderflow.models.customer import Customer, CustomerType
from orderflow.models.inventory import Inventory
from orderflow.models.product import BulkPrice, SegmentPrice, Variant
from orderflow.models.shipping import ShippingTier
from orderflow.models.warehouse import Location
from orderflow.services.authorize_net_service import (
    GatewayChargeRequest,
    GatewayResponse,
    parse_transaction_response,
)


# ==================== DATABASE ====================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orderflow.db'}", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    """Session handed to the code under test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session_factory):
    """Seeder writing through its own session."""
    async with session_factory() as session:
        yield Seeder(session)


class Seeder:
    """Creates committed rows for tests; returned objects are plain snapshots."""

    def __init__(self, db):
        self.db = db

    async def _save(self, *objects):
        self.db.add_all(objects)
        await self.db.commit()
        return objects[0]

    async def warehouse(
        self,
        name: str,
        city: Optional[str],
        state: Optional[str] = None,
        postal_code: Optional[str] = None,
        is_active: bool = True,
    ) -> Location:
        return await self._save(
            Location(
                name=name,
                address="1 Dock Rd",
                city=city,
                state=state,
                postal_code=postal_code,
                country="US",
                is_active=is_active,
            )
        )

    async def variant(
        self,
        sku: str,
        regular_price: str = "10.00",
        sale_price: str = "0.00",
        bulk: Sequence[tuple] = (),
        segments: Sequence[tuple] = (),
        weight_oz: str = "0",
        name: str = "Replacement Filter",
    ) -> Variant:
        variant = Variant(
            sku=sku,
            name=name,
            product_name="Water Filter",
            regular_price=Decimal(regular_price),
            sale_price=Decimal(sale_price),
            weight_oz=Decimal(weight_oz),
            bulk_prices=[
                BulkPrice(min_qty=min_qty, max_qty=max_qty, price=Decimal(price))
                for min_qty, max_qty, price in bulk
            ],
            segment_prices=[
                SegmentPrice(customer_type=customer_type, regular_price=Decimal(regular), sale_price=Decimal(sale))
                for customer_type, regular, sale in segments
            ],
        )
        return await self._save(variant)

    async def stock(
        self,
        variant: Variant,
        warehouse: Location,
        quantity: int,
        reserved: int = 0,
        oversell: bool = False,
    ) -> Inventory:
        return await self._save(
            Inventory(
                variant_id=variant.id,
                location_id=warehouse.id,
                quantity=quantity,
                reserved_qty=reserved,
                sell_when_out_of_stock=oversell,
            )
        )

    async def customer(
        self,
        email: str = "jane@example.com",
        customer_type: str = CustomerType.B2C.value,
        first_name: Optional[str] = "Jane",
        last_name: Optional[str] = "Doe",
    ) -> Customer:
        return await self._save(
            Customer(email=email, first_name=first_name, last_name=last_name, customer_type=customer_type)
        )

    async def shipping_tier(self, min_subtotal: str, max_subtotal: Optional[str], rate: str, is_active: bool = True):
        return await self._save(
            ShippingTier(
                min_subtotal=Decimal(min_subtotal),
                max_subtotal=Decimal(max_subtotal) if max_subtotal is not None else None,
                shipping_rate=Decimal(rate),
                is_active=is_active,
            )
        )

    async def cart(self, customer: Customer, items: Sequence[tuple]) -> Cart:
        """items: (variant, quantity, unit_price) tuples."""
        cart = Cart(
            customer_id=customer.id,
            is_active=True,
            items=[
                CartItem(variant_id=variant.id, quantity=quantity, unit_price=Decimal(unit_price))
                for variant, quantity, unit_price in items
            ],
        )
        return await self._save(cart)


# ==================== GATEWAY ====================

class FakeGateway:
    """
    Authorize.Net stand-in answering with realistic JSON bodies.

    The raw body echoes the masked card number the way the real gateway
    does, which is what the duplicate guard searches for.
    """

    def __init__(
        self,
        response_code: str = "1",
        result_code: str = "Ok",
        trans_id: str = "60012345678",
        error_text: Optional[str] = None,
        avs_result_code: str = "Y",
        cvv_result_code: str = "M",
        unreachable: bool = False,
        batches: Optional[List[Dict[str, Any]]] = None,
    ):
        self.response_code = response_code
        self.result_code = result_code
        self.trans_id = trans_id
        self.error_text = error_text
        self.avs_result_code = avs_result_code
        self.cvv_result_code = cvv_result_code
        self.unreachable = unreachable
        self.batches = batches or []
        self.calls: List[GatewayChargeRequest] = []

    async def charge(self, request: GatewayChargeRequest) -> GatewayResponse:
        self.calls.append(request)
        if self.unreachable:
            raise GatewayUnreachable("Failed to reach Authorize.Net", details={"error": "timeout"})

        transaction: Dict[str, Any] = {
            "responseCode": self.response_code,
            "authCode": "ABC123" if self.response_code == "1" else "",
            "avsResultCode": self.avs_result_code,
            "cvvResultCode": self.cvv_result_code,
            "transId": self.trans_id,
            "accountNumber": f"XXXX{request.card_last_four or '0000'}",
            "accountType": "Visa",
        }
        if self.error_text:
            transaction["errors"] = [{"errorCode": self.response_code, "errorText": self.error_text}]
        else:
            transaction["messages"] = [{"code": "1", "description": "This transaction has been approved."}]

        return parse_transaction_response(
            {
                "transactionResponse": transaction,
                "refId": request.ref_id,
                "messages": {
                    "resultCode": self.result_code,
                    "message": [{"code": "I00001", "text": "Successful."}],
                },
            }
        )

    async def get_settled_batches(self, start, end):
        return self.batches


@pytest.fixture
def gateway():
    return FakeGateway()
