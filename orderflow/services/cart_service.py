"""Cart Service - active cart lookup, adding items, clearing after checkout."""
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orderflow.core.exceptions import NotFoundError, ValidationError
from orderflow.models.cart import Cart, CartItem
from orderflow.models.customer import Customer
from orderflow.models.inventory import Inventory
from orderflow.models.product import Variant
from orderflow.services.pricing_service import compute_applicable_price, compute_unit_price

logger = logging.getLogger(__name__)


class CartService:
    """Service for the customer's active cart."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active_cart(self, customer_id: uuid.UUID) -> Optional[Cart]:
        """Active cart with items, variants and their bulk tiers loaded."""
        result = await self.db.execute(
            select(Cart)
            .where(Cart.customer_id == customer_id, Cart.is_active == True)  # noqa: E712
            .options(
                selectinload(Cart.items)
                .selectinload(CartItem.variant)
                .selectinload(Variant.bulk_prices),
                selectinload(Cart.items)
                .selectinload(CartItem.variant)
                .selectinload(Variant.segment_prices),
            )
            .order_by(Cart.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_or_create_active_cart(self, customer_id: uuid.UUID) -> Cart:
        cart = await self.get_active_cart(customer_id)
        if cart:
            return cart

        cart = Cart(customer_id=customer_id, is_active=True)
        self.db.add(cart)
        await self.db.flush()
        return await self.get_active_cart(customer_id)

    async def add_item(self, customer_id: uuid.UUID, variant_id: uuid.UUID, quantity: int = 1) -> Cart:
        """
        Add a variant to the active cart, merging with an existing line.

        Raises:
            ValidationError: quantity < 1, or stock cannot cover the new cart quantity
            NotFoundError: unknown customer or variant
        """
        if quantity < 1:
            raise ValidationError("quantity must be >= 1")

        customer = await self.db.get(Customer, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")

        result = await self.db.execute(
            select(Variant)
            .where(Variant.id == variant_id)
            .options(selectinload(Variant.bulk_prices), selectinload(Variant.segment_prices))
        )
        variant = result.scalar_one_or_none()
        if not variant:
            raise NotFoundError("Invalid or inactive variant")

        inventory_result = await self.db.execute(
            select(Inventory).where(Inventory.variant_id == variant_id)
        )
        rows = inventory_result.scalars().all()
        total_available = sum(row.available for row in rows)
        can_oversell = any(row.sell_when_out_of_stock for row in rows)

        cart = await self.get_or_create_active_cart(customer_id)
        existing = next((item for item in cart.items if item.variant_id == variant_id), None)
        current_quantity = existing.quantity if existing else 0

        if total_available < current_quantity + quantity and not can_oversell:
            raise ValidationError(
                f"Only {total_available} items available in stock. "
                f"You already have {current_quantity} in your cart."
            )

        if existing:
            existing.quantity = current_quantity + quantity
        else:
            self.db.add(
                CartItem(
                    cart_id=cart.id,
                    variant_id=variant_id,
                    quantity=quantity,
                    unit_price=compute_unit_price(variant, customer.customer_type),
                )
            )

        await self.db.commit()
        logger.info(f"Added {quantity} x variant {variant_id} to cart {cart.id}")
        return await self.get_active_cart(customer_id)

    @staticmethod
    def applicable_price(item: CartItem, customer_type: Optional[str]) -> Decimal:
        """Display price for a cart line at its current quantity."""
        return compute_applicable_price(item.variant, item.quantity, customer_type)

    async def clear_items(self, cart_id: uuid.UUID) -> None:
        """Delete every item in the cart; the cart itself stays active. Caller commits."""
        await self.db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
