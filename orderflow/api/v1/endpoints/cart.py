"""Cart API endpoints."""

from fastapi import APIRouter, status

from orderflow.api.deps import DB
from orderflow.models.customer import Customer
from orderflow.schemas.cart import CartItemAdd, CartItemResponse, CartResponse
from orderflow.services.cart_service import CartService


router = APIRouter(tags=["Cart"])


@router.post(
    "/items",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an item to the active cart",
    description="Adds a variant to the customer's active cart, merging with an existing line.",
)
async def add_cart_item(
    data: CartItemAdd,
    db: DB,
):
    service = CartService(db)
    cart = await service.add_item(data.customer_id, data.variant_id, data.quantity)
    customer = await db.get(Customer, data.customer_id)

    return CartResponse(
        id=cart.id,
        customer_id=cart.customer_id,
        items=[
            CartItemResponse(
                id=item.id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                applicable_price=service.applicable_price(item, customer.customer_type),
            )
            for item in cart.items
        ],
    )
