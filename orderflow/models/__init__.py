"""SQLAlchemy models; importing this package registers every table."""
from orderflow.models.customer import Customer, CustomerType
from orderflow.models.address import Address, AddressType
from orderflow.models.product import Variant, BulkPrice, SegmentPrice
from orderflow.models.warehouse import Location
from orderflow.models.inventory import Inventory
from orderflow.models.order import (
    Order,
    OrderItem,
    OrderNote,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Transaction,
)
from orderflow.models.cart import Cart, CartItem
from orderflow.models.shipping import ShippingTier

__all__ = [
    "Customer",
    "CustomerType",
    "Address",
    "AddressType",
    "Variant",
    "BulkPrice",
    "SegmentPrice",
    "Location",
    "Inventory",
    "Order",
    "OrderItem",
    "OrderNote",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Transaction",
    "Cart",
    "CartItem",
    "ShippingTier",
]
