# Services module
from orderflow.services.allocation_service import WarehouseSelector
from orderflow.services.authorize_net_service import AuthorizeNetGateway
from orderflow.services.cart_service import CartService
from orderflow.services.payment_service import PaymentOrchestrator
from orderflow.services.shipping_service import ShippingService
from orderflow.services.shipstation_service import RateQuoter, ShipStationClient
from orderflow.services.stock_reservation_service import InventoryReservationManager

__all__ = [
    "WarehouseSelector",
    "AuthorizeNetGateway",
    "CartService",
    "PaymentOrchestrator",
    "ShippingService",
    "RateQuoter",
    "ShipStationClient",
    "InventoryReservationManager",
]
