from typing import Annotated
import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.database import get_db
from orderflow.services.authorize_net_service import AuthorizeNetGateway, PaymentGateway
from orderflow.services.shipstation_service import RateQuoter


logger = logging.getLogger(__name__)


def get_payment_gateway() -> PaymentGateway:
    """Gateway used by the payment endpoints; tests override this dependency."""
    return AuthorizeNetGateway()


def get_rate_quoter() -> RateQuoter:
    """ShipStation quoter used by the shipping endpoints."""
    return RateQuoter()


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]
Quoter = Annotated[RateQuoter, Depends(get_rate_quoter)]
