"""
Payment API endpoints for Authorize.Net card checkout.

Handles:
- Card authorization for an existing order
- Card authorization for the customer's active cart (creates the order)

Declined and unreachable attempts still answer with the persisted order
and transaction ids so the client can retry against the same order.
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from orderflow.api.deps import DB, Gateway
from orderflow.core.exceptions import GatewayDeclined, GatewayUnreachable
from orderflow.schemas.checkout import CardPaymentRequest, PaymentResult
from orderflow.services.payment_service import CheckoutState, PaymentOrchestrator

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Payments"])

OUTCOME_STATUS = {
    CheckoutState.APPROVED.value: status.HTTP_200_OK,
    CheckoutState.HELD_PENDING.value: status.HTTP_200_OK,
    CheckoutState.DECLINED.value: GatewayDeclined.status_code,
    CheckoutState.UNREACHABLE.value: GatewayUnreachable.status_code,
}


# ==================== CARD PAYMENTS ====================

@router.post(
    "/authorize-card",
    response_model=PaymentResult,
    summary="Charge a credit card",
    description=(
        "Authorize and capture a card payment through Authorize.Net. "
        "Pass order_id to pay an existing order, or customer_id to check out the active cart."
    ),
)
async def authorize_card(
    data: CardPaymentRequest,
    db: DB,
    gateway: Gateway,
):
    """
    Charge a card for an order or cart.

    Approved and held charges answer 200 (held charges stay PENDING until
    settlement), declines answer 400 and gateway outages 502.
    """
    orchestrator = PaymentOrchestrator(db, gateway=gateway)
    result = await orchestrator.authorize_card(data)

    return JSONResponse(
        status_code=OUTCOME_STATUS.get(result.outcome, status.HTTP_200_OK),
        content=result.model_dump(mode="json"),
    )
