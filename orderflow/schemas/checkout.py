"""
Checkout Payment Schemas.

Covers:
1. CardPaymentRequest - card (or Accept.js token) payment for an order or the active cart
2. GatewaySummary - diagnostic codes from the gateway
3. PaymentResult - outcome of one payment attempt
"""
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from orderflow.schemas.base import BaseCreateSchema


class AddressInput(BaseModel):
    """Address as entered at checkout; missing parts are filled from the customer profile."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone_number: Optional[str] = None


class OpaqueData(BaseModel):
    """Accept.js payment nonce."""
    data_descriptor: str
    data_value: str


class CardPaymentRequest(BaseCreateSchema):
    """
    Pay for an existing order (order_id) or for the customer's active cart.

    Field checks (amount precision, card presence, fee range) are done by
    the payment service so every caller gets the same errors.
    """
    order_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    customer_email: Optional[str] = None

    amount: Decimal

    # Card or opaque token
    card_number: Optional[str] = None
    expiration_date: Optional[str] = None
    card_code: Optional[str] = None
    cardholder_name: Optional[str] = None
    opaque_data: Optional[OpaqueData] = None

    billing_address: Optional[AddressInput] = None
    shipping_address: Optional[AddressInput] = None

    # Cart checkout overrides
    shipping_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    payment_fee_pct: Optional[Decimal] = None
    note: Optional[str] = None

    customer_ip: Optional[str] = None


class GatewaySummary(BaseModel):
    result_code: Optional[str] = None
    response_code: Optional[str] = None
    trans_id: Optional[str] = None
    auth_code: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    avs_result_code: Optional[str] = None
    cvv_result_code: Optional[str] = None


class PaymentResult(BaseModel):
    """
    Outcome of one payment attempt.

    order_id and transaction_id are always set once the gateway has been
    called, including degraded reservation paths.
    """
    success: bool
    outcome: Optional[str] = Field(None, description="APPROVED, HELD_PENDING, DECLINED, UNREACHABLE")
    error: Optional[str] = None
    gateway_response: Optional[GatewaySummary] = None
    order_id: Optional[UUID] = None
    order_number: Optional[str] = None
    transaction_id: Optional[UUID] = None
    gateway_transaction_id: Optional[str] = None
    auth_code: Optional[str] = None
    reservation_degraded: bool = False
    state_trail: List[str] = Field(default_factory=list)
