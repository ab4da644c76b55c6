"""
Authorize.Net Gateway.

JSON API adapter used by the payment orchestrator:
- createTransactionRequest (authCaptureTransaction) with card or Accept.js token
- getSettledBatchListRequest for the settlement checker
- Response classification: approved, held for review, declined

Transport failures and timeouts raise GatewayUnreachable; everything the
gateway answers comes back as a GatewayResponse.

API Docs: https://developer.authorize.net/api/reference/
"""
import httpx
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from orderflow.config import settings
from orderflow.core.exceptions import GatewayNotConfigured, GatewayUnreachable

logger = logging.getLogger(__name__)

GATEWAY_NAME = "AUTHORIZE_NET"
PROVIDER_NAME = "authorize.net"

APPROVED_CODES = {"1"}
HELD_CODES = {"4", "252", "253"}

# Field limits enforced by the gateway
LINE_ITEM_ID_MAX = 31
LINE_ITEM_NAME_MAX = 31
LINE_ITEM_DESCRIPTION_MAX = 255
CUSTOMER_ID_MAX = 20
CUSTOMER_EMAIL_MAX = 255


class GatewayOutcome(str, Enum):
    APPROVED = "APPROVED"
    HELD_PENDING = "HELD_PENDING"
    DECLINED = "DECLINED"


class AuthorizeNetAPIError(Exception):
    """Authorize.Net answered with resultCode Error on a non-charge request."""

    def __init__(self, message: str, data: Optional[Dict] = None):
        self.message = message
        self.data = data or {}
        super().__init__(f"Authorize.Net API Error: {message}")


@dataclass
class GatewayLineItem:
    item_id: str
    name: str
    description: str
    quantity: int
    unit_price: Decimal


@dataclass
class GatewayAddress:
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "US"
    phone_number: str = ""


@dataclass
class GatewayChargeRequest:
    amount: Decimal
    card_number: Optional[str] = None
    expiration_date: Optional[str] = None
    card_code: Optional[str] = None
    opaque_data: Optional[Dict[str, str]] = None  # {"dataDescriptor", "dataValue"}
    line_items: List[GatewayLineItem] = field(default_factory=list)
    tax_amount: Decimal = Decimal("0.00")
    shipping_amount: Decimal = Decimal("0.00")
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    bill_to: Optional[GatewayAddress] = None
    ship_to: Optional[GatewayAddress] = None
    customer_ip: str = "127.0.0.1"
    ref_id: Optional[str] = None

    @property
    def card_last_four(self) -> Optional[str]:
        if not self.card_number:
            return None
        digits = self.card_number.replace(" ", "")
        return digits[-4:] if len(digits) >= 4 else None


@dataclass
class GatewayResponse:
    result_code: Optional[str]
    response_code: Optional[str]
    trans_id: Optional[str]
    auth_code: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    avs_result_code: Optional[str] = None
    cvv_result_code: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def outcome(self) -> GatewayOutcome:
        return classify_response(self)


class PaymentGateway(Protocol):
    async def charge(self, request: GatewayChargeRequest) -> GatewayResponse:
        ...

    async def get_settled_batches(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        ...


def classify_response(response: GatewayResponse) -> GatewayOutcome:
    """resultCode Ok with a transId and code 1 approves; 4/252/253 hold; anything else declines."""
    if response.result_code != "Ok" or not response.trans_id:
        return GatewayOutcome.DECLINED
    code = str(response.response_code) if response.response_code is not None else ""
    if code in APPROVED_CODES:
        return GatewayOutcome.APPROVED
    if code in HELD_CODES:
        return GatewayOutcome.HELD_PENDING
    return GatewayOutcome.DECLINED


def parse_transaction_response(data: Dict[str, Any]) -> GatewayResponse:
    messages = data.get("messages") or {}
    top_text = None
    if messages.get("message"):
        top_text = messages["message"][0].get("text")

    trans = data.get("transactionResponse") or {}
    trans_messages = trans.get("messages") or []
    trans_errors = trans.get("errors") or []

    response_code = trans.get("responseCode")
    return GatewayResponse(
        result_code=messages.get("resultCode"),
        response_code=str(response_code) if response_code is not None else None,
        trans_id=trans.get("transId") or None,
        auth_code=trans.get("authCode"),
        message=(trans_messages[0].get("description") if trans_messages else None) or top_text,
        error=(trans_errors[0].get("errorText") if trans_errors else None) or top_text,
        avs_result_code=trans.get("avsResultCode"),
        cvv_result_code=trans.get("cvvResultCode"),
        raw=data,
    )


def mask_card_number(card_number: Optional[str]) -> str:
    if not card_number:
        return ""
    digits = card_number.replace(" ", "")
    return f"****{digits[-4:]}"


def _money(value: Any) -> str:
    return f"{Decimal(str(value or 0)):.2f}"


class AuthorizeNetGateway:
    """
    Authorize.Net JSON API client.

    Usage:
        gateway = AuthorizeNetGateway()
        response = await gateway.charge(charge_request)
        if response.outcome == GatewayOutcome.APPROVED:
            ...
    """

    def __init__(
        self,
        api_login_id: Optional[str] = None,
        transaction_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_login_id = (settings.ANET_API_LOGIN_ID if api_login_id is None else api_login_id).strip()
        self.transaction_key = (
            settings.ANET_TRANSACTION_KEY if transaction_key is None else transaction_key
        ).strip()
        self.endpoint = endpoint or settings.authorize_net_endpoint
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT
        self._transport = transport

    def _merchant_authentication(self) -> Dict[str, str]:
        if not self.api_login_id or not self.transaction_key:
            raise GatewayNotConfigured("Authorize.Net credentials are not configured")
        return {"name": self.api_login_id, "transactionKey": self.transaction_key}

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException as e:
            logger.error(f"Authorize.Net request timed out after {self.timeout}s")
            raise GatewayUnreachable("Failed to reach Authorize.Net", details={"error": "timeout"}) from e
        except httpx.HTTPError as e:
            logger.error(f"Authorize.Net transport error: {e}")
            raise GatewayUnreachable("Failed to reach Authorize.Net", details={"error": str(e)}) from e

        # Responses carry a UTF-8 BOM
        try:
            return json.loads(response.content.decode("utf-8-sig") or "{}")
        except ValueError as e:
            logger.error(f"Authorize.Net returned non-JSON body (HTTP {response.status_code})")
            raise GatewayUnreachable(
                "Failed to reach Authorize.Net",
                details={"error": "invalid response body", "status_code": response.status_code},
            ) from e

    def build_transaction_payload(self, request: GatewayChargeRequest) -> Dict[str, Any]:
        if request.opaque_data:
            payment = {
                "opaqueData": {
                    "dataDescriptor": request.opaque_data.get("dataDescriptor"),
                    "dataValue": request.opaque_data.get("dataValue"),
                }
            }
        else:
            payment = {
                "creditCard": {
                    "cardNumber": (request.card_number or "").replace(" ", ""),
                    "expirationDate": request.expiration_date,
                    "cardCode": request.card_code,
                }
            }

        # Key order matters to the gateway's schema validation
        transaction: Dict[str, Any] = {
            "transactionType": "authCaptureTransaction",
            "amount": _money(request.amount),
            "payment": payment,
        }
        if request.line_items:
            transaction["lineItems"] = {
                "lineItem": [
                    {
                        "itemId": str(item.item_id)[:LINE_ITEM_ID_MAX],
                        "name": (item.name or "Item")[:LINE_ITEM_NAME_MAX],
                        "description": (item.description or "")[:LINE_ITEM_DESCRIPTION_MAX],
                        "quantity": str(item.quantity),
                        "unitPrice": _money(item.unit_price),
                    }
                    for item in request.line_items
                ]
            }
        if request.tax_amount and Decimal(str(request.tax_amount)) > 0:
            transaction["tax"] = {
                "amount": _money(request.tax_amount),
                "name": "Tax",
                "description": "Order Tax",
            }
        if request.shipping_amount and Decimal(str(request.shipping_amount)) > 0:
            transaction["shipping"] = {
                "amount": _money(request.shipping_amount),
                "name": "Shipping",
                "description": "Shipping Charge",
            }

        customer = {}
        if request.customer_id:
            customer["id"] = str(request.customer_id)[:CUSTOMER_ID_MAX]
        if request.customer_email:
            customer["email"] = request.customer_email[:CUSTOMER_EMAIL_MAX]
        if customer:
            transaction["customer"] = customer

        if request.bill_to:
            transaction["billTo"] = {
                "firstName": request.bill_to.first_name,
                "lastName": request.bill_to.last_name,
                "company": request.bill_to.company,
                "address": request.bill_to.address,
                "city": request.bill_to.city,
                "state": request.bill_to.state,
                "zip": request.bill_to.zip,
                "country": request.bill_to.country,
                "phoneNumber": request.bill_to.phone_number,
            }
        if request.ship_to:
            transaction["shipTo"] = {
                "firstName": request.ship_to.first_name,
                "lastName": request.ship_to.last_name,
                "company": request.ship_to.company,
                "address": request.ship_to.address,
                "city": request.ship_to.city,
                "state": request.ship_to.state,
                "zip": request.ship_to.zip,
                "country": request.ship_to.country,
            }
        transaction["customerIP"] = request.customer_ip

        body: Dict[str, Any] = {"merchantAuthentication": self._merchant_authentication()}
        if request.ref_id:
            body["refId"] = request.ref_id[:20]
        body["transactionRequest"] = transaction
        return {"createTransactionRequest": body}

    async def charge(self, request: GatewayChargeRequest) -> GatewayResponse:
        """Authorize and capture in one call."""
        payload = self.build_transaction_payload(request)
        logger.info(
            f"Authorize.Net charge: amount={_money(request.amount)} "
            f"card={mask_card_number(request.card_number) or 'opaque token'}"
        )

        data = await self._post(payload)
        response = parse_transaction_response(data)
        logger.info(
            f"Authorize.Net response: resultCode={response.result_code} "
            f"responseCode={response.response_code} transId={response.trans_id}"
        )
        return response

    async def get_settled_batches(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Batches settled between start and end (UTC)."""
        payload = {
            "getSettledBatchListRequest": {
                "merchantAuthentication": self._merchant_authentication(),
                "firstSettlementDate": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "lastSettlementDate": end.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "includeStatistics": True,
            }
        }
        data = await self._post(payload)

        messages = data.get("messages") or {}
        if messages.get("resultCode") != "Ok":
            text = "Failed to fetch settled batches"
            if messages.get("message"):
                text = messages["message"][0].get("text") or text
            raise AuthorizeNetAPIError(text, data=data)

        return data.get("batchList") or []
