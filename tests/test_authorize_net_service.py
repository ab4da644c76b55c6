"""Tests for the Authorize.Net adapter."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from orderflow.core.exceptions import GatewayNotConfigured, GatewayUnreachable
from orderflow.services.authorize_net_service import (
    AuthorizeNetAPIError,
    AuthorizeNetGateway,
    GatewayAddress,
    GatewayChargeRequest,
    GatewayLineItem,
    GatewayOutcome,
    GatewayResponse,
    classify_response,
    mask_card_number,
    parse_transaction_response,
)


def approved_body(response_code="1"):
    return {
        "transactionResponse": {
            "responseCode": response_code,
            "authCode": "QWE123",
            "avsResultCode": "Y",
            "cvvResultCode": "M",
            "transId": "40012345",
            "accountNumber": "XXXX1111",
            "messages": [{"code": "1", "description": "This transaction has been approved."}],
        },
        "refId": "txn-1",
        "messages": {"resultCode": "Ok", "message": [{"code": "I00001", "text": "Successful."}]},
    }


def charge_request(**overrides):
    values = dict(
        amount=Decimal("20.00"),
        card_number="4111 1111 1111 1111",
        expiration_date="2030-12",
        card_code="123",
        line_items=[GatewayLineItem("FLT-1000", "Replacement Filter", "Filter", 2, Decimal("10.00"))],
        customer_id="c1",
        customer_email="jane@example.com",
        ref_id="txn-1",
    )
    values.update(overrides)
    return GatewayChargeRequest(**values)


def gateway_with(handler):
    return AuthorizeNetGateway(
        api_login_id="login",
        transaction_key="key",
        endpoint="https://anet.test/xml/v1/request.api",
        transport=httpx.MockTransport(handler),
    )


class TestClassification:
    @pytest.mark.parametrize(
        "result_code,response_code,trans_id,expected",
        [
            ("Ok", "1", "123", GatewayOutcome.APPROVED),
            ("Ok", "4", "123", GatewayOutcome.HELD_PENDING),
            ("Ok", "252", "123", GatewayOutcome.HELD_PENDING),
            ("Ok", "253", "123", GatewayOutcome.HELD_PENDING),
            ("Ok", "2", "123", GatewayOutcome.DECLINED),
            ("Ok", "3", "123", GatewayOutcome.DECLINED),
            ("Error", "1", "123", GatewayOutcome.DECLINED),
            ("Ok", "1", None, GatewayOutcome.DECLINED),
        ],
    )
    def test_outcomes(self, result_code, response_code, trans_id, expected):
        response = GatewayResponse(result_code=result_code, response_code=response_code, trans_id=trans_id)
        assert classify_response(response) == expected

    def test_parse_error_text(self):
        body = {
            "transactionResponse": {
                "responseCode": "2",
                "transId": "0",
                "errors": [{"errorCode": "2", "errorText": "This transaction has been declined."}],
            },
            "messages": {"resultCode": "Error", "message": [{"code": "E00027", "text": "The transaction was unsuccessful."}]},
        }
        response = parse_transaction_response(body)

        assert response.error == "This transaction has been declined."
        assert response.outcome == GatewayOutcome.DECLINED

    def test_mask_card_number(self):
        assert mask_card_number("4111 1111 1111 1111") == "****1111"
        assert mask_card_number(None) == ""


class TestPayload:
    def test_shape_and_limits(self):
        gateway = AuthorizeNetGateway(api_login_id="login", transaction_key="key")
        request = charge_request(
            line_items=[GatewayLineItem("X" * 40, "N" * 40, "D" * 300, 1, Decimal("5"))],
            customer_id="C" * 30,
            bill_to=GatewayAddress(first_name="Jane", last_name="Doe", city="Austin", state="TX", zip="73301"),
        )

        body = gateway.build_transaction_payload(request)["createTransactionRequest"]
        transaction = body["transactionRequest"]

        assert list(body) == ["merchantAuthentication", "refId", "transactionRequest"]
        assert transaction["amount"] == "20.00"
        assert transaction["payment"]["creditCard"]["cardNumber"] == "4111111111111111"
        item = transaction["lineItems"]["lineItem"][0]
        assert len(item["itemId"]) == 31
        assert len(item["name"]) == 31
        assert len(item["description"]) == 255
        assert item["unitPrice"] == "5.00"
        assert len(transaction["customer"]["id"]) == 20
        assert transaction["billTo"]["zip"] == "73301"
        assert "shipTo" not in transaction

    def test_zero_tax_and_shipping_omitted(self):
        gateway = AuthorizeNetGateway(api_login_id="login", transaction_key="key")
        transaction = gateway.build_transaction_payload(charge_request())["createTransactionRequest"]["transactionRequest"]

        assert "tax" not in transaction
        assert "shipping" not in transaction

    def test_tax_and_shipping_included(self):
        gateway = AuthorizeNetGateway(api_login_id="login", transaction_key="key")
        request = charge_request(tax_amount=Decimal("1.5"), shipping_amount=Decimal("4.99"))
        transaction = gateway.build_transaction_payload(request)["createTransactionRequest"]["transactionRequest"]

        assert transaction["tax"]["amount"] == "1.50"
        assert transaction["shipping"]["amount"] == "4.99"

    def test_opaque_data(self):
        gateway = AuthorizeNetGateway(api_login_id="login", transaction_key="key")
        request = charge_request(
            card_number=None,
            opaque_data={"dataDescriptor": "COMMON.ACCEPT.INAPP.PAYMENT", "dataValue": "nonce"},
        )
        payment = gateway.build_transaction_payload(request)["createTransactionRequest"]["transactionRequest"]["payment"]

        assert payment == {"opaqueData": {"dataDescriptor": "COMMON.ACCEPT.INAPP.PAYMENT", "dataValue": "nonce"}}

    def test_missing_credentials(self):
        gateway = AuthorizeNetGateway(api_login_id="", transaction_key="")
        with pytest.raises(GatewayNotConfigured):
            gateway.build_transaction_payload(charge_request())


@pytest.mark.asyncio
class TestTransport:
    async def test_charge_parses_bom_prefixed_body(self):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(200, content=b"\xef\xbb\xbf" + json.dumps(approved_body()).encode())

        response = await gateway_with(handler).charge(charge_request())

        assert response.outcome == GatewayOutcome.APPROVED
        assert response.trans_id == "40012345"
        assert response.auth_code == "QWE123"
        assert sent[0]["createTransactionRequest"]["merchantAuthentication"] == {"name": "login", "transactionKey": "key"}

    async def test_timeout_is_unreachable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayUnreachable) as exc_info:
            await gateway_with(handler).charge(charge_request())
        assert exc_info.value.details == {"error": "timeout"}

    async def test_connection_error_is_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GatewayUnreachable):
            await gateway_with(handler).charge(charge_request())

    async def test_non_json_body_is_unreachable(self):
        def handler(request):
            return httpx.Response(502, content=b"<html>Bad Gateway</html>")

        with pytest.raises(GatewayUnreachable):
            await gateway_with(handler).charge(charge_request())

    async def test_settled_batches(self):
        def handler(request):
            body = json.loads(request.content)["getSettledBatchListRequest"]
            assert body["firstSettlementDate"] == "2026-01-01T00:00:00Z"
            return httpx.Response(200, json={
                "batchList": [{"batchId": "123", "settlementState": "settledSuccessfully"}],
                "messages": {"resultCode": "Ok", "message": [{"code": "I00001", "text": "Successful."}]},
            })

        batches = await gateway_with(handler).get_settled_batches(
            datetime(2026, 1, 1, tzinfo=timezone.utc), datetime(2026, 1, 2, tzinfo=timezone.utc)
        )
        assert batches[0]["batchId"] == "123"

    async def test_settled_batches_error(self):
        def handler(request):
            return httpx.Response(200, json={
                "messages": {"resultCode": "Error", "message": [{"code": "E00007", "text": "User authentication failed."}]},
            })

        with pytest.raises(AuthorizeNetAPIError) as exc_info:
            await gateway_with(handler).get_settled_batches(datetime.now(timezone.utc), datetime.now(timezone.utc))
        assert exc_info.value.message == "User authentication failed."
