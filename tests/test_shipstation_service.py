"""Tests for the ShipStation rate client and quoting."""

import json
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from orderflow.core.exceptions import RateQuoteError
from orderflow.services.shipstation_service import (
    RateQuoter,
    ShipStationAPIError,
    ShipStationClient,
    normalize_rate,
    parse_rates_response,
)


WAREHOUSE = SimpleNamespace(name="NY DC", city="New York", state="New York", postal_code="10001", country="US")
DESTINATION = SimpleNamespace(city="Los Angeles", state="California", postal_code="90001", country="United States")

RATES = [
    {
        "rate_id": "se-2",
        "carrier_friendly_name": "UPS",
        "service_code": "ups_ground",
        "shipping_amount": {"currency": "usd", "amount": 14.25},
        "delivery_days": 5,
    },
    {
        "rate_id": "se-1",
        "carrier_friendly_name": "USPS",
        "service_code": "usps_priority_mail",
        "shipping_amount": {"currency": "usd", "amount": 9.8},
        "delivery_days": 3,
        "guaranteed_service": False,
    },
]


def make_quoter(routes, api_key="test-key"):
    """routes maps (method, path) to (status, body); every request is recorded."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, json.loads(request.content) if request.content else None))
        status, body = routes.get((request.method, request.url.path), (404, {"errors": [{"message": "not found"}]}))
        return httpx.Response(status, json=body)

    client = ShipStationClient(
        api_key=api_key,
        base_url="https://ship.test",
        transport=httpx.MockTransport(handler),
    )
    return RateQuoter(client), seen


class TestParseRates:
    def test_bare_list(self):
        parsed = parse_rates_response(RATES)
        assert parsed.shape == "bare"
        assert len(parsed.rates) == 2

    def test_nested(self):
        parsed = parse_rates_response({"rates": RATES, "errors": []})
        assert parsed.shape == "nested"
        assert len(parsed.rates) == 2

    def test_unknown_shape(self):
        with pytest.raises(RateQuoteError):
            parse_rates_response({"rate_response": {}})

    def test_estimated_days_from_distance(self):
        rate = normalize_rate({"shipping_amount": {"amount": 5}}, distance_km=1200)
        assert rate.estimated_days == 3
        assert rate.carrier == "Unknown Carrier"

    def test_rate_without_amount_is_skipped(self):
        assert normalize_rate({"carrier_friendly_name": "UPS"}, distance_km=100) is None
        assert normalize_rate({"shipping_amount": {"currency": "usd"}}, distance_km=100) is None
        assert normalize_rate({"shipping_amount": {"amount": "n/a"}}, distance_km=100) is None


class TestBuildRateRequest:
    def test_weight_floor_and_codes(self):
        quoter = RateQuoter(ShipStationClient(api_key="k"))
        body = quoter.build_rate_request(WAREHOUSE, DESTINATION, weight_oz=16, carrier_ids=["se-123"])

        assert list(body)[0] == "carrier_ids"
        assert body["weight"] == {"value": 3, "unit": "pound"}
        assert body["from_state_province"] == "NY"
        assert body["to_state_province"] == "CA"
        assert body["to_country_code"] == "US"
        assert body["dimensions"]["length"] == 10

    def test_heavy_package_rounds_up_to_pounds(self):
        quoter = RateQuoter(ShipStationClient(api_key="k"))
        body = quoter.build_rate_request(WAREHOUSE, DESTINATION, weight_oz=81)
        assert body["weight"]["value"] == 6
        assert "carrier_ids" not in body

    def test_missing_postal_code_placeholder(self):
        quoter = RateQuoter(ShipStationClient(api_key="k"))
        destination = SimpleNamespace(city=None, state="TX", postal_code=None, country="US")
        body = quoter.build_rate_request(WAREHOUSE, destination)
        assert body["to_postal_code"] == "10001"
        assert body["to_city_locality"] == "New York"


@pytest.mark.asyncio
class TestQuote:
    async def test_rates_sorted_cheapest_first(self):
        quoter, seen = make_quoter({
            ("GET", "/v2/carriers"): (200, {"carriers": [{"carrier_id": "se-100", "carrier_code": "ups"}]}),
            ("POST", "/v2/rates"): (200, {"rates": RATES}),
        })

        quote = await quoter.quote(WAREHOUSE, DESTINATION)

        assert quote.best.carrier == "USPS"
        assert [r.amount for r in quote.rates] == sorted(r.amount for r in quote.rates)
        assert quote.request_shape == "rates"
        assert quote.response_shape == "nested"
        assert quote.warehouse_location == "New York, New York"
        assert 3900 < quote.distance_km < 3980
        assert seen[1][2]["carrier_ids"] == ["se-100"]

    async def test_falls_back_to_estimate_endpoint(self):
        quoter, seen = make_quoter({
            ("GET", "/v2/carriers"): (200, {"carriers": []}),
            ("POST", "/v2/rates"): (400, {"errors": [{"message": "rate_options is required"}]}),
            ("POST", "/v2/rates/estimate"): (200, RATES),
        })

        quote = await quoter.quote(WAREHOUSE, DESTINATION)

        assert quote.request_shape == "rates/estimate"
        assert quote.response_shape == "bare"
        assert quote.best.amount == Decimal("9.8")
        assert [path for _, path, _ in seen] == ["/v2/carriers", "/v2/rates", "/v2/rates/estimate"]

    async def test_carrier_discovery_failure_is_not_fatal(self):
        quoter, seen = make_quoter({
            ("GET", "/v2/carriers"): (500, {"errors": [{"message": "boom"}]}),
            ("POST", "/v2/rates"): (200, RATES),
        })

        quote = await quoter.quote(WAREHOUSE, DESTINATION)

        assert quote.best.carrier == "USPS"
        assert "carrier_ids" not in seen[1][2]

    async def test_carrier_code_filter(self):
        quoter, _ = make_quoter({
            ("GET", "/v2/carriers"): (200, {"carriers": [
                {"carrier_id": "se-1", "carrier_code": "ups"},
                {"carrier_id": "se-2", "carrier_code": "stamps_com"},
            ]}),
        })
        assert await quoter.get_carrier_ids("stamps_com") == ["se-2"]

    async def test_both_attempts_fail(self):
        quoter, _ = make_quoter({
            ("POST", "/v2/rates"): (400, {"errors": [{"message": "bad request"}]}),
            ("POST", "/v2/rates/estimate"): (503, {"errors": [{"message": "unavailable"}]}),
        })

        with pytest.raises(RateQuoteError) as exc_info:
            await quoter.quote(WAREHOUSE, DESTINATION)
        assert "unavailable" in exc_info.value.message
        assert exc_info.value.details["status_code"] == 503
        assert exc_info.value.status_code == 502

    async def test_empty_rates(self):
        quoter, _ = make_quoter({("POST", "/v2/rates"): (200, [])})

        with pytest.raises(RateQuoteError):
            await quoter.quote(WAREHOUSE, DESTINATION)

    async def test_missing_api_key(self):
        quoter, seen = make_quoter({}, api_key="")

        with pytest.raises(RateQuoteError):
            await quoter.quote(WAREHOUSE, DESTINATION)
        assert seen == []

    async def test_timeout_maps_to_api_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        client = ShipStationClient(api_key="k", base_url="https://ship.test", transport=httpx.MockTransport(handler))
        with pytest.raises(ShipStationAPIError) as exc_info:
            await client.request("GET", "/v2/carriers")
        assert exc_info.value.status_code == 504

    async def test_estimate_timeout_answers_504(self):
        def handler(request):
            if request.url.path == "/v2/carriers":
                return httpx.Response(200, json={"carriers": []})
            raise httpx.ReadTimeout("timed out", request=request)

        client = ShipStationClient(api_key="k", base_url="https://ship.test", transport=httpx.MockTransport(handler))
        with pytest.raises(RateQuoteError) as exc_info:
            await RateQuoter(client).quote(WAREHOUSE, DESTINATION)
        assert exc_info.value.status_code == 504

    async def test_unpriced_rate_never_becomes_best(self):
        unpriced = {"carrier_friendly_name": "FreeShip", "service_code": "mystery"}
        quoter, _ = make_quoter({("POST", "/v2/rates"): (200, [unpriced] + RATES)})

        quote = await quoter.quote(WAREHOUSE, DESTINATION)

        assert quote.best.carrier == "USPS"
        assert len(quote.rates) == 2

    async def test_only_unpriced_rates(self):
        quoter, _ = make_quoter({("POST", "/v2/rates"): (200, [{"carrier_friendly_name": "FreeShip"}])})

        with pytest.raises(RateQuoteError):
            await quoter.quote(WAREHOUSE, DESTINATION)
