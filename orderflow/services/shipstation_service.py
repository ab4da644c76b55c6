"""
ShipStation Rate Service.

Live carrier rates from the ShipStation v2 API:
- Carrier discovery (GET /v2/carriers) for the carrier_ids list
- Flat rate request built from warehouse + destination + package
- Two-attempt policy: POST /v2/rates, then POST /v2/rates/estimate
- Response parsed once (bare list or nested under "rates") and sorted by price
- Checkout quote: optimal warehouse selection followed by a rate quote

No synthetic rate is ever returned; every failure surfaces as RateQuoteError.

API Docs: https://docs.shipstation.com/openapi
"""
import httpx
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from orderflow.config import settings
from orderflow.core.exceptions import RateQuoteError
from orderflow.services.geo_service import (
    calculate_distance,
    get_country_code,
    get_location_coordinates,
    get_state_code,
)

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = {"length": 10, "width": 8, "height": 4}
DEFAULT_WEIGHT_OZ = 16
MIN_WEIGHT_LB = 3
KM_PER_TRANSIT_DAY = 500

# Placeholders for missing address parts
DEFAULT_POSTAL_CODE = "10001"
DEFAULT_CITY = "New York"
DEFAULT_ADDRESS_LINE = "123 Main St"


class ShipStationAPIError(Exception):
    """ShipStation API error."""

    def __init__(self, status_code: int, message: str, data: Any = None):
        self.status_code = status_code
        self.message = message
        self.data = data
        super().__init__(f"ShipStation API Error ({status_code}): {message}")


@dataclass
class CarrierRate:
    amount: Decimal
    carrier: str
    service: str
    estimated_days: Optional[int]
    rate_id: Optional[str] = None
    guaranteed: bool = False
    trackable: bool = True


@dataclass
class RateQuote:
    best: CarrierRate
    rates: List[CarrierRate]
    distance_km: float
    warehouse_name: str
    warehouse_location: str
    request_shape: str  # "rates" or "rates/estimate"
    response_shape: str  # "bare" or "nested"


@dataclass
class ParsedRates:
    """Carrier response after the one-time shape check."""
    shape: str
    rates: List[Dict[str, Any]] = field(default_factory=list)


class ShipStationClient:
    """
    Thin ShipStation v2 HTTP client.

    Usage:
        client = ShipStationClient()
        carriers = await client.request("GET", "/v2/carriers")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.SHIPSTATION_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.SHIPSTATION_API_URL).rstrip("/")
        self.timeout = timeout or settings.SHIPSTATION_TIMEOUT
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ShipStationAPIError(
                status_code=500,
                message="ShipStation API key is missing. Set SHIPSTATION_API_KEY.",
            )
        return {
            "api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def request(self, method: str, path: str, body: Optional[Dict] = None) -> Any:
        """Make a request; transport failures and 4xx/5xx both raise ShipStationAPIError."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = self._headers()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method.upper(), url, headers=headers, json=body)
        except httpx.TimeoutException as e:
            logger.error(f"ShipStation request timed out: {method} {path}")
            raise ShipStationAPIError(status_code=504, message=f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"ShipStation transport error: {method} {path}: {e}")
            raise ShipStationAPIError(status_code=502, message=str(e)) from e

        try:
            data = response.json() if response.text else None
        except ValueError:
            data = response.text

        if response.status_code >= 400:
            logger.error(f"ShipStation API error: {response.status_code} - {response.text}")
            message = response.text
            if isinstance(data, dict):
                errors = data.get("errors") or []
                if errors and isinstance(errors[0], dict):
                    message = errors[0].get("message", message)
                else:
                    message = data.get("message", message)
            raise ShipStationAPIError(status_code=response.status_code, message=message, data=data)

        return data


def parse_rates_response(data: Any) -> ParsedRates:
    """
    Inspect the response once: a bare list of rates, or rates nested under
    a "rates" key. Anything else raises RateQuoteError.
    """
    if isinstance(data, list):
        return ParsedRates(shape="bare", rates=[r for r in data if isinstance(r, dict)])
    if isinstance(data, dict) and isinstance(data.get("rates"), list):
        return ParsedRates(shape="nested", rates=[r for r in data["rates"] if isinstance(r, dict)])
    raise RateQuoteError("Unrecognized ShipStation rates response", details={"response": data})


def _estimated_days(raw: Dict[str, Any], distance_km: float, now: datetime) -> int:
    if raw.get("delivery_days"):
        return int(raw["delivery_days"])

    estimated = raw.get("estimated_delivery_date")
    if estimated:
        try:
            eta = datetime.fromisoformat(str(estimated).replace("Z", "+00:00"))
            if eta.tzinfo is None:
                eta = eta.replace(tzinfo=timezone.utc)
            return math.ceil((eta - now).total_seconds() / 86400)
        except ValueError:
            logger.warning(f"Unparseable estimated_delivery_date: {estimated}")

    return math.ceil(distance_km / KM_PER_TRANSIT_DAY)


def normalize_rate(raw: Dict[str, Any], distance_km: float, now: Optional[datetime] = None) -> Optional[CarrierRate]:
    """CarrierRate for one raw entry, or None when the entry carries no usable price."""
    shipping = raw.get("shipping_amount")
    amount = shipping.get("amount") if isinstance(shipping, dict) else None
    if amount is None:
        return None
    try:
        amount = Decimal(str(amount))
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None

    now = now or datetime.now(timezone.utc)
    return CarrierRate(
        amount=amount,
        carrier=raw.get("carrier_friendly_name") or raw.get("carrier_code") or "Unknown Carrier",
        service=raw.get("service_code") or raw.get("service_type") or "standard",
        estimated_days=_estimated_days(raw, distance_km, now),
        rate_id=raw.get("rate_id"),
        guaranteed=bool(raw.get("guaranteed_service", False)),
        trackable=bool(raw.get("trackable", True)),
    )


class RateQuoter:
    """Builds ShipStation rate requests and normalizes their answers."""

    def __init__(self, client: Optional[ShipStationClient] = None):
        self.client = client or ShipStationClient()

    async def get_carrier_ids(self, carrier_code: Optional[str] = None) -> List[str]:
        """Carrier ids for the request; a discovery failure yields an empty list."""
        try:
            data = await self.client.request("GET", "/v2/carriers")
        except ShipStationAPIError as e:
            logger.warning(f"Carrier discovery failed, requesting rates without carrier_ids: {e.message}")
            return []

        if isinstance(data, dict):
            carriers = data.get("carriers") or []
        elif isinstance(data, list):
            carriers = data
        else:
            carriers = []

        ids = []
        for carrier in carriers:
            if not isinstance(carrier, dict) or not carrier.get("carrier_id"):
                continue
            if carrier_code and carrier.get("carrier_code") != carrier_code:
                continue
            ids.append(carrier["carrier_id"])
        return ids

    def build_rate_request(
        self,
        warehouse: Any,
        destination: Any,
        weight_oz: Optional[float] = None,
        dimensions: Optional[Dict[str, float]] = None,
        carrier_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        from_country = get_country_code(warehouse.country)
        to_country = get_country_code(destination.country)
        dims = dimensions or DEFAULT_DIMENSIONS
        weight_oz = float(weight_oz or DEFAULT_WEIGHT_OZ)

        body: Dict[str, Any] = {}
        if carrier_ids:
            body["carrier_ids"] = list(carrier_ids)
        body.update({
            "from_country_code": from_country,
            "from_postal_code": warehouse.postal_code or DEFAULT_POSTAL_CODE,
            "from_city_locality": warehouse.city or DEFAULT_CITY,
            "from_state_province": get_state_code(warehouse.state, from_country),
            "to_country_code": to_country,
            "to_postal_code": destination.postal_code or DEFAULT_POSTAL_CODE,
            "to_city_locality": destination.city or DEFAULT_CITY,
            "to_state_province": get_state_code(destination.state, to_country),
            "weight": {
                "value": max(math.ceil(weight_oz / 16), MIN_WEIGHT_LB),
                "unit": "pound",
            },
            "dimensions": {
                "unit": "inch",
                "length": dims.get("length", DEFAULT_DIMENSIONS["length"]),
                "width": dims.get("width", DEFAULT_DIMENSIONS["width"]),
                "height": dims.get("height", DEFAULT_DIMENSIONS["height"]),
            },
            "confirmation": "none",
            "address_residential_indicator": "unknown",
            "ship_date": datetime.now(timezone.utc).isoformat(),
        })
        return body

    async def _request_rates(self, body: Dict[str, Any]) -> tuple:
        """POST /v2/rates first, then /v2/rates/estimate. Returns (shape_name, data)."""
        try:
            data = await self.client.request("POST", "/v2/rates", body)
            logger.info("ShipStation rates answered on /v2/rates")
            return "rates", data
        except ShipStationAPIError as first:
            logger.warning(
                f"/v2/rates failed ({first.status_code}: {first.message}), trying /v2/rates/estimate"
            )

        try:
            data = await self.client.request("POST", "/v2/rates/estimate", body)
        except ShipStationAPIError as e:
            raise RateQuoteError(
                f"ShipStation API error: {e.message}",
                details={"status_code": e.status_code},
                status_code=504 if e.status_code == 504 else 502,
            ) from e
        logger.info("ShipStation rates answered on /v2/rates/estimate")
        return "rates/estimate", data

    async def quote(
        self,
        warehouse: Any,
        destination: Any,
        weight_oz: Optional[float] = None,
        dimensions: Optional[Dict[str, float]] = None,
        carrier_code: Optional[str] = None,
    ) -> RateQuote:
        """
        Quote shipping from a warehouse to a destination address.

        Raises:
            RateQuoteError: on any API failure or when no rate comes back
        """
        warehouse_coords = get_location_coordinates(warehouse.city, warehouse.state, warehouse.country)
        destination_coords = get_location_coordinates(destination.city, destination.state, destination.country)
        distance_km = calculate_distance(warehouse_coords, destination_coords)

        carrier_ids = await self.get_carrier_ids(carrier_code)
        body = self.build_rate_request(warehouse, destination, weight_oz, dimensions, carrier_ids)

        request_shape, data = await self._request_rates(body)
        parsed = parse_rates_response(data)
        if not parsed.rates:
            raise RateQuoteError("No rates available from ShipStation")

        now = datetime.now(timezone.utc)
        normalized = [normalize_rate(raw, distance_km, now) for raw in parsed.rates]
        rates = sorted((r for r in normalized if r is not None), key=lambda r: r.amount)
        skipped = len(normalized) - len(rates)
        if skipped:
            logger.warning(f"Skipped {skipped} ShipStation rates without a shipping amount")
        if not rates:
            raise RateQuoteError("No priced rates available from ShipStation")

        logger.info(
            f"ShipStation returned {len(rates)} rates ({parsed.shape} response); "
            f"best {rates[0].carrier} {rates[0].service} ${rates[0].amount}"
        )

        return RateQuote(
            best=rates[0],
            rates=rates,
            distance_km=distance_km,
            warehouse_name=warehouse.name,
            warehouse_location=f"{warehouse.city}, {warehouse.state}",
            request_shape=request_shape,
            response_shape=parsed.shape,
        )
