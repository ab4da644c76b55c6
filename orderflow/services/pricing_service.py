"""
Checkout pricing.

Pure computation, no I/O:
1. Line pricing with per-variant bulk tiers
2. Discount (explicit override or automatic high-value rule)
3. Shipping (manual override or tier table lookup)
4. Tax pass-through, payment fee, grand total

Every money value is rounded to cents before it feeds the next step so
no unrounded fraction is carried forward.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Sequence
import uuid

from orderflow.config import settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Pricing tier used for segment price lookups
PRICING_CUSTOMER_TYPES = {
    "B2C": "B2C",
    "B2B": "B2C",  # B2B buys at B2C list prices
    "ENTERPRISE_1": "ENTERPRISE_1",
    "ENTERPRISE_2": "ENTERPRISE_1",
}


def to_money(value: Any) -> Decimal:
    """Round any numeric input to cents, half up."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BulkTier:
    min_qty: int
    max_qty: Optional[int]
    price: Decimal


@dataclass(frozen=True)
class ShippingTierRule:
    min_subtotal: Decimal
    max_subtotal: Optional[Decimal]
    shipping_rate: Decimal
    is_active: bool = True


@dataclass
class LineItemInput:
    variant_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    bulk_prices: List[BulkTier] = field(default_factory=list)


@dataclass
class PricedLine:
    variant_id: uuid.UUID
    quantity: int
    unit_price: Decimal  # Regular price, kept for comparison
    total_price: Decimal
    effective_total: Decimal
    bulk_unit_price: Optional[Decimal] = None
    bulk_total_price: Optional[Decimal] = None


@dataclass
class OrderTotals:
    lines: List[PricedLine]
    subtotal: Decimal
    discount_amount: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    fee_base: Decimal
    payment_fee: Decimal
    payment_fee_pct: Optional[Decimal]
    total_amount: Decimal


def find_bulk_tier(bulk_prices: Iterable[Any], quantity: int) -> Optional[Any]:
    """First tier whose min_qty..max_qty (inclusive, None = unbounded) holds quantity."""
    for tier in bulk_prices or []:
        min_qty = int(tier.min_qty)
        max_qty = tier.max_qty
        if quantity >= min_qty and (max_qty is None or quantity <= int(max_qty)):
            return tier
    return None


def price_line_item(item: LineItemInput) -> PricedLine:
    unit_price = to_money(item.unit_price)
    regular_total = to_money(unit_price * item.quantity)

    tier = find_bulk_tier(item.bulk_prices, item.quantity)
    if tier is None:
        return PricedLine(
            variant_id=item.variant_id,
            quantity=item.quantity,
            unit_price=unit_price,
            total_price=regular_total,
            effective_total=regular_total,
        )

    bulk_unit_price = to_money(tier.price)
    bulk_total = to_money(bulk_unit_price * item.quantity)
    return PricedLine(
        variant_id=item.variant_id,
        quantity=item.quantity,
        unit_price=unit_price,
        total_price=regular_total,
        effective_total=bulk_total,
        bulk_unit_price=bulk_unit_price,
        bulk_total_price=bulk_total,
    )


def resolve_discount(
    subtotal: Decimal,
    customer_type: Optional[str],
    explicit_discount: Optional[Any] = None,
    high_value_tiers: Optional[Sequence[str]] = None,
    threshold: Optional[Any] = None,
    rate: Optional[Any] = None,
) -> Decimal:
    """Explicit discount wins when positive; otherwise the high-value customer rule."""
    if explicit_discount is not None and to_money(explicit_discount) > ZERO:
        return to_money(explicit_discount)

    tiers = settings.HIGH_VALUE_DISCOUNT_TIERS if high_value_tiers is None else high_value_tiers
    threshold = to_money(settings.HIGH_VALUE_DISCOUNT_THRESHOLD if threshold is None else threshold)
    rate = Decimal(str(settings.HIGH_VALUE_DISCOUNT_RATE if rate is None else rate))

    if customer_type in tiers and subtotal >= threshold:
        return to_money(subtotal * rate)
    return ZERO


def select_shipping_tier(tiers: Iterable[Any], amount: Decimal) -> Optional[Any]:
    """
    Active tier with the greatest min_subtotal <= amount whose max_subtotal
    is unbounded or strictly greater than amount.
    """
    best = None
    for tier in tiers or []:
        if not getattr(tier, "is_active", True):
            continue
        min_subtotal = to_money(tier.min_subtotal)
        if min_subtotal > amount:
            continue
        if tier.max_subtotal is not None and to_money(tier.max_subtotal) <= amount:
            continue
        if best is None or min_subtotal > to_money(best.min_subtotal):
            best = tier
    return best


def calculate_order_totals(
    items: Sequence[LineItemInput],
    customer_type: Optional[str] = None,
    discount_amount: Optional[Any] = None,
    shipping_amount: Optional[Any] = None,
    tax_amount: Optional[Any] = None,
    shipping_tiers: Iterable[Any] = (),
    payment_fee_pct: Optional[Any] = None,
) -> OrderTotals:
    """Compute authoritative totals for a checkout. Never raises on odd tier tables."""
    lines = [price_line_item(item) for item in items]

    subtotal = ZERO
    for line in lines:
        subtotal = to_money(subtotal + line.effective_total)

    discount = resolve_discount(subtotal, customer_type, discount_amount)
    discounted = to_money(subtotal - discount)

    if shipping_amount is not None:
        shipping = to_money(shipping_amount)
    else:
        tier = select_shipping_tier(shipping_tiers, discounted)
        shipping = to_money(tier.shipping_rate) if tier is not None else ZERO

    tax = to_money(tax_amount)
    fee_base = to_money(discounted + tax + shipping)

    fee_pct = Decimal(str(payment_fee_pct)) if payment_fee_pct else None
    payment_fee = to_money(fee_base * fee_pct / 100) if fee_pct else ZERO
    total = to_money(fee_base + payment_fee)

    return OrderTotals(
        lines=lines,
        subtotal=subtotal,
        discount_amount=discount,
        shipping_amount=shipping,
        tax_amount=tax,
        fee_base=fee_base,
        payment_fee=payment_fee,
        payment_fee_pct=fee_pct,
        total_amount=total,
    )


# ==================== CART UNIT PRICES ====================

def get_pricing_customer_type(customer_type: Optional[str]) -> Optional[str]:
    return PRICING_CUSTOMER_TYPES.get(customer_type, customer_type)


def compute_unit_price(variant: Any, customer_type: Optional[str]) -> Decimal:
    """
    Segment price for the customer's pricing tier, else the variant's base
    price. Non-B2C tiers without a segment price never get the sale price.
    """
    pricing_type = get_pricing_customer_type(customer_type)

    if pricing_type and variant.segment_prices:
        for segment in variant.segment_prices:
            if segment.customer_type == pricing_type:
                sale = to_money(segment.sale_price)
                return sale if sale > ZERO else to_money(segment.regular_price)

    if pricing_type and pricing_type != "B2C":
        return to_money(variant.regular_price)

    sale = to_money(variant.sale_price)
    return sale if sale > ZERO else to_money(variant.regular_price)


def compute_applicable_price(variant: Any, quantity: int, customer_type: Optional[str]) -> Decimal:
    """Bulk tier price when the quantity qualifies, otherwise the segment/base price."""
    tier = find_bulk_tier(variant.bulk_prices, quantity)
    if tier is not None:
        return to_money(tier.price)
    return compute_unit_price(variant, customer_type)
