"""
Payment Service - card checkout orchestration.

One payment attempt, start to finish:
1. Validate input and make sure some warehouse can fulfill at all
2. Duplicate-charge guard (same amount + card suffix within the window)
3. Order snapshot: load the order, or price the active cart in memory
4. Gateway call and response classification
5. Persist: order (if new), Transaction, Payment, OrderNotes
6. Reserve stock once per order (Order.stock_reserved), with an
   emergency fallback when the warehouse-scoped reservation fails

Once the gateway has taken money, later failures never hide the
order/transaction pair; degraded stock handling is reported through
reservation_degraded instead.

States:
    RECEIVED -> {DUPLICATE_REJECTED | GATEWAY_CALLED}
             -> {APPROVED | HELD_PENDING | DECLINED | UNREACHABLE}
             -> {RESERVED | RESERVE_FAILED_FALLBACK_OK | RESERVE_FAILED_FALLBACK_FAILED}
             -> DONE
"""
import logging
import secrets
import string
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orderflow.config import settings
from orderflow.core.exceptions import (
    DuplicateChargeError,
    GatewayUnreachable,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from orderflow.database import custom_json_dumps
from orderflow.models.address import Address, AddressType
from orderflow.models.customer import Customer
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
from orderflow.models.product import Variant
from orderflow.models.shipping import ShippingTier
from orderflow.schemas.checkout import AddressInput, CardPaymentRequest, GatewaySummary, PaymentResult
from orderflow.services.allocation_service import RequiredItem, WarehouseSelector, merge_required_items
from orderflow.services.authorize_net_service import (
    GATEWAY_NAME,
    PROVIDER_NAME,
    AuthorizeNetGateway,
    GatewayAddress,
    GatewayChargeRequest,
    GatewayLineItem,
    GatewayOutcome,
    GatewayResponse,
    PaymentGateway,
    mask_card_number,
)
from orderflow.services.cart_service import CartService
from orderflow.services.pricing_service import (
    BulkTier,
    LineItemInput,
    OrderTotals,
    calculate_order_totals,
    to_money,
)
from orderflow.services.stock_reservation_service import InventoryReservationManager

logger = logging.getLogger(__name__)

GATEWAY_RESPONSE_MAX_CHARS = 95000
UNREACHABLE_REASON = "Failed to reach Authorize.Net"
DEFAULT_FAILURE_REASON = "Payment authorization failed"
PROVENANCE_NOTE = "Order created from cart payment"

ACCEPTED_AVS_CODES = {"Y", "X"}
ACCEPTED_CVV_CODES = {"M"}


class CheckoutState(str, Enum):
    RECEIVED = "RECEIVED"
    DUPLICATE_REJECTED = "DUPLICATE_REJECTED"
    GATEWAY_CALLED = "GATEWAY_CALLED"
    APPROVED = "APPROVED"
    HELD_PENDING = "HELD_PENDING"
    DECLINED = "DECLINED"
    UNREACHABLE = "UNREACHABLE"
    RESERVED = "RESERVED"
    RESERVE_FAILED_FALLBACK_OK = "RESERVE_FAILED_FALLBACK_OK"
    RESERVE_FAILED_FALLBACK_FAILED = "RESERVE_FAILED_FALLBACK_FAILED"
    DONE = "DONE"


@dataclass
class OrderDraft:
    """Order priced from the cart, held in memory until the gateway answers."""
    customer: Customer
    user_id: Optional[uuid.UUID]
    cart_id: uuid.UUID
    totals: OrderTotals
    billing: Dict[str, Any]
    shipping: Dict[str, Any]
    line_items: List[GatewayLineItem] = field(default_factory=list)
    note: Optional[str] = None


def generate_order_number() -> str:
    """ORD-XXXXXXXX-XXXX, uppercase alphanumerics."""
    alphabet = string.ascii_uppercase + string.digits
    head = "".join(secrets.choice(alphabet) for _ in range(8))
    tail = "".join(secrets.choice(alphabet) for _ in range(4))
    return f"ORD-{head}-{tail}"


def generate_ref_id() -> str:
    """Gateway reference id, at most 20 characters."""
    return f"txn-{int(time.time() * 1000) % 10**8:08d}-{secrets.token_hex(2)}"


def format_percentage(pct: Decimal) -> str:
    return format(pct.normalize(), "f")


def build_address_snapshot(
    customer: Customer,
    primary: Optional[AddressInput],
    fallback: Optional[AddressInput] = None,
) -> Dict[str, Any]:
    """Address fields for a new order, falling back to the profile and placeholders."""
    primary = primary or AddressInput()
    fallback = fallback or AddressInput()

    def pick(name: str, default: str = "") -> str:
        return getattr(primary, name) or getattr(fallback, name) or default

    return {
        "first_name": pick("first_name", customer.first_name or "Temp"),
        "last_name": pick("last_name", customer.last_name or "Customer"),
        "company": pick("company", customer.company_name or ""),
        "address_line1": pick("address_line1", "Temporary Address"),
        "address_line2": pick("address_line2", ""),
        "city": pick("city", "Temporary City"),
        "state": pick("state", "CA"),
        "postal_code": pick("postal_code", "00000"),
        "country": pick("country", "US"),
        "phone": pick("phone_number", customer.mobile or ""),
    }


def to_gateway_address(address: Optional[AddressInput], include_phone: bool = True) -> Optional[GatewayAddress]:
    if address is None:
        return None
    return GatewayAddress(
        first_name=address.first_name or "",
        last_name=address.last_name or "",
        company=address.company or "",
        address=address.address_line1 or "",
        city=address.city or "",
        state=address.state or "",
        zip=address.postal_code or "",
        country=address.country or "US",
        phone_number=(address.phone_number or "") if include_phone else "",
    )


def address_destination(address: Optional[Address]) -> Dict[str, Any]:
    """Destination fields of a stored order address for warehouse selection."""
    if address is None:
        return {}
    return {"city": address.city, "state": address.state, "country": address.country}


def gateway_line_item(variant: Optional[Variant], variant_id: uuid.UUID, quantity: int, unit_price: Decimal) -> GatewayLineItem:
    if variant is None:
        return GatewayLineItem(str(variant_id), "Item", "", quantity, to_money(unit_price))
    return GatewayLineItem(
        item_id=variant.sku or str(variant_id),
        name=variant.product_name or variant.name or "Item",
        description=variant.name or "",
        quantity=quantity,
        unit_price=to_money(unit_price),
    )


def summarize(response: Optional[GatewayResponse]) -> Optional[GatewaySummary]:
    if response is None:
        return None
    return GatewaySummary(
        result_code=response.result_code,
        response_code=response.response_code,
        trans_id=response.trans_id,
        auth_code=response.auth_code,
        message=response.message,
        error=response.error,
        avs_result_code=response.avs_result_code,
        cvv_result_code=response.cvv_result_code,
    )


class PaymentOrchestrator:
    """
    Drives one card payment attempt to a conclusive, persisted state.

    Usage:
        orchestrator = PaymentOrchestrator(db, gateway=AuthorizeNetGateway())
        result = await orchestrator.authorize_card(request)
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[PaymentGateway] = None,
        selector: Optional[WarehouseSelector] = None,
        reservations: Optional[InventoryReservationManager] = None,
    ):
        self.db = db
        self.gateway = gateway or AuthorizeNetGateway()
        self.selector = selector or WarehouseSelector(db)
        self.reservations = reservations or InventoryReservationManager(db)
        self.carts = CartService(db)

    # ==================== VALIDATION ====================

    def validate_request(self, request: CardPaymentRequest) -> Decimal:
        """Reject malformed input before any side effect. Returns the amount."""
        try:
            amount = Decimal(str(request.amount))
        except (InvalidOperation, ValueError):
            raise ValidationError("Amount must be a valid decimal")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        if amount.as_tuple().exponent < -2:
            raise ValidationError("Amount must have at most 2 decimal places")

        if request.opaque_data is None:
            if not request.card_number:
                raise ValidationError("Card number is required")
            if not request.card_number.replace(" ", "").isdigit():
                raise ValidationError("Card number must contain only digits")
            if not request.expiration_date:
                raise ValidationError("Expiration date is required")
            if not request.card_code:
                raise ValidationError("Card code (CVV) is required")

        if request.payment_fee_pct is not None and not (0 <= request.payment_fee_pct <= 100):
            raise ValidationError("paymentFeePct must be between 0 and 100")

        for name in ("shipping_amount", "tax_amount", "discount_amount"):
            value = getattr(request, name)
            if value is not None and value < 0:
                raise ValidationError(f"{name} must not be negative")

        if request.order_id is None and request.customer_id is None:
            raise ValidationError("Customer ID required for payment without order")

        return to_money(amount)

    # ==================== DUPLICATE GUARD ====================

    async def find_duplicate_transaction(self, amount: Decimal, card_last_four: str) -> Optional[Transaction]:
        """
        Approximate idempotency check: same amount, same gateway, recent,
        and the stored gateway response mentions the same card suffix.
        """
        window_start = datetime.now(timezone.utc) - timedelta(minutes=settings.DUPLICATE_CHARGE_WINDOW_MINUTES)
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.amount == amount,
                Transaction.payment_gateway_name == GATEWAY_NAME,
                Transaction.created_at >= window_start,
                Transaction.payment_gateway_response.contains(card_last_four),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ==================== SNAPSHOT ====================

    async def load_order(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(
                selectinload(Order.customer),
                selectinload(Order.shipping_address),
                selectinload(Order.items).selectinload(OrderItem.variant),
            )
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def get_active_shipping_tiers(self) -> List[ShippingTier]:
        result = await self.db.execute(
            select(ShippingTier)
            .where(ShippingTier.is_active == True)  # noqa: E712
            .order_by(ShippingTier.min_subtotal)
        )
        return list(result.scalars().all())

    async def build_order_draft(self, request: CardPaymentRequest) -> OrderDraft:
        customer = await self.db.get(Customer, request.customer_id)
        if not customer:
            raise NotFoundError("Customer not found")

        cart = await self.carts.get_active_cart(customer.id)
        if not cart or not cart.items:
            raise ValidationError("Cart is empty")

        inputs = [
            LineItemInput(
                variant_id=item.variant_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                bulk_prices=[
                    BulkTier(min_qty=bp.min_qty, max_qty=bp.max_qty, price=bp.price)
                    for bp in (item.variant.bulk_prices if item.variant else [])
                ],
            )
            for item in cart.items
        ]

        totals = calculate_order_totals(
            inputs,
            customer_type=customer.customer_type,
            discount_amount=request.discount_amount,
            shipping_amount=request.shipping_amount,
            tax_amount=request.tax_amount,
            shipping_tiers=await self.get_active_shipping_tiers(),
            payment_fee_pct=request.payment_fee_pct,
        )

        return OrderDraft(
            customer=customer,
            user_id=request.user_id,
            cart_id=cart.id,
            totals=totals,
            billing=build_address_snapshot(customer, request.billing_address),
            shipping=build_address_snapshot(customer, request.shipping_address, request.billing_address),
            line_items=[
                gateway_line_item(item.variant, item.variant_id, item.quantity, item.unit_price)
                for item in cart.items
            ],
            note=request.note,
        )

    def build_charge_request(
        self,
        request: CardPaymentRequest,
        amount: Decimal,
        order: Optional[Order],
        draft: Optional[OrderDraft],
    ) -> GatewayChargeRequest:
        if draft is not None:
            line_items = draft.line_items
            tax, shipping = draft.totals.tax_amount, draft.totals.shipping_amount
            customer_id, email = draft.customer.id, draft.customer.email
        else:
            line_items = [
                gateway_line_item(item.variant, item.variant_id, item.quantity, item.unit_price)
                for item in order.items
            ]
            tax, shipping = order.tax_amount, order.shipping_amount
            customer_id = order.customer_id
            email = order.customer.email if order.customer else None

        opaque = None
        if request.opaque_data is not None:
            opaque = {
                "dataDescriptor": request.opaque_data.data_descriptor,
                "dataValue": request.opaque_data.data_value,
            }

        return GatewayChargeRequest(
            amount=amount,
            card_number=request.card_number,
            expiration_date=request.expiration_date,
            card_code=request.card_code,
            opaque_data=opaque,
            line_items=line_items,
            tax_amount=to_money(tax),
            shipping_amount=to_money(shipping),
            customer_id=str(customer_id) if customer_id else None,
            customer_email=request.customer_email or email,
            bill_to=to_gateway_address(request.billing_address),
            ship_to=to_gateway_address(request.shipping_address, include_phone=False),
            customer_ip=request.customer_ip or "127.0.0.1",
            ref_id=generate_ref_id(),
        )

    # ==================== PERSISTENCE ====================

    async def create_order(self, draft: OrderDraft, status: OrderStatus) -> Order:
        """Addresses, order, items, provenance note and fee note. Caller commits."""
        billing = Address(customer_id=draft.customer.id, type=AddressType.BILLING.value, **draft.billing)
        shipping = Address(customer_id=draft.customer.id, type=AddressType.SHIPPING.value, **draft.shipping)
        self.db.add_all([billing, shipping])
        await self.db.flush()

        totals = draft.totals
        order = Order(
            order_number=generate_order_number(),
            customer_id=draft.customer.id,
            user_id=draft.user_id,
            status=status.value,
            stock_reserved=False,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            shipping_amount=totals.shipping_amount,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            billing_address_id=billing.id,
            shipping_address_id=shipping.id,
        )
        self.db.add(order)
        await self.db.flush()

        for line in totals.lines:
            self.db.add(
                OrderItem(
                    order_id=order.id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total_price,
                    bulk_unit_price=line.bulk_unit_price,
                    bulk_total_price=line.bulk_total_price,
                )
            )

        self.add_note(order.id, draft.note or PROVENANCE_NOTE, draft.user_id)
        if totals.payment_fee_pct:
            self.add_note(
                order.id,
                f"Credit card fee applied: {format_percentage(totals.payment_fee_pct)}% = "
                f"${totals.payment_fee:.2f} (included in total)",
                draft.user_id,
            )

        logger.info(f"Created order {order.order_number} ({status.value}) for customer {draft.customer.id}")
        return order

    def add_note(self, order_id: uuid.UUID, text: str, user_id: Optional[uuid.UUID] = None) -> None:
        self.db.add(OrderNote(order_id=order_id, user_id=user_id, note=text, is_internal=True))

    def add_payment_rows(
        self,
        order_id: uuid.UUID,
        amount: Decimal,
        status: PaymentStatus,
        gateway_transaction_id: Optional[str],
        gateway_blob: str,
    ) -> Transaction:
        transaction = Transaction(
            order_id=order_id,
            amount=amount,
            payment_status=status.value,
            payment_gateway_name=GATEWAY_NAME,
            payment_gateway_transaction_id=gateway_transaction_id,
            payment_gateway_response=gateway_blob[:GATEWAY_RESPONSE_MAX_CHARS],
        )
        self.db.add(transaction)
        self.db.add(
            Payment(
                order_id=order_id,
                payment_method=PaymentMethod.CREDIT_CARD.value,
                provider=PROVIDER_NAME,
                transaction_id=gateway_transaction_id,
                amount=amount,
                currency=settings.PAYMENT_CURRENCY,
                status=status.value,
                paid_at=datetime.now(timezone.utc) if status == PaymentStatus.COMPLETED else None,
            )
        )
        return transaction

    async def record_failure(
        self,
        amount: Decimal,
        order: Optional[Order],
        draft: Optional[OrderDraft],
        gateway_transaction_id: Optional[str],
        gateway_blob: str,
        note: str,
        user_id: Optional[uuid.UUID],
    ) -> tuple:
        """Order in PENDING plus FAILED Transaction, FAILED Payment and an explanatory note."""
        try:
            if order is None:
                order = await self.create_order(draft, OrderStatus.PENDING)
            elif order.status != OrderStatus.PENDING.value:
                order.status = OrderStatus.PENDING.value

            transaction = self.add_payment_rows(
                order.id, amount, PaymentStatus.FAILED, gateway_transaction_id, gateway_blob
            )
            self.add_note(order.id, note, user_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record payment failure: {e}")
            raise PersistenceError("Failed to record payment failure") from e

        return order, transaction

    # ==================== RESERVATION ====================

    async def reserve_stock(
        self,
        destination: Dict[str, Any],
        items: List[RequiredItem],
        trail: List[str],
    ) -> CheckoutState:
        """Reserve at the selected warehouse, falling back to any row per variant."""
        try:
            selection = await self.selector.find_optimal_warehouse(
                destination.get("city"),
                destination.get("state"),
                destination.get("country"),
                items,
            )
            if not selection.stock_available:
                logger.warning(
                    f"Reserving at {selection.warehouse.name} without sufficient stock (oversell)"
                )
            await self.reservations.reserve_from_warehouse(selection.warehouse.id, items)
            trail.append(CheckoutState.RESERVED.value)
            return CheckoutState.RESERVED
        except Exception as e:
            logger.error(f"Warehouse reservation failed, attempting emergency reservation: {e}")
            await self.db.rollback()

        try:
            outcome = await self.reservations.emergency_reserve(items)
        except Exception:
            logger.exception("Emergency reservation also failed")
            trail.append(CheckoutState.RESERVE_FAILED_FALLBACK_FAILED.value)
            return CheckoutState.RESERVE_FAILED_FALLBACK_FAILED

        if outcome.complete:
            trail.append(CheckoutState.RESERVE_FAILED_FALLBACK_OK.value)
            return CheckoutState.RESERVE_FAILED_FALLBACK_OK

        logger.error(
            f"Emergency reservation incomplete: missing={outcome.missing_variants} "
            f"failed={outcome.failed_variants}"
        )
        trail.append(CheckoutState.RESERVE_FAILED_FALLBACK_FAILED.value)
        return CheckoutState.RESERVE_FAILED_FALLBACK_FAILED

    async def mark_stock_reserved(self, order_id: uuid.UUID) -> None:
        """Flag the order so later payments on it do not reserve again."""
        try:
            await self.db.execute(
                update(Order).where(Order.id == order_id).values(stock_reserved=True)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Stock reserved for order {order_id} but the flag could not be saved: {e}")

    # ==================== MAIN FLOW ====================

    async def authorize_card(self, request: CardPaymentRequest) -> PaymentResult:
        """
        Charge a card for an order or the active cart.

        Returns:
            PaymentResult; success is False for declined/unreachable attempts

        Raises:
            ValidationError, NoWarehouseAvailable, DuplicateChargeError,
            NotFoundError, GatewayNotConfigured, PersistenceError
        """
        trail: List[str] = [CheckoutState.RECEIVED.value]

        amount = self.validate_request(request)
        await self.selector.ensure_active_warehouses()

        card_last_four = None
        if request.card_number:
            card_last_four = request.card_number.replace(" ", "")[-4:]
            duplicate = await self.find_duplicate_transaction(amount, card_last_four)
            if duplicate:
                trail.append(CheckoutState.DUPLICATE_REJECTED.value)
                logger.warning(
                    f"Duplicate charge rejected: amount={amount} card={mask_card_number(request.card_number)} "
                    f"matches transaction {duplicate.id}; states={trail}"
                )
                raise DuplicateChargeError(
                    "Duplicate transaction detected. Please wait a moment before trying again.",
                    details={"transaction_id": str(duplicate.id)},
                )

        order: Optional[Order] = None
        draft: Optional[OrderDraft] = None
        if request.order_id:
            order = await self.load_order(request.order_id)
        else:
            draft = await self.build_order_draft(request)
            if draft.totals.total_amount != amount:
                logger.warning(
                    f"Charged amount {amount} differs from computed cart total {draft.totals.total_amount}"
                )

        charge = self.build_charge_request(request, amount, order, draft)
        trail.append(CheckoutState.GATEWAY_CALLED.value)

        try:
            response = await self.gateway.charge(charge)
        except GatewayUnreachable as e:
            trail.append(CheckoutState.UNREACHABLE.value)
            details = str(e.details.get("error", e)) if e.details else str(e)
            order, transaction = await self.record_failure(
                amount,
                order,
                draft,
                gateway_transaction_id=None,
                gateway_blob=custom_json_dumps({"error": UNREACHABLE_REASON, "details": details}),
                note=f"{UNREACHABLE_REASON}: {details}",
                user_id=request.user_id,
            )
            trail.append(CheckoutState.DONE.value)
            logger.error(f"Payment for order {order.order_number} unreachable; states={trail}")
            return PaymentResult(
                success=False,
                outcome=CheckoutState.UNREACHABLE.value,
                error=UNREACHABLE_REASON,
                order_id=order.id,
                order_number=order.order_number,
                transaction_id=transaction.id,
                state_trail=trail,
            )

        outcome = response.outcome
        gateway_blob = custom_json_dumps(response.raw)

        if outcome == GatewayOutcome.DECLINED:
            trail.append(CheckoutState.DECLINED.value)
            reason = response.error or response.message or DEFAULT_FAILURE_REASON
            order, transaction = await self.record_failure(
                amount,
                order,
                draft,
                gateway_transaction_id=response.trans_id,
                gateway_blob=gateway_blob,
                note=f"Authorize.Net payment failed: {reason}",
                user_id=request.user_id,
            )
            trail.append(CheckoutState.DONE.value)
            logger.warning(
                f"Payment declined for order {order.order_number}: {reason} "
                f"(responseCode={response.response_code}); states={trail}"
            )
            return PaymentResult(
                success=False,
                outcome=CheckoutState.DECLINED.value,
                error=reason,
                gateway_response=summarize(response),
                order_id=order.id,
                order_number=order.order_number,
                transaction_id=transaction.id,
                gateway_transaction_id=response.trans_id,
                state_trail=trail,
            )

        held = outcome == GatewayOutcome.HELD_PENDING
        trail.append(CheckoutState.HELD_PENDING.value if held else CheckoutState.APPROVED.value)
        payment_status = PaymentStatus.PENDING if held else PaymentStatus.COMPLETED
        order_status = OrderStatus.PENDING if held else OrderStatus.PROCESSING

        fraud_flags = []
        if response.avs_result_code and response.avs_result_code not in ACCEPTED_AVS_CODES:
            fraud_flags.append(f"AVS result {response.avs_result_code}")
        if response.cvv_result_code and response.cvv_result_code not in ACCEPTED_CVV_CODES:
            fraud_flags.append(f"CVV result {response.cvv_result_code}")

        try:
            if order is None:
                order = await self.create_order(draft, order_status)
                await self.carts.clear_items(draft.cart_id)
                destination = draft.shipping
                items = merge_required_items(draft.totals.lines)
            else:
                order.status = order_status.value
                destination = address_destination(order.shipping_address)
                items = merge_required_items(order.items)

            transaction = self.add_payment_rows(
                order.id, amount, payment_status, response.trans_id, gateway_blob
            )
            if fraud_flags:
                logger.warning(
                    f"Fraud review for order {order.order_number}: {', '.join(fraud_flags)} "
                    f"(transId {response.trans_id})"
                )
                self.add_note(
                    order.id,
                    f"Fraud review: {', '.join(fraud_flags)} on transaction {response.trans_id}",
                    request.user_id,
                )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(
                f"Charge {response.trans_id} succeeded but order records could not be saved"
            )
            raise PersistenceError(
                "Payment captured but order records could not be saved",
                details={"gateway_transaction_id": response.trans_id},
            ) from e

        # Plain values from here on; a rollback during reservation expires ORM state
        order_id, order_number, transaction_id = order.id, order.order_number, transaction.id
        already_reserved = order.stock_reserved

        reservation_degraded = False
        if already_reserved:
            logger.info(f"Stock already reserved for order {order_number}; skipping reservation")
        else:
            reservation = await self.reserve_stock(destination, items, trail)
            reservation_degraded = reservation != CheckoutState.RESERVED
            if reservation != CheckoutState.RESERVE_FAILED_FALLBACK_FAILED:
                await self.mark_stock_reserved(order_id)

        trail.append(CheckoutState.DONE.value)
        logger.info(
            f"Payment {payment_status.value} for order {order_number} "
            f"(transId {response.trans_id}); states={trail}"
        )

        return PaymentResult(
            success=True,
            outcome=CheckoutState.HELD_PENDING.value if held else CheckoutState.APPROVED.value,
            gateway_response=summarize(response),
            order_id=order_id,
            order_number=order_number,
            transaction_id=transaction_id,
            gateway_transaction_id=response.trans_id,
            auth_code=response.auth_code,
            reservation_degraded=reservation_degraded,
            state_trail=trail,
        )
