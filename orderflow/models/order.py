import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import UUIDType, MoneyType, ZERO

if TYPE_CHECKING:
    from orderflow.models.address import Address
    from orderflow.models.customer import Customer
    from orderflow.models.product import Variant


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "PENDING"          # Created, payment not settled
    PROCESSING = "PROCESSING"    # Paid, awaiting fulfillment
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Status shared by Transaction and Payment rows."""
    PENDING = "PENDING"      # Authorized but held for review / settlement
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "CREDIT_CARD"


class Order(Base):
    """
    Order header.
    Created at most once per payment-attempt sequence; retries reuse it.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_customer_created', 'customer_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Order Identification
    order_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    # Customer
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="PENDING, PROCESSING, SHIPPED, DELIVERED, CANCELLED"
    )
    stock_reserved: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Set once inventory has been reserved for this order"
    )

    # Pricing (USD)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, comment="Sum of item totals")
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=ZERO, nullable=False)
    shipping_amount: Mapped[Decimal] = mapped_column(MoneyType, default=ZERO, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=ZERO, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, comment="Final amount charged")

    # Address snapshots
    billing_address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True
    )
    shipping_address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer")
    billing_address: Mapped[Optional["Address"]] = relationship("Address", foreign_keys=[billing_address_id])
    shipping_address: Mapped[Optional["Address"]] = relationship("Address", foreign_keys=[shipping_address_id])
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan"
    )
    notes: Mapped[List["OrderNote"]] = relationship(
        "OrderNote",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderNote.created_at"
    )

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    """Order line item. Never edited after the order is created."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    variant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("variants.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Quantity & Pricing (regular price kept for comparison with bulk price)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    bulk_unit_price: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    bulk_total_price: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")
    variant: Mapped["Variant"] = relationship("Variant")

    def __repr__(self) -> str:
        return f"<OrderItem(variant={self.variant_id}, qty={self.quantity})>"


class OrderNote(Base):
    """Human-readable audit trail entry for an order."""
    __tablename__ = "order_notes"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="notes")


class Transaction(Base):
    """
    Gateway ledger row. Append-only: never updated after insert.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        Index('ix_transaction_duplicate_guard', 'amount', 'payment_gateway_name', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="PENDING, COMPLETED, FAILED"
    )
    payment_gateway_name: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_gateway_transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    # Serialized diagnostic blob, truncated
    payment_gateway_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Transaction(amount={self.amount}, status='{self.payment_status}')>"


class Payment(Base):
    """Payment attempt record. Append-only, one row per attempt."""
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    payment_method: Mapped[str] = mapped_column(String(50), default=PaymentMethod.CREDIT_CARD.value, nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="PENDING, COMPLETED, FAILED"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Payment(amount={self.amount}, status='{self.status}')>"
