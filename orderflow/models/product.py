"""Product variant pricing models."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import UUIDType, MoneyType, ZERO


class Variant(Base):
    """Sellable product variant (one SKU)."""
    __tablename__ = "variants"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    regular_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    sale_price: Mapped[Decimal] = mapped_column(MoneyType, default=ZERO, nullable=False)

    # Shipping weight per unit
    weight_oz: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=ZERO, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    bulk_prices: Mapped[List["BulkPrice"]] = relationship(
        "BulkPrice",
        back_populates="variant",
        cascade="all, delete-orphan",
        order_by="BulkPrice.min_qty"
    )
    segment_prices: Mapped[List["SegmentPrice"]] = relationship(
        "SegmentPrice",
        back_populates="variant",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Variant(sku='{self.sku}')>"


class BulkPrice(Base):
    """Quantity band that overrides the unit price: min_qty..max_qty inclusive."""
    __tablename__ = "bulk_prices"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    variant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    min_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    max_qty: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # None = unbounded
    price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    variant: Mapped["Variant"] = relationship("Variant", back_populates="bulk_prices")

    def __repr__(self) -> str:
        return f"<BulkPrice({self.min_qty}-{self.max_qty} @ {self.price})>"


class SegmentPrice(Base):
    """Price override for one customer pricing tier."""
    __tablename__ = "segment_prices"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    variant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    customer_type: Mapped[str] = mapped_column(String(20), nullable=False)
    regular_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    sale_price: Mapped[Decimal] = mapped_column(MoneyType, default=ZERO, nullable=False)

    variant: Mapped["Variant"] = relationship("Variant", back_populates="segment_prices")
