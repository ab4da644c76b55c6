"""Inventory models for stock management."""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import UUIDType

if TYPE_CHECKING:
    from orderflow.models.product import Variant
    from orderflow.models.warehouse import Location


class Inventory(Base):
    """
    Stock counters per variant per warehouse.

    reserved_qty may run past quantity on rows that allow selling when out
    of stock (backorders); that is a valid state, not corruption.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint("variant_id", "location_id", name="uq_inventory_variant_location"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    variant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("variants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    location_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("locations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Stock levels
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # On hand
    reserved_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # Committed to open orders
    low_stock_alert: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    sell_when_out_of_stock: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

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
    variant: Mapped["Variant"] = relationship("Variant")
    location: Mapped["Location"] = relationship("Location", back_populates="inventory")

    @property
    def available(self) -> int:
        return max(0, (self.quantity or 0) - (self.reserved_qty or 0))

    def __repr__(self) -> str:
        return f"<Inventory(variant={self.variant_id}, qty={self.quantity}, reserved={self.reserved_qty})>"
