import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database import Base
from orderflow.db_types import UUIDType, MoneyType


class ShippingTier(Base):
    """Flat shipping charge for a discounted-subtotal band [min, max)."""
    __tablename__ = "shipping_tiers"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    min_subtotal: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    max_subtotal: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)  # None = unbounded
    shipping_rate: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<ShippingTier({self.min_subtotal}-{self.max_subtotal} -> {self.shipping_rate})>"
