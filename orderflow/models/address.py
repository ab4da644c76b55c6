import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import UUIDType

if TYPE_CHECKING:
    from orderflow.models.customer import Customer


class AddressType(str, Enum):
    BILLING = "BILLING"
    SHIPPING = "SHIPPING"


class Address(Base):
    """
    Address snapshot.

    Orders point at rows copied at order creation time, so later edits to a
    customer's profile never rewrite where a past order was shipped.
    """
    __tablename__ = "addresses"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    type: Mapped[str] = mapped_column(String(20), default=AddressType.SHIPPING.value, nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(100), default="US", nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    customer: Mapped[Optional["Customer"]] = relationship("Customer", back_populates="addresses")

    def __repr__(self) -> str:
        return f"<Address({self.city}, {self.state}, {self.country})>"
