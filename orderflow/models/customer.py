import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import UUIDType

if TYPE_CHECKING:
    from orderflow.models.address import Address
    from orderflow.models.cart import Cart


class CustomerType(str, Enum):
    """Customer pricing segment."""
    B2C = "B2C"
    B2B = "B2B"
    ENTERPRISE_1 = "ENTERPRISE_1"
    ENTERPRISE_2 = "ENTERPRISE_2"


class Customer(Base):
    """Customer profile; only the fields checkout needs."""
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    customer_type: Mapped[str] = mapped_column(
        String(20),
        default=CustomerType.B2C.value,
        nullable=False,
        comment="B2C, B2B, ENTERPRISE_1, ENTERPRISE_2"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    addresses: Mapped[List["Address"]] = relationship("Address", back_populates="customer")
    carts: Mapped[List["Cart"]] = relationship("Cart", back_populates="customer")

    def __repr__(self) -> str:
        return f"<Customer(email='{self.email}', type='{self.customer_type}')>"
