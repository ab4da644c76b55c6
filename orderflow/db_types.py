"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from decimal import Decimal

from sqlalchemy import Numeric
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# UUID type that works with both databases (CHAR(32) on SQLite)
UUIDType = PG_UUID(as_uuid=True)

# Money columns: two decimal places everywhere
MoneyType = Numeric(12, 2, asdecimal=True)

ZERO = Decimal("0.00")
