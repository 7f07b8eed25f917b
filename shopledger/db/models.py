"""SQLAlchemy ORM models for the pricing and fee reconciliation engine.

This module defines the database schema for:
- Catalog reference data (Materials, Products)
- Sales with their locked-in cost at time of sale
- Cost history (append-only, per material or per SKU)
- Fee ledger (normalized statement fees/credits, unique on fee_hash)
- Import period locks

Money columns are Numeric and surface as Decimal in Python.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Per-unit costs can be fractions of a penny per gram, amounts are cents.
COST = Numeric(18, 6)
MONEY = Numeric(14, 4)
WEIGHT = Numeric(12, 3)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Catalog
# =============================================================================


class Material(Base):
    """Raw material with its selling rate per unit of weight.

    The purchase cost of a material is not stored here: it lives in
    cost_history under subject_kind="material".
    """

    __tablename__ = "materials"

    material_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    sell_rate_per_unit: Mapped[Decimal | None] = mapped_column(COST, nullable=True)


class Product(Base):
    """Catalog entry keyed by SKU."""

    __tablename__ = "products"

    sku: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    weight: Mapped[Decimal | None] = mapped_column(WEIGHT, nullable=True)  # grams
    material_id: Mapped[str | None] = mapped_column(
        ForeignKey("materials.material_id", ondelete="SET NULL"), nullable=True, index=True
    )
    postage_cost: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))


class Sale(Base):
    """A marketplace order line.

    cost_at_sale is resolved once when the sale is recorded and never
    recalculated; a refund zeroes it.
    """

    __tablename__ = "sales"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    external_order_number: Mapped[str | None] = mapped_column(
        String(32), nullable=True, unique=True
    )
    sku: Mapped[str] = mapped_column(String(64), index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    order_date: Mapped[date] = mapped_column(Date, index=True)
    sale_price: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), default="paid")
    cost_at_sale: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    cost_source: Mapped[str] = mapped_column(String(20), default="none")


# =============================================================================
# Ledgers
# =============================================================================


class CostHistory(Base):
    """Append-only cost series per subject.

    subject_kind is "material" (cost per unit of weight) or "sku" (supplier
    cost override per item). At most one row per subject has is_current,
    enforced by a partial unique index.
    """

    __tablename__ = "cost_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subject_kind: Mapped[str] = mapped_column(String(16))
    subject_id: Mapped[str] = mapped_column(String(64))
    cost_per_unit: Mapped[Decimal] = mapped_column(COST)
    effective_date: Mapped[date] = mapped_column(Date)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False)
    reason: Mapped[str] = mapped_column(String(255), default="Price update")
    supplier_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_cost_subject_date", "subject_kind", "subject_id", "effective_date"),
        Index(
            "uq_cost_one_current",
            "subject_kind",
            "subject_id",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )


class FeeRecord(Base):
    """Normalized statement fee or credit.

    amount is always >= 0; direction is carried by is_credit. source_amount
    keeps the signed value as printed on the statement.
    """

    __tablename__ = "fee_ledger"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    fee_hash: Mapped[str] = mapped_column(String(64), unique=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    fee_type: Mapped[str] = mapped_column(String(32), index=True)
    amount: Mapped[Decimal] = mapped_column(MONEY)
    source_amount: Mapped[Decimal] = mapped_column(MONEY)
    is_credit: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[str] = mapped_column(String(500), default="")
    charged_date: Mapped[date] = mapped_column(Date, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("ix_fee_type_date", "fee_type", "charged_date"),)


class ImportLock(Base):
    """Coarse guard against re-importing a whole statement period."""

    __tablename__ = "import_locks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(50))
    period: Mapped[str] = mapped_column(String(16))  # "YYYY-MM"
    locked_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    locked_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (UniqueConstraint("source", "period", name="uq_lock_source_period"),)
