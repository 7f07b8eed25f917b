"""Cost at time of sale.

Resolution order for (sku, transaction date), each tier consulted only when
the previous yields nothing:

1. SKU supplier-cost override effective on or before the date
2. catalog weight x material cost as of the date
3. zero

``record_sale`` is the only caller that persists the result: a sale's
cost_at_sale is resolved once, when the sale is first recorded, and later
cost updates never touch it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from shopledger.core.logging import get_logger
from shopledger.core.metrics import sales_recorded_total
from shopledger.core.money import ZERO, to_decimal
from shopledger.db.models import Sale
from shopledger.db.utils import atomic
from shopledger.domain.pricing.calculator import cost_of_item
from shopledger.services.catalog import SqlCatalog
from shopledger.services.cost_ledger import CostLedger, SubjectKind

log = get_logger("shopledger.cost_resolver")


class CostSource(str, Enum):
    SKU_OVERRIDE = "sku_override"
    MATERIAL = "material"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedCost:
    unit_cost: Decimal
    source: CostSource


@dataclass(frozen=True)
class RecordedSale:
    order_id: str
    sku: str
    quantity: int
    cost_at_sale: Decimal
    cost_source: str
    created: bool


def resolve_cost_at_sale(
    db: Session, sku: str, tx_date: date, catalog: SqlCatalog | None = None
) -> ResolvedCost:
    """Per-item cost of ``sku`` as of ``tx_date``."""
    override = CostLedger(db, SubjectKind.SKU).get_as_of(sku, tx_date)
    if override is not None:
        return ResolvedCost(override.cost_per_unit, CostSource.SKU_OVERRIDE)

    entry = (catalog or SqlCatalog(db)).lookup(sku)
    if entry is not None and entry.material_id and entry.weight is not None:
        material = CostLedger(db, SubjectKind.MATERIAL).get_as_of(entry.material_id, tx_date)
        if material is not None:
            return ResolvedCost(
                cost_of_item(entry.weight, material.cost_per_unit), CostSource.MATERIAL
            )

    return ResolvedCost(ZERO, CostSource.NONE)


def record_sale(
    db: Session,
    *,
    order_id: str,
    sku: str,
    order_date: date,
    sale_price: Decimal,
    quantity: int = 1,
    tax_amount: Decimal = ZERO,
    external_order_number: str | None = None,
    status: str = "paid",
    catalog: SqlCatalog | None = None,
) -> RecordedSale:
    """Persist a sale with its locked-in cost.

    Recording an order_id that already exists returns the stored sale
    unchanged; its cost is never re-resolved.
    """
    existing = db.execute(select(Sale).where(Sale.order_id == order_id)).scalar_one_or_none()
    if existing is not None:
        return RecordedSale(
            order_id=existing.order_id,
            sku=existing.sku,
            quantity=existing.quantity,
            cost_at_sale=to_decimal(existing.cost_at_sale),
            cost_source=existing.cost_source,
            created=False,
        )

    resolved = resolve_cost_at_sale(db, sku, order_date, catalog)
    cost_at_sale = resolved.unit_cost * (quantity or 1)

    with atomic(db):
        db.add(
            Sale(
                order_id=order_id,
                external_order_number=external_order_number,
                sku=sku,
                quantity=quantity,
                order_date=order_date,
                sale_price=to_decimal(sale_price),
                tax_amount=to_decimal(tax_amount),
                status=status,
                cost_at_sale=cost_at_sale,
                cost_source=resolved.source.value,
            )
        )

    sales_recorded_total.labels(cost_source=resolved.source.value).inc()
    log.info(
        "sale_recorded",
        extra={
            "order_id": order_id,
            "sku": sku,
            "cost_at_sale": cost_at_sale,
            "cost_source": resolved.source.value,
        },
    )
    return RecordedSale(
        order_id=order_id,
        sku=sku,
        quantity=quantity,
        cost_at_sale=cost_at_sale,
        cost_source=resolved.source.value,
        created=True,
    )
