"""SQL-backed collaborators: catalog read access and order read/write."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shopledger.core.logging import get_logger
from shopledger.core.money import ZERO, to_decimal
from shopledger.db.models import Material, Product, Sale

log = get_logger("shopledger.catalog")

REFUNDED = "refunded"


@dataclass(frozen=True)
class CatalogEntry:
    sku: str
    weight: Decimal | None
    material_id: str | None
    postage_cost: Decimal
    sell_rate_per_unit: Decimal | None


class SqlCatalog:
    """Catalog lookups by SKU."""

    def __init__(self, db: Session):
        self.db = db

    def lookup(self, sku: str) -> CatalogEntry | None:
        stmt = (
            select(Product, Material.sell_rate_per_unit)
            .outerjoin(Material, Material.material_id == Product.material_id)
            .where(Product.sku == sku)
        )
        row = self.db.execute(stmt).first()
        if row is None:
            return None
        product, sell_rate = row
        return CatalogEntry(
            sku=product.sku,
            weight=to_decimal(product.weight) if product.weight is not None else None,
            material_id=product.material_id,
            postage_cost=to_decimal(product.postage_cost),
            sell_rate_per_unit=to_decimal(sell_rate) if sell_rate is not None else None,
        )

    def all_skus(self) -> list[str]:
        return list(self.db.execute(select(Product.sku).order_by(Product.sku)).scalars())


class SqlOrderBook:
    """Order lookups by external (marketplace) order number, refund marking."""

    def __init__(self, db: Session):
        self.db = db

    def find_order_by_external_number(self, number: str) -> str | None:
        stmt = select(Sale.order_id).where(Sale.external_order_number == str(number)).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def mark_refunded(self, order_id: str) -> bool:
        """Set status to refunded and zero the locked-in cost.

        Refunded goods carry no cost. Does not commit; runs inside the
        caller's unit of work.
        """
        result = self.db.execute(
            update(Sale)
            .where(Sale.order_id == order_id)
            .values(status=REFUNDED, cost_at_sale=ZERO)
        )
        if result.rowcount:
            log.info("order_marked_refunded", extra={"order_id": order_id})
        return bool(result.rowcount)
