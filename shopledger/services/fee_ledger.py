"""Fee ledger: normalized statement fees and credits keyed by dedup hash.

Inserts are insert-or-ignore on fee_hash, so storing the same normalized
record twice is a no-op the second time. That is what makes re-importing a
whole statement safe.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopledger.core.errors import BatchFailedError
from shopledger.core.logging import get_batch_id, get_logger
from shopledger.core.money import ZERO, to_decimal
from shopledger.db.models import FeeRecord
from shopledger.db.utils import atomic, insert_ignore
from shopledger.domain.fees.classify import FeeType
from shopledger.domain.fees.normalizer import NormalizedFee
from shopledger.domain.finance.categories import Bucket

log = get_logger("shopledger.fee_ledger")

# SQL form of domain.finance.categories.is_credited
CREDITED = or_(
    FeeRecord.is_credit,
    FeeRecord.fee_type == FeeType.ETSY_MISC_CREDIT.value,
    and_(FeeRecord.fee_type == FeeType.VAT_ON_FEES.value, FeeRecord.source_amount > 0),
    func.lower(FeeRecord.description).contains("credit"),
)


@dataclass
class BulkInsertResult:
    inserted: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)


def _values(record: NormalizedFee) -> dict:
    return {
        "fee_hash": record.fee_hash,
        "order_id": record.order_id,
        "fee_type": FeeType(record.fee_type).value,
        "amount": abs(to_decimal(record.amount)),
        "source_amount": to_decimal(record.source_amount),
        "is_credit": bool(record.is_credit),
        "description": record.description or "",
        "charged_date": record.charged_date,
    }


def _check(record: NormalizedFee) -> str | None:
    if not record.fee_hash:
        return "missing fee_hash"
    if to_decimal(record.amount) < 0:
        return f"negative amount for {record.fee_hash[:12]}"
    return None


class FeeLedger:
    """Store and query normalized fee records."""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, record: NormalizedFee) -> int:
        """Insert-or-ignore one record; returns 1 if stored, 0 if already present.

        Does not commit.
        """
        return insert_ignore(self.db, FeeRecord, _values(record), "fee_hash")

    def bulk_insert(self, records: Iterable[NormalizedFee]) -> BulkInsertResult:
        """Insert a batch in one transaction.

        Invalid records are reported in ``errors`` and skipped; a store
        failure rolls back the whole batch.

        Raises:
            BatchFailedError: if the store rejects the batch

        """
        result = BulkInsertResult()
        try:
            with atomic(self.db):
                for record in records:
                    problem = _check(record)
                    if problem:
                        result.errors.append(problem)
                        continue
                    if self.insert(record):
                        result.inserted += 1
                    else:
                        result.duplicates += 1
        except SQLAlchemyError as e:
            log.error("fee_batch_failed", extra={"error": str(e)})
            raise BatchFailedError(get_batch_id() or "fee_bulk_insert", e) from e

        log.info(
            "fee_batch_inserted",
            extra={
                "inserted": result.inserted,
                "duplicates": result.duplicates,
                "errors": len(result.errors),
            },
        )
        return result

    # --- queries -----------------------------------------------------------

    def records_between(self, start: date, end: date) -> list[FeeRecord]:
        stmt = (
            select(FeeRecord)
            .where(FeeRecord.charged_date.between(start, end))
            .order_by(FeeRecord.charged_date, FeeRecord.id)
        )
        return list(self.db.execute(stmt).scalars())

    def sum_by_fee_type(
        self, start: date, end: date, shop_level: bool = False
    ) -> dict[str, Bucket]:
        """Charged and credited totals per fee_type in [start, end].

        shop_level restricts to fees with no order.
        """
        credited = CREDITED.label("credited")
        stmt = (
            select(FeeRecord.fee_type, credited, func.sum(FeeRecord.amount))
            .where(FeeRecord.charged_date.between(start, end))
            .group_by(FeeRecord.fee_type, credited)
        )
        if shop_level:
            stmt = stmt.where(FeeRecord.order_id.is_(None))
        out: dict[str, Bucket] = {}
        for fee_type, is_credit, total in self.db.execute(stmt):
            bucket = out.setdefault(fee_type, Bucket())
            if is_credit:
                bucket.credited += to_decimal(total)
            else:
                bucket.charged += to_decimal(total)
        return out

    def fees_by_order(self, order_ids: Iterable[str] | None = None) -> dict[str, Decimal]:
        """Net fees (charges minus credits) per order; refund records excluded."""
        signed = case((CREDITED, -FeeRecord.amount), else_=FeeRecord.amount)
        stmt = (
            select(FeeRecord.order_id, func.sum(signed))
            .where(FeeRecord.order_id.is_not(None), FeeRecord.fee_type != FeeType.REFUND.value)
            .group_by(FeeRecord.order_id)
        )
        if order_ids is not None:
            stmt = stmt.where(FeeRecord.order_id.in_(list(order_ids)))
        return {order_id: to_decimal(total) for order_id, total in self.db.execute(stmt)}

    def sum_by_order(self, order_id: str) -> Decimal:
        return self.fees_by_order([order_id]).get(order_id, ZERO)

    def sum_shop_level(self, start: date, end: date) -> Bucket:
        """Charged and credited totals for fees with no order in [start, end]."""
        credited = CREDITED.label("credited")
        stmt = (
            select(credited, func.sum(FeeRecord.amount))
            .where(FeeRecord.order_id.is_(None), FeeRecord.charged_date.between(start, end))
            .group_by(credited)
        )
        bucket = Bucket()
        for is_credit, total in self.db.execute(stmt):
            if is_credit:
                bucket.credited += to_decimal(total)
            else:
                bucket.charged += to_decimal(total)
        return bucket

    def refunds_between(self, start: date, end: date) -> list[FeeRecord]:
        """Refund records processed in [start, end], by charged_date."""
        stmt = (
            select(FeeRecord)
            .where(
                FeeRecord.fee_type == FeeType.REFUND.value,
                FeeRecord.charged_date.between(start, end),
            )
            .order_by(FeeRecord.charged_date, FeeRecord.id)
        )
        return list(self.db.execute(stmt).scalars())

