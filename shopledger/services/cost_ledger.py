"""Cost ledger: append-only cost history per subject.

A subject is a material code (cost per unit of weight) or a SKU (supplier
cost override per item). Each subject has an immutable series of records;
exactly one of them, the most recently inserted, is flagged current.

Supersede-then-insert runs as one transaction. The partial unique index on
(subject_kind, subject_id) WHERE is_current makes a lost same-subject race
fail with IntegrityError instead of leaving two current rows; the update is
then retried from scratch. Different subjects never contend.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopledger.core.config import get_settings
from shopledger.core.errors import CostUpdateConflictError
from shopledger.core.logging import get_logger
from shopledger.core.metrics import cost_update_conflicts_total, cost_updates_total
from shopledger.core.money import ZERO, to_decimal
from shopledger.db.models import CostHistory
from shopledger.db.utils import atomic

log = get_logger("shopledger.cost_ledger")

T = TypeVar("T")


class SubjectKind(str, Enum):
    MATERIAL = "material"
    SKU = "sku"


@dataclass(frozen=True)
class CostRecord:
    """Immutable view of one cost_history row."""

    id: int
    subject_kind: str
    subject_id: str
    cost_per_unit: Decimal
    effective_date: date
    is_current: bool
    reason: str
    supplier_name: str | None
    created_at: datetime | None

    @classmethod
    def from_row(cls, row: CostHistory) -> CostRecord:
        return cls(
            id=row.id,
            subject_kind=row.subject_kind,
            subject_id=row.subject_id,
            cost_per_unit=to_decimal(row.cost_per_unit),
            effective_date=row.effective_date,
            is_current=bool(row.is_current),
            reason=row.reason,
            supplier_name=row.supplier_name,
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class CostUpdate:
    subject_id: str
    new_cost: Decimal
    reason: str = "Price update"
    effective_date: date | None = None
    supplier_name: str | None = None


@dataclass(frozen=True)
class CostChange:
    """Comparison of the cost N days ago against the current cost."""

    subject_id: str
    period_days: int
    sufficient_history: bool
    old_cost: Decimal | None = None
    current_cost: Decimal | None = None
    change_amount: Decimal | None = None
    change_percent: Decimal | None = None
    trend: str | None = None  # "up" | "down" | "stable"
    message: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_date(value: date | datetime | None) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    return value


class CostLedger:
    """Cost history for one subject kind."""

    def __init__(
        self,
        db: Session,
        kind: SubjectKind = SubjectKind.MATERIAL,
        max_attempts: int | None = None,
    ):
        self.db = db
        self.kind = SubjectKind(kind)
        self.max_attempts = max_attempts or get_settings().cost_update_max_attempts

    def _subject(self, subject_id: str):
        return (CostHistory.subject_kind == self.kind.value, CostHistory.subject_id == subject_id)

    # --- lookups -----------------------------------------------------------

    def get_current(self, subject_id: str) -> CostRecord | None:
        """The record flagged current, or None for an unknown subject."""
        stmt = select(CostHistory).where(*self._subject(subject_id), CostHistory.is_current)
        row = self.db.execute(stmt).scalar_one_or_none()
        return CostRecord.from_row(row) if row else None

    def get_as_of(self, subject_id: str, as_of: date | datetime) -> CostRecord | None:
        """Record with the greatest effective_date <= as_of (latest insert wins ties)."""
        stmt = (
            select(CostHistory)
            .where(*self._subject(subject_id), CostHistory.effective_date <= _as_date(as_of))
            .order_by(CostHistory.effective_date.desc(), CostHistory.id.desc())
            .limit(1)
        )
        row = self.db.execute(stmt).scalar_one_or_none()
        return CostRecord.from_row(row) if row else None

    def history(self, subject_id: str) -> list[CostRecord]:
        """Full series, most recent effective_date first."""
        stmt = (
            select(CostHistory)
            .where(*self._subject(subject_id))
            .order_by(CostHistory.effective_date.desc(), CostHistory.id.desc())
        )
        return [CostRecord.from_row(r) for r in self.db.execute(stmt).scalars()]

    def changes_between(self, subject_id: str, start: date, end: date) -> list[CostRecord]:
        """Records with start <= effective_date <= end, most recent first."""
        stmt = (
            select(CostHistory)
            .where(*self._subject(subject_id), CostHistory.effective_date.between(start, end))
            .order_by(CostHistory.effective_date.desc(), CostHistory.id.desc())
        )
        return [CostRecord.from_row(r) for r in self.db.execute(stmt).scalars()]

    def average_cost(self, subject_id: str, start: date, end: date) -> Decimal:
        """Arithmetic mean of cost_per_unit for records effective in range; 0 if none."""
        costs = [r.cost_per_unit for r in self.changes_between(subject_id, start, end)]
        if not costs:
            return ZERO
        return sum(costs, ZERO) / len(costs)

    def all_current(self) -> list[CostRecord]:
        """Snapshot of every subject's current cost."""
        stmt = (
            select(CostHistory)
            .where(CostHistory.subject_kind == self.kind.value, CostHistory.is_current)
            .order_by(CostHistory.subject_id)
        )
        return [CostRecord.from_row(r) for r in self.db.execute(stmt).scalars()]

    def change_over_window(
        self, subject_id: str, days: int | None = None, today: date | None = None
    ) -> CostChange:
        """Compare the cost as of ``today - days`` with the current cost."""
        days = days if days is not None else get_settings().cost_change_window_days
        today = today or date.today()

        old = self.get_as_of(subject_id, today - timedelta(days=days))
        current = self.get_current(subject_id)
        if old is None or current is None:
            return CostChange(
                subject_id=subject_id,
                period_days=days,
                sufficient_history=False,
                message="Insufficient history",
            )

        change = current.cost_per_unit - old.cost_per_unit
        percent = (change / old.cost_per_unit * 100) if old.cost_per_unit else None
        trend = "up" if change > 0 else "down" if change < 0 else "stable"
        return CostChange(
            subject_id=subject_id,
            period_days=days,
            sufficient_history=True,
            old_cost=old.cost_per_unit,
            current_cost=current.cost_per_unit,
            change_amount=change,
            change_percent=percent,
            trend=trend,
        )

    # --- writes ------------------------------------------------------------

    def _supersede_and_insert(self, upd: CostUpdate) -> CostRecord:
        # Row lock on the current record (PostgreSQL); SQLite serializes writers itself
        self.db.execute(
            select(CostHistory.id)
            .where(*self._subject(upd.subject_id), CostHistory.is_current)
            .with_for_update()
        ).all()
        self.db.execute(
            update(CostHistory)
            .where(*self._subject(upd.subject_id), CostHistory.is_current)
            .values(is_current=False)
        )
        row = CostHistory(
            subject_kind=self.kind.value,
            subject_id=upd.subject_id,
            cost_per_unit=to_decimal(upd.new_cost),
            effective_date=_as_date(upd.effective_date),
            is_current=True,
            reason=upd.reason,
            supplier_name=upd.supplier_name,
            created_at=_utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return CostRecord.from_row(row)

    def _with_retry(self, subject_label: str, work: Callable[[], T]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                with atomic(self.db):
                    return work()
            except IntegrityError:
                cost_update_conflicts_total.inc()
                log.warning(
                    "cost_update_conflict",
                    extra={"kind": self.kind.value, "subject": subject_label, "attempt": attempt},
                )
                if attempt >= self.max_attempts:
                    cost_updates_total.labels(subject_kind=self.kind.value, status="conflict").inc()
                    raise CostUpdateConflictError(self.kind.value, subject_label, attempt)

    def set_cost(
        self,
        subject_id: str,
        new_cost: Decimal,
        reason: str = "Price update",
        effective_date: date | datetime | None = None,
        supplier_name: str | None = None,
    ) -> CostRecord:
        """Supersede the current record and insert ``new_cost`` as current.

        Negative costs are rejected upstream (services.validators), not here.

        Raises:
            CostUpdateConflictError: if same-subject races exhaust the retry budget

        """
        upd = CostUpdate(subject_id, new_cost, reason, _as_date(effective_date), supplier_name)
        record = self._with_retry(subject_id, lambda: self._supersede_and_insert(upd))

        cost_updates_total.labels(subject_kind=self.kind.value, status="success").inc()
        log.info(
            "cost_updated",
            extra={
                "kind": self.kind.value,
                "subject": subject_id,
                "cost": record.cost_per_unit,
                "effective_date": record.effective_date,
                "reason": reason,
            },
        )
        return record

    def bulk_set_costs(self, updates: Iterable[CostUpdate]) -> list[CostRecord]:
        """Apply several updates in one transaction (all or nothing)."""
        updates = list(updates)
        label = ",".join(u.subject_id for u in updates)
        records = self._with_retry(
            label, lambda: [self._supersede_and_insert(u) for u in updates]
        )
        cost_updates_total.labels(subject_kind=self.kind.value, status="success").inc(len(records))
        log.info("cost_bulk_updated", extra={"kind": self.kind.value, "updated": len(records)})
        return records
