"""Marketplace fee statement import.

Raw CSV rows -> Statement Normalizer -> Fee Ledger, one transaction per
statement period, with a coarse period lock on top of hash dedup.

Public entry points never raise for bad input, locked periods or store
failures; they return result objects carrying ``error`` and ``error_code``.
"""

from __future__ import annotations

import csv
import hashlib
import io
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import IO

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopledger.core.config import get_settings
from shopledger.core.errors import (
    BatchFailedError,
    PeriodLockedError,
    StatementRowError,
    ValidationError,
)
from shopledger.core.logging import get_logger, set_batch_id
from shopledger.core.metrics import (
    statement_batch_duration_seconds,
    statement_batches_total,
    statement_rows_total,
)
from shopledger.core.money import to_decimal
from shopledger.db.models import ImportLock
from shopledger.db.utils import atomic
from shopledger.domain.fees.classify import FeeType
from shopledger.domain.fees.dates import EPOCH, find_date_value, normalize_date, period_of
from shopledger.domain.fees.normalizer import NormalizedFee, normalize_with_reason
from shopledger.services.catalog import SqlOrderBook
from shopledger.services.fee_ledger import FeeLedger

log = get_logger("shopledger.statement_import")

PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
SAMPLE_ROWS = 5

RawRow = Mapping[str, str | None]


# =============================================================================
# Result types
# =============================================================================


@dataclass
class ImportResult:
    success: bool
    period: str | None = None
    batch_id: str | None = None
    total_rows: int = 0
    inserted: int = 0
    duplicates: int = 0
    skipped: int = 0
    out_of_period: int = 0
    refunds_marked: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    period_counts: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    locked: bool = False


@dataclass
class BulkImportResult:
    results: list[ImportResult] = field(default_factory=list)
    total_rows: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and not any(
            r.error_code == BatchFailedError.code for r in self.results
        )

    @property
    def periods_processed(self) -> int:
        return len(self.results)

    @property
    def periods_skipped(self) -> int:
        return sum(1 for r in self.results if r.locked)

    @property
    def total_inserted(self) -> int:
        return sum(r.inserted for r in self.results)


@dataclass
class StatementPreview:
    total_rows: int
    would_import: int
    period_detected: str | None
    period_counts: dict[str, int]
    fee_type_counts: dict[str, int]
    skip_reasons: dict[str, int]
    sample_rows: list[dict]
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ManualFee:
    fee_type: str
    amount: Decimal | str
    description: str | None = None


@dataclass
class ManualEntryResult:
    success: bool
    period: str | None = None
    inserted: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class LockInfo:
    source: str
    period: str
    locked_at: datetime | None
    locked_by: str | None
    note: str | None

    @classmethod
    def from_row(cls, row: ImportLock) -> LockInfo:
        return cls(row.source, row.period, row.locked_at, row.locked_by, row.note)


@dataclass
class _Normalized:
    """Outcome of normalizing a whole statement (no writes)."""

    total_rows: int = 0
    records: list[NormalizedFee] = field(default_factory=list)
    skip_reasons: Counter = field(default_factory=Counter)
    errors: list[str] = field(default_factory=list)

    def by_period(self) -> dict[str, list[NormalizedFee]]:
        out: dict[str, list[NormalizedFee]] = {}
        for record in self.records:
            out.setdefault(record.period, []).append(record)
        return dict(sorted(out.items()))


# =============================================================================
# Raw boundary
# =============================================================================


def read_statement_csv(source: str | Path | IO[str]) -> list[dict[str, str]]:
    """Read a statement CSV (path or text stream) into raw string-keyed rows."""
    if isinstance(source, (str, Path)):
        with open(source, newline="", encoding="utf-8-sig") as fh:
            return [dict(r) for r in csv.DictReader(fh)]
    text = source.read()
    return [dict(r) for r in csv.DictReader(io.StringIO(text.lstrip("\ufeff")))]


def period_counts(rows: Iterable[RawRow]) -> dict[str, int]:
    """Rows per calendar month, by the row's date column; undated rows ignored."""
    counts: Counter = Counter()
    for row in rows:
        d = normalize_date(find_date_value(row))
        if d != EPOCH:
            counts[period_of(d)] += 1
    return dict(sorted(counts.items()))


def _period_bounds(period: str) -> tuple[date, date]:
    year, month = (int(p) for p in period.split("-"))
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _normalize_rows(rows: list[RawRow], orders: SqlOrderBook) -> _Normalized:
    out = _Normalized(total_rows=len(rows))
    for idx, raw in enumerate(rows, start=1):
        try:
            record, reason = normalize_with_reason(raw, orders)
        except StatementRowError as e:
            out.errors.append(f"Row {idx}: {e}")
            statement_rows_total.labels(outcome="error").inc()
            continue
        if record is None:
            out.skip_reasons[reason] += 1
            statement_rows_total.labels(outcome="skipped").inc()
            log.debug("statement_row_skipped", extra={"row": idx, "reason": reason})
            continue
        out.records.append(record)
    return out


def _limit(errors: list[str]) -> list[str]:
    return errors[: get_settings().import_error_report_limit]


def _lookup_failed(db: Session, batch: str, cause: SQLAlchemyError) -> BatchFailedError:
    """Order lookups failed while normalizing; nothing was written."""
    db.rollback()
    statement_batches_total.labels(status="failed").inc()
    log.error("statement_normalize_failed", extra={"batch": batch, "error": str(cause)})
    return BatchFailedError(batch, cause)


# =============================================================================
# Period locks
# =============================================================================


def _source(source: str | None) -> str:
    return source or get_settings().statement_import_source


def get_lock(db: Session, period: str, source: str | None = None) -> ImportLock | None:
    stmt = select(ImportLock).where(
        ImportLock.source == _source(source), ImportLock.period == period
    )
    return db.execute(stmt).scalar_one_or_none()


def assert_period_unlocked(db: Session, period: str, source: str | None = None) -> None:
    """Raises PeriodLockedError naming the lock holder and time."""
    lock = get_lock(db, period, source)
    if lock is not None:
        raise PeriodLockedError(lock.source, lock.period, lock.locked_by, lock.locked_at)


def _upsert_lock(
    db: Session, period: str, locked_by: str, note: str | None, source: str | None
) -> ImportLock:
    lock = get_lock(db, period, source)
    if lock is None:
        lock = ImportLock(source=_source(source), period=period)
        db.add(lock)
    lock.locked_by = locked_by
    lock.note = note
    lock.locked_at = datetime.now()
    db.flush()
    return lock


def lock_period(
    db: Session,
    period: str,
    locked_by: str = "manual",
    note: str | None = None,
    source: str | None = None,
) -> LockInfo:
    """Lock a period against re-import (re-locking refreshes holder and note).

    Raises:
        ValidationError: if period is not YYYY-MM

    """
    if not PERIOD_RE.match(period or ""):
        raise ValidationError("Period (YYYY-MM) is required", errors=["period_invalid"])
    with atomic(db):
        lock = _upsert_lock(db, period, locked_by, note, source)
        info = LockInfo.from_row(lock)
    log.info("period_locked", extra={"period": period, "locked_by": locked_by})
    return info


def unlock_period(db: Session, period: str, source: str | None = None) -> bool:
    """Remove a lock; returns False if there was none."""
    with atomic(db):
        result = db.execute(
            delete(ImportLock).where(
                ImportLock.source == _source(source), ImportLock.period == period
            )
        )
    removed = bool(result.rowcount)
    if removed:
        log.info("period_unlocked", extra={"period": period})
    return removed


def list_locks(db: Session, source: str | None = None) -> list[LockInfo]:
    stmt = (
        select(ImportLock)
        .where(ImportLock.source == _source(source))
        .order_by(ImportLock.period.desc())
    )
    return [LockInfo.from_row(r) for r in db.execute(stmt).scalars()]


# =============================================================================
# Preview and import
# =============================================================================


def simulate_statement(db: Session, rows: Iterable[RawRow]) -> StatementPreview:
    """Dry run: what an import would do, without writing anything."""
    rows = list(rows)
    normalized = _normalize_rows(rows, SqlOrderBook(db))
    counts = period_counts(rows)
    fee_types = Counter(FeeType(r.fee_type).value for r in normalized.records)

    return StatementPreview(
        total_rows=len(rows),
        would_import=len({r.fee_hash for r in normalized.records}),
        period_detected=next(iter(counts), None),
        period_counts=counts,
        fee_type_counts=dict(sorted(fee_types.items())),
        skip_reasons=dict(normalized.skip_reasons),
        sample_rows=[dict(r) for r in rows[:SAMPLE_ROWS]],
        errors=_limit(normalized.errors),
    )


def _store_period(
    db: Session,
    result: ImportResult,
    records: list[NormalizedFee],
    orders: SqlOrderBook,
    locked_by: str,
    source: str | None,
) -> None:
    """Check the lock and store one period's records in a single transaction."""
    ledger = FeeLedger(db)
    try:
        with atomic(db):
            assert_period_unlocked(db, result.period, source)
            for record in records:
                if ledger.insert(record):
                    result.inserted += 1
                    if record.refunded_order_id and orders.mark_refunded(
                        record.refunded_order_id
                    ):
                        result.refunds_marked += 1
                else:
                    result.duplicates += 1
            if result.inserted:
                _upsert_lock(db, result.period, locked_by, None, source)
    except SQLAlchemyError as e:
        raise BatchFailedError(result.batch_id or result.period, e) from e

    statement_rows_total.labels(outcome="inserted").inc(result.inserted)
    statement_rows_total.labels(outcome="duplicate").inc(result.duplicates)


def _import_one_period(
    db: Session,
    period: str,
    records: list[NormalizedFee],
    orders: SqlOrderBook,
    locked_by: str,
    source: str | None,
) -> ImportResult:
    batch_id = set_batch_id()
    result = ImportResult(success=False, period=period, batch_id=batch_id)

    with statement_batch_duration_seconds.time():
        try:
            _store_period(db, result, records, orders, locked_by, source)
        except PeriodLockedError as e:
            statement_batches_total.labels(status="locked").inc()
            log.warning("statement_period_locked", extra={"period": period})
            result.locked = True
            result.error, result.error_code = str(e), e.code
            return result
        except BatchFailedError as e:
            statement_batches_total.labels(status="failed").inc()
            log.error("statement_batch_failed", extra={"period": period, "error": str(e.cause)})
            result.inserted = result.duplicates = result.refunds_marked = 0
            result.error, result.error_code = str(e), e.code
            return result

    statement_batches_total.labels(status="success").inc()
    result.success = True
    log.info(
        "fee_batch_imported",
        extra={
            "period": period,
            "inserted": result.inserted,
            "duplicates": result.duplicates,
            "refunds_marked": result.refunds_marked,
        },
    )
    return result


def import_statement(
    db: Session,
    rows: Iterable[RawRow],
    period: str | None = None,
    locked_by: str = "import",
    source: str | None = None,
) -> ImportResult:
    """Import one statement period (default: earliest month found in the rows).

    Rows dated outside the selected period are left out and counted in
    ``out_of_period``. The period is locked after a batch that inserts
    anything.
    """
    rows = list(rows)
    orders = SqlOrderBook(db)
    counts = period_counts(rows)

    if period is not None and not PERIOD_RE.match(period):
        return ImportResult(
            success=False,
            total_rows=len(rows),
            error=f"Invalid period {period!r}, expected YYYY-MM",
            error_code=ValidationError.code,
        )
    if not counts:
        return ImportResult(
            success=False,
            total_rows=len(rows),
            error="No valid dates found in statement",
            error_code=ValidationError.code,
        )

    selected = period or next(iter(counts))
    try:
        normalized = _normalize_rows(rows, orders)
    except SQLAlchemyError as e:
        failure = _lookup_failed(db, selected, e)
        return ImportResult(
            success=False,
            period=selected,
            total_rows=len(rows),
            period_counts=counts,
            error=str(failure),
            error_code=failure.code,
        )
    in_period = [r for r in normalized.records if r.period == selected]

    result = _import_one_period(db, selected, in_period, orders, locked_by, source)
    result.total_rows = len(rows)
    result.period_counts = counts
    result.out_of_period = len(normalized.records) - len(in_period)
    result.skip_reasons = dict(normalized.skip_reasons)
    result.skipped = sum(normalized.skip_reasons.values())
    result.errors = _limit(normalized.errors)
    return result


def import_statement_by_period(
    db: Session,
    rows: Iterable[RawRow],
    locked_by: str = "import",
    source: str | None = None,
) -> BulkImportResult:
    """Import every period found in the rows, one transaction each.

    Locked periods are reported and skipped; other periods still import.
    """
    rows = list(rows)
    if not rows:
        return BulkImportResult(error="Statement is empty", error_code=ValidationError.code)

    orders = SqlOrderBook(db)
    try:
        normalized = _normalize_rows(rows, orders)
    except SQLAlchemyError as e:
        failure = _lookup_failed(db, "statement", e)
        return BulkImportResult(total_rows=len(rows), error=str(failure), error_code=failure.code)

    bulk = BulkImportResult(
        total_rows=len(rows),
        skipped=sum(normalized.skip_reasons.values()),
        skip_reasons=dict(normalized.skip_reasons),
        errors=_limit(normalized.errors),
    )

    for period, records in normalized.by_period().items():
        result = _import_one_period(db, period, records, orders, locked_by, source)
        result.total_rows = len(records)
        bulk.results.append(result)

    log.info(
        "statement_bulk_imported",
        extra={
            "periods": bulk.periods_processed,
            "skipped_periods": bulk.periods_skipped,
            "inserted": bulk.total_inserted,
            "row_errors": len(normalized.errors),
        },
    )
    return bulk


# =============================================================================
# Manual entry
# =============================================================================


def compute_manual_fee_hash(period: str, fee_type: str, amount: str, description: str) -> str:
    return hashlib.sha256(
        f"{period}|MANUAL|{fee_type}|{amount}|{description}".encode()
    ).hexdigest()


def enter_manual_fees(
    db: Session, period: str, fees: Iterable[ManualFee | Mapping]
) -> ManualEntryResult:
    """Record shop-level fees by hand for a month (charged on the 1st).

    Re-entering the same (type, amount, description) for a month is a no-op.
    """
    if not PERIOD_RE.match(period or ""):
        return ManualEntryResult(
            success=False,
            error="Required: period (YYYY-MM) and fees",
            error_code=ValidationError.code,
        )

    start, _end = _period_bounds(period)
    result = ManualEntryResult(success=False, period=period)
    records = []

    for idx, fee in enumerate(fees, start=1):
        if isinstance(fee, Mapping):
            fee = ManualFee(fee.get("fee_type"), fee.get("amount"), fee.get("description"))
        amount = to_decimal(fee.amount, default=None)  # type: ignore[arg-type]
        if not fee.fee_type or amount is None or amount == 0:
            result.errors.append(f"Fee {idx}: Missing fee_type or amount")
            continue
        try:
            fee_type = FeeType(fee.fee_type)
        except ValueError:
            result.errors.append(f"Fee {idx}: Unknown fee_type {fee.fee_type!r}")
            continue

        description = fee.description or f"{fee_type.value} - {period}"
        records.append(
            NormalizedFee(
                fee_hash=compute_manual_fee_hash(
                    period, fee_type.value, str(fee.amount), fee.description or ""
                ),
                order_id=None,
                fee_type=fee_type,
                amount=abs(amount),
                source_amount=-abs(amount),
                is_credit=False,
                description=description,
                charged_date=start,
            )
        )

    try:
        bulk = FeeLedger(db).bulk_insert(records)
    except BatchFailedError as e:
        result.error, result.error_code = str(e), e.code
        return result

    result.inserted = bulk.inserted
    result.duplicates = bulk.duplicates
    result.errors.extend(bulk.errors)
    result.success = True
    log.info("manual_fees_entered", extra={"period": period, "inserted": result.inserted})
    return result
