"""Input validation for cost updates and pricing requests.

Validators return a list of error codes (empty when valid) so callers can
report every problem at once; ``update_cost`` turns a non-empty list into a
rejected CostUpdateResult without touching the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from shopledger.core.errors import CostUpdateConflictError
from shopledger.core.logging import get_logger
from shopledger.core.metrics import cost_updates_total
from shopledger.core.money import to_decimal
from shopledger.services.cost_ledger import CostLedger, CostRecord, SubjectKind

log = get_logger("shopledger.validators")

MAX_REASON_LENGTH = 255


@dataclass
class CostUpdateResult:
    success: bool
    record: CostRecord | None = None
    previous_cost: Decimal | None = None
    errors: list[str] = field(default_factory=list)


def _is_number(value) -> bool:
    if isinstance(value, bool):
        return False
    d = to_decimal(value, default=None)  # type: ignore[arg-type]
    return d is not None and d.is_finite()


def validate_cost_update(subject_id: str | None, new_cost, reason: str | None = None) -> list[str]:
    """Check a cost update request; returns error codes."""
    errors = []
    if not subject_id or not str(subject_id).strip():
        errors.append("subject_required")
    if new_cost is None or not _is_number(new_cost):
        errors.append("cost_not_numeric")
    elif to_decimal(new_cost) < 0:
        errors.append("cost_negative")
    if reason is not None and len(reason) > MAX_REASON_LENGTH:
        errors.append("reason_too_long")
    return errors


def validate_pricing_inputs(
    weight, cost_per_unit, target_margin_percent=None, fee_rates_sum=None
) -> list[str]:
    """Check list/reverse pricing inputs; returns error codes."""
    errors = []
    if weight is None or not _is_number(weight):
        errors.append("weight_not_numeric")
    elif to_decimal(weight) <= 0:
        errors.append("weight_not_positive")

    if cost_per_unit is None or not _is_number(cost_per_unit):
        errors.append("cost_not_numeric")
    elif to_decimal(cost_per_unit) < 0:
        errors.append("cost_negative")

    if target_margin_percent is not None:
        if not _is_number(target_margin_percent):
            errors.append("margin_not_numeric")
        elif fee_rates_sum is not None:
            margin = to_decimal(target_margin_percent) / 100
            if (1 - to_decimal(fee_rates_sum)) <= margin:
                errors.append("margin_unreachable")
    return errors


def update_cost(
    db: Session,
    subject_id: str,
    new_cost,
    reason: str = "Price update",
    kind: SubjectKind = SubjectKind.MATERIAL,
    effective_date: date | datetime | None = None,
    supplier_name: str | None = None,
) -> CostUpdateResult:
    """Validate then apply a cost update; never raises for bad input."""
    errors = validate_cost_update(subject_id, new_cost, reason)
    if errors:
        cost_updates_total.labels(subject_kind=SubjectKind(kind).value, status="rejected").inc()
        log.warning("cost_update_rejected", extra={"subject": subject_id, "errors": errors})
        return CostUpdateResult(success=False, errors=errors)

    ledger = CostLedger(db, kind)
    previous = ledger.get_current(subject_id)
    try:
        record = ledger.set_cost(
            subject_id,
            to_decimal(new_cost),
            reason=reason,
            effective_date=effective_date,
            supplier_name=supplier_name,
        )
    except CostUpdateConflictError as e:
        return CostUpdateResult(
            success=False,
            previous_cost=previous.cost_per_unit if previous else None,
            errors=[e.code],
        )

    return CostUpdateResult(
        success=True,
        record=record,
        previous_cost=previous.cost_per_unit if previous else None,
    )
