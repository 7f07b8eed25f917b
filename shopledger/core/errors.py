"""Typed exception hierarchy for the engine.

Every error carries a machine-readable ``code`` class attribute so callers
catch by type and report by code, never by parsing message text.

    ShopLedgerError
    +-- ValidationError
    |   +-- PricingValidationError
    |   +-- StatementRowError
    +-- PeriodLockedError
    +-- CostUpdateConflictError
    +-- BatchFailedError

Skip conditions (zero amounts, informational rows, refunds for unknown
orders) and duplicate rows are not errors and never raise.
"""

from __future__ import annotations

from datetime import datetime


class ShopLedgerError(Exception):
    """Base exception for all engine errors."""

    code: str = "SHOPLEDGER_ERROR"


class ValidationError(ShopLedgerError):
    """Malformed or out-of-range input, rejected before any write."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = list(errors or [message])
        super().__init__(message)


class PricingValidationError(ValidationError):
    """Pricing inputs that would produce a non-positive or infinite price."""

    code: str = "PRICING_INVALID"


class StatementRowError(ValidationError):
    """A statement row that cannot be parsed (e.g. unparseable amount)."""

    code: str = "ROW_INVALID"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)


class PeriodLockedError(ShopLedgerError):
    """A statement period was already imported and locked."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, source: str, period: str, locked_by: str | None, locked_at: datetime | None):
        self.source = source
        self.period = period
        self.locked_by = locked_by or "system"
        self.locked_at = locked_at
        super().__init__(
            f"Period {period} is locked (locked by {self.locked_by} at {locked_at}). "
            f"Unlock to re-import."
        )


class CostUpdateConflictError(ShopLedgerError):
    """Concurrent same-subject cost updates exhausted the retry budget."""

    code: str = "COST_CONFLICT"

    def __init__(self, subject_kind: str, subject_id: str, attempts: int):
        self.subject_kind = subject_kind
        self.subject_id = subject_id
        self.attempts = attempts
        super().__init__(
            f"Cost update for {subject_kind}:{subject_id} conflicted {attempts} times"
        )


class BatchFailedError(ShopLedgerError):
    """A store failure rolled back a whole import batch."""

    code: str = "BATCH_FAILED"

    def __init__(self, batch: str, cause: Exception):
        self.batch = batch
        self.cause = cause
        super().__init__(f"Batch {batch} rolled back: {cause}")
