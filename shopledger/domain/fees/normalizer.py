"""Statement row normalization.

Turns one raw statement row (column name -> string) into a typed
NormalizedFee ready for the fee ledger, or None when the row is not a fee
event. The only side query allowed is the order lookup; nothing is written
here (marking a refunded order is done by the import service once the
refund record is stored).

Processing order, short-circuiting to "skip" at each step:
1. informational rows (sale, deposit, empty type/title)
2. amount (Amount, falling back to Fees & Taxes), zero -> skip
3. date (unrecognized -> skip)
4. credit flag
5. refunds must reference a known order
6. fee type rule table
7. optional order reference
8. dedup hash
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Protocol

from shopledger.core.errors import StatementRowError
from shopledger.domain.fees.classify import (
    FeeType,
    extract_order_number,
    extract_refund_order_number,
    is_credit_row,
    map_fee_type,
)
from shopledger.domain.fees.dates import EPOCH, find_date_value, normalize_date, period_of

INFORMATIONAL_TYPES = frozenset({"sale", "deposit"})
PLACEHOLDER_AMOUNT = "--"

# Non-breaking spaces and the mojibake "Â" left by Windows-1252 round trips
_ENCODING_ARTIFACTS = re.compile("[\u00a0\u00c2]")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")


class OrderLookup(Protocol):
    def find_order_by_external_number(self, number: str) -> str | None: ...


@dataclass(frozen=True)
class NormalizedFee:
    """Canonical fee/credit record produced from one statement row."""

    fee_hash: str
    order_id: str | None
    fee_type: FeeType
    amount: Decimal  # always >= 0
    source_amount: Decimal  # signed, as printed
    is_credit: bool
    description: str
    charged_date: date
    refunded_order_id: str | None = None

    @property
    def period(self) -> str:
        return period_of(self.charged_date)


class _Row:
    """Case-insensitive, whitespace-tolerant column access for a raw row."""

    def __init__(self, raw: Mapping[str, str | None]):
        self.raw = raw
        self._by_key = {str(k).strip().lower(): v for k, v in raw.items() if k is not None}

    def get(self, *names: str) -> str:
        for name in names:
            value = self._by_key.get(name.lower())
            if value is not None:
                return str(value).strip()
        return ""


def clean_amount(raw: str) -> str:
    """Strip currency symbols and encoding artifacts, keep digits/minus/point."""
    return _NON_NUMERIC.sub("", _ENCODING_ARTIFACTS.sub("", raw or ""))


def parse_amount(raw: str) -> Decimal:
    """Parse a statement amount; empty input is zero.

    Raises:
        StatementRowError: if something is left after cleaning but is not a number

    """
    cleaned = clean_amount(raw)
    if not cleaned:
        return Decimal("0")
    try:
        return Decimal(cleaned)
    except InvalidOperation as e:
        raise StatementRowError("unparseable_amount", f"Cannot parse amount {raw!r}") from e


def compute_fee_hash(
    iso_date: str, row_type: str, title: str, fees_and_taxes: str, net: str, info: str = ""
) -> str:
    """SHA-256 dedup key; info takes part only when non-empty."""
    parts = [iso_date, row_type, title, fees_and_taxes, net]
    if info:
        parts.append(info)
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def normalize_with_reason(
    raw: Mapping[str, str | None], orders: OrderLookup
) -> tuple[NormalizedFee | None, str | None]:
    """Normalize a row; returns (record, None) or (None, skip_reason).

    Raises:
        StatementRowError: for rows that are malformed rather than skippable

    """
    row = _Row(raw)
    row_type = row.get("type")
    title = row.get("title")
    info = row.get("info")
    lower_type = row_type.lower()

    if not row_type or not title or lower_type in INFORMATIONAL_TYPES:
        return None, "informational"

    amount_raw = row.get("amount")
    if not amount_raw or amount_raw == PLACEHOLDER_AMOUNT:
        amount_raw = row.get("fees & taxes")
    if amount_raw == PLACEHOLDER_AMOUNT:
        amount_raw = ""
    source_amount = parse_amount(amount_raw)
    if source_amount == 0:
        return None, "zero_amount"

    charged = normalize_date(find_date_value(raw))
    if charged == EPOCH:
        return None, "unrecognized_date"

    credit = is_credit_row(row_type, title)
    fees_and_taxes = row.get("fees & taxes")
    net = row.get("net")
    fee_hash = compute_fee_hash(charged.isoformat(), row_type, title, fees_and_taxes, net, info)

    if lower_type == "refund":
        number = extract_refund_order_number(title)
        order_id = orders.find_order_by_external_number(number) if number else None
        if order_id is None:
            return None, "refund_unknown_order"
        return (
            NormalizedFee(
                fee_hash=fee_hash,
                order_id=order_id,
                fee_type=FeeType.REFUND,
                amount=abs(source_amount),
                source_amount=source_amount,
                is_credit=False,
                description=title,
                charged_date=charged,
                refunded_order_id=order_id,
            ),
            None,
        )

    fee_type = map_fee_type(row_type, title)
    if fee_type is None:
        return None, "unclassified"

    order_id = None
    number = extract_order_number(title, info)
    if number:
        order_id = orders.find_order_by_external_number(number)

    return (
        NormalizedFee(
            fee_hash=fee_hash,
            order_id=order_id,
            fee_type=fee_type,
            amount=abs(source_amount),
            source_amount=source_amount,
            is_credit=credit,
            description=title,
            charged_date=charged,
        ),
        None,
    )


def normalize_row(raw: Mapping[str, str | None], orders: OrderLookup) -> NormalizedFee | None:
    """Normalize one statement row, or None if the row is skipped."""
    record, _reason = normalize_with_reason(raw, orders)
    return record
