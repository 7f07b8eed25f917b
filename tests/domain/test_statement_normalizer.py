"""Tests for statement row normalization."""

from __future__ import annotations

import hashlib
from datetime import date
from decimal import Decimal

import pytest

from shopledger.core.errors import StatementRowError
from shopledger.domain.fees.classify import FeeType
from shopledger.domain.fees.normalizer import (
    clean_amount,
    compute_fee_hash,
    normalize_row,
    normalize_with_reason,
    parse_amount,
)


def test_transaction_fee_example(make_row, make_orders):
    record = normalize_row(make_row(), make_orders())

    assert record.fee_type == FeeType.TRANSACTION_FEE
    assert record.amount == Decimal("6.50")
    assert record.source_amount == Decimal("-6.50")
    assert record.is_credit is False
    assert record.charged_date == date(2026, 1, 15)
    assert record.order_id is None
    assert record.period == "2026-01"


def test_fee_hash_layout(make_row, make_orders):
    record = normalize_row(make_row(), make_orders())
    expected = hashlib.sha256(
        "2026-01-15|Fee|Transaction fee (6.5% of £100)|-£6.50|-£6.50".encode()
    ).hexdigest()

    assert record.fee_hash == expected


def test_identical_shop_level_rows_share_a_hash(make_row, make_orders):
    orders = make_orders()
    a = normalize_row(make_row(type_="Fee", title="Listing fee", amount="-£0.20"), orders)
    b = normalize_row(make_row(type_="Fee", title="Listing fee", amount="-£0.20"), orders)

    assert a.fee_hash == b.fee_hash


def test_info_distinguishes_otherwise_identical_rows(make_row, make_orders):
    orders = make_orders()
    a = normalize_row(make_row(title="Listing fee", amount="-£0.20", info="Listing #111"), orders)
    b = normalize_row(make_row(title="Listing fee", amount="-£0.20", info="Listing #222"), orders)
    c = normalize_row(make_row(title="Listing fee", amount="-£0.20"), orders)

    assert len({a.fee_hash, b.fee_hash, c.fee_hash}) == 3


def test_hash_uses_iso_date(make_row, make_orders):
    orders = make_orders()
    a = normalize_row(make_row(date="15 Jan, 2026"), orders)
    b = normalize_row(make_row(date="15 January, 2026"), orders)

    assert a.fee_hash == b.fee_hash


def test_compute_fee_hash_appends_info_only_when_present():
    without = compute_fee_hash("2026-01-15", "Fee", "Listing fee", "-£0.20", "-£0.20")
    empty = compute_fee_hash("2026-01-15", "Fee", "Listing fee", "-£0.20", "-£0.20", "")
    with_info = compute_fee_hash("2026-01-15", "Fee", "Listing fee", "-£0.20", "-£0.20", "x")

    assert without == empty
    assert without != with_info


def test_credit_row_keeps_fee_type_and_drops_sign(make_row, make_orders):
    record = normalize_row(
        make_row(type_="Credit", title="Credit for listing fee", amount="-£0.20"), make_orders()
    )

    assert record.is_credit is True
    assert record.fee_type == FeeType.LISTING_FEE
    assert record.amount == Decimal("0.20")


def test_placeholder_amount_falls_back_to_fees_and_taxes(make_row, make_orders):
    record = normalize_row(
        make_row(title="Listing fee", amount="--", fees_and_taxes="-£0.16", net="-£0.16"),
        make_orders(),
    )

    assert record.amount == Decimal("0.16")


def test_encoding_artifacts_are_stripped():
    assert clean_amount("-Â£1.20") == "-1.20"
    assert clean_amount(" £1,234.50") == "1234.50"
    assert parse_amount("") == Decimal("0")


def test_unparseable_amount_raises(make_row, make_orders):
    with pytest.raises(StatementRowError) as exc:
        normalize_row(make_row(amount="£1.2.3"), make_orders())

    assert exc.value.reason == "unparseable_amount"
    assert exc.value.code == "ROW_INVALID"


@pytest.mark.parametrize(
    "overrides,reason",
    [
        ({"type_": "Sale", "title": "Payment for Order #1", "amount": "£20.00"}, "informational"),
        ({"type_": "Deposit", "title": "£100.00 sent to your bank", "amount": "--"}, "informational"),
        ({"title": ""}, "informational"),
        ({"type_": ""}, "informational"),
        ({"amount": "£0.00"}, "zero_amount"),
        ({"amount": "--", "fees_and_taxes": "--"}, "zero_amount"),
        ({"date": "Jan 15 2026"}, "unrecognized_date"),
        ({"type_": "Tip", "title": "Thank you"}, "unclassified"),
        ({"type_": "Refund", "title": "Refund to buyer for Order #999"}, "refund_unknown_order"),
        ({"type_": "Refund", "title": "Refund to buyer"}, "refund_unknown_order"),
    ],
)
def test_skip_reasons(make_row, make_orders, overrides, reason):
    record, why = normalize_with_reason(make_row(**overrides), make_orders())

    assert record is None
    assert why == reason


def test_refund_for_known_order(make_row, make_orders):
    orders = make_orders({"3456789012": "ORD-1"})
    record = normalize_row(
        make_row(
            date="20-Jan-26",
            type_="Refund",
            title="Refund to buyer for Order #3456789012",
            amount="-£25.00",
        ),
        orders,
    )

    assert record.fee_type == FeeType.REFUND
    assert record.order_id == "ORD-1"
    assert record.refunded_order_id == "ORD-1"
    assert record.amount == Decimal("25.00")
    assert record.is_credit is False
    assert orders.lookups == ["3456789012"]


def test_order_reference_is_resolved_when_known(make_row, make_orders):
    orders = make_orders({"3456789012": "ORD-1"})

    linked = normalize_row(make_row(title="Transaction fee: Order #3456789012"), orders)
    unknown = normalize_row(make_row(title="Transaction fee: Order #111"), orders)

    assert linked.order_id == "ORD-1"
    assert linked.refunded_order_id is None
    assert unknown is not None
    assert unknown.order_id is None


def test_column_names_are_case_insensitive(make_orders):
    raw = {
        "date": "15 Jan, 2026",
        "TYPE": "Fee",
        " title ": "Processing fee",
        "AMOUNT": "-£0.45",
        "fees & taxes": "-£0.45",
        "NET": "-£0.45",
    }
    record = normalize_row(raw, make_orders())

    assert record.fee_type == FeeType.PROCESSING_FEE
    assert record.amount == Decimal("0.45")
