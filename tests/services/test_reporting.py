"""Tests for category, shop-level and sales reports."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from shopledger.core.errors import ValidationError
from shopledger.domain.fees.classify import FeeType
from shopledger.domain.fees.normalizer import NormalizedFee
from shopledger.services.cost_ledger import CostLedger
from shopledger.services.cost_resolver import record_sale
from shopledger.services.fee_ledger import FeeLedger
from shopledger.services.reporting import (
    category_report,
    sales_report,
    shop_level_summary,
    sku_profitability,
)
from shopledger.services.statement_import import import_statement

D = Decimal
ORDER = "3456789012"
JAN = (date(2026, 1, 1), date(2026, 1, 31))


@pytest.fixture
def january(catalog, make_row):
    """Two January sales, one refunded by the imported statement."""
    CostLedger(catalog).set_cost("SILVER", D("0.80"), effective_date=date(2025, 12, 1))
    record_sale(
        catalog,
        order_id="ORD-1",
        sku="RING-40",
        order_date=date(2026, 1, 10),
        sale_price=D("120.99"),
        tax_amount=D("20.17"),
        external_order_number=ORDER,
    )
    record_sale(
        catalog,
        order_id="ORD-2",
        sku="RING-40",
        order_date=date(2026, 1, 15),
        sale_price=D("50.00"),
        tax_amount=D("8.33"),
    )
    rows = [
        make_row("2 Jan, 2026", "Fee", "Listing fee", amount="-£0.20"),
        make_row("10 Jan, 2026", "Fee", f"Transaction fee: Order #{ORDER}", amount="-£7.86"),
        make_row("10 Jan, 2026", "Fee", "Processing fee", info=f"Order #{ORDER}", amount="-£5.04"),
        make_row("10 Jan, 2026", "VAT", "VAT: Transaction fee", amount="-£1.57"),
        make_row("12 Jan, 2026", "Credit", "Credit for transaction fee", amount="£1.00"),
        make_row("12 Jan, 2026", "Credit", "VAT: Credit for transaction fee", amount="£0.30"),
        make_row("14 Jan, 2026", "Miscellaneous", "Goodwill", amount="£2.00"),
        make_row("31 Jan, 2026", "Marketing", "Etsy Ads", amount="-£4.20"),
        make_row("18 Jan, 2026", "Shipping", "Royal Mail", amount="-£3.10"),
        make_row("20 Jan, 2026", "Refund", f"Refund to buyer for Order #{ORDER}", amount="-£25.00"),
    ]
    result = import_statement(catalog, rows)
    assert result.inserted == 10
    return catalog


def test_category_report_buckets(january):
    report = category_report(january, *JAN)
    fees = report.totals.fees

    assert fees["listing"].charged == D("0.20")
    assert fees["transaction"].charged == D("7.86")
    assert fees["transaction"].credited == D("1.00")
    assert fees["processing"].charged == D("5.04")
    assert fees["vat"].charged == D("1.57")
    assert fees["vat"].credited == D("0.30")
    assert report.totals.vat_reallocated == D("0.30")
    assert report.totals.misc_credit == D("2.00")
    assert report.totals.marketing["etsy_ads"].net == D("4.20")
    assert report.totals.delivery["postage"].net == D("3.10")
    assert report.net_fee_exposure == D("11.37")


def test_category_report_sales_side(january):
    report = category_report(january, *JAN)

    assert report.total_sales == D("170.99")
    assert report.total_tax == D("28.50")
    # Refund counted by the date it was processed, with the refunded order's tax
    assert report.total_refunds == D("25.00")
    assert report.refund_tax == D("20.17")
    assert report.net_sales == D("137.66")


def test_category_report_as_dict_is_rounded(january):
    data = category_report(january, *JAN).as_dict()

    assert data["start"] == "2026-01-01"
    assert data["fees"]["transaction"] == {
        "charged": D("7.86"),
        "credited": D("1.00"),
        "net": D("6.86"),
    }
    assert data["net_fee_exposure"] == D("11.37")
    assert data["sales"]["net_sales"] == D("137.66")
    assert str(data["vat_reallocated"]) == "0.30"


def test_refund_outside_range_is_not_counted(january):
    report = category_report(january, date(2026, 1, 1), date(2026, 1, 19))

    assert report.total_refunds == 0
    assert report.net_sales == D("142.49")


def test_shop_level_summary(january):
    summary = shop_level_summary(january, *JAN)

    assert "processing_fee" not in summary.by_fee_type
    assert summary.by_fee_type["transaction_fee"].credited == D("1.30")
    assert summary.by_fee_type["etsy_misc_credit"].credited == D("2.00")
    assert summary.totals.charged == D("9.07")
    assert summary.totals.credited == D("3.30")


def test_sales_report_uses_locked_in_cost(january):
    metrics = sales_report(january, *JAN)

    assert metrics.total_revenue == D("50.00")
    assert metrics.total_refunds == D("120.99")
    assert metrics.sales_tax_paid_by_customer == D("8.33")
    # The refunded sale's cost was zeroed when the refund was imported
    assert metrics.total_cost == D("32.00")
    assert metrics.total_fees == D("-7.13")
    assert metrics.units_sold == 1


def test_sku_profitability(january):
    rows = sku_profitability(january, *JAN)

    assert rows == [
        {
            "sku": "RING-40",
            "quantity": 1,
            "total_revenue": D("50.00"),
            "total_cost": D("32.00"),
            "total_fees": D("0"),
            "total_profit": D("18.00"),
        }
    ]


@pytest.mark.parametrize("report", [category_report, shop_level_summary, sales_report])
def test_inverted_range_is_rejected(db, report):
    with pytest.raises(ValidationError) as exc_info:
        report(db, date(2026, 2, 1), date(2026, 1, 1))

    assert exc_info.value.errors == ["range_inverted"]


def test_refunds_without_recorded_sale_are_left_out(january):
    def refund(fee_hash: str, order_id: str) -> NormalizedFee:
        return NormalizedFee(
            fee_hash=fee_hash,
            order_id=order_id,
            fee_type=FeeType.REFUND,
            amount=D("10.00"),
            source_amount=D("-10.00"),
            is_credit=False,
            description=f"Refund to buyer for {order_id}",
            charged_date=date(2026, 1, 25),
        )

    stored = FeeLedger(january).bulk_insert([refund("r" * 64, "ORD-2"), refund("g" * 64, "GHOST")])
    assert stored.inserted == 2

    report = category_report(january, *JAN)

    assert report.total_refunds == D("35.00")
    assert report.refund_tax == D("28.50")
