"""Tests for sales revenue and profitability."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from shopledger.domain.finance.sales import (
    calc_net_sales_revenue,
    profitability_by_sku,
    sales_metrics,
)

D = Decimal


@dataclass
class Sale:
    order_id: str
    sku: str
    sale_price: Decimal
    tax_amount: Decimal
    cost_at_sale: Decimal
    quantity: int = 1
    status: str = "paid"


SALES = [
    Sale("A", "RING-40", D("120.99"), D("20.17"), D("32.00")),
    Sale("B", "STUD-5", D("50.00"), D("8.33"), D("10.00"), quantity=2),
    Sale("C", "STUD-5", D("25.00"), D("4.17"), D("8.00"), status="refunded"),
]
ORDER_FEES = {"A": D("31.05"), "B": D("10.00"), "C": D("-5.00")}


def test_net_sales_revenue_formula():
    assert calc_net_sales_revenue(D("170.99"), D("28.50"), D("25.00"), D("4.17")) == D("121.66")
    assert calc_net_sales_revenue(0, 0, 0, 0) == 0


def test_sales_metrics_splits_refunded_sales():
    m = sales_metrics(SALES, tax_rate=D("0.20"), order_fees=ORDER_FEES, shop_level_fees=D("3.00"))

    assert m.total_revenue == D("170.99")
    assert m.total_refunds == D("25.00")
    assert m.sales_tax_paid_by_customer == D("28.50")
    assert m.net_revenue == D("117.49")
    assert m.total_cost == D("34.00")
    assert m.total_fees == D("39.05")
    assert m.gross_profit == D("83.49")
    assert m.net_profit == D("44.44")
    assert m.estimated_tax == D("8.8880")
    assert m.net_profit_after_tax == D("35.5520")
    assert m.units_sold == 3
    assert round(m.profit_margin_percent, 2) == D("37.82")
    assert round(m.average_order_value, 2) == D("57.00")


def test_sales_metrics_without_sales():
    m = sales_metrics([])

    assert m.net_revenue == 0
    assert m.profit_margin_percent == 0
    assert m.average_order_value == 0
    assert m.units_sold == 0


def test_profitability_by_sku_orders_by_profit():
    rows = profitability_by_sku(SALES, ORDER_FEES)

    assert [r["sku"] for r in rows] == ["RING-40", "STUD-5"]
    ring, stud = rows
    assert ring["total_profit"] == D("57.94")
    assert stud["quantity"] == 2
    assert stud["total_revenue"] == D("50.00")
    assert stud["total_profit"] == D("30.00")
