"""Sales-side revenue and profitability.

NO DATA ACCESS - pure functions only. Data access happens in services layer.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from shopledger.core.money import ZERO, to_decimal

HUNDRED = Decimal("100")
NON_EARNING_STATUSES = frozenset({"refunded", "cancelled"})


class SaleLike(Protocol):
    order_id: str
    sku: str
    quantity: int
    sale_price: Decimal
    tax_amount: Decimal
    status: str
    cost_at_sale: Decimal


def calc_net_sales_revenue(
    gross_sales: Decimal,
    customer_tax: Decimal,
    refunds: Decimal,
    refund_tax: Decimal,
) -> Decimal:
    """Net sales = gross - customer tax - refunds processed + tax refunded on them.

    Refunds are counted by the date they were processed, not the sale date.
    """
    return (
        to_decimal(gross_sales)
        - to_decimal(customer_tax)
        - to_decimal(refunds)
        + to_decimal(refund_tax)
    )


@dataclass(frozen=True)
class SalesMetrics:
    total_revenue: Decimal
    total_refunds: Decimal
    net_revenue: Decimal
    total_cost: Decimal
    total_fees: Decimal
    gross_profit: Decimal
    net_profit: Decimal
    profit_margin_percent: Decimal
    estimated_tax: Decimal
    net_profit_after_tax: Decimal
    units_sold: int
    sales_tax_paid_by_customer: Decimal
    average_order_value: Decimal


def sales_metrics(
    sales: Iterable[SaleLike],
    tax_rate: Decimal = Decimal("0.20"),
    order_fees: dict[str, Decimal] | None = None,
    shop_level_fees: Decimal = ZERO,
) -> SalesMetrics:
    """Revenue, cost and profit over recorded sales.

    Refunded/cancelled sales move their price and locked-in cost to the
    refunded side. order_fees maps order_id -> fees charged for that order.
    """
    sales = list(sales)
    order_fees = order_fees or {}

    revenue = refunds = cost = cost_refunded = fees = fees_refunded = customer_tax = ZERO
    units = 0

    for sale in sales:
        price = to_decimal(sale.sale_price)
        sale_cost = to_decimal(sale.cost_at_sale)
        sale_fees = abs(to_decimal(order_fees.get(sale.order_id, ZERO)))
        if sale.status in NON_EARNING_STATUSES:
            refunds += price
            cost_refunded += sale_cost
            fees_refunded += sale_fees
        else:
            revenue += price
            cost += sale_cost
            fees += sale_fees
            customer_tax += to_decimal(sale.tax_amount)
            units += sale.quantity or 1

    net_revenue = revenue - customer_tax - refunds
    net_cost = cost - cost_refunded
    net_fees = fees + to_decimal(shop_level_fees) - fees_refunded

    gross_profit = net_revenue - net_cost
    net_profit = gross_profit - net_fees
    estimated_tax = net_profit * to_decimal(tax_rate)
    margin = (net_profit / net_revenue * HUNDRED) if net_revenue > 0 else ZERO

    return SalesMetrics(
        total_revenue=revenue,
        total_refunds=refunds,
        net_revenue=net_revenue,
        total_cost=net_cost,
        total_fees=net_fees,
        gross_profit=gross_profit,
        net_profit=net_profit,
        profit_margin_percent=margin,
        estimated_tax=estimated_tax,
        net_profit_after_tax=net_profit - estimated_tax,
        units_sold=units,
        sales_tax_paid_by_customer=customer_tax,
        average_order_value=(revenue / len(sales)) if sales else ZERO,
    )


def profitability_by_sku(
    sales: Iterable[SaleLike], order_fees: dict[str, Decimal] | None = None
) -> list[dict]:
    """Per-SKU revenue/cost/fees/profit for earning sales, most profitable first."""
    order_fees = order_fees or {}
    by_sku: dict[str, dict] = {}

    for sale in sales:
        if sale.status in NON_EARNING_STATUSES:
            continue
        row = by_sku.setdefault(
            sale.sku,
            {
                "sku": sale.sku,
                "quantity": 0,
                "total_revenue": ZERO,
                "total_cost": ZERO,
                "total_fees": ZERO,
            },
        )
        row["quantity"] += sale.quantity or 1
        row["total_revenue"] += to_decimal(sale.sale_price)
        row["total_cost"] += to_decimal(sale.cost_at_sale)
        row["total_fees"] += abs(to_decimal(order_fees.get(sale.order_id, ZERO)))

    out = []
    for row in by_sku.values():
        row["total_profit"] = row["total_revenue"] - row["total_cost"] - row["total_fees"]
        out.append(row)

    return sorted(out, key=lambda r: r["total_profit"], reverse=True)
