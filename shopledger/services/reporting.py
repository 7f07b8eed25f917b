"""Fee/credit category reports and sales-side totals from the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shopledger.core.errors import ValidationError
from shopledger.core.logging import get_logger
from shopledger.core.money import ZERO, round_money, to_decimal
from shopledger.db.models import Sale
from shopledger.domain.finance.categories import Bucket, CategoryTotals, aggregate_categories
from shopledger.domain.finance.sales import (
    SalesMetrics,
    calc_net_sales_revenue,
    profitability_by_sku,
    sales_metrics,
)
from shopledger.services.fee_ledger import FeeLedger

log = get_logger("shopledger.reporting")


@dataclass
class CategoryReport:
    start: date
    end: date
    totals: CategoryTotals
    total_sales: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_refunds: Decimal = ZERO
    refund_tax: Decimal = ZERO

    @property
    def net_sales(self) -> Decimal:
        return calc_net_sales_revenue(
            self.total_sales, self.total_tax, self.total_refunds, self.refund_tax
        )

    @property
    def net_fee_exposure(self) -> Decimal:
        return self.totals.net_fee_exposure

    def as_dict(self) -> dict:
        """Presentation view, every amount rounded to 2 places."""

        def group(buckets: dict[str, Bucket]) -> dict:
            return {
                name: {
                    "charged": round_money(b.charged),
                    "credited": round_money(b.credited),
                    "net": round_money(b.net),
                }
                for name, b in buckets.items()
            }

        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "fees": group(self.totals.fees),
            "misc_credit": round_money(self.totals.misc_credit),
            "vat_reallocated": round_money(self.totals.vat_reallocated),
            "marketing": group(self.totals.marketing),
            "delivery": group(self.totals.delivery),
            "net_fee_exposure": round_money(self.net_fee_exposure),
            "sales": {
                "total_sales": round_money(self.total_sales),
                "total_tax": round_money(self.total_tax),
                "total_refunds": round_money(self.total_refunds),
                "refund_tax": round_money(self.refund_tax),
                "net_sales": round_money(self.net_sales),
            },
        }


@dataclass
class ShopLevelSummary:
    start: date
    end: date
    by_fee_type: dict[str, Bucket] = field(default_factory=dict)
    totals: Bucket = field(default_factory=Bucket)


def _check_range(start: date, end: date) -> None:
    if start is None or end is None:
        raise ValidationError("start and end dates are required", errors=["range_required"])
    if start > end:
        raise ValidationError(f"start {start} is after end {end}", errors=["range_inverted"])


def _sales_totals(db: Session, start: date, end: date) -> tuple[Decimal, Decimal]:
    stmt = select(func.sum(Sale.sale_price), func.sum(Sale.tax_amount)).where(
        Sale.order_date.between(start, end)
    )
    gross, tax = db.execute(stmt).one()
    return to_decimal(gross), to_decimal(tax)


def _refund_totals(db: Session, start: date, end: date) -> tuple[Decimal, Decimal]:
    """Refunds processed in range (by refund date) and the tax on those orders."""
    refunds = [r for r in FeeLedger(db).refunds_between(start, end) if r.order_id]
    if not refunds:
        return ZERO, ZERO

    stmt = select(Sale.order_id, Sale.tax_amount).where(
        Sale.order_id.in_({r.order_id for r in refunds})
    )
    tax_by_order = dict(db.execute(stmt).tuples().all())

    # Refunds without a recorded sale stay out of sales-side totals
    linked = [r for r in refunds if r.order_id in tax_by_order]
    total = sum((to_decimal(r.amount) for r in linked), ZERO)
    tax = sum((to_decimal(tax_by_order[r.order_id]) for r in linked), ZERO)
    return total, tax


def category_report(db: Session, start: date, end: date) -> CategoryReport:
    """Fee, marketing and delivery buckets plus sales-side totals for [start, end].

    Raises:
        ValidationError: if the range is missing or inverted

    """
    _check_range(start, end)
    records = FeeLedger(db).records_between(start, end)
    totals = aggregate_categories(records)
    gross, tax = _sales_totals(db, start, end)
    refunds, refund_tax = _refund_totals(db, start, end)

    report = CategoryReport(
        start=start,
        end=end,
        totals=totals,
        total_sales=gross,
        total_tax=tax,
        total_refunds=refunds,
        refund_tax=refund_tax,
    )
    log.info(
        "category_report_built",
        extra={
            "start": start,
            "end": end,
            "records": len(records),
            "net_fee_exposure": report.net_fee_exposure,
            "vat_reallocated": totals.vat_reallocated,
        },
    )
    return report


def shop_level_summary(db: Session, start: date, end: date) -> ShopLevelSummary:
    """Fees and credits not tied to any order, per fee type, for [start, end]."""
    _check_range(start, end)
    ledger = FeeLedger(db)
    return ShopLevelSummary(
        start=start,
        end=end,
        by_fee_type=ledger.sum_by_fee_type(start, end, shop_level=True),
        totals=ledger.sum_shop_level(start, end),
    )


def _sales_between(db: Session, start: date, end: date) -> list[Sale]:
    stmt = select(Sale).where(Sale.order_date.between(start, end)).order_by(Sale.order_date)
    return list(db.execute(stmt).scalars())


def sales_report(
    db: Session, start: date, end: date, tax_rate: Decimal = Decimal("0.20")
) -> SalesMetrics:
    """Revenue, locked-in cost, fees and profit for sales ordered in [start, end]."""
    _check_range(start, end)
    sales = _sales_between(db, start, end)
    ledger = FeeLedger(db)
    order_fees = ledger.fees_by_order([s.order_id for s in sales])
    return sales_metrics(
        sales,
        tax_rate=tax_rate,
        order_fees=order_fees,
        shop_level_fees=ledger.sum_shop_level(start, end).net,
    )


def sku_profitability(db: Session, start: date, end: date) -> list[dict]:
    _check_range(start, end)
    sales = _sales_between(db, start, end)
    order_fees = FeeLedger(db).fees_by_order([s.order_id for s in sales])
    return profitability_by_sku(sales, order_fees)
