"""Pricing service orchestration.

Quotes a "current price" for a batch of catalog entries: list price from
weight x sell rate, or, when a positive margin modifier is given for the
SKU, the price that reaches that margin after platform fees.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from shopledger.core.config import get_settings
from shopledger.core.logging import get_logger
from shopledger.core.money import ZERO, to_decimal
from shopledger.domain.pricing.calculator import (
    FeeModel,
    fee_breakdown,
    list_price,
    margin_health,
    profit_and_margin,
    reverse_price_for_margin,
)
from shopledger.services.catalog import CatalogEntry, SqlCatalog
from shopledger.services.cost_resolver import resolve_cost_at_sale
from shopledger.services.validators import validate_pricing_inputs

log = get_logger("shopledger.pricing")

CALCULATED = "calculated"
UNMAPPED = "unmapped"
INVALID = "invalid"


@dataclass
class PriceQuote:
    sku: str
    status: str
    price: Decimal | None = None
    base_price: Decimal | None = None
    material_cost: Decimal | None = None
    cost_source: str | None = None
    transaction_fee: Decimal | None = None
    payment_fee: Decimal | None = None
    ad_fee: Decimal | None = None
    total_fees: Decimal | None = None
    postage_cost: Decimal | None = None
    profit: Decimal | None = None
    margin_percent: Decimal | None = None
    margin_modifier: Decimal | None = None
    margin_health: str = "unknown"
    errors: list[str] = field(default_factory=list)


def _can_price(entry: CatalogEntry | None) -> bool:
    return bool(
        entry is not None
        and entry.weight
        and entry.weight > 0
        and entry.sell_rate_per_unit
        and entry.sell_rate_per_unit > 0
    )


def quote_price(
    db: Session,
    sku: str,
    margin_modifier: Decimal | None = None,
    as_of: date | None = None,
    catalog: SqlCatalog | None = None,
    model: FeeModel | None = None,
) -> PriceQuote:
    """Quote one SKU. Entries without weight or sell rate come back unmapped."""
    settings = get_settings()
    catalog = catalog or SqlCatalog(db)
    model = model or FeeModel.from_settings(settings)
    entry = catalog.lookup(sku)

    if not _can_price(entry):
        return PriceQuote(sku=sku, status=UNMAPPED)

    resolved = resolve_cost_at_sale(db, sku, as_of or date.today(), catalog)
    material_cost = resolved.unit_cost
    postage = entry.postage_cost
    base = list_price(entry.weight, entry.sell_rate_per_unit)
    modifier = to_decimal(margin_modifier) if margin_modifier is not None else None

    price = base
    if modifier is not None and modifier > 0:
        errors = validate_pricing_inputs(
            entry.weight, material_cost, modifier, model.rates_sum
        )
        if errors:
            log.warning("price_quote_invalid", extra={"sku": sku, "errors": errors})
            return PriceQuote(
                sku=sku,
                status=INVALID,
                base_price=base,
                material_cost=material_cost,
                margin_modifier=modifier,
                errors=errors,
            )
        fixed_costs = material_cost + model.payment_fixed + postage
        price = reverse_price_for_margin(fixed_costs, model.rates_sum, modifier)

    fees = fee_breakdown(price, model)
    pm = profit_and_margin(price, material_cost, fees.total_fees, postage)
    return PriceQuote(
        sku=sku,
        status=CALCULATED,
        price=price,
        base_price=base,
        material_cost=material_cost,
        cost_source=resolved.source.value,
        transaction_fee=fees.transaction_fee,
        payment_fee=fees.payment_fee,
        ad_fee=fees.ad_fee,
        total_fees=fees.total_fees,
        postage_cost=postage,
        profit=pm.profit,
        margin_percent=pm.margin_percent,
        margin_modifier=modifier if modifier else ZERO,
        margin_health=margin_health(pm.margin_percent, settings.margin_warning_threshold),
    )


def quote_prices(
    db: Session,
    skus: list[str] | None = None,
    margin_modifiers: dict[str, Decimal] | None = None,
    as_of: date | None = None,
) -> list[PriceQuote]:
    """Quote a batch of catalog entries (None = whole catalog).

    Args:
        db: Database session
        skus: SKUs to quote
        margin_modifiers: SKU -> target margin percent overrides
        as_of: Date used for material cost lookups (default today)

    Returns:
        One PriceQuote per SKU, in request order

    """
    catalog = SqlCatalog(db)
    model = FeeModel.from_settings(get_settings())
    margin_modifiers = margin_modifiers or {}
    skus = skus if skus is not None else catalog.all_skus()

    out = [
        quote_price(db, sku, margin_modifiers.get(sku), as_of, catalog, model) for sku in skus
    ]

    log.info(
        "prices_quoted",
        extra={
            "total": len(out),
            "calculated": sum(1 for q in out if q.status == CALCULATED),
            "unmapped": sum(1 for q in out if q.status == UNMAPPED),
            "invalid": sum(1 for q in out if q.status == INVALID),
        },
    )
    return out
