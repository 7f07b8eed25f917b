"""Price calculation logic.

Business logic for:
- List price from weight x sell rate, rounded to .99
- Reverse price for a target margin
- Platform fee breakdown
- Profit and margin

NO DATA ACCESS - pure functions only. Data access happens in services layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from shopledger.core.errors import PricingValidationError
from shopledger.core.money import ZERO, round_money, to_decimal

NINETY_NINE = Decimal("0.99")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class FeeModel:
    """Platform fee rates (fractions) and the fixed per-order payment fee."""

    transaction_rate: Decimal = Decimal("0.065")
    payment_rate: Decimal = Decimal("0.04")
    payment_fixed: Decimal = Decimal("0.20")
    ad_rate: Decimal = Decimal("0.15")

    @property
    def rates_sum(self) -> Decimal:
        return self.transaction_rate + self.payment_rate + self.ad_rate

    @classmethod
    def from_settings(cls, settings) -> FeeModel:
        return cls(
            transaction_rate=settings.transaction_fee_rate,
            payment_rate=settings.payment_fee_rate,
            payment_fixed=settings.payment_fee_fixed,
            ad_rate=settings.ad_fee_rate,
        )


@dataclass(frozen=True)
class FeeBreakdown:
    transaction_fee: Decimal
    payment_fee: Decimal
    ad_fee: Decimal
    total_fees: Decimal


@dataclass(frozen=True)
class ProfitMargin:
    profit: Decimal
    margin_percent: Decimal


def round_to_ninety_nine(raw: Decimal) -> Decimal:
    """floor(raw) + 0.99, applied unconditionally (120 -> 120.99, 120.99 -> 120.99)."""
    return raw.to_integral_value(rounding=ROUND_FLOOR) + NINETY_NINE


def cost_of_item(weight: Decimal, cost_per_unit: Decimal) -> Decimal:
    """Material cost of an item (full precision)."""
    return to_decimal(weight) * to_decimal(cost_per_unit)


def list_price(weight: Decimal, sell_rate_per_unit: Decimal) -> Decimal:
    """List price = weight x sell rate, ceiling-to-.99.

    Example: 40g at 3.00/g -> floor(120) + 0.99 = 120.99

    """
    raw = to_decimal(weight) * to_decimal(sell_rate_per_unit)
    return round_to_ninety_nine(raw)


def solve_price_for_margin(
    fixed_costs: Decimal, fee_rates_sum: Decimal, target_margin_percent: Decimal
) -> Decimal:
    """Unrounded price p solving p(1 - rates) - fixed = p * margin/100.

    Raises:
        PricingValidationError: if (1 - rates) <= margin/100 (no finite positive price)

    """
    margin = to_decimal(target_margin_percent) / HUNDRED
    denominator = (Decimal("1") - to_decimal(fee_rates_sum)) - margin
    if denominator <= 0:
        raise PricingValidationError(
            f"Target margin {target_margin_percent}% is unreachable with fee rates "
            f"summing to {fee_rates_sum}",
            errors=["margin_unreachable"],
        )
    return to_decimal(fixed_costs) / denominator


def reverse_price_for_margin(
    fixed_costs: Decimal, fee_rates_sum: Decimal, target_margin_percent: Decimal
) -> Decimal:
    """Price needed for a target margin, ceiling-to-.99.

    fixed_costs = material cost + fixed per-order fee + postage
    fee_rates_sum = transaction + payment + advertising rates

    """
    return round_to_ninety_nine(
        solve_price_for_margin(fixed_costs, fee_rates_sum, target_margin_percent)
    )


def fee_breakdown(price: Decimal, model: FeeModel | None = None) -> FeeBreakdown:
    """Platform fees for a price, each rounded to 2dp on its own.

    The total is the sum of the rounded parts so that the parts always add up.
    """
    model = model or FeeModel()
    price = to_decimal(price)
    transaction_fee = round_money(price * model.transaction_rate)
    payment_fee = round_money(price * model.payment_rate + model.payment_fixed)
    ad_fee = round_money(price * model.ad_rate)
    return FeeBreakdown(
        transaction_fee=transaction_fee,
        payment_fee=payment_fee,
        ad_fee=ad_fee,
        total_fees=transaction_fee + payment_fee + ad_fee,
    )


def profit_and_margin(
    price: Decimal, material_cost: Decimal, total_fees: Decimal, postage: Decimal
) -> ProfitMargin:
    """Profit = price - material - fees - postage; margin % of price (0 if price <= 0)."""
    price = to_decimal(price)
    profit = price - to_decimal(material_cost) - to_decimal(total_fees) - to_decimal(postage)
    margin = (profit / price * HUNDRED) if price > 0 else ZERO
    return ProfitMargin(profit=profit, margin_percent=margin)


def margin_health(margin_percent: Decimal | None, threshold: Decimal = Decimal("20")) -> str:
    """Classify a margin: 'healthy', 'warning', 'negative' or 'unknown'."""
    if margin_percent is None:
        return "unknown"
    if margin_percent < 0:
        return "negative"
    if margin_percent < threshold:
        return "warning"
    return "healthy"


def format_currency(value: Decimal | None) -> str:
    """Presentation formatting: 2 decimal places, '-' for missing."""
    if value is None:
        return "-"
    return f"{round_money(to_decimal(value))}"


def format_percent(value: Decimal | None) -> str:
    if value is None:
        return "-"
    return f"{round_money(to_decimal(value))}%"
