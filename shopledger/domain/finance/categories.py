"""Fee/credit category aggregation.

Groups fee ledger records into reporting buckets, each with separate
charged and credited sums:

- fees: listing, transaction, processing, regulatory, vat
- marketing: etsy_ads, offsite_ads
- delivery: postage
- misc_credit: unlinked compensation credits

A primary pass assigns every record to charged or credited; a second pass
moves "VAT:" credits filed under another fee type into the VAT bucket.

NO DATA ACCESS - pure functions only. Data access happens in services layer.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from shopledger.core.money import ZERO, to_decimal
from shopledger.domain.fees.classify import FeeType

VAT_PREFIX = "VAT:"

FEE_SUBCATEGORIES = ("listing", "transaction", "processing", "regulatory", "vat")
MARKETING_SUBCATEGORIES = ("etsy_ads", "offsite_ads")
DELIVERY_SUBCATEGORIES = ("postage",)

# fee_type -> (group, subcategory)
BUCKET_OF: dict[str, tuple[str, str]] = {
    FeeType.LISTING_FEE.value: ("fees", "listing"),
    FeeType.TRANSACTION_FEE.value: ("fees", "transaction"),
    FeeType.PROCESSING_FEE.value: ("fees", "processing"),
    FeeType.REGULATORY_FEE.value: ("fees", "regulatory"),
    FeeType.VAT_ON_FEES.value: ("fees", "vat"),
    FeeType.ETSY_ADS.value: ("marketing", "etsy_ads"),
    FeeType.OFFSITE_ADS.value: ("marketing", "offsite_ads"),
    FeeType.POSTAGE_LABELS.value: ("delivery", "postage"),
}


class FeeLike(Protocol):
    fee_type: str
    amount: Decimal
    source_amount: Decimal
    is_credit: bool
    description: str


@dataclass
class Bucket:
    charged: Decimal = ZERO
    credited: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        """charged - credited; negative means a net credit."""
        return self.charged - self.credited


def _buckets(names: tuple[str, ...]) -> dict[str, Bucket]:
    return {name: Bucket() for name in names}


@dataclass
class CategoryTotals:
    fees: dict[str, Bucket] = field(default_factory=lambda: _buckets(FEE_SUBCATEGORIES))
    marketing: dict[str, Bucket] = field(
        default_factory=lambda: _buckets(MARKETING_SUBCATEGORIES)
    )
    delivery: dict[str, Bucket] = field(default_factory=lambda: _buckets(DELIVERY_SUBCATEGORIES))
    misc_credit: Decimal = ZERO
    vat_reallocated: Decimal = ZERO

    def group(self, name: str) -> dict[str, Bucket]:
        return {"fees": self.fees, "marketing": self.marketing, "delivery": self.delivery}[name]

    @property
    def net_fee_exposure(self) -> Decimal:
        """Sum of fee subcategory nets, minus misc credits."""
        return sum((b.net for b in self.fees.values()), ZERO) - self.misc_credit

    @property
    def marketing_net(self) -> dict[str, Decimal]:
        return {name: b.net for name, b in self.marketing.items()}

    @property
    def delivery_net(self) -> dict[str, Decimal]:
        return {name: b.net for name, b in self.delivery.items()}


def is_credited(record: FeeLike) -> bool:
    """Whether a record counts toward ``credited`` rather than ``charged``.

    Misc credits, positive VAT lines (VAT refunds), flagged credits, and any
    description mentioning "credit".
    """
    fee_type = str(getattr(record.fee_type, "value", record.fee_type))
    if fee_type == FeeType.ETSY_MISC_CREDIT.value:
        return True
    if fee_type == FeeType.VAT_ON_FEES.value and to_decimal(record.source_amount) > 0:
        return True
    if record.is_credit:
        return True
    return "credit" in (record.description or "").lower()


def signed_amount(record: FeeLike) -> Decimal:
    """Amount with credits negative."""
    amount = abs(to_decimal(record.amount))
    return -amount if is_credited(record) else amount


def _bucket_for(totals: CategoryTotals, fee_type: str) -> Bucket | None:
    target = BUCKET_OF.get(fee_type)
    if target is None:
        return None
    group, name = target
    return totals.group(group)[name]


def aggregate_categories(records: Iterable[FeeLike]) -> CategoryTotals:
    """Aggregate records into category totals, then reallocate VAT credits."""
    records = list(records)
    totals = CategoryTotals()

    for rec in records:
        fee_type = str(getattr(rec.fee_type, "value", rec.fee_type))
        amount = abs(to_decimal(rec.amount))
        credited = is_credited(rec)

        if fee_type == FeeType.ETSY_MISC_CREDIT.value:
            totals.misc_credit += amount
            continue

        bucket = _bucket_for(totals, fee_type)
        if bucket is None:
            continue
        if credited:
            bucket.credited += amount
        else:
            bucket.charged += amount

    reallocate_vat_credits(totals, records)
    return totals


def reallocate_vat_credits(totals: CategoryTotals, records: Iterable[FeeLike]) -> Decimal:
    """Move "VAT:" credits filed under another fee type into the VAT bucket.

    Runs after the primary pass. Only records that the primary pass counted as
    credited in a tracked bucket are moved, so nothing is counted twice.

    Returns:
        Total amount moved

    """
    moved = ZERO
    vat = totals.fees["vat"]
    for rec in records:
        fee_type = str(getattr(rec.fee_type, "value", rec.fee_type))
        if fee_type == FeeType.VAT_ON_FEES.value:
            continue
        if not (rec.description or "").startswith(VAT_PREFIX):
            continue
        if not is_credited(rec):
            continue
        source = _bucket_for(totals, fee_type)
        if source is None:
            continue

        amount = abs(to_decimal(rec.amount))
        source.credited = max(ZERO, source.credited - amount)
        vat.credited += amount
        moved += amount

    totals.vat_reallocated += moved
    return moved
