"""Fee-type classification for statement rows.

Classification is an ordered rule table: the first rule whose predicate
matches (type, title) wins. Credits have their own table that maps a credit
back to the fee type its title refers to.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class FeeType(str, Enum):
    LISTING_FEE = "listing_fee"
    TRANSACTION_FEE = "transaction_fee"
    PROCESSING_FEE = "processing_fee"
    REGULATORY_FEE = "regulatory_fee"
    VAT_ON_FEES = "vat_on_fees"
    ETSY_ADS = "etsy_ads"
    OFFSITE_ADS = "offsite_ads"
    POSTAGE_LABELS = "postage_labels"
    REFUND = "refund"
    ETSY_MISC_CREDIT = "etsy_misc_credit"
    OTHER_FEE = "other_fee"
    PAYMENT_DISPUTE_FEE = "payment_dispute_fee"
    MARKETING_OTHER = "marketing_other"
    PAYMENT_OTHER = "payment_other"
    REFUND_CHARGE = "refund_charge"


Predicate = Callable[[str, str], bool]


@dataclass(frozen=True)
class Rule:
    """Maps rows matching ``when(type_lower, title_lower)`` to ``fee_type``."""

    name: str
    when: Predicate
    fee_type: FeeType


def type_is(*values: str) -> Predicate:
    return lambda t, _title: t in values


def type_contains(*needles: str) -> Predicate:
    return lambda t, _title: any(n in t for n in needles)


def title_has(*needles: str) -> Predicate:
    return lambda _t, title: any(n in title for n in needles)


def all_of(*preds: Predicate) -> Predicate:
    return lambda t, title: all(p(t, title) for p in preds)


def any_of(*preds: Predicate) -> Predicate:
    return lambda t, title: any(p(t, title) for p in preds)


def none_of(*preds: Predicate) -> Predicate:
    return lambda t, title: not any(p(t, title) for p in preds)


CREDIT_RULES: tuple[Rule, ...] = (
    Rule("credit_listing", title_has("listing"), FeeType.LISTING_FEE),
    Rule("credit_transaction", title_has("transaction"), FeeType.TRANSACTION_FEE),
    Rule("credit_processing", title_has("processing"), FeeType.PROCESSING_FEE),
    Rule("credit_regulatory", title_has("regulatory"), FeeType.REGULATORY_FEE),
    Rule("credit_etsy_ads", title_has("etsy ads", "etsy ad"), FeeType.ETSY_ADS),
    Rule("credit_offsite_ads", title_has("offsite"), FeeType.OFFSITE_ADS),
    Rule("credit_postage", title_has("postage", "shipping", "label"), FeeType.POSTAGE_LABELS),
    Rule("credit_vat", title_has("vat", "seller"), FeeType.VAT_ON_FEES),
)

_FEE = type_is("fee")
_MARKETING = type_is("marketing")
_PAYMENT = type_is("payment")

FEE_RULES: tuple[Rule, ...] = (
    Rule("vat", type_is("vat"), FeeType.VAT_ON_FEES),
    Rule("refund", type_is("refund"), FeeType.REFUND),
    Rule("fee_listing", all_of(_FEE, title_has("listing")), FeeType.LISTING_FEE),
    Rule("fee_transaction", all_of(_FEE, title_has("transaction")), FeeType.TRANSACTION_FEE),
    Rule("fee_processing", all_of(_FEE, title_has("processing")), FeeType.PROCESSING_FEE),
    Rule("fee_regulatory", all_of(_FEE, title_has("regulatory")), FeeType.REGULATORY_FEE),
    Rule(
        "fee_dispute",
        all_of(_FEE, title_has("dispute", "chargeback")),
        FeeType.PAYMENT_DISPUTE_FEE,
    ),
    Rule("fee_other", _FEE, FeeType.OTHER_FEE),
    Rule(
        "marketing_etsy_ads",
        all_of(_MARKETING, title_has("etsy ads", "click-through")),
        FeeType.ETSY_ADS,
    ),
    Rule("marketing_offsite", all_of(_MARKETING, title_has("offsite")), FeeType.OFFSITE_ADS),
    Rule("marketing_other", _MARKETING, FeeType.MARKETING_OTHER),
    # Customs duties are not part of the delivery category
    Rule(
        "postage",
        all_of(
            any_of(type_is("shipping"), title_has("postage", "label")),
            none_of(title_has("duties")),
        ),
        FeeType.POSTAGE_LABELS,
    ),
    Rule(
        "payment_refund_charge",
        all_of(_PAYMENT, title_has("refund"), title_has("charge")),
        FeeType.REFUND_CHARGE,
    ),
    Rule("payment_other", _PAYMENT, FeeType.PAYMENT_OTHER),
    Rule("misc_credit", type_contains("miscellaneous"), FeeType.ETSY_MISC_CREDIT),
)


def is_credit_row(row_type: str, title: str) -> bool:
    """Type 'credit' (any case) or a title mentioning 'credit'."""
    return row_type.strip().lower() == "credit" or "credit" in title.lower()


def first_match(rules: tuple[Rule, ...], row_type: str, title: str) -> Rule | None:
    t, ti = row_type.strip().lower(), title.strip().lower()
    for rule in rules:
        if rule.when(t, ti):
            return rule
    return None


def map_fee_type(row_type: str, title: str) -> FeeType | None:
    """Canonical fee type for a row, or None when it cannot be classified."""
    rules = CREDIT_RULES if is_credit_row(row_type, title) else FEE_RULES
    rule = first_match(rules, row_type, title)
    return rule.fee_type if rule else None


_ORDER_REF = re.compile(r"Order #(\d+)|refund[^0-9]*(\d+)|order:\s*(\d+)", re.IGNORECASE)
_REFUND_ORDER = re.compile(r"#(\d+)")


def extract_order_number(title: str, info: str) -> str | None:
    """External order number referenced in title/info, if any."""
    m = _ORDER_REF.search(f"{title} {info}")
    if not m:
        return None
    return m.group(1) or m.group(2) or m.group(3)


def extract_refund_order_number(title: str) -> str | None:
    m = _REFUND_ORDER.search(title)
    return m.group(1) if m else None
