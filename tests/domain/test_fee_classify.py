"""Tests for the fee-type rule table."""

from __future__ import annotations

import pytest

from shopledger.domain.fees.classify import (
    CREDIT_RULES,
    FEE_RULES,
    FeeType,
    extract_order_number,
    extract_refund_order_number,
    first_match,
    is_credit_row,
    map_fee_type,
)


@pytest.mark.parametrize(
    "row_type,title,expected",
    [
        ("Fee", "Listing fee", FeeType.LISTING_FEE),
        ("Fee", "Transaction fee: Silver band", FeeType.TRANSACTION_FEE),
        ("Fee", "Processing fee", FeeType.PROCESSING_FEE),
        ("Fee", "Regulatory operating fee", FeeType.REGULATORY_FEE),
        ("Fee", "Payment dispute fee", FeeType.PAYMENT_DISPUTE_FEE),
        ("Fee", "Some brand new fee", FeeType.OTHER_FEE),
        ("VAT", "VAT: Listing fee", FeeType.VAT_ON_FEES),
        ("Marketing", "Etsy Ads", FeeType.ETSY_ADS),
        ("Marketing", "Offsite Ads fee", FeeType.OFFSITE_ADS),
        ("Marketing", "Share & Save", FeeType.MARKETING_OTHER),
        ("Shipping", "Royal Mail", FeeType.POSTAGE_LABELS),
        ("Delivery", "Postage label", FeeType.POSTAGE_LABELS),
        ("Payment", "Refund charge", FeeType.REFUND_CHARGE),
        ("Payment", "Reserve", FeeType.PAYMENT_OTHER),
        ("Miscellaneous", "Goodwill", FeeType.ETSY_MISC_CREDIT),
    ],
)
def test_fee_rules(row_type, title, expected):
    assert map_fee_type(row_type, title) == expected


def test_customs_duties_are_not_postage():
    assert map_fee_type("Delivery", "Postage label duties") is None


def test_unknown_type_is_unclassified():
    assert map_fee_type("Tip", "Thanks") is None


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Credit for listing fee", FeeType.LISTING_FEE),
        ("Credit for transaction fee", FeeType.TRANSACTION_FEE),
        ("Credit for Etsy Ads", FeeType.ETSY_ADS),
        ("Offsite ads credit", FeeType.OFFSITE_ADS),
        ("Shipping label credit", FeeType.POSTAGE_LABELS),
        ("Seller fee credit", FeeType.VAT_ON_FEES),
    ],
)
def test_credits_map_back_to_the_fee_they_refer_to(title, expected):
    assert is_credit_row("Credit", title)
    assert map_fee_type("Credit", title) == expected


def test_unrecognized_credit_is_unclassified():
    assert map_fee_type("Credit", "Something else") is None


def test_credit_detection():
    assert is_credit_row("CREDIT", "anything")
    assert is_credit_row("Fee", "Listing credit")
    assert not is_credit_row("Fee", "Listing fee")


def test_rule_tables_are_ordered():
    # A fee title mentioning listing and transaction resolves by the first rule
    rule = first_match(FEE_RULES, "Fee", "Listing transaction fee")
    assert rule.name == "fee_listing"
    assert first_match(CREDIT_RULES, "Credit", "nothing here") is None


@pytest.mark.parametrize(
    "title,info,expected",
    [
        ("Transaction fee: Order #3456789012", "", "3456789012"),
        ("Processing fee", "order: 42", "42"),
        ("Partial refund for 777", "", "777"),
        ("Listing fee", "Listing #111", None),
    ],
)
def test_extract_order_number(title, info, expected):
    assert extract_order_number(title, info) == expected


def test_extract_refund_order_number():
    assert extract_refund_order_number("Refund to buyer for Order #3456789012") == "3456789012"
    assert extract_refund_order_number("Refund to buyer") is None
