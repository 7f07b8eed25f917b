"""Tests for the hash-deduplicated fee ledger."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from shopledger.core.errors import BatchFailedError
from shopledger.db.models import FeeRecord
from shopledger.domain.fees.classify import FeeType
from shopledger.domain.fees.normalizer import NormalizedFee
from shopledger.services.fee_ledger import FeeLedger

D = Decimal


def fee(
    fee_hash: str,
    fee_type: FeeType = FeeType.LISTING_FEE,
    amount: str = "0.20",
    order_id: str | None = None,
    is_credit: bool = False,
    charged: date = date(2026, 1, 15),
    description: str = "",
) -> NormalizedFee:
    value = D(amount)
    return NormalizedFee(
        fee_hash=fee_hash,
        order_id=order_id,
        fee_type=fee_type,
        amount=value,
        source_amount=value if is_credit else -value,
        is_credit=is_credit,
        description=description or fee_type.value,
        charged_date=charged,
    )


def _count(db) -> int:
    return db.execute(select(func.count()).select_from(FeeRecord)).scalar_one()


def test_insert_is_idempotent_on_hash(db):
    ledger = FeeLedger(db)

    assert ledger.insert(fee("h1")) == 1
    assert ledger.insert(fee("h1", amount="9.99")) == 0
    db.commit()

    assert _count(db) == 1
    assert db.execute(select(FeeRecord.amount)).scalar_one() == D("0.20")


def test_bulk_insert_counts_duplicates_and_errors(db):
    ledger = FeeLedger(db)
    ledger.bulk_insert([fee("h1"), fee("h2")])

    result = ledger.bulk_insert([fee("h1"), fee("h3"), fee("", amount="1.00"), fee("h2")])

    assert result.inserted == 1
    assert result.duplicates == 2
    assert result.errors == ["missing fee_hash"]
    assert _count(db) == 3


def test_bulk_insert_rolls_back_on_store_failure(db):
    ledger = FeeLedger(db)
    real_insert = FeeLedger.insert

    def failing(self, record):
        if record.fee_hash == "boom":
            raise OperationalError("INSERT INTO fee_ledger", {}, Exception("disk I/O error"))
        return real_insert(self, record)

    with patch.object(FeeLedger, "insert", autospec=True, side_effect=failing):
        with pytest.raises(BatchFailedError) as exc_info:
            ledger.bulk_insert([fee("h1"), fee("boom")])

    assert exc_info.value.code == "BATCH_FAILED"
    assert _count(db) == 0


def test_sum_by_fee_type_splits_charged_and_credited(db):
    FeeLedger(db).bulk_insert(
        [
            fee("a", FeeType.TRANSACTION_FEE, "7.86", order_id="ORD-1"),
            fee("b", FeeType.TRANSACTION_FEE, "1.00", order_id="ORD-1", is_credit=True),
            fee("c", FeeType.LISTING_FEE, "0.20"),
            fee("d", FeeType.LISTING_FEE, "0.20", charged=date(2026, 2, 1)),
        ]
    )
    ledger = FeeLedger(db)

    totals = ledger.sum_by_fee_type(date(2026, 1, 1), date(2026, 1, 31))
    shop = ledger.sum_by_fee_type(date(2026, 1, 1), date(2026, 1, 31), shop_level=True)

    assert totals["transaction_fee"].charged == D("7.86")
    assert totals["transaction_fee"].credited == D("1.00")
    assert totals["listing_fee"].charged == D("0.20")
    assert set(shop) == {"listing_fee"}


def test_fees_by_order_nets_credits_and_ignores_refunds(db):
    FeeLedger(db).bulk_insert(
        [
            fee("a", FeeType.TRANSACTION_FEE, "7.86", order_id="ORD-1"),
            fee("b", FeeType.PROCESSING_FEE, "5.04", order_id="ORD-1"),
            fee("c", FeeType.TRANSACTION_FEE, "1.00", order_id="ORD-1", is_credit=True),
            fee("d", FeeType.REFUND, "25.00", order_id="ORD-1"),
            fee("e", FeeType.TRANSACTION_FEE, "3.25", order_id="ORD-2"),
            fee("f", FeeType.LISTING_FEE, "0.20"),
        ]
    )
    ledger = FeeLedger(db)

    assert ledger.fees_by_order() == {"ORD-1": D("11.90"), "ORD-2": D("3.25")}
    assert ledger.fees_by_order(["ORD-2"]) == {"ORD-2": D("3.25")}
    assert ledger.sum_by_order("ORD-1") == D("11.90")
    assert ledger.sum_by_order("ORD-404") == 0


def test_shop_level_and_refund_queries(db):
    FeeLedger(db).bulk_insert(
        [
            fee("a", FeeType.LISTING_FEE, "0.20"),
            fee("b", FeeType.ETSY_ADS, "4.20"),
            fee("c", FeeType.ETSY_MISC_CREDIT, "2.00", is_credit=True),
            fee("d", FeeType.TRANSACTION_FEE, "7.86", order_id="ORD-1"),
            fee("e", FeeType.REFUND, "25.00", order_id="ORD-1", charged=date(2026, 1, 20)),
        ]
    )
    ledger = FeeLedger(db)

    shop = ledger.sum_shop_level(date(2026, 1, 1), date(2026, 1, 31))
    refunds = ledger.refunds_between(date(2026, 1, 1), date(2026, 1, 31))

    assert shop.charged == D("4.40")
    assert shop.credited == D("2.00")
    assert [(r.order_id, r.amount) for r in refunds] == [("ORD-1", D("25.00"))]
    assert len(ledger.records_between(date(2026, 1, 16), date(2026, 1, 31))) == 1
