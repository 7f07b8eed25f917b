"""Shared pytest fixtures and configuration."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from shopledger.core.config import get_settings
from shopledger.db.models import Base, Material, Product


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Re-read settings for every test so monkeypatched env vars apply."""
    get_settings.cache_clear()

    # Fixtures may fill the settings cache before the test body calls
    # monkeypatch.setenv/delenv; drop the cache whenever the env changes.
    setenv, delenv = monkeypatch.setenv, monkeypatch.delenv

    def _setenv(*args, **kwargs):
        setenv(*args, **kwargs)
        get_settings.cache_clear()

    def _delenv(*args, **kwargs):
        delenv(*args, **kwargs)
        get_settings.cache_clear()

    monkeypatch.setenv = _setenv
    monkeypatch.delenv = _delenv
    yield
    get_settings.cache_clear()


@pytest.fixture
def db() -> Session:
    """Create in-memory SQLite database for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    session = Session(engine)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def catalog(db: Session) -> Session:
    """Catalog with one priceable SKU and two that cannot be priced."""
    db.add_all(
        [
            Material(material_id="SILVER", name="Sterling silver", sell_rate_per_unit=Decimal("3.00")),
            Material(material_id="GOLD", name="9ct gold", sell_rate_per_unit=None),
            Product(
                sku="RING-40",
                title="Silver band",
                weight=Decimal("40"),
                material_id="SILVER",
                postage_cost=Decimal("3.50"),
            ),
            Product(sku="NO-WEIGHT", title="Unweighed", weight=None, material_id="SILVER"),
            Product(sku="GOLD-10", title="Gold stud", weight=Decimal("10"), material_id="GOLD"),
        ]
    )
    db.commit()
    return db


def statement_row(
    date: str = "15 Jan, 2026",
    type_: str = "Fee",
    title: str = "Transaction fee (6.5% of £100)",
    info: str = "",
    amount: str = "-£6.50",
    fees_and_taxes: str | None = None,
    net: str | None = None,
) -> dict[str, str]:
    """One raw statement row shaped like the marketplace CSV export."""
    return {
        "Date": date,
        "Type": type_,
        "Title": title,
        "Info": info,
        "Currency": "GBP",
        "Amount": amount,
        "Fees & Taxes": fees_and_taxes if fees_and_taxes is not None else amount,
        "Net": net if net is not None else amount,
        "Tax Details": "--",
    }


class FakeOrders:
    """In-memory order lookup keyed by external order number."""

    def __init__(self, known: dict[str, str] | None = None):
        self.known = known or {}
        self.lookups: list[str] = []

    def find_order_by_external_number(self, number: str) -> str | None:
        self.lookups.append(number)
        return self.known.get(number)


@pytest.fixture
def make_row():
    return statement_row


@pytest.fixture
def make_orders():
    return FakeOrders
