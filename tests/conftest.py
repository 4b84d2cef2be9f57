"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database and a fixed ``now`` so
time windows are reproducible.
"""

import itertools
import os
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

# Settings are read at import time; point them at SQLite before anything loads
os.environ.setdefault("TRADEWATCH_DATABASE_URL", "sqlite://")
os.environ.setdefault("TRADEWATCH_SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tradewatch.core.database import Base, get_db
from tradewatch.models import alert as _alert_models  # noqa: F401
from tradewatch.models.market_data import Product, PriceData, TariffData, FreightIndex, FxRate
from tradewatch.services.alert_generator import create_anomaly_and_alert

NOW = datetime(2025, 3, 15, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def db():
    """Session bound to a throwaway in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db):
    """FastAPI TestClient sharing the test session. Lifespan is not run."""
    from fastapi.testclient import TestClient
    from tradewatch.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ── Seed helpers ─────────────────────────────────────────────────────────

def _dates(n: int, end: date) -> List[date]:
    """n consecutive days ending on ``end``, oldest first."""
    return [end - timedelta(days=n - 1 - i) for i in range(n)]


@pytest.fixture
def add_product(db):
    def _add(product_id: str, category: Optional[str] = None, origin: Optional[str] = None) -> Product:
        product = db.get(Product, product_id)
        if product is None:
            product = Product(
                id=product_id,
                hs_code="7208.10",
                description=f"Test product {product_id}",
                category=category,
                origin_country=origin,
            )
            db.add(product)
            db.commit()
        return product
    return _add


@pytest.fixture
def add_prices(db, add_product):
    def _add(product_id: str, prices: List[float], **product_fields) -> None:
        add_product(product_id, **product_fields)
        for day, price in zip(_dates(len(prices), NOW.date()), prices):
            db.add(PriceData(product_id=product_id, price=price, date=day))
        db.commit()
    return _add


@pytest.fixture
def add_tariffs(db, add_product):
    def _add(product_id: str, rates: List[float], spacing_days: int = 30, **product_fields) -> None:
        add_product(product_id, **product_fields)
        for i, rate in enumerate(rates):
            effective = NOW.date() - timedelta(days=spacing_days * (len(rates) - 1 - i))
            db.add(TariffData(product_id=product_id, rate=rate, effective_date=effective))
        db.commit()
    return _add


@pytest.fixture
def add_freight(db):
    def _add(route: str, values: List[float]) -> None:
        for day, value in zip(_dates(len(values), NOW.date()), values):
            db.add(FreightIndex(route=route, index_value=value, date=day))
        db.commit()
    return _add


@pytest.fixture
def add_fx(db):
    def _add(pair: str, rates: List[float]) -> None:
        for day, rate in zip(_dates(len(rates), NOW.date()), rates):
            db.add(FxRate(currency_pair=pair, rate=rate, date=day))
        db.commit()
    return _add


@pytest.fixture
def make_alert(db):
    """Persist an anomaly + alert directly; returns the alert id."""
    counter = itertools.count(1)

    def _make(
        anomaly_type: str,
        severity: str = "medium",
        product_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        created_at: datetime = NOW,
        entity_key: Optional[str] = None,
    ) -> int:
        ids = create_anomaly_and_alert(
            db,
            anomaly_type,
            product_id,
            severity,
            {"type": anomaly_type, **(details or {})},
            # keeps product-less anomalies apart; a product is its own key
            entity_key=entity_key or f"entity-{next(counter)}",
            now=created_at,
        )
        assert ids is not None
        return ids[1]
    return _make
