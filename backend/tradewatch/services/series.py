"""
Time-series reads shared by the detectors.

Every reader returns the N most recent points in ascending date order.
Store errors (SQLAlchemyError) propagate; the detectors decide the fallback.
"""
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from tradewatch.models.market_data import Product, PriceData, TariffData, FreightIndex, FxRate
from tradewatch.services.statistics import TimeSeriesPoint


def _recent(db: Session, value_col, date_col, criterion, limit: int) -> List[TimeSeriesPoint]:
    rows = (
        db.query(value_col, date_col)
        .filter(criterion)
        .order_by(date_col.desc())
        .limit(limit)
        .all()
    )
    return [TimeSeriesPoint(value=float(v), date=d.isoformat()) for v, d in reversed(rows)]


def price_series(db: Session, product_id: str, limit: int) -> List[TimeSeriesPoint]:
    return _recent(db, PriceData.price, PriceData.date, PriceData.product_id == product_id, limit)


def tariff_series(db: Session, product_id: str, limit: int) -> List[TimeSeriesPoint]:
    return _recent(
        db, TariffData.rate, TariffData.effective_date, TariffData.product_id == product_id, limit
    )


def freight_series(db: Session, route: str, limit: int) -> List[TimeSeriesPoint]:
    return _recent(db, FreightIndex.index_value, FreightIndex.date, FreightIndex.route == route, limit)


def fx_series(db: Session, currency_pair: str, limit: int) -> List[TimeSeriesPoint]:
    return _recent(db, FxRate.rate, FxRate.date, FxRate.currency_pair == currency_pair, limit)


# ── Entity enumeration ───────────────────────────────────────────────────

def product_ids(db: Session, limit: int = 50) -> List[str]:
    return [pid for (pid,) in db.query(Product.id).order_by(Product.id).limit(limit).all()]


def freight_routes(db: Session) -> List[str]:
    return [r for (r,) in db.query(FreightIndex.route).distinct().order_by(FreightIndex.route).all()]


def currency_pairs(db: Session) -> List[str]:
    return [p for (p,) in db.query(FxRate.currency_pair).distinct().order_by(FxRate.currency_pair).all()]


def product_context(db: Session, product_id: str) -> Tuple[Optional[str], Optional[str]]:
    """(category, origin_country) for a product, (None, None) if unknown."""
    row = (
        db.query(Product.category, Product.origin_country)
        .filter(Product.id == product_id)
        .first()
    )
    if row is None:
        return None, None
    return row[0], row[1]
