"""
Market Signals API
──────────────────
Endpoints:
  GET /api/market/freight/{route}/trend                 Freight trend + current index
  GET /api/market/fx/{pair}/trend                       FX trend + current rate
  GET /api/market/fx/{pair}/threshold                   FX rate vs an absolute risk level
  GET /api/market/products/{product_id}/price-spike     Moving-average price spike check

Route and pair path segments are URL-encoded ("Asia-Europe", "USD%2FMYR").
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tradewatch.core.database import get_db
from tradewatch.services.freight_detector import get_current_freight_index, get_freight_trend
from tradewatch.services.fx_detector import (
    detect_fx_risk_threshold, get_current_fx_rate, get_fx_trend,
)
from tradewatch.services.price_detector import (
    detect_price_spike_moving_average, get_latest_price,
)

logger = logging.getLogger("tradewatch.api.market")
router = APIRouter(prefix="/api/market", tags=["Market"])


# ── Freight ───────────────────────────────────────────────────────

@router.get("/freight/{route:path}/trend")
def freight_trend(
    route: str,
    lookback_days: int = Query(30, ge=7, le=365),
    db: Session = Depends(get_db),
):
    return {
        "route": route,
        "trend": get_freight_trend(db, route, lookback_days),
        "current_index": get_current_freight_index(db, route),
    }


# ── FX ────────────────────────────────────────────────────────────

@router.get("/fx/{pair:path}/trend")
def fx_trend(
    pair: str,
    lookback_days: int = Query(30, ge=7, le=365),
    db: Session = Depends(get_db),
):
    return {
        "currency_pair": pair,
        "trend": get_fx_trend(db, pair, lookback_days),
        "current_rate": get_current_fx_rate(db, pair),
    }


@router.get("/fx/{pair:path}/threshold")
def fx_threshold(
    pair: str,
    risk_threshold: float = Query(..., gt=0),
    direction: str = Query("above", pattern="^(above|below)$"),
    db: Session = Depends(get_db),
):
    """Flag the pair if its latest rate is beyond ``risk_threshold``."""
    anomaly = detect_fx_risk_threshold(db, pair, risk_threshold, direction)
    return {
        "currency_pair": pair,
        "risk_threshold": risk_threshold,
        "direction": direction,
        "breached": anomaly is not None,
        "anomaly": anomaly,
    }


# ── Prices ────────────────────────────────────────────────────────

@router.get("/products/{product_id}/price-spike")
def price_spike(
    product_id: str,
    short_window: int = Query(7, ge=2, le=90),
    long_window: int = Query(30, ge=3, le=365),
    threshold: float = Query(20.0, gt=0),
    db: Session = Depends(get_db),
):
    """Short-term vs long-term moving average of the product's price."""
    anomaly = detect_price_spike_moving_average(
        db, product_id, short_window=short_window, long_window=long_window, threshold_pct=threshold,
    )
    return {
        "product_id": product_id,
        "latest_price": get_latest_price(db, product_id),
        "spike": anomaly is not None,
        "anomaly": anomaly,
    }
