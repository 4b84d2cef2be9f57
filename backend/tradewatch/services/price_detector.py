"""
Price Anomaly Detector
──────────────────────
Flags a product's latest price when it sits ≥ threshold standard deviations
from the historical mean of the lookback window (default 2.0σ).

  current    = last price in the window
  historical = every earlier price in the window
  z          = (current - μ_hist) / σ_hist
  Δ%         = change vs the immediately previous price

A flat history (σ = 0) with a current price that moved off it is treated as
significant; its z-score is reported as 0.

The moving-average variant compares the short-window average against the
long-window average that precedes it (default 7 vs 30 days, 20%).
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradewatch.models.alert import AnomalyType
from tradewatch.schemas.anomaly import AnomalyResult, PriceSpikeDetails
from tradewatch.services import series
from tradewatch.services.severity import PRICE_POLICY
from tradewatch.services.statistics import (
    mean, std_dev, z_score, percentage_change, min_max,
)

logger = logging.getLogger("tradewatch.detectors.price")

MIN_POINTS = 2


def detect_price_anomaly(
    db: Session,
    product_id: str,
    lookback_days: int = 30,
    z_threshold: float = 2.0,
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    """Z-score test of the latest price against the lookback window."""
    try:
        points = series.price_series(db, product_id, lookback_days + 1)
        if len(points) < MIN_POINTS:
            return None
        category, origin = series.product_context(db, product_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Price series read failed for {product_id}: {e}")
        return None

    current = points[-1].value
    historical = [p.value for p in points[:-1]]
    previous = historical[-1]

    avg = mean(historical)
    sd = std_dev(historical)
    z = z_score(current, avg, sd)
    pct = percentage_change(previous, current)

    flat_baseline = sd == 0 and current != avg
    if abs(z) < z_threshold and not flat_baseline:
        return None

    hist_min, hist_max = min_max(historical)
    return AnomalyResult(
        anomaly_type=AnomalyType.PRICE_SPIKE,
        entity_id=product_id,
        product_id=product_id,
        current_value=current,
        baseline=avg,
        dispersion=sd,
        score=z,
        percentage_change=pct,
        severity=PRICE_POLICY.classify(z_score=z, percentage_change=pct),
        detected_at=now or datetime.utcnow(),
        details=PriceSpikeDetails(
            previous_price=previous,
            current_price=current,
            average_price=avg,
            z_score=z,
            percentage_change=pct,
            std_dev=sd,
            threshold=z_threshold,
            lookback_days=lookback_days,
            historical_min=hist_min,
            historical_max=hist_max,
            data_points=len(historical),
            flat_baseline=flat_baseline,
            category=category,
            origin=origin,
        ),
    )


def detect_all_price_anomalies(
    db: Session,
    lookback_days: int = 30,
    z_threshold: float = 2.0,
    max_products: int = 50,
    now: Optional[datetime] = None,
) -> List[AnomalyResult]:
    try:
        products = series.product_ids(db, limit=max_products)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not list products: {e}")
        return []

    anomalies = []
    for product_id in products:
        try:
            result = detect_price_anomaly(db, product_id, lookback_days, z_threshold, now=now)
        except Exception as e:
            logger.warning(f"Price detection skipped for {product_id}: {e}")
            continue
        if result:
            anomalies.append(result)

    logger.info(f"Price scan: {len(anomalies)} anomalies across {len(products)} products")
    return anomalies


def detect_price_spike_moving_average(
    db: Session,
    product_id: str,
    short_window: int = 7,
    long_window: int = 30,
    threshold_pct: float = 20.0,
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    """Short-term average vs the long-term average preceding it."""
    try:
        points = series.price_series(db, product_id, long_window + 1)
        if len(points) < long_window:
            return None
        category, origin = series.product_context(db, product_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Price series read failed for {product_id}: {e}")
        return None

    prices = [p.value for p in points]
    current = prices[-1]
    short_avg = mean(prices[-short_window:])
    long_avg = mean(prices[-long_window:-short_window])
    pct = percentage_change(long_avg, short_avg)

    if pct < threshold_pct:
        return None

    sd = std_dev(prices)
    z = z_score(current, long_avg, sd)
    return AnomalyResult(
        anomaly_type=AnomalyType.PRICE_SPIKE,
        entity_id=product_id,
        product_id=product_id,
        current_value=current,
        baseline=long_avg,
        dispersion=sd,
        score=z,
        percentage_change=pct,
        severity=PRICE_POLICY.classify(z_score=z, percentage_change=pct),
        detected_at=now or datetime.utcnow(),
        details=PriceSpikeDetails(
            previous_price=long_avg,
            current_price=current,
            average_price=long_avg,
            z_score=z,
            percentage_change=pct,
            std_dev=sd,
            threshold=threshold_pct,
            detection_method="moving_average",
            short_term_avg=short_avg,
            long_term_avg=long_avg,
            short_window=short_window,
            long_window=long_window,
            category=category,
            origin=origin,
        ),
    )


def get_latest_price(db: Session, product_id: str) -> Optional[float]:
    try:
        points = series.price_series(db, product_id, 1)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Latest price read failed for {product_id}: {e}")
        return None
    return points[-1].value if points else None
