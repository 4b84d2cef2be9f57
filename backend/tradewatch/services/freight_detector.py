"""
Freight Surge Detector
──────────────────────
Compares a route's latest freight index with the mean of the preceding
points in the lookback window.

  Δ% ≥ +15%   → freight surge (severity by magnitude)
  Δ% ≤ −15%   → freight drop, reported as a low-severity opportunity

At least a week of data is required.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradewatch.models.alert import AnomalySeverity, AnomalyType
from tradewatch.schemas.anomaly import AnomalyResult, FreightSurgeDetails
from tradewatch.services import series
from tradewatch.services.severity import FREIGHT_POLICY
from tradewatch.services.statistics import mean, std_dev, percentage_change, min_max

logger = logging.getLogger("tradewatch.detectors.freight")

MIN_POINTS = 7
TREND_WINDOW = 7
TREND_BAND_PCT = 5.0


def _window(db: Session, route: str, lookback_days: int):
    """(current, historical values) or None when the window is too short."""
    points = series.freight_series(db, route, lookback_days + 1)
    if len(points) < MIN_POINTS:
        return None
    return points[-1].value, [p.value for p in points[:-1]]


def detect_freight_surge(
    db: Session,
    route: str,
    lookback_days: int = 30,
    surge_threshold: float = 15.0,
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    try:
        window = _window(db, route, lookback_days)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Freight series read failed for {route}: {e}")
        return None
    if window is None:
        return None

    current, historical = window
    avg = mean(historical)
    pct = percentage_change(avg, current)
    if pct < surge_threshold:
        return None

    sd = std_dev(historical)
    hist_min, hist_max = min_max(historical)
    return AnomalyResult(
        anomaly_type=AnomalyType.FREIGHT_SURGE,
        entity_id=route,
        current_value=current,
        baseline=avg,
        dispersion=sd,
        score=pct,
        percentage_change=pct,
        severity=FREIGHT_POLICY.classify(percentage_change=pct),
        detected_at=now or datetime.utcnow(),
        details=FreightSurgeDetails(
            route=route,
            current_index=current,
            average_index=avg,
            percentage_change=pct,
            std_dev=sd,
            threshold=surge_threshold,
            lookback_days=lookback_days,
            historical_min=hist_min,
            historical_max=hist_max,
        ),
    )


def detect_freight_drop(
    db: Session,
    route: str,
    lookback_days: int = 30,
    drop_threshold: float = 15.0,
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    """Sharp cost drops are opportunities, never risks: always low severity."""
    try:
        window = _window(db, route, lookback_days)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Freight series read failed for {route}: {e}")
        return None
    if window is None:
        return None

    current, historical = window
    avg = mean(historical)
    pct = percentage_change(avg, current)
    if pct > -abs(drop_threshold):
        return None

    sd = std_dev(historical)
    return AnomalyResult(
        anomaly_type=AnomalyType.FREIGHT_SURGE,
        entity_id=route,
        current_value=current,
        baseline=avg,
        dispersion=sd,
        score=pct,
        percentage_change=pct,
        severity=AnomalySeverity.LOW,
        detected_at=now or datetime.utcnow(),
        details=FreightSurgeDetails(
            route=route,
            current_index=current,
            average_index=avg,
            percentage_change=pct,
            std_dev=sd,
            threshold=-abs(drop_threshold),
            lookback_days=lookback_days,
            change_type="decrease",
            opportunity=True,
        ),
    )


def detect_all_freight_surges(
    db: Session,
    lookback_days: int = 30,
    surge_threshold: float = 15.0,
    now: Optional[datetime] = None,
) -> List[AnomalyResult]:
    try:
        routes = series.freight_routes(db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not list freight routes: {e}")
        return []

    anomalies = []
    for route in routes:
        try:
            result = detect_freight_surge(db, route, lookback_days, surge_threshold, now=now)
        except Exception as e:
            logger.warning(f"Freight detection skipped for {route}: {e}")
            continue
        if result:
            anomalies.append(result)

    logger.info(f"Freight scan: {len(anomalies)} surges across {len(routes)} routes")
    return anomalies


def classify_trend(values: List[float], band_pct: float = TREND_BAND_PCT) -> str:
    """First-week vs last-week average: increasing / decreasing / stable."""
    first = mean(values[:TREND_WINDOW])
    last = mean(values[-TREND_WINDOW:])
    change = percentage_change(first, last)
    if change > band_pct:
        return "increasing"
    if change < -band_pct:
        return "decreasing"
    return "stable"


def get_freight_trend(db: Session, route: str, lookback_days: int = 30) -> Optional[str]:
    try:
        points = series.freight_series(db, route, lookback_days)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Freight trend read failed for {route}: {e}")
        return None
    if len(points) < TREND_WINDOW:
        return None
    return classify_trend([p.value for p in points])


def get_current_freight_index(db: Session, route: str) -> Optional[float]:
    try:
        points = series.freight_series(db, route, 1)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Current freight index read failed for {route}: {e}")
        return None
    return points[-1].value if points else None
