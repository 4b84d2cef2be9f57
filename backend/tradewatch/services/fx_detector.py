"""
FX Volatility Detector
──────────────────────
Volatility = std-dev of day-over-day % changes across the lookback window.
A currency pair is flagged when volatility ≥ threshold (default 2.5%).

Also provides:
  - spike check:      oldest vs newest rate in a short window (default 7 days, 3%)
  - risk threshold:   current rate crossing an absolute level (always high)
  - trend:            first-week vs last-week average (±1%)
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradewatch.models.alert import AnomalySeverity, AnomalyType
from tradewatch.schemas.anomaly import AnomalyResult, FxVolatilityDetails
from tradewatch.services import series
from tradewatch.services.severity import FX_POLICY
from tradewatch.services.statistics import (
    mean, std_dev, volatility, percentage_change, min_max,
)

logger = logging.getLogger("tradewatch.detectors.fx")

MIN_POINTS = 7
TREND_WINDOW = 7
TREND_BAND_PCT = 1.0


def detect_fx_volatility(
    db: Session,
    currency_pair: str,
    lookback_days: int = 30,
    volatility_threshold: float = 2.5,
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    try:
        points = series.fx_series(db, currency_pair, lookback_days + 1)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"FX series read failed for {currency_pair}: {e}")
        return None
    if len(points) < MIN_POINTS:
        return None

    rates = [p.value for p in points]
    current = rates[-1]
    avg = mean(rates)
    vol = volatility(rates)
    if vol < volatility_threshold:
        return None

    pct = percentage_change(avg, current)
    low, high = min_max(rates)
    sd = std_dev(rates)
    return AnomalyResult(
        anomaly_type=AnomalyType.FX_VOLATILITY,
        entity_id=currency_pair,
        current_value=current,
        baseline=avg,
        dispersion=sd,
        score=vol,
        percentage_change=pct,
        severity=FX_POLICY.classify(volatility=vol, percentage_change=pct),
        detected_at=now or datetime.utcnow(),
        details=FxVolatilityDetails(
            currency_pair=currency_pair,
            current_rate=current,
            average_rate=avg,
            volatility=vol,
            percentage_change=pct,
            threshold=volatility_threshold,
            lookback_days=lookback_days,
            std_dev=sd,
            min_rate=low,
            max_rate=high,
            rate_range=f"{low:.6f} - {high:.6f}",
        ),
    )


def detect_all_fx_volatility(
    db: Session,
    lookback_days: int = 30,
    volatility_threshold: float = 2.5,
    now: Optional[datetime] = None,
) -> List[AnomalyResult]:
    try:
        pairs = series.currency_pairs(db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not list currency pairs: {e}")
        return []

    anomalies = []
    for pair in pairs:
        try:
            result = detect_fx_volatility(db, pair, lookback_days, volatility_threshold, now=now)
        except Exception as e:
            logger.warning(f"FX detection skipped for {pair}: {e}")
            continue
        if result:
            anomalies.append(result)

    logger.info(f"FX scan: {len(anomalies)} volatile pairs out of {len(pairs)}")
    return anomalies


def detect_fx_spike(
    db: Session,
    currency_pair: str,
    lookback_days: int = 7,
    spike_threshold: float = 3.0,
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    """Oldest vs newest rate of a short window, independent of volatility."""
    try:
        points = series.fx_series(db, currency_pair, lookback_days)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"FX series read failed for {currency_pair}: {e}")
        return None
    if len(points) < 2:
        return None

    rates = [p.value for p in points]
    oldest, latest = rates[0], rates[-1]
    pct = percentage_change(oldest, latest)
    if abs(pct) < spike_threshold:
        return None

    avg = mean(rates)
    vol = volatility(rates)
    return AnomalyResult(
        anomaly_type=AnomalyType.FX_VOLATILITY,
        entity_id=currency_pair,
        current_value=latest,
        baseline=oldest,
        dispersion=std_dev(rates),
        score=pct,
        percentage_change=pct,
        severity=FX_POLICY.classify(volatility=vol, percentage_change=pct),
        detected_at=now or datetime.utcnow(),
        details=FxVolatilityDetails(
            currency_pair=currency_pair,
            current_rate=latest,
            average_rate=avg,
            volatility=vol,
            percentage_change=pct,
            threshold=spike_threshold,
            lookback_days=lookback_days,
            detection_method="spike",
            change_type="appreciation" if pct > 0 else "depreciation",
            previous_rate=oldest,
        ),
    )


def detect_fx_risk_threshold(
    db: Session,
    currency_pair: str,
    risk_threshold: float,
    direction: str = "above",
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    """Current rate beyond an absolute risk level (e.g. USD/MYR above 5.0)."""
    if direction not in ("above", "below"):
        raise ValueError(f"direction must be 'above' or 'below', got {direction!r}")

    try:
        points = series.fx_series(db, currency_pair, 7)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"FX series read failed for {currency_pair}: {e}")
        return None
    if not points:
        return None

    rates = [p.value for p in points]
    current = rates[-1]
    breached = current > risk_threshold if direction == "above" else current < risk_threshold
    if not breached:
        return None

    pct = percentage_change(risk_threshold, current)
    return AnomalyResult(
        anomaly_type=AnomalyType.FX_VOLATILITY,
        entity_id=currency_pair,
        current_value=current,
        baseline=risk_threshold,
        dispersion=std_dev(rates),
        score=pct,
        percentage_change=pct,
        severity=AnomalySeverity.HIGH,
        detected_at=now or datetime.utcnow(),
        details=FxVolatilityDetails(
            currency_pair=currency_pair,
            current_rate=current,
            average_rate=mean(rates),
            volatility=volatility(rates),
            percentage_change=pct,
            threshold=risk_threshold,
            detection_method="risk_threshold",
            risk_threshold=risk_threshold,
            direction=direction,
            threshold_breach=True,
            distance_from_threshold=abs(current - risk_threshold),
        ),
    )


def get_fx_trend(db: Session, currency_pair: str, lookback_days: int = 30) -> Optional[str]:
    """strengthening / weakening / stable, or None with under a week of data."""
    try:
        points = series.fx_series(db, currency_pair, lookback_days)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"FX trend read failed for {currency_pair}: {e}")
        return None
    if len(points) < TREND_WINDOW:
        return None

    rates = [p.value for p in points]
    change = percentage_change(mean(rates[:TREND_WINDOW]), mean(rates[-TREND_WINDOW:]))
    if change > TREND_BAND_PCT:
        return "strengthening"
    if change < -TREND_BAND_PCT:
        return "weakening"
    return "stable"


def get_current_fx_rate(db: Session, currency_pair: str) -> Optional[float]:
    try:
        points = series.fx_series(db, currency_pair, 1)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Current FX rate read failed for {currency_pair}: {e}")
        return None
    return points[-1].value if points else None
