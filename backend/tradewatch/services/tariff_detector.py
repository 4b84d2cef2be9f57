"""
Tariff Change Detector
──────────────────────
Compares a product's two most recent tariff rates (by effective date) and
flags the change when |Δ%| ≥ threshold (default 10%).
"""
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradewatch.models.alert import AnomalyType
from tradewatch.models.market_data import TariffData
from tradewatch.schemas.anomaly import AnomalyResult, TariffChangeDetails
from tradewatch.services import series
from tradewatch.services.severity import TARIFF_POLICY
from tradewatch.services.statistics import percentage_change

logger = logging.getLogger("tradewatch.detectors.tariff")

MIN_POINTS = 2


def detect_tariff_change(
    db: Session,
    product_id: str,
    change_threshold: float = 10.0,
    now: Optional[datetime] = None,
) -> Optional[AnomalyResult]:
    try:
        records = series.tariff_series(db, product_id, 2)
        if len(records) < MIN_POINTS:
            return None
        category, origin = series.product_context(db, product_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Tariff read failed for {product_id}: {e}")
        return None

    previous, current = records
    pct = percentage_change(previous.value, current.value)
    if abs(pct) < change_threshold:
        return None

    absolute = current.value - previous.value
    return AnomalyResult(
        anomaly_type=AnomalyType.TARIFF_CHANGE,
        entity_id=product_id,
        product_id=product_id,
        current_value=current.value,
        baseline=previous.value,
        score=pct,
        percentage_change=pct,
        severity=TARIFF_POLICY.classify(percentage_change=pct, absolute_change=absolute),
        detected_at=now or datetime.utcnow(),
        details=TariffChangeDetails(
            previous_rate=previous.value,
            current_rate=current.value,
            percentage_change=pct,
            absolute_change=absolute,
            change_type="increase" if pct > 0 else "decrease",
            effective_date=current.date,
            previous_effective_date=previous.date,
            threshold=change_threshold,
            category=category,
            origin=origin,
        ),
    )


def detect_all_tariff_changes(
    db: Session,
    change_threshold: float = 10.0,
    max_products: int = 50,
    now: Optional[datetime] = None,
) -> List[AnomalyResult]:
    try:
        products = series.product_ids(db, limit=max_products)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not list products: {e}")
        return []

    return _scan(db, products, change_threshold, now)


def detect_recent_tariff_changes(
    db: Session,
    days_back: int = 30,
    change_threshold: float = 10.0,
    now: Optional[datetime] = None,
) -> List[AnomalyResult]:
    """Only products with ≥ 2 rate records effective inside the last ``days_back`` days."""
    cutoff: date = ((now or datetime.utcnow()) - timedelta(days=days_back)).date()
    try:
        rows = (
            db.query(TariffData.product_id)
            .filter(TariffData.effective_date >= cutoff)
            .group_by(TariffData.product_id)
            .having(func.count(TariffData.id) >= MIN_POINTS)
            .order_by(TariffData.product_id)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Recent tariff read failed: {e}")
        return []

    return _scan(db, [pid for (pid,) in rows], change_threshold, now)


def _scan(
    db: Session,
    products: List[str],
    change_threshold: float,
    now: Optional[datetime],
) -> List[AnomalyResult]:
    anomalies = []
    for product_id in products:
        try:
            result = detect_tariff_change(db, product_id, change_threshold, now=now)
        except Exception as e:
            logger.warning(f"Tariff detection skipped for {product_id}: {e}")
            continue
        if result:
            anomalies.append(result)

    logger.info(f"Tariff scan: {len(anomalies)} changes across {len(products)} products")
    return anomalies


def get_current_tariff_rate(db: Session, product_id: str) -> Optional[float]:
    try:
        records = series.tariff_series(db, product_id, 1)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Current tariff read failed for {product_id}: {e}")
        return None
    return records[-1].value if records else None
