"""
Alert Generator — runs every detector and turns results into alerts.

Invoked daily by the scheduler (and on demand via POST /api/detect). For each
detected anomaly, checks whether the same anomaly was already recorded in the
dedup window, then writes one Anomaly row and one Alert row in a single
transaction. A failure on one item is logged and recorded; the batch goes on.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tradewatch.core.config import settings
from tradewatch.models.alert import (
    Alert, Anomaly,
    AlertStatus, AnomalySeverity, AnomalyType, STATUS_ORDER,
)
from tradewatch.services.freight_detector import detect_all_freight_surges
from tradewatch.services.fx_detector import detect_all_fx_volatility
from tradewatch.services.price_detector import detect_all_price_anomalies
from tradewatch.services.tariff_detector import detect_all_tariff_changes

logger = logging.getLogger("tradewatch.services.alert_generator")

BREAKDOWN_KEYS = {
    AnomalyType.PRICE_SPIKE: "price_spikes",
    AnomalyType.TARIFF_CHANGE: "tariff_changes",
    AnomalyType.FREIGHT_SURGE: "freight_surges",
    AnomalyType.FX_VOLATILITY: "fx_volatility",
}


# ── Dedup check ──────────────────────────────────────────────────────────

def _entity_key(anomaly_type: AnomalyType, product_id: Optional[str], details: Dict[str, Any]) -> str:
    if product_id:
        return product_id
    return details.get("route") or details.get("currency_pair") or anomaly_type.value


def _is_duplicate(
    db: Session,
    anomaly_type: AnomalyType,
    product_id: Optional[str],
    entity_key: str,
    since: datetime,
) -> bool:
    """
    Return True if the same anomaly was detected after ``since``.

    Product anomalies match on type and product. Market-wide ones (no
    product) also match on their route or currency pair.
    """
    q = db.query(Anomaly.id).filter(
        Anomaly.type == anomaly_type,
        Anomaly.detected_at >= since,
    )
    if product_id is None:
        q = q.filter(Anomaly.product_id.is_(None), Anomaly.entity_key == entity_key)
    else:
        q = q.filter(Anomaly.product_id == product_id)
    return q.first() is not None


# ── Anomaly + alert creation ─────────────────────────────────────────────

def create_anomaly_and_alert(
    db: Session,
    anomaly_type,
    product_id: Optional[str],
    severity,
    details: Dict[str, Any],
    entity_key: Optional[str] = None,
    now: Optional[datetime] = None,
    errors: Optional[List[str]] = None,
) -> Optional[Tuple[int, int]]:
    """
    Persist one anomaly and its alert.

    Returns ``(anomaly_id, alert_id)``, or None when the anomaly is a
    duplicate of one detected in the dedup window or the write failed.
    ``entity_key`` only applies to anomalies without a product; a product
    anomaly is always keyed by its product id.
    Failure messages are appended to ``errors`` when given.
    """
    now = now or datetime.utcnow()
    anomaly_type = AnomalyType(anomaly_type)
    severity = AnomalySeverity(severity)
    if product_id:
        entity_key = product_id
    else:
        entity_key = entity_key or _entity_key(anomaly_type, product_id, details)
    since = now - timedelta(hours=settings.dedup_window_hours)

    try:
        if _is_duplicate(db, anomaly_type, product_id, entity_key, since):
            logger.debug(f"Skipping duplicate {anomaly_type.value} for {entity_key}")
            return None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Dedup check failed for {anomaly_type.value}/{entity_key}: {e}")
        if errors is not None:
            errors.append(f"{anomaly_type.value}/{entity_key}: dedup check failed")
        return None

    try:
        anomaly = Anomaly(
            type=anomaly_type,
            product_id=product_id,
            entity_key=entity_key,
            severity=severity,
            detected_at=now,
            detected_day=now.date(),
            details=details,
            created_at=now,
        )
        db.add(anomaly)
        db.flush()

        alert = Alert(anomaly_id=anomaly.id, status=AlertStatus.NEW, created_at=now)
        db.add(alert)
        db.flush()

        ids = (anomaly.id, alert.id)
        db.commit()
    except IntegrityError:
        # A concurrent run already wrote today's anomaly for this entity
        db.rollback()
        logger.info(f"Duplicate {anomaly_type.value} for {entity_key} rejected by store")
        return None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not persist {anomaly_type.value} for {entity_key}: {e}")
        if errors is not None:
            errors.append(f"{anomaly_type.value}/{entity_key}: {e}")
        return None

    return ids


# ── Main entry point ─────────────────────────────────────────────────────

def generate_all_alerts(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Run price, tariff, freight and FX detection in sequence and persist
    one anomaly + alert per new event. Never raises.
    """
    now = now or datetime.utcnow()
    result: Dict[str, Any] = {
        "success": False,
        "alerts_created": 0,
        "anomalies_detected": 0,
        "breakdown": {key: 0 for key in BREAKDOWN_KEYS.values()},
        "errors": [],
    }

    detectors = [
        (AnomalyType.PRICE_SPIKE, lambda: detect_all_price_anomalies(
            db, settings.price_lookback_days, settings.price_z_threshold,
            max_products=settings.max_entities, now=now,
        )),
        (AnomalyType.TARIFF_CHANGE, lambda: detect_all_tariff_changes(
            db, settings.tariff_change_threshold,
            max_products=settings.max_entities, now=now,
        )),
        (AnomalyType.FREIGHT_SURGE, lambda: detect_all_freight_surges(
            db, settings.freight_lookback_days, settings.freight_surge_threshold, now=now,
        )),
        (AnomalyType.FX_VOLATILITY, lambda: detect_all_fx_volatility(
            db, settings.fx_lookback_days, settings.fx_volatility_threshold, now=now,
        )),
    ]

    logger.info("Starting anomaly detection run")
    for anomaly_type, detect in detectors:
        key = BREAKDOWN_KEYS[anomaly_type]
        try:
            anomalies = detect()
        except Exception as exc:
            # Log but don't abort the remaining detectors
            logger.error(f"{key} detection failed: {exc}", exc_info=True)
            result["errors"].append(f"{key}: {exc}")
            continue

        result["breakdown"][key] = len(anomalies)
        for anomaly in anomalies:
            created = create_anomaly_and_alert(
                db,
                anomaly.anomaly_type,
                anomaly.product_id,
                anomaly.severity,
                anomaly.details_dict(),
                entity_key=anomaly.entity_id,
                now=now,
                errors=result["errors"],
            )
            if created:
                result["alerts_created"] += 1

    result["anomalies_detected"] = sum(result["breakdown"].values())
    result["success"] = True

    logger.info(
        f"Detection complete: {result['anomalies_detected']} anomalies, "
        f"{result['alerts_created']} alerts created, breakdown={result['breakdown']}"
    )
    if result["errors"]:
        logger.warning(f"Detection finished with {len(result['errors'])} errors")
    return result


# ── Alert lifecycle ──────────────────────────────────────────────────────

def update_alert_status(
    db: Session,
    alert_id: int,
    status,
    now: Optional[datetime] = None,
) -> bool:
    """
    Move an alert forward (new → viewed → resolved). ``resolved_at`` is set
    when the alert is resolved. Backward moves are refused (returns False).
    """
    try:
        status = AlertStatus(status)
    except ValueError:
        logger.warning(f"Unknown alert status {status!r}")
        return False

    try:
        alert = db.query(Alert).filter(Alert.id == alert_id).first()
        if alert is None:
            return False

        if STATUS_ORDER.index(status) < STATUS_ORDER.index(alert.status):
            logger.warning(
                f"Refusing alert {alert_id} transition {alert.status.value} → {status.value}"
            )
            return False
        if status == alert.status:
            return True

        alert.status = status
        if status == AlertStatus.RESOLVED:
            alert.resolved_at = now or datetime.utcnow()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not update alert {alert_id}: {e}")
        return False

    return True


def _empty_statistics() -> Dict[str, Any]:
    return {
        "total": 0,
        "new": 0,
        "viewed": 0,
        "resolved": 0,
        "by_severity": {s.value: 0 for s in AnomalySeverity},
        "by_type": {t.value: 0 for t in AnomalyType},
    }


def get_alert_statistics(db: Session) -> Dict[str, Any]:
    """Counts by status, severity and type; zeroed if the store is unreachable."""
    stats = _empty_statistics()
    try:
        rows = (
            db.query(Alert.status, Anomaly.severity, Anomaly.type)
            .join(Anomaly, Alert.anomaly_id == Anomaly.id)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not read alert statistics: {e}")
        return stats

    for status, severity, anomaly_type in rows:
        stats["total"] += 1
        stats[status.value] += 1
        stats["by_severity"][severity.value] += 1
        stats["by_type"][anomaly_type.value] += 1
    return stats


def clear_old_alerts(db: Session, days_old: int = 30, now: Optional[datetime] = None) -> int:
    """Hard-delete alerts resolved more than ``days_old`` days ago."""
    cutoff = (now or datetime.utcnow()) - timedelta(days=days_old)
    try:
        deleted = (
            db.query(Alert)
            .filter(Alert.status == AlertStatus.RESOLVED, Alert.resolved_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not clear old alerts: {e}")
        return 0

    logger.info(f"Cleared {deleted} resolved alerts older than {days_old} days")
    return deleted


def list_alerts(
    db: Session,
    status: Optional[AlertStatus] = None,
    severity: Optional[AnomalySeverity] = None,
    anomaly_type: Optional[AnomalyType] = None,
    limit: int = 50,
) -> List[Alert]:
    """Most recent alerts first, with optional filters on status and anomaly fields."""
    q = db.query(Alert).join(Anomaly, Alert.anomaly_id == Anomaly.id)
    if status:
        q = q.filter(Alert.status == status)
    if severity:
        q = q.filter(Anomaly.severity == severity)
    if anomaly_type:
        q = q.filter(Anomaly.type == anomaly_type)
    return q.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit).all()
