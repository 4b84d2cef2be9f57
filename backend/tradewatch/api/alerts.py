"""
Alert API — list, triage and clean up anomaly alerts.

Alerts only move forward: new → viewed → resolved.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tradewatch.core.config import settings
from tradewatch.core.database import get_db
from tradewatch.models.alert import (
    Alert, AlertStatus, AnomalySeverity, AnomalyType, STATUS_ORDER,
)
from tradewatch.schemas.alerts import (
    AlertList, AlertResponse, AlertStatusUpdate, ClearResult,
)
from tradewatch.services.alert_generator import (
    clear_old_alerts, list_alerts, update_alert_status,
)

router = APIRouter(prefix="/api/alerts", tags=["Alerts"])


@router.get("", response_model=AlertList)
def get_alerts(
    status: Optional[AlertStatus] = None,
    severity: Optional[AnomalySeverity] = None,
    type: Optional[AnomalyType] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Most recent alerts first, optionally filtered by status, severity and type."""
    alerts = list_alerts(db, status=status, severity=severity, anomaly_type=type, limit=limit)
    return AlertList(
        count=len(alerts),
        alerts=[AlertResponse.model_validate(a) for a in alerts],
    )


@router.patch("/{alert_id}", response_model=AlertResponse)
def patch_alert_status(
    alert_id: int,
    body: AlertStatusUpdate,
    db: Session = Depends(get_db),
):
    alert = db.query(Alert).filter(Alert.id == alert_id).first()
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    if STATUS_ORDER.index(body.status) < STATUS_ORDER.index(alert.status):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot move alert from {alert.status.value} back to {body.status.value}",
        )

    if not update_alert_status(db, alert_id, body.status):
        raise HTTPException(status_code=500, detail="Alert status update failed")

    db.refresh(alert)
    return AlertResponse.model_validate(alert)


@router.delete("/resolved", response_model=ClearResult)
def delete_resolved_alerts(
    days_old: int = Query(settings.resolved_alert_retention_days, ge=0, le=3650),
    db: Session = Depends(get_db),
):
    """Hard-delete alerts resolved more than ``days_old`` days ago."""
    return ClearResult(deleted=clear_old_alerts(db, days_old))
