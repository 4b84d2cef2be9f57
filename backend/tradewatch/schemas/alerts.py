"""Pydantic schemas for anomalies, alerts & detection runs."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from tradewatch.models.alert import AlertStatus, AnomalySeverity, AnomalyType


# ── Anomalies & Alerts ───────────────────────────────────────────────────

class AnomalyResponse(BaseModel):
    id: int
    type: AnomalyType
    product_id: Optional[str] = None
    entity_key: str
    severity: AnomalySeverity
    detected_at: datetime
    details: dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class AlertResponse(BaseModel):
    id: int
    anomaly_id: int
    status: AlertStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None
    anomaly: AnomalyResponse

    class Config:
        from_attributes = True


class AlertList(BaseModel):
    count: int
    alerts: list[AlertResponse]


class AlertStatusUpdate(BaseModel):
    status: AlertStatus


class ClearResult(BaseModel):
    deleted: int


# ── Detection runs ───────────────────────────────────────────────────────

class DetectionBreakdown(BaseModel):
    price_spikes: int = 0
    tariff_changes: int = 0
    freight_surges: int = 0
    fx_volatility: int = 0


class GenerationResult(BaseModel):
    success: bool
    alerts_created: int
    anomalies_detected: int
    breakdown: DetectionBreakdown
    errors: list[str] = Field(default_factory=list)


class AlertStatistics(BaseModel):
    total: int
    new: int
    viewed: int
    resolved: int
    by_severity: dict[str, int]
    by_type: dict[str, int]
