"""Anomaly & Alert models."""

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Date, DateTime,
    ForeignKey, Enum as SAEnum, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from tradewatch.core.database import Base


# ── Enums ────────────────────────────────────────────────────────────────

class AnomalyType(str, enum.Enum):
    PRICE_SPIKE = "price_spike"
    TARIFF_CHANGE = "tariff_change"
    FREIGHT_SURGE = "freight_surge"
    FX_VOLATILITY = "fx_volatility"


class AnomalySeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, enum.Enum):
    NEW = "new"
    VIEWED = "viewed"
    RESOLVED = "resolved"


SEVERITY_ORDER = [
    AnomalySeverity.LOW,
    AnomalySeverity.MEDIUM,
    AnomalySeverity.HIGH,
    AnomalySeverity.CRITICAL,
]

STATUS_ORDER = [AlertStatus.NEW, AlertStatus.VIEWED, AlertStatus.RESOLVED]


# ── Anomaly (detected event) ─────────────────────────────────────────────

class Anomaly(Base):
    """A single detected deviation. Never updated once written."""
    __tablename__ = "anomalies"
    __table_args__ = (
        # At most one anomaly per type/entity per calendar day
        UniqueConstraint("type", "entity_key", "detected_day", name="uq_anomaly_entity_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    type = Column(SAEnum(AnomalyType), nullable=False, index=True)
    product_id = Column(String(64), ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Product id, freight route or currency pair the anomaly is about
    entity_key = Column(String(100), nullable=False, index=True)

    severity = Column(SAEnum(AnomalySeverity), nullable=False)
    detected_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    detected_day = Column(Date, nullable=False)

    # Type-specific payload, see tradewatch.schemas.anomaly
    details = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    alert = relationship("Alert", back_populates="anomaly", uselist=False)

    def __repr__(self):
        return f"<Anomaly({self.type.value}, {self.entity_key}, {self.severity.value})>"


# ── Alert (triage wrapper) ───────────────────────────────────────────────

class Alert(Base):
    """Workflow wrapper around exactly one anomaly."""
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    anomaly_id = Column(Integer, ForeignKey("anomalies.id", ondelete="CASCADE"), nullable=False, unique=True)

    status = Column(SAEnum(AlertStatus), default=AlertStatus.NEW, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    resolved_at = Column(DateTime, nullable=True)

    anomaly = relationship("Anomaly", back_populates="alert", lazy="joined")
