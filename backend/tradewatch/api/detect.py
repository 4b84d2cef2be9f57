"""
Detection API
─────────────
Endpoints:
  POST /api/detect      Run every detector now and persist new alerts
  GET  /api/detect      Alert statistics by status / severity / type
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tradewatch.core.database import get_db
from tradewatch.schemas.alerts import AlertStatistics, GenerationResult
from tradewatch.services.alert_generator import generate_all_alerts, get_alert_statistics

logger = logging.getLogger("tradewatch.api.detect")
router = APIRouter(prefix="/api/detect", tags=["Detection"])


@router.post("", response_model=GenerationResult)
def run_detection(db: Session = Depends(get_db)):
    """Manually trigger a detection run (the scheduler runs one daily)."""
    logger.info("Manual detection run requested")
    return generate_all_alerts(db)


@router.get("", response_model=AlertStatistics)
def detection_statistics(db: Session = Depends(get_db)):
    return get_alert_statistics(db)
