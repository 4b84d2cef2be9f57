"""
Connected Intelligence API
──────────────────────────
Endpoints:
  GET  /api/analytics/connections/{alert_id}   Connected intelligence for one alert
  POST /api/analytics/connections/batch        Same, for several alerts
  GET  /api/analytics/benchmark                Benchmark a cascade impact / risk score pair
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tradewatch.core.config import settings
from tradewatch.core.database import get_db
from tradewatch.schemas.intelligence import (
    BatchAnalysisRequest, BatchAnalysisResponse,
    BenchmarkMetrics, ConnectedIntelligence,
)
from tradewatch.services.benchmark import (
    get_benchmark_metrics, get_enhanced_interconnected_intelligence,
)
from tradewatch.services.connection_analyzer import (
    analyze_connections_batch, analyze_interconnected_intelligence,
)

logger = logging.getLogger("tradewatch.api.analytics")
router = APIRouter(prefix="/api/analytics", tags=["analytics"])


# ── Single alert ──────────────────────────────────────────────────

@router.get("/connections/{alert_id}", response_model=ConnectedIntelligence)
def get_connections(
    alert_id: int,
    window: int = Query(settings.connection_window_days, ge=1, le=365),
    benchmarks: bool = False,
    sector: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Correlated alerts, cascade impact, recommendations and risk for one alert."""
    if benchmarks:
        result = get_enhanced_interconnected_intelligence(db, alert_id, window, sector=sector)
    else:
        result = analyze_interconnected_intelligence(db, alert_id, window)
    if result is None:
        raise HTTPException(status_code=404, detail=f"No analysis available for alert {alert_id}")
    return result


# ── Batch ─────────────────────────────────────────────────────────

@router.post("/connections/batch", response_model=BatchAnalysisResponse)
def batch_connections(body: BatchAnalysisRequest, db: Session = Depends(get_db)):
    results = analyze_connections_batch(db, body.alert_ids, body.time_window)
    logger.info(f"Batch analysis: {len(results)}/{len(body.alert_ids)} alerts analyzed")
    return BatchAnalysisResponse(count=len(results), results=results)


# ── Benchmark ─────────────────────────────────────────────────────

@router.get("/benchmark", response_model=BenchmarkMetrics)
def benchmark(
    cascade_impact: float = Query(..., ge=0, le=100),
    risk_score: float = Query(..., ge=0, le=100),
    sector: Optional[str] = None,
):
    return get_benchmark_metrics(cascade_impact, risk_score, sector)
