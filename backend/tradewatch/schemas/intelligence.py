"""Pydantic schemas for connected intelligence & benchmarks."""

from typing import Any, Optional

from pydantic import BaseModel, Field


# ── Connected intelligence ───────────────────────────────────────────────

class ConnectionFactor(BaseModel):
    id: int
    type: str
    alert_id: int
    timestamp: str
    severity: str
    product_id: Optional[str] = None
    correlation_score: float
    details: dict[str, Any] = Field(default_factory=dict)


class PrimaryAlert(BaseModel):
    id: int
    type: str
    severity: str
    timestamp: str
    product_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class ImpactCascade(BaseModel):
    cascading_impact: float
    total_factors: int
    affected_supply_chain: bool


class FactorPair(BaseModel):
    factor1: str
    factor2: str
    correlation: float


class CorrelationMatrix(BaseModel):
    factor_pairs: list[FactorPair]


class RiskAssessment(BaseModel):
    overall_risk: float
    risk_factors: list[str]
    mitigation_priority: str


# ── Benchmarks ───────────────────────────────────────────────────────────

class SectorComparison(BaseModel):
    sector: str
    average_cascade: float
    your_cascade: float
    difference: float


class HistoricalEvent(BaseModel):
    date: str
    cascade_impact: float
    outcome: str


class BenchmarkMetrics(BaseModel):
    industry_average_cascade_impact: float
    industry_average_risk_score: float
    percentile_ranking: int
    sector_comparison: SectorComparison
    similar_historical_events: list[HistoricalEvent]


class ConnectedIntelligence(BaseModel):
    primary_alert: PrimaryAlert
    connected_factors: list[ConnectionFactor]
    impact_cascade: ImpactCascade
    correlation_matrix: CorrelationMatrix
    recommended_actions: list[str]
    risk_assessment: RiskAssessment
    benchmarks: Optional[BenchmarkMetrics] = None


# ── Batch requests ───────────────────────────────────────────────────────

class BatchAnalysisRequest(BaseModel):
    alert_ids: list[int] = Field(..., min_length=1, max_length=50)
    time_window: int = Field(default=30, ge=1, le=365)


class BatchAnalysisResponse(BaseModel):
    count: int
    results: list[ConnectedIntelligence]
