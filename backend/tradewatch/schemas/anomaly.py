"""Detector output schemas.

Each anomaly type carries its own details payload; ``AnomalyDetails`` is a
union discriminated by ``type`` so a payload can be validated back from the
JSON column it is stored in.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from tradewatch.models.alert import AnomalySeverity, AnomalyType


# ── Details payloads ─────────────────────────────────────────────────────

class PriceSpikeDetails(BaseModel):
    type: Literal["price_spike"] = "price_spike"
    previous_price: float
    current_price: float
    average_price: float
    z_score: float
    percentage_change: float
    std_dev: float
    threshold: float
    detection_method: Literal["z_score", "moving_average"] = "z_score"
    lookback_days: Optional[int] = None
    historical_min: Optional[float] = None
    historical_max: Optional[float] = None
    data_points: Optional[int] = None
    flat_baseline: bool = False
    # moving-average variant
    short_term_avg: Optional[float] = None
    long_term_avg: Optional[float] = None
    short_window: Optional[int] = None
    long_window: Optional[int] = None
    # product context used by the connection analyzer
    category: Optional[str] = None
    origin: Optional[str] = None


class TariffChangeDetails(BaseModel):
    type: Literal["tariff_change"] = "tariff_change"
    previous_rate: float
    current_rate: float
    percentage_change: float
    absolute_change: float
    change_type: Literal["increase", "decrease"]
    effective_date: str
    previous_effective_date: str
    threshold: float
    category: Optional[str] = None
    origin: Optional[str] = None


class FreightSurgeDetails(BaseModel):
    type: Literal["freight_surge"] = "freight_surge"
    route: str
    current_index: float
    average_index: float
    percentage_change: float
    std_dev: float
    threshold: float
    lookback_days: int
    historical_min: Optional[float] = None
    historical_max: Optional[float] = None
    change_type: Literal["increase", "decrease"] = "increase"
    opportunity: bool = False


class FxVolatilityDetails(BaseModel):
    type: Literal["fx_volatility"] = "fx_volatility"
    currency_pair: str
    current_rate: float
    average_rate: float
    volatility: float
    percentage_change: float
    threshold: float
    lookback_days: Optional[int] = None
    detection_method: Literal["volatility", "spike", "risk_threshold"] = "volatility"
    std_dev: Optional[float] = None
    min_rate: Optional[float] = None
    max_rate: Optional[float] = None
    rate_range: Optional[str] = None
    change_type: Optional[Literal["appreciation", "depreciation"]] = None
    previous_rate: Optional[float] = None
    risk_threshold: Optional[float] = None
    direction: Optional[Literal["above", "below"]] = None
    threshold_breach: bool = False
    distance_from_threshold: Optional[float] = None


AnomalyDetails = Annotated[
    Union[PriceSpikeDetails, TariffChangeDetails, FreightSurgeDetails, FxVolatilityDetails],
    Field(discriminator="type"),
]


# ── Detector result ──────────────────────────────────────────────────────

class AnomalyResult(BaseModel):
    """A detected, classified anomaly that has not been persisted yet."""

    anomaly_type: AnomalyType
    entity_id: str                      # product id, route or currency pair
    product_id: Optional[str] = None    # set for product-scoped types only
    current_value: float
    baseline: float                     # historical mean or previous value
    dispersion: float = 0.0             # historical std-dev
    score: float                        # z-score, Δ% or volatility
    percentage_change: float
    severity: AnomalySeverity
    detected_at: datetime
    details: AnomalyDetails

    def details_dict(self) -> dict[str, Any]:
        """JSON-ready payload for the anomalies.details column."""
        return self.details.model_dump(mode="json", exclude_none=True)
