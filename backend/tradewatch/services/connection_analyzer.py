"""
Connected Intelligence — cross-anomaly correlation & cascade impact
───────────────────────────────────────────────────────────────────
Given a primary alert, scores its relationship to every other alert raised in
the trailing time window and derives:

  connected_factors      top 10 related alerts by correlation score
  impact_cascade         0-100 cascading impact, factor count, supply-chain flag
  correlation_matrix     pairwise scores over primary + all factors
  recommended_actions    up to 5, most urgent first
  risk_assessment        0-100 overall risk, contributing factors, priority

Relationship heuristics (correlation score):
  same product, complementary types       0.90 / 0.85 / 0.75  (else 0.60 / 0.30)
  co-moving magnitudes (pattern)          0.80 / 0.75 / 0.70  (admitted above 0.30)
  circular type dependency                0.65   (≤ 5)
  sector-wide, same category and type     0.55   (≤ 10)
  same country / origin                   0.45   (≤ 10)
  recurring type, older than 14 days      0.40   (≤ 10)

Cascading impact:
  base   = severity score of the top-ranked factor (low 10, medium 30, high 60, critical 100)
  impact = base × (1 + 0.2 × n_factors) + 20 × n_high_or_critical_factors, capped at 100
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradewatch.core.config import settings
from tradewatch.models.alert import Alert, AnomalyType

logger = logging.getLogger("tradewatch.analytics.connections")

PRICE = AnomalyType.PRICE_SPIKE.value
TARIFF = AnomalyType.TARIFF_CHANGE.value
FREIGHT = AnomalyType.FREIGHT_SURGE.value
FX = AnomalyType.FX_VOLATILITY.value

# ─── Correlation scores ───
COMPLEMENTARY_SCORES = {
    frozenset((PRICE, FREIGHT)): 0.9,
    frozenset((TARIFF, PRICE)): 0.85,
    frozenset((FX, PRICE)): 0.75,
}
SAME_PRODUCT_SCORE = 0.6
DEFAULT_SCORE = 0.3

# The pattern baseline sits below the admission bar, so a pair with no
# co-movement never becomes a factor through this heuristic.
PATTERN_BASELINE_SCORE = 0.2
PATTERN_ADMISSION_SCORE = 0.3

SECTOR_SCORE = 0.55
GEOGRAPHIC_SCORE = 0.45
CIRCULAR_SCORE = 0.65
HISTORICAL_SCORE = 0.4

SECTOR_LIMIT = 10
GEOGRAPHIC_LIMIT = 10
CIRCULAR_LIMIT = 5
HISTORICAL_LIMIT = 10
TOP_FACTORS = 10

HISTORICAL_MIN_OCCURRENCES = 3
HISTORICAL_MIN_AGE_DAYS = 14

# ─── Cascade & risk ───
SEVERITY_IMPACT = {"low": 10, "medium": 30, "high": 60, "critical": 100}
FACTOR_MULTIPLIER = 0.2
SEVERE_FACTOR_BONUS = 20
SUPPLY_CHAIN_MIN_TYPES = 3

RISK_PRIORITY_THRESHOLDS = [
    (80, "critical"),
    (60, "high"),
    (40, "medium"),
]

MAX_RECOMMENDATIONS = 5
URGENT_ACTION = "URGENT: Multiple factors affecting supply - escalate to management"
CRITICAL_ACTION = "CRITICAL: Immediate supply chain intervention required"


# ══════════════════════════════════════════════════════════════════════════
#  STORE READS
# ══════════════════════════════════════════════════════════════════════════

def _record(alert: Alert) -> Dict[str, Any]:
    """Flatten an alert + anomaly row into the shape the heuristics use."""
    anomaly = alert.anomaly
    return {
        "alert_id": alert.id,
        "created_at": alert.created_at,
        "timestamp": alert.created_at.isoformat(),
        "type": anomaly.type.value,
        "severity": anomaly.severity.value,
        "product_id": anomaly.product_id,
        "details": dict(anomaly.details or {}),
    }


def _fetch_related(db: Session, alert_id: int, cutoff: datetime, limit: int) -> List[Dict[str, Any]]:
    alerts = (
        db.query(Alert)
        .filter(Alert.id != alert_id, Alert.created_at >= cutoff)
        .order_by(Alert.created_at.desc(), Alert.id.desc())
        .limit(limit)
        .all()
    )
    return [_record(a) for a in alerts if a.anomaly is not None]


# ══════════════════════════════════════════════════════════════════════════
#  PAIRWISE SCORING
# ══════════════════════════════════════════════════════════════════════════

def correlation_score(
    type1: str,
    type2: str,
    product1: Optional[str] = None,
    product2: Optional[str] = None,
) -> float:
    """Type-complementarity score, falling back to shared product."""
    if type1 != type2:
        score = COMPLEMENTARY_SCORES.get(frozenset((type1, type2)))
        if score is not None:
            return score
    if product1 and product1 == product2:
        return SAME_PRODUCT_SCORE
    return DEFAULT_SCORE


def pattern_correlation(
    primary_type: str,
    other_type: str,
    primary_details: Dict[str, Any],
    other_details: Dict[str, Any],
) -> float:
    """Magnitude co-movement between the primary anomaly and another one."""
    primary_pct = primary_details.get("percentage_change")
    other_pct = other_details.get("percentage_change")

    if primary_type == PRICE and primary_pct and other_pct:
        if other_type == FREIGHT and abs(primary_pct) > 20 and abs(other_pct) > 20:
            return 0.8
        if other_type == FX and abs(primary_pct) > 15 and abs(other_pct) > 10:
            return 0.75

    if primary_type == TARIFF and other_type == PRICE:
        if primary_pct and abs(primary_pct) > 10:
            return 0.7

    return PATTERN_BASELINE_SCORE


def _factor(record: Dict[str, Any], score: float, **flags: Any) -> Dict[str, Any]:
    details = dict(record["details"])
    details.update(flags)
    return {
        "id": record["alert_id"],
        "type": record["type"],
        "alert_id": record["alert_id"],
        "timestamp": record["timestamp"],
        "severity": record["severity"],
        "product_id": record["product_id"],
        "correlation_score": score,
        "details": details,
    }


# ══════════════════════════════════════════════════════════════════════════
#  RELATIONSHIP HEURISTICS
# ══════════════════════════════════════════════════════════════════════════

def find_same_product_factors(primary: Dict, related: List[Dict]) -> List[Dict]:
    """Same product, different anomaly type."""
    product_id = primary["product_id"]
    if not product_id:
        return []
    return [
        _factor(r, correlation_score(primary["type"], r["type"], product_id, r["product_id"]))
        for r in related
        if r["product_id"] == product_id and r["type"] != primary["type"]
    ]


def find_pattern_factors(primary: Dict, related: List[Dict]) -> List[Dict]:
    factors = []
    for r in related:
        if r["type"] == primary["type"]:
            continue
        score = pattern_correlation(primary["type"], r["type"], primary["details"], r["details"])
        if score > PATTERN_ADMISSION_SCORE:
            factors.append(_factor(r, score))
    return factors


def find_sector_factors(primary: Dict, related: List[Dict]) -> List[Dict]:
    """Same anomaly type on other products of the same category."""
    category = primary["details"].get("category")
    if not primary["product_id"] or not category:
        return []
    factors = [
        _factor(r, SECTOR_SCORE)
        for r in related
        if r["product_id"]
        and r["type"] == primary["type"]
        and r["details"].get("category") == category
    ]
    return factors[:SECTOR_LIMIT]


def _country(details: Dict[str, Any]) -> Optional[str]:
    return details.get("country") or details.get("origin")


def find_geographic_factors(primary: Dict, related: List[Dict]) -> List[Dict]:
    country = _country(primary["details"])
    if not country:
        return []
    factors = [_factor(r, GEOGRAPHIC_SCORE) for r in related if _country(r["details"]) == country]
    return factors[:GEOGRAPHIC_LIMIT]


def find_circular_dependencies(primary: Dict, related: List[Dict]) -> List[Dict]:
    """Type pairs that feed back into each other (price ↔ freight, tariff ↔ price, fx ↔ price)."""
    factors = [
        _factor(r, CIRCULAR_SCORE, circular_dependency=True)
        for r in related
        if frozenset((primary["type"], r["type"])) in COMPLEMENTARY_SCORES
    ]
    return factors[:CIRCULAR_LIMIT]


def find_historical_patterns(primary: Dict, related: List[Dict], now: datetime) -> List[Dict]:
    """Anomaly types recurring ≥ 3 times in the window, older occurrences only."""
    by_type: Dict[str, List[Dict]] = {}
    for r in related:
        by_type.setdefault(r["type"], []).append(r)

    min_age = timedelta(days=HISTORICAL_MIN_AGE_DAYS)
    factors = []
    for occurrences in by_type.values():
        if len(occurrences) < HISTORICAL_MIN_OCCURRENCES:
            continue
        for r in occurrences:
            if now - r["created_at"] > min_age:
                factors.append(
                    _factor(r, HISTORICAL_SCORE, historical_pattern=True, occurrences=len(occurrences))
                )
    return factors[:HISTORICAL_LIMIT]


def _safe(name: str, heuristic: Callable[[], List[Dict]]) -> List[Dict]:
    try:
        return heuristic()
    except Exception as e:
        logger.warning(f"Connection heuristic '{name}' failed: {e}")
        return []


def merge_factors(candidates: List[Dict]) -> List[Dict]:
    """One factor per alert (highest score wins), ranked by score."""
    best: Dict[Any, Dict] = {}
    for factor in candidates:
        current = best.get(factor["alert_id"])
        if current is None or factor["correlation_score"] > current["correlation_score"]:
            best[factor["alert_id"]] = factor
    return sorted(best.values(), key=lambda f: f["correlation_score"], reverse=True)


# ══════════════════════════════════════════════════════════════════════════
#  AGGREGATES
# ══════════════════════════════════════════════════════════════════════════

def calculate_cascading_impact(factors: List[Dict]) -> float:
    if not factors:
        return 0.0
    impact = SEVERITY_IMPACT.get(factors[0]["severity"], 0)
    impact *= 1 + FACTOR_MULTIPLIER * len(factors)
    severe = sum(1 for f in factors if f["severity"] in ("high", "critical"))
    impact += SEVERE_FACTOR_BONUS * severe
    return round(max(0.0, min(float(impact), 100.0)), 2)


def check_supply_chain_impact(primary_type: str, factors: List[Dict]) -> bool:
    types = {f["type"] for f in factors}
    types.add(primary_type)
    return len(types) >= SUPPLY_CHAIN_MIN_TYPES


def generate_correlation_matrix(entries: List[Dict]) -> Dict[str, List[Dict]]:
    pairs = []
    for i in range(len(entries)):
        for j in range(i + 1, len(entries)):
            a, b = entries[i], entries[j]
            pairs.append({
                "factor1": a["type"],
                "factor2": b["type"],
                "correlation": correlation_score(a["type"], b["type"], a["product_id"], b["product_id"]),
            })
    return {"factor_pairs": pairs}


def generate_recommendations(primary: Dict, factors: List[Dict], cascading_impact: float) -> List[str]:
    factor_types = {f["type"] for f in factors}
    recs: List[str] = []

    if primary["type"] == PRICE:
        recs.append("Review supplier pricing agreements for sudden changes")
        if FREIGHT in factor_types:
            recs.append("Investigate freight route alternatives to reduce costs")
        if FX in factor_types:
            recs.append("Consider hedging currency exposure with forward contracts")

    elif primary["type"] == TARIFF:
        recs.append("Update customs declaration templates with new rates")
        recs.append("Notify trading partners of compliance requirements")
        if PRICE in factor_types:
            recs.append("Negotiate price adjustments with suppliers to offset tariff impact")

    elif primary["type"] == FREIGHT:
        recs.append("Explore alternative shipping routes and carriers")
        recs.append("Consider consolidating shipments to reduce freight costs")
        if PRICE in factor_types:
            recs.append("Evaluate local sourcing or regional suppliers")

    elif primary["type"] == FX:
        recs.append("Review FX exposure and implement hedging strategy")
        recs.append("Monitor central bank policy changes affecting exchange rates")

    if cascading_impact > 70:
        recs.insert(0, URGENT_ACTION)
    if cascading_impact > 80:
        recs.insert(0, CRITICAL_ACTION)

    return recs[:MAX_RECOMMENDATIONS]


def mitigation_priority(overall_risk: float) -> str:
    for threshold, level in RISK_PRIORITY_THRESHOLDS:
        if overall_risk >= threshold:
            return level
    return "low"


def calculate_risk_assessment(primary: Dict, factors: List[Dict], cascading_impact: float) -> Dict[str, Any]:
    overall = cascading_impact
    risk_factors: List[str] = []

    if primary["severity"] == "critical":
        overall = max(overall, 90)
        risk_factors.append("Critical anomaly severity")

    if len(factors) >= 5:
        overall += 15
        risk_factors.append("Multiple interconnected anomalies detected")

    types = {primary["type"], *(f["type"] for f in factors)}
    if len(types) >= SUPPLY_CHAIN_MIN_TYPES:
        overall += 20
        risk_factors.append("Multiple risk dimensions affected (price, freight, FX, tariff)")

    if any(f["severity"] == "critical" for f in factors):
        overall += 10
        risk_factors.append("Critical-level connected factors detected")

    overall = min(overall, 100)
    return {
        "overall_risk": overall,
        "risk_factors": risk_factors,
        "mitigation_priority": mitigation_priority(overall),
    }


# ══════════════════════════════════════════════════════════════════════════
#  MAIN ENTRY POINT
# ══════════════════════════════════════════════════════════════════════════

def analyze_interconnected_intelligence(
    db: Session,
    alert_id: int,
    time_window_days: int = 30,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """
    Connected-intelligence analysis for one alert, or None if the alert
    (or its anomaly) cannot be read.
    """
    now = now or datetime.utcnow()

    try:
        alert = db.query(Alert).filter(Alert.id == alert_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not read primary alert {alert_id}: {e}")
        return None
    if alert is None or alert.anomaly is None:
        return None
    primary = _record(alert)

    cutoff = now - timedelta(days=time_window_days)
    try:
        related = _fetch_related(db, alert_id, cutoff, settings.related_alert_limit)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not read related alerts for {alert_id}: {e}")
        related = []

    candidates: List[Dict] = []
    candidates += _safe("same_product", lambda: find_same_product_factors(primary, related))
    candidates += _safe("pattern", lambda: find_pattern_factors(primary, related))
    candidates += _safe("sector", lambda: find_sector_factors(primary, related))
    candidates += _safe("geographic", lambda: find_geographic_factors(primary, related))
    candidates += _safe("circular", lambda: find_circular_dependencies(primary, related))
    candidates += _safe("historical", lambda: find_historical_patterns(primary, related, now))

    factors = merge_factors(candidates)

    cascading_impact = calculate_cascading_impact(factors)
    logger.info(
        f"Alert {alert_id}: {len(related)} candidates, {len(factors)} connected, "
        f"cascade={cascading_impact}"
    )

    return {
        "primary_alert": {
            "id": primary["alert_id"],
            "type": primary["type"],
            "severity": primary["severity"],
            "timestamp": primary["timestamp"],
            "product_id": primary["product_id"],
            "details": primary["details"],
        },
        "connected_factors": factors[:TOP_FACTORS],
        "impact_cascade": {
            "cascading_impact": cascading_impact,
            "total_factors": len(factors),
            "affected_supply_chain": check_supply_chain_impact(primary["type"], factors),
        },
        "correlation_matrix": generate_correlation_matrix([primary] + factors),
        "recommended_actions": generate_recommendations(primary, factors, cascading_impact),
        "risk_assessment": calculate_risk_assessment(primary, factors, cascading_impact),
    }


def analyze_connections_batch(
    db: Session,
    alert_ids: List[int],
    time_window_days: int = 30,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Analyze several alerts; alerts that cannot be analyzed are dropped."""
    results = []
    for alert_id in alert_ids:
        result = analyze_interconnected_intelligence(db, alert_id, time_window_days, now=now)
        if result is not None:
            results.append(result)
    return results
