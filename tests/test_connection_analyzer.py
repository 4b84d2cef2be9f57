"""
Tests for connected-intelligence analysis.
"""

from datetime import timedelta

import pytest

from tradewatch.services import connection_analyzer
from tradewatch.services.connection_analyzer import (
    CRITICAL_ACTION,
    PATTERN_ADMISSION_SCORE,
    PATTERN_BASELINE_SCORE,
    URGENT_ACTION,
    analyze_connections_batch,
    analyze_interconnected_intelligence,
    calculate_cascading_impact,
    check_supply_chain_impact,
    correlation_score,
    find_pattern_factors,
    merge_factors,
    mitigation_priority,
    pattern_correlation,
)


def _factor(alert_id, score, severity="medium", type_="freight_surge"):
    return {
        "id": alert_id,
        "alert_id": alert_id,
        "type": type_,
        "severity": severity,
        "correlation_score": score,
        "product_id": None,
        "timestamp": "2025-03-15T12:00:00",
        "details": {},
    }


def _factor_by_alert(result, alert_id):
    return next(f for f in result["connected_factors"] if f["alert_id"] == alert_id)


# ── Pairwise scores ──────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "type1, type2, expected",
    [
        ("price_spike", "freight_surge", 0.9),
        ("freight_surge", "price_spike", 0.9),
        ("tariff_change", "price_spike", 0.85),
        ("fx_volatility", "price_spike", 0.75),
        ("tariff_change", "fx_volatility", 0.3),
    ],
)
def test_correlation_score_for_type_pairs(type1, type2, expected):
    assert correlation_score(type1, type2) == expected


def test_correlation_score_falls_back_to_shared_product():
    assert correlation_score("tariff_change", "freight_surge", "steel", "steel") == 0.6
    assert correlation_score("price_spike", "price_spike", "steel", "steel") == 0.6
    assert correlation_score("price_spike", "price_spike", "steel", "resin") == 0.3
    assert correlation_score("price_spike", "price_spike", None, None) == 0.3


def test_pattern_correlation_scores():
    assert pattern_correlation(
        "price_spike", "freight_surge", {"percentage_change": 30}, {"percentage_change": -25}
    ) == 0.8
    assert pattern_correlation(
        "price_spike", "fx_volatility", {"percentage_change": 16}, {"percentage_change": 11}
    ) == 0.75
    assert pattern_correlation(
        "tariff_change", "price_spike", {"percentage_change": 12}, {}
    ) == 0.7


def test_pattern_baseline_is_never_admitted():
    score = pattern_correlation(
        "price_spike", "freight_surge", {"percentage_change": 5}, {"percentage_change": 5}
    )
    assert score == PATTERN_BASELINE_SCORE
    assert PATTERN_BASELINE_SCORE <= PATTERN_ADMISSION_SCORE

    primary = {"type": "price_spike", "details": {"percentage_change": 5}}
    related = [{
        "alert_id": 2, "type": "freight_surge", "severity": "low", "product_id": None,
        "timestamp": "2025-03-15T12:00:00", "details": {"percentage_change": 5},
    }]
    assert find_pattern_factors(primary, related) == []


def test_merge_keeps_highest_score_per_alert():
    merged = merge_factors([_factor(7, 0.65), _factor(8, 0.4), _factor(7, 0.9), _factor(8, 0.4, "high")])

    assert [(f["alert_id"], f["correlation_score"]) for f in merged] == [(7, 0.9), (8, 0.4)]
    # Ties keep the first candidate seen
    assert merged[1]["severity"] == "medium"


# ── Cascade & priority ───────────────────────────────────────────────────

def test_cascading_impact_formula():
    factors = [_factor(1, 0.9, "high"), _factor(2, 0.5, "low")]
    # 60 × (1 + 0.2 × 2) + 20 × 1 = 104, capped
    assert calculate_cascading_impact(factors) == 100.0
    assert calculate_cascading_impact([_factor(1, 0.9, "medium")]) == pytest.approx(36.0)
    assert calculate_cascading_impact([_factor(1, 0.4, "low"), _factor(2, 0.3, "medium")]) == pytest.approx(14.0)


def test_cascading_impact_is_clamped():
    assert calculate_cascading_impact([]) == 0.0
    many_critical = [_factor(i, 0.9, "critical") for i in range(12)]
    assert calculate_cascading_impact(many_critical) == 100.0
    for n in range(1, 15):
        impact = calculate_cascading_impact([_factor(i, 0.5, "high") for i in range(n)])
        assert 0 <= impact <= 100


def test_supply_chain_flag_needs_three_types():
    two = [_factor(1, 0.9, type_="freight_surge")]
    three = two + [_factor(2, 0.75, type_="fx_volatility")]
    assert check_supply_chain_impact("price_spike", two) is False
    assert check_supply_chain_impact("price_spike", three) is True


@pytest.mark.parametrize(
    "risk, expected",
    [
        (100, "critical"),
        (80, "critical"),
        (79, "high"),
        (60, "high"),
        (59, "medium"),
        (40, "medium"),
        (39, "low"),
        (0, "low"),
    ],
)
def test_mitigation_priority_ladder(risk, expected):
    assert mitigation_priority(risk) == expected


# ── Full analysis ────────────────────────────────────────────────────────

def test_price_and_freight_on_same_product_score_0_9(db, now, make_alert):
    price = make_alert("price_spike", "high", "steel-hrc", {"percentage_change": 30})
    freight = make_alert("freight_surge", "medium", "steel-hrc", {"percentage_change": 25})

    result = analyze_interconnected_intelligence(db, price, 30, now=now)

    assert result is not None
    assert result["primary_alert"]["id"] == price
    factor = _factor_by_alert(result, freight)
    assert factor["correlation_score"] == 0.9
    assert factor["type"] == "freight_surge"
    assert len(result["connected_factors"]) == 1


def test_unknown_alert_returns_none(db, now):
    assert analyze_interconnected_intelligence(db, 12345, now=now) is None


def test_alerts_outside_window_are_ignored(db, now, make_alert):
    price = make_alert("price_spike", "high", "steel-hrc")
    make_alert("freight_surge", "high", "steel-hrc", created_at=now - timedelta(days=40))

    result = analyze_interconnected_intelligence(db, price, 30, now=now)

    assert result["connected_factors"] == []
    assert result["impact_cascade"] == {
        "cascading_impact": 0.0,
        "total_factors": 0,
        "affected_supply_chain": False,
    }


def test_supply_chain_affected_end_to_end(db, now, make_alert):
    price = make_alert("price_spike", "high", "steel-hrc")
    make_alert("freight_surge", "medium", "steel-hrc")

    two_types = analyze_interconnected_intelligence(db, price, now=now)
    assert two_types["impact_cascade"]["affected_supply_chain"] is False

    make_alert("fx_volatility", "medium", "steel-hrc")
    three_types = analyze_interconnected_intelligence(db, price, now=now)
    assert three_types["impact_cascade"]["affected_supply_chain"] is True
    assert "Multiple risk dimensions affected (price, freight, FX, tariff)" in (
        three_types["risk_assessment"]["risk_factors"]
    )


def test_high_impact_recommendations_put_overrides_first(db, now, make_alert):
    price = make_alert("price_spike", "high", "steel-hrc")
    make_alert("freight_surge", "critical", "steel-hrc")
    make_alert("fx_volatility", "high", "steel-hrc")

    result = analyze_interconnected_intelligence(db, price, now=now)

    assert result["impact_cascade"]["cascading_impact"] == 100.0
    assert result["recommended_actions"] == [
        CRITICAL_ACTION,
        URGENT_ACTION,
        "Review supplier pricing agreements for sudden changes",
        "Investigate freight route alternatives to reduce costs",
        "Consider hedging currency exposure with forward contracts",
    ]
    risk = result["risk_assessment"]
    assert risk["overall_risk"] == 100
    assert risk["mitigation_priority"] == "critical"
    assert "Critical-level connected factors detected" in risk["risk_factors"]


def test_low_impact_tariff_analysis(db, now, make_alert):
    tariff = make_alert("tariff_change", "medium", "textile", {"percentage_change": 12})
    price = make_alert("price_spike", "low", "textile")

    result = analyze_interconnected_intelligence(db, tariff, now=now)

    assert _factor_by_alert(result, price)["correlation_score"] == 0.85
    assert result["impact_cascade"]["cascading_impact"] == pytest.approx(12.0)
    assert result["recommended_actions"] == [
        "Update customs declaration templates with new rates",
        "Notify trading partners of compliance requirements",
        "Negotiate price adjustments with suppliers to offset tariff impact",
    ]
    assert result["risk_assessment"]["mitigation_priority"] == "low"
    assert result["risk_assessment"]["risk_factors"] == []


def test_critical_primary_raises_risk_floor(db, now, make_alert):
    fx = make_alert("fx_volatility", "critical", details={"currency_pair": "USD/MYR"})

    result = analyze_interconnected_intelligence(db, fx, now=now)

    assert result["connected_factors"] == []
    assert result["risk_assessment"]["overall_risk"] == 90
    assert result["risk_assessment"]["mitigation_priority"] == "critical"
    assert result["risk_assessment"]["risk_factors"] == ["Critical anomaly severity"]
    assert result["recommended_actions"] == [
        "Review FX exposure and implement hedging strategy",
        "Monitor central bank policy changes affecting exchange rates",
    ]


def test_sector_wide_factors(db, now, make_alert):
    primary = make_alert("price_spike", "medium", "steel-a", {"category": "steel"})
    same_sector = make_alert("price_spike", "medium", "steel-b", {"category": "steel"})
    make_alert("price_spike", "medium", "cotton", {"category": "textiles"})

    result = analyze_interconnected_intelligence(db, primary, now=now)

    assert [f["alert_id"] for f in result["connected_factors"]] == [same_sector]
    assert result["connected_factors"][0]["correlation_score"] == 0.55


def test_sector_needs_a_category(db, now, make_alert):
    primary = make_alert("price_spike", "medium", "a")
    make_alert("price_spike", "medium", "b")

    result = analyze_interconnected_intelligence(db, primary, now=now)

    assert result["connected_factors"] == []


def test_geographic_factors(db, now, make_alert):
    primary = make_alert("tariff_change", "medium", "steel-a", {"origin": "CHN"})
    same_country = make_alert("fx_volatility", "low", details={"country": "CHN"})
    make_alert("fx_volatility", "low", details={"country": "VNM"})

    result = analyze_interconnected_intelligence(db, primary, now=now)

    assert [f["alert_id"] for f in result["connected_factors"]] == [same_country]
    assert result["connected_factors"][0]["correlation_score"] == 0.45


def test_circular_dependency_flagged(db, now, make_alert):
    primary = make_alert("freight_surge", "medium", details={"route": "Asia-Europe"})
    price = make_alert("price_spike", "medium", "steel-a")

    result = analyze_interconnected_intelligence(db, primary, now=now)

    factor = _factor_by_alert(result, price)
    assert factor["correlation_score"] == 0.65
    assert factor["details"]["circular_dependency"] is True


def test_historical_recurrence(db, now, make_alert):
    primary = make_alert("tariff_change", "medium", "steel-a")
    old_1 = make_alert("fx_volatility", "low", created_at=now - timedelta(days=20))
    old_2 = make_alert("fx_volatility", "low", created_at=now - timedelta(days=18))
    make_alert("fx_volatility", "low", created_at=now - timedelta(days=2))

    result = analyze_interconnected_intelligence(db, primary, now=now)

    factors = result["connected_factors"]
    assert {f["alert_id"] for f in factors} == {old_1, old_2}
    for f in factors:
        assert f["correlation_score"] == 0.4
        assert f["details"]["historical_pattern"] is True
        assert f["details"]["occurrences"] == 3


def test_only_top_ten_factors_exposed(db, now, make_alert):
    primary = make_alert("price_spike", "medium", "steel-a")
    # one per dedup window
    for i in range(12):
        make_alert("freight_surge", "low", "steel-a", created_at=now - timedelta(hours=25 * i))

    result = analyze_interconnected_intelligence(db, primary, now=now)

    assert len(result["connected_factors"]) == 10
    assert result["impact_cascade"]["total_factors"] == 12
    assert "Multiple interconnected anomalies detected" in result["risk_assessment"]["risk_factors"]


def test_correlation_matrix_covers_every_pair(db, now, make_alert):
    price = make_alert("price_spike", "high", "steel-hrc")
    make_alert("freight_surge", "medium", "steel-hrc")
    make_alert("fx_volatility", "medium", "steel-hrc")

    result = analyze_interconnected_intelligence(db, price, now=now)

    pairs = result["correlation_matrix"]["factor_pairs"]
    assert len(pairs) == 3
    as_set = {(p["factor1"], p["factor2"]): p["correlation"] for p in pairs}
    assert as_set[("price_spike", "freight_surge")] == 0.9
    assert as_set[("price_spike", "fx_volatility")] == 0.75


def test_failing_heuristic_degrades_to_no_contribution(db, now, make_alert, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("heuristic exploded")

    monkeypatch.setattr(connection_analyzer, "find_same_product_factors", boom)
    price = make_alert("price_spike", "high", "steel-hrc")
    freight = make_alert("freight_surge", "medium", "steel-hrc")

    result = analyze_interconnected_intelligence(db, price, now=now)

    # Circular dependency still links the pair
    assert _factor_by_alert(result, freight)["correlation_score"] == 0.65


def test_batch_drops_unknown_alerts(db, now, make_alert):
    price = make_alert("price_spike", "high", "steel-hrc")

    results = analyze_connections_batch(db, [price, 999], now=now)

    assert [r["primary_alert"]["id"] for r in results] == [price]
