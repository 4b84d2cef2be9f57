"""
Unit tests for the severity policy tables.
"""

import pytest

from tradewatch.models.alert import AnomalySeverity, SEVERITY_ORDER
from tradewatch.services.severity import (
    FREIGHT_POLICY,
    FX_POLICY,
    PRICE_POLICY,
    TARIFF_POLICY,
    max_severity,
)


@pytest.mark.parametrize(
    "z, pct, expected",
    [
        (2.0, 10.0, AnomalySeverity.LOW),
        (2.5, 0.0, AnomalySeverity.MEDIUM),
        (3.0, 0.0, AnomalySeverity.HIGH),
        (4.0, 0.0, AnomalySeverity.CRITICAL),
        (0.0, 25.0, AnomalySeverity.MEDIUM),
        (0.0, 50.0, AnomalySeverity.HIGH),
        (0.0, 100.0, AnomalySeverity.CRITICAL),
        (0.0, -150.0, AnomalySeverity.CRITICAL),
        (-3.2, 5.0, AnomalySeverity.HIGH),
    ],
)
def test_price_policy(z, pct, expected):
    assert PRICE_POLICY.classify(z_score=z, percentage_change=pct) == expected


def test_price_severity_monotonic_in_percentage_change():
    z = 2.1
    previous = AnomalySeverity.LOW
    for pct in range(0, 301, 5):
        severity = PRICE_POLICY.classify(z_score=z, percentage_change=float(pct))
        assert SEVERITY_ORDER.index(severity) >= SEVERITY_ORDER.index(previous)
        previous = severity


def test_tariff_policy_uses_absolute_change_too():
    assert TARIFF_POLICY.classify(percentage_change=20.0, absolute_change=1.0) == AnomalySeverity.LOW
    assert TARIFF_POLICY.classify(percentage_change=20.0, absolute_change=12.0) == AnomalySeverity.HIGH
    assert TARIFF_POLICY.classify(percentage_change=-60.0, absolute_change=-3.0) == AnomalySeverity.MEDIUM
    assert TARIFF_POLICY.classify(percentage_change=200.0, absolute_change=0.5) == AnomalySeverity.CRITICAL


@pytest.mark.parametrize(
    "pct, expected",
    [
        (15.0, AnomalySeverity.LOW),
        (25.0, AnomalySeverity.MEDIUM),
        (40.0, AnomalySeverity.HIGH),
        (60.0, AnomalySeverity.CRITICAL),
    ],
)
def test_freight_policy(pct, expected):
    assert FREIGHT_POLICY.classify(percentage_change=pct) == expected


def test_fx_policy():
    assert FX_POLICY.classify(volatility=2.5, percentage_change=0.5) == AnomalySeverity.MEDIUM
    assert FX_POLICY.classify(volatility=1.0, percentage_change=3.6) == AnomalySeverity.HIGH
    assert FX_POLICY.classify(volatility=5.1, percentage_change=0.0) == AnomalySeverity.CRITICAL


def test_unknown_measure_is_rejected():
    with pytest.raises(KeyError):
        FREIGHT_POLICY.classify(z_score=3.0)


def test_max_severity():
    assert max_severity(AnomalySeverity.MEDIUM, AnomalySeverity.CRITICAL, AnomalySeverity.LOW) == AnomalySeverity.CRITICAL
    assert max_severity() == AnomalySeverity.LOW
