"""
Severity Policy Tables
──────────────────────
Each detector classifies its measures against ascending cutoffs:

  detector   measure              medium   high   critical
  price      |z-score|            2.5      3.0    4.0
             |Δ% vs previous|     25       50     100
  tariff     |Δ% of rate|         50       100    200
             |Δ rate (points)|    5        10     20
  freight    |Δ% vs mean|         25       40     60
  fx         volatility           2.5      3.5    5.0
             |Δ% vs mean|         2.0      3.5    5.0

Anything below the medium cutoff is ``low``. When a detector has several
measures, the result is the highest tier any single measure reaches.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from tradewatch.models.alert import AnomalySeverity, SEVERITY_ORDER

# (cutoff, severity) pairs, highest cutoff first
SeverityLadder = List[Tuple[float, AnomalySeverity]]


def _ladder(critical: float, high: float, medium: float) -> SeverityLadder:
    return [
        (critical, AnomalySeverity.CRITICAL),
        (high, AnomalySeverity.HIGH),
        (medium, AnomalySeverity.MEDIUM),
    ]


def classify_measure(ladder: SeverityLadder, value: float) -> AnomalySeverity:
    magnitude = abs(value)
    for cutoff, severity in ladder:
        if magnitude >= cutoff:
            return severity
    return AnomalySeverity.LOW


def max_severity(*severities: AnomalySeverity) -> AnomalySeverity:
    if not severities:
        return AnomalySeverity.LOW
    return max(severities, key=SEVERITY_ORDER.index)


@dataclass(frozen=True)
class SeverityPolicy:
    name: str
    ladders: Dict[str, SeverityLadder]

    def classify(self, **measures: float) -> AnomalySeverity:
        unknown = set(measures) - set(self.ladders)
        if unknown:
            raise KeyError(f"{self.name} policy has no ladder for {sorted(unknown)}")
        return max_severity(
            *(classify_measure(self.ladders[name], value) for name, value in measures.items())
        )


PRICE_POLICY = SeverityPolicy(
    name="price",
    ladders={
        "z_score": _ladder(4.0, 3.0, 2.5),
        "percentage_change": _ladder(100, 50, 25),
    },
)

TARIFF_POLICY = SeverityPolicy(
    name="tariff",
    ladders={
        "percentage_change": _ladder(200, 100, 50),
        "absolute_change": _ladder(20, 10, 5),
    },
)

FREIGHT_POLICY = SeverityPolicy(
    name="freight",
    ladders={
        "percentage_change": _ladder(60, 40, 25),
    },
)

FX_POLICY = SeverityPolicy(
    name="fx",
    ladders={
        "volatility": _ladder(5.0, 3.5, 2.5),
        "percentage_change": _ladder(5.0, 3.5, 2.0),
    },
)
