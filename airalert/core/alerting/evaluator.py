"""Severity evaluation of a reading against a subscription's thresholds.

Pure functions, no I/O. A pollutant breaches when its value meets or
exceeds a configured level; several simultaneous breaches collapse into one
consolidated result driven by the most severe pollutant, ties broken by
:data:`~airalert.core.alerting.thresholds.POLLUTANT_ORDER`.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from airalert.core.alerting.thresholds import ThresholdConfig, parse_thresholds, pollutant_rank


class Severity(str, enum.Enum):
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return 2 if self is Severity.CRITICAL else 1


@dataclass(frozen=True)
class Violation:
    """A single pollutant meeting or exceeding one of its thresholds."""

    metric: str
    value: float
    threshold: float
    severity: Severity
    unit: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "value": self.value,
            "threshold": self.threshold,
            "severity": self.severity.value,
            "unit": self.unit,
        }


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def classify(metric: str, value: float, config: ThresholdConfig) -> Optional[Violation]:
    """Return the violation for one pollutant value, if any."""

    if value >= config.critical:
        return Violation(metric, value, config.critical, Severity.CRITICAL, config.unit)
    if value >= config.warning:
        return Violation(metric, value, config.warning, Severity.WARNING, config.unit)
    return None


def find_violations(
    values: Mapping[str, Any], thresholds: Mapping[str, Any]
) -> List[Violation]:
    """Return every breached pollutant, most severe first.

    Only pollutants present in both the reading and the enabled threshold set
    are considered; missing or non-numeric values count as not breached.
    """

    configs = parse_thresholds(thresholds)
    violations: List[Violation] = []
    for metric, config in configs.items():
        if not config.enabled:
            continue
        value = _as_number(values.get(metric))
        if value is None:
            continue
        hit = classify(metric, value, config)
        if hit is not None:
            violations.append(hit)

    violations.sort(key=lambda v: (-v.severity.rank, pollutant_rank(v.metric)))
    return violations


def evaluate(values: Mapping[str, Any], thresholds: Mapping[str, Any]) -> Optional[Violation]:
    """Return the consolidated (worst) violation for a reading, or ``None``."""

    violations = find_violations(values, thresholds)
    return violations[0] if violations else None
