"""Threshold evaluation and alert suppression primitives."""
from airalert.core.alerting.cooldown import CooldownKey, CooldownTracker
from airalert.core.alerting.evaluator import Severity, Violation, evaluate, find_violations
from airalert.core.alerting.thresholds import (
    DEFAULT_THRESHOLDS,
    POLLUTANT_ORDER,
    ThresholdConfig,
    default_thresholds,
    display_name,
    parse_thresholds,
)

__all__ = [
    "CooldownKey",
    "CooldownTracker",
    "Severity",
    "Violation",
    "evaluate",
    "find_violations",
    "DEFAULT_THRESHOLDS",
    "POLLUTANT_ORDER",
    "ThresholdConfig",
    "default_thresholds",
    "display_name",
    "parse_thresholds",
]
