"""Pollutant catalogue and the canonical threshold schema."""
from __future__ import annotations

from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Fixed ordering used to break ties between equally severe pollutants.
POLLUTANT_ORDER: tuple[str, ...] = (
    "pm2_5",
    "pm10",
    "co",
    "no2",
    "so2",
    "o3",
    "temperature_c",
    "humidity_pct",
)

DISPLAY_NAMES: Dict[str, str] = {
    "pm2_5": "PM2.5",
    "pm10": "PM10",
    "co": "CO",
    "no2": "NO2",
    "so2": "SO2",
    "o3": "Ozone",
    "temperature_c": "Temperature",
    "humidity_pct": "Humidity",
}

# Legacy documents stored only a critical level; warning was derived from it.
LEGACY_WARNING_RATIO = 0.7


def display_name(metric: str) -> str:
    """Return the human-readable name of a pollutant key."""

    return DISPLAY_NAMES.get(metric, metric.upper())


def pollutant_rank(metric: str) -> tuple[int, str]:
    """Sort key placing known pollutants first, in catalogue order."""

    try:
        return (POLLUTANT_ORDER.index(metric), metric)
    except ValueError:
        return (len(POLLUTANT_ORDER), metric)


class ThresholdConfig(BaseModel):
    """Warning/critical levels for a single pollutant."""

    enabled: bool = True
    warning: float = Field(ge=0)
    critical: float = Field(ge=0)
    unit: str = ""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_keys(cls, data: Any) -> Any:
        """Accept documents that use ``max`` and omit ``warning``."""

        if not isinstance(data, Mapping):
            return data
        payload = dict(data)
        if payload.get("critical") is None and payload.get("max") is not None:
            payload["critical"] = payload["max"]
        if payload.get("warning") is None and payload.get("critical") is not None:
            payload["warning"] = float(payload["critical"]) * LEGACY_WARNING_RATIO
        payload.pop("max", None)
        return payload

    @model_validator(mode="after")
    def ensure_ordered_levels(self) -> "ThresholdConfig":
        if self.critical < self.warning:
            raise ValueError("critical threshold must be greater than or equal to warning")
        return self


DEFAULT_THRESHOLDS: Dict[str, Dict[str, Any]] = {
    "pm2_5": {"enabled": True, "warning": 35.0, "critical": 75.0, "unit": "µg/m³"},
    "pm10": {"enabled": True, "warning": 155.0, "critical": 255.0, "unit": "µg/m³"},
    "co": {"enabled": True, "warning": 9.0, "critical": 15.0, "unit": "ppm"},
    "no2": {"enabled": True, "warning": 100.0, "critical": 360.0, "unit": "ppb"},
    "so2": {"enabled": True, "warning": 75.0, "critical": 185.0, "unit": "ppb"},
    "o3": {"enabled": True, "warning": 70.0, "critical": 105.0, "unit": "ppb"},
    "temperature_c": {"enabled": False, "warning": 35.0, "critical": 40.0, "unit": "°C"},
    "humidity_pct": {"enabled": False, "warning": 80.0, "critical": 90.0, "unit": "%"},
}


def parse_thresholds(raw: Mapping[str, Any] | None) -> Dict[str, ThresholdConfig]:
    """Validate a stored ``custom_thresholds`` document.

    Entries that cannot be migrated into the canonical schema are skipped so
    that one corrupt pollutant does not disable the whole subscription.
    """

    parsed: Dict[str, ThresholdConfig] = {}
    for metric, config in (raw or {}).items():
        if isinstance(config, ThresholdConfig):
            parsed[metric] = config
            continue
        try:
            parsed[metric] = ThresholdConfig.model_validate(config)
        except ValueError:
            continue
    return parsed


def default_thresholds() -> Dict[str, Dict[str, Any]]:
    """Return a fresh copy of the default subscription thresholds."""

    return {metric: dict(config) for metric, config in DEFAULT_THRESHOLDS.items()}
