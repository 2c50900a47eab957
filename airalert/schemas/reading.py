"""Pydantic models for reading events consumed by the alert pipeline."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from pydantic import BaseModel, Field, field_validator, model_validator

# Gas concentrations reported under ``alphasense_voltages`` by the sensor firmware.
NESTED_GAS_KEYS: Dict[str, str] = {
    "CO_ppm": "co",
    "NO2_ppb": "no2",
    "SO2_ppb": "so2",
    "O3_ppb": "o3",
}

_RESERVED_KEYS = {"deviceId", "device_id", "timestamp", "metadata", "values", "_id", "id"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ReadingEvent(BaseModel):
    """One sensor measurement: device, server timestamp and pollutant values."""

    device_id: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    values: Dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> Any:
        """Flatten ingestion payloads into ``device_id``/``timestamp``/``values``."""

        if not isinstance(data, Mapping):
            return data

        metadata = data.get("metadata") if isinstance(data.get("metadata"), Mapping) else {}
        device_id = data.get("device_id") or data.get("deviceId") or metadata.get("device_id")
        timestamp = data.get("timestamp") or metadata.get("timestamp_server")

        values: Dict[str, Any] = {}
        if isinstance(data.get("values"), Mapping):
            values.update({key: value for key, value in data["values"].items() if _is_number(value)})
        for key, value in data.items():
            if key in _RESERVED_KEYS or not _is_number(value):
                continue
            values[key] = value
        nested = data.get("alphasense_voltages")
        if isinstance(nested, Mapping):
            for source_key, metric in NESTED_GAS_KEYS.items():
                if _is_number(nested.get(source_key)):
                    values.setdefault(metric, nested[source_key])

        normalized: Dict[str, Any] = {"device_id": device_id, "values": values}
        if timestamp is not None:
            normalized["timestamp"] = timestamp
        return normalized

    @field_validator("timestamp")
    @classmethod
    def ensure_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
