"""Sensor device and reading models."""
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from airalert.db.base import Base
from airalert.db.types import JSONDocument


class Device(Base):
    """A provisioned air-quality sensor.

    Devices are never deleted during normal operation; ``is_active`` is
    cleared instead.
    """

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True)
    device_id = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    location = Column(JSONDocument, default=dict)

    operational_status = Column(String(20), default="active")
    connection_status = Column(String(20))
    last_seen_at = Column(DateTime(timezone=True))

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SensorReading(Base):
    """One immutable measurement event written by the ingestion service."""

    __tablename__ = "sensor_readings"

    id = Column(Integer, primary_key=True)
    device_id = Column(String(100), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)
    values = Column(JSONDocument, nullable=False, default=dict)  # { pm2_5: 12.3, co: 0.4, ... }

    __table_args__ = (
        Index("ix_sensor_readings_device_recorded", "device_id", "recorded_at"),
    )
