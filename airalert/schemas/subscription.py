"""Pydantic models for subscription and push registration endpoints."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from airalert.core.alerting.thresholds import ThresholdConfig


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with the mobile client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubscribeRequest(CamelModel):
    user_id: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    device_name: Optional[str] = None
    custom_thresholds: Optional[Dict[str, ThresholdConfig]] = None


class UnsubscribeRequest(CamelModel):
    user_id: str = Field(min_length=1)
    device_id: str = Field(min_length=1)


class ThresholdUpdateRequest(CamelModel):
    thresholds: Dict[str, ThresholdConfig]


class SubscriptionRead(CamelModel):
    device_id: str
    device_name: Optional[str] = None
    is_active: bool
    custom_thresholds: Dict[str, ThresholdConfig] = Field(default_factory=dict)


class SubscriptionListResponse(CamelModel):
    success: bool = True
    subscriptions: List[SubscriptionRead]


class RegisterTokenRequest(CamelModel):
    user_id: str = Field(min_length=1)
    token: str = Field(min_length=1)


class SuccessResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
