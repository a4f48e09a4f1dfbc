"""Pydantic schemas for subscription definitions and the HTTP API layer."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConversionSpec(BaseModel):
    """How a raw MQTT value is converted into a line protocol field value."""

    kind: str = Field(default="", description="identity, float, integer, boolean, on-off or string.")
    precision: int = Field(default=0, ge=0)
    scale: float = 0.0
    lookup: Optional[Dict[str, str]] = None


class SubscriptionSpec(BaseModel):
    """A subscription definition as stored in the subscription files."""

    model_config = ConfigDict(populate_by_name=True)

    topic: str
    measurement: str
    database: str = ""
    tags: Dict[str, str] = Field(default_factory=dict)
    value: str = ""
    csv_separator: str = Field(default="", alias="csvSeparator")
    conversion: ConversionSpec = Field(default_factory=ConversionSpec)


class PreviewRequest(BaseModel):
    """A message to run through the configured subscriptions."""

    topic: str
    payload: str = ""


class PreviewResult(BaseModel):
    """Outcome of one subscription for a previewed message."""

    subscription: str
    line: Optional[str] = None
    error: Optional[str] = None


class ProcessorStats(BaseModel):
    received: int = Field(..., ge=0)
    submitted: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)


class SinkStats(BaseModel):
    queued: int = Field(..., ge=0)
    sent: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    dropped: int = Field(..., ge=0)


class BridgeStats(BaseModel):
    """Counters exposed by the running bridge."""

    subscriptions: int = Field(..., ge=0)
    processor: ProcessorStats
    sink: SinkStats


class ReloadResponse(BaseModel):
    subscriptions: int = Field(..., ge=0)


class SubscriptionList(BaseModel):
    items: List[SubscriptionSpec] = Field(default_factory=list)
