"""Pydantic schemas for request/response validation in the shortlink service.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ original_url: str
    ├─ custom_alias: str | None
    └─ expires_at: datetime | None

    LinkResponse (Output)
    ├─ short_code: str
    ├─ short_url: str (BASE_URL + "/" + short_code)
    ├─ original_url: str
    ├─ created_at: datetime
    └─ expires_at: datetime | None

    AnalyticsResponse (Output)
    ├─ short_code: str
    ├─ total_clicks: int
    ├─ clicks_by_date: list[DateClicks]
    ├─ clicks_by_country: list[CountryClicks]
    ├─ clicks_by_device: DeviceClicks
    └─ recent_clicks: list[RecentClick] | None

    ClickContext (Internal)
    └─ request metadata captured for a click event

Key Behaviours
===============
- URL and alias rules are enforced by the service layer so that violations
  surface as domain ``ValidationError`` (400) rather than schema errors.
- Malformed JSON bodies and unparseable dates are rejected by FastAPI (422).
- All datetime fields are timezone-aware on output.
"""

import datetime

from pydantic import BaseModel, Field

from shortlink.enums import DeviceType, HealthStatus

__all__ = [
    "LinkCreate",
    "LinkResponse",
    "DateClicks",
    "CountryClicks",
    "DeviceClicks",
    "RecentClick",
    "AnalyticsResponse",
    "ClickContext",
    "HealthResponse",
    "ErrorResponse",
]


class LinkCreate(BaseModel):
    original_url: str = Field(..., description="Absolute http(s) URL to shorten")
    custom_alias: str | None = Field(None, description="Caller-chosen code, 3-50 chars of [A-Za-z0-9_-]")
    expires_at: datetime.datetime | None = None


class LinkResponse(BaseModel):
    short_code: str
    short_url: str
    original_url: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None


class DateClicks(BaseModel):
    date: str
    clicks: int


class CountryClicks(BaseModel):
    country: str
    clicks: int


class DeviceClicks(BaseModel):
    mobile: int = 0
    desktop: int = 0
    tablet: int = 0
    other: int = 0


class RecentClick(BaseModel):
    clicked_at: datetime.datetime
    referrer: str | None = None
    country: str | None = None
    city: str | None = None
    device_type: str | None = None

    model_config = {"from_attributes": True}


class AnalyticsResponse(BaseModel):
    short_code: str
    total_clicks: int
    clicks_by_date: list[DateClicks]
    clicks_by_country: list[CountryClicks]
    clicks_by_device: DeviceClicks
    recent_clicks: list[RecentClick] | None = None


class ClickContext(BaseModel):
    """Request metadata attached to a recorded hit."""

    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    device_type: DeviceType | None = None
    country: str | None = None
    city: str | None = None
    clicked_at: datetime.datetime | None = None


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ErrorResponse(BaseModel):
    detail: str
    kind: str
