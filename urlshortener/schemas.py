"""Pydantic schemas for the HTTP adapter.

Schema Hierarchy
=================
::
    GenerateRequest (Input)
    ├─ original_url: str (missing or empty; the engine rejects both)
    ├─ custom_token: str | None
    └─ expires_at: datetime | None (RFC 3339)

    GenerateResponse (Output)
    ├─ short_url: str (the token)
    └─ url: str (BASE_URL/token)

    HealthResponse (Output)
    ├─ status: HealthStatus
    ├─ database: HealthStatus
    └─ cache: HealthStatus

Key Behaviours
===============
- Only structural validation happens here. Empty URLs and bad custom tokens
  are left to the engine so every caller gets the same error taxonomy.
- A missing ``original_url`` reaches the engine as ``""`` and gets the same
  400 as an empty one. Malformed JSON is rejected by FastAPI with 422.
"""

import datetime

from pydantic import BaseModel, Field

from urlshortener.enums import HealthStatus

__all__ = ["GenerateRequest", "GenerateResponse", "HealthResponse", "ErrorResponse"]


class GenerateRequest(BaseModel):
    original_url: str = ""
    custom_token: str | None = None
    expires_at: datetime.datetime | None = Field(
        None,
        description="RFC 3339 timestamp after which the entry is purged, e.g. '2030-01-01T00:00:00Z'",
    )


class GenerateResponse(BaseModel):
    short_url: str = Field(..., description="The allocated token")
    url: str = Field(..., description="Absolute short URL built from BASE_URL")


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ErrorResponse(BaseModel):
    detail: str
