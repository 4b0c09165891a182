"""
Feed item Pydantic schemas.
Includes create/read variants, the property patch body, list filters and
the retention cleanup report.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ── Create ────────────────────────────────────────────────────────────────────

class EntityReferenceIn(BaseModel):
    role: str = Field(min_length=1, max_length=50)
    entity_type: str = Field(min_length=1, max_length=100)
    entity_id: str | int


class ChangeIn(BaseModel):
    field: str = Field(min_length=1, max_length=100)
    old: Any = None
    new: Any = None


class FeedItemCreate(BaseModel):
    # Emptiness is checked when the feed item is finalized.
    action: str = Field(default="", max_length=100)
    template: str = Field(default="", max_length=2000)
    entities: list[EntityReferenceIn] = Field(default_factory=list, max_length=50)
    properties: dict[str, Any] = Field(default_factory=dict)
    changes: list[ChangeIn] = Field(default_factory=list, max_length=200)
    occurred_at: datetime | None = None


# ── Update ────────────────────────────────────────────────────────────────────

class FeedItemPropertiesUpdate(BaseModel):
    properties: dict[str, Any]


# ── Read ──────────────────────────────────────────────────────────────────────

class FeedItemEntityRead(BaseModel):
    role: str
    entity_type: str
    entity_id: str

    model_config = {"from_attributes": True}


class FeedItemRead(BaseModel):
    id: int
    action: str
    description_template: str
    description: str
    properties: dict[str, Any]
    occurred_at: datetime
    entities: list[FeedItemEntityRead]
    changes: list[str] = Field(default_factory=list)
    changes_summary: str | None = None


# ── Filter ────────────────────────────────────────────────────────────────────

class FeedFilter(BaseModel):
    """Query parameters for the feed list endpoint."""

    actions: list[str] | None = None
    entity_type: str | None = Field(default=None, max_length=100)
    entity_id: str | None = Field(default=None, max_length=64)
    role: str | None = Field(default=None, max_length=50)
    since: datetime | None = None
    until: datetime | None = None
    page: int = Field(default=1, ge=1)
    size: int = Field(default=20, ge=1, le=100)


# ── Cleanup ───────────────────────────────────────────────────────────────────

class CleanupSampleItem(BaseModel):
    id: int
    action: str
    occurred_at: datetime


class CleanupReport(BaseModel):
    retention_days: int | None
    cutoff: datetime | None
    matched: int
    deleted: int
    dry_run: bool
    sample: list[CleanupSampleItem] = Field(default_factory=list)
