"""
FeedItem ORM model.
One row per logged activity. Entity references live in feed_item_entities
and are deleted with their feed item.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from activity_feed.db.base import Base, JSONType
from activity_feed.feed.records import ActivityRecord, EntityReference


class FeedItem(Base):
    __tablename__ = "feed_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    description_template: Mapped[str] = mapped_column(Text, nullable=False)
    properties: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ─────────────────────────────────────────────────────────
    entities: Mapped[list["FeedItemEntity"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "FeedItemEntity",
        back_populates="feed_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="FeedItemEntity.id",
    )

    __table_args__ = (
        Index("ix_feed_items_action", "action"),
        Index("ix_feed_items_occurred_at", "occurred_at"),
    )

    def to_record(self) -> ActivityRecord:
        """Snapshot this row as an immutable ``ActivityRecord``."""
        return ActivityRecord(
            id=self.id,
            action=self.action,
            template=self.description_template,
            occurred_at=self.occurred_at,
            properties=self.properties or {},
            entity_refs=tuple(
                EntityReference(entity.role, entity.entity_type, entity.entity_id)
                for entity in self.entities
            ),
        )

    def __repr__(self) -> str:
        return f"<FeedItem id={self.id} action={self.action!r}>"
