"""
FeedItemEntity ORM model.
A polymorphic (entity_type, entity_id) pointer attached to a feed item
under a role. The referenced object is not owned and may no longer exist.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from activity_feed.db.base import Base


class FeedItemEntity(Base):
    __tablename__ = "feed_item_entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("feed_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    # Stored as text so integer and UUID keys share one column
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ─────────────────────────────────────────────────────────
    feed_item: Mapped["FeedItem"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "FeedItem",
        back_populates="entities",
    )

    __table_args__ = (
        Index("ix_feed_item_entities_feed_item_id", "feed_item_id"),
        Index("ix_feed_item_entities_entity", "entity_type", "entity_id"),
        Index("ix_feed_item_entities_role", "role"),
    )

    def __repr__(self) -> str:
        return (
            f"<FeedItemEntity id={self.id} role={self.role!r} "
            f"entity={self.entity_type}:{self.entity_id}>"
        )
