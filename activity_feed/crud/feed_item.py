"""
Feed item CRUD operations.
Persists finalized ActivityRecords and queries the feed by action,
period and referenced entity.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from activity_feed.crud.base import CRUDBase
from activity_feed.feed.records import ActivityRecord
from activity_feed.models.feed_item import FeedItem
from activity_feed.models.feed_item_entity import FeedItemEntity
from activity_feed.schemas.feed_item import FeedFilter


class CRUDFeedItem(CRUDBase[FeedItem]):

    async def create_from_record(
        self, db: AsyncSession, *, record: ActivityRecord
    ) -> FeedItem:
        """Insert a feed item and one entity row per reference."""
        feed_item = FeedItem(
            action=record.action,
            description_template=record.template,
            properties=dict(record.properties),
            occurred_at=record.occurred_at,
            entities=[
                FeedItemEntity(
                    entity_type=ref.entity_type,
                    entity_id=str(ref.entity_id),
                    role=ref.role,
                )
                for ref in record.entity_refs
            ],
        )
        db.add(feed_item)
        await db.flush()
        await db.refresh(feed_item)
        return feed_item

    async def get_with_entities(
        self, db: AsyncSession, feed_item_id: int
    ) -> FeedItem | None:
        # entities are selectin-loaded by the relationship itself
        return await self.get(db, feed_item_id)

    async def list_feed(
        self,
        db: AsyncSession,
        *,
        filters: FeedFilter,
    ) -> tuple[list[FeedItem], int]:
        """Return (feed items, total), newest first."""
        conditions = []

        if filters.actions:
            conditions.append(FeedItem.action.in_(filters.actions))

        if filters.since is not None:
            conditions.append(FeedItem.occurred_at >= filters.since)
        if filters.until is not None:
            conditions.append(FeedItem.occurred_at <= filters.until)

        # Entity filter; role alone narrows by role only
        entity_conditions = []
        if filters.entity_type is not None:
            entity_conditions.append(FeedItemEntity.entity_type == filters.entity_type)
        if filters.entity_id is not None:
            entity_conditions.append(FeedItemEntity.entity_id == filters.entity_id)
        if filters.role is not None:
            entity_conditions.append(FeedItemEntity.role == filters.role)
        if entity_conditions:
            conditions.append(FeedItem.entities.any(and_(*entity_conditions)))

        query = select(FeedItem)
        count_query = select(func.count()).select_from(FeedItem)
        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)

        total_result = await db.execute(count_query)
        total = total_result.scalar_one()

        skip = (filters.page - 1) * filters.size
        result = await db.execute(
            query.order_by(FeedItem.occurred_at.desc(), FeedItem.id.desc())
            .offset(skip)
            .limit(filters.size)
        )
        return list(result.scalars().all()), total

    async def update_properties(
        self,
        db: AsyncSession,
        *,
        feed_item: FeedItem,
        properties: dict,
    ) -> FeedItem:
        """Merge ``properties`` into the stored ones; keys are never removed."""
        merged = dict(feed_item.properties or {})
        merged.update(properties)
        return await self.update(db, db_obj=feed_item, obj_in={"properties": merged})

    async def count_older_than(self, db: AsyncSession, *, cutoff: datetime) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(FeedItem)
            .where(FeedItem.occurred_at < cutoff)
        )
        return result.scalar_one()

    async def list_older_than(
        self,
        db: AsyncSession,
        *,
        cutoff: datetime,
        limit: int,
        after_id: int = 0,
    ) -> list[FeedItem]:
        """One chunk of expired feed items, ordered by id for keyset paging."""
        result = await db.execute(
            select(FeedItem)
            .where(FeedItem.occurred_at < cutoff, FeedItem.id > after_id)
            .order_by(FeedItem.id)
            .limit(limit)
        )
        return list(result.scalars().all())


crud_feed_item = CRUDFeedItem(FeedItem)
