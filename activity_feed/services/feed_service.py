"""
Feed business logic service.
Persists finalized feed items, renders their descriptions through the
render cache, and invalidates cached text whenever a feed item changes.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from activity_feed.core.config import Settings, settings as default_settings
from activity_feed.crud.feed_item import crud_feed_item
from activity_feed.feed.builder import RecordBuilder
from activity_feed.feed.cache import CacheBackend, RenderCache, create_cache_backend
from activity_feed.feed.clock import Clock, system_clock
from activity_feed.feed.entities import EntityStore
from activity_feed.feed.records import ActivityRecord
from activity_feed.feed.renderer import TemplateRenderer
from activity_feed.models.feed_item import FeedItem
from activity_feed.schemas.feed_item import CleanupReport, CleanupSampleItem
from activity_feed.services.entity_store import SqlAlchemyEntityStore

logger = logging.getLogger(__name__)

CLEANUP_SAMPLE_SIZE = 5


class FeedService:

    def __init__(
        self,
        cache_backend: CacheBackend,
        *,
        clock: Clock | None = None,
        config: Settings | None = None,
        entity_models: Mapping[str, type] | None = None,
    ) -> None:
        self.cache_backend = cache_backend
        self.clock = clock or system_clock
        self.config = config or default_settings
        # None resolves through the registered entity models
        self.entity_models = entity_models

    # ── Factories ─────────────────────────────────────────────────────────────

    def builder(self) -> RecordBuilder:
        return RecordBuilder(self.clock)

    def entity_store(self, db: AsyncSession) -> SqlAlchemyEntityStore:
        return SqlAlchemyEntityStore(db, self.entity_models)

    def renderer_for(self, entity_store: EntityStore) -> TemplateRenderer:
        return TemplateRenderer(
            entity_store,
            unknown_label=self.config.FEED_UNKNOWN_ENTITY_LABEL,
            viewer_label=self.config.FEED_VIEWER_LABEL,
        )

    def render_cache_for(self, entity_store: EntityStore) -> RenderCache:
        return RenderCache(
            self.renderer_for(entity_store),
            self.cache_backend,
            ttl=self.config.FEED_CACHE_TTL,
        )

    # ── Write path ────────────────────────────────────────────────────────────

    async def log(self, db: AsyncSession, builder: RecordBuilder) -> FeedItem:
        """Finalize ``builder`` and persist the resulting feed item."""
        record = builder.finalize()
        try:
            feed_item = await crud_feed_item.create_from_record(db, record=record)
        except Exception as exc:
            logger.error("Failed to persist feed item: action=%s: %s", record.action, exc)
            raise
        logger.info("Feed item logged: id=%s action=%s", feed_item.id, feed_item.action)
        return feed_item

    async def update_properties(
        self,
        db: AsyncSession,
        *,
        feed_item: FeedItem,
        properties: dict[str, Any],
    ) -> FeedItem:
        updated = await crud_feed_item.update_properties(
            db, feed_item=feed_item, properties=properties
        )
        self._invalidate(db, [updated.to_record()])
        return updated

    async def delete(self, db: AsyncSession, *, feed_item: FeedItem) -> None:
        record = feed_item.to_record()
        await crud_feed_item.remove(db, db_obj=feed_item)
        self._invalidate(db, [record])
        logger.info("Feed item deleted: id=%s", record.id)

    def _invalidate(self, db: AsyncSession, records: Sequence[ActivityRecord]) -> None:
        """
        Evict cached renderings of ``records`` now, and again once the
        session commits. Until then other sessions still read the old rows
        and may cache their text.
        """
        render_cache = self.render_cache_for(self.entity_store(db))
        records = list(records)
        for record in records:
            render_cache.invalidate(record)

        def invalidate_after_commit(session: Session) -> None:
            for record in records:
                render_cache.invalidate(record)

        event.listen(db.sync_session, "after_commit", invalidate_after_commit, once=True)

    # ── Read path ─────────────────────────────────────────────────────────────

    async def describe(
        self,
        db: AsyncSession,
        feed_items: Sequence[FeedItem],
        *,
        viewer: Any | None = None,
        use_cache: bool = True,
    ) -> list[tuple[ActivityRecord, str]]:
        """
        Render descriptions for ``feed_items`` in order.
        All referenced entities are loaded up front in one batch per type.
        """
        records = [feed_item.to_record() for feed_item in feed_items]
        store = self.entity_store(db)
        await store.prefetch(records)
        render_cache = self.render_cache_for(store)

        described: list[tuple[ActivityRecord, str]] = []
        for record in records:
            if use_cache:
                text = render_cache.render_cached(record, viewer)
            else:
                text = render_cache.render_uncached(record, viewer)
            described.append((record, text))
        return described

    async def render(
        self,
        db: AsyncSession,
        record: ActivityRecord,
        *,
        viewer: Any | None = None,
        use_cache: bool = True,
    ) -> str:
        """Render a single record, loading its entities first."""
        store = self.entity_store(db)
        await store.prefetch([record])
        render_cache = self.render_cache_for(store)
        if use_cache:
            return render_cache.render_cached(record, viewer)
        return render_cache.render_uncached(record, viewer)

    # ── Retention ─────────────────────────────────────────────────────────────

    async def cleanup(
        self,
        db: AsyncSession,
        *,
        days: int | None = None,
        dry_run: bool = False,
    ) -> CleanupReport:
        """
        Delete feed items older than the retention window.
        ``days`` overrides FEED_RETENTION_DAYS; no retention keeps everything.
        """
        retention_days = days if days is not None else self.config.FEED_RETENTION_DAYS
        if retention_days is None:
            logger.info("Feed retention is indefinite; nothing to clean up")
            return CleanupReport(
                retention_days=None, cutoff=None, matched=0, deleted=0, dry_run=dry_run
            )

        cutoff = self.clock.now() - timedelta(days=retention_days)
        matched = await crud_feed_item.count_older_than(db, cutoff=cutoff)
        report = CleanupReport(
            retention_days=retention_days,
            cutoff=cutoff,
            matched=matched,
            deleted=0,
            dry_run=dry_run,
        )
        if matched == 0:
            return report

        if dry_run:
            sample = await crud_feed_item.list_older_than(
                db, cutoff=cutoff, limit=CLEANUP_SAMPLE_SIZE
            )
            report.sample = [
                CleanupSampleItem(id=item.id, action=item.action, occurred_at=item.occurred_at)
                for item in sample
            ]
            return report

        chunk_size = self.config.FEED_CLEANUP_CHUNK_SIZE
        last_id = 0
        while True:
            chunk = await crud_feed_item.list_older_than(
                db, cutoff=cutoff, limit=chunk_size, after_id=last_id
            )
            if not chunk:
                break
            records = []
            for feed_item in chunk:
                record = feed_item.to_record()
                await crud_feed_item.remove(db, db_obj=feed_item)
                records.append(record)
                report.deleted += 1
                last_id = record.id
            self._invalidate(db, records)

        logger.info(
            "Feed cleanup finished: deleted=%d retention_days=%d cutoff=%s",
            report.deleted,
            retention_days,
            cutoff.isoformat(),
        )
        return report


def create_feed_service(
    config: Settings | None = None,
    clock: Clock | None = None,
    entity_models: Mapping[str, type] | None = None,
) -> FeedService:
    """Build a FeedService with the cache backend selected by configuration."""
    config = config or default_settings
    return FeedService(
        create_cache_backend(config.REDIS_URL, clock),
        clock=clock,
        config=config,
        entity_models=entity_models,
    )
