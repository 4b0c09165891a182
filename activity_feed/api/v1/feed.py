"""
Feed routes.
Create, list, read, patch and delete feed items, plus retention cleanup.
Descriptions are rendered per viewer on every read.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from activity_feed.core.config import settings
from activity_feed.core.dependencies import DBSession, Feed, Viewer
from activity_feed.core.exceptions import NotFoundException
from activity_feed.crud.feed_item import crud_feed_item
from activity_feed.feed.records import ActivityRecord
from activity_feed.models.feed_item import FeedItem
from activity_feed.schemas.feed_item import (
    CleanupReport,
    FeedFilter,
    FeedItemCreate,
    FeedItemEntityRead,
    FeedItemPropertiesUpdate,
    FeedItemRead,
)
from activity_feed.schemas.pagination import PaginatedResponse

router = APIRouter(prefix="/feed", tags=["Feed"])


def _feed_filter_params(
    action: list[str] | None = Query(default=None),
    entity_type: str | None = Query(default=None, max_length=100),
    entity_id: str | None = Query(default=None, max_length=64),
    role: str | None = Query(default=None, max_length=50),
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    size: int = Query(default=settings.FEED_PER_PAGE, ge=1, le=settings.FEED_MAX_PER_PAGE),
) -> FeedFilter:
    return FeedFilter(
        actions=action,
        entity_type=entity_type,
        entity_id=entity_id,
        role=role,
        since=since,
        until=until,
        page=page,
        size=size,
    )


def _to_read(record: ActivityRecord, description: str) -> FeedItemRead:
    changes = record.changes
    return FeedItemRead(
        id=record.id,  # type: ignore[arg-type]
        action=record.action,
        description_template=record.template,
        description=description,
        properties=dict(record.properties),
        occurred_at=record.occurred_at,
        entities=[
            FeedItemEntityRead(
                role=ref.role,
                entity_type=ref.entity_type,
                entity_id=str(ref.entity_id),
            )
            for ref in record.entity_refs
        ],
        changes=changes.format_all(),
        changes_summary=changes.summary() if record.has_changes else None,
    )


async def _get_or_404(db: DBSession, feed_item_id: int) -> FeedItem:
    feed_item = await crud_feed_item.get_with_entities(db, feed_item_id)
    if feed_item is None:
        raise NotFoundException("Feed item", str(feed_item_id))
    return feed_item


@router.get(
    "/",
    response_model=PaginatedResponse[FeedItemRead],
    summary="List feed items with rendered descriptions",
)
async def list_feed(
    db: DBSession,
    feed: Feed,
    viewer: Viewer,
    filters: Annotated[FeedFilter, Depends(_feed_filter_params)],
) -> PaginatedResponse[FeedItemRead]:
    feed_items, total = await crud_feed_item.list_feed(db, filters=filters)
    described = await feed.describe(db, feed_items, viewer=viewer)
    return PaginatedResponse(
        items=[_to_read(record, text) for record, text in described],
        total=total,
        page=filters.page,
        size=filters.size,
    )


@router.post(
    "/",
    response_model=FeedItemRead,
    status_code=status.HTTP_201_CREATED,
    summary="Log a new feed item",
)
async def create_feed_item(
    item_in: FeedItemCreate,
    db: DBSession,
    feed: Feed,
    viewer: Viewer,
) -> FeedItemRead:
    builder = (
        feed.builder()
        .with_action(item_in.action)
        .with_template(item_in.template)
        .with_properties(item_in.properties)
    )
    for ref in item_in.entities:
        builder.add_reference(ref.role, ref.entity_type, ref.entity_id)
    for change in item_in.changes:
        builder.with_change(change.field, change.old, change.new)
    if item_in.occurred_at is not None:
        builder.occurred_at(item_in.occurred_at)

    feed_item = await feed.log(db, builder)
    [(record, text)] = await feed.describe(db, [feed_item], viewer=viewer)
    return _to_read(record, text)


@router.post(
    "/cleanup",
    response_model=CleanupReport,
    summary="Delete feed items older than the retention window",
)
async def cleanup_feed(
    db: DBSession,
    feed: Feed,
    days: int | None = Query(default=None, ge=0),
    dry_run: bool = Query(default=False),
) -> CleanupReport:
    return await feed.cleanup(db, days=days, dry_run=dry_run)


@router.get(
    "/{feed_item_id}",
    response_model=FeedItemRead,
    summary="Get a feed item with its rendered description",
)
async def get_feed_item(
    feed_item_id: int,
    db: DBSession,
    feed: Feed,
    viewer: Viewer,
    fresh: bool = Query(default=False, description="Bypass the render cache"),
) -> FeedItemRead:
    feed_item = await _get_or_404(db, feed_item_id)
    [(record, text)] = await feed.describe(
        db, [feed_item], viewer=viewer, use_cache=not fresh
    )
    return _to_read(record, text)


@router.patch(
    "/{feed_item_id}/properties",
    response_model=FeedItemRead,
    summary="Merge properties into a feed item",
)
async def update_feed_item_properties(
    feed_item_id: int,
    body: FeedItemPropertiesUpdate,
    db: DBSession,
    feed: Feed,
    viewer: Viewer,
) -> FeedItemRead:
    feed_item = await _get_or_404(db, feed_item_id)
    updated = await feed.update_properties(db, feed_item=feed_item, properties=body.properties)
    [(record, text)] = await feed.describe(db, [updated], viewer=viewer)
    return _to_read(record, text)


@router.delete(
    "/{feed_item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a feed item",
)
async def delete_feed_item(
    feed_item_id: int,
    db: DBSession,
    feed: Feed,
) -> None:
    feed_item = await _get_or_404(db, feed_item_id)
    await feed.delete(db, feed_item=feed_item)
