"""
FastAPI dependency injection functions.
Provides get_db, get_feed_service and get_viewer.
"""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from activity_feed.core.exceptions import BadRequestException
from activity_feed.db.session import get_db
from activity_feed.feed.records import EntityKey
from activity_feed.services.feed_service import FeedService

# Re-export get_db so routes can import from one place
__all__ = ["get_db", "get_feed_service", "get_viewer", "DBSession", "Feed", "Viewer"]


def get_feed_service(request: Request) -> FeedService:
    """The FeedService built by the application factory."""
    return request.app.state.feed_service


def get_viewer(
    viewer_type: Annotated[str | None, Query(max_length=100)] = None,
    viewer_id: Annotated[str | None, Query(max_length=64)] = None,
) -> EntityKey | None:
    """
    Identity the description is personalized for.
    Both query parameters or neither; absent means a guest rendering.
    """
    if viewer_type is None and viewer_id is None:
        return None
    if not viewer_type or not viewer_id:
        raise BadRequestException("viewer_type and viewer_id must be supplied together")
    return EntityKey(viewer_type, viewer_id)


# Convenience type aliases for route signatures
DBSession = Annotated[AsyncSession, Depends(get_db)]
Feed = Annotated[FeedService, Depends(get_feed_service)]
Viewer = Annotated[EntityKey | None, Depends(get_viewer)]
