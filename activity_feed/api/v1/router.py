"""
Aggregates all v1 API routers into a single APIRouter.
"""
from __future__ import annotations

from fastapi import APIRouter

from activity_feed.api.v1 import feed

api_router = APIRouter()

api_router.include_router(feed.router)
