"""
ORM model package. Import all models here so metadata.create_all
can discover every table through the shared Base metadata.
"""
from activity_feed.models.feed_item import FeedItem  # noqa: F401
from activity_feed.models.feed_item_entity import FeedItemEntity  # noqa: F401
