"""
Entity store contract and display-name resolution.
"""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from activity_feed.feed.records import EntityKey, entity_type_of, key_of

# Probed in order when an object has no display-name capability.
DISPLAY_NAME_ATTRIBUTES: tuple[str, ...] = (
    "name",
    "title",
    "display_name",
    "full_name",
    "username",
)


class EntityStore(Protocol):
    """Polymorphic lookup of a live object by (type, id)."""

    def resolve(self, entity_type: str, entity_id: Any) -> Any | None: ...


@runtime_checkable
class DisplayNameCapable(Protocol):
    """Domain objects may implement this to control how feeds name them."""

    def feed_display_name(self) -> str | None: ...


def display_name(obj: Any) -> str:
    if isinstance(obj, DisplayNameCapable) and callable(obj.feed_display_name):
        name = obj.feed_display_name()
        if name:
            return str(name)

    for attribute in DISPLAY_NAME_ATTRIBUTES:
        value = getattr(obj, attribute, None)
        if value is not None and value != "":
            return str(value)

    return f"{entity_type_of(obj)} #{getattr(obj, 'id', '?')}"


class InMemoryEntityStore:
    """Entity store backed by one dict per entity type."""

    def __init__(self, objects: Iterable[Any] = ()) -> None:
        self._collections: dict[str, dict[str, Any]] = {}
        for obj in objects:
            self.add(obj)

    def add(self, obj: Any, key: EntityKey | None = None) -> None:
        key = key or key_of(obj)
        self._collections.setdefault(key.entity_type, {})[str(key.entity_id)] = obj

    def remove(self, obj: Any) -> None:
        key = key_of(obj)
        self._collections.get(key.entity_type, {}).pop(str(key.entity_id), None)

    def resolve(self, entity_type: str, entity_id: Any) -> Any | None:
        collection = self._collections.get(entity_type)
        if collection is None:
            return None
        return collection.get(str(entity_id))

    def __len__(self) -> int:
        return sum(len(collection) for collection in self._collections.values())
