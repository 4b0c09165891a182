"""
Immutable feed item value types.

An ``ActivityRecord`` is what the builder produces and what the renderer
reads. It never points at live objects: entity references are
(role, type, id) triples resolved through an entity store at render time.
"""
from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any

from activity_feed.feed.changes import ChangeTracker

# ── Well-known roles ──────────────────────────────────────────────────────────
ROLE_ACTOR = "actor"
ROLE_SUBJECT = "subject"
ROLE_TARGET = "target"
ROLE_MENTIONED = "mentioned"
ROLE_RELATED = "related"

# Reserved property keys written by the builder
CHANGES_KEY = "changes"
CHANGES_COUNT_KEY = "changes_count"


@dataclass(frozen=True, eq=False)
class EntityKey:
    """
    Polymorphic pointer: a type discriminator plus an identifier.
    Ids compare by their string form, so ``42`` and ``"42"`` are equal.
    """

    entity_type: str
    entity_id: Any

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntityKey):
            return NotImplemented
        return (
            self.entity_type == other.entity_type
            and str(self.entity_id) == str(other.entity_id)
        )

    def __hash__(self) -> int:
        return hash((self.entity_type, str(self.entity_id)))

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.entity_id}"


def entity_type_of(obj: Any) -> str:
    """Type discriminator for a domain object: ``feed_entity_type`` or the class name."""
    return getattr(obj, "feed_entity_type", None) or type(obj).__name__


def key_of(obj: Any) -> EntityKey:
    """Derive an ``EntityKey`` from a key, a ``(type, id)`` pair, or a domain object."""
    if isinstance(obj, EntityKey):
        return obj
    if isinstance(obj, tuple) and len(obj) == 2:
        return EntityKey(str(obj[0]), obj[1])
    try:
        entity_id = obj.id
    except AttributeError:
        raise TypeError(
            f"Cannot derive an entity reference from {type(obj).__name__}: no 'id' attribute"
        ) from None
    return EntityKey(entity_type_of(obj), entity_id)


@dataclass(frozen=True)
class EntityReference:
    role: str
    entity_type: str
    entity_id: Any

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.entity_type, self.entity_id)

    def has_role(self, role: str) -> bool:
        return self.role == role

    def is_entity(self, obj: Any) -> bool:
        return self.key == key_of(obj)


@dataclass(frozen=True)
class ActivityRecord:
    action: str
    template: str
    occurred_at: datetime
    properties: Mapping[str, Any] = field(default_factory=dict)
    entity_refs: tuple[EntityReference, ...] = ()
    id: int | None = None

    def __post_init__(self) -> None:
        # Private deep copy behind a read-only view.
        frozen = MappingProxyType(copy.deepcopy(dict(self.properties)))
        object.__setattr__(self, "properties", frozen)
        object.__setattr__(self, "entity_refs", tuple(self.entity_refs))

    def with_id(self, record_id: int) -> "ActivityRecord":
        return replace(self, id=record_id)

    # ── Entity queries ────────────────────────────────────────────────────────

    def entities_by_role(self, role: str) -> list[EntityReference]:
        return [ref for ref in self.entity_refs if ref.role == role]

    def entity_by_role(self, role: str) -> EntityReference | None:
        for ref in self.entity_refs:
            if ref.role == role:
                return ref
        return None

    @property
    def actor(self) -> EntityReference | None:
        return self.entity_by_role(ROLE_ACTOR)

    @property
    def subject(self) -> EntityReference | None:
        return self.entity_by_role(ROLE_SUBJECT)

    def first_by_role(self) -> dict[str, EntityReference]:
        """First reference seen for each role, in insertion order."""
        first: dict[str, EntityReference] = {}
        for ref in self.entity_refs:
            first.setdefault(ref.role, ref)
        return first

    # ── Change queries ────────────────────────────────────────────────────────

    @property
    def changes(self) -> ChangeTracker:
        return ChangeTracker.from_properties(self.properties.get(CHANGES_KEY))

    @property
    def has_changes(self) -> bool:
        return isinstance(self.properties.get(CHANGES_KEY), list)

    @property
    def changes_count(self) -> int:
        stored = self.properties.get(CHANGES_COUNT_KEY)
        if isinstance(stored, int) and not isinstance(stored, bool):
            return stored
        return self.changes.count()

    def __repr__(self) -> str:
        return (
            f"<ActivityRecord id={self.id} action={self.action!r} "
            f"refs={len(self.entity_refs)}>"
        )
