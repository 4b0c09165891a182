"""
Fluent builder for feed items.

    record = (
        feed()
        .with_action("approved")
        .with_template("{actor} approved {subject} for {amount}")
        .caused_by(user)
        .performed_on(order)
        .with_property("amount", "$500")
        .finalize()
    )
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from activity_feed.core.exceptions import ValidationError
from activity_feed.feed.changes import ChangeEntry, ChangeTracker
from activity_feed.feed.clock import Clock, system_clock
from activity_feed.feed.records import (
    CHANGES_COUNT_KEY,
    CHANGES_KEY,
    ROLE_ACTOR,
    ROLE_MENTIONED,
    ROLE_RELATED,
    ROLE_SUBJECT,
    ROLE_TARGET,
    ActivityRecord,
    EntityReference,
    key_of,
)


class RecordBuilder:

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or system_clock
        self.reset()

    def reset(self) -> "RecordBuilder":
        """Clear all accumulated state so the builder can be reused."""
        self._action = ""
        self._template = ""
        self._entity_refs: list[EntityReference] = []
        self._properties: dict[str, Any] = {}
        self._occurred_at: datetime | None = None
        self._changes = ChangeTracker()
        return self

    # ── Action and template ───────────────────────────────────────────────────

    def with_action(self, action: str) -> "RecordBuilder":
        self._action = action
        return self

    def with_template(self, template: str) -> "RecordBuilder":
        self._template = template
        return self

    def with_description(self, template: str) -> "RecordBuilder":
        return self.with_template(template)

    # ── Entities ──────────────────────────────────────────────────────────────

    def add_entity(self, entity: Any | None, role: str) -> "RecordBuilder":
        """Attach ``entity`` under ``role``. ``None`` is ignored."""
        if entity is None:
            return self
        key = key_of(entity)
        self._entity_refs.append(EntityReference(role, key.entity_type, key.entity_id))
        return self

    def add_entities(self, entities: Iterable[Any | None], role: str) -> "RecordBuilder":
        for entity in entities:
            self.add_entity(entity, role)
        return self

    def add_reference(self, role: str, entity_type: str, entity_id: Any) -> "RecordBuilder":
        self._entity_refs.append(EntityReference(role, entity_type, entity_id))
        return self

    def caused_by(self, actor: Any | None) -> "RecordBuilder":
        return self.add_entity(actor, ROLE_ACTOR)

    def by(self, actor: Any | None) -> "RecordBuilder":
        return self.caused_by(actor)

    def performed_on(self, subject: Any | None) -> "RecordBuilder":
        return self.add_entity(subject, ROLE_SUBJECT)

    def on(self, subject: Any | None) -> "RecordBuilder":
        return self.performed_on(subject)

    def targeting(self, target: Any | None) -> "RecordBuilder":
        return self.add_entity(target, ROLE_TARGET)

    def mentioning(self, mentioned: Any | None) -> "RecordBuilder":
        return self.add_entity(mentioned, ROLE_MENTIONED)

    def related_to(self, related: Any | None) -> "RecordBuilder":
        return self.add_entity(related, ROLE_RELATED)

    # ── Properties ────────────────────────────────────────────────────────────

    def with_properties(self, properties: Mapping[str, Any]) -> "RecordBuilder":
        self._properties.update(properties)
        return self

    def with_property(self, key: str, value: Any) -> "RecordBuilder":
        self._properties[key] = value
        return self

    def occurred_at(self, occurred_at: datetime | str) -> "RecordBuilder":
        if isinstance(occurred_at, str):
            occurred_at = datetime.fromisoformat(occurred_at)
        self._occurred_at = occurred_at
        return self

    # ── Changes ───────────────────────────────────────────────────────────────

    def with_change(self, field: str, old_value: Any, new_value: Any) -> "RecordBuilder":
        self._changes.add_change(field, old_value, new_value)
        return self

    def with_changes(self, changes: Mapping[str, Any]) -> "RecordBuilder":
        self._changes.add_changes_from_mapping(changes)
        return self

    def with_model_changes(
        self,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
    ) -> "RecordBuilder":
        self._changes.add_changes_from_diff(before, after)
        return self

    def get_changes(self) -> list[ChangeEntry]:
        return self._changes.entries()

    def has_changes(self) -> bool:
        return self._changes.has_any()

    # ── Finalize ──────────────────────────────────────────────────────────────

    def finalize(self) -> ActivityRecord:
        """
        Validate and produce an immutable ``ActivityRecord``.
        The builder keeps its state; the record shares none of it.
        """
        self._validate()

        properties = dict(self._properties)
        if self._changes.has_any():
            properties[CHANGES_KEY] = self._changes.to_properties()
            properties[CHANGES_COUNT_KEY] = self._changes.count()

        return ActivityRecord(
            action=self._action,
            template=self._template,
            occurred_at=self._occurred_at or self.clock.now(),
            properties=properties,
            entity_refs=tuple(self._entity_refs),
        )

    def _validate(self) -> None:
        if not self._action:
            raise ValidationError("Action is required. Use with_action() to set it.")
        if not self._template:
            raise ValidationError(
                "Description template is required. Use with_template() to set it."
            )


def feed(clock: Clock | None = None) -> RecordBuilder:
    """Create a new feed item builder."""
    return RecordBuilder(clock)
