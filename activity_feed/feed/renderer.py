"""
Description renderer.

Resolves ``{placeholder}`` tokens of a feed item's template against its
entity roles and properties at read time. Rendering is best-effort: a
missing entity becomes a sentinel label and an unknown placeholder is left
as written, so one deleted object never breaks a whole feed page.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from activity_feed.feed.entities import EntityStore, display_name
from activity_feed.feed.formatter import format_for_template_substitution
from activity_feed.feed.records import ROLE_ACTOR, ActivityRecord, EntityKey, EntityReference, key_of

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")
CHANGES_SUMMARY_PLACEHOLDER = "changes_summary"

UNKNOWN_ENTITY_LABEL = "[Unknown]"
VIEWER_LABEL = "You"


class TemplateRenderer:

    def __init__(
        self,
        entity_store: EntityStore,
        *,
        unknown_label: str = UNKNOWN_ENTITY_LABEL,
        viewer_label: str = VIEWER_LABEL,
    ) -> None:
        self.entity_store = entity_store
        self.unknown_label = unknown_label
        self.viewer_label = viewer_label

    def render(self, record: ActivityRecord, viewer: Any | None = None) -> str:
        """
        Render ``record.template`` for an optional viewer.

        ``viewer`` may be an ``EntityKey``, a ``(type, id)`` pair or a domain
        object. Only the actor role is ever replaced by the viewer label.
        """
        viewer_key = key_of(viewer) if viewer is not None else None
        roles = record.first_by_role()
        properties = record.properties
        resolved: dict[EntityKey, Any | None] = {}

        def substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            if name == CHANGES_SUMMARY_PLACEHOLDER:
                return record.changes.summary()
            if name in properties:
                return format_for_template_substitution(properties[name])
            ref = roles.get(name)
            if ref is not None:
                return self._resolve_reference(ref, viewer_key, resolved)
            return match.group(0)

        return PLACEHOLDER_PATTERN.sub(substitute, record.template)

    def render_with_replacements(
        self,
        record: ActivityRecord,
        replacements: Mapping[str, str],
        viewer: Any | None = None,
    ) -> str:
        """Render, then apply literal ``replacements`` to the result in one pass."""
        description = self.render(record, viewer)
        if not replacements:
            return description
        # Longest keys first so overlapping keys prefer the most specific one.
        keys = sorted(replacements, key=len, reverse=True)
        pattern = re.compile("|".join(re.escape(key) for key in keys))
        return pattern.sub(lambda match: str(replacements[match.group(0)]), description)

    def _resolve_reference(
        self,
        ref: EntityReference,
        viewer_key: EntityKey | None,
        resolved: dict[EntityKey, Any | None],
    ) -> str:
        key = ref.key
        if key not in resolved:
            resolved[key] = self.entity_store.resolve(key.entity_type, key.entity_id)
        entity = resolved[key]

        if entity is None:
            return self.unknown_label

        if ref.role == ROLE_ACTOR and viewer_key is not None and viewer_key == key:
            return self.viewer_label

        return display_name(entity)
