"""
Field-level change tracking for grouped "updated" feed items.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from activity_feed.feed.formatter import format_for_change_display, prettify

CHANGE_ARROW = "→"


@dataclass(frozen=True)
class ChangeEntry:
    field: str
    old: Any
    new: Any

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.field, "old": self.old, "new": self.new}


class ChangeTracker:
    """
    Ordered collection of before/after pairs for a single feed item.

    Entries are never deduplicated: adding the same field twice keeps both,
    and ``find`` returns the first.
    """

    def __init__(self, entries: Iterable[ChangeEntry] = ()) -> None:
        self._entries: list[ChangeEntry] = list(entries)

    @classmethod
    def from_properties(cls, raw: Any) -> "ChangeTracker":
        """Rebuild a tracker from the ``changes`` list stored in properties."""
        tracker = cls()
        if not isinstance(raw, list):
            return tracker
        for item in raw:
            if isinstance(item, Mapping) and "field" in item:
                tracker.add_change(str(item["field"]), item.get("old"), item.get("new"))
        return tracker

    # ── Accumulation ──────────────────────────────────────────────────────────

    def add_change(self, field: str, old_value: Any, new_value: Any) -> "ChangeTracker":
        self._entries.append(ChangeEntry(field=field, old=old_value, new=new_value))
        return self

    def add_changes_from_mapping(self, changes: Mapping[str, Any]) -> "ChangeTracker":
        """
        Add ``{field: {"old": ..., "new": ...}}`` entries.
        Entries missing either key are skipped.
        """
        for field, values in changes.items():
            if isinstance(values, Mapping) and "old" in values and "new" in values:
                self.add_change(field, values["old"], values["new"])
        return self

    def add_changes_from_diff(
        self,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
    ) -> "ChangeTracker":
        """Add one entry per field of ``after`` whose value differs from ``before``."""
        for field, new_value in after.items():
            old_value = before.get(field)
            if field in before and old_value == new_value:
                continue
            self.add_change(field, old_value, new_value)
        return self

    # ── Queries ───────────────────────────────────────────────────────────────

    def count(self) -> int:
        return len(self._entries)

    def has_any(self) -> bool:
        return bool(self._entries)

    def find(self, field: str) -> ChangeEntry | None:
        for entry in self._entries:
            if entry.field == field:
                return entry
        return None

    def entries(self) -> list[ChangeEntry]:
        return list(self._entries)

    def format_all(self, include_field_names: bool = True) -> list[str]:
        formatted: list[str] = []
        for entry in self._entries:
            old = format_for_change_display(entry.old)
            new = format_for_change_display(entry.new)
            if include_field_names:
                formatted.append(f"{prettify(entry.field)}: {old} {CHANGE_ARROW} {new}")
            else:
                formatted.append(f"{old} {CHANGE_ARROW} {new}")
        return formatted

    def summary(self) -> str:
        count = self.count()
        if count == 0:
            return "no changes"
        if count == 1:
            return f"updated {prettify(self._entries[0].field)}"
        return f"updated {count} fields"

    def to_properties(self) -> list[dict[str, Any]]:
        return [entry.as_dict() for entry in self._entries]

    def copy(self) -> "ChangeTracker":
        return ChangeTracker(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ChangeEntry]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        return f"<ChangeTracker count={self.count()}>"
