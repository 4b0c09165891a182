"""
Record builder tests.
Covers: validation, entity attachment, properties, changes, reuse and copies.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from activity_feed.core.exceptions import ValidationError
from activity_feed.feed.builder import RecordBuilder, feed
from activity_feed.feed.records import EntityReference


@dataclass
class User:
    id: int
    name: str


@dataclass
class Order:
    id: int
    feed_entity_type = "order"


class FixedClock:
    def now(self) -> datetime:
        return datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _builder() -> RecordBuilder:
    return feed(FixedClock())


class TestValidation:
    def test_finalize_with_action_and_template(self) -> None:
        record = _builder().with_action("approved").with_template("{actor} approved").finalize()

        assert record.action == "approved"
        assert record.template == "{actor} approved"

    def test_missing_action(self) -> None:
        with pytest.raises(ValidationError, match="Action is required"):
            _builder().with_template("{actor} approved").finalize()

    def test_missing_template(self) -> None:
        with pytest.raises(ValidationError, match="template is required"):
            _builder().with_action("approved").finalize()

    def test_empty_strings_are_missing(self) -> None:
        with pytest.raises(ValidationError):
            _builder().with_action("").with_template("x").finalize()

    def test_validation_error_maps_to_422(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _builder().finalize()
        assert exc_info.value.status_code == 422
        assert exc_info.value.error_code == "VALIDATION_ERROR"

    def test_last_write_wins(self) -> None:
        record = (
            _builder()
            .with_action("created")
            .with_action("approved")
            .with_template("a")
            .with_description("b")
            .finalize()
        )
        assert record.action == "approved"
        assert record.template == "b"


class TestEntities:
    def test_roles_from_fluent_helpers(self) -> None:
        john = User(42, "John Doe")
        record = (
            _builder()
            .with_action("approved")
            .with_template("{actor} approved {subject}")
            .caused_by(john)
            .performed_on(Order(7))
            .targeting(User(1, "Ann"))
            .mentioning(User(2, "Bob"))
            .related_to(Order(8))
            .finalize()
        )

        assert record.entity_refs == (
            EntityReference("actor", "User", 42),
            EntityReference("subject", "order", 7),
            EntityReference("target", "User", 1),
            EntityReference("mentioned", "User", 2),
            EntityReference("related", "order", 8),
        )
        assert record.actor == EntityReference("actor", "User", 42)
        assert record.subject == EntityReference("subject", "order", 7)

    def test_none_entity_is_ignored(self) -> None:
        record = (
            _builder()
            .with_action("expired")
            .with_template("{subject} expired")
            .caused_by(None)
            .by(None)
            .on(Order(7))
            .finalize()
        )

        assert record.actor is None
        assert len(record.entity_refs) == 1

    def test_multiple_entities_under_one_role(self) -> None:
        record = (
            _builder()
            .with_action("mentioned")
            .with_template("{actor} mentioned {mentioned}")
            .add_entities([User(1, "Ann"), None, User(2, "Bob")], "mentioned")
            .finalize()
        )

        assert [ref.entity_id for ref in record.entities_by_role("mentioned")] == [1, 2]
        assert record.entity_by_role("mentioned").entity_id == 1

    def test_raw_reference(self) -> None:
        record = (
            _builder()
            .with_action("viewed")
            .with_template("{subject} viewed")
            .add_reference("subject", "Invoice", "INV-9")
            .finalize()
        )
        assert record.subject == EntityReference("subject", "Invoice", "INV-9")

    def test_object_without_id_is_rejected(self) -> None:
        with pytest.raises(TypeError):
            _builder().add_entity(object(), "actor")


class TestPropertiesAndTime:
    def test_properties_merge(self) -> None:
        record = (
            _builder()
            .with_action("approved")
            .with_template("x")
            .with_properties({"amount": "$500", "currency": "USD"})
            .with_properties({"amount": "$550"})
            .with_property("note", None)
            .finalize()
        )
        assert dict(record.properties) == {"amount": "$550", "currency": "USD", "note": None}

    def test_occurred_at_defaults_to_clock(self) -> None:
        record = _builder().with_action("a").with_template("t").finalize()
        assert record.occurred_at == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_occurred_at_accepts_iso_string(self) -> None:
        record = (
            _builder()
            .with_action("a")
            .with_template("t")
            .occurred_at("2025-06-01T10:00:00+00:00")
            .finalize()
        )
        assert record.occurred_at == datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)


class TestChanges:
    def test_changes_are_written_to_reserved_properties(self) -> None:
        record = (
            _builder()
            .with_action("updated")
            .with_template("{actor} updated {subject}")
            .with_properties({"changes": "caller value", "changes_count": 99})
            .with_change("status", "pending", "approved")
            .with_changes({"amount": {"old": "$500", "new": "$550"}})
            .finalize()
        )

        assert record.properties["changes"] == [
            {"field": "status", "old": "pending", "new": "approved"},
            {"field": "amount", "old": "$500", "new": "$550"},
        ]
        assert record.properties["changes_count"] == 2
        assert record.has_changes is True
        assert record.changes_count == 2
        assert record.changes.find("amount").new == "$550"

    def test_no_changes_leaves_properties_alone(self) -> None:
        record = _builder().with_action("a").with_template("t").finalize()
        assert "changes" not in record.properties
        assert record.has_changes is False
        assert record.changes_count == 0

    def test_model_changes(self) -> None:
        builder = (
            _builder()
            .with_action("updated")
            .with_template("t")
            .with_model_changes({"status": "pending", "total": 5}, {"status": "paid", "total": 5})
        )
        assert builder.has_changes() is True
        assert [change.field for change in builder.get_changes()] == ["status"]


class TestReuse:
    def test_reset_clears_state(self) -> None:
        builder = (
            _builder()
            .with_action("a")
            .with_template("t")
            .caused_by(User(1, "Ann"))
            .with_property("k", "v")
            .with_change("f", 1, 2)
        )
        builder.reset()

        assert builder.has_changes() is False
        with pytest.raises(ValidationError):
            builder.finalize()

    def test_second_finalize_is_independent(self) -> None:
        builder = (
            _builder()
            .with_action("a")
            .with_template("t")
            .with_property("items", ["one"])
            .caused_by(User(1, "Ann"))
        )
        first = builder.finalize()
        builder.with_property("extra", True).caused_by(User(2, "Bob"))
        second = builder.finalize()

        first.properties["items"].append("mutated")

        assert "extra" not in first.properties
        assert len(first.entity_refs) == 1
        assert len(second.entity_refs) == 2
        assert second.properties["items"] == ["one"]

    def test_record_properties_are_read_only(self) -> None:
        record = _builder().with_action("a").with_template("t").with_property("k", 1).finalize()
        with pytest.raises(TypeError):
            record.properties["k"] = 2  # type: ignore[index]
