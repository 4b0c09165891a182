"""
Value formatter tests.
Covers: change-display vs template-substitution formatting, field prettifying.
"""
from __future__ import annotations

import pytest

from activity_feed.feed.formatter import (
    format_for_change_display,
    format_for_template_substitution,
    prettify,
)


class TestChangeDisplay:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "(empty)"),
            (True, "Yes"),
            (False, "No"),
            ("pending", "pending"),
            (500, "500"),
            (0, "0"),
            (["a", "b"], '["a","b"]'),
        ],
    )
    def test_formats_value(self, value: object, expected: str) -> None:
        assert format_for_change_display(value) == expected


class TestTemplateSubstitution:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "null"),
            (True, "true"),
            (False, "false"),
            ("$500", "$500"),
            (3, "3"),
            (1.5, "1.5"),
            ({"sku": "A-1", "qty": 2}, '{"sku":"A-1","qty":2}'),
            ([1, 2], "[1,2]"),
        ],
    )
    def test_formats_value(self, value: object, expected: str) -> None:
        assert format_for_template_substitution(value) == expected

    def test_zero_is_not_treated_as_false(self) -> None:
        assert format_for_template_substitution(0) == "0"


class TestPrettify:
    def test_replaces_underscores_and_capitalizes_first_letter(self) -> None:
        assert prettify("shipping_method") == "Shipping method"

    def test_keeps_remaining_case(self) -> None:
        assert prettify("customer_ID") == "Customer ID"

    def test_empty_field(self) -> None:
        assert prettify("") == ""
