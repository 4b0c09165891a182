"""
Value formatting for feed descriptions.

Two entry points: one for change-log text ("(empty)", "Yes"/"No") and
one for raw template substitution ("null", "true"/"false"). Keep them
separate; both outputs are shown to users.
"""
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

EMPTY_CHANGE_VALUE = "(empty)"


def _serialize(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


def _is_structured(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple))


def format_for_change_display(value: Any) -> str:
    """Format one side of a tracked change for the human change log."""
    if value is None:
        return EMPTY_CHANGE_VALUE
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if _is_structured(value):
        return _serialize(value)
    return str(value)


def format_for_template_substitution(value: Any) -> str:
    """Format a property value for a ``{placeholder}`` in a template."""
    if _is_structured(value):
        return _serialize(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def prettify(field: str) -> str:
    """``shipping_method`` -> ``Shipping method``."""
    return (field[:1].upper() + field[1:]).replace("_", " ")
