"""Shared validation helpers for service settings and user input."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

PIN_PATTERN = re.compile(r"[0-9]{6}")

# ASCII control character boundaries for free-text input
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F


def is_valid_pin(value: str) -> bool:
    """A session PIN is exactly six ASCII digits."""
    return PIN_PATTERN.fullmatch(value) is not None


def reject_control_characters(value: str, *, allow_newlines: bool = False) -> str:
    """Raise ValueError if the text contains ASCII control characters."""
    allowed = ("\t", "\n", "\r") if allow_newlines else ()
    if any((ord(c) < _SPACE_ORD and c not in allowed) or ord(c) == _DEL_ORD for c in value):
        raise ValueError("text must not contain control characters")
    return value


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a list of strings given as a list, a JSON array string, or a comma-separated string.

    Blank comma-separated items are dropped. An empty result raises ValueError
    unless allow_empty is set.
    """
    items = _split_string_list(value.strip()) if isinstance(value, str) else value
    if not items and not allow_empty:
        raise ValueError("list of strings must not be empty")
    return items


def _split_string_list(text: str) -> list[str]:
    if not text.startswith("["):
        return [item.strip() for item in text.split(",") if item.strip()]
    try:
        items = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"not a valid JSON array: {e}") from e
    if not isinstance(items, list) or any(not isinstance(item, str) for item in items):
        raise ValueError("JSON list must contain only strings")
    return items


_STRING_LIST_FIELDS = {"cors_origins"}


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that hands string-list fields to validators unparsed.

    pydantic-settings JSON-decodes list fields from env vars before validators
    run, which breaks the CSV form. parse_string_list handles both forms.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in _STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
