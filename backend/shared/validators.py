"""Settings validators for list-valued environment variables such as AVALON_CORS_ORIGINS."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

_EMPTY_LIST = "String list value must not be empty"


def _require_items(items: list[str], *, allow_empty: bool) -> list[str]:
    if not items and not allow_empty:
        raise ValueError(_EMPTY_LIST)
    return items


def _from_json(text: str) -> list[str]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON array: {e}") from e
    if not isinstance(parsed, list) or any(not isinstance(item, str) for item in parsed):
        raise ValueError("JSON value must be an array of strings")
    return parsed


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """
    Turn a setting into a list of strings.

    A list passes through. A string is read as a JSON array when it starts
    with "[", otherwise as comma separated items with blanks dropped.
    A blank string is always an error; an empty result is one unless allow_empty.
    """
    if isinstance(value, list):
        return _require_items(value, allow_empty=allow_empty)

    text = value.strip()
    if not text:
        raise ValueError(_EMPTY_LIST)
    if text.startswith("["):
        return _require_items(_from_json(text), allow_empty=allow_empty)
    items = [part.strip() for part in text.split(",")]
    return _require_items([item for item in items if item], allow_empty=allow_empty)


def parse_cors_origins(value: str | list[str]) -> list[str]:
    """Parse CORS origins; an explicit empty list disables cross-origin access."""
    return parse_string_list(value, allow_empty=True)


class StringListEnvSettingsSource(EnvSettingsSource):
    """
    Env source that hands list fields to their validators as raw strings.

    Without it pydantic-settings JSON-decodes list fields itself and rejects
    the comma separated form before parse_string_list sees it.
    """

    raw_string_fields = frozenset({"cors_origins"})

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if isinstance(value, str) and field_name in self.raw_string_fields:
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
