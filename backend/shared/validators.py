"""Shared validation helpers for settings and user-supplied names and emails."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 255

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_']{1,100}$")
_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_name(value: str, *, label: str = "Name") -> str:
    """Return the trimmed name, or raise ValueError when it is empty, too long or malformed."""
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{label} cannot be empty")
    if len(stripped) > MAX_NAME_LENGTH:
        raise ValueError(f"{label} cannot exceed {MAX_NAME_LENGTH} characters")
    if not _NAME_PATTERN.match(stripped):
        raise ValueError(f"{label} contains invalid characters")
    return stripped


def normalize_email(value: str) -> str:
    return value.strip().lower()


def validate_email(value: str) -> str:
    """Return the normalized email, or raise ValueError when it is not a plausible address."""
    normalized = normalize_email(value)
    if not normalized:
        raise ValueError("Email cannot be empty")
    if len(normalized) > MAX_EMAIL_LENGTH:
        raise ValueError(f"Email cannot exceed {MAX_EMAIL_LENGTH} characters")
    if not _EMAIL_PATTERN.match(normalized):
        raise ValueError("Invalid email format")
    return normalized


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a string list from an environment variable or config value.

    Accepts a list of strings, a JSON array string ('["a","b"]') or a
    comma-separated string ('a,b'). Raises ValueError for malformed JSON,
    and for empty values unless allow_empty is set.
    """
    if isinstance(value, list):
        if not allow_empty and not value:
            raise ValueError("String list value must not be empty")
        return value

    stripped = value.strip()
    if not stripped:
        if allow_empty:
            return []
        raise ValueError("String list value must not be empty")

    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValueError("JSON value must be an array of strings")
        if not allow_empty and not parsed:
            raise ValueError("String list value must not be empty")
        return parsed

    result = [item.strip() for item in stripped.split(",") if item.strip()]
    if not allow_empty and not result:
        raise ValueError("String list value must not be empty")
    return result


_STRING_LIST_FIELDS = {"cors_origins"}


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that hands string-list fields to validators as raw strings.

    pydantic-settings JSON-decodes list-typed fields from env vars before
    validators run; this bypasses that so parse_string_list can accept CSV too.
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
