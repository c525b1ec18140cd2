"""Merge tags: ``{{tagName}}`` substitution from subscriber data and variables."""

import re
from collections.abc import Mapping
from typing import Any

MERGE_TAG_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")

# Merge-tag / condition field name -> Subscriber attribute
WELL_KNOWN_FIELDS = {
    "email": "email",
    "firstName": "first_name",
    "lastName": "last_name",
    "status": "status",
}

_MISSING = object()


def subscriber_field(subscriber: Any, field: str) -> Any:
    """Well-known subscriber field, else a custom field, else None."""
    attribute = WELL_KNOWN_FIELDS.get(field)
    if attribute is not None:
        return getattr(subscriber, attribute, None)
    custom_fields = getattr(subscriber, "custom_fields", None) or {}
    return custom_fields.get(field)


def _resolve(tag: str, subscriber: Any, variables: Mapping[str, Any]) -> Any:
    attribute = WELL_KNOWN_FIELDS.get(tag)
    if attribute is not None:
        return getattr(subscriber, attribute, None)
    custom_fields = getattr(subscriber, "custom_fields", None) or {}
    if tag in custom_fields:
        return custom_fields[tag]
    return variables.get(tag, _MISSING)


def personalize(content: str, subscriber: Any, variables: Mapping[str, Any] | None = None) -> str:
    """Replace ``{{tag}}`` merge tags in ``content``.

    Args:
        content: Subject or body template.
        subscriber: Object exposing the subscriber fields and ``custom_fields``.
        variables: Execution variables, used for tags no subscriber field matches.

    Returns:
        The rendered text. Unresolved or empty tags become the empty string.
    """
    variables = variables or {}

    def replace(match: re.Match[str]) -> str:
        value = _resolve(match.group(1), subscriber, variables)
        if value is _MISSING or value is None:
            return ""
        return str(value)

    return MERGE_TAG_RE.sub(replace, content)
