from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Logical field -> provider keys, in priority order. Provider responses drift
# between the v1-style snake_case and the camelCase scraper output.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "timestamp": ("createdAt", "created_at"),
    "text": ("text", "full_text"),
    "id": ("id_str", "id"),
}


def resolve(raw: Mapping[str, Any], field: str, default: Any = None) -> Any:
    """
    Return the first present alias value for a logical field.

    A key counts as present when its value is neither None nor "".
    Unknown logical fields raise KeyError.
    """
    for key in FIELD_ALIASES[field]:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return default
