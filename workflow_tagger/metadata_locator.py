"""
Locates the raw workflow JSON inside image metadata fields.
"""

import re
from typing import Any, Mapping, Optional, Tuple


# (field name, marker stripped from the start of its value), in priority order.
# EXIF Model/Make are where the webp/jpeg savers put the prompt graph and the
# editor workflow; PNG text chunks are checked after them.
WORKFLOW_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("Model", "prompt:"),
    ("Make", "workflow:"),
    ("prompt", "prompt:"),
    ("workflow", "workflow:"),
)

LEGACY_UNICODE_MARKER = re.compile(r"^UNICODE\x00+")


def field_description(fields: Mapping[str, Any], name: str) -> Optional[str]:
    """``fields[name]["description"]`` if it is a non-empty string."""
    entry = fields.get(name)
    if isinstance(entry, Mapping):
        value = entry.get("description")
    else:
        value = getattr(entry, "description", None)
    return value if isinstance(value, str) and value else None


def clean_workflow_text(value: str, marker: str = "") -> str:
    """Strip the field marker and the legacy ``UNICODE\\0`` artifact."""
    if marker and value.startswith(marker):
        value = value[len(marker):]
    return LEGACY_UNICODE_MARKER.sub("", value).strip()


def locate_workflow_text(fields: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Return the first non-empty workflow text, or None."""
    if not fields:
        return None
    for name, marker in WORKFLOW_FIELDS:
        value = field_description(fields, name)
        if value is None:
            continue
        text = clean_workflow_text(value, marker)
        if text:
            return text
    return None
