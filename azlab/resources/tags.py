"""Tag dictionaries: parsing, validation, merging and applying to resources.

Usage:
    tags = parse_tags(["owner=alice", "purpose=cert-practice"])
    apply_tags(client, resource_id, tags)
"""

import logging
from typing import Iterable

from azlab.client import ArmClient
from azlab.models import Tags

TAGS_API_VERSION = "2021-04-01"

MAX_TAGS = 50
MAX_KEY_LENGTH = 512
MAX_VALUE_LENGTH = 256
_FORBIDDEN_KEY_CHARS = set("<>%&\\?/")

logger = logging.getLogger(__name__)


class TagError(ValueError):
    """Raised on a malformed or invalid tag."""


def parse_tags(items: Iterable[str]) -> Tags:
    """Turn ``["k=v", ...]`` into a validated tag dict.

    Later items override earlier ones with the same key. A value may contain
    ``=``; only the first one separates key from value.
    """
    tags: Tags = {}
    for item in items:
        if "=" not in item:
            raise TagError(f"Tag '{item}' must be in key=value form.")
        key, value = item.split("=", 1)
        tags[key.strip()] = value.strip()
    validate_tags(tags)
    return tags


def validate_tags(tags: Tags) -> None:
    """Raise TagError listing every rule Azure would reject."""
    errors: list[str] = []
    if len(tags) > MAX_TAGS:
        errors.append(f"  - {len(tags)} tags given, at most {MAX_TAGS} allowed")
    for key, value in tags.items():
        if not key:
            errors.append("  - empty tag key")
            continue
        if len(key) > MAX_KEY_LENGTH:
            errors.append(f"  - key '{key[:32]}...' exceeds {MAX_KEY_LENGTH} characters")
        bad = sorted(_FORBIDDEN_KEY_CHARS.intersection(key))
        if bad:
            errors.append(f"  - key '{key}' contains forbidden characters: {' '.join(bad)}")
        if len(str(value)) > MAX_VALUE_LENGTH:
            errors.append(f"  - value of '{key}' exceeds {MAX_VALUE_LENGTH} characters")
    if errors:
        raise TagError("Invalid tags:\n" + "\n".join(errors))


def merge_tags(base: Tags | None, override: Tags | None) -> Tags:
    """Return *base* updated with *override*; neither input is modified."""
    return {**(base or {}), **(override or {})}


def missing_tags(tags: Tags | None, required: Iterable[str]) -> list[str]:
    """Required keys absent from *tags* or present with an empty value."""
    tags = tags or {}
    return [key for key in required if not str(tags.get(key, "")).strip()]


def format_tags(tags: Tags | None) -> str:
    return ";".join(f"{k}={v}" for k, v in sorted((tags or {}).items()))


def apply_tags(client: ArmClient, resource_id: str, tags: Tags,
               operation: str = "Merge") -> Tags:
    """Apply *tags* to any resource, group or subscription through the Tags API.

    *operation* is ``Merge``, ``Replace`` or ``Delete``. Returns the tags now
    on the resource.
    """
    if operation not in ("Merge", "Replace", "Delete"):
        raise TagError(f"Unknown tag operation '{operation}'.")
    validate_tags(tags)

    path = f"{resource_id.rstrip('/')}/providers/Microsoft.Resources/tags/default"
    body = {"operation": operation, "properties": {"tags": tags}}
    result = client.patch(path, TAGS_API_VERSION, body)
    logger.info("%s %d tag(s) on %s", operation, len(tags), resource_id)
    return result.get("properties", {}).get("tags", {})
