"""Resource inventory report with tag compliance.

Functions:
    get_inventory_report(arm, resource_group, required_tags)  -> dict
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Iterable

from azlab.client import ArmClient
from azlab.ids import resource_group_of
from azlab.models import InventoryRow
from azlab.resources.tags import missing_tags

RESOURCES_API_VERSION = "2021-04-01"


def get_inventory_report(arm: ArmClient, resource_group: str | None = None,
                         required_tags: Iterable[str] = ()) -> dict:
    """List every resource in the subscription (or one group) and check its tags."""
    required = list(required_tags)
    if resource_group:
        path = f"{arm.rg_path(resource_group)}/resources"
    else:
        path = f"{arm.subscription_scope}/resources"

    rows = [_build_row(r, required) for r in arm.list(path, RESOURCES_API_VERSION)]
    rows.sort(key=lambda r: ((r.resource_group or "").lower(), r.type.lower(), r.name.lower()))

    return {
        "report_type":     "inventory",
        "subscription_id": arm.subscription_id,
        "resource_group":  resource_group,
        "required_tags":   required,
        "generated_at":    datetime.now(timezone.utc).isoformat(),
        "summary":         _build_summary(rows),
        "resources":       [r.to_dict() for r in rows],
    }


def _build_row(resource: dict, required: list[str]) -> InventoryRow:
    tags = resource.get("tags") or {}
    return InventoryRow(
        id=resource.get("id", ""),
        name=resource.get("name", ""),
        type=resource.get("type", ""),
        location=resource.get("location", ""),
        resource_group=resource_group_of(resource.get("id", "")) or "",
        tags=tags,
        missing_tags=missing_tags(tags, required),
    )


def _counts(values: Iterable[str]) -> dict[str, int]:
    return dict(sorted(Counter(values).items(), key=lambda kv: (-kv[1], kv[0])))


def _build_summary(rows: list[InventoryRow]) -> dict:
    return {
        "total":             len(rows),
        "by_type":           _counts(r.type for r in rows),
        "by_location":       _counts(r.location for r in rows),
        "by_resource_group": _counts(r.resource_group for r in rows),
        "untagged":          sum(1 for r in rows if not r.tags),
        "non_compliant":     sum(1 for r in rows if r.missing_tags),
    }
