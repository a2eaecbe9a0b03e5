"""Resource-group scripts.

Functions:
    create_resource_group(client, name, location, tags)   -> dict
    list_resource_groups(client, prefix, tag)             -> list[dict]
    resource_group_exists(client, name)                   -> bool
    delete_resource_group(client, name)                   -> Operation
    delete_resource_groups(client, names, ...)            -> dict[str, str]
"""

import logging
from typing import Iterable

from azlab.client import (
    ArmClient,
    AzureClientError,
    FAILED,
    NotFoundError,
    Operation,
    wait_all,
)
from azlab.models import Tags

RESOURCES_API_VERSION = "2021-04-01"

NOT_FOUND = "NotFound"
SUBMITTED = "Submitted"

logger = logging.getLogger(__name__)


def create_resource_group(client: ArmClient, name: str, location: str,
                          tags: Tags | None = None) -> dict:
    """Create or update a resource group (PUT is idempotent)."""
    existed = resource_group_exists(client, name)
    body = {"location": location, "tags": tags or {}}
    group = client.put(client.rg_path(name), RESOURCES_API_VERSION, body)
    logger.info("%s resource group '%s' in %s", "Updated" if existed else "Created",
                name, location)
    return _summarise(group)


def resource_group_exists(client: ArmClient, name: str) -> bool:
    return client.exists(client.rg_path(name), RESOURCES_API_VERSION)


def list_resource_groups(client: ArmClient, prefix: str | None = None,
                         tag: tuple[str, str] | None = None) -> list[dict]:
    """List resource groups, optionally narrowed by name prefix and/or one tag."""
    params = {}
    if tag:
        params["$filter"] = f"tagName eq '{tag[0]}' and tagValue eq '{tag[1]}'"
    groups = client.list(f"{client.subscription_scope}/resourcegroups",
                         RESOURCES_API_VERSION, params)
    if prefix:
        groups = [g for g in groups if g.get("name", "").lower().startswith(prefix.lower())]
    return [_summarise(g) for g in groups]


def delete_resource_group(client: ArmClient, name: str) -> Operation:
    """Start deleting a resource group and everything in it."""
    logger.info("Deleting resource group '%s'", name)
    return client.begin_delete(client.rg_path(name), RESOURCES_API_VERSION)


def delete_resource_groups(
    client: ArmClient,
    names: Iterable[str],
    wait: bool = True,
    timeout: float = 900,
    poll_interval: float = 5,
) -> dict[str, str]:
    """Fire one deletion per group, then poll them together.

    Returns ``{name: status}``. A group that was already gone is ``NotFound``;
    one whose deletion could not be started is ``Failed``. With ``wait=False``
    started deletions are reported as ``Submitted``.
    """
    results: dict[str, str] = {}
    operations: list[Operation] = []

    for name in names:
        try:
            operations.append(delete_resource_group(client, name))
        except NotFoundError:
            logger.warning("Resource group '%s' not found, skipping", name)
            results[name] = NOT_FOUND
        except AzureClientError as exc:
            logger.warning("Could not delete resource group '%s': %s", name, exc)
            results[name] = FAILED

    if not wait:
        results.update({op.name: (op.status if op.done else SUBMITTED) for op in operations})
        return results

    results.update(wait_all(operations, timeout=timeout, poll_interval=poll_interval))
    for name, status in results.items():
        log = logger.info if status in ("Succeeded", NOT_FOUND) else logger.warning
        log("Resource group '%s': %s", name, status)
    return results


def _summarise(group: dict) -> dict:
    return {
        "name": group.get("name"),
        "location": group.get("location"),
        "provisioning_state": group.get("properties", {}).get("provisioningState"),
        "tags": group.get("tags") or {},
        "id": group.get("id"),
    }
