"""Storage-account scripts."""

import logging
import re

from azlab.client import ArmClient, ConflictError
from azlab.ids import resource_group_of
from azlab.models import Tags

STORAGE_API_VERSION = "2023-01-01"
STORAGE_PROVIDER = "Microsoft.Storage"

_STORAGE_NAME_RE = re.compile(r"^[a-z0-9]{3,24}$")

SKUS = ("Standard_LRS", "Standard_GRS", "Standard_RAGRS", "Standard_ZRS",
        "Premium_LRS", "Premium_ZRS", "Standard_GZRS", "Standard_RAGZRS")
KINDS = ("StorageV2", "BlobStorage", "BlockBlobStorage", "FileStorage", "Storage")

logger = logging.getLogger(__name__)


def validate_storage_name(name: str) -> None:
    """Raise ValueError unless *name* is 3-24 lowercase letters and digits."""
    if not _STORAGE_NAME_RE.match(name):
        raise ValueError(
            f"Invalid storage account name '{name}': use 3-24 lowercase letters and digits."
        )


def check_name_availability(client: ArmClient, name: str) -> tuple[bool, str]:
    """Return ``(available, reason)``; storage names are globally unique."""
    data = client.post(
        f"{client.subscription_scope}/providers/{STORAGE_PROVIDER}/checkNameAvailability",
        STORAGE_API_VERSION,
        {"name": name, "type": "Microsoft.Storage/storageAccounts"},
    )
    return bool(data.get("nameAvailable")), data.get("message") or data.get("reason") or ""


def create_storage_account(
    client: ArmClient,
    resource_group: str,
    name: str,
    location: str,
    sku: str = "Standard_LRS",
    kind: str = "StorageV2",
    tags: Tags | None = None,
    timeout: float = 900,
    poll_interval: float = 5,
) -> dict:
    """Create a storage account with HTTPS-only, TLS 1.2 and no public blob access."""
    validate_storage_name(name)
    if sku not in SKUS:
        raise ValueError(f"Unknown storage SKU '{sku}'. Choose from: {', '.join(SKUS)}")
    if kind not in KINDS:
        raise ValueError(f"Unknown storage kind '{kind}'. Choose from: {', '.join(KINDS)}")

    available, reason = check_name_availability(client, name)
    if not available:
        raise ConflictError(f"Storage account name '{name}' is not available: {reason}",
                            status_code=409, code="StorageAccountAlreadyTaken")

    body = {
        "location": location,
        "sku": {"name": sku},
        "kind": kind,
        "tags": tags or {},
        "properties": {
            "supportsHttpsTrafficOnly": True,
            "minimumTlsVersion": "TLS1_2",
            "allowBlobPublicAccess": False,
        },
    }
    path = client.provider_path(resource_group, STORAGE_PROVIDER, "storageAccounts", name)
    account = client.begin_put(path, STORAGE_API_VERSION, body).wait(timeout, poll_interval)
    logger.info("Created storage account '%s' (%s, %s) in %s", name, sku, kind, resource_group)
    return _summarise(account)


def list_storage_accounts(client: ArmClient, resource_group: str | None = None) -> list[dict]:
    if resource_group:
        path = client.provider_path(resource_group, STORAGE_PROVIDER, "storageAccounts")
    else:
        path = f"{client.subscription_scope}/providers/{STORAGE_PROVIDER}/storageAccounts"
    return [_summarise(a) for a in client.list(path, STORAGE_API_VERSION)]


def delete_storage_account(client: ArmClient, resource_group: str, name: str) -> None:
    """Storage deletion is synchronous: 200 when deleted, 204 when already absent."""
    path = client.provider_path(resource_group, STORAGE_PROVIDER, "storageAccounts", name)
    client.delete(path, STORAGE_API_VERSION)
    logger.info("Deleted storage account '%s' from %s", name, resource_group)


def _summarise(account: dict) -> dict:
    props = account.get("properties", {})
    return {
        "name": account.get("name"),
        "resource_group": resource_group_of(account.get("id", "")),
        "location": account.get("location"),
        "sku": account.get("sku", {}).get("name"),
        "kind": account.get("kind"),
        "provisioning_state": props.get("provisioningState"),
        "blob_endpoint": props.get("primaryEndpoints", {}).get("blob"),
        "tags": account.get("tags") or {},
    }

