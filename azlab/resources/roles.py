"""Custom role definitions and role assignments.

Role definition files use the same JSON layout as ``az role definition create``:

    {
      "Name": "Lab VM Operator",
      "Description": "Start and stop lab VMs",
      "Actions": ["Microsoft.Compute/virtualMachines/start/action", ...],
      "NotActions": [],
      "DataActions": [],
      "NotDataActions": [],
      "AssignableScopes": ["/subscriptions/0000..."]
    }
"""

import json
import logging
import uuid
from pathlib import Path

from azlab.client import ArmClient, ConflictError, NotFoundError

AUTHORIZATION_API_VERSION = "2022-04-01"
AUTHORIZATION_PROVIDER = "Microsoft.Authorization"

PRINCIPAL_TYPES = ("User", "Group", "ServicePrincipal", "ForeignGroup", "Device")

logger = logging.getLogger(__name__)


def load_role_definition(path: str) -> dict:
    """Read and check an az-cli style role definition file."""
    file = Path(path)
    if not file.exists():
        raise ValueError(f"Role definition file not found: '{path}'")
    try:
        definition = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse '{path}': {exc}") from exc
    if not isinstance(definition, dict):
        raise ValueError(f"'{path}' must contain a JSON object.")

    errors: list[str] = []
    if not definition.get("Name"):
        errors.append("  - 'Name' is missing")
    if not (definition.get("Actions") or definition.get("DataActions")):
        errors.append("  - at least one of 'Actions' or 'DataActions' must be non-empty")
    if errors:
        raise ValueError(f"Invalid role definition '{path}':\n" + "\n".join(errors))
    return definition


def build_role_payload(definition: dict, default_scope: str) -> dict:
    """Translate the az-cli layout into the ARM ``roleDefinitions`` body."""
    scopes = definition.get("AssignableScopes") or [default_scope]
    return {
        "properties": {
            "roleName": definition["Name"],
            "description": definition.get("Description", ""),
            "type": "CustomRole",
            "permissions": [{
                "actions": definition.get("Actions", []),
                "notActions": definition.get("NotActions", []),
                "dataActions": definition.get("DataActions", []),
                "notDataActions": definition.get("NotDataActions", []),
            }],
            "assignableScopes": scopes,
        },
    }


def find_role(client: ArmClient, name: str, scope: str | None = None) -> dict | None:
    """Look up a built-in or custom role by its display name."""
    scope = scope or client.subscription_scope
    escaped = name.replace("'", "''")
    roles = client.list(_definitions_path(scope), AUTHORIZATION_API_VERSION,
                        {"$filter": f"roleName eq '{escaped}'"})
    return roles[0] if roles else None


def find_custom_role(client: ArmClient, name: str, scope: str | None = None) -> dict | None:
    role = find_role(client, name, scope)
    if role and role.get("properties", {}).get("type") == "CustomRole":
        return role
    return None


def create_custom_role(client: ArmClient, definition: dict) -> dict:
    """Create the role, or update it in place when one with that name exists."""
    payload = build_role_payload(definition, client.subscription_scope)
    scope = payload["properties"]["assignableScopes"][0]
    name = payload["properties"]["roleName"]

    existing = find_custom_role(client, name, scope)
    role_id = existing["name"] if existing else str(uuid.uuid4())
    role = client.put(f"{_definitions_path(scope)}/{role_id}", AUTHORIZATION_API_VERSION,
                      payload)
    logger.info("%s custom role '%s' (%s)", "Updated" if existing else "Created", name, role_id)
    return _summarise(role)


def list_custom_roles(client: ArmClient, scope: str | None = None) -> list[dict]:
    scope = scope or client.subscription_scope
    roles = client.list(_definitions_path(scope), AUTHORIZATION_API_VERSION,
                        {"$filter": "type eq 'CustomRole'"})
    return [_summarise(r) for r in roles]


def delete_custom_role(client: ArmClient, name: str, scope: str | None = None) -> None:
    """Delete a custom role. Azure refuses while assignments still reference it."""
    role = find_custom_role(client, name, scope)
    if role is None:
        raise NotFoundError(f"Custom role '{name}' not found.", status_code=404)
    client.delete(role["id"], AUTHORIZATION_API_VERSION)
    logger.info("Deleted custom role '%s'", name)


def assign_role(
    client: ArmClient,
    principal_id: str,
    role_name: str,
    scope: str | None = None,
    principal_type: str = "User",
) -> dict:
    """Assign *role_name* to a principal at *scope* (defaults to the subscription).

    An identical existing assignment is reported with ``created=False``
    instead of raising.
    """
    if principal_type not in PRINCIPAL_TYPES:
        raise ValueError(
            f"Unknown principal type '{principal_type}'. Choose from: {', '.join(PRINCIPAL_TYPES)}"
        )
    scope = scope or client.subscription_scope
    role = find_role(client, role_name, scope)
    if role is None:
        raise NotFoundError(f"Role '{role_name}' not found at scope '{scope}'.", status_code=404)

    body = {
        "properties": {
            "roleDefinitionId": role["id"],
            "principalId": principal_id,
            "principalType": principal_type,
        },
    }
    path = f"{scope.rstrip('/')}/providers/{AUTHORIZATION_PROVIDER}/roleAssignments/{uuid.uuid4()}"
    result = {"principal_id": principal_id, "role_name": role_name, "scope": scope}
    try:
        assignment = client.put(path, AUTHORIZATION_API_VERSION, body)
    except ConflictError as exc:
        if exc.code != "RoleAssignmentExists":
            raise
        logger.warning("'%s' already holds '%s' at %s", principal_id, role_name, scope)
        return {**result, "created": False, "assignment_id": None}

    logger.info("Assigned '%s' to %s at %s", role_name, principal_id, scope)
    return {**result, "created": True, "assignment_id": assignment.get("id")}


def _definitions_path(scope: str) -> str:
    return f"{scope.rstrip('/')}/providers/{AUTHORIZATION_PROVIDER}/roleDefinitions"


def _summarise(role: dict) -> dict:
    props = role.get("properties", {})
    permissions = props.get("permissions") or [{}]
    return {
        "name": props.get("roleName"),
        "id": role.get("name"),
        "type": props.get("type"),
        "description": props.get("description"),
        "actions": permissions[0].get("actions", []),
        "data_actions": permissions[0].get("dataActions", []),
        "assignable_scopes": props.get("assignableScopes", []),
    }
