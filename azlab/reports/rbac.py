"""RBAC audit report.

Functions:
    get_rbac_report(arm, scope, graph, include_inherited)  -> dict

Cross-references three sources into one flat table:

* role assignments at the scope (ARM)
* role definitions, to turn definition GUIDs into role names (ARM)
* principal identities, to turn object ids into names (Graph, optional)

Without a Graph client every principal keeps its object id as its name and
``orphaned`` is ``None`` (unknown) rather than ``False``.
"""

import logging
from collections import Counter
from datetime import datetime, timezone

from azlab.client import ArmClient, AzureClientError, GraphClient, NotFoundError
from azlab.ids import SCOPE_LEVELS, name_of, scope_level
from azlab.models import RoleAssignmentRow

AUTHORIZATION_API_VERSION = "2022-04-01"

logger = logging.getLogger(__name__)

PRINCIPAL_TYPES = ("User", "Group", "ServicePrincipal", "ForeignGroup", "Device", "Unknown")

PRIVILEGED_ROLES = frozenset({
    "Owner",
    "Contributor",
    "User Access Administrator",
    "Role Based Access Control Administrator",
})

TOP_PRINCIPALS = 5

_GRAPH_TYPES = {
    "#microsoft.graph.user": "User",
    "#microsoft.graph.group": "Group",
    "#microsoft.graph.servicePrincipal": "ServicePrincipal",
    "#microsoft.graph.device": "Device",
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_rbac_report(
    arm: ArmClient,
    scope: str | None = None,
    graph: GraphClient | None = None,
    include_inherited: bool = True,
) -> dict:
    """Return every role assignment visible at *scope* with summary statistics.

    *scope* defaults to the subscription. With ``include_inherited=False`` only
    assignments made exactly at *scope* are listed (``atScope()``).
    """
    scope = (scope or arm.subscription_scope).rstrip("/")
    params = None if include_inherited else {"$filter": "atScope()"}
    assignments = arm.list(
        f"{scope}/providers/Microsoft.Authorization/roleAssignments",
        AUTHORIZATION_API_VERSION,
        params,
    )

    definitions = _index_definitions(arm.list(
        f"{arm.subscription_scope}/providers/Microsoft.Authorization/roleDefinitions",
        AUTHORIZATION_API_VERSION,
    ))
    _fetch_missing_definitions(arm, assignments, definitions)

    principals = None
    if graph is not None:
        principal_ids = {a.get("properties", {}).get("principalId") for a in assignments}
        principals = _resolve_principals(graph, [p for p in principal_ids if p])

    rows = [_build_row(a, definitions, principals) for a in assignments]
    rows.sort(key=lambda r: (r.scope.lower(), r.role_name.lower(), r.principal_name.lower()))

    return {
        "report_type":     "rbac_audit",
        "subscription_id": arm.subscription_id,
        "scope":           scope,
        "generated_at":    datetime.now(timezone.utc).isoformat(),
        "summary":         _build_summary(rows, principals_resolved=principals is not None),
        "assignments":     [r.to_dict() for r in rows],
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _index_definitions(definitions: list[dict]) -> dict[str, dict]:
    """Key definitions by GUID; assignment ids embed the definition at varying scopes."""
    return {d["name"].lower(): d for d in definitions if d.get("name")}


def _fetch_missing_definitions(arm: ArmClient, assignments: list[dict],
                               definitions: dict[str, dict]) -> None:
    """Definitions at a management group or another scope are not listed; get them by id."""
    for assignment in assignments:
        definition_id = assignment.get("properties", {}).get("roleDefinitionId", "")
        guid = name_of(definition_id).lower()
        if not guid or guid in definitions:
            continue
        try:
            definitions[guid] = arm.get(definition_id, AUTHORIZATION_API_VERSION)
        except NotFoundError:
            # Deleted custom role still referenced by an assignment
            definitions[guid] = {}
        except AzureClientError as exc:
            logger.warning("Could not read role definition %s: %s", definition_id, exc)
            definitions[guid] = {}


def _resolve_principals(graph: GraphClient, principal_ids: list[str]) -> dict[str, dict]:
    objects = graph.get_by_ids(principal_ids)
    return {o["id"]: o for o in objects if o.get("id")}


def _build_row(
    assignment: dict,
    definitions: dict[str, dict],
    principals: dict[str, dict] | None,
) -> RoleAssignmentRow:
    props = assignment.get("properties", {})
    principal_id = props.get("principalId", "")
    definition_id = props.get("roleDefinitionId", "")
    definition = definitions.get(name_of(definition_id).lower()) or {}
    def_props = definition.get("properties", {})

    role_name = def_props.get("roleName") or name_of(definition_id)
    role_type = def_props.get("type") or "Unknown"

    principal = (principals or {}).get(principal_id)
    principal_type = props.get("principalType")
    if principal:
        principal_name = principal.get("displayName") or principal_id
        principal_upn = principal.get("userPrincipalName") or principal.get("appId")
        principal_type = principal_type or _GRAPH_TYPES.get(principal.get("@odata.type"))
    else:
        principal_name = principal_id
        principal_upn = None

    scope = props.get("scope", "")
    return RoleAssignmentRow(
        assignment_id=assignment.get("id", ""),
        principal_id=principal_id,
        principal_name=principal_name,
        principal_type=principal_type if principal_type in PRINCIPAL_TYPES else "Unknown",
        principal_upn=principal_upn,
        role_name=role_name,
        role_type=role_type,
        role_definition_id=definition_id,
        scope=scope,
        scope_level=scope_level(scope),
        created_on=props.get("createdOn"),
        updated_on=props.get("updatedOn"),
        created_by=props.get("createdBy"),
        privileged=role_name in PRIVILEGED_ROLES,
        orphaned=None if principals is None else principal is None,
    )


def _build_summary(rows: list[RoleAssignmentRow], principals_resolved: bool = True) -> dict:
    by_principal_type = {t: 0 for t in PRINCIPAL_TYPES}
    by_scope_level    = {s: 0 for s in SCOPE_LEVELS}
    by_role: Counter[str] = Counter()
    per_principal: Counter[str] = Counter()
    names: dict[str, str] = {}

    for row in rows:
        by_principal_type[row.principal_type] += 1
        by_scope_level[row.scope_level] += 1
        by_role[row.role_name] += 1
        per_principal[row.principal_id] += 1
        names[row.principal_id] = row.principal_name

    created = sorted(r.created_on for r in rows if r.created_on)
    top = sorted(per_principal.items(), key=lambda kv: (-kv[1], names[kv[0]].lower()))

    return {
        "total":                   len(rows),
        "unique_principals":       len(per_principal),
        "by_principal_type":       by_principal_type,
        "by_scope_level":          by_scope_level,
        "by_role":                 dict(sorted(by_role.items(), key=lambda kv: (-kv[1], kv[0]))),
        "privileged":              sum(1 for r in rows if r.privileged),
        "custom_role_assignments": sum(1 for r in rows if r.role_type == "CustomRole"),
        "orphaned":                sum(1 for r in rows if r.orphaned) if principals_resolved else None,
        "top_principals": [
            {"principal_id": pid, "principal_name": names[pid], "assignments": count}
            for pid, count in top[:TOP_PRINCIPALS]
        ],
        "oldest_assignment":       created[0] if created else None,
        "newest_assignment":       created[-1] if created else None,
    }
