"""Helpers for taking apart ARM resource ids and scopes.

    /subscriptions/{sub}/resourceGroups/{rg}/providers/{ns}/{type}/{name}
"""

ROOT = "root"
MANAGEMENT_GROUP = "managementGroup"
SUBSCRIPTION = "subscription"
RESOURCE_GROUP = "resourceGroup"
RESOURCE = "resource"

SCOPE_LEVELS = (ROOT, MANAGEMENT_GROUP, SUBSCRIPTION, RESOURCE_GROUP, RESOURCE)


def _tokens(resource_id: str) -> list[str]:
    return [t for t in (resource_id or "").split("/") if t]


def _after(tokens: list[str], key: str) -> str | None:
    for i, tok in enumerate(tokens[:-1]):
        if tok.lower() == key.lower():
            return tokens[i + 1]
    return None


def resource_group_of(resource_id: str) -> str | None:
    """Resource-group segment of *resource_id*; ARM is not consistent about its case."""
    return _after(_tokens(resource_id), "resourceGroups")


def subscription_of(resource_id: str) -> str | None:
    return _after(_tokens(resource_id), "subscriptions")


def name_of(resource_id: str) -> str:
    tokens = _tokens(resource_id)
    return tokens[-1] if tokens else ""


def scope_level(scope: str) -> str:
    """Classify an RBAC scope as root, managementGroup, subscription, resourceGroup or resource."""
    tokens = _tokens(scope)
    if not tokens:
        return ROOT
    lowered = [t.lower() for t in tokens]
    if lowered[:3] == ["providers", "microsoft.management", "managementgroups"]:
        return MANAGEMENT_GROUP
    if lowered[0] != "subscriptions":
        return RESOURCE
    if len(tokens) <= 2:
        return SUBSCRIPTION
    if lowered[2] == "resourcegroups" and len(tokens) <= 4:
        return RESOURCE_GROUP
    return RESOURCE
