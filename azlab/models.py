"""Data models for azlab reports.

Flat value objects used to structure and serialize report output:
    - RoleAssignmentRow   (RBAC audit)
    - InventoryRow        (resource inventory)
    - SizeRecommendation  (right-sizing)
"""

from dataclasses import asdict, dataclass, field

Tags = dict[str, str]


@dataclass
class RoleAssignmentRow:
    assignment_id: str
    principal_id: str
    principal_name: str
    principal_type: str
    role_name: str
    role_type: str
    role_definition_id: str
    scope: str
    scope_level: str
    principal_upn: str | None = None
    created_on: str | None = None
    updated_on: str | None = None
    created_by: str | None = None
    privileged: bool = False
    # None when principals could not be looked up in the directory
    orphaned: bool | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class InventoryRow:
    id: str
    name: str
    type: str
    location: str
    resource_group: str
    tags: Tags = field(default_factory=dict)
    missing_tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SizeRecommendation:
    vm_id: str
    vm_name: str
    resource_group: str
    current_size: str
    avg_cpu: float | None
    peak_cpu: float | None
    avg_memory_used: float | None
    tier: str
    action: str
    recommended_size: str | None
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)
