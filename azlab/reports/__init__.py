"""Report generators (RBAC audit, right-sizing, inventory)."""
