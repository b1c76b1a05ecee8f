"""Account permission rules."""

from household_core.permissions.gate import PermissionGate

__all__ = ["PermissionGate"]
