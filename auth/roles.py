"""
auth/roles.py -- Role Gate and the per-operation required-role table.

Role model:
  Roles are plain strings. There is no hierarchy: "editor" does not imply
  "user". The single exception is ADMIN_ROLE, which passes every gate. That
  override is an exact string comparison and lives only in role_permits().

Operation table:
  Each protected operation is registered once, at import time of the module
  that defines it, under a stable identifier (e.g. "auth.me"). The Role Gate
  reads the table at dispatch time. Operations registered without roles, and
  operations never registered, require DEFAULT_REQUIRED_ROLES.
"""

from __future__ import annotations

from collections.abc import Iterable

ADMIN_ROLE = "admin"
USER_ROLE = "user"
DEFAULT_REQUIRED_ROLES: frozenset[str] = frozenset({USER_ROLE})


def role_permits(role: str, required_roles: Iterable[str] | None = None) -> bool:
    """Return True if a principal holding role may run an operation requiring required_roles.

    ADMIN_ROLE always passes, even when it is not listed. An empty or missing
    requirement falls back to DEFAULT_REQUIRED_ROLES.
    """
    if role == ADMIN_ROLE:
        return True
    required = frozenset(required_roles or ()) or DEFAULT_REQUIRED_ROLES
    return role in required


class RoleTable:
    """Mapping of operation identifier -> required-role set."""

    def __init__(self) -> None:
        self._roles: dict[str, frozenset[str]] = {}

    def register(self, operation: str, roles: Iterable[str] | None = None) -> str:
        """Declare the roles an operation requires. Returns the identifier.

        Re-registering an identifier with a different role set raises ValueError.
        """
        required = frozenset(roles or ()) or DEFAULT_REQUIRED_ROLES
        existing = self._roles.get(operation)
        if existing is not None and existing != required:
            raise ValueError(f"Operation {operation!r} already registered with roles {sorted(existing)!r}")
        self._roles[operation] = required
        return operation

    def required_for(self, operation: str) -> frozenset[str]:
        return self._roles.get(operation, DEFAULT_REQUIRED_ROLES)

    def __contains__(self, operation: object) -> bool:
        return operation in self._roles


# Process-wide table. Route modules register into it at import time.
operation_roles = RoleTable()
