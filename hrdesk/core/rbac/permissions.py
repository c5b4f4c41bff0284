"""Permission model for HR Desk RBAC.

Permission string format: "resource:action"
Examples:
  - request_types:update
  - requests:export
  - fulfillments:create
"""

from enum import Enum
from typing import NamedTuple, FrozenSet


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    # Request catalog and submissions
    REQUEST_TYPES = "request_types"   # Request type definitions
    REQUESTS = "requests"             # Submitted requests of any user
    FULFILLMENTS = "fulfillments"     # Fulfillment uploads


class Action(str, Enum):
    """Actions that can be performed on resources."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"

    PUBLISH = "publish"    # Publish / unpublish request types
    EXPORT = "export"      # CSV export


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'requests:read'."""
        parts = perm_str.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Resource(parts[0]), Action(parts[1]))


PERMISSION_MATRIX: dict[Resource, FrozenSet[Action]] = {
    Resource.REQUEST_TYPES: frozenset([
        Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE,
        Action.LIST, Action.PUBLISH,
    ]),
    Resource.REQUESTS: frozenset([
        Action.READ, Action.LIST, Action.EXPORT,
    ]),
    Resource.FULFILLMENTS: frozenset([
        Action.CREATE, Action.READ,
    ]),
}


def _generate_permission_definitions() -> dict[str, Permission]:
    """Generate all valid permission combinations from the matrix."""
    permissions = {}
    for resource, actions in PERMISSION_MATRIX.items():
        for action in actions:
            perm = Permission(resource, action)
            permissions[str(perm)] = perm
    return permissions


# All valid permissions as a dictionary: "resource:action" -> Permission
PERMISSION_DEFINITIONS = _generate_permission_definitions()


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string is valid (wildcards included)."""
    if perm_str == "*:*":
        return True
    if perm_str.endswith(":*"):
        return perm_str[:-2] in {r.value for r in Resource}
    return perm_str in PERMISSION_DEFINITIONS

