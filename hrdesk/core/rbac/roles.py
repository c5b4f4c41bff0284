"""Default role definitions for HR Desk.

1. Admin - Full system access
2. HR Manager - Manages the request catalog, sees and exports every request
3. HR Staff - Sees every request and uploads fulfillment documents
4. Supervisor - Approver group for department heads
5. Employee - Submits and follows own requests
"""

from typing import Dict, List
from .permissions import Resource, Action, Permission


def _build_permissions(*perms: tuple) -> List[str]:
    """Build permission strings from (Resource, Action) tuples."""
    return [str(Permission(r, a)) for r, a in perms]


ADMIN_PERMISSIONS = [
    "*:*"  # Global wildcard - all permissions
]

HR_MANAGER_PERMISSIONS = ["request_types:*"] + _build_permissions(
    (Resource.REQUESTS, Action.READ),
    (Resource.REQUESTS, Action.LIST),
    (Resource.REQUESTS, Action.EXPORT),

    (Resource.FULFILLMENTS, Action.CREATE),
    (Resource.FULFILLMENTS, Action.READ),
)

HR_STAFF_PERMISSIONS = _build_permissions(
    (Resource.REQUEST_TYPES, Action.READ),
    (Resource.REQUEST_TYPES, Action.LIST),

    (Resource.REQUESTS, Action.READ),
    (Resource.REQUESTS, Action.LIST),

    # Uploads the finished document of fulfillment-stage requests
    (Resource.FULFILLMENTS, Action.CREATE),
    (Resource.FULFILLMENTS, Action.READ),
)

SUPERVISOR_PERMISSIONS = _build_permissions(
    (Resource.REQUEST_TYPES, Action.READ),
    (Resource.REQUEST_TYPES, Action.LIST),
)

EMPLOYEE_PERMISSIONS = _build_permissions(
    (Resource.REQUEST_TYPES, Action.READ),
    (Resource.REQUEST_TYPES, Action.LIST),
)


DEFAULT_ROLES: Dict[str, dict] = {
    "admin": {
        "label": "Admin",
        "description": "Full system access with all permissions",
        "permissions": ADMIN_PERMISSIONS,
        "is_system": True,
    },
    "hr_manager": {
        "label": "HR Manager",
        "description": "Manages request types and oversees every submitted request",
        "permissions": HR_MANAGER_PERMISSIONS,
        "is_system": True,
    },
    "hr_staff": {
        "label": "HR Staff",
        "description": "Processes requests and uploads fulfillment documents",
        "permissions": HR_STAFF_PERMISSIONS,
        "is_system": True,
    },
    "supervisor": {
        "label": "Supervisor",
        "description": "Approves requests routed to supervisors",
        "permissions": SUPERVISOR_PERMISSIONS,
        "is_system": True,
    },
    "employee": {
        "label": "Employee",
        "description": "Submits and tracks own requests",
        "permissions": EMPLOYEE_PERMISSIONS,
        "is_system": True,
    },
}


def get_all_default_roles() -> Dict[str, dict]:
    return DEFAULT_ROLES.copy()
