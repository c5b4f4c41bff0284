"""Tests for the RBAC permission system."""

import pytest
from fastapi import HTTPException

from hrdesk.core.rbac.permissions import (
    Permission, Resource, Action,
    PERMISSION_DEFINITIONS, is_valid_permission,
)
from hrdesk.core.rbac.checker import PermissionChecker, has_permission, require_permission
from hrdesk.core.rbac.roles import (
    DEFAULT_ROLES,
    ADMIN_PERMISSIONS, HR_MANAGER_PERMISSIONS, HR_STAFF_PERMISSIONS,
    SUPERVISOR_PERMISSIONS, EMPLOYEE_PERMISSIONS,
)

from tests.factories import create_role, create_user


class TestPermissionModel:
    """Test permission definitions."""

    def test_permission_string_format(self):
        assert str(Permission(Resource.REQUESTS, Action.EXPORT)) == "requests:export"

    def test_permission_from_string(self):
        perm = Permission.from_string("fulfillments:create")
        assert perm.resource == Resource.FULFILLMENTS
        assert perm.action == Action.CREATE

    def test_invalid_permission_format(self):
        with pytest.raises(ValueError):
            Permission.from_string("invalid")
        with pytest.raises(ValueError):
            Permission.from_string("too:many:parts")

    def test_is_valid_permission(self):
        assert is_valid_permission("request_types:publish")
        assert is_valid_permission("requests:*")
        assert is_valid_permission("*:*")
        assert not is_valid_permission("requests:delete")  # not in the matrix
        assert not is_valid_permission("payroll:*")
        assert not is_valid_permission("users:manage")
        assert not is_valid_permission("reports:*")

    def test_matrix_covers_catalog_requests_and_fulfillments(self):
        assert {r.value for r in Resource} == {"request_types", "requests", "fulfillments"}
        assert sorted(p for p in PERMISSION_DEFINITIONS if p.startswith("requests:")) == [
            "requests:export", "requests:list", "requests:read",
        ]
        assert "fulfillments:create" in PERMISSION_DEFINITIONS


class TestPermissionChecker:
    """Test permission checks, wildcards included."""

    def test_exact_match(self):
        checker = PermissionChecker(["requests:read"])
        assert checker.has_permission("requests:read")
        assert not checker.has_permission("requests:list")

    def test_resource_wildcard(self):
        checker = PermissionChecker(["request_types:*"])
        assert checker.has_permission("request_types:delete")
        assert not checker.has_permission("requests:read")

    def test_global_wildcard(self):
        checker = PermissionChecker(["*:*"])
        assert checker.has_permission("requests:export")
        assert checker.has_permission(Permission(Resource.FULFILLMENTS, Action.CREATE))

    def test_any_and_all(self):
        checker = PermissionChecker(["requests:read", "requests:list"])
        assert checker.has_any_permission(["requests:export", "requests:read"])
        assert checker.has_all_permissions(["requests:read", "requests:list"])
        assert not checker.has_all_permissions(["requests:read", "requests:export"])

    def test_user_permissions_merge_roles(self, db_session):
        reader = create_role(db_session, permissions=["requests:read"])
        exporter = create_role(db_session, permissions=["requests:export", "requests:read"])
        user = create_user(db_session, roles=[reader, exporter])

        assert user.permissions == ["requests:read", "requests:export"]
        assert has_permission(user, "requests:export")
        assert has_permission(user, Permission(Resource.REQUESTS, Action.READ))

    def test_user_without_roles(self, db_session):
        assert not has_permission(create_user(db_session), "request_types:read")
        assert not has_permission(None, "request_types:read")


class TestRequirePermission:
    """Test the endpoint decorator."""

    def test_allows_matching_user(self, db_session):
        @require_permission("request_types:create")
        def endpoint(current_user=None):
            return "ok"

        user = create_user(db_session, permissions=["request_types:*"])
        assert endpoint(current_user=user) == "ok"

    def test_forbidden(self, db_session):
        @require_permission("request_types:create")
        def endpoint(current_user=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            endpoint(current_user=create_user(db_session, permissions=["request_types:read"]))
        assert exc_info.value.status_code == 403

    def test_no_roles(self, db_session):
        @require_permission("request_types:create")
        def endpoint(current_user=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            endpoint(current_user=create_user(db_session))
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "User has no assigned role"

    def test_unauthenticated(self):
        @require_permission("request_types:create")
        def endpoint(current_user=None):
            return "ok"

        with pytest.raises(HTTPException) as exc_info:
            endpoint(current_user=None)
        assert exc_info.value.status_code == 401

    def test_require_all(self, db_session):
        @require_permission("requests:read", "requests:export", require_all=True)
        def endpoint(current_user=None):
            return "ok"

        with pytest.raises(HTTPException):
            endpoint(current_user=create_user(db_session, permissions=["requests:read"]))


class TestDefaultRoles:
    """Test the default role set."""

    def test_all_default_roles_defined(self):
        assert set(DEFAULT_ROLES) == {"admin", "hr_manager", "hr_staff", "supervisor", "employee"}
        assert all(role["is_system"] for role in DEFAULT_ROLES.values())

    def test_every_permission_is_valid(self):
        for role in DEFAULT_ROLES.values():
            for perm in role["permissions"]:
                assert is_valid_permission(perm), perm

    def test_admin_has_full_access(self):
        checker = PermissionChecker(ADMIN_PERMISSIONS)
        assert all(checker.has_permission(p) for p in PERMISSION_DEFINITIONS)

    def test_hr_manager_manages_catalog_and_exports(self):
        checker = PermissionChecker(HR_MANAGER_PERMISSIONS)
        assert checker.has_permission("request_types:publish")
        assert checker.has_permission("requests:export")
        assert checker.has_permission("fulfillments:create")
        assert "reports:export" not in HR_MANAGER_PERMISSIONS

    def test_hr_staff_fulfills_but_does_not_edit_catalog(self):
        checker = PermissionChecker(HR_STAFF_PERMISSIONS)
        assert checker.has_permission("fulfillments:create")
        assert not checker.has_permission("request_types:update")
        assert not checker.has_permission("requests:export")

    def test_supervisor_and_employee_minimal_access(self):
        for perms in (SUPERVISOR_PERMISSIONS, EMPLOYEE_PERMISSIONS):
            checker = PermissionChecker(perms)
            assert checker.has_permission("request_types:read")
            assert not checker.has_permission("requests:list")
            assert not checker.has_permission("fulfillments:create")
