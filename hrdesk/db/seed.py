"""Seed data: default roles, an admin account and sample request types.

Usage: python -m hrdesk.db.seed <admin-email> <admin-password>

Idempotent; rows that already exist (by role name, email or request type
name) are left untouched.
"""

import logging
import sys
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from hrdesk.core.logger import configure_logging
from hrdesk.core.rbac.permissions import is_valid_permission
from hrdesk.core.rbac.roles import get_all_default_roles
from hrdesk.core.security import get_password_hash
from hrdesk.core.workflow import catalog
from hrdesk.db.models import Role, User, RequestType, LeaveBalance
from hrdesk.db.session import SessionLocal

logger = logging.getLogger(__name__)

LEAVE_TYPES = [
    {"label": "Vacation Leave", "value": "VL"},
    {"label": "Sick Leave", "value": "SL"},
]
DEFAULT_LEAVE_ENTITLEMENT = 15

CERTIFICATE_TEMPLATE = """CERTIFICATE OF EMPLOYMENT

This is to certify that {{ requester.name }}{% if requester.position %}, {{ requester.position }},{% endif %}
is an employee of the company.

This certificate is issued upon request for: {{ answers.purpose }}.

Reference: {{ reference_code }}
Issued on {{ today.strftime("%B %d, %Y") }}
"""


def seed_roles(db: Session, definitions: Optional[dict[str, dict]] = None) -> dict[str, Role]:
    roles = {}
    for name, definition in (definitions or get_all_default_roles()).items():
        unknown = [p for p in definition["permissions"] if not is_valid_permission(p)]
        if unknown:
            raise ValueError(f"Role {name} grants unknown permission(s): {', '.join(unknown)}")
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            role = Role(
                name=name,
                label=definition["label"],
                permissions=list(definition["permissions"]),
                is_system=definition["is_system"],
            )
            db.add(role)
            logger.info(f"Created role {name}")
        roles[name] = role
    db.flush()
    return roles


def seed_admin(db: Session, roles: dict[str, Role], email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, password_hash=get_password_hash(password), name="Administrator")
        user.roles = [roles["admin"], roles["employee"]]
        db.add(user)
        db.flush()
        logger.info(f"Created admin user {email}")
    return user


def _step(name: str, role: Role) -> dict:
    return {"name": name, "approvers": [{"approver_type": "role", "approver_role_id": str(role.id)}]}


def seed_request_types(db: Session, roles: dict[str, Role], created_by: Optional[User] = None) -> list[RequestType]:
    """A two-step leave request and a certificate with a fulfillment stage."""
    definitions = [
        {
            "name": "Leave Request",
            "description": "Vacation and sick leave, deducted from the yearly balance.",
            "kind": "leave",
            "has_fulfillment": False,
            "is_published": True,
            "fields": [
                {"label": "Leave Type", "field_key": "leave_type", "field_type": "dropdown",
                 "is_required": True, "options": LEAVE_TYPES},
                {"label": "Start Date", "field_key": "start_date", "field_type": "date", "is_required": True},
                {"label": "End Date", "field_key": "end_date", "field_type": "date", "is_required": True},
                {"label": "Reason", "field_key": "reason", "field_type": "textarea"},
            ],
            "approval_steps": [
                _step("Supervisor Approval", roles["supervisor"]),
                _step("HR Approval", roles["hr_manager"]),
            ],
        },
        {
            "name": "Certificate of Employment",
            "description": "Signed certificate issued by HR.",
            "kind": "certificate",
            "has_fulfillment": True,
            "is_published": True,
            "document_template": CERTIFICATE_TEMPLATE,
            "fields": [
                {"label": "Purpose", "field_key": "purpose", "field_type": "text", "is_required": True},
            ],
            "approval_steps": [_step("HR Review", roles["hr_manager"])],
        },
    ]

    created = []
    for data in definitions:
        exists = db.query(RequestType.id).filter(RequestType.name == data["name"]).first()
        if exists:
            continue
        created.append(catalog.create_request_type(db, data, created_by=created_by))
        logger.info(f"Created request type {data['name']}")
    return created


def seed_leave_balances(db: Session, user: User, year: Optional[int] = None) -> None:
    year = year or date.today().year
    for option in LEAVE_TYPES:
        balance = (
            db.query(LeaveBalance)
            .filter(LeaveBalance.user_id == user.id, LeaveBalance.leave_type == option["value"], LeaveBalance.year == year)
            .first()
        )
        if balance is None:
            db.add(LeaveBalance(
                user_id=user.id,
                leave_type=option["value"],
                year=year,
                entitled=DEFAULT_LEAVE_ENTITLEMENT,
                used=0,
                pending=0,
            ))
    db.flush()


def seed(db: Session, admin_email: str, admin_password: str) -> None:
    roles = seed_roles(db)
    admin = seed_admin(db, roles, admin_email, admin_password)
    seed_request_types(db, roles, created_by=admin)
    seed_leave_balances(db, admin)
    db.commit()


def main():
    if len(sys.argv) < 3:
        print("Usage: python -m hrdesk.db.seed <admin-email> <admin-password>", file=sys.stderr)
        sys.exit(1)

    configure_logging()
    db = SessionLocal()
    try:
        seed(db, sys.argv[1], sys.argv[2])
    except Exception:
        db.rollback()
        logger.exception("Seeding failed")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
