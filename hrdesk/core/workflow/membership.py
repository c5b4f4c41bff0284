"""Role membership lookups used to authorize role-based approvers."""

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from hrdesk.db.models import User, user_roles


@runtime_checkable
class RoleMembership(Protocol):
    """Answers who belongs to a role."""

    def has_role(self, user: User, role_id: UUID) -> bool:
        ...

    def members(self, role_id: UUID) -> list[User]:
        ...

    def role_ids(self, user: User) -> list[UUID]:
        ...


class SqlRoleMembership:
    """Resolves membership live from the ``user_roles`` table."""

    def __init__(self, db: Session):
        self.db = db

    def has_role(self, user: User, role_id: UUID) -> bool:
        if user is None or role_id is None:
            return False
        row = self.db.query(user_roles.c.user_id).filter(
            user_roles.c.user_id == user.id,
            user_roles.c.role_id == role_id,
        ).first()
        return row is not None

    def members(self, role_id: UUID) -> list[User]:
        return (
            self.db.query(User)
            .join(user_roles, user_roles.c.user_id == User.id)
            .filter(user_roles.c.role_id == role_id, User.is_active.is_(True))
            .order_by(User.email)
            .all()
        )

    def role_ids(self, user: User) -> list[UUID]:
        if user is None:
            return []
        rows = self.db.query(user_roles.c.role_id).filter(user_roles.c.user_id == user.id).all()
        return [row[0] for row in rows]


class StaticRoleMembership:
    """In-memory membership map, for callers that already know the answer."""

    def __init__(self, mapping: dict[UUID, list[User]]):
        self.mapping = mapping

    def has_role(self, user: User, role_id: UUID) -> bool:
        return any(member.id == user.id for member in self.mapping.get(role_id, []))

    def members(self, role_id: UUID) -> list[User]:
        return list(self.mapping.get(role_id, []))

    def role_ids(self, user: User) -> list[UUID]:
        return [role_id for role_id in self.mapping if self.has_role(user, role_id)]
