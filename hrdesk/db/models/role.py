import uuid
from sqlalchemy import Column, String, DateTime, JSON, Boolean, ForeignKey, Table, Uuid
from sqlalchemy.orm import relationship

from hrdesk.db.base import Base, utcnow


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    """
    A named group of users.

    Carries the RBAC permission set of its members and doubles as an
    approver group on approval steps.
    """
    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    label = Column(String(255), nullable=True)
    permissions = Column(JSON, nullable=False, default=list)
    is_system = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    users = relationship("User", secondary=user_roles, back_populates="roles")

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
