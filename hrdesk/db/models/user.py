import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Uuid
from sqlalchemy.orm import relationship

from hrdesk.db.base import Base, utcnow
from hrdesk.db.models.role import user_roles


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255))
    position = Column(String(255), nullable=True)  # job title shown on approval history
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    roles = relationship("Role", secondary=user_roles, back_populates="users", lazy="selectin")
    submissions = relationship("RequestSubmission", back_populates="requester", foreign_keys="RequestSubmission.user_id")
    leave_balances = relationship("LeaveBalance", back_populates="user", cascade="all, delete-orphan")

    @property
    def permissions(self) -> list[str]:
        """Union of the permission strings of every role the user holds."""
        merged: list[str] = []
        for role in self.roles:
            for perm in role.permissions or []:
                if perm not in merged:
                    merged.append(perm)
        return merged

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __repr__(self) -> str:
        return f"<User {self.email}>"
