import uuid
from sqlalchemy import Column, String, DateTime, Date, Float, Integer, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from hrdesk.db.base import Base, utcnow


class LeaveBalance(Base):
    """
    Yearly leave entitlement of one user for one leave type.

    Days of submitted leave requests sit in ``pending`` until the request
    completes (moved to ``used``) or is rejected (released).
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "leave_type", "year", name="uq_leave_balances_user_type_year"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type = Column(String(50), nullable=False)  # leave type code, e.g. "VL", "SL"
    year = Column(Integer, nullable=False)

    entitled = Column(Float, nullable=False, default=0)
    used = Column(Float, nullable=False, default=0)
    pending = Column(Float, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="leave_balances")

    @property
    def available(self) -> float:
        return self.entitled - self.used - self.pending

    def __repr__(self) -> str:
        return f"<LeaveBalance {self.leave_type} {self.year}: {self.available}>"


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    date = Column(Date, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
