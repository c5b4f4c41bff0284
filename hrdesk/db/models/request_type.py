"""Request type definitions.

A request type is a template: its fields, its ordered approval steps and
whether a fulfillment stage follows approval. Once submissions reference a
version, that version is never edited; updates produce a new version in the
same family (see ``hrdesk.core.workflow.catalog``).
"""

import uuid
from sqlalchemy import (
    Column, String, DateTime, JSON, ForeignKey, Text, Boolean, Integer, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from hrdesk.db.base import Base, utcnow


class RequestType(Base):
    __tablename__ = "request_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    family_id = Column(Uuid, nullable=False, index=True, default=uuid.uuid4)
    version = Column(Integer, nullable=False, default=1)
    superseded_by_id = Column(Uuid, ForeignKey("request_types.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    kind = Column(String(50), nullable=False, default="generic")  # generic, leave, certificate
    has_fulfillment = Column(Boolean, nullable=False, default=False)

    # Ordered list of step definitions, each with its approvers
    approval_steps = Column(JSON, nullable=False, default=list)

    # Jinja2 text rendered into a document once approvals finish
    document_template = Column(Text, nullable=True)

    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime, nullable=True)

    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    fields = relationship(
        "RequestField",
        back_populates="request_type",
        order_by="RequestField.sort_order",
        cascade="all, delete-orphan",
    )
    submissions = relationship("RequestSubmission", back_populates="request_type")
    creator = relationship("User", foreign_keys=[created_by])

    @property
    def is_current(self) -> bool:
        return self.superseded_by_id is None

    def steps(self) -> list[dict]:
        """Step definitions ordered by sort_order."""
        return sorted(self.approval_steps or [], key=lambda step: step.get("sort_order", 0))

    def __repr__(self) -> str:
        return f"<RequestType {self.name} v{self.version}>"


class RequestField(Base):
    __tablename__ = "request_fields"
    __table_args__ = (
        UniqueConstraint("request_type_id", "field_key", name="uq_request_fields_type_key"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_type_id = Column(Uuid, ForeignKey("request_types.id", ondelete="CASCADE"), nullable=False, index=True)
    field_key = Column(String(255), nullable=False)
    label = Column(String(255), nullable=False)
    field_type = Column(String(50), nullable=False)
    is_required = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    options = Column(JSON, nullable=True)  # [{"label": ..., "value": ...}]
    sort_order = Column(Integer, nullable=False, default=0)

    request_type = relationship("RequestType", back_populates="fields")

    def option_values(self) -> list[str]:
        return [str(o.get("value")) for o in (self.options or []) if o.get("value") not in (None, "")]

    def __repr__(self) -> str:
        return f"<RequestField {self.field_key} ({self.field_type})>"
