"""Request submission models.

A submission owns its answers, one approval action per step (each with the
approver set snapshotted at submission time), an optional fulfillment and
its status-transition history.
"""

import uuid
from sqlalchemy import (
    Column, String, DateTime, JSON, ForeignKey, Text, Integer, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from hrdesk.db.base import Base, utcnow


class RequestSubmission(Base):
    __tablename__ = "request_submissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reference_code = Column(String(32), unique=True, nullable=False, index=True)
    request_type_id = Column(Uuid, ForeignKey("request_types.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Workflow state
    status = Column(String(50), nullable=False, default="pending", index=True)
    current_step_index = Column(Integer, nullable=True)

    submitted_at = Column(DateTime, default=utcnow, index=True)
    fulfilled_at = Column(DateTime, nullable=True)

    # Generated document (document_template on the request type)
    document_path = Column(String(512), nullable=True)

    # Optimistic lock counter, bumped on every flush that updates the row
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    request_type = relationship("RequestType", back_populates="submissions")
    requester = relationship("User", back_populates="submissions", foreign_keys=[user_id])
    answers = relationship("RequestAnswer", back_populates="submission", cascade="all, delete-orphan")
    approval_actions = relationship(
        "RequestApprovalAction",
        back_populates="submission",
        order_by="RequestApprovalAction.step_index",
        cascade="all, delete-orphan",
    )
    fulfillment = relationship(
        "RequestFulfillment",
        back_populates="submission",
        uselist=False,
        cascade="all, delete-orphan",
    )
    events = relationship(
        "SubmissionEvent",
        back_populates="submission",
        order_by="SubmissionEvent.sequence",
        cascade="all, delete-orphan",
    )

    def current_action(self):
        """The lowest-indexed pending approval action while the request is pending."""
        if self.status != "pending":
            return None
        for action in self.approval_actions:
            if action.status == "pending":
                return action
        return None

    def answer_map(self) -> dict:
        """Answers keyed by field_key."""
        return {a.field.field_key: a for a in self.answers if a.field is not None}

    def __repr__(self) -> str:
        return f"<RequestSubmission {self.reference_code} [{self.status}]>"


class RequestAnswer(Base):
    __tablename__ = "request_answers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id = Column(Uuid, ForeignKey("request_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    field_id = Column(Uuid, ForeignKey("request_fields.id", ondelete="CASCADE"), nullable=False)
    value = Column(Text, nullable=True)
    value_json = Column(JSON, nullable=True)

    submission = relationship("RequestSubmission", back_populates="answers")
    field = relationship("RequestField")


class RequestApprovalAction(Base):
    """
    The decision slot for one approval step of one submission.

    Created eagerly for every step at submission time, all pending.
    """
    __tablename__ = "request_approval_actions"
    __table_args__ = (
        UniqueConstraint("submission_id", "step_index", name="uq_approval_actions_submission_step"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id = Column(Uuid, ForeignKey("request_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    step_index = Column(Integer, nullable=False)
    step_name = Column(String(255), nullable=True)

    status = Column(String(50), nullable=False, default="pending", index=True)
    acted_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    acted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    submission = relationship("RequestSubmission", back_populates="approval_actions")
    acted_by = relationship("User", foreign_keys=[acted_by_id])
    approvers = relationship(
        "RequestApprovalApprover",
        back_populates="action",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<RequestApprovalAction step={self.step_index} [{self.status}]>"


class RequestApprovalApprover(Base):
    """One entry of a step's approver set: a specific user or a role."""
    __tablename__ = "request_approval_approvers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action_id = Column(Uuid, ForeignKey("request_approval_actions.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_type = Column(String(20), nullable=False)  # user, role
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    role_id = Column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=True, index=True)

    action = relationship("RequestApprovalAction", back_populates="approvers")
    user = relationship("User")
    role = relationship("Role")


class RequestFulfillment(Base):
    __tablename__ = "request_fulfillments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        Uuid, ForeignKey("request_submissions.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    fulfilled_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Storage reference only, never the bytes
    file_key = Column(String(512), nullable=True)
    file_url = Column(Text, nullable=True)
    original_filename = Column(String(255), nullable=True)
    content_type = Column(String(255), nullable=True)
    size_bytes = Column(Integer, nullable=True)

    notes = Column(Text, nullable=True)
    completed_at = Column(DateTime, default=utcnow)

    submission = relationship("RequestSubmission", back_populates="fulfillment")
    fulfiller = relationship("User", foreign_keys=[fulfilled_by])


class SubmissionEvent(Base):
    """
    Records every status transition of a submission.

    Provides the audit trail behind the request history view.
    """
    __tablename__ = "submission_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id = Column(Uuid, ForeignKey("request_submissions.id", ondelete="CASCADE"), nullable=False, index=True)

    from_status = Column(String(50), nullable=True)
    to_status = Column(String(50), nullable=False)
    transition = Column(String(50), nullable=False)
    sequence = Column(Integer, nullable=False, default=0)

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=True)
    extra_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow, index=True)

    submission = relationship("RequestSubmission", back_populates="events")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<SubmissionEvent {self.from_status} -> {self.to_status}>"
