"""Approval workflow engine.

Drives a submission from ``pending`` through its ordered approval steps to
``completed`` (directly, or via a ``fulfillment`` upload) or to ``rejected``.
Every mutating call locks the submission row, validates, applies the change,
runs in-transaction hooks, commits, then runs after-commit hooks.
"""

import logging
from datetime import date, datetime, time
from typing import Optional, Dict, Any, List, Tuple
from uuid import UUID

from sqlalchemy import and_, or_, exists, func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from hrdesk.core.rbac import has_permission
from hrdesk.db.base import utcnow
from hrdesk.db.models import (
    RequestType,
    RequestSubmission,
    RequestAnswer,
    RequestApprovalAction,
    RequestApprovalApprover,
    RequestFulfillment,
    SubmissionEvent,
    User,
)

from .errors import ValidationError, InvalidActorError, StepNotCurrentError, InvalidStateError
from .fields import validate_answers
from .hooks import HookRegistry, HookContext, HookEvent
from .machine import SubmissionStateMachine
from .membership import RoleMembership, SqlRoleMembership
from .reference import generate_reference_code
from .states import SubmissionStatus, SubmissionTransition, ActionStatus, Decision, ApproverType

logger = logging.getLogger(__name__)

LIST_SCOPES = ("mine", "approvals", "all")

_TRANSITION_EVENTS = {
    SubmissionTransition.APPROVE_ALL: HookEvent.APPROVED,
    SubmissionTransition.REQUIRE_FULFILLMENT: HookEvent.FULFILLMENT,
    SubmissionTransition.COMPLETE: HookEvent.COMPLETED,
    SubmissionTransition.FULFILL: HookEvent.COMPLETED,
    SubmissionTransition.REJECT: HookEvent.REJECTED,
}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class WorkflowEngine:
    """
    Submission lifecycle operations.

    Args:
        db: Database session; the engine commits its own unit of work
        membership: Role membership lookup for role approvers
        hooks: Post-transition hooks; defaults to ``HookRegistry.default``
        storage: File storage for fulfillment uploads and generated documents
    """

    def __init__(
        self,
        db: Session,
        *,
        membership: Optional[RoleMembership] = None,
        hooks: Optional[HookRegistry] = None,
        storage=None,
    ):
        self.db = db
        self.membership = membership or SqlRoleMembership(db)
        self.storage = storage
        self.hooks = hooks if hooks is not None else HookRegistry.default(storage=storage)

    # ------------------------------------------------------------------
    # Authorization queries
    # ------------------------------------------------------------------

    def is_listed_approver(self, action: RequestApprovalAction, user: Optional[User]) -> bool:
        """Whether the user matches a user entry or holds a role entry of the action."""
        if user is None or not user.is_active:
            return False
        for entry in action.approvers:
            if entry.approver_type == ApproverType.USER.value and entry.user_id == user.id:
                return True
            if entry.approver_type == ApproverType.ROLE.value and entry.role_id is not None:
                if self.membership.has_role(user, entry.role_id):
                    return True
        return False

    def can_act(self, submission: RequestSubmission, user: Optional[User]) -> bool:
        action = submission.current_action()
        return action is not None and self.is_listed_approver(action, user)

    def _approved_final_step(self, submission: RequestSubmission, user: User) -> bool:
        if not submission.approval_actions:
            return False
        last = submission.approval_actions[-1]
        return last.status == ActionStatus.APPROVED.value and last.acted_by_id == user.id

    def _may_fulfill(self, submission: RequestSubmission, user: Optional[User]) -> bool:
        if user is None or not user.is_active:
            return False
        return has_permission(user, "fulfillments:create") or self._approved_final_step(submission, user)

    def can_fulfill(self, submission: RequestSubmission, user: Optional[User]) -> bool:
        return submission.status == SubmissionStatus.FULFILLMENT.value and self._may_fulfill(submission, user)

    def can_view(self, submission: RequestSubmission, user: Optional[User]) -> bool:
        if user is None:
            return False
        if submission.user_id is not None and submission.user_id == user.id:
            return True
        if has_permission(user, "requests:read"):
            return True
        return any(
            action.acted_by_id == user.id or self.is_listed_approver(action, user)
            for action in submission.approval_actions
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def submit(self, request_type: RequestType, requester: User, field_values: Optional[Dict[str, Any]]) -> RequestSubmission:
        """
        Create a submission of a published request type.

        Raises:
            InvalidStateError: the type is unpublished or superseded
            ValidationError: answers (or a submit hook) rejected the input
        """
        if not request_type.is_published or not request_type.is_current:
            raise InvalidStateError(
                "unpublished" if request_type.is_current else "superseded",
                "submit",
                "This request type is not accepting submissions.",
            )

        answers = validate_answers(request_type.fields, field_values)
        steps = request_type.steps()
        now = utcnow()

        submission = RequestSubmission(
            reference_code=generate_reference_code(self.db),
            request_type=request_type,
            requester=requester,
            status=SubmissionStatus.PENDING.value,
            current_step_index=0 if steps else None,
            submitted_at=now,
        )
        submission.answers = [
            RequestAnswer(field=a.field, value=a.value, value_json=a.value_json) for a in answers
        ]
        for index, step in enumerate(steps):
            action = RequestApprovalAction(
                step_index=index,
                step_name=step.get("name") or f"Step {index + 1}",
                status=ActionStatus.PENDING.value,
            )
            action.approvers = [self._snapshot_approver(entry) for entry in step.get("approvers") or []]
            submission.approval_actions.append(action)

        self.db.add(submission)

        submitted = self._record_event(
            submission, None, SubmissionStatus.PENDING.value, "submit", requester, None,
        )
        events = [HookEvent.SUBMITTED]

        machine = SubmissionStateMachine(None, SubmissionStatus.PENDING)
        if not steps:
            events += self._finish_approvals(submission, machine, None, None)
            self._apply_history(submission, machine)

        contexts = [
            HookContext(
                db=self.db,
                submission=submission,
                event=event,
                actor=requester,
                membership=self.membership,
                event_record=submitted if event == HookEvent.SUBMITTED else None,
            )
            for event in events
        ]
        self._commit(contexts)

        logger.info(
            f"Submission {submission.reference_code} created by {requester.email} "
            f"for {request_type.name} v{request_type.version} [{submission.status}]"
        )
        self.hooks.run_after_commit(contexts)
        return submission

    def act(
        self,
        submission: RequestSubmission,
        step_index: int,
        actor: User,
        decision: str,
        notes: Optional[str] = None,
    ) -> RequestSubmission:
        """
        Record an approver's decision on the current step.

        Raises:
            ValidationError: decision is not approved/rejected
            InvalidStateError: submission is no longer pending
            StepNotCurrentError: step_index is not the current step
            InvalidActorError: actor is not an approver of the step
        """
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError(errors={"decision": "The decision must be either approved or rejected."})

        submission = self._lock(submission)

        if submission.status != SubmissionStatus.PENDING.value:
            raise InvalidStateError(submission.status, "act on")

        current = submission.current_action()
        if current is None or current.step_index != step_index:
            raise StepNotCurrentError(current.step_index if current else None, step_index)

        if not self.is_listed_approver(current, actor):
            logger.warning(
                f"User {actor.email if actor else None} is not an approver of step {step_index} "
                f"on {submission.reference_code}"
            )
            raise InvalidActorError()

        now = utcnow()
        current.status = decision.value
        current.acted_by_id = actor.id
        current.acted_by = actor
        current.notes = notes
        current.acted_at = now

        machine = SubmissionStateMachine(submission.id, SubmissionStatus.PENDING)
        if decision == Decision.APPROVED:
            following = submission.current_action()
            if following is not None:
                submission.current_step_index = following.step_index
                events = [HookEvent.ADVANCED]
            else:
                submission.current_step_index = None
                events = self._finish_approvals(submission, machine, actor, notes)
        else:
            machine.transition(SubmissionTransition.REJECT, comment=notes, user_id=actor.id)
            submission.status = SubmissionStatus.REJECTED.value
            submission.current_step_index = None
            events = [HookEvent.REJECTED]

        self._apply_history(submission, machine)
        submission.updated_at = now

        contexts = [
            HookContext(db=self.db, submission=submission, event=e, actor=actor, notes=notes, membership=self.membership)
            for e in events
        ]
        try:
            self._commit(contexts)
        except StaleDataError:
            raise StepNotCurrentError(None, step_index)

        logger.info(
            f"Step {step_index} of {submission.reference_code} {decision.value} by {actor.email} "
            f"[{submission.status}]"
        )
        self.hooks.run_after_commit(contexts)
        return submission

    def fulfill(self, submission: RequestSubmission, fulfiller: User, upload, notes: Optional[str] = None) -> RequestSubmission:
        """
        Attach the fulfillment document and complete the submission.

        Raises:
            InvalidStateError: submission is not awaiting fulfillment
            InvalidActorError: fulfiller may not fulfill this submission
            ValidationError: missing, oversized or disallowed file
        """
        submission = self._lock(submission)

        if submission.status != SubmissionStatus.FULFILLMENT.value:
            raise InvalidStateError(submission.status, "fulfill")

        if not self._may_fulfill(submission, fulfiller):
            logger.warning(f"User {fulfiller.email if fulfiller else None} may not fulfill {submission.reference_code}")
            raise InvalidActorError("You are not authorized to fulfill this request.")

        if upload is None:
            raise ValidationError(errors={"file": "The file field is required."})
        if notes is not None and len(notes) > 2000:
            raise ValidationError(errors={"notes": "The notes may not be greater than 2000 characters."})
        if self.storage is None:
            raise RuntimeError("WorkflowEngine.fulfill requires a storage backend")

        stored = self.storage.save(upload, prefix=f"fulfillments/{submission.id}")

        now = utcnow()
        submission.fulfillment = RequestFulfillment(
            fulfilled_by=fulfiller.id,
            fulfiller=fulfiller,
            file_key=stored.key,
            file_url=stored.url,
            original_filename=stored.original_filename,
            content_type=stored.content_type,
            size_bytes=stored.size_bytes,
            notes=notes,
            completed_at=now,
        )

        machine = SubmissionStateMachine(submission.id, SubmissionStatus.FULFILLMENT)
        machine.transition(SubmissionTransition.FULFILL, comment=notes, user_id=fulfiller.id)
        submission.status = SubmissionStatus.COMPLETED.value
        submission.fulfilled_at = now
        submission.updated_at = now
        self._apply_history(submission, machine)

        contexts = [
            HookContext(
                db=self.db, submission=submission, event=HookEvent.COMPLETED,
                actor=fulfiller, notes=notes, membership=self.membership,
            )
        ]
        try:
            self._commit(contexts)
        except StaleDataError:
            self.storage.delete(stored.key)
            raise InvalidStateError(SubmissionStatus.COMPLETED.value, "fulfill")
        except Exception:
            self.storage.delete(stored.key)
            raise

        logger.info(f"Submission {submission.reference_code} fulfilled by {fulfiller.email}")
        self.hooks.run_after_commit(contexts)
        return submission

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def view(self, submission: RequestSubmission) -> Dict[str, Any]:
        """Read-only projection of a submission for API responses."""
        request_type = submission.request_type
        requester = submission.requester
        answers = {a.field_id: a for a in submission.answers}

        fields = []
        for field in request_type.fields:
            answer = answers.get(field.id)
            value = answer.value if answer else None
            value_json = answer.value_json if answer else None
            download_url = None
            if field.field_type == "file" and value:
                download_url = self._download_url(submission, f"fields/{field.id}")
            if field.field_type == "checkbox":
                value = value == "1"
            fields.append({
                "id": str(field.id),
                "field_key": field.field_key,
                "label": field.label,
                "field_type": field.field_type,
                "description": field.description,
                "value": value,
                "value_json": value_json,
                "download_url": download_url,
            })

        fulfillment = None
        if submission.fulfillment is not None:
            f = submission.fulfillment
            fulfillment = {
                "file_url": f.file_url,
                "download_url": self._download_url(submission, "fulfillment") if f.file_key else None,
                "original_filename": f.original_filename,
                "notes": f.notes,
                "completed_at": _iso(f.completed_at),
                "fulfilled_by": self._user_summary(f.fulfiller),
            }

        return {
            "id": str(submission.id),
            "reference_code": submission.reference_code,
            "status": submission.status,
            "submitted_at": _iso(submission.submitted_at),
            "fulfilled_at": _iso(submission.fulfilled_at),
            "request_type": {
                "id": str(request_type.id),
                "name": request_type.name,
                "kind": request_type.kind,
                "has_fulfillment": request_type.has_fulfillment,
                "version": request_type.version,
            },
            "requester": {
                "id": str(requester.id),
                "full_name": requester.display_name,
                "email": requester.email,
                "position": requester.position,
            } if requester else None,
            "fields": fields,
            "approval": {
                "current_step_index": submission.current_step_index,
                "actions": [self._action_view(a) for a in submission.approval_actions],
            },
            "history": [
                {
                    "from_status": e.from_status,
                    "to_status": e.to_status,
                    "transition": e.transition,
                    "user_id": str(e.user_id) if e.user_id else None,
                    "comment": e.comment,
                    "created_at": _iso(e.created_at),
                }
                for e in submission.events
            ],
            "fulfillment": fulfillment,
            "document_url": self._download_url(submission, "document") if submission.document_path else None,
        }

    def list_submissions(
        self,
        user: User,
        scope: str = "mine",
        *,
        status: Optional[str] = None,
        request_type_id: Optional[UUID] = None,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[RequestSubmission], int]:
        """
        Page through the submissions visible to ``user`` under ``scope``.

        Returns:
            (items, total)
        """
        if scope not in LIST_SCOPES:
            raise ValidationError(errors={"scope": f"The scope must be one of: {', '.join(LIST_SCOPES)}."})

        query = self.db.query(RequestSubmission)

        if scope == "mine":
            query = query.filter(RequestSubmission.user_id == user.id)
        elif scope == "all":
            if not has_permission(user, "requests:list"):
                raise InvalidActorError("You are not allowed to list all requests.")
        else:
            query = query.filter(self._approvals_condition(user))

        if status:
            query = query.filter(RequestSubmission.status == status)

        if request_type_id:
            selected = self.db.get(RequestType, request_type_id)
            family = selected.family_id if selected else None
            query = query.join(RequestType, RequestSubmission.request_type_id == RequestType.id).filter(
                RequestType.family_id == family
            )

        if search:
            term = f"%{search.strip()}%"
            query = query.outerjoin(User, RequestSubmission.user_id == User.id).filter(
                or_(
                    RequestSubmission.reference_code.ilike(term),
                    User.name.ilike(term),
                    User.email.ilike(term),
                )
            )

        if date_from:
            query = query.filter(RequestSubmission.submitted_at >= datetime.combine(date_from, time.min))
        if date_to:
            query = query.filter(RequestSubmission.submitted_at <= datetime.combine(date_to, time.max))

        total = query.count()
        items = (
            query.order_by(RequestSubmission.submitted_at.desc(), RequestSubmission.reference_code.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _approvals_condition(self, user: User):
        role_ids = self.membership.role_ids(user)
        approver_match = RequestApprovalApprover.user_id == user.id
        if role_ids:
            approver_match = or_(approver_match, RequestApprovalApprover.role_id.in_(role_ids))

        awaiting_user = and_(
            RequestSubmission.status == SubmissionStatus.PENDING.value,
            exists().where(
                and_(
                    RequestApprovalAction.submission_id == RequestSubmission.id,
                    RequestApprovalAction.step_index == RequestSubmission.current_step_index,
                    RequestApprovalApprover.action_id == RequestApprovalAction.id,
                    approver_match,
                )
            ),
        )

        if has_permission(user, "fulfillments:create"):
            return or_(awaiting_user, RequestSubmission.status == SubmissionStatus.FULFILLMENT.value)

        acted = (
            self.db.query(RequestApprovalAction.submission_id, RequestApprovalAction.step_index)
            .join(RequestSubmission, RequestSubmission.id == RequestApprovalAction.submission_id)
            .filter(
                RequestSubmission.status == SubmissionStatus.FULFILLMENT.value,
                RequestApprovalAction.acted_by_id == user.id,
                RequestApprovalAction.status == ActionStatus.APPROVED.value,
            )
            .all()
        )
        if not acted:
            return awaiting_user

        last_steps = dict(
            self.db.query(RequestApprovalAction.submission_id, func.max(RequestApprovalAction.step_index))
            .filter(RequestApprovalAction.submission_id.in_([row[0] for row in acted]))
            .group_by(RequestApprovalAction.submission_id)
            .all()
        )
        final_approved = [sid for sid, step in acted if last_steps.get(sid) == step]
        if not final_approved:
            return awaiting_user
        return or_(awaiting_user, RequestSubmission.id.in_(final_approved))

    def _snapshot_approver(self, entry: dict) -> RequestApprovalApprover:
        approver_type = entry.get("approver_type")
        user_id = entry.get("approver_id") if approver_type == ApproverType.USER.value else None
        role_id = entry.get("approver_role_id") if approver_type == ApproverType.ROLE.value else None
        return RequestApprovalApprover(
            approver_type=approver_type,
            user_id=UUID(str(user_id)) if user_id else None,
            role_id=UUID(str(role_id)) if role_id else None,
        )

    def _lock(self, submission: RequestSubmission) -> RequestSubmission:
        """Reload the submission with a row lock for the rest of the transaction."""
        # Child rows (actions, fulfillment) may have been loaded before the lock was taken
        self.db.expire_all()
        locked = (
            self.db.query(RequestSubmission)
            .filter(RequestSubmission.id == submission.id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if locked is None:
            raise InvalidStateError("missing", "update", "The request no longer exists.")
        return locked

    def _finish_approvals(
        self,
        submission: RequestSubmission,
        machine: SubmissionStateMachine,
        actor: Optional[User],
        notes: Optional[str],
    ) -> List[HookEvent]:
        """All steps approved: move to fulfillment, or through approved to completed."""
        user_id = actor.id if actor else None
        if submission.request_type.has_fulfillment:
            machine.transition(SubmissionTransition.REQUIRE_FULFILLMENT, comment=notes, user_id=user_id)
        else:
            machine.transition(SubmissionTransition.APPROVE_ALL, comment=notes, user_id=user_id)
            machine.transition(SubmissionTransition.COMPLETE, user_id=user_id)
        submission.status = machine.state.value
        return [_TRANSITION_EVENTS[SubmissionTransition(r["transition"])] for r in machine.get_history()]

    def _apply_history(self, submission: RequestSubmission, machine: SubmissionStateMachine) -> None:
        for record in machine.get_history():
            self._record_event(
                submission,
                record["from_state"],
                record["to_state"],
                record["transition"],
                None,
                record["comment"],
                user_id=record["user_id"],
                extra=record["metadata"],
            )

    def _record_event(
        self,
        submission: RequestSubmission,
        from_status: Optional[str],
        to_status: str,
        transition: str,
        actor: Optional[User],
        comment: Optional[str],
        *,
        user_id: Optional[UUID] = None,
        extra: Optional[dict] = None,
    ) -> SubmissionEvent:
        event = SubmissionEvent(
            from_status=from_status,
            to_status=to_status,
            transition=transition,
            sequence=len(submission.events),
            user_id=actor.id if actor else user_id,
            comment=comment,
            extra_data=dict(extra or {}),
        )
        submission.events.append(event)
        return event

    def _commit(self, contexts: List[HookContext]) -> None:
        try:
            self.db.flush()
            self.hooks.run_in_transaction(contexts)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _download_url(submission: RequestSubmission, target: str) -> str:
        """Authorized API route serving one of the submission's files."""
        return f"/api/requests/{submission.id}/{target}/download"

    @staticmethod
    def _user_summary(user: Optional[User]) -> Optional[dict]:
        if user is None:
            return None
        return {"id": str(user.id), "name": user.display_name, "email": user.email}

    def _action_view(self, action: RequestApprovalAction) -> Dict[str, Any]:
        approver_users = [e.user for e in action.approvers if e.approver_type == ApproverType.USER.value and e.user]
        approver_roles = [e.role for e in action.approvers if e.approver_type == ApproverType.ROLE.value and e.role]
        acted_by = action.acted_by

        if acted_by is not None:
            approver_name = acted_by.display_name
        else:
            names = [u.display_name for u in approver_users] + [r.label or r.name for r in approver_roles]
            approver_name = ", ".join(names) or None

        return {
            "id": str(action.id),
            "step_index": action.step_index,
            "step_name": action.step_name,
            "status": action.status or ActionStatus.PENDING.value,
            "notes": action.notes,
            "acted_at": _iso(action.acted_at),
            "approver": {
                "id": str(acted_by.id),
                "name": acted_by.display_name,
                "email": acted_by.email,
                "position": acted_by.position,
            } if acted_by else None,
            "approver_name": approver_name,
            "approver_users": [self._user_summary(u) for u in approver_users],
            "approver_roles": [{"id": str(r.id), "name": r.name, "label": r.label or r.name} for r in approver_roles],
        }
