"""Tests for the approval workflow engine."""

import re

import pytest

from hrdesk.core.workflow.engine import WorkflowEngine
from hrdesk.core.workflow.errors import (
    ValidationError, InvalidActorError, StepNotCurrentError, InvalidStateError,
)
from hrdesk.core.workflow.hooks import HookRegistry
from hrdesk.core.workflow.membership import StaticRoleMembership
from hrdesk.db.models import RequestSubmission, NotificationEventType

from tests.factories import (
    FakeUpload, create_request_type, create_role, create_user, role_step, user_step,
)


@pytest.fixture
def people(db_session):
    """A supervisor, an HR manager, HR staff and a requester."""
    supervisor_role = create_role(db_session, name="supervisor", label="Supervisor")
    hr_role = create_role(db_session, name="hr_manager", label="HR Manager")
    staff_role = create_role(db_session, name="hr_staff", permissions=["fulfillments:create", "requests:read"])
    return {
        "supervisor_role": supervisor_role,
        "hr_role": hr_role,
        "supervisor": create_user(db_session, name="Sam Supervisor", position="Team Lead", roles=[supervisor_role]),
        "hr": create_user(db_session, name="Hana HR", roles=[hr_role]),
        "staff": create_user(db_session, name="Stef Staff", roles=[staff_role]),
        "requester": create_user(db_session, name="Riley Requester"),
    }


@pytest.fixture
def leave_type(db_session, people):
    return create_request_type(
        db_session,
        name="Leave",
        steps=[
            role_step(people["supervisor_role"], name="Supervisor"),
            role_step(people["hr_role"], name="HR Manager"),
        ],
    )


@pytest.fixture
def certificate_type(db_session, people):
    return create_request_type(
        db_session,
        name="Certificate",
        kind="certificate",
        has_fulfillment=True,
        steps=[role_step(people["hr_role"], name="HR Review")],
    )


def _statuses(submission):
    return [a.status for a in submission.approval_actions]


class TestScenarios:
    """End-to-end flows through the engine."""

    def test_two_step_leave_completes_without_fulfillment(self, engine, sender, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "Family trip"})
        assert submission.status == "pending"
        assert _statuses(submission) == ["pending", "pending"]
        assert submission.current_step_index == 0

        submission = engine.act(submission, 0, people["supervisor"], "approved", "Fine by me")
        assert _statuses(submission) == ["approved", "pending"]
        assert submission.status == "pending"
        assert submission.current_step_index == 1

        submission = engine.act(submission, 1, people["hr"], "approved")
        assert _statuses(submission) == ["approved", "approved"]
        assert submission.status == "completed"
        assert submission.current_step_index is None
        assert "request_completed" in sender.events()

    def test_certificate_goes_through_fulfillment(self, engine, sender, storage, people, certificate_type):
        submission = engine.submit(certificate_type, people["requester"], {"reason": "Visa application"})
        assert submission.status == "pending"

        submission = engine.act(submission, 0, people["hr"], "approved")
        assert submission.status == "fulfillment"
        assert "request_completed" not in sender.events()

        submission = engine.fulfill(submission, people["staff"], FakeUpload("coe.pdf"), "Signed copy attached")
        assert submission.status == "completed"
        assert submission.fulfilled_at is not None
        assert submission.fulfillment.file_url.startswith("/files/fulfillments/")
        assert storage.exists(submission.fulfillment.file_key)

        completed = [c for c in sender.calls if c["event_type"] == NotificationEventType.REQUEST_COMPLETED]
        assert len(completed) == 1
        assert completed[0]["notes"] == "Signed copy attached"

    def test_zero_step_type_completes_on_submit(self, engine, people, db_session):
        request_type = create_request_type(db_session, steps=[])
        submission = engine.submit(request_type, people["requester"], {"reason": "x"})
        assert submission.status == "completed"
        assert submission.approval_actions == []
        assert [e.transition for e in submission.events] == ["submit", "approve_all", "complete"]


class TestSubmit:
    """Submission creation."""

    @pytest.mark.parametrize("step_count", [1, 2, 3])
    def test_materializes_one_pending_action_per_step(self, engine, db_session, people, step_count):
        steps = [user_step(people["supervisor"]) for _ in range(step_count)]
        request_type = create_request_type(db_session, steps=steps)

        submission = engine.submit(request_type, people["requester"], {"reason": "x"})

        assert submission.status == "pending"
        assert len(submission.approval_actions) == step_count
        assert set(_statuses(submission)) == {"pending"}
        assert [a.step_index for a in submission.approval_actions] == list(range(step_count))

    def test_reference_code_format(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        assert re.fullmatch(r"REQ-\d{8}-[A-Z0-9]{5}", submission.reference_code)

    def test_missing_required_field(self, engine, db_session, people, leave_type):
        with pytest.raises(ValidationError) as exc_info:
            engine.submit(leave_type, people["requester"], {})
        assert exc_info.value.errors == {"reason": "The Reason field is required."}
        assert db_session.query(RequestSubmission).count() == 0

    def test_dropdown_value_outside_options(self, engine, db_session, people):
        request_type = create_request_type(
            db_session,
            fields=[{"label": "Size", "field_type": "dropdown", "is_required": True,
                     "options": [{"label": "Small", "value": "S"}, {"label": "Large", "value": "L"}]}],
        )
        with pytest.raises(ValidationError) as exc_info:
            engine.submit(request_type, people["requester"], {"size": "XL"})
        assert exc_info.value.errors["size"] == "The selected Size is invalid."

    def test_unpublished_type_rejected(self, engine, db_session, people):
        request_type = create_request_type(db_session, is_published=False)
        with pytest.raises(InvalidStateError):
            engine.submit(request_type, people["requester"], {"reason": "x"})

    def test_approvers_are_snapshotted(self, engine, db_session, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        entry = submission.approval_actions[0].approvers[0]
        assert entry.approver_type == "role"
        assert entry.role_id == people["supervisor_role"].id

    def test_submit_event_recorded(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        assert len(submission.events) == 1
        event = submission.events[0]
        assert event.from_status is None
        assert event.to_status == "pending"
        assert event.user_id == people["requester"].id

    def test_first_step_approvers_notified(self, engine, sender, people, leave_type):
        engine.submit(leave_type, people["requester"], {"reason": "x"})
        assert sender.events() == ["approval_pending"]
        assert [u.id for u in sender.calls[0]["recipients"]] == [people["supervisor"].id]


class TestAct:
    """Approval decisions."""

    def test_out_of_order_step_rejected(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        with pytest.raises(StepNotCurrentError) as exc_info:
            engine.act(submission, 1, people["hr"], "approved")
        assert exc_info.value.expected == 0
        assert exc_info.value.given == 1

    def test_non_approver_rejected(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        with pytest.raises(InvalidActorError):
            engine.act(submission, 0, people["hr"], "approved")
        with pytest.raises(InvalidActorError):
            engine.act(submission, 0, people["requester"], "approved")

    def test_inactive_role_member_cannot_act(self, engine, db_session, people, leave_type):
        former = create_user(db_session, roles=[people["supervisor_role"]], is_active=False)
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        with pytest.raises(InvalidActorError):
            engine.act(submission, 0, former, "approved")

    def test_invalid_decision(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        with pytest.raises(ValidationError) as exc_info:
            engine.act(submission, 0, people["supervisor"], "maybe")
        assert "decision" in exc_info.value.errors

    def test_first_responder_resolves_step(self, engine, db_session, people):
        other = create_user(db_session)
        request_type = create_request_type(
            db_session,
            steps=[user_step(people["supervisor"], other), user_step(people["hr"])],
        )
        submission = engine.submit(request_type, people["requester"], {"reason": "x"})

        submission = engine.act(submission, 0, other, "approved")
        assert submission.approval_actions[0].acted_by_id == other.id

        with pytest.raises(StepNotCurrentError):
            engine.act(submission, 0, people["supervisor"], "approved")

    def test_rejection_is_terminal(self, engine, sender, storage, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        submission = engine.act(submission, 0, people["supervisor"], "rejected", "Not this week")

        assert submission.status == "rejected"
        assert submission.current_step_index is None
        assert _statuses(submission) == ["rejected", "pending"]
        assert submission.current_action() is None

        with pytest.raises(InvalidStateError):
            engine.act(submission, 1, people["hr"], "approved")
        with pytest.raises(InvalidStateError):
            engine.fulfill(submission, people["staff"], FakeUpload())

        rejected = [c for c in sender.calls if c["event_type"] == NotificationEventType.REQUEST_REJECTED]
        assert rejected[0]["notes"] == "Not this week"

    def test_rejection_at_later_step(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        submission = engine.act(submission, 0, people["supervisor"], "approved")
        submission = engine.act(submission, 1, people["hr"], "rejected", "Budget")
        assert submission.status == "rejected"
        assert _statuses(submission) == ["approved", "rejected"]

    def test_advancing_notifies_next_approvers(self, engine, sender, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        engine.act(submission, 0, people["supervisor"], "approved")
        assert sender.events() == ["approval_pending", "approval_pending"]
        assert [u.id for u in sender.calls[1]["recipients"]] == [people["hr"].id]

    def test_history_records_transitions(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        submission = engine.act(submission, 0, people["supervisor"], "approved")
        submission = engine.act(submission, 1, people["hr"], "approved", "Enjoy")

        transitions = [(e.from_status, e.to_status, e.transition) for e in submission.events]
        assert transitions == [
            (None, "pending", "submit"),
            ("pending", "approved", "approve_all"),
            ("approved", "completed", "complete"),
        ]
        assert [e.sequence for e in submission.events] == [0, 1, 2]
        assert submission.events[1].comment == "Enjoy"

    def test_injected_membership(self, db_session, storage, sender, people, leave_type):
        outsider = create_user(db_session)
        membership = StaticRoleMembership({people["supervisor_role"].id: [outsider]})
        engine = WorkflowEngine(
            db_session,
            membership=membership,
            hooks=HookRegistry.default(storage=storage, send=sender),
            storage=storage,
        )
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})

        with pytest.raises(InvalidActorError):
            engine.act(submission, 0, people["supervisor"], "approved")
        submission = engine.act(submission, 0, outsider, "approved")
        assert submission.current_step_index == 1


class TestFulfill:
    """Fulfillment uploads."""

    @pytest.fixture
    def awaiting(self, engine, people, certificate_type):
        submission = engine.submit(certificate_type, people["requester"], {"reason": "x"})
        return engine.act(submission, 0, people["hr"], "approved")

    def test_requires_fulfillment_status(self, engine, people, certificate_type):
        submission = engine.submit(certificate_type, people["requester"], {"reason": "x"})
        with pytest.raises(InvalidStateError):
            engine.fulfill(submission, people["staff"], FakeUpload())

    def test_unauthorized_user(self, engine, people, awaiting):
        with pytest.raises(InvalidActorError):
            engine.fulfill(awaiting, people["requester"], FakeUpload())

    def test_final_step_approver_may_fulfill(self, engine, people, awaiting):
        submission = engine.fulfill(awaiting, people["hr"], FakeUpload())
        assert submission.status == "completed"
        assert submission.fulfillment.fulfilled_by == people["hr"].id

    def test_missing_file(self, engine, people, awaiting):
        with pytest.raises(ValidationError) as exc_info:
            engine.fulfill(awaiting, people["staff"], None)
        assert "file" in exc_info.value.errors

    def test_disallowed_extension_stores_nothing(self, engine, storage, people, awaiting):
        with pytest.raises(ValidationError):
            engine.fulfill(awaiting, people["staff"], FakeUpload("payload.exe", b"MZ"))
        assert not (storage.root / "fulfillments").exists()
        assert awaiting.status == "fulfillment"

    def test_oversized_file(self, engine, people, awaiting):
        with pytest.raises(ValidationError) as exc_info:
            engine.fulfill(awaiting, people["staff"], FakeUpload("big.pdf", b"x" * (1024 * 1024 + 1)))
        assert "greater than" in exc_info.value.errors["file"]

    def test_second_fulfillment_rejected(self, engine, people, awaiting):
        submission = engine.fulfill(awaiting, people["staff"], FakeUpload())
        with pytest.raises(InvalidStateError):
            engine.fulfill(submission, people["staff"], FakeUpload())

    def test_can_fulfill(self, engine, people, awaiting):
        assert engine.can_fulfill(awaiting, people["staff"])
        assert engine.can_fulfill(awaiting, people["hr"])
        assert not engine.can_fulfill(awaiting, people["requester"])


class TestSideEffects:
    """After-commit hooks."""

    def test_notification_failure_does_not_undo_transition(self, db_session, storage, people, leave_type):
        def broken_sender(*args, **kwargs):
            raise ConnectionError("smtp down")

        engine = WorkflowEngine(
            db_session, hooks=HookRegistry.default(storage=storage, send=broken_sender), storage=storage,
        )
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})
        submission = engine.act(submission, 0, people["supervisor"], "approved")
        submission = engine.act(submission, 1, people["hr"], "approved")

        db_session.expire_all()
        stored = db_session.get(RequestSubmission, submission.id)
        assert stored.status == "completed"

    def test_document_generated_when_approvals_finish(self, engine, db_session, storage, people):
        request_type = create_request_type(
            db_session,
            name="Employment Certificate",
            kind="certificate",
            has_fulfillment=True,
            steps=[role_step(people["hr_role"])],
            document_template="Certified: {{ requester.name }} ({{ answers.reason }}) {{ reference_code }}",
        )
        submission = engine.submit(request_type, people["requester"], {"reason": "bank loan"})
        assert submission.document_path is None

        submission = engine.act(submission, 0, people["hr"], "approved")
        assert submission.document_path.startswith(f"documents/{submission.id}/")
        content = storage.path(submission.document_path).read_text()
        assert content == f"Certified: Riley Requester (bank loan) {submission.reference_code}"


class TestView:
    """Read-only projection."""

    def test_view_shape(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "Trip"})
        submission = engine.act(submission, 0, people["supervisor"], "approved", "ok")
        view = engine.view(submission)

        assert view["reference_code"] == submission.reference_code
        assert view["status"] == "pending"
        assert view["requester"]["full_name"] == "Riley Requester"
        assert view["fields"][0]["field_key"] == "reason"
        assert view["fields"][0]["value"] == "Trip"
        assert view["fulfillment"] is None

        first, second = view["approval"]["actions"]
        assert first["approver"]["name"] == "Sam Supervisor"
        assert first["approver"]["position"] == "Team Lead"
        assert first["notes"] == "ok"
        assert second["approver"] is None
        assert second["approver_name"] == "HR Manager"
        assert second["approver_roles"][0]["name"] == "hr_manager"

    def test_view_checkbox_as_bool(self, engine, db_session, people):
        request_type = create_request_type(
            db_session, fields=[{"label": "Agree", "field_type": "checkbox", "is_required": True}],
        )
        submission = engine.submit(request_type, people["requester"], {"agree": "yes"})
        assert engine.view(submission)["fields"][0]["value"] is True

    def test_view_fulfillment_download(self, engine, people, certificate_type):
        submission = engine.submit(certificate_type, people["requester"], {"reason": "x"})
        submission = engine.act(submission, 0, people["hr"], "approved")
        submission = engine.fulfill(submission, people["staff"], FakeUpload("coe.pdf"), "Signed")

        fulfillment = engine.view(submission)["fulfillment"]
        assert fulfillment["download_url"] == f"/api/requests/{submission.id}/fulfillment/download"
        assert fulfillment["original_filename"] == "coe.pdf"
        assert fulfillment["notes"] == "Signed"
        assert fulfillment["fulfilled_by"]["name"] == "Stef Staff"

    def test_can_view(self, engine, db_session, people, leave_type):
        stranger = create_user(db_session)
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})

        assert engine.can_view(submission, people["requester"])
        assert engine.can_view(submission, people["supervisor"])
        assert engine.can_view(submission, people["staff"])  # requests:read
        assert not engine.can_view(submission, stranger)
        assert not engine.can_view(submission, None)


class TestListSubmissions:
    """Listing scopes and filters."""

    def test_mine_scope(self, engine, db_session, people, leave_type):
        engine.submit(leave_type, people["requester"], {"reason": "x"})
        engine.submit(leave_type, create_user(db_session), {"reason": "y"})

        items, total = engine.list_submissions(people["requester"], "mine")
        assert total == 1
        assert items[0].requester.id == people["requester"].id

    def test_approvals_scope_follows_current_step(self, engine, people, leave_type):
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})

        assert engine.list_submissions(people["supervisor"], "approvals")[1] == 1
        assert engine.list_submissions(people["hr"], "approvals")[1] == 0

        engine.act(submission, 0, people["supervisor"], "approved")
        assert engine.list_submissions(people["supervisor"], "approvals")[1] == 0
        assert engine.list_submissions(people["hr"], "approvals")[1] == 1

    def test_approvals_scope_includes_fulfillment_queue(self, engine, people, certificate_type):
        submission = engine.submit(certificate_type, people["requester"], {"reason": "x"})
        engine.act(submission, 0, people["hr"], "approved")

        assert engine.list_submissions(people["staff"], "approvals")[1] == 1
        assert engine.list_submissions(people["hr"], "approvals")[1] == 1
        assert engine.list_submissions(people["supervisor"], "approvals")[1] == 0

    def test_approvals_scope_uses_injected_membership(self, db_session, storage, sender, people, leave_type):
        outsider = create_user(db_session)
        engine = WorkflowEngine(
            db_session,
            membership=StaticRoleMembership({people["supervisor_role"].id: [outsider]}),
            hooks=HookRegistry.default(storage=storage, send=sender),
            storage=storage,
        )
        submission = engine.submit(leave_type, people["requester"], {"reason": "x"})

        assert engine.can_act(submission, outsider)
        items, total = engine.list_submissions(outsider, "approvals")
        assert total == 1
        assert items[0].id == submission.id
        assert engine.list_submissions(people["supervisor"], "approvals")[1] == 0

    def test_all_scope_requires_permission(self, engine, db_session, people, leave_type):
        with pytest.raises(InvalidActorError):
            engine.list_submissions(people["requester"], "all")

        auditor = create_user(db_session, permissions=["requests:list"])
        engine.submit(leave_type, people["requester"], {"reason": "x"})
        assert engine.list_submissions(auditor, "all")[1] == 1

    def test_unknown_scope(self, engine, people):
        with pytest.raises(ValidationError):
            engine.list_submissions(people["requester"], "everything")

    def test_filters(self, engine, db_session, people, leave_type, certificate_type):
        admin = create_user(db_session, permissions=["*:*"])
        first = engine.submit(leave_type, people["requester"], {"reason": "x"})
        engine.submit(certificate_type, people["requester"], {"reason": "y"})
        engine.act(first, 0, people["supervisor"], "rejected", "No")

        assert engine.list_submissions(admin, "all", status="rejected")[1] == 1
        assert engine.list_submissions(admin, "all", request_type_id=certificate_type.id)[1] == 1
        assert engine.list_submissions(admin, "all", search=first.reference_code)[1] == 1
        assert engine.list_submissions(admin, "all", search="riley")[1] == 2

    def test_pagination(self, engine, people, leave_type):
        for n in range(5):
            engine.submit(leave_type, people["requester"], {"reason": str(n)})
        items, total = engine.list_submissions(people["requester"], "mine", page=2, per_page=2)
        assert total == 5
        assert len(items) == 2
