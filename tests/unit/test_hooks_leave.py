"""Tests for leave balance bookkeeping and the hook registry."""

from datetime import date

import pytest

from hrdesk.core.workflow import leave
from hrdesk.core.workflow.errors import ValidationError
from hrdesk.core.workflow.hooks import (
    Hook, HookContext, HookEvent, HookPhase, HookRegistry,
    LeaveBalanceHook, NotificationHook, DocumentGenerationHook,
)
from hrdesk.db.models import RequestSubmission

from tests.factories import (
    LEAVE_FIELDS, create_holiday, create_leave_balance, create_request_type, create_role, create_user, role_step,
)

# Monday 2026-03-02 .. Friday 2026-03-06
MONDAY = date(2026, 3, 2)
FRIDAY = date(2026, 3, 6)


def _leave_answers(start=MONDAY, end=FRIDAY, leave_type="VL"):
    return {"leave_type": leave_type, "start_date": start.isoformat(), "end_date": end.isoformat()}


@pytest.fixture
def supervisor_role(db_session):
    return create_role(db_session, name="supervisor")


@pytest.fixture
def supervisor(db_session, supervisor_role):
    return create_user(db_session, roles=[supervisor_role])


@pytest.fixture
def leave_type(db_session, supervisor_role):
    return create_request_type(
        db_session, name="Leave Request", kind="leave", fields=LEAVE_FIELDS, steps=[role_step(supervisor_role)],
    )


class TestWorkingDays:

    def test_weekdays_only(self, db_session):
        assert leave.calculate_working_days(db_session, MONDAY, date(2026, 3, 8)) == 5

    def test_holidays_skipped(self, db_session):
        create_holiday(db_session, date(2026, 3, 4))
        assert leave.calculate_working_days(db_session, MONDAY, FRIDAY) == 4

    def test_end_before_start(self, db_session):
        assert leave.calculate_working_days(db_session, FRIDAY, MONDAY) == 0


class TestBalances:

    def test_reserve_and_release(self, db_session):
        user = create_user(db_session)
        create_leave_balance(db_session, user, entitled=10, year=2026)

        assert leave.reserve(db_session, user.id, "VL", 2026, 4)
        balance = leave.get_balance(db_session, user.id, "VL", 2026)
        assert balance.pending == 4
        assert balance.available == 6

        leave.release(db_session, user.id, "VL", 2026, 4)
        assert balance.pending == 0

    def test_reserve_refused_when_short(self, db_session):
        user = create_user(db_session)
        create_leave_balance(db_session, user, entitled=2, year=2026)
        assert not leave.reserve(db_session, user.id, "VL", 2026, 3)

    def test_missing_balance_created_empty(self, db_session):
        user = create_user(db_session)
        balance = leave.get_or_create_balance(db_session, user.id, "SL", 2026)
        assert balance.entitled == 0
        assert balance.available == 0

    def test_deduct_moves_pending_to_used(self, db_session):
        user = create_user(db_session)
        balance = create_leave_balance(db_session, user, entitled=10, pending=3, year=2026)
        leave.deduct(db_session, user.id, "VL", 2026, 3)
        assert balance.pending == 0
        assert balance.used == 3


class TestLeaveBalanceHook:

    def test_submit_reserves_days(self, engine, db_session, leave_type):
        requester = create_user(db_session)
        balance = create_leave_balance(db_session, requester, entitled=10, year=2026)

        submission = engine.submit(leave_type, requester, _leave_answers())

        assert balance.pending == 5
        reservation = LeaveBalanceHook.find_reservation(submission)
        assert reservation == {"leave_type": "VL", "year": 2026, "days": 5.0}

    def test_insufficient_balance_blocks_submission(self, engine, db_session, leave_type):
        requester = create_user(db_session)
        create_leave_balance(db_session, requester, entitled=3, year=2026)
        db_session.commit()

        with pytest.raises(ValidationError) as exc_info:
            engine.submit(leave_type, requester, _leave_answers())
        assert exc_info.value.errors == {"leave_type": "Insufficient leave balance. Only 3 day(s) available."}
        assert db_session.query(RequestSubmission).count() == 0

    def test_end_before_start_rejected(self, engine, db_session, leave_type):
        requester = create_user(db_session)
        with pytest.raises(ValidationError) as exc_info:
            engine.submit(leave_type, requester, _leave_answers(start=FRIDAY, end=MONDAY))
        assert exc_info.value.errors == {"end_date": "End date must be after the start date."}

    def test_new_year_crossing_rejected(self, engine, db_session, leave_type):
        requester = create_user(db_session)
        this_year = create_leave_balance(db_session, requester, entitled=10, year=2026)
        db_session.commit()

        with pytest.raises(ValidationError) as exc_info:
            engine.submit(leave_type, requester, _leave_answers(start=date(2026, 12, 30), end=date(2027, 1, 4)))
        assert exc_info.value.errors == {
            "end_date": "Leave cannot span two calendar years. Submit one request per year.",
        }
        assert this_year.pending == 0
        assert db_session.query(RequestSubmission).count() == 0

    def test_weekend_only_rejected(self, engine, db_session, leave_type):
        requester = create_user(db_session)
        with pytest.raises(ValidationError) as exc_info:
            engine.submit(leave_type, requester, _leave_answers(start=date(2026, 3, 7), end=date(2026, 3, 8)))
        assert "end_date" in exc_info.value.errors

    def test_completion_deducts(self, engine, db_session, leave_type, supervisor):
        requester = create_user(db_session)
        balance = create_leave_balance(db_session, requester, entitled=10, year=2026)

        submission = engine.submit(leave_type, requester, _leave_answers())
        engine.act(submission, 0, supervisor, "approved")

        db_session.refresh(balance)
        assert balance.pending == 0
        assert balance.used == 5

    def test_rejection_releases(self, engine, db_session, leave_type, supervisor):
        requester = create_user(db_session)
        balance = create_leave_balance(db_session, requester, entitled=10, year=2026)

        submission = engine.submit(leave_type, requester, _leave_answers())
        engine.act(submission, 0, supervisor, "rejected", "Peak season")

        db_session.refresh(balance)
        assert balance.pending == 0
        assert balance.used == 0

    def test_generic_types_untouched(self, engine, db_session, supervisor_role):
        requester = create_user(db_session)
        balance = create_leave_balance(db_session, requester, entitled=10, year=2026)
        generic = create_request_type(db_session, fields=LEAVE_FIELDS, steps=[role_step(supervisor_role)])

        engine.submit(generic, requester, _leave_answers())
        assert balance.pending == 0


class RecordingHook(Hook):
    name = "recording"
    events = (HookEvent.COMPLETED,)

    def __init__(self, phase, fail=False):
        self.phase = phase
        self.fail = fail
        self.seen = []

    def run(self, ctx):
        self.seen.append(ctx.event)
        if self.fail:
            raise RuntimeError("boom")


class TestHookRegistry:

    def test_default_registration_order(self, storage):
        registry = HookRegistry.default(storage=storage, send=lambda *a, **k: [])
        assert [type(h) for h in registry.hooks] == [LeaveBalanceHook, DocumentGenerationHook, NotificationHook]

    def test_default_without_storage_skips_documents(self):
        registry = HookRegistry.default(send=lambda *a, **k: [])
        assert [h.name for h in registry.hooks] == ["leave_balance", "notifications"]

    def test_phases_are_separate(self, db_session, leave_type):
        in_tx = RecordingHook(HookPhase.IN_TRANSACTION)
        after = RecordingHook(HookPhase.AFTER_COMMIT)
        registry = HookRegistry()
        registry.register(in_tx)
        registry.register(after)

        submission = RequestSubmission(request_type=leave_type, reference_code="REQ-TEST")
        contexts = [HookContext(db=db_session, submission=submission, event=HookEvent.COMPLETED)]
        registry.run_in_transaction(contexts)
        assert in_tx.seen == [HookEvent.COMPLETED]
        assert after.seen == []

        registry.run_after_commit(contexts)
        assert after.seen == [HookEvent.COMPLETED]

    def test_after_commit_failure_is_contained(self, db_session, leave_type):
        failing = RecordingHook(HookPhase.AFTER_COMMIT, fail=True)
        following = RecordingHook(HookPhase.AFTER_COMMIT)
        registry = HookRegistry([failing, following])

        submission = RequestSubmission(request_type=leave_type, reference_code="REQ-TEST")
        registry.run_after_commit([HookContext(db=db_session, submission=submission, event=HookEvent.COMPLETED)])
        assert following.seen == [HookEvent.COMPLETED]

    def test_in_transaction_failure_propagates(self, db_session, leave_type):
        registry = HookRegistry([RecordingHook(HookPhase.IN_TRANSACTION, fail=True)])
        submission = RequestSubmission(request_type=leave_type, reference_code="REQ-TEST")
        with pytest.raises(RuntimeError):
            registry.run_in_transaction([HookContext(db=db_session, submission=submission, event=HookEvent.COMPLETED)])
