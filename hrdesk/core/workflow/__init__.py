"""Request approval workflow for HR Desk.

Status model, state machine and domain errors. The engine itself lives in
``hrdesk.core.workflow.engine``.
"""

from .states import SubmissionStatus, SubmissionTransition, ActionStatus, Decision, VALID_TRANSITIONS
from .machine import SubmissionStateMachine
from .errors import (
    WorkflowError,
    ValidationError,
    InvalidActorError,
    StepNotCurrentError,
    InvalidStateError,
)

__all__ = [
    "SubmissionStatus",
    "SubmissionTransition",
    "ActionStatus",
    "Decision",
    "VALID_TRANSITIONS",
    "SubmissionStateMachine",
    "WorkflowError",
    "ValidationError",
    "InvalidActorError",
    "StepNotCurrentError",
    "InvalidStateError",
]
