"""Submission workflow states and transitions.

State Machine Diagram:

    ┌──────────┐
    │ PENDING  │ ← Initial state (submitted, approval chain running)
    └────┬─────┘
         │
         ├──────────────────────┬──────────────────────┐
         │ approve_all          │ require_fulfillment  │ reject
    ┌────▼─────┐          ┌─────▼───────┐        ┌─────▼────┐
    │ APPROVED │          │ FULFILLMENT │        │ REJECTED │
    └────┬─────┘          └─────┬───────┘        └──────────┘
         │ complete             │ fulfill
    ┌────▼──────┐         ┌─────▼─────┐
    │ COMPLETED │         │ COMPLETED │
    └───────────┘         └───────────┘

APPROVED is transient: a type without a fulfillment stage moves on to
COMPLETED within the same unit of work.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class SubmissionStatus(str, Enum):
    """Lifecycle states of a request submission."""

    PENDING = "pending"             # Awaiting approval steps
    APPROVED = "approved"           # All steps approved, no fulfillment stage
    FULFILLMENT = "fulfillment"     # All steps approved, awaiting document upload

    # Terminal states
    COMPLETED = "completed"
    REJECTED = "rejected"


class SubmissionTransition(str, Enum):
    """Actions that trigger status transitions."""

    APPROVE_ALL = "approve_all"                  # PENDING → APPROVED
    REQUIRE_FULFILLMENT = "require_fulfillment"  # PENDING → FULFILLMENT
    COMPLETE = "complete"                        # APPROVED → COMPLETED
    FULFILL = "fulfill"                          # FULFILLMENT → COMPLETED
    REJECT = "reject"                            # PENDING → REJECTED


class ActionStatus(str, Enum):
    """Status of a single approval step."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(str, Enum):
    """Decisions an approver can record on the current step."""
    APPROVED = "approved"
    REJECTED = "rejected"


class ApproverType(str, Enum):
    USER = "user"
    ROLE = "role"


class TransitionRule(NamedTuple):
    """Defines a valid status transition."""
    from_state: SubmissionStatus
    to_state: SubmissionStatus
    transition: SubmissionTransition


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(SubmissionStatus.PENDING, SubmissionStatus.APPROVED, SubmissionTransition.APPROVE_ALL),
    TransitionRule(SubmissionStatus.PENDING, SubmissionStatus.FULFILLMENT, SubmissionTransition.REQUIRE_FULFILLMENT),
    TransitionRule(SubmissionStatus.APPROVED, SubmissionStatus.COMPLETED, SubmissionTransition.COMPLETE),
    TransitionRule(SubmissionStatus.FULFILLMENT, SubmissionStatus.COMPLETED, SubmissionTransition.FULFILL),
    TransitionRule(SubmissionStatus.PENDING, SubmissionStatus.REJECTED, SubmissionTransition.REJECT),
]

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[SubmissionStatus, Set[SubmissionTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[SubmissionStatus, SubmissionTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.transition)
    TRANSITION_TARGETS[(rule.from_state, rule.transition)] = rule


TERMINAL_STATES: Set[SubmissionStatus] = {
    SubmissionStatus.COMPLETED,
    SubmissionStatus.REJECTED,
}

# States in which somebody still has to do something
OPEN_STATES: Set[SubmissionStatus] = {
    SubmissionStatus.PENDING,
    SubmissionStatus.APPROVED,
    SubmissionStatus.FULFILLMENT,
}


def can_transition(from_state: SubmissionStatus, transition: SubmissionTransition) -> bool:
    """Check if a transition is valid from the given state."""
    return transition in VALID_TRANSITIONS.get(from_state, set())


def get_transition_rule(
    from_state: SubmissionStatus, transition: SubmissionTransition
) -> Optional[TransitionRule]:
    return TRANSITION_TARGETS.get((from_state, transition))


def get_target_state(
    from_state: SubmissionStatus, transition: SubmissionTransition
) -> Optional[SubmissionStatus]:
    """Get the target state for a transition."""
    rule = get_transition_rule(from_state, transition)
    return rule.to_state if rule else None
