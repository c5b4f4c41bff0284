"""Submission state machine.

Validates status transitions and records them so the engine can persist
the history as submission events.
"""

from typing import Optional, Dict, Any
from uuid import UUID

from hrdesk.db.base import utcnow

from .errors import InvalidStateError
from .states import (
    SubmissionStatus,
    SubmissionTransition,
    can_transition,
    get_transition_rule,
    TERMINAL_STATES,
)


class SubmissionStateMachine:
    """
    State machine for one submission.

    The machine only knows the transition table; who may trigger a
    transition is decided by the engine before calling ``transition``.
    """

    def __init__(self, entity_id: Optional[UUID], current_state: SubmissionStatus):
        self.entity_id = entity_id
        self._state = SubmissionStatus(current_state)
        self._transition_history: list[Dict[str, Any]] = []

    @property
    def state(self) -> SubmissionStatus:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_perform(self, transition: SubmissionTransition) -> bool:
        return can_transition(self._state, transition)

    def get_available_transitions(self) -> list[SubmissionTransition]:
        return [t for t in SubmissionTransition if self.can_perform(t)]

    def transition(
        self,
        transition: SubmissionTransition,
        *,
        comment: Optional[str] = None,
        user_id: Optional[UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SubmissionStatus:
        """
        Perform a status transition.

        Args:
            transition: The transition to perform
            comment: Optional comment recorded with the transition
            user_id: ID of the user that caused the transition
            metadata: Additional data to record

        Returns:
            The new state after transition

        Raises:
            InvalidStateError: If the transition is not allowed from the current state
        """
        rule = get_transition_rule(self._state, transition)
        if rule is None:
            raise InvalidStateError(
                self._state.value,
                transition.value,
                f"Cannot perform {transition.value} from status {self._state.value}",
            )

        record = {
            "entity_id": self.entity_id,
            "from_state": self._state.value,
            "to_state": rule.to_state.value,
            "transition": transition.value,
            "user_id": user_id,
            "comment": comment,
            "metadata": metadata or {},
            "timestamp": utcnow(),
        }
        self._transition_history.append(record)
        self._state = rule.to_state
        return self._state

    def get_history(self) -> list[Dict[str, Any]]:
        """Transitions performed through this machine, oldest first."""
        return self._transition_history.copy()
