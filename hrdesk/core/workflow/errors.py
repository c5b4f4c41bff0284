"""Domain errors raised by the workflow engine and request catalog."""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WorkflowError):
    """
    Input failed validation.

    ``errors`` maps a field name (answer key, ``file``, ``decision`` ...) to
    a human readable message.
    """

    def __init__(self, message: str = "The given data was invalid.", errors: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.errors = dict(errors or {})


class InvalidActorError(WorkflowError):
    """The acting user is not allowed to perform the operation."""

    def __init__(self, message: str = "You are not authorized to act on this request."):
        super().__init__(message)


class StepNotCurrentError(WorkflowError):
    """An approval decision targeted a step other than the current one."""

    def __init__(self, expected: Optional[int], given: int):
        if expected is None:
            message = f"Step {given} is not awaiting a decision."
        else:
            message = f"Step {given} is not the current step (current step is {expected})."
        super().__init__(message)
        self.expected = expected
        self.given = given


class InvalidStateError(WorkflowError):
    """The operation is not allowed in the entity's current status."""

    def __init__(self, status: str, operation: str, message: Optional[str] = None):
        super().__init__(message or f"Cannot {operation} a request in status '{status}'.")
        self.status = status
        self.operation = operation
