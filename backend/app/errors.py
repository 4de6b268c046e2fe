"""
Domain errors raised by the assessment engine and compliance evaluator.

Services raise these synchronously; route handlers translate them into
HTTP responses.
"""


class ComplianceError(Exception):
    """Base class for portal domain errors."""


class EmptyQuestionPool(ComplianceError):
    """The question bank has no questions, so no session can start."""

    def __init__(self, message: str = "Question bank is empty; cannot start an assessment"):
        super().__init__(message)


class SessionAlreadyFinished(ComplianceError):
    """An action was submitted to a session that reached a terminal state."""

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(f"Assessment session is already {phase.lower()}")


class InvalidTransition(ComplianceError, ValueError):
    """The requested action is not allowed in the session's current phase."""


class InvalidResultRecord(ComplianceError):
    """
    A history entry could not be interpreted.

    Attributes:
        index: Position of the record in the history it came from
        value: The offending value
        reason: Human-readable description of the problem
    """

    def __init__(self, reason: str, value=None, index: int = None):
        self.reason = reason
        self.value = value
        self.index = index
        location = f" (record {index})" if index is not None else ""
        super().__init__(f"Invalid result record{location}: {reason}")

    def to_dict(self) -> dict:
        return {"index": self.index, "reason": self.reason, "value": str(self.value)}


class CertificateUnavailable(ComplianceError):
    """A certificate was requested for a member who is not currently certified."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"No certificate available: certification is {state.replace('_', ' ')}")


class SessionConflict(ComplianceError):
    """The stored session changed between loading it and writing it back."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Assessment session {session_id} was changed by another request")
