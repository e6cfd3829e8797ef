# quiz/errors.py

class QuizError(Exception):
    """Base for every recoverable, per-operation quiz failure."""


class NotAuthenticated(QuizError):
    def __init__(self, message: str = "No authenticated user"):
        super().__init__(message)


class StoreUnavailable(QuizError):
    """The progress store could not be reached or rejected the call."""

    def __init__(self, operation: str, reason: str = ""):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Progress store unavailable during {operation}: {reason}".rstrip(": "))


class MalformedCatalogReference(QuizError):
    def __init__(self, kind: str, ref_id: str):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"Unknown {kind} '{ref_id}'")


class InvariantViolation(QuizError):
    pass
