from typing import Optional


class ScopingError(Exception):
    """Base class for failures raised by the scoping core."""


class AdmissionDenied(ScopingError):
    """The caller exceeded its request window."""

    def __init__(self, reset_at: float):
        super().__init__(f"Rate limit exceeded, resets at {reset_at}")
        self.reset_at = reset_at


class ContextNotFound(ScopingError):
    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class ValidationFailed(ScopingError):
    """A structured payload failed schema validation."""

    def __init__(self, error: str):
        super().__init__(error)
        self.error = error


class StreamProtocolError(ScopingError):
    """The decoded provider stream broke an ordering invariant."""


class ProviderError(ScopingError):
    """A failure reported by the text-generation provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return is_transient_status(self.status_code)


def is_transient_status(status_code: Optional[int]) -> bool:
    """529 (overloaded) and any 5xx are transient; everything else, including no status, is fatal."""
    if status_code is None:
        return False
    return status_code == 529 or 500 <= status_code < 600
