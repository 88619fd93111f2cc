"""Errors raised by the studio client."""


class StudioError(Exception):
    """Base class for studio client errors."""


class InvalidSubmission(StudioError, ValueError):
    """The user's submission is incomplete (no prompt, models or ratios)."""


class SubmissionError(StudioError):
    """The backend rejected or failed a generation request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamError(StudioError):
    """Base class for event stream failures."""


class StreamConnectionLost(StreamError):
    """The event stream dropped before its terminal event."""

    def __init__(self, generation_id: str, reason: str = "Connection lost"):
        super().__init__(reason)
        self.generation_id = generation_id
