"""Domain exceptions for the generation relay.

Each exception carries a stable `error_code` for log tagging. The streaming
endpoint maps them to in-band `[Error]` events; they never escape as raw
tracebacks to the browser.
"""


class RelayError(Exception):
    """Base class for relay domain errors."""

    error_code = "relay_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MalformedRequestError(RelayError):
    """Exception raised when a request is neither a chat message nor a transform."""

    error_code = "malformed_request"

    def __init__(
        self,
        message: str = "Either message or selection with action is required",
    ) -> None:
        super().__init__(message)


class UpstreamStatusError(RelayError):
    """The backend answered with a non-success HTTP status."""

    error_code = "upstream_status"

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamGenerationError(RelayError):
    """The backend reported an error record inside a successful stream."""

    error_code = "upstream_generation"

    def __init__(self, message: str = "Generation failed") -> None:
        super().__init__(message)


class UpstreamConnectionError(RelayError):
    """The relay could not reach the backend, or lost it mid-stream."""

    error_code = "upstream_unreachable"

    def __init__(self, message: str = "Connection error occurred") -> None:
        super().__init__(message)
