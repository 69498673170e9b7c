"""Error taxonomy shared by the embedding pipeline, chat coordinator and API."""


class LectureChatError(Exception):
    """Base class for errors raised by this service."""

    default_message = "An error occurred"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(LectureChatError):
    """Malformed input. Surfaced to the caller with details, no side effects."""

    default_message = "Invalid request"

    def __init__(self, message: str | None = None, details: list[dict] | None = None):
        super().__init__(message)
        self.details = details or []


class AuthorizationError(LectureChatError):
    """The caller does not own the lecture, chat or course it targets."""

    default_message = "Access denied"


class UpstreamServiceError(LectureChatError):
    """Embedding, generation or storage service failed or timed out.

    Never retried inside the service; callers may retry the whole request.
    """

    default_message = "Upstream service failed"


class DataConsistencyError(LectureChatError):
    """A stored transcript breaks the embedded-prefix invariant."""

    default_message = "Transcript embedding state is inconsistent"
