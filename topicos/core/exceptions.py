"""Error taxonomy for the content organization pipeline."""


class TopicOSError(Exception):
    """Base exception for TopicOS errors."""


class ConfigurationError(TopicOSError):
    """Raised when no completion backend is configured. Fatal, never retried."""


class SchemaValidationFailure(TopicOSError):
    """Raised when model output never matched its schema, repair attempts included."""

    def __init__(self, message: str, errors: list[str], raw_output: str, attempts: int = 2):
        super().__init__(message)
        self.errors = errors
        self.raw_output = raw_output
        self.attempts = attempts


class BackendError(TopicOSError):
    """Raised when a completion backend call fails at the transport or vendor level."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class SourceSearchError(TopicOSError):
    """Raised by a source connector when a search cannot be performed."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class ContentFetchError(TopicOSError):
    """Raised when full content for a single record cannot be fetched."""

    def __init__(self, message: str, record_id: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.record_id = record_id
        self.recoverable = recoverable


class NotFoundError(TopicOSError):
    """Raised when an owner-scoped lookup finds nothing."""
