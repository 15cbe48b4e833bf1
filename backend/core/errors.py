from typing import Any, Optional


class GenerationError(Exception):
    """Base class for failures raised by the generation pipeline.

    ``status_code`` is the HTTP status the API layer answers with. Generators
    attach the per-call record as ``call`` before re-raising.
    """

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.call: Optional[Any] = None


class ConfigurationError(GenerationError):
    status_code = 503

    def __init__(self, message: str = "AI features are not configured"):
        super().__init__(message)


class TransportError(GenerationError):
    status_code = 502


class GenerationTimeout(TransportError):
    status_code = 504


class ParseError(GenerationError):
    """Model output could not be decoded. Only a bounded snippet is kept."""

    status_code = 502
    SNIPPET_LIMIT = 500

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.snippet = truncate_snippet(raw, self.SNIPPET_LIMIT)


class IntegrityError(GenerationError):
    status_code = 422


class NotFoundError(GenerationError):
    status_code = 404


def truncate_snippet(text: str, limit: int = ParseError.SNIPPET_LIMIT) -> str:
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "... (truncated)"
