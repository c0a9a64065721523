"""
Error taxonomy for the Health Assistant AI Service.

Only ConfigurationError and InvalidRequestError ever reach a caller as a
non-200 response. Extraction and persistence failures are recovered locally.
"""
from typing import Optional


class ConfigurationError(RuntimeError):
    """The completion service credential is missing (HTTP 503)."""


class InvalidRequestError(ValueError):
    """A required input field is missing or invalid (HTTP 400)."""


class PersistenceFailure(RuntimeError):
    """Writing an analysis record to the store failed. Logged, never surfaced."""


# --- Extraction ---

class ExtractionFailure(Exception):
    """Model output could not be turned into a StructuredAnalysis."""

    reason = "extraction_failed"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NoJsonFound(ExtractionFailure):
    reason = "no_json_found"


class MalformedJson(ExtractionFailure):
    reason = "malformed_json"


class MissingField(ExtractionFailure):
    reason = "missing_field"

    def __init__(self, field: str):
        super().__init__(f"Missing required field: {field}", field=field)


class InvalidField(ExtractionFailure):
    reason = "invalid_field"


class EmptyResponse(ExtractionFailure):
    reason = "empty_response"
