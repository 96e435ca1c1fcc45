"""
Error Taxonomy

Exceptions raised across the ingestion pipeline and the session registry.
"""

from typing import Optional


class SurveyLensError(Exception):
    """Base class for all SurveyLens errors."""
    pass


class ParseError(SurveyLensError):
    """Raised when the source file has no usable header or content."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class EmptyClassificationResult(SurveyLensError):
    """No column qualified as visualizable. Recorded as a warning, never raised by the pipeline."""
    pass


class SummarizationError(SurveyLensError):
    """A single column's summary could not be produced."""

    def __init__(self, message: str, column_id: Optional[str] = None, reason: str = "error"):
        super().__init__(message)
        self.column_id = column_id
        self.reason = reason  # "timeout", "auth", "quota", "schema", "policy", "connection", "error"


class PersistenceError(SurveyLensError):
    """Backend read/write failure, including authorization and read-only violations."""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class NotFoundError(SurveyLensError):
    """Lookup of an unknown session (or column) id."""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id
