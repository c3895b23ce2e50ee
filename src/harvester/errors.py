"""
Error Taxonomy

Structured exceptions raised by collectors, pipeline steps and the store.
Every collection failure carries an ErrorType so run logs and health
summaries can be grouped without parsing messages.
"""
import traceback
from enum import Enum
from typing import Any, Dict, Optional

from src.harvester.utils.timeutils import utcnow


class ErrorType(str, Enum):
    """Categories recorded in run error logs."""

    CONNECTION = "CONNECTION_ERROR"
    PARSING = "PARSING_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    TRANSFORMATION = "TRANSFORMATION_ERROR"
    STORAGE = "STORAGE_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


class CollectionError(Exception):
    """
    Base class for failures inside a collection run.

    Attributes:
        message: Human readable description
        source: Source id or collector id the error belongs to
        error_type: Category from ErrorType
        details: Extra structured context (url, field, status code, ...)
    """

    error_type: ErrorType = ErrorType.UNKNOWN

    def __init__(
        self,
        message: str,
        source: Optional[Any] = None,
        error_type: Optional[ErrorType] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        if error_type is not None:
            self.error_type = error_type
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class SourceConnectionError(CollectionError):
    """Endpoint unreachable or answered with a non-success status."""

    error_type = ErrorType.CONNECTION


class ParsingError(CollectionError):
    """Expected structure missing from the fetched markup."""

    error_type = ErrorType.PARSING


class SourceValidationError(CollectionError):
    """A data source failed pre-run validation."""

    error_type = ErrorType.VALIDATION


class StorageError(CollectionError):
    """A persistence operation failed."""

    error_type = ErrorType.STORAGE


class StepError(CollectionError):
    """
    Failure raised by a transformation step.

    The step name travels with the error so the sink can report where a
    record was rejected.
    """

    error_type = ErrorType.TRANSFORMATION

    def __init__(
        self,
        step: str,
        message: str,
        source: Optional[Any] = None,
        error_type: Optional[ErrorType] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, source=source, error_type=error_type, details=details)
        self.step = step


class SourceNotFoundError(LookupError):
    """Raised when a caller references an unknown data source id."""


class DuplicateCollectorError(ValueError):
    """Raised when a collector id is registered twice."""


def classify_exception(exc: BaseException) -> ErrorType:
    """Map an arbitrary exception onto the error taxonomy."""
    if isinstance(exc, CollectionError):
        return exc.error_type
    return ErrorType.UNKNOWN


def build_error_entry(
    exc: BaseException,
    step: Optional[str] = None,
    record_key: Optional[str] = None,
    include_stack: bool = True,
) -> Dict[str, Any]:
    """
    Build one run error-log entry from an exception.

    Returns:
        Dict with message, timestamp, error_type and optional step,
        record_key and stack
    """
    entry: Dict[str, Any] = {
        "message": str(exc) or type(exc).__name__,
        "timestamp": utcnow().isoformat(),
        "error_type": classify_exception(exc).value,
    }
    if step is None and isinstance(exc, StepError):
        step = exc.step
    if step:
        entry["step"] = step
    if record_key:
        entry["record_key"] = record_key
    if include_stack and exc.__traceback__ is not None:
        entry["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return entry
