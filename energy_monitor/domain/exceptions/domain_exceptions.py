"""
Domain Exceptions - Custom exceptions for domain-specific errors.
"""
from datetime import date
from typing import Any, Dict, Optional


class DomainException(Exception):
    """
    Base exception for all domain-related errors.

    status_code is the HTTP status the API answers with; the API registers a
    single handler for the whole hierarchy.
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


class EntityNotFoundException(DomainException):
    """Raised when a requested entity cannot be found."""

    status_code = 404

    def __init__(
        self,
        entity_type: str,
        entity_id: Optional[Any] = None,
        message: Optional[str] = None
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        msg = message or f"{entity_type} not found"
        if entity_id is not None:
            msg = f"{entity_type} with id '{entity_id}' not found"
        super().__init__(
            message=msg,
            code='NOT_FOUND',
            details={'entity_type': entity_type, 'entity_id': str(entity_id) if entity_id is not None else None}
        )


class ValidationException(DomainException):
    """
    Raised when validation fails before any I/O is attempted.

    Can contain multiple validation errors for different fields.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Dict[str, list]] = None,
        code: str = 'VALIDATION_ERROR',
    ):
        self.errors = errors or {}
        super().__init__(
            message=message,
            code=code,
            details={'validation_errors': self.errors}
        )


class InvalidFilterException(ValidationException):
    """Raised when a series filter pattern is malformed."""

    def __init__(self, pattern: str, error: str, details: str):
        self.pattern = pattern
        self.error = error
        super().__init__(
            message=error,
            errors={'filter': [details]},
            code='INVALID_FILTER',
        )
        self.details['pattern'] = pattern


class InvalidDateRangeException(ValidationException):
    """Raised when a date range fails the both-or-neither, ordering or floor checks."""

    def __init__(
        self,
        message: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ):
        self.start = start
        self.end = end
        super().__init__(
            message=message,
            errors={'date_range': [message]},
            code='INVALID_DATE_RANGE',
        )


class ReadingOutOfRangeException(DomainException):
    """Raised when a reading falls outside the interval window of a batch."""

    status_code = 500

    def __init__(self, point_key: str, measurement_time_ms: int, range_start_ms: int, range_end_ms: int):
        super().__init__(
            message=(
                f"Cannot add reading for {point_key} with timestamp {measurement_time_ms} "
                f"outside range boundaries [{range_start_ms}, {range_end_ms}]"
            ),
            code='READING_OUT_OF_RANGE',
            details={
                'point_key': point_key,
                'measurement_time_ms': measurement_time_ms,
                'range_start_ms': range_start_ms,
                'range_end_ms': range_end_ms,
            }
        )
