# Domain Exceptions
from .domain_exceptions import (
    DomainException,
    EntityNotFoundException,
    ValidationException,
    InvalidFilterException,
    InvalidDateRangeException,
    ReadingOutOfRangeException,
)

__all__ = [
    'DomainException',
    'EntityNotFoundException',
    'ValidationException',
    'InvalidFilterException',
    'InvalidDateRangeException',
    'ReadingOutOfRangeException',
]
