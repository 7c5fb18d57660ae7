"""
Custom exception hierarchy for the profit engine.

Exception Hierarchy:
    ProfitEngineError (base)
    └── ValidationError  - Caller passed invalid input (bad granularity,
                           negative page size, malformed window, ...)

The engine never raises on malformed *data*: missing or garbage fields in a
dataset snapshot degrade to zero. Only caller-contract violations raise, and
their message always starts with "Invalid input" so callers can tell bad
input apart from an empty report.
"""
from typing import Any


class ProfitEngineError(Exception):
    """Base exception for all profit engine errors."""

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ValidationError(ProfitEngineError):
    """
    Input validation failed.

    Raised for caller-contract violations only, never for missing data.
    """

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(f"Invalid input - {field}: {message}")
        self.message = message

    def __str__(self) -> str:
        base = f"Invalid input - {self.field}: {self.message}"
        if self.value is not None:
            return f"{base} (got: {self.value!r})"
        return base
