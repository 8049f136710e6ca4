"""Custom exceptions for the savings box engine.

All domain exceptions live here to avoid circular imports between the
rate, yield, tax and box layers. The HTTP edge maps them to status codes.
"""


class SavingsError(Exception):
    """Base exception for all savings engine errors."""


class RateSourceError(SavingsError):
    """Raised when a single benchmark rate fetch fails (timeout, HTTP, payload)."""


class ExternalRateUnavailable(SavingsError):
    """Raised when no fresh, stale or fallback benchmark rate can be produced."""


class InvalidInvestmentConfig(SavingsError):
    """Raised when a box investment configuration is malformed."""


class InvalidInput(SavingsError):
    """Raised when a movement value or type is not acceptable."""


class InsufficientBalance(SavingsError):
    """Raised when a withdrawal exceeds the box's current balance."""


class BoxNotFound(SavingsError):
    """Raised when a box does not exist or belongs to another family."""


class ConcurrentModification(SavingsError):
    """Raised when a box was saved by someone else since it was loaded."""
