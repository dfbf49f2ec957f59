"""Error taxonomy for the obligations engine."""


class ObligationError(Exception):
    """Base exception for all obligation engine errors."""


class ValidationError(ObligationError, ValueError):
    """Raised when parameters are rejected before any write happens."""


class OverpaymentError(ValidationError):
    """Raised when a payment exceeds the installment's remaining balance."""


class InactiveObligationError(ObligationError):
    """Raised when mutating an obligation that is not active."""


class NotFoundError(ObligationError):
    """Raised when an obligation or installment does not exist."""


class PersistenceError(ObligationError):
    """Raised when the storage backend fails."""


class ConcurrencyError(PersistenceError):
    """Raised when a record changed between read and compare-and-swap write."""
