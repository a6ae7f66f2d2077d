"""
Custom exception classes for the payout engine.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class PayoutsException(Exception):
    """Base exception class for the payout engine."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(PayoutsException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class ValidationError(PayoutsException):
    """Raised when data validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(PayoutsException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class ExternalServiceError(PayoutsException):
    """Raised when an external service error occurs."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "EXTERNAL_SERVICE_ERROR"
    ):
        super().__init__(message, code, details)


class ChainReadError(ExternalServiceError):
    """Raised when a contract read or RPC call fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "CHAIN_READ_ERROR")


class IndexerError(ExternalServiceError):
    """Raised when a subgraph query fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "INDEXER_ERROR")


# Pipeline exceptions
class BlockNotFoundError(NotFoundError):
    """Raised when no block exists at or after a timestamp yet."""

    def __init__(self, chain: str, timestamp: int):
        super().__init__(
            f"No block found on {chain} at or after timestamp {timestamp}",
            {"chain": chain, "timestamp": timestamp}
        )


class ZeroBasisError(ValidationError):
    """Raised when proportional allocation has no activity to divide by."""

    def __init__(self, total_budget: Any, recipients: int):
        super().__init__(
            f"Cannot allocate {total_budget} proportionally: total activity is zero",
            {"total_budget": str(total_budget), "recipients": recipients}
        )
        self.code = "ZERO_BASIS"


class InsufficientFundsError(ValidationError):
    """Raised when the paying account cannot cover a batch."""

    def __init__(self, required: Any, available: Any, token: str = ""):
        unit = f" {token}" if token else ""
        super().__init__(
            f"Insufficient funds: required {required}{unit}, available {available}{unit}",
            {"required": str(required), "available": str(available), "token": token}
        )
        self.code = "INSUFFICIENT_FUNDS"


class SubmissionFailedError(ExternalServiceError):
    """Raised when the relay or signer rejects a batch before anything was queued."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "SUBMISSION_FAILED")


class ReconciliationUnavailableError(ExternalServiceError):
    """Raised when a reconciliation source cannot be queried."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "RECONCILIATION_UNAVAILABLE")
