# Overview: Typed error kinds raised by the core services.

"""
Every business-rule failure is a CoinSealError subclass carrying:

- code: stable machine-readable kind (safe to put in API responses)
- http_status: what the HTTP boundary answers with
- retryable: True only for concurrency/storage failures; business-rule
  errors are deterministic and must not be retried

Catch by type, never by message:

    try:
        ledger_service.transfer_coins(actor, to_id, 10, reason)
    except InsufficientBalanceError as e:
        ...
"""

from __future__ import annotations


class CoinSealError(Exception):
    """Base class for all core errors."""
    code = "ERROR"
    http_status = 500
    retryable = False

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ForbiddenError(CoinSealError):
    """Role or ownership check failed."""
    code = "FORBIDDEN"
    http_status = 403


class NotFoundError(CoinSealError):
    """Referenced entity does not exist."""
    code = "NOT_FOUND"
    http_status = 404


class RecipientNotFoundError(NotFoundError):
    """Recipient account not found."""
    code = "RECIPIENT_NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    """Session not found."""
    code = "SESSION_NOT_FOUND"


class ValidationError(CoinSealError):
    """Malformed or missing input."""
    code = "VALIDATION_ERROR"
    http_status = 400


class SelfTransferError(ValidationError):
    """Cannot transfer coins to yourself."""
    code = "SELF_TRANSFER"


class NotInCompanyError(ValidationError):
    """Operator must belong to a company."""
    code = "NOT_IN_COMPANY"


class InvalidAmountError(CoinSealError):
    """Amount must be a positive integer."""
    code = "INVALID_AMOUNT"
    http_status = 400


class InsufficientBalanceError(CoinSealError):
    """Insufficient coins."""
    code = "INSUFFICIENT_BALANCE"
    http_status = 400


class InsufficientCompanyBalanceError(InsufficientBalanceError):
    """Company has insufficient coins to create a session."""
    code = "INSUFFICIENT_COMPANY_BALANCE"


class DuplicateIdentityError(CoinSealError):
    """Email already in use."""
    code = "DUPLICATE_IDENTITY"
    http_status = 409


class DuplicateBarcodeError(CoinSealError):
    """Duplicate barcode detected."""
    code = "DUPLICATE_BARCODE"
    http_status = 409


class AlreadySealedError(CoinSealError):
    """Session already has a seal."""
    code = "ALREADY_SEALED"
    http_status = 409


class AlreadyVerifiedError(CoinSealError):
    """Seal already verified."""
    code = "ALREADY_VERIFIED"
    http_status = 409


class HasDependentsError(CoinSealError):
    """Account has dependent records."""
    code = "HAS_DEPENDENTS"
    http_status = 409


class ConflictError(CoinSealError):
    """Concurrent update conflict; retry the operation."""
    code = "CONFLICT"
    http_status = 409
    retryable = True


class OperationTimeoutError(CoinSealError):
    """Timed out waiting for a database lock; retry the operation."""
    code = "TIMEOUT"
    http_status = 503
    retryable = True


class SystemConfigurationError(CoinSealError):
    """System configuration error."""
    code = "SYSTEM_CONFIGURATION_ERROR"
    http_status = 500


class UnavailableError(CoinSealError):
    """Storage unavailable; retry later."""
    code = "UNAVAILABLE"
    http_status = 503
    retryable = True
