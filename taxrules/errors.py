"""Tax service errors.

Every error the service raises on purpose derives from ``TaxError`` and
carries the HTTP status it maps to; the API layer renders them as
``{"detail": message}``. Anything else is an infrastructure failure and
surfaces as a 500.
"""

from fastapi import status


class TaxError(Exception):
    """Base exception for tax service errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "tax error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


# Validation errors


class InvalidAmount(TaxError):
    message = "invalid amount"


class InvalidLocation(TaxError):
    message = "invalid location"


class InvalidMethod(TaxError):
    message = "invalid calculation method"


class InvalidRate(TaxError):
    message = "invalid tax rate"


class InvalidDateRange(TaxError):
    message = "invalid date range"


class InvalidAmountRange(TaxError):
    message = "min amount cannot be greater than max amount"


class InvalidTaxType(TaxError):
    message = "invalid tax type"


class InvalidRuleType(TaxError):
    message = "invalid rule type"


class InvalidStatus(TaxError):
    message = "invalid status"


class ValidationFailed(TaxError):
    """Raised for request fields that fail a required/format check."""

    message = "validation failed"


# Business rule errors


class NoApplicableRules(TaxError):
    message = "no applicable tax rules found"


class CannotDeleteRule(TaxError):
    message = "cannot delete active tax rule"


class RuleCodeExists(TaxError):
    message = "tax rule code already exists"


class BulkSizeExceeded(TaxError):
    message = "bulk operation size exceeded"


# Lookups


class TaxRuleNotFound(TaxError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "tax rule not found"


class TaxRateNotFound(TaxError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "tax rate not found"


class TaxNotFound(TaxError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "tax calculation not found"


class IdempotencyConflict(TaxError):
    status_code = status.HTTP_409_CONFLICT
    message = "idempotency key already used with a different request"
