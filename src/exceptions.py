"""Domain exception hierarchy for structured error responses.

Every exception carries a ``retryable`` flag consumed by the issuer worker:
configuration and business errors are final, transport errors are retried.
"""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


class BusinessRuleException(AppException):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class UnknownCustomerException(NotFoundException):
    code = "UNKNOWN_CUSTOMER"


class InvalidCaseStateException(ConflictException):
    code = "INVALID_CASE_STATE"


class InvalidTransitionException(ConflictException):
    code = "INVALID_TRANSITION"


class StaleStateException(ConflictException):
    """A conditional write found the row in a different state than expected."""

    code = "STALE_STATE"
    retryable = True


# ---------------------------------------------------------------------------
# AFIP: configuration (fatal)
# ---------------------------------------------------------------------------


class ConfigurationException(AppException):
    code = "CONFIGURATION_ERROR"
    status_code = 500


class CertificateMissingException(ConfigurationException):
    code = "CERT_NOT_FOUND"


class SigningFailureException(ConfigurationException):
    code = "SIGNING_FAILED"


# ---------------------------------------------------------------------------
# AFIP: transport and protocol (retryable)
# ---------------------------------------------------------------------------


class TransportException(AppException):
    code = "UPSTREAM_UNAVAILABLE"
    status_code = 502
    retryable = True


class IdentityServiceUnreachableException(TransportException):
    code = "WSAA_UNREACHABLE"


class InvoicingServiceUnreachableException(TransportException):
    code = "WSFE_UNREACHABLE"


class SoapFaultException(TransportException):
    code = "SOAP_FAULT"


class AlreadyAuthenticatedException(TransportException):
    """The identity service still holds a valid ticket we no longer have."""

    code = "ALREADY_AUTHENTICATED"
    status_code = 409


# ---------------------------------------------------------------------------
# AFIP: business rejection (final)
# ---------------------------------------------------------------------------


class AfipRejectionException(BusinessRuleException):
    code = "AFIP_REJECTED"

    def __init__(self, afip_code: str, afip_message: str) -> None:
        super().__init__(
            f"AFIP ({afip_code}): {afip_message}",
            details=[{"afipCode": afip_code, "afipMessage": afip_message}],
        )
        self.afip_code = afip_code
        self.afip_message = afip_message


def is_retryable(exc: BaseException) -> bool:
    """Unknown failures (network, database) are treated as transient."""
    if isinstance(exc, AppException):
        return exc.retryable
    return True
