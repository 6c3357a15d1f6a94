"""
PhonePe Payment Gateway Custom Exceptions

This module provides the exception classes used by the PhonePe integration
and the settlement workflow. They follow a single hierarchy so that views
can map any payment failure to an HTTP response with one `except` clause,
while services can still catch the specific failure they care about.

Hierarchy
---------
- PaymentGatewayException (base, 500)
  - ConfigurationError   (500) missing credentials / URLs, never retried
  - AuthError            (401) credentials rejected by PhonePe
  - GatewayError         (502 or upstream status) request rejected by PhonePe
  - GatewayTimeout       (408) network-level timeout
  - NotFoundError        (404) order / seller / product / remote resource missing
  - ValidationError      (400) malformed caller input

Author: Decoryy Development Team
Version: 1.0.0
"""

from typing import Optional, Dict, Any


class PaymentGatewayException(Exception):
    """
    Base exception class for all payment gateway and settlement errors.

    Attributes:
        message (str): Human-readable error message
        status_code (int): HTTP status code the error maps to
        error_code (Optional[str]): PhonePe-specific error code, if any
        details (Dict[str, Any]): Additional error details

    Example:
        >>> try:
        ...     client.query_status("MT1700000000000abc123")
        ... except PaymentGatewayException as e:
        ...     return Response(e.to_dict(), status=e.status_code)
    """

    default_status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize a payment gateway exception.

        Args:
            message: Human-readable error description
            status_code: HTTP status code (falls back to the class default)
            error_code: PhonePe-specific error identifier
            details: Additional context or error details
        """
        self.message = message
        self.status_code = status_code or self.default_status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
            "details": self.details,
            "exception_type": self.__class__.__name__,
        }


class ConfigurationError(PaymentGatewayException):
    """
    Raised when required settings (client credentials, webhook credentials,
    frontend/backend URLs) are missing. Surfaced as 500 and never retried.
    """

    default_status_code = 500

    def __init__(self, message: str, missing: Optional[list] = None) -> None:
        details = {}
        if missing:
            details["missing"] = list(missing)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details)


class AuthError(PaymentGatewayException):
    """
    Raised when PhonePe rejects our credentials or an access token.

    Attributes:
        auth_step (Optional[str]): Where authentication failed
            ("token_request", "api_call", ...)
    """

    default_status_code = 401

    def __init__(
        self,
        message: str,
        auth_step: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.auth_step = auth_step
        super().__init__(message, status_code, error_code)


class GatewayError(PaymentGatewayException):
    """
    Raised when PhonePe answers but rejects the request (non-success body
    or non-2xx status). The upstream status code is kept when known.
    """

    default_status_code = 502


class GatewayTimeout(PaymentGatewayException):
    """
    Raised when a call to PhonePe exceeds its timeout.
    """

    default_status_code = 408

    def __init__(self, message: str = "Request to PhonePe timed out", timeout: Optional[float] = None) -> None:
        details = {}
        if timeout:
            details["timeout"] = timeout
        super().__init__(message, error_code="TIMEOUT", details=details)


class NotFoundError(PaymentGatewayException):
    """
    Raised when an order, seller, product or remote PhonePe resource
    cannot be found.

    Attributes:
        resource (Optional[str]): The type or identifier of the missing resource
    """

    default_status_code = 404

    def __init__(self, message: str = "Resource not found", resource: Optional[str] = None) -> None:
        self.resource = resource
        details = {}
        if resource:
            details["resource"] = resource
        super().__init__(message, error_code="NOT_FOUND", details=details)


class ValidationError(PaymentGatewayException):
    """
    Raised when caller input is malformed.
    """

    default_status_code = 400

    def __init__(self, message: str = "Invalid request", validation_errors: Optional[Dict[str, Any]] = None) -> None:
        details = {}
        if validation_errors:
            details["validation_errors"] = validation_errors
        super().__init__(message, error_code="VALIDATION_ERROR", details=details)


def create_exception_from_response(
    status_code: int,
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> PaymentGatewayException:
    """
    Factory function to create the appropriate exception for an error
    response returned by PhonePe.

    Args:
        status_code: HTTP status code from the response
        message: Error message from the response body
        error_code: PhonePe `code` field, if present
        details: Parsed response body

    Returns:
        Exception instance matching the status code

    Example:
        >>> exc = create_exception_from_response(404, "Order not found")
        >>> isinstance(exc, NotFoundError)
        True
    """
    if status_code == 401 or error_code == "INVALID_CLIENT":
        return AuthError(message, auth_step="api_call", status_code=401, error_code=error_code)
    if status_code == 404:
        return NotFoundError(message, resource=(details or {}).get("resource"))
    if status_code in (408, 504):
        return GatewayTimeout(message)
    return GatewayError(message, status_code=status_code, error_code=error_code, details=details)
