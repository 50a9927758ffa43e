"""
Custom exceptions for the route declaration engine.
"""

from http import HTTPStatus
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .schema import Issue

ValidationErrors = Dict[str, List["Issue"]]


def status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return f"Status {status_code}"


class RouteSpecError(Exception):
    """Base exception for framework errors that are not HTTP answers."""

    pass


class RouteConfigurationError(RouteSpecError):
    """Raised at registration time when a route declaration is inconsistent."""

    pass


class ConfigurationError(RouteSpecError):
    """Raised when an APIConfig fails validation."""

    pass


class DependencyResolutionError(RouteSpecError):
    """Raised when a provider cannot be resolved, e.g. a provider cycle."""

    pass


class ClientDisconnected(RouteSpecError):
    """Raised by the transport when the client goes away mid-request."""

    pass


class HTTPException(Exception):
    """An error that maps directly onto an HTTP response.

    The default handler answers with ``status_code`` and a ``{"message": ...}``
    JSON body. ``message`` defaults to the status reason phrase.
    """

    status_code = 500

    def __init__(self, status_code: Optional[int] = None, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        if status_code is not None:
            self.status_code = status_code
        self.message = message or status_phrase(self.status_code)
        self.headers = headers or {}
        super().__init__(self.message)

    def body(self) -> Dict[str, Any]:
        return {"message": self.message}


class Unauthorized(HTTPException):
    """No principal could be established for a protected route."""

    status_code = 401

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(message=message, headers=headers)


class Forbidden(HTTPException):
    """The principal lacks a scope the route requires."""

    status_code = 403

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(message=message, headers=headers)


class RequestValidationError(HTTPException):
    """Aggregated request validation failures, keyed by field group."""

    status_code = 400

    def __init__(self, errors: ValidationErrors, status_code: Optional[int] = None, message: str = "Request validation failed"):
        self.errors = errors
        super().__init__(status_code=status_code, message=message)

    def body(self) -> Dict[str, Any]:
        from .error_models import ValidationErrorResponse

        return ValidationErrorResponse.from_errors(self.errors, self.message).model_dump(mode="json", by_alias=True)


class ResponseValidationError(HTTPException):
    """A handler produced a payload that breaks its declared response schema.

    This is a server defect: the client only ever sees a generic 500.
    """

    status_code = 500

    def __init__(self, response_status: int, issues: List["Issue"]):
        self.response_status = response_status
        self.issues = issues
        super().__init__(message=HTTPStatus.INTERNAL_SERVER_ERROR.phrase)

    def __str__(self) -> str:
        details = "; ".join(f"{'.'.join(issue.path) or '<root>'}: {issue.message}" for issue in self.issues)
        return f"Response for status {self.response_status} failed validation: {details}"
