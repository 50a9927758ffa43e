"""
Declare a route once and get request validation, request-scoped dependency
injection, response validation and an OpenAPI 3.1 document from it.

Schemas are pydantic types. Each route names schemas for its path parameters,
query, headers, cookies, body (or form, file, files) and for its responses by
status code. The same canonical declaration feeds the runtime validators and
the document generator, so the published contract and the enforced contract
cannot drift apart.
"""

from http import HTTPStatus

from .application import Application, ErrorHandler, RouteHandler
from .asgi import ASGIAdapter, create_asgi_app
from .config import APIConfig, GlobalRequestParams, ValidationPolicy
from .context import RequestContext, RequestState
from .dependencies import (
    ProviderContext,
    RequestScope,
    SecurityRequirement,
    bearer_auth,
    derive_security,
    requires_auth,
)
from .error_models import ErrorResponse, ValidationErrorResponse, ValidationIssue
from .exceptions import (
    ClientDisconnected,
    ConfigurationError,
    DependencyResolutionError,
    Forbidden,
    HTTPException,
    RequestValidationError,
    ResponseValidationError,
    RouteConfigurationError,
    Unauthorized,
)
from .models import HTTPMethod, JSONResponse, MultiValueHeaders, Request, Response, UploadedFile
from .normalizer import MediaTypeSpec, RequestBodySpec, ResponseSpec, content, media
from .registry import RouteDescriptor, RouteRegistry
from .router import Router

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "Application",
    "APIConfig",
    "GlobalRequestParams",
    "ValidationPolicy",
    "Router",
    "Request",
    "Response",
    "JSONResponse",
    "UploadedFile",
    "MultiValueHeaders",
    "HTTPMethod",
    "HTTPStatus",
    "RequestContext",
    "RequestState",
    "ProviderContext",
    "RequestScope",
    "SecurityRequirement",
    "requires_auth",
    "bearer_auth",
    "derive_security",
    "media",
    "content",
    "MediaTypeSpec",
    "ResponseSpec",
    "RequestBodySpec",
    "RouteDescriptor",
    "RouteRegistry",
    "ErrorHandler",
    "RouteHandler",
    "ErrorResponse",
    "ValidationErrorResponse",
    "ValidationIssue",
    "HTTPException",
    "Unauthorized",
    "Forbidden",
    "RequestValidationError",
    "ResponseValidationError",
    "RouteConfigurationError",
    "ConfigurationError",
    "DependencyResolutionError",
    "ClientDisconnected",
    "ASGIAdapter",
    "create_asgi_app",
]
