"""
Per-request context handed to validators, providers and handlers.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .dependencies import Provider, ProviderContext, RequestScope
from .models import JSONResponse, Request, Response, UploadedFile

if TYPE_CHECKING:
    from .registry import RouteDescriptor

logger = logging.getLogger(__name__)


class RequestState(Enum):
    """Lifecycle of a single request."""

    RECEIVED = "received"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"
    RESOLVING = "resolving"
    HANDLING = "handling"
    RESPONSE_VALIDATING = "response_validating"
    RESPONDED = "responded"
    ERROR_RESPONDED = "error_responded"


class RequestContext:
    """Decoded request data plus the request's dependency scope.

    Field groups are filled in by request validation: ``params``, ``query``,
    ``body`` and ``form`` hold the decoded values (model instances when the
    route declared models), ``headers`` is the raw header map with validated
    fields merged over it, ``file``/``files`` hold ``UploadedFile`` objects and
    ``deps`` maps dependency names to resolved values.
    """

    def __init__(self, request: Request, route: "RouteDescriptor", scope: Optional[RequestScope] = None):
        self.request = request
        self.route = route
        self.scope = scope if scope is not None else RequestScope()
        self.state = RequestState.RECEIVED

        self.params: Any = dict(request.path_params)
        self.query: Any = {}
        self.headers: Dict[str, Any] = request.headers.lowered()
        self.cookies: Any = {}
        self.body: Any = None
        self.form: Any = None
        self.file: Optional[UploadedFile] = None
        self.files: Optional[List[UploadedFile]] = None
        self.deps: Dict[str, Any] = {}

    def transition(self, state: RequestState) -> None:
        logger.debug(f"{self.request.method.value} {self.request.path}: {self.state.value} -> {state.value}")
        self.state = state

    async def get(self, provider: Provider) -> Any:
        """Resolve a provider within this request's scope."""
        return await ProviderContext(self).get(provider)

    def json(self, data: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
        """JSON result for ``status_code``; still checked against the declared schema."""
        return JSONResponse(data, status_code, headers)

    def text(self, text: str, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> Response:
        return Response(status_code, text, dict(headers or {}), content_type="text/plain; charset=utf-8")

    def html(self, html: str, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> Response:
        return Response(status_code, html, dict(headers or {}), content_type="text/html; charset=utf-8")
