"""
Main application class.
"""

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import anyio

from .config import APIConfig
from .context import RequestContext, RequestState
from .dependencies import derive_security
from .error_models import ErrorResponse, ValidationErrorResponse
from .exceptions import (
    ClientDisconnected,
    HTTPException,
    RequestValidationError,
    ResponseValidationError,
    RouteConfigurationError,
)
from .models import HTTPMethod, JSONResponse, Request, Response
from .normalizer import (
    MULTIPART_MEDIA_TYPE,
    URLENCODED_MEDIA_TYPE,
    ContentDeclaration,
    MediaDeclaration,
    RequestBodySpec,
    media,
    normalize_body,
    normalize_responses,
)
from .openapi import DocumentGenerator, write_document
from .registry import PAYLOAD_GROUPS, RouteDescriptor, RouteRegistry
from .responses import ResponseValidator
from .router import RouteDeclarationMixin, RouteNode, Router, split_path
from .schema import has_binary_property, merge_objects
from .validation import RequestValidator

# Set up logger for this module
logger = logging.getLogger(__name__)

ErrorPredicate = Callable[[BaseException], bool]


class ErrorHandler:
    """A predicate deciding which errors it handles, plus the handler itself."""

    def __init__(self, predicate: ErrorPredicate, handler: Callable, name: Optional[str] = None):
        self.predicate = predicate
        self.handler = handler
        self.name = name or getattr(handler, "__name__", repr(handler))

    def matches(self, error: BaseException) -> bool:
        return bool(self.predicate(error))


class RouteHandler:
    """A registered route: its descriptor and the function serving it."""

    def __init__(self, route: RouteDescriptor, handler: Callable):
        self.route = route
        self.handler = handler
        self.is_async = inspect.iscoroutinefunction(handler)


def _as_predicate(match: Union[type, ErrorPredicate]) -> ErrorPredicate:
    if isinstance(match, type) and issubclass(match, BaseException):
        return lambda error: isinstance(error, match)
    return match


def _json_response(status_code: int, data: Any, headers: Optional[Dict[str, str]] = None) -> Response:
    return Response(status_code, json.dumps(data), dict(headers or {}), content_type="application/json")


class Application(RouteDeclarationMixin):
    """Route declaration engine.

    Routes are declared once with schemas for every part of the request and
    response. The same declaration drives request validation, dependency
    resolution, response validation and the OpenAPI document::

        app = Application(APIConfig(title="Notes"))

        @app.post("/notes", body=NewNote, responses={201: Note})
        async def create_note(ctx):
            note = await store.create(ctx.body)
            return ctx.json(note, 201)

        response = await app.execute(request)
        document = app.openapi()
    """

    def __init__(self, config: Optional[APIConfig] = None):
        self.config = config or APIConfig()
        self.config.validate()

        self.registry = RouteRegistry()
        self._route_tree = RouteNode()
        self._error_handlers: List[ErrorHandler] = []
        self._request_validator = RequestValidator(self.config.validation_policy)
        self._response_validator = ResponseValidator()
        self.global_responses = normalize_responses(self._default_responses())
        self._document = DocumentGenerator(self.registry, self.config, self.global_responses)
        self._serving = False

        # Defaults first: handlers registered later are consulted before them.
        self.add_error_handler(HTTPException, self._handle_http_exception)
        self.add_error_handler(ResponseValidationError, self._handle_response_validation_error)

    def _default_responses(self) -> Dict[int, Any]:
        responses: Dict[int, Any] = {}
        if self.config.default_error_responses:
            responses[self.config.request_validation_status] = media(
                ValidationErrorResponse, description="Request validation failed"
            )
            responses[500] = media(ErrorResponse, description="Internal Server Error")
        responses.update(self.config.global_responses)
        return responses

    # Route registration

    def route(
        self,
        method: HTTPMethod,
        path: str,
        *,
        params: Any = None,
        query: Any = None,
        headers: Any = None,
        cookies: Any = None,
        body: Any = None,
        form: Any = None,
        file: Any = None,
        files: Any = None,
        responses: Any = None,
        dependencies: Optional[Dict[str, Callable]] = None,
        summary: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        operation_id: Optional[str] = None,
        deprecated: bool = False,
        security: Optional[List[Dict[str, List[str]]]] = None,
    ):
        """Decorator registering ``func`` for ``method`` and ``path``.

        ``path`` may use ``{name}`` or ``:name`` parameters. At most one of
        ``body``, ``form``, ``file`` and ``files`` may be declared. The handler
        receives a ``RequestContext`` and may be sync or async.
        """
        payloads = [name for name, value in zip(PAYLOAD_GROUPS, (body, form, file, files)) if value is not None]
        if len(payloads) > 1:
            raise RouteConfigurationError(
                f"{method.value} {path} declares {', '.join(payloads)}; only one request payload is allowed"
            )

        def decorator(func: Callable):
            shared = self.config.global_params
            try:
                route = RouteDescriptor(
                    method=method,
                    path=path,
                    params=merge_objects(params, shared.params),
                    query=merge_objects(query, shared.query),
                    headers=merge_objects(headers, shared.headers),
                    cookies=merge_objects(cookies, shared.cookies),
                    body=normalize_body(body),
                    form=normalize_body(form, self._form_media_types(form)),
                    file=normalize_body(file, (MULTIPART_MEDIA_TYPE,)),
                    files=normalize_body(files, (MULTIPART_MEDIA_TYPE,)),
                    responses=normalize_responses(responses),
                    dependencies=dict(dependencies or {}),
                    summary=summary,
                    description=description or inspect.getdoc(func),
                    tags=tuple(tags or ()),
                    operation_id=operation_id,
                    deprecated=deprecated,
                    security=security,
                )
            except TypeError as exc:
                raise RouteConfigurationError(f"{method.value} {path}: {exc}") from exc

            self._register(RouteHandler(route, func))
            return func

        return decorator

    def _form_media_types(self, form: Any) -> Sequence[str]:
        if form is None or not self._is_schema_declaration(form):
            return ()
        schema = form.schema if isinstance(form, MediaDeclaration) else form
        if has_binary_property(schema):
            return (MULTIPART_MEDIA_TYPE,)
        return (MULTIPART_MEDIA_TYPE, URLENCODED_MEDIA_TYPE)

    @staticmethod
    def _is_schema_declaration(declaration: Any) -> bool:
        return not isinstance(declaration, (ContentDeclaration, RequestBodySpec))

    def _register(self, handler: RouteHandler) -> None:
        route = handler.route
        if self._serving:
            logger.warning(f"Route {route.method.value} {route.path} registered after serving started")
        if route.security is None and derive_security(route.dependencies):
            logger.debug(f"Route {route.method.value} {route.path} derives security from its providers")
        if self.registry.get(route.method, route.path) is not None:
            raise RouteConfigurationError(f"Route {route.method.value} {route.path} is already registered")
        try:
            self._route_tree.add_route(split_path(route.path), route.method, handler)
        except ValueError as exc:
            raise RouteConfigurationError(f"{route.method.value} {route.path}: {exc}") from exc
        self.registry.add(route)

    def group(
        self,
        prefix: str,
        tags: Optional[Sequence[str]] = None,
        dependencies: Optional[Dict[str, Callable]] = None,
    ) -> Router:
        """Router bound to this application whose routes share a prefix, tags and dependencies."""
        return Router(prefix, tags=tags, dependencies=dependencies, app=self)

    def mount(self, prefix: str, router: Router) -> None:
        """Register every route declared on ``router`` under ``prefix``.

        Routes added to the router after mounting are not picked up.
        """
        for definition in router.iter_definitions(prefix):
            self.route(definition.method, definition.path, **definition.options)(definition.handler)

    # Error handling

    def add_error_handler(self, match: Union[type, ErrorPredicate], handler: Callable) -> ErrorHandler:
        """Register ``handler(ctx, error)`` for errors accepted by ``match``.

        ``match`` is an exception class or a predicate. The most recently added
        handler that matches wins, so specific handlers registered after broad
        ones take precedence.
        """
        error_handler = ErrorHandler(_as_predicate(match), handler)
        self._error_handlers.append(error_handler)
        return error_handler

    def handles_error(self, *exception_types: type):
        """Decorator form of ``add_error_handler`` for one or more exception classes.

        Example:
            ```python
            @app.handles_error(NoteNotFound)
            def note_missing(ctx, error):
                return ctx.json({"message": str(error)}, 404)
            ```
        """
        def decorator(func: Callable):
            self.add_error_handler(lambda error: isinstance(error, exception_types), func)
            return func

        return decorator

    def _handle_http_exception(self, ctx: Optional[RequestContext], error: HTTPException) -> Response:
        return _json_response(error.status_code, error.body(), error.headers)

    def _handle_response_validation_error(self, ctx: Optional[RequestContext], error: ResponseValidationError) -> Response:
        route = f"{ctx.request.method.value} {ctx.request.path}" if ctx else "unknown route"
        logger.error(f"Response validation failed for {route}: {error}", exc_info=error)
        return _json_response(500, error.body())

    async def _handle_error(self, ctx: Optional[RequestContext], error: Exception) -> Response:
        for error_handler in reversed(self._error_handlers):
            if not error_handler.matches(error):
                continue
            try:
                result = error_handler.handler(ctx, error)
                if inspect.isawaitable(result):
                    result = await result
                return self._error_result(result, error)
            except Exception as handler_error:
                logger.error(f"Error handler {error_handler.name} failed: {handler_error}", exc_info=handler_error)
                break
        else:
            route = f"{ctx.request.method.value} {ctx.request.path}" if ctx else "unknown route"
            logger.error(f"Unhandled exception processing {route}: {error}", exc_info=error)
        return _json_response(500, ErrorResponse().model_dump())

    def _error_result(self, result: Any, error: Exception) -> Response:
        if isinstance(result, Response):
            return result
        if isinstance(result, JSONResponse):
            return _json_response(result.status_code, result.content, result.headers)
        status_code = error.status_code if isinstance(error, HTTPException) else 500
        return _json_response(status_code, result)

    # Request processing

    async def execute(self, request: Request) -> Response:
        """Serve one request: validate, resolve dependencies, run the handler, validate the result."""
        self._serving = True
        logger.debug(f"{request.method.value} {request.path}: {RequestState.RECEIVED.value}")

        segments = split_path(request.path)
        match = self._route_tree.match(segments, request.method)
        if match is None:
            return self._no_route(request, segments)

        handler, path_params = match
        request.path_params = path_params
        ctx = RequestContext(request, handler.route)
        try:
            return await self._process(ctx, handler)
        except ClientDisconnected:
            raise
        except Exception as error:
            ctx.transition(RequestState.ERROR_RESPONDED)
            return await self._handle_error(ctx, error)

    async def _process(self, ctx: RequestContext, handler: RouteHandler) -> Response:
        route = handler.route

        ctx.transition(RequestState.VALIDATING)
        errors = await self._request_validator.validate(ctx)
        if errors:
            ctx.transition(RequestState.INVALID)
            raise RequestValidationError(errors, status_code=self.config.request_validation_status)
        ctx.transition(RequestState.VALID)

        ctx.transition(RequestState.RESOLVING)
        for name, provider in route.dependencies.items():
            ctx.deps[name] = await ctx.get(provider)

        ctx.transition(RequestState.HANDLING)
        if handler.is_async:
            result = await handler.handler(ctx)
        else:
            result = handler.handler(ctx)
            if inspect.isawaitable(result):
                result = await result

        ctx.transition(RequestState.RESPONSE_VALIDATING)
        response = self._response_validator.render(route.responses, result)
        ctx.transition(RequestState.RESPONDED)
        return response

    def _no_route(self, request: Request, segments: List[str]) -> Response:
        methods = self._route_tree.methods_for(segments)
        if methods:
            allow = ", ".join(sorted(m.value for m in methods))
            return _json_response(405, {"message": "Method Not Allowed"}, {"Allow": allow})
        return _json_response(404, {"message": "Not Found"})

    def execute_sync(self, request: Request) -> Response:
        """Synchronous wrapper for execute().

        Uses anyio.run() to drive the request to completion on a fresh event loop.
        """
        return anyio.run(self.execute, request)

    # OpenAPI

    def openapi(self) -> Dict[str, Any]:
        """The OpenAPI document, regenerated only when routes changed."""
        return self._document.generate()

    def generate_openapi_json(self, indent: Optional[int] = 2) -> str:
        """Generate the OpenAPI 3.1 document as a JSON string."""
        return json.dumps(self.openapi(), indent=indent)

    def save_openapi_json(self, filename: str = "openapi.json", docs_dir: str = "docs") -> str:
        """Generate and save the OpenAPI document to a file in the docs directory."""
        return write_document(self.openapi(), filename, docs_dir)

    def add_openapi_route(self, path: str = "/openapi.json") -> None:
        """Serve the document itself at ``path``."""

        @self.get(path, summary="OpenAPI document", tags=["meta"], responses={200: None})
        def openapi_document(ctx):
            return _json_response(200, self.openapi())
