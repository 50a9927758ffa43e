"""
ASGI adapter for serving an Application on ASGI servers (Uvicorn, Hypercorn, ...).
"""

import logging
import urllib.parse
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List

from .exceptions import ClientDisconnected
from .models import HTTPMethod, MultiValueHeaders, Request, Response

if TYPE_CHECKING:
    from .application import Application

logger = logging.getLogger(__name__)

Receive = Callable[[], Awaitable[Dict[str, Any]]]
Send = Callable[[Dict[str, Any]], Awaitable[None]]


class ASGIAdapter:
    """
    ASGI 3.0 adapter.

    The adapter handles:
    - Converting ASGI scope/receive/send to a ``Request``
    - Reading the request body from ``receive`` only if the route needs it
    - Converting the ``Response`` back into ASGI messages
    - The lifespan protocol (acknowledged; the engine has no startup work)

    Cancellation is best-effort: when the client disconnects while the body
    is being read the request is abandoned and nothing is sent.

    Example:
        ```python
        from routespec import Application
        from routespec.asgi import ASGIAdapter

        app = Application()
        asgi_app = ASGIAdapter(app)
        # uvicorn module:asgi_app
        ```
    """

    def __init__(self, app: "Application"):
        self.app = app

    async def __call__(self, scope: Dict[str, Any], receive: Receive, send: Send):
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        if scope["type"] != "http":
            await self._send_response(Response(404, "Not Found - Only HTTP protocol is supported", content_type="text/plain"), send)
            return

        try:
            request = self._build_request(scope, receive)
        except ValueError:
            await self._send_response(Response(405, '{"message": "Method Not Allowed"}', content_type="application/json"), send)
            return

        try:
            response = await self.app.execute(request)
        except ClientDisconnected:
            logger.warning(f"Client disconnected during {request.method.value} {request.path}; request abandoned")
            return

        await self._send_response(response, send)

    async def _handle_lifespan(self, receive: Receive, send: Send):
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    def _build_request(self, scope: Dict[str, Any], receive: Receive) -> Request:
        """Build a Request whose body is pulled from ``receive`` on first use."""
        method = HTTPMethod(scope["method"])
        path = scope["path"]

        query_string = scope.get("query_string", b"").decode("latin-1")
        query_params = urllib.parse.parse_qs(query_string, keep_blank_values=True) if query_string else {}

        # ASGI uses lowercase names and bytes
        headers = MultiValueHeaders()
        for header_name, header_value in scope.get("headers", []):
            headers.add(header_name.decode("latin-1").lower(), header_value.decode("latin-1"))

        async def read_body() -> bytes:
            chunks: List[bytes] = []
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    raise ClientDisconnected(f"Client disconnected while sending {method.value} {path}")
                chunks.append(message.get("body", b""))
                if not message.get("more_body", False):
                    return b"".join(chunks)

        return Request(
            method=method,
            path=path,
            headers=headers,
            query_params=query_params,
            body_loader=read_body,
        )

    async def _send_response(self, response: Response, send: Send):
        body = response.body_bytes
        headers = [
            [name.lower().encode("latin-1"), str(value).encode("latin-1")]
            for name, value in (response.headers or {}).items()
        ]
        await send({
            "type": "http.response.start",
            "status": response.status_code,
            "headers": headers,
        })
        await send({
            "type": "http.response.body",
            "body": body,
        })


def create_asgi_app(app: "Application") -> ASGIAdapter:
    """Create an ASGI application from an Application."""
    return ASGIAdapter(app)
