"""
Core data models for the route declaration engine.

These are the transport-facing types: the inbound ``Request`` with its lazily
read body, the outbound ``Response``, the ``JSONResponse`` value wrapper that
still goes through response validation, and ``UploadedFile`` for multipart
file parts.
"""

import json
import logging
from dataclasses import dataclass, field
from email.parser import BytesParser
from email import policy
from enum import Enum
from http.cookies import CookieError, SimpleCookie
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qs

from pydantic_core import core_schema

# Set up logger for this module
logger = logging.getLogger(__name__)


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    HEAD = "HEAD"
    TRACE = "TRACE"


class MultiValueHeaders:
    """
    Multi-value, case-insensitive headers container.

    Lookups ignore case and a header may carry several values (``Cookie``,
    ``Accept``, ``Set-Cookie``). Iteration yields the first value per name.

    Example::

        headers = MultiValueHeaders({"X-Trace": "abc"})
        headers.add("Cookie", "a=1")
        headers.add("cookie", "b=2")
        headers.get("x-trace")       # 'abc'
        headers.get_all("COOKIE")    # ['a=1', 'b=2']
    """

    def __init__(self, data=None):
        # Dict[lowercase_name, List[Tuple[original_name, value]]]
        self._headers: Dict[str, List[Tuple[str, str]]] = {}

        if data is None:
            return
        if isinstance(data, MultiValueHeaders):
            self._headers = {k: list(v) for k, v in data._headers.items()}
        elif isinstance(data, Mapping):
            for key, value in data.items():
                if isinstance(value, (list, tuple)):
                    for v in value:
                        self.add(key, v)
                else:
                    self.add(key, value)
        else:
            for key, value in data:
                self.add(key, value)

    def add(self, name: str, value: str) -> None:
        self._headers.setdefault(name.lower(), []).append((name, value))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        if not isinstance(name, str):
            return default
        values = self._headers.get(name.lower())
        if values:
            return values[0][1]
        return default

    def get_all(self, name: str) -> List[str]:
        return [value for _, value in self._headers.get(name.lower(), [])]

    def set(self, name: str, value: str) -> None:
        """Set a header to a single value, replacing any existing values."""
        self._headers[name.lower()] = [(name, value)]

    def __setitem__(self, name: str, value: str) -> None:
        self.set(name, value)

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._headers

    def __iter__(self):
        for values in self._headers.values():
            if values:
                yield values[0][0]

    def __len__(self) -> int:
        return len(self._headers)

    def keys(self):
        return list(self)

    def items(self):
        """Return (name, first_value) pairs."""
        return [(values[0][0], values[0][1]) for values in self._headers.values() if values]

    def items_all(self):
        """Return all (name, value) pairs including duplicates."""
        result = []
        for values in self._headers.values():
            result.extend(values)
        return result

    def lowered(self) -> Dict[str, str]:
        """Flatten to a plain dict with lower-cased names and first values."""
        return {name: values[0][1] for name, values in self._headers.items() if values}

    def __repr__(self) -> str:
        return f"MultiValueHeaders({self.items_all()!r})"


@dataclass(frozen=True)
class UploadedFile:
    """A file part received in a multipart form.

    Usable directly as a pydantic field type; it reflects into JSON schema as
    a binary string so the document advertises a file upload.
    """

    filename: str
    content_type: str = "application/octet-stream"
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)

    def text(self, encoding: str = "utf-8") -> str:
        return self.data.decode(encoding)

    @classmethod
    def _validate(cls, value: Any) -> "UploadedFile":
        if isinstance(value, cls):
            return value
        raise ValueError("Expected an uploaded file")

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(lambda f: f.filename),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, schema, handler):
        return {"type": "string", "format": "binary"}


def _collapse(values: Dict[str, List[Any]]) -> Dict[str, Any]:
    """A key seen once maps to its value; a repeated key maps to the list."""
    return {key: items[0] if len(items) == 1 else list(items) for key, items in values.items()}


def parse_multipart(body: bytes, content_type: str) -> Dict[str, List[Any]]:
    """Split a multipart/form-data payload into field values and uploaded files."""
    header = f"Content-Type: {content_type}\r\nMIME-Version: 1.0\r\n\r\n".encode("latin-1")
    message = BytesParser(policy=policy.HTTP).parsebytes(header + body)
    if not message.is_multipart():
        raise ValueError("Malformed multipart body")

    fields: Dict[str, List[Any]] = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if not name:
            continue
        payload = part.get_payload(decode=True) or b""
        filename = part.get_filename()
        value: Any
        if filename is not None:
            value = UploadedFile(filename=filename, content_type=part.get_content_type(), data=payload)
        else:
            value = payload.decode(part.get_content_charset() or "utf-8")
        fields.setdefault(str(name), []).append(value)
    return fields


@dataclass
class Request:
    """Represents an HTTP request.

    ``body`` holds the raw bytes when they are already known. Transports that
    stream the payload pass ``body_loader`` instead; it is awaited at most once
    and only when a handler's declaration needs the body.
    """

    method: HTTPMethod
    path: str
    headers: MultiValueHeaders = field(default_factory=MultiValueHeaders)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    path_params: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    body_loader: Optional[Callable[[], Awaitable[bytes]]] = None

    def __post_init__(self):
        if isinstance(self.method, str):
            self.method = HTTPMethod(self.method.upper())
        if not isinstance(self.headers, MultiValueHeaders):
            self.headers = MultiValueHeaders(self.headers)
        self.query_params = {
            key: list(value) if isinstance(value, (list, tuple)) else [value]
            for key, value in (self.query_params or {}).items()
        }
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")
        self._form_cache: Optional[Dict[str, List[Any]]] = None

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "") or ""

    @property
    def media_type(self) -> str:
        return self.content_type.split(";", 1)[0].strip().lower()

    @property
    def content_length(self) -> int:
        """Declared Content-Length, or the size of an already buffered body."""
        declared = self.headers.get("content-length")
        if declared is not None:
            try:
                return int(declared)
            except ValueError:
                logger.debug(f"Ignoring malformed Content-Length: {declared!r}")
        if self.body is not None:
            return len(self.body)
        return 0

    @property
    def cookies(self) -> Dict[str, str]:
        jar: SimpleCookie = SimpleCookie()
        for raw in self.headers.get_all("cookie"):
            try:
                jar.load(raw)
            except CookieError:
                logger.debug(f"Ignoring malformed Cookie header: {raw!r}")
        return {name: morsel.value for name, morsel in jar.items()}

    async def read(self) -> bytes:
        if self.body is None:
            self.body = await self.body_loader() if self.body_loader else b""
        return self.body

    async def text(self) -> str:
        return (await self.read()).decode("utf-8")

    async def json(self) -> Any:
        """Decode the body as JSON. Raises ``ValueError`` for malformed input."""
        data = await self.read()
        if not data:
            raise ValueError("Request body is empty")
        return json.loads(data)

    async def _form_fields(self) -> Dict[str, List[Any]]:
        if self._form_cache is None:
            data = await self.read()
            if self.media_type == "multipart/form-data":
                self._form_cache = parse_multipart(data, self.content_type)
            elif self.media_type == "application/x-www-form-urlencoded":
                self._form_cache = {
                    key: list(values)
                    for key, values in parse_qs(data.decode("utf-8"), keep_blank_values=True).items()
                }
            else:
                raise ValueError(f"Expected a form content type, got {self.media_type or 'none'}")
        return self._form_cache

    async def form(self) -> Dict[str, Any]:
        """Decode a multipart or urlencoded body; repeated fields become lists."""
        return _collapse(await self._form_fields())

    async def files(self) -> Dict[str, List[UploadedFile]]:
        """Uploaded file parts by field name."""
        fields = await self._form_fields()
        result: Dict[str, List[UploadedFile]] = {}
        for name, values in fields.items():
            uploads = [v for v in values if isinstance(v, UploadedFile)]
            if uploads:
                result[name] = uploads
        return result


@dataclass
class Response:
    """Represents an HTTP response.

    A handler returning a ``Response`` bypasses response validation.
    """

    status_code: int
    body: Optional[Union[str, bytes]] = None
    headers: Optional[Dict[str, str]] = None
    content_type: Optional[str] = None

    def __post_init__(self):
        if self.headers is None:
            self.headers = {}
        if self.content_type:
            self.headers["Content-Type"] = self.content_type
        if self.status_code not in (204, 304):
            self.headers["Content-Length"] = str(len(self.body_bytes))

    @property
    def body_bytes(self) -> bytes:
        if self.body is None:
            return b""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body


@dataclass
class JSONResponse:
    """A JSON payload with an explicit status code.

    Unlike ``Response`` this is still checked against the route's declared
    schema for ``status_code`` before it is serialized.
    """

    content: Any
    status_code: int = 200
    headers: Optional[Dict[str, str]] = None
