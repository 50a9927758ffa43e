"""
Declaration shapes and their canonical form.

A route may describe a payload three ways:

* a bare schema (``responses=User``),
* ``media(User, description="The user", example={...})``,
* ``content({"application/json": User, "text/csv": str}, description=...)``.

The two helpers build tagged declarations at the registration boundary, so
a schema object is never inspected for keys to guess which shape it is. The
functions below turn any of them into ``ResponseSpec`` / ``RequestBodySpec``
once per route; validation and document generation both read those.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Sequence

from .exceptions import RouteConfigurationError, status_phrase

JSON_MEDIA_TYPE = "application/json"
MULTIPART_MEDIA_TYPE = "multipart/form-data"
URLENCODED_MEDIA_TYPE = "application/x-www-form-urlencoded"


@dataclass(frozen=True)
class MediaTypeSpec:
    """Schema plus documentation extras for one media type."""

    schema: Any
    example: Any = None
    examples: Optional[Mapping[str, Any]] = None
    encoding: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class ResponseSpec:
    """Canonical response declaration for one status code."""

    content: Mapping[str, MediaTypeSpec] = field(default_factory=dict)
    description: Optional[str] = None
    headers: Optional[Mapping[str, Any]] = None
    links: Optional[Mapping[str, Any]] = None

    @property
    def json_media(self) -> Optional[MediaTypeSpec]:
        return self.content.get(JSON_MEDIA_TYPE)


@dataclass(frozen=True)
class RequestBodySpec:
    """Canonical request payload declaration (body, form, file or files)."""

    content: Mapping[str, MediaTypeSpec]
    required: bool = True
    description: Optional[str] = None

    @property
    def schema(self) -> Any:
        """The schema inbound data is validated against."""
        media = self.content.get(JSON_MEDIA_TYPE)
        if media is None:
            media = next(iter(self.content.values()))
        return media.schema


@dataclass(frozen=True)
class MediaDeclaration:
    schema: Any
    description: Optional[str] = None
    required: Optional[bool] = None
    headers: Optional[Mapping[str, Any]] = None
    links: Optional[Mapping[str, Any]] = None
    example: Any = None
    examples: Optional[Mapping[str, Any]] = None
    encoding: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class ContentDeclaration:
    content: Mapping[str, Any]
    description: Optional[str] = None
    required: Optional[bool] = None
    headers: Optional[Mapping[str, Any]] = None
    links: Optional[Mapping[str, Any]] = None


def media(
    schema: Any,
    *,
    description: Optional[str] = None,
    required: Optional[bool] = None,
    headers: Optional[Mapping[str, Any]] = None,
    links: Optional[Mapping[str, Any]] = None,
    example: Any = None,
    examples: Optional[Mapping[str, Any]] = None,
    encoding: Optional[Mapping[str, Any]] = None,
) -> MediaDeclaration:
    """Declare a single schema together with its documentation extras.

    ``description``, ``headers`` and ``links`` describe the response (or body)
    while ``example``, ``examples`` and ``encoding`` describe the media type.
    """
    return MediaDeclaration(
        schema=schema,
        description=description,
        required=required,
        headers=headers,
        links=links,
        example=example,
        examples=examples,
        encoding=encoding,
    )


def content(
    media_types: Mapping[str, Any],
    *,
    description: Optional[str] = None,
    required: Optional[bool] = None,
    headers: Optional[Mapping[str, Any]] = None,
    links: Optional[Mapping[str, Any]] = None,
) -> ContentDeclaration:
    """Declare an explicit media type map.

    Values are either ``MediaTypeSpec`` instances or bare schemas.
    """
    return ContentDeclaration(
        content=dict(media_types),
        description=description,
        required=required,
        headers=headers,
        links=links,
    )


def _media_spec(value: Any) -> MediaTypeSpec:
    if isinstance(value, MediaTypeSpec):
        return value
    if isinstance(value, MediaDeclaration):
        return MediaTypeSpec(value.schema, value.example, value.examples, value.encoding)
    return MediaTypeSpec(schema=value)


def _status_key(status: Any) -> int:
    try:
        code = int(status)
    except (TypeError, ValueError):
        raise RouteConfigurationError(f"Response status must be an integer, got {status!r}") from None
    if not 100 <= code <= 599:
        raise RouteConfigurationError(f"Response status out of range: {code}")
    return code


def normalize_response(status_code: int, declaration: Any) -> ResponseSpec:
    """Canonicalize one response declaration.

    An already canonical spec comes back as the same object unless its
    description has to be filled in from the status reason phrase.
    """
    if isinstance(declaration, ResponseSpec):
        if declaration.description is None:
            return replace(declaration, description=status_phrase(status_code))
        return declaration
    if declaration is None:
        return ResponseSpec(content={}, description=status_phrase(status_code))
    if isinstance(declaration, ContentDeclaration):
        return ResponseSpec(
            content={media_type: _media_spec(value) for media_type, value in declaration.content.items()},
            description=declaration.description or status_phrase(status_code),
            headers=declaration.headers,
            links=declaration.links,
        )
    if isinstance(declaration, MediaDeclaration):
        return ResponseSpec(
            content={JSON_MEDIA_TYPE: _media_spec(declaration)},
            description=declaration.description or status_phrase(status_code),
            headers=declaration.headers,
            links=declaration.links,
        )
    return ResponseSpec(content={JSON_MEDIA_TYPE: MediaTypeSpec(declaration)}, description=status_phrase(status_code))


def normalize_responses(declaration: Any) -> Dict[int, ResponseSpec]:
    """Turn a route's ``responses=`` value into a status map.

    A ``Mapping`` is always read as a status map; anything else is a single
    response for status 200.
    """
    if declaration is None:
        return {}
    if isinstance(declaration, Mapping):
        return {_status_key(status): normalize_response(_status_key(status), value) for status, value in declaration.items()}
    return {200: normalize_response(200, declaration)}


def merge_responses(
    global_responses: Mapping[int, ResponseSpec],
    route_responses: Mapping[int, ResponseSpec],
) -> Dict[int, ResponseSpec]:
    """Route entries replace global entries with the same status as a whole."""
    merged = dict(global_responses)
    merged.update(route_responses)
    return merged


def normalize_body(declaration: Any, media_types: Sequence[str] = (JSON_MEDIA_TYPE,)) -> Optional[RequestBodySpec]:
    """Canonicalize a body, form, file or files declaration.

    Bodies are required unless the declaration says otherwise. ``media_types``
    gives the content types a bare schema or ``media()`` is published under.
    """
    if declaration is None:
        return None
    if isinstance(declaration, RequestBodySpec):
        return declaration
    if isinstance(declaration, ContentDeclaration):
        if not declaration.content:
            raise RouteConfigurationError("A request payload needs at least one media type")
        return RequestBodySpec(
            content={media_type: _media_spec(value) for media_type, value in declaration.content.items()},
            required=True if declaration.required is None else declaration.required,
            description=declaration.description,
        )
    if isinstance(declaration, MediaDeclaration):
        spec = _media_spec(declaration)
        return RequestBodySpec(
            content={media_type: spec for media_type in media_types},
            required=True if declaration.required is None else declaration.required,
            description=declaration.description,
        )
    spec = MediaTypeSpec(declaration)
    return RequestBodySpec(content={media_type: spec for media_type in media_types})
