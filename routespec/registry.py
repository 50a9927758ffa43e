"""
Route descriptors and the registry that owns them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .exceptions import RouteConfigurationError
from .models import HTTPMethod
from .normalizer import RequestBodySpec, ResponseSpec

logger = logging.getLogger(__name__)

FIELD_GROUPS = ("params", "query", "headers", "cookies", "body", "form", "file", "files")
PAYLOAD_GROUPS = ("body", "form", "file", "files")


@dataclass(frozen=True)
class RouteDescriptor:
    """Everything declared for one (method, path) pair, in canonical form.

    Built once at registration and never mutated. ``responses`` holds only
    the route's own status map, which is what handler output is checked
    against. Application-wide responses are overlaid for the document only.
    """

    method: HTTPMethod
    path: str
    params: Optional[Any] = None
    query: Optional[Any] = None
    headers: Optional[Any] = None
    cookies: Optional[Any] = None
    body: Optional[RequestBodySpec] = None
    form: Optional[RequestBodySpec] = None
    file: Optional[RequestBodySpec] = None
    files: Optional[RequestBodySpec] = None
    responses: Mapping[int, ResponseSpec] = field(default_factory=dict)
    dependencies: Mapping[str, Any] = field(default_factory=dict)
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    operation_id: Optional[str] = None
    deprecated: bool = False
    security: Optional[List[Dict[str, List[str]]]] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.method.value, self.path)

    @property
    def payload_group(self) -> Optional[str]:
        for group in PAYLOAD_GROUPS:
            if getattr(self, group) is not None:
                return group
        return None


class RouteRegistry:
    """Append-only store of route descriptors.

    ``version`` increases on every change so derived artifacts such as the
    generated document can tell when they are stale.
    """

    def __init__(self):
        self._routes: List[RouteDescriptor] = []
        self._keys: Dict[Tuple[str, str], RouteDescriptor] = {}
        self.version = 0

    def add(self, descriptor: RouteDescriptor) -> RouteDescriptor:
        if descriptor.key in self._keys:
            raise RouteConfigurationError(f"Route {descriptor.method.value} {descriptor.path} is already registered")
        self._routes.append(descriptor)
        self._keys[descriptor.key] = descriptor
        self.version += 1
        logger.debug(f"Registered route {descriptor.method.value} {descriptor.path}")
        return descriptor

    def get(self, method: HTTPMethod, path: str) -> Optional[RouteDescriptor]:
        return self._keys.get((method.value, path))

    def __iter__(self) -> Iterator[RouteDescriptor]:
        return iter(list(self._routes))

    def __len__(self) -> int:
        return len(self._routes)
