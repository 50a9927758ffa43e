"""Route matching and route groups."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .models import HTTPMethod

if TYPE_CHECKING:
    from .application import Application, RouteHandler


def param_name(segment: str) -> Optional[str]:
    """Name of a path parameter segment (``{id}`` or ``:id``), else None."""
    if segment.startswith("{") and segment.endswith("}"):
        return segment[1:-1]
    if segment.startswith(":") and len(segment) > 1:
        return segment[1:]
    return None


def split_path(path: str) -> List[str]:
    return [s for s in path.split("/") if s]


class RouteNode:
    """A node in the route trie.

    Each node represents a path segment and holds:
    - static_children: exact segment strings to child nodes
    - param_child: one child for a path parameter, with the parameter name
    - handlers: HTTP methods to RouteHandlers registered at this path
    """

    def __init__(self):
        self.static_children: Dict[str, "RouteNode"] = {}
        self.param_child: Optional[Tuple[str, "RouteNode"]] = None
        self.handlers: Dict[HTTPMethod, "RouteHandler"] = {}

    def add_route(self, segments: List[str], method: HTTPMethod, handler: "RouteHandler") -> None:
        if not segments:
            if method in self.handlers:
                raise ValueError(f"{method.value} is already routed at this path")
            self.handlers[method] = handler
            return

        segment, remaining = segments[0], segments[1:]
        name = param_name(segment)
        if name is not None:
            if self.param_child is None:
                self.param_child = (name, RouteNode())
            elif self.param_child[0] != name:
                raise ValueError(
                    f"Conflicting path parameter names at the same position: '{self.param_child[0]}' and '{name}'"
                )
            self.param_child[1].add_route(remaining, method, handler)
        else:
            self.static_children.setdefault(segment, RouteNode()).add_route(remaining, method, handler)

    def match(self, segments: List[str], method: HTTPMethod) -> Optional[Tuple["RouteHandler", Dict[str, str]]]:
        """Match request segments; static segments win over parameters."""
        if not segments:
            handler = self.handlers.get(method)
            return (handler, {}) if handler else None

        segment, remaining = segments[0], segments[1:]

        if segment in self.static_children:
            result = self.static_children[segment].match(remaining, method)
            if result:
                return result

        if self.param_child:
            name, child_node = self.param_child
            result = child_node.match(remaining, method)
            if result:
                handler, params = result
                params[name] = segment
                return (handler, params)

        return None

    def methods_for(self, segments: List[str]) -> List[HTTPMethod]:
        """Methods registered for any route matching these segments."""
        if not segments:
            return list(self.handlers)

        segment, remaining = segments[0], segments[1:]
        methods: List[HTTPMethod] = []
        if segment in self.static_children:
            methods.extend(self.static_children[segment].methods_for(remaining))
        if self.param_child:
            methods.extend(m for m in self.param_child[1].methods_for(remaining) if m not in methods)
        return methods


def normalize_path(prefix: str, path: str) -> str:
    """Join a prefix and a route path without doubled slashes.

    Examples:
        normalize_path("/", "/users") -> "/users"
        normalize_path("/api", "users") -> "/api/users"
        normalize_path("/api/", "/users") -> "/api/users"
        normalize_path("/api", "/") -> "/api"
    """
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    if prefix != "/" and prefix.endswith("/"):
        prefix = prefix.rstrip("/")
    if not path.startswith("/"):
        path = "/" + path

    if prefix == "/":
        return path
    if path == "/":
        return prefix
    return prefix + path


@dataclass
class RouteDefinition:
    """A route declared on a Router that has not been registered yet."""

    method: HTTPMethod
    path: str
    handler: Callable
    options: Dict[str, Any] = field(default_factory=dict)


class RouteDeclarationMixin:
    """HTTP method decorators shared by Application and Router.

    Each decorator accepts the same keyword arguments as ``route``.
    """

    def route(self, method: HTTPMethod, path: str, **options: Any):
        raise NotImplementedError

    def get(self, path: str, **options: Any):
        """Decorator to register a GET route handler."""
        return self.route(HTTPMethod.GET, path, **options)

    def post(self, path: str, **options: Any):
        """Decorator to register a POST route handler."""
        return self.route(HTTPMethod.POST, path, **options)

    def put(self, path: str, **options: Any):
        """Decorator to register a PUT route handler."""
        return self.route(HTTPMethod.PUT, path, **options)

    def delete(self, path: str, **options: Any):
        """Decorator to register a DELETE route handler."""
        return self.route(HTTPMethod.DELETE, path, **options)

    def patch(self, path: str, **options: Any):
        """Decorator to register a PATCH route handler."""
        return self.route(HTTPMethod.PATCH, path, **options)

    def options(self, path: str, **options: Any):
        """Decorator to register an OPTIONS route handler."""
        return self.route(HTTPMethod.OPTIONS, path, **options)

    def head(self, path: str, **options: Any):
        """Decorator to register a HEAD route handler."""
        return self.route(HTTPMethod.HEAD, path, **options)

    def trace(self, path: str, **options: Any):
        """Decorator to register a TRACE route handler."""
        return self.route(HTTPMethod.TRACE, path, **options)


def merge_group_options(options: Dict[str, Any], tags: Sequence[str], dependencies: Dict[str, Any]) -> Dict[str, Any]:
    """Fold a group's tags and dependencies into one route's options.

    Group tags come first; route dependencies override group ones by name.
    """
    merged = dict(options)
    if tags:
        route_tags = list(merged.get("tags") or [])
        merged["tags"] = list(tags) + [t for t in route_tags if t not in tags]
    if dependencies:
        merged["dependencies"] = {**dependencies, **(merged.get("dependencies") or {})}
    return merged


class Router(RouteDeclarationMixin):
    """A group of routes sharing a prefix, tags and dependencies.

    Routers can be nested and mounted into an Application::

        notes = Router(tags=["notes"], dependencies={"user": authenticated})

        @notes.get("/{note_id}", params=NoteParams)
        def read_note(ctx):
            ...

        app.mount("/notes", notes)

    A router created with ``app.group(...)`` is bound to the application and
    registers its routes immediately.
    """

    def __init__(
        self,
        prefix: str = "",
        tags: Optional[Sequence[str]] = None,
        dependencies: Optional[Dict[str, Any]] = None,
        app: Optional["Application"] = None,
    ):
        self.prefix = prefix
        self.tags = list(tags or [])
        self.dependencies = dict(dependencies or {})
        self.app = app
        self._definitions: List[RouteDefinition] = []
        self._mounted_routers: List[Tuple[str, "Router"]] = []

    def route(self, method: HTTPMethod, path: str, **options: Any):
        def decorator(func: Callable):
            definition = RouteDefinition(method, path, func, options)
            self._definitions.append(definition)
            if self.app is not None:
                self.app.route(
                    method,
                    normalize_path(self.prefix or "/", path),
                    **merge_group_options(options, self.tags, self.dependencies),
                )(func)
            return func

        return decorator

    def mount(self, prefix: str, router: "Router") -> None:
        """Nest another router under ``prefix``."""
        self._mounted_routers.append((prefix, router))

    def group(self, prefix: str, tags: Optional[Sequence[str]] = None, dependencies: Optional[Dict[str, Any]] = None) -> "Router":
        """Create and mount a nested router."""
        child = Router(tags=tags, dependencies=dependencies)
        self.mount(prefix, child)
        return child

    def iter_definitions(
        self,
        prefix: str = "",
        tags: Sequence[str] = (),
        dependencies: Optional[Dict[str, Any]] = None,
    ) -> Iterator[RouteDefinition]:
        """Yield every route of this router and its children with group settings applied."""
        combined_prefix = normalize_path(prefix or "/", self.prefix or "/")
        combined_tags = list(tags) + [t for t in self.tags if t not in tags]
        combined_dependencies = {**(dependencies or {}), **self.dependencies}

        for definition in self._definitions:
            yield RouteDefinition(
                definition.method,
                normalize_path(combined_prefix, definition.path),
                definition.handler,
                merge_group_options(definition.options, combined_tags, combined_dependencies),
            )
        for mount_prefix, router in self._mounted_routers:
            yield from router.iter_definitions(
                normalize_path(combined_prefix, mount_prefix), combined_tags, combined_dependencies
            )
