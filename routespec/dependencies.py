"""
Request-scoped dependency providers.

A provider is a plain callable taking a ``ProviderContext`` and returning a
value (or an awaitable of one). Providers may ask for other providers with
``await ctx.get(other)``. Within one request every provider runs at most once;
its value, or the exception it raised, is shared by everything that asks for
it afterwards.

Example::

    def database(ctx):
        return connect()

    async def current_user(ctx):
        db = await ctx.get(database)
        token = ctx.request.headers.get("authorization", "")[7:]
        return db.user_for_token(token)

    authenticated = bearer_auth(current_user, scopes=["notes:read"])

    @app.get("/notes", dependencies={"user": authenticated})
    def list_notes(ctx):
        return notes_for(ctx.deps["user"])
"""

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import anyio

from .exceptions import DependencyResolutionError, Forbidden, Unauthorized

if TYPE_CHECKING:
    from .context import RequestContext
    from .models import Request

logger = logging.getLogger(__name__)

Provider = Callable[["ProviderContext"], Any]

SECURITY_ATTRIBUTE = "__routespec_security__"


@dataclass(frozen=True)
class SecurityRequirement:
    """Security scheme name and scopes attached to an auth provider."""

    scheme: str
    scopes: Tuple[str, ...] = ()

    def as_openapi(self) -> Dict[str, List[str]]:
        return {self.scheme: list(self.scopes)}


def security_of(provider: Any) -> Optional[SecurityRequirement]:
    return getattr(provider, SECURITY_ATTRIBUTE, None)


class _Evaluation:
    """Outcome slot for one provider within one request."""

    def __init__(self):
        self.done = anyio.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None


class RequestScope:
    """Per-request memo table keyed by provider identity."""

    def __init__(self):
        self._evaluations: Dict[Any, _Evaluation] = {}

    def __contains__(self, provider: Any) -> bool:
        return provider in self._evaluations

    def __len__(self) -> int:
        return len(self._evaluations)

    async def resolve(self, provider: Provider, ctx: "ProviderContext") -> Any:
        evaluation = self._evaluations.get(provider)
        if evaluation is not None:
            logger.debug(f"Provider {_name(provider)} already evaluated in this request")
            await evaluation.done.wait()
            if evaluation.error is not None:
                raise evaluation.error
            return evaluation.value

        evaluation = _Evaluation()
        self._evaluations[provider] = evaluation
        try:
            result = provider(ctx)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            evaluation.error = exc
            raise
        else:
            evaluation.value = result
            return result
        finally:
            evaluation.done.set()


class ProviderContext:
    """What a provider sees: the request context and a way to ask for other providers."""

    def __init__(self, context: "RequestContext", chain: Tuple[Any, ...] = ()):
        self.context = context
        self._chain = chain

    @property
    def request(self) -> "Request":
        return self.context.request

    async def get(self, provider: Provider) -> Any:
        if provider in self._chain:
            cycle = " -> ".join(_name(p) for p in self._chain + (provider,))
            raise DependencyResolutionError(f"Circular provider dependency: {cycle}")
        return await self.context.scope.resolve(provider, ProviderContext(self.context, self._chain + (provider,)))


def _name(provider: Any) -> str:
    return getattr(provider, "__name__", repr(provider))


def principal_scopes(principal: Any) -> Iterable[str]:
    """Scopes granted to a principal, read from a ``scopes`` attribute or key."""
    if isinstance(principal, Mapping):
        scopes = principal.get("scopes")
    else:
        scopes = getattr(principal, "scopes", None)
    if scopes is None:
        return ()
    if isinstance(scopes, str):
        return scopes.split()
    return scopes


def requires_auth(scheme: str, provider: Provider, scopes: Optional[Sequence[str]] = None) -> Provider:
    """Wrap a principal provider so it enforces authentication and scopes.

    The wrapper raises ``Unauthorized`` when ``provider`` yields ``None`` and
    ``Forbidden`` when a required scope is missing. It is tagged with a
    ``SecurityRequirement`` so routes depending on it document ``scheme``.

    Create the wrapper once and reuse it: memoization is by identity.
    """
    required = tuple(scopes or ())

    async def auth_provider(ctx: ProviderContext) -> Any:
        principal = await ctx.get(provider)
        if principal is None:
            raise Unauthorized()
        missing = [scope for scope in required if scope not in set(principal_scopes(principal))]
        if missing:
            raise Forbidden(f"Missing required scope: {', '.join(missing)}")
        return principal

    auth_provider.__name__ = f"{scheme}_{_name(provider)}"
    setattr(auth_provider, SECURITY_ATTRIBUTE, SecurityRequirement(scheme, required))
    return auth_provider


def bearer_auth(provider: Provider, scopes: Optional[Sequence[str]] = None) -> Provider:
    """``requires_auth`` for the conventional ``bearerAuth`` scheme."""
    return requires_auth("bearerAuth", provider, scopes)


def derive_security(dependencies: Mapping) -> Optional[List[Dict[str, List[str]]]]:
    """Security requirements implied by a route's tagged providers."""
    requirements: List[Dict[str, List[str]]] = []
    for provider in dependencies.values():
        tag = security_of(provider)
        if tag is not None and tag.as_openapi() not in requirements:
            requirements.append(tag.as_openapi())
    return requirements or None
