"""
Tests for request-scoped providers and auth wrappers.
"""

import anyio
import pytest

from routespec import (
    Application,
    DependencyResolutionError,
    Forbidden,
    HTTPMethod,
    Request,
    RequestContext,
    RequestScope,
    SecurityRequirement,
    Unauthorized,
    bearer_auth,
    derive_security,
    requires_auth,
)
from routespec.dependencies import principal_scopes, security_of
from routespec.registry import RouteDescriptor
from tests.framework import MultiDriverTestBase


def make_context(headers=None) -> RequestContext:
    request = Request(method=HTTPMethod.GET, path="/notes", headers=headers or {})
    return RequestContext(request, RouteDescriptor(method=HTTPMethod.GET, path="/notes"))


USERS = {
    "reader-token": {"name": "reader", "scopes": ["notes:read"]},
    "writer-token": {"name": "writer", "scopes": "notes:read notes:write"},
}


def current_user(ctx):
    header = ctx.request.headers.get("authorization", "")
    if not header.startswith("Bearer "):
        return None
    return USERS.get(header[len("Bearer "):])


class TestRequestScope:
    """Memoization within one request."""

    pytestmark = pytest.mark.anyio

    async def test_shared_provider_runs_once_per_request(self):
        calls = []

        def connection(ctx):
            calls.append(1)
            return object()

        async def repository(ctx):
            return ("repo", await ctx.get(connection))

        async def audit_log(ctx):
            return ("audit", await ctx.get(connection))

        ctx = make_context()
        repo = await ctx.get(repository)
        audit = await ctx.get(audit_log)

        assert len(calls) == 1
        assert repo[1] is audit[1]
        assert connection in ctx.scope
        assert len(ctx.scope) == 3

    async def test_each_request_gets_its_own_scope(self):
        calls = []

        def connection(ctx):
            calls.append(1)
            return len(calls)

        first = await make_context().get(connection)
        second = await make_context().get(connection)

        assert (first, second) == (1, 2)

    async def test_failure_is_memoized(self):
        calls = []

        def broken(ctx):
            calls.append(1)
            raise RuntimeError("database unavailable")

        ctx = make_context()
        with pytest.raises(RuntimeError, match="database unavailable"):
            await ctx.get(broken)
        with pytest.raises(RuntimeError, match="database unavailable"):
            await ctx.get(broken)

        assert len(calls) == 1

    async def test_concurrent_requests_for_one_provider_share_the_evaluation(self):
        calls = []

        async def slow(ctx):
            calls.append(1)
            await anyio.sleep(0.01)
            return "value"

        ctx = make_context()
        results = []

        async def ask():
            results.append(await ctx.get(slow))

        async with anyio.create_task_group() as tg:
            tg.start_soon(ask)
            tg.start_soon(ask)

        assert results == ["value", "value"]
        assert len(calls) == 1

    async def test_cycle_is_reported(self):
        async def first(ctx):
            return await ctx.get(second)

        async def second(ctx):
            return await ctx.get(first)

        with pytest.raises(DependencyResolutionError, match="first -> second -> first"):
            await make_context().get(first)

    async def test_scope_can_be_supplied(self):
        scope = RequestScope()
        request = Request(method=HTTPMethod.GET, path="/")
        ctx = RequestContext(request, RouteDescriptor(method=HTTPMethod.GET, path="/"), scope)

        await ctx.get(lambda provider_ctx: 1)

        assert ctx.scope is scope
        assert len(scope) == 1


class TestAuthWrappers:
    """requires_auth enforces principals and scopes and tags the provider."""

    pytestmark = pytest.mark.anyio

    async def test_missing_principal_is_unauthorized(self):
        with pytest.raises(Unauthorized):
            await make_context().get(bearer_auth(current_user))

    async def test_missing_scope_is_forbidden(self):
        provider = bearer_auth(current_user, ["notes:write"])
        ctx = make_context({"Authorization": "Bearer reader-token"})

        with pytest.raises(Forbidden, match="notes:write"):
            await ctx.get(provider)

    async def test_principal_with_scopes_is_returned(self):
        provider = bearer_auth(current_user, ["notes:write"])
        ctx = make_context({"Authorization": "Bearer writer-token"})

        principal = await ctx.get(provider)

        assert principal["name"] == "writer"

    async def test_empty_principal_is_still_a_principal(self):
        provider = requires_auth("apiKey", lambda ctx: {})

        assert await make_context().get(provider) == {}

    def test_wrapper_carries_security_tag(self):
        provider = requires_auth("apiKey", current_user, ["admin"])

        assert security_of(provider) == SecurityRequirement("apiKey", ("admin",))
        assert security_of(current_user) is None

    def test_security_is_derived_from_tagged_providers(self):
        dependencies = {
            "user": bearer_auth(current_user, ["read"]),
            "db": lambda ctx: None,
        }

        assert derive_security(dependencies) == [{"bearerAuth": ["read"]}]
        assert derive_security({"db": lambda ctx: None}) is None

    def test_principal_scopes_accepts_attributes_keys_and_strings(self):
        class Principal:
            scopes = ("a", "b")

        assert list(principal_scopes(Principal())) == ["a", "b"]
        assert list(principal_scopes({"scopes": "a b"})) == ["a", "b"]
        assert list(principal_scopes({"name": "anonymous"})) == []


class TestDependenciesInRoutes(MultiDriverTestBase):
    """Providers declared on routes, resolved through the full pipeline."""

    def create_app(self):
        app = Application()
        self.connections = []

        def connection(ctx):
            self.connections.append(1)
            return {"id": len(self.connections)}

        async def notes_repository(ctx):
            return {"kind": "notes", "conn": await ctx.get(connection)}

        async def tags_with_connection(ctx):
            return {"kind": "tags", "conn": await ctx.get(connection)}

        reader = bearer_auth(current_user, ["notes:read"])
        writer = bearer_auth(current_user, ["notes:write"])

        @app.get("/dashboard", dependencies={"notes": notes_repository, "tags": tags_with_connection})
        def dashboard(ctx):
            return {
                "same_connection": ctx.deps["notes"]["conn"] is ctx.deps["tags"]["conn"],
                "connection": ctx.deps["notes"]["conn"]["id"],
            }

        @app.get("/notes", dependencies={"user": reader})
        def list_notes(ctx):
            return {"user": ctx.deps["user"]["name"]}

        @app.delete("/notes/:id", dependencies={"user": writer})
        def delete_note(ctx):
            return {"deleted": ctx.params["id"], "by": ctx.deps["user"]["name"]}

        @app.get("/inline")
        async def inline(ctx):
            first = await ctx.get(connection)
            second = await ctx.get(connection)
            return {"same": first is second}

        return app

    def test_shared_provider_invoked_once_per_request(self, api):
        api_client, driver_name = api

        first = api_client.expect_successful_retrieval(api_client.get_resource("/dashboard"))
        assert first == {"same_connection": True, "connection": 1}
        assert len(self.connections) == 1

        second = api_client.expect_successful_retrieval(api_client.get_resource("/dashboard"))
        assert second == {"same_connection": True, "connection": 2}
        assert len(self.connections) == 2

    def test_handler_can_resolve_providers_directly(self, api):
        api_client, driver_name = api

        response = api_client.get_resource("/inline")

        assert api_client.expect_successful_retrieval(response) == {"same": True}
        assert len(self.connections) == 1

    def test_anonymous_request_is_unauthorized(self, api):
        api_client, driver_name = api

        response = api_client.get_resource("/notes")

        api_client.expect_unauthorized(response)
        assert response.get_json_body() == {"message": "Unauthorized"}

    def test_authenticated_request_succeeds(self, api):
        api_client, driver_name = api

        response = api_client.authenticated_request(api_client.get("/notes"), "reader-token")

        assert api_client.expect_successful_retrieval(response) == {"user": "reader"}

    def test_missing_scope_is_forbidden(self, api):
        api_client, driver_name = api

        response = api_client.authenticated_request(api_client.delete("/notes/7"), "reader-token")

        api_client.expect_forbidden(response)
        assert "notes:write" in response.get_json_body()["message"]

    def test_scope_granted_by_space_separated_string(self, api):
        api_client, driver_name = api

        response = api_client.authenticated_request(api_client.delete("/notes/7"), "writer-token")

        assert api_client.expect_successful_retrieval(response) == {"deleted": "7", "by": "writer"}
