"""
Request validation tests across all drivers.

Covers every field group, the collect-all error shape, optional payloads and
the fail-fast policy.
"""

from typing import List, Union

from pydantic import BaseModel, Field

from routespec import APIConfig, Application, GlobalRequestParams, UploadedFile, ValidationPolicy, media
from tests.framework import MultiDriverTestBase


class NoteParams(BaseModel):
    id: str = "123"


class NewNote(BaseModel):
    title: str
    content: str = Field(..., min_length=1)


class Search(BaseModel):
    q: str
    page: int = 1


class Tags(BaseModel):
    value: Union[str, List[str]]


class TraceHeaders(BaseModel):
    x_request_id: str = Field(..., alias="x-request-id")
    x_retries: int = Field(0, alias="x-retries")


class Session(BaseModel):
    session: str


class Upload(BaseModel):
    title: str
    attachment: UploadedFile


class Signup(BaseModel):
    name: str
    color: Union[str, List[str]] = "blue"


class TestFieldGroups(MultiDriverTestBase):
    """Each field group is decoded onto the context when valid."""

    def create_app(self):
        app = Application()

        @app.post("/notes/:id", params=NoteParams, body=NewNote)
        def create_note(ctx):
            return ctx.json({"id": ctx.params.id, "title": ctx.body.title, "content": ctx.body.content}, 201)

        @app.get("/search", query=Search)
        def search(ctx):
            return {"q": ctx.query.q, "page": ctx.query.page}

        @app.get("/tags", query=Tags)
        def tags(ctx):
            return {"value": ctx.query.value}

        @app.get("/trace", headers=TraceHeaders)
        def trace(ctx):
            return {
                "request_id": ctx.headers["x-request-id"],
                "retries": ctx.headers["x-retries"],
                "agent": ctx.headers.get("user-agent"),
            }

        @app.get("/me", cookies=Session)
        def me(ctx):
            return {"session": ctx.cookies.session}

        return app

    def test_body_and_params_are_decoded(self, api):
        api_client, driver_name = api

        response = api_client.create_resource("/notes/42", {"title": "Hello", "content": "World"})

        data = api_client.expect_successful_creation(response)
        assert data == {"id": "42", "title": "Hello", "content": "World"}

    def test_query_values_are_coerced(self, api):
        api_client, driver_name = api

        response = api_client.search_resources("/search", {"q": "python", "page": "3"})

        data = api_client.expect_successful_retrieval(response)
        assert data == {"q": "python", "page": 3}

    def test_single_query_value_is_a_scalar(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.get("/tags").with_query("value", "a"))

        assert api_client.expect_successful_retrieval(response) == {"value": "a"}

    def test_repeated_query_value_is_a_list(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.get("/tags").with_query("value", "a", "b"))

        assert api_client.expect_successful_retrieval(response) == {"value": ["a", "b"]}

    def test_validated_headers_are_merged_over_raw_headers(self, api):
        api_client, driver_name = api

        request = (
            api_client.get("/trace")
            .with_header("X-Request-Id", "abc")
            .with_header("X-Retries", "2")
            .with_header("User-Agent", "pytest")
        )
        response = api_client.execute(request)

        data = api_client.expect_successful_retrieval(response)
        assert data == {"request_id": "abc", "retries": 2, "agent": "pytest"}

    def test_missing_header_is_reported(self, api):
        api_client, driver_name = api

        response = api_client.get_resource("/trace")

        body = api_client.expect_validation_error(response)
        issues = api_client.errors_in(body, "headers")
        assert len(issues) == 1
        assert issues[0]["path"] == ["x-request-id"]
        assert issues[0]["code"] == "missing"

    def test_cookies_are_validated(self, api):
        api_client, driver_name = api

        ok = api_client.execute(api_client.get("/me").with_cookie("session", "s3cret"))
        assert api_client.expect_successful_retrieval(ok) == {"session": "s3cret"}

        missing = api_client.get_resource("/me")
        body = api_client.expect_validation_error(missing)
        assert [issue["in"] for issue in body["error"]] == ["cookies"]


class TestCollectAllErrors(MultiDriverTestBase):
    """Failures from every group are reported together."""

    def create_app(self):
        app = Application()

        @app.post("/notes/:id", params=NoteParams, query=Search, body=NewNote)
        def create_note(ctx):
            return ctx.json({"id": ctx.params.id}, 201)

        return app

    def test_only_the_failing_group_is_reported(self, api):
        api_client, driver_name = api

        request = api_client.post("/notes/1").with_query("q", "x").with_json_body({"title": "t", "content": ""})
        response = api_client.execute(request)

        body = api_client.expect_validation_error(response)
        assert len(body["error"]) == 1
        issue = body["error"][0]
        assert issue["in"] == "body"
        assert issue["path"] == ["content"]
        assert issue["code"] == "string_too_short"
        assert issue["input"] == ""
        assert issue["message"]

    def test_every_failing_group_is_reported(self, api):
        api_client, driver_name = api

        request = api_client.post("/notes/1").with_query("page", "first").with_json_body({"content": ""})
        response = api_client.execute(request)

        body = api_client.expect_validation_error(response)
        assert {issue["in"] for issue in body["error"]} == {"query", "body"}
        query_paths = sorted(tuple(issue["path"]) for issue in api_client.errors_in(body, "query"))
        assert query_paths == [("page",), ("q",)]
        body_paths = sorted(tuple(issue["path"]) for issue in api_client.errors_in(body, "body"))
        assert body_paths == [("content",), ("title",)]

    def test_malformed_json_is_a_body_issue(self, api):
        api_client, driver_name = api

        request = api_client.post("/notes/1").with_query("q", "x").with_raw_body(b"{not json", "application/json")
        response = api_client.execute(request)

        body = api_client.expect_validation_error(response)
        issues = api_client.errors_in(body, "body")
        assert len(issues) == 1
        assert issues[0]["code"] == "invalid_payload"
        assert issues[0]["path"] == []

    def test_missing_required_body_is_reported(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.post("/notes/1").with_query("q", "x"))

        body = api_client.expect_validation_error(response)
        assert [issue["in"] for issue in body["error"]] == ["body"]


class TestFailFast(MultiDriverTestBase):
    """FAIL_FAST stops at the first failing group and honours the configured status."""

    def create_app(self):
        app = Application(APIConfig(validation_policy=ValidationPolicy.FAIL_FAST, request_validation_status=422))

        @app.post("/notes", query=Search, body=NewNote)
        def create_note(ctx):
            return ctx.json({}, 201)

        return app

    def test_first_failing_group_only(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.post("/notes").with_json_body({"content": ""}))

        body = api_client.expect_validation_error(response, status_code=422)
        assert {issue["in"] for issue in body["error"]} == {"query"}


class TestOptionalBody(MultiDriverTestBase):
    """An optional body is only read when the request carries one."""

    def create_app(self):
        app = Application()

        @app.put("/notes/:id", body=media(NewNote, required=False))
        def replace_note(ctx):
            if ctx.body is None:
                return {"replaced": False}
            return {"replaced": True, "title": ctx.body.title}

        return app

    def test_absent_body_is_skipped(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.put("/notes/1"))

        assert api_client.expect_successful_retrieval(response) == {"replaced": False}

    def test_present_body_is_validated(self, api):
        api_client, driver_name = api

        ok = api_client.execute(api_client.put("/notes/1").with_json_body({"title": "t", "content": "c"}))
        assert api_client.expect_successful_retrieval(ok) == {"replaced": True, "title": "t"}

        bad = api_client.execute(api_client.put("/notes/1").with_json_body({"title": "t"}))
        body = api_client.expect_validation_error(bad)
        assert api_client.errors_in(body, "body")[0]["path"] == ["content"]


class TestFormAndFiles(MultiDriverTestBase):
    """Form payloads and file uploads."""

    def create_app(self):
        app = Application()

        @app.post("/signup", form=Signup)
        def signup(ctx):
            return {"name": ctx.form.name, "color": ctx.form.color}

        @app.post("/uploads", form=Upload)
        def upload(ctx):
            attachment = ctx.form.attachment
            return {"title": ctx.form.title, "filename": attachment.filename, "size": attachment.size}

        @app.post("/avatar", file=UploadedFile)
        def avatar(ctx):
            return {"filename": ctx.file.filename, "type": ctx.file.content_type, "text": ctx.file.text()}

        @app.post("/gallery", files=List[UploadedFile])
        def gallery(ctx):
            return {"filenames": [f.filename for f in ctx.files]}

        return app

    def test_urlencoded_form(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.post("/signup").with_form_body({"name": "Ada"}))

        assert api_client.expect_successful_retrieval(response) == {"name": "Ada", "color": "blue"}

    def test_repeated_form_fields_become_lists(self, api):
        api_client, driver_name = api

        request = api_client.post("/signup").with_form_body({"name": "Ada", "color": ["red", "green"]})
        response = api_client.execute(request)

        assert api_client.expect_successful_retrieval(response)["color"] == ["red", "green"]

    def test_multipart_form_fields(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.post("/signup").with_multipart_body(fields={"name": "Grace"}))

        assert api_client.expect_successful_retrieval(response) == {"name": "Grace", "color": "blue"}

    def test_form_with_file_field(self, api):
        api_client, driver_name = api

        request = api_client.post("/uploads").with_multipart_body(
            fields={"title": "Report"},
            files=[("attachment", "report.pdf", b"%PDF-1.7 data", "application/pdf")],
        )
        response = api_client.execute(request)

        data = api_client.expect_successful_retrieval(response)
        assert data == {"title": "Report", "filename": "report.pdf", "size": 13}

    def test_form_missing_field_is_reported(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.post("/signup").with_form_body({"color": "red"}))

        body = api_client.expect_validation_error(response)
        issues = api_client.errors_in(body, "form")
        assert [issue["path"] for issue in issues] == [["name"]]

    def test_form_rejects_json_content_type(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.post("/signup").with_json_body({"name": "Ada"}))

        body = api_client.expect_validation_error(response)
        assert api_client.errors_in(body, "form")[0]["code"] == "invalid_payload"

    def test_single_file(self, api):
        api_client, driver_name = api

        request = api_client.post("/avatar").with_multipart_body(
            files=[("file", "me.txt", b"hello", "text/plain")]
        )
        response = api_client.execute(request)

        data = api_client.expect_successful_retrieval(response)
        assert data == {"filename": "me.txt", "type": "text/plain", "text": "hello"}

    def test_missing_file_is_reported(self, api):
        api_client, driver_name = api

        request = api_client.post("/avatar").with_multipart_body(fields={"note": "no file"})
        response = api_client.execute(request)

        body = api_client.expect_validation_error(response)
        assert [issue["in"] for issue in body["error"]] == ["file"]

    def test_multiple_files(self, api):
        api_client, driver_name = api

        request = api_client.post("/gallery").with_multipart_body(
            files=[
                ("files", "a.png", b"\x89PNG a", "image/png"),
                ("files", "b.png", b"\x89PNG b", "image/png"),
            ]
        )
        response = api_client.execute(request)

        assert api_client.expect_successful_retrieval(response) == {"filenames": ["a.png", "b.png"]}


class Tenant(BaseModel):
    x_tenant: str = Field(..., alias="x-tenant")


class TestGlobalRequestParams(MultiDriverTestBase):
    """Application-wide object schemas are merged into every route."""

    def create_app(self):
        app = Application(APIConfig(global_params=GlobalRequestParams(headers=Tenant)))

        @app.get("/search", query=Search)
        def search(ctx):
            return {"tenant": ctx.headers["x-tenant"], "q": ctx.query.q}

        @app.get("/ping")
        def ping(ctx):
            return {"tenant": ctx.headers["x-tenant"]}

        return app

    def test_global_header_applies_to_every_route(self, api):
        api_client, driver_name = api

        response = api_client.execute(api_client.get("/ping").with_header("X-Tenant", "acme"))
        assert api_client.expect_successful_retrieval(response) == {"tenant": "acme"}

        missing = api_client.execute(api_client.get("/search").with_query("q", "x"))
        body = api_client.expect_validation_error(missing)
        assert [issue["in"] for issue in body["error"]] == ["headers"]

    def test_route_schema_still_applies(self, api):
        api_client, driver_name = api

        request = api_client.get("/search").with_query("q", "x").with_header("X-Tenant", "acme")
        response = api_client.execute(request)

        assert api_client.expect_successful_retrieval(response) == {"tenant": "acme", "q": "x"}
