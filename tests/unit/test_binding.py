"""
Unit tests for parameter binding.
"""

from io import BytesIO
from typing import Annotated, Dict, List, Literal, Optional

import pytest
from pydantic import BaseModel, Field

from conftest import json_request, make_request, multipart_body, multipart_headers
from restroute.http.binding import (
    BindingSource,
    ParameterBinder,
    body,
    form,
    paging_bindings,
    query,
    query_rest,
    route,
)
from restroute.http.errors import BindingError, BindingFailureKind
from restroute.http.multipart import UploadFile
from restroute.http.patch import (
    JSON_PATCH_TYPE,
    MERGE_PATCH_TYPE,
    JsonPatch,
    MergePatch,
    PatchDocument,
)
from restroute.http.request import HTTPRequest


class Address(BaseModel):
    city: str
    zip: str


class Person(BaseModel):
    name: str
    age: int = Field(ge=0)
    address: Optional[Address] = None


@pytest.fixture
def binder() -> ParameterBinder:
    return ParameterBinder()


def failure_kinds(error: BindingError, name: str) -> List[BindingFailureKind]:
    return [f.kind for f in error.failures[name]]


class TestRouteBinding:
    """Tests for ROUTE sourced parameters."""

    def test_route_param_converted(self, binder):
        """Test "42" becomes 42 for an int spec."""
        bound = binder.bind([route("id", int)], make_request("GET", "/users/42"), {"id": "42"})

        assert bound.values == {"id": 42}

    def test_route_param_type_mismatch(self, binder):
        """Test a non-integer id is a TYPE_MISMATCH naming the parameter."""
        with pytest.raises(BindingError) as exc_info:
            binder.bind([route("id", int)], make_request("GET", "/users/abc"), {"id": "abc"})

        assert failure_kinds(exc_info.value, "id") == [BindingFailureKind.TYPE_MISMATCH]

    def test_route_param_missing(self, binder):
        """Test a spec whose segment was not captured."""
        with pytest.raises(BindingError) as exc_info:
            binder.bind([route("id", int)], make_request("GET", "/users"), {})

        assert failure_kinds(exc_info.value, "id") == [BindingFailureKind.MISSING_ROUTE_PARAM]

    def test_route_specs_are_required(self):
        """Test route() specs are always required."""
        assert route("id").required is True
        assert route("id").source is BindingSource.ROUTE


class TestQueryBinding:
    """Tests for QUERY sourced parameters."""

    def test_query_conversion(self, binder):
        """Test lax conversion of query strings."""
        request = make_request("GET", "/search", query={"limit": ["10"], "exact": ["true"]})
        specs = [query("limit", int), query("exact", bool)]

        assert binder.bind(specs, request, {}).values == {"limit": 10, "exact": True}

    def test_optional_query_uses_default(self, binder):
        """Test an absent optional parameter gets its default."""
        specs = [query("limit", int, default=20), query("q", Optional[str])]
        bound = binder.bind(specs, make_request("GET", "/search"), {})

        assert bound.values == {"limit": 20, "q": None}

    def test_mutable_default_copied_per_request(self, binder):
        """Test each request binds its own copy of a list default."""
        spec = query("tags", List[str], default=[])

        first = binder.bind([spec], make_request("GET", "/tags"), {}).values["tags"]
        first.append("x")
        second = binder.bind([spec], make_request("GET", "/tags"), {}).values["tags"]

        assert second == []
        assert spec.default == []

    def test_required_query_missing(self, binder):
        """Test MISSING_VALUE for an absent required parameter."""
        with pytest.raises(BindingError) as exc_info:
            binder.bind([query("q", str, required=True)], make_request("GET", "/search"), {})

        assert failure_kinds(exc_info.value, "q") == [BindingFailureKind.MISSING_VALUE]

    def test_repeated_values_for_list_type(self, binder):
        """Test list types take every repeated value."""
        request = make_request("GET", "/search", query={"tag": ["a", "b", "c"]})
        bound = binder.bind([query("tags", List[str], alias="tag")], request, {})

        assert bound.values == {"tags": ["a", "b", "c"]}

    def test_scalar_type_takes_first_value(self, binder):
        """Test a scalar spec uses the first of repeated values."""
        request = make_request("GET", "/search", query={"page": ["2", "5"]})

        assert binder.bind([query("page", int)], request, {}).values == {"page": 2}

    def test_alias_is_the_wire_name(self, binder):
        """Test alias selects the query key and names failures."""
        request = make_request("GET", "/users", query={"pageSize": ["abc"]})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([query("page_size", int, alias="pageSize")], request, {})

        assert "pageSize" in exc_info.value.failures

    def test_literal_membership(self, binder):
        """Test Literal types reject values outside the set."""
        spec = query("order_dir", Literal["asc", "desc"], default="asc")

        bound = binder.bind([spec], make_request("GET", "/", query={"order_dir": ["desc"]}), {})
        assert bound.values == {"order_dir": "desc"}

        with pytest.raises(BindingError):
            binder.bind([spec], make_request("GET", "/", query={"order_dir": ["up"]}), {})

    def test_annotated_constraints(self, binder):
        """Test Field constraints inside Annotated are enforced."""
        spec = query("page", Annotated[int, Field(ge=1)], default=1)

        with pytest.raises(BindingError) as exc_info:
            binder.bind([spec], make_request("GET", "/", query={"page": ["0"]}), {})

        assert "greater than or equal to 1" in exc_info.value.failures["page"][0].message

    def test_rest_collects_unclaimed_keys(self, binder):
        """Test query_rest() gathers keys no other spec claims."""
        request = make_request(
            "GET", "/users",
            query={"page": ["2"], "name": ["Ana"], "active": ["true", "false"]},
        )
        specs = [query("page", int, default=1), query_rest("filters")]
        bound = binder.bind(specs, request, {})

        assert bound.values == {"page": 2, "filters": {"name": "Ana", "active": "true"}}

    def test_rest_defaults_to_empty(self, binder):
        """Test query_rest() with nothing left over."""
        bound = binder.bind([query_rest("filters", Dict[str, str])], make_request("GET", "/"), {})

        assert bound.values == {"filters": {}}


class TestPagingBindings:
    """Tests for the standard list parameters."""

    def test_defaults(self, binder):
        """Test an empty query string binds the defaults."""
        bound = binder.bind(paging_bindings(20, 100), make_request("GET", "/users"), {})

        assert bound.values == {
            "page": 1,
            "page_size": 20,
            "order_by": None,
            "order_dir": "asc",
            "filters": {},
        }

    def test_page_size_upper_bound(self, binder):
        """Test pageSize above the maximum fails."""
        request = make_request("GET", "/users", query={"pageSize": ["101"]})

        with pytest.raises(BindingError) as exc_info:
            binder.bind(paging_bindings(20, 100), request, {})

        assert list(exc_info.value.failures) == ["pageSize"]

    def test_all_failures_are_collected(self, binder):
        """Test every bad parameter is reported at once."""
        request = make_request("GET", "/users", query={"page": ["abc"], "pageSize": ["0"]})

        with pytest.raises(BindingError) as exc_info:
            binder.bind(paging_bindings(), request, {})

        assert set(exc_info.value.failures) == {"page", "pageSize"}
        assert exc_info.value.kinds == {BindingFailureKind.TYPE_MISMATCH}


class TestBodyBinding:
    """Tests for BODY sourced parameters."""

    def test_json_body_to_model(self, binder):
        """Test a JSON body converted to a pydantic model."""
        request = json_request("POST", "/people", {"name": "Ana", "age": "30"})
        bound = binder.bind([body("person", Person)], request, {})

        assert bound.values["person"] == Person(name="Ana", age=30)

    def test_untyped_body(self, binder):
        """Test body() with no type passes decoded JSON through."""
        request = json_request("POST", "/echo", [1, {"a": None}])

        assert binder.bind([body("payload")], request, {}).values == {"payload": [1, {"a": None}]}

    def test_missing_required_body(self, binder):
        """Test an empty body for a required spec."""
        request = make_request("POST", "/people", headers={"Content-Type": "application/json"})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("person", Person)], request, {})

        assert failure_kinds(exc_info.value, "person") == [BindingFailureKind.MALFORMED_BODY]

    def test_missing_optional_body(self, binder):
        """Test an empty body for an optional spec binds None."""
        request = make_request("POST", "/people")

        bound = binder.bind([body("person", Optional[Person], required=False)], request, {})
        assert bound.values == {"person": None}

    def test_malformed_json(self, binder):
        """Test invalid JSON is MALFORMED_BODY."""
        request = make_request(
            "POST", "/people", b'{"name": ', {"Content-Type": "application/json"}
        )

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("person", Person)], request, {})

        assert failure_kinds(exc_info.value, "person") == [BindingFailureKind.MALFORMED_BODY]

    def test_deeply_nested_json(self, binder):
        """Test JSON nested past the decoder's depth is MALFORMED_BODY."""
        request = make_request(
            "POST", "/echo", b"[" * 100000 + b"]" * 100000, {"Content-Type": "application/json"}
        )

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("payload")], request, {})

        assert failure_kinds(exc_info.value, "payload") == [BindingFailureKind.MALFORMED_BODY]

    def test_streamed_json_over_limit(self, binder):
        """Test a streamed JSON body past max_body_size is PAYLOAD_TOO_LARGE."""
        request = HTTPRequest(
            method="POST",
            path="/people",
            headers={"content-type": "application/json"},
            stream=BytesIO(b'{"name": "' + b"a" * 5000 + b'", "age": 1}'),
            max_body_size=1024,
        )

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("person", Person)], request, {})

        assert failure_kinds(exc_info.value, "person") == [BindingFailureKind.PAYLOAD_TOO_LARGE]

    def test_unsupported_media_type(self, binder):
        """Test a body in a type the body binding does not accept."""
        request = make_request("POST", "/people", b"name=Ana", {"Content-Type": "text/plain"})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("person", Person)], request, {})

        assert failure_kinds(exc_info.value, "person") == [BindingFailureKind.UNSUPPORTED_MEDIA_TYPE]

    def test_schema_mismatch_names_members(self, binder):
        """Test model failures are reported per member under the body name."""
        request = json_request("POST", "/people", {"age": -1})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("person", Person)], request, {})

        messages = exc_info.value.messages()["person"]
        assert "name: Field required" in messages
        assert any(m.startswith("age: ") for m in messages)

    def test_nested_member_paths(self, binder):
        """Test nested failures use dotted paths."""
        request = json_request(
            "POST", "/people", {"name": "Ana", "age": 1, "address": {"city": "Porto"}}
        )

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("person", Person)], request, {})

        assert exc_info.value.messages() == {"person": ["address.zip: Field required"]}

    def test_body_and_route_failures_together(self, binder):
        """Test failures from different sources are aggregated."""
        request = json_request("PUT", "/people/x", {"age": 3})
        specs = [route("id", int), body("person", Person)]

        with pytest.raises(BindingError) as exc_info:
            binder.bind(specs, request, {"id": "x"})

        assert set(exc_info.value.failures) == {"id", "person"}


class TestPatchBodyBinding:
    """Tests for PatchDocument bodies."""

    def test_merge_patch(self, binder):
        """Test application/merge-patch+json binds a MergePatch."""
        request = json_request("PATCH", "/users/1", {"name": "Novo"}, MERGE_PATCH_TYPE)
        bound = binder.bind([body("patch", PatchDocument)], request, {})

        assert bound.values["patch"] == MergePatch({"name": "Novo"})

    def test_json_patch(self, binder):
        """Test application/json-patch+json binds a JsonPatch."""
        request = json_request(
            "PATCH", "/users/1",
            [{"op": "replace", "path": "/name", "value": "Novo"}],
            JSON_PATCH_TYPE,
        )
        bound = binder.bind([body("patch", PatchDocument)], request, {})

        assert isinstance(bound.values["patch"], JsonPatch)

    def test_plain_json_is_not_a_patch(self, binder):
        """Test application/json is refused for a patch body."""
        request = json_request("PATCH", "/users/1", {"name": "Novo"})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("patch", PatchDocument)], request, {})

        assert exc_info.value.has(BindingFailureKind.UNSUPPORTED_MEDIA_TYPE)

    def test_variant_specific_spec(self, binder):
        """Test body(name, MergePatch) only accepts merge patches."""
        spec = body("patch", MergePatch)
        assert spec.content_types == (MERGE_PATCH_TYPE,)

        request = json_request("PATCH", "/users/1", [], JSON_PATCH_TYPE)
        with pytest.raises(BindingError):
            binder.bind([spec], request, {})

    def test_malformed_json_patch(self, binder):
        """Test a JSON Patch with an unknown op is MALFORMED_BODY."""
        request = json_request("PATCH", "/users/1", [{"op": "frobnicate", "path": "/a"}], JSON_PATCH_TYPE)

        with pytest.raises(BindingError) as exc_info:
            binder.bind([body("patch", PatchDocument)], request, {})

        assert failure_kinds(exc_info.value, "patch") == [BindingFailureKind.MALFORMED_BODY]


class TestFormBinding:
    """Tests for FORM sourced parameters."""

    def upload_request(self, data: bytes, headers=None):
        all_headers = multipart_headers()
        all_headers.update(headers or {})
        return make_request("POST", "/users/1/avatar", data, all_headers)

    def test_file_and_field(self, binder):
        """Test a file part and a text field bind together."""
        data = multipart_body(
            fields={"description": "holiday"},
            files={"avatar": ("me.png", "image/png", b"\x89PNG-bytes")},
        )
        specs = [form("avatar", UploadFile), form("description", Optional[str], required=False)]

        bound = binder.bind(specs, self.upload_request(data), {})
        try:
            upload = bound.values["avatar"]
            assert upload.filename == "me.png"
            assert upload.content_type == "image/png"
            assert upload.read() == b"\x89PNG-bytes"
            assert bound.values["description"] == "holiday"
        finally:
            bound.close()

        assert upload.closed

    def test_form_field_conversion(self, binder):
        """Test text fields convert like query values."""
        data = multipart_body(fields={"count": "3"})
        bound = binder.bind([form("count", int)], self.upload_request(data), {})

        assert bound.values == {"count": 3}

    def test_missing_file(self, binder):
        """Test a required file that was not sent."""
        data = multipart_body(fields={"description": "x"})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([form("avatar", UploadFile)], self.upload_request(data), {})

        assert failure_kinds(exc_info.value, "avatar") == [BindingFailureKind.MISSING_VALUE]

    def test_wrong_content_type(self, binder):
        """Test a JSON body sent to a form route."""
        request = json_request("POST", "/users/1/avatar", {"avatar": "x"})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([form("avatar", UploadFile)], request, {})

        assert failure_kinds(exc_info.value, "avatar") == [BindingFailureKind.UNSUPPORTED_MEDIA_TYPE]

    def test_declared_length_over_limit(self):
        """Test Content-Length over the limit fails before parsing."""
        binder = ParameterBinder(max_upload_size=100)
        data = multipart_body(files={"avatar": ("me.png", "image/png", b"x" * 500)})

        with pytest.raises(BindingError) as exc_info:
            binder.bind([form("avatar", UploadFile)], self.upload_request(data), {})

        assert failure_kinds(exc_info.value, "avatar") == [BindingFailureKind.PAYLOAD_TOO_LARGE]

    def test_streamed_body_over_limit(self):
        """Test a body without Content-Length is cut off while streaming."""
        binder = ParameterBinder(max_upload_size=200, chunk_size=64)
        data = multipart_body(files={"avatar": ("me.png", "image/png", b"x" * 1000)})
        request = make_request("POST", "/users/1/avatar", headers=multipart_headers())
        request.stream = BytesIO(data)

        with pytest.raises(BindingError) as exc_info:
            binder.bind([form("avatar", UploadFile)], request, {})

        assert failure_kinds(exc_info.value, "avatar") == [BindingFailureKind.PAYLOAD_TOO_LARGE]

    def test_malformed_multipart(self, binder):
        """Test a body with no closing delimiter."""
        data = multipart_body(files={"avatar": ("a.txt", "text/plain", b"abc")})
        truncated = data[: data.rindex(b"--restroute")]

        with pytest.raises(BindingError) as exc_info:
            binder.bind([form("avatar", UploadFile)], self.upload_request(truncated), {})

        assert failure_kinds(exc_info.value, "avatar") == [BindingFailureKind.MALFORMED_BODY]

    def test_uploads_closed_when_another_spec_fails(self, binder, monkeypatch):
        """Test spooled files are released when binding fails."""
        data = multipart_body(files={"avatar": ("a.txt", "text/plain", b"abc")})
        request = self.upload_request(data)
        specs = [route("id", int), form("avatar", UploadFile)]
        opened = []

        original = UploadFile.__init__

        def spy(self, *args, **kwargs):
            original(self, *args, **kwargs)
            opened.append(self)

        monkeypatch.setattr(UploadFile, "__init__", spy)
        with pytest.raises(BindingError):
            binder.bind(specs, request, {"id": "not-a-number"})

        assert opened and all(upload.closed for upload in opened)

    def test_uploads_closed_on_unexpected_error(self, binder, monkeypatch):
        """Test spooled files are released when a bind step raises."""
        data = multipart_body(files={"avatar": ("a.txt", "text/plain", b"abc")})
        opened = []

        original = UploadFile.__init__

        def spy(self, *args, **kwargs):
            original(self, *args, **kwargs)
            opened.append(self)

        def broken(*args, **kwargs):
            raise RuntimeError("disk gone")

        monkeypatch.setattr(UploadFile, "__init__", spy)
        monkeypatch.setattr(ParameterBinder, "_bind_form", broken)
        with pytest.raises(RuntimeError):
            binder.bind([form("avatar", UploadFile)], self.upload_request(data), {})

        assert opened and all(upload.closed for upload in opened)
