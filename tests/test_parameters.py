"""Tests for controller parameter binding and value coercion."""

import uuid
from enum import Enum
from typing import List, Optional

import pytest

from restpress.exceptions import (
    ConfigurationError,
    InvalidParameterError,
    UnresolvableParameterError,
    ValidationError,
)
from restpress.forms import FormRequest
from restpress.models import Request
from restpress.parameters import (
    KIND_FORM_REQUEST,
    KIND_PRIMITIVE,
    KIND_REQUEST,
    KIND_SERVICE,
    KIND_UNTYPED,
    ParameterResolver,
    coerce,
    describe_action,
    unwrap_optional,
)


class PostRepository:
    def find(self, post_id):
        return {"id": post_id}


class StorePostRequest(FormRequest):
    def rules(self):
        return {"title": "required|max:10"}


class PostStatus(Enum):
    DRAFT = "draft"
    PUBLISH = "publish"


class Priority(Enum):
    LOW = 1
    HIGH = 2


class PostController:
    def show(self, id: int, request: Request, posts: PostRepository):
        return posts.find(id)

    def index(self, page: int = 1, per_page: Optional[int] = None):
        return page, per_page

    def search(self, q: str, tags: List[str], exact: bool, score: float):
        return q, tags, exact, score

    def loose(self, anything):
        return anything

    def store(self, form: StorePostRequest):
        return form.validated()

    def needs(self, slug: str):
        return slug

    def by_uuid(self, id: uuid.UUID):
        return id

    def by_status(self, status: PostStatus, priority: Optional[Priority] = None):
        return status, priority

    def filtered(self, limit: Optional[int] = None, term: Optional[str] = "all", flag: Optional[bool] = True):
        return limit, term, flag


@pytest.fixture
def resolver(container):
    return ParameterResolver(container)


class TestDescribe:
    """Test building action descriptors."""

    def test_kinds(self):
        descriptor = describe_action(PostController.show)
        kinds = [(spec.name, spec.kind) for spec in descriptor.parameters]
        assert kinds == [("id", KIND_PRIMITIVE), ("request", KIND_REQUEST), ("posts", KIND_SERVICE)]

    def test_bound_method_skips_self(self):
        descriptor = describe_action(PostController().show)
        assert [spec.name for spec in descriptor.parameters] == ["id", "request", "posts"]

    def test_defaults_and_optional(self):
        page, per_page = describe_action(PostController.index).parameters
        assert page.has_default and page.default == 1
        assert per_page.nullable and per_page.annotation is int

    def test_untyped_and_form_request(self):
        (loose,) = describe_action(PostController.loose).parameters
        (form,) = describe_action(PostController.store).parameters
        assert loose.kind == KIND_UNTYPED and loose.nullable
        assert form.kind == KIND_FORM_REQUEST

    def test_descriptor_is_cached(self, resolver):
        first = resolver.describe(PostController().show)
        second = resolver.describe(PostController().show)
        assert first is second

    def test_unwrap_optional(self):
        assert unwrap_optional(Optional[int]) == (int, True)
        assert unwrap_optional(int) == (int, False)


class TestCoerce:
    """Test conversion of raw request values."""

    def test_int(self):
        assert coerce("42", int) == 42
        assert coerce(" 7 ", int) == 7
        assert coerce("3.0", int) == 3

    def test_int_rejects_garbage(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            coerce("abc", int, "id")
        assert exc_info.value.status_code == 400
        assert 'Parameter "id" must be of type int' in str(exc_info.value)

    def test_float(self):
        assert coerce("2.5", float) == 2.5
        with pytest.raises(InvalidParameterError):
            coerce("x", float)

    def test_bool(self):
        assert coerce("true", bool) is True
        assert coerce("1", bool) is True
        assert coerce("no", bool) is False
        assert coerce(False, bool) is False

    def test_str(self):
        assert coerce(5, str) == "5"
        assert coerce(True, str) == "1"

    def test_list_wraps_scalars(self):
        assert coerce("a", List[str]) == ["a"]
        assert coerce(["a", "b"], list) == ["a", "b"]

    def test_enum(self):
        assert coerce("draft", PostStatus) is PostStatus.DRAFT
        assert coerce(1, Priority) is Priority.LOW
        assert coerce(Priority.HIGH, Priority) is Priority.HIGH
        with pytest.raises(InvalidParameterError):
            coerce("3", Priority, "priority")

    def test_uuid(self):
        value = uuid.UUID("1b4e28ba-2fa1-11d2-883f-0016d3cca427")
        assert coerce(str(value), uuid.UUID) == value
        assert coerce(value, uuid.UUID) is value

    def test_untyped_passthrough(self):
        value = object()
        assert coerce(value, None) is value


class TestResolve:
    """Test picking a value for each parameter."""

    def test_capture_request_and_service(self, resolver, make_request):
        request = make_request(url_params={"id": "42"})
        args = resolver.resolve(PostController().show, {"id": "42"}, request)

        assert args[0] == 42
        assert args[1] is request
        assert isinstance(args[2], PostRepository)

    def test_capture_beats_request_parameter(self, resolver, make_request):
        request = make_request(body_params={"slug": "from-body"})
        args = resolver.resolve(PostController().needs, {"slug": "from-path"}, request)
        assert args == ["from-path"]

    def test_request_parameter(self, resolver, make_request):
        request = make_request(query_params={"page": "3"})
        assert resolver.resolve(PostController().index, {}, request) == [3, None]

    def test_defaults(self, resolver, make_request):
        assert resolver.resolve(PostController().index, {}, make_request()) == [1, None]

    def test_coercions(self, resolver, make_request):
        request = make_request(
            query_params={"q": 12, "tags": "news", "exact": "yes", "score": "0.5"},
        )
        args = resolver.resolve(PostController().search, {}, request)
        assert args == ["12", ["news"], True, 0.5]

    def test_untyped_missing_is_none(self, resolver, make_request):
        assert resolver.resolve(PostController().loose, {}, make_request()) == [None]

    def test_unresolvable(self, resolver, make_request):
        with pytest.raises(UnresolvableParameterError) as exc_info:
            resolver.resolve(PostController().needs, {}, make_request(), controller="PostController")
        assert str(exc_info.value) == 'Unable to resolve parameter "slug" in PostController.needs'

    def test_invalid_capture(self, resolver, make_request):
        with pytest.raises(InvalidParameterError):
            resolver.resolve(PostController().show, {"id": "abc"}, make_request())

    def test_registered_service_used(self, resolver, container, make_request):
        repository = PostRepository()
        container.instance(PostRepository, repository)
        args = resolver.resolve(PostController().show, {"id": "1"}, make_request())
        assert args[2] is repository

    def test_form_request_validated(self, resolver, make_request):
        request = make_request(json_params={"title": "Hello"})
        (form,) = resolver.resolve(PostController().store, {}, request)

        assert isinstance(form, StorePostRequest)
        assert form.validated() == {"title": "Hello"}
        assert form.request is request

    def test_form_request_failure(self, resolver, make_request):
        request = make_request(json_params={"title": "Much too long a title"})
        with pytest.raises(ValidationError) as exc_info:
            resolver.resolve(PostController().store, {}, request)
        assert exc_info.value.errors == {"title": ["The title must not be greater than 10."]}

    def test_plain_function(self, resolver, make_request):
        def handler(name: str, count: int = 2):
            return name * count

        request = make_request(query_params={"name": "ab"})
        assert resolver.resolve(handler, {}, request) == ["ab", 2]

    def test_uuid_from_capture(self, resolver, make_request):
        value = "1b4e28ba-2fa1-11d2-883f-0016d3cca427"
        (bound,) = resolver.resolve(PostController().by_uuid, {"id": value}, make_request())
        assert bound == uuid.UUID(value)

    def test_invalid_uuid(self, resolver, make_request):
        with pytest.raises(InvalidParameterError):
            resolver.resolve(PostController().by_uuid, {"id": "not-a-uuid"}, make_request())

    def test_enum_from_capture_and_request(self, resolver, make_request):
        request = make_request(query_params={"priority": "2"})
        args = resolver.resolve(PostController().by_status, {"status": "draft"}, request)
        assert args == [PostStatus.DRAFT, Priority.HIGH]

    def test_enum_by_member_name(self, resolver, make_request):
        args = resolver.resolve(PostController().by_status, {"status": "PUBLISH"}, make_request())
        assert args == [PostStatus.PUBLISH, None]

    def test_unknown_enum_value(self, resolver, make_request):
        with pytest.raises(InvalidParameterError) as exc_info:
            resolver.resolve(PostController().by_status, {"status": "archived"}, make_request())
        assert "PostStatus" in str(exc_info.value)

    def test_null_binds_none_for_nullable(self, resolver, make_request):
        request = make_request(json_params={"limit": None, "term": None, "flag": None})
        assert resolver.resolve(PostController().filtered, {}, request) == [None, None, None]

    def test_null_for_required_int_is_invalid(self, resolver, make_request):
        def handler(limit: int):
            return limit

        request = make_request(json_params={"limit": None})
        with pytest.raises(InvalidParameterError):
            resolver.resolve(handler, {}, request)

    def test_unresolvable_type_hint(self, resolver):
        def handler(request: "MissingRequestType"):  # noqa: F821
            return request

        with pytest.raises(ConfigurationError) as exc_info:
            resolver.describe(handler)
        assert "MissingRequestType" in str(exc_info.value)
