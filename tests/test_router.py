"""Tests for route declaration, group scoping, registration and dispatch."""

import uuid
from enum import Enum

import pytest

from restpress.config import Settings
from restpress.exception_handler import ExceptionHandler
from restpress.exceptions import ConfigurationError, NotFoundError
from restpress.host import HostRequest
from restpress.models import HTTPMethod, Request, Response
from restpress.router import ALL_METHODS, RouteEntry, Router, to_host_pattern


class Role(Enum):
    EDITOR = "editor"
    AUTHOR = "author"


class UserController:
    def index(self):
        return Response.success([])

    def show(self, id: int):
        return Response.success({"id": id})

    def store(self, name: str):
        return Response.success({"name": name}, status_code=201)

    def missing(self):
        raise NotFoundError.make("User")

    def broken(self):
        raise RuntimeError("database went away")

    def by_token(self, token: uuid.UUID, role: Role):
        return Response.success({"token": str(token), "role": role.value})


class TestHostPattern:
    """Test placeholder rewriting."""

    def test_single_placeholder(self):
        assert to_host_pattern("/users/{id}") == r"/users/(?P<id>[\w\-]+)"

    def test_multiple_placeholders(self):
        pattern = to_host_pattern("/posts/{post}/comments/{comment}")
        assert pattern == r"/posts/(?P<post>[\w\-]+)/comments/(?P<comment>[\w\-]+)"

    def test_no_placeholder(self):
        assert to_host_pattern("/users") == "/users"

    def test_rewrite_does_not_touch_recorded_path(self):
        entry = RouteEntry(("GET",), "/users/{id}", UserController, "show")
        first = entry.host_pattern
        second = entry.host_pattern
        assert first == second
        assert entry.path == "/users/{id}"


class TestRouteDeclaration:
    """Test recording routes."""

    def test_get_route(self, router):
        router.get("/users", UserController, "index")

        routes = router.routes
        assert len(routes) == 1
        assert routes[0].methods == ("GET",)
        assert routes[0].path == "/users"
        assert routes[0].controller is UserController
        assert routes[0].action == "index"
        assert routes[0].namespace == "api/v1"

    def test_verb_methods(self, router):
        router.post("/a", UserController, "store")
        router.put("/a", UserController, "store")
        router.patch("/a", UserController, "store")
        router.delete("/a", UserController, "store")

        assert [route.methods for route in router.routes] == [
            ("POST",), ("PUT",), ("PATCH",), ("DELETE",)
        ]

    def test_any_registers_all_methods(self, router):
        router.any("/ping", UserController, "index")
        assert router.routes[0].methods == ALL_METHODS

    def test_add_route_accepts_method_list(self, router):
        router.add_route(["get", HTTPMethod.POST], "/users", UserController, "index")
        assert router.routes[0].methods == ("GET", "POST")

    def test_declaration_order_is_preserved(self, router):
        router.get("/a", UserController, "index")
        router.get("/b", UserController, "index")
        router.get("/c", UserController, "index")

        assert [route.path for route in router.routes] == ["/a", "/b", "/c"]

    def test_namespace_from_settings(self, container):
        router = Router(container, settings=Settings(namespace="/shop/v2/"))
        router.get("/orders", UserController, "index")
        assert router.routes[0].namespace == "shop/v2"

    def test_explicit_namespace(self, container):
        router = Router(container, namespace="custom/v1")
        assert router.namespace == "custom/v1"

    def test_set_namespace(self, router):
        router.set_namespace("other/v1").get("/x", UserController, "index")
        assert router.routes[0].namespace == "other/v1"

    def test_pending_middleware_attaches_to_next_route_only(self, router):
        router.middleware("auth").get("/a", UserController, "index")
        router.get("/b", UserController, "index")

        assert router.routes[0].middleware == ("auth",)
        assert router.routes[1].middleware == ()

    def test_route_entries_are_immutable(self, router):
        router.get("/a", UserController, "index")
        with pytest.raises(AttributeError):
            router.routes[0].path = "/b"


class TestGroups:
    """Test group scoping: prefixes, namespaces and middleware."""

    def test_prefix_and_middleware(self, router):
        router.group(
            {"prefix": "/users", "middleware": ["auth"]},
            lambda r: r.get("/{id}", UserController, "show"),
        )

        entry = router.routes[0]
        assert entry.path == "/users/{id}"
        assert entry.middleware == ("auth",)

    def test_group_middleware_precede_route_middleware(self, router):
        router.group(
            {"middleware": ["auth"]},
            lambda r: r.middleware("admin").delete("/users/{id}", UserController, "show"),
        )

        assert router.routes[0].middleware == ("auth", "admin")

    def test_nested_groups(self, router):
        def inner(r):
            r.get("/{id}", UserController, "show")

        def outer(r):
            r.group({"prefix": "/users", "middleware": "admin"}, inner)

        router.group({"prefix": "/admin", "middleware": ["auth"]}, outer)

        entry = router.routes[0]
        assert entry.path == "/admin/users/{id}"
        assert entry.middleware == ("auth", "admin")

    def test_innermost_namespace_wins(self, router):
        def inner(r):
            r.get("/x", UserController, "index")

        router.group(
            {"namespace": "outer/v1"},
            lambda r: r.group({"namespace": "inner/v1"}, inner),
        )

        assert router.routes[0].namespace == "inner/v1"

    def test_scope_restored_after_group(self, router):
        router.group(
            {"prefix": "/users", "namespace": "users/v1", "middleware": ["auth"]},
            lambda r: r.get("/", UserController, "index"),
        )
        router.get("/health", UserController, "index")

        assert router.prefix == ""
        assert router.namespace == "api/v1"
        assert router.group_middleware == ()
        entry = router.routes[1]
        assert entry.path == "/health"
        assert entry.namespace == "api/v1"
        assert entry.middleware == ()

    def test_scope_restored_when_body_raises(self, router):
        def body(r):
            r.get("/a", UserController, "index")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            router.group({"prefix": "/users", "middleware": ["auth"]}, body)

        assert router.prefix == ""
        assert router.group_middleware == ()
        router.get("/b", UserController, "index")
        assert router.routes[-1].path == "/b"
        assert router.routes[-1].middleware == ()

    def test_pending_middleware_folds_into_group(self, router):
        def body(r):
            r.get("/a", UserController, "index")
            r.get("/b", UserController, "index")

        router.middleware("auth").group({"prefix": "/p"}, body)

        assert [route.middleware for route in router.routes] == [("auth",), ("auth",)]

    def test_scope_context_manager(self, router):
        with router.scope(prefix="/posts", middleware="auth") as r:
            r.get("/{post}", UserController, "show")

        assert router.routes[0].path == "/posts/{post}"
        assert router.routes[0].middleware == ("auth",)
        assert router.prefix == ""

    def test_namespace_group(self, router):
        router.namespace_group("legacy/v0", lambda r: r.get("/x", UserController, "index"))
        assert router.routes[0].namespace == "legacy/v0"
        assert router.namespace == "api/v1"

    def test_unused_middleware_does_not_leave_group(self, router):
        router.group({"prefix": "/p"}, lambda r: r.middleware("auth"))
        router.get("/x", UserController, "index")

        assert router.routes[0].middleware == ()

    def test_unused_middleware_does_not_leave_scope(self, router):
        with router.scope(prefix="/p") as r:
            r.middleware("admin")
        router.get("/x", UserController, "index")

        assert router.routes[0].middleware == ()


class TestRegistration:
    """Test handing routes to the host route table."""

    def test_register_rewrites_patterns(self, router, host):
        router.get("/users/{id}", UserController, "show")
        router.register(host)

        assert host.patterns() == [r"/api/v1/users/(?P<id>[\w\-]+)"]
        assert host.routes[0].methods == ["GET"]

    def test_register_twice_does_not_double_rewrite(self, router, host):
        router.get("/users/{id}", UserController, "show")
        router.register(host)
        router.register(host)

        assert host.routes[0].pattern == host.routes[1].pattern == r"/users/(?P<id>[\w\-]+)"

    def test_unresolvable_type_hint_fails_registration(self, router, host):
        class DraftController:
            def show(self, draft: "UndefinedDraft"):  # noqa: F821
                return draft

        router.get("/drafts/{draft}", DraftController, "show")

        with pytest.raises(ConfigurationError):
            router.register(host)


class TestDispatch:
    """Test requests flowing through the fake host into controllers."""

    def test_path_parameter_is_coerced(self, router, host):
        router.group(
            {"prefix": "/users", "middleware": ["auth"]},
            lambda r: r.get("/{id}", UserController, "show"),
        )
        router.register(host)
        host.login(1)

        response = host.get("/api/v1/users/42")

        assert response.status_code == 200
        assert response.data == {"id": 42}
        assert response.code == 0

    def test_permission_callback_rejects_anonymous(self, router, host):
        router.middleware("auth").get("/users/{id}", UserController, "show")
        router.register(host)

        response = host.get("/api/v1/users/42")

        assert response.status_code == 401

    def test_admin_requires_capability(self, router, host):
        router.middleware("admin").get("/settings", UserController, "index")
        router.register(host)

        host.login(1)
        assert host.get("/api/v1/settings").status_code == 403

        host.login(1, capabilities={"manage_options"})
        assert host.get("/api/v1/settings").status_code == 200

    def test_auth_middleware_short_circuits_in_pipeline(self, router):
        calls = []

        class Tracking:
            def show(self, id: int):
                calls.append(id)
                return Response.success()

        router.middleware("auth").get("/users/{id}", Tracking, "show")
        entry = router.routes[0]

        response = router.dispatch(entry, HostRequest("GET", "/users/42", url_params={"id": "42"}))

        assert response.status_code == 401
        assert response.message == "Login required"
        assert calls == []

    def test_body_parameter(self, router, host):
        router.post("/users", UserController, "store")
        router.register(host)

        response = host.post("/api/v1/users", body={"name": "Ada"})

        assert response.status_code == 201
        assert response.data == {"name": "Ada"}

    def test_unknown_path_and_wrong_method(self, router, host):
        router.get("/users", UserController, "index")
        router.register(host)

        assert host.get("/api/v1/nothing").status_code == 404
        assert host.delete("/api/v1/users").status_code == 405

    def test_before_hook_short_circuits(self, router, host):
        router.before(lambda request: Response.error("maintenance", status_code=503))
        router.get("/users", UserController, "index")
        router.register(host)

        response = host.get("/api/v1/users")

        assert response.status_code == 503
        assert response.message == "maintenance"

    def test_before_hook_returning_none_continues(self, router, host):
        seen = []
        router.before(lambda request: seen.append(request.path))
        router.get("/users", UserController, "index")
        router.register(host)

        assert host.get("/api/v1/users").status_code == 200
        assert seen == ["/api/v1/users"]

    def test_after_hook_replaces_response(self, router, host):
        def stamp(request, response):
            response.headers["X-Handled"] = "yes"
            return response

        router.after(lambda request, response: None)
        router.after(stamp)
        router.get("/users", UserController, "index")
        router.register(host)

        assert host.get("/api/v1/users").headers["X-Handled"] == "yes"

    def test_api_error_becomes_response(self, router, host, container):
        container.singleton(ExceptionHandler, lambda c: ExceptionHandler())
        router.get("/users/missing", UserController, "missing")
        router.register(host)

        response = host.get("/api/v1/users/missing")

        assert response.status_code == 404
        assert response.message == "User not found"

    def test_unexpected_exception_without_handler(self, router, host):
        router.get("/broken", UserController, "broken")
        router.register(host)

        response = host.get("/api/v1/broken")

        assert response.status_code == 500
        assert response.message == "Internal server error"

    def test_unexpected_exception_debug(self, container, host):
        router = Router(container, environment=host, settings=Settings(debug=True))
        router.get("/broken", UserController, "broken")
        router.register(host)

        assert host.get("/api/v1/broken").message == "database went away"

    def test_unknown_action(self, router, host):
        router.get("/users", UserController, "nope")
        router.register(host)

        response = host.get("/api/v1/users")

        assert response.status_code == 500

    def test_request_passed_to_action(self, router, host):
        class EchoController:
            def echo(self, request: Request):
                return Response.success({"q": request.query("q"), "user": request.user_id()})

        router.get("/echo", EchoController, "echo")
        router.register(host)
        host.login(7)

        response = host.get("/api/v1/echo", query={"q": "hello"})

        assert response.data == {"q": "hello", "user": 7}

    def test_predicate_middleware_checked_by_host(self, router, host):
        allowed = {"value": False}
        router.middleware(lambda: allowed["value"]).get("/gated", UserController, "index")
        router.register(host)

        assert host.get("/api/v1/gated").status_code == 401
        allowed["value"] = True
        assert host.get("/api/v1/gated").status_code == 200

    def test_registered_middleware_runs(self, router, host):
        def tag(request, next):
            response = next(request)
            response.headers["X-Tag"] = "tagged"
            return response

        router.register_middleware("tag", tag)
        router.middleware("tag").get("/users", UserController, "index")
        router.register(host)

        assert host.get("/api/v1/users").headers["X-Tag"] == "tagged"

    def test_uuid_and_enum_parameters(self, router, host):
        router.get("/tokens/{token}", UserController, "by_token")
        router.register(host)

        token = "1b4e28ba-2fa1-11d2-883f-0016d3cca427"
        response = host.get(f"/api/v1/tokens/{token}", query={"role": "editor"})

        assert response.status_code == 200
        assert response.data == {"token": token, "role": "editor"}

    def test_unknown_enum_value_is_bad_request(self, router, host, container):
        container.singleton(ExceptionHandler, lambda c: ExceptionHandler())
        router.get("/tokens/{token}", UserController, "by_token")
        router.register(host)

        response = host.get(
            "/api/v1/tokens/1b4e28ba-2fa1-11d2-883f-0016d3cca427",
            query={"role": "owner"},
        )

        assert response.status_code == 400

    def test_failing_exception_handler_factory(self, router, host, container):
        def factory(c):
            raise RuntimeError("handler misconfigured")

        container.bind(ExceptionHandler, factory)
        router.get("/broken", UserController, "broken")
        router.register(host)

        response = host.get("/api/v1/broken")

        assert response.status_code == 500
        assert response.message == "Internal server error"

    def test_failing_exception_handler(self, router, host, container):
        class ExplodingHandler(ExceptionHandler):
            def handle(self, exception):
                raise ValueError("cannot render")

        container.instance(ExceptionHandler, ExplodingHandler())
        router.get("/users/missing", UserController, "missing")
        router.register(host)

        response = host.get("/api/v1/users/missing")

        assert response.status_code == 500
        assert response.message == "Internal server error"


class TestAllows:
    """Test the coarse permission check."""

    def test_no_middleware(self, router):
        entry = RouteEntry(("GET",), "/", UserController, "index")
        assert router.allows(entry) is True

    def test_custom_aliases_left_to_pipeline(self, router):
        entry = RouteEntry(("GET",), "/", UserController, "index", middleware=("throttle",))
        assert router.allows(entry) is True

    def test_auth(self, router, host):
        entry = RouteEntry(("GET",), "/", UserController, "index", middleware=("auth",))
        assert router.allows(entry) is False
        host.login(3)
        assert router.allows(entry) is True
