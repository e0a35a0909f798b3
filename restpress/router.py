"""
Route declaration, scoping and dispatch.

Routes are declared against controller actions, optionally inside groups
that share a path prefix, a namespace and middleware::

    router = Router(container)
    router.group({"prefix": "/users", "middleware": ["auth"]}, lambda r: (
        r.get("/{id}", UserController, "show"),
        r.middleware("admin").delete("/{id}", UserController, "destroy"),
    ))
    router.register(route_table)

``register()`` hands every route to the host route table together with a
dispatch callback and a permission callback. Each dispatch wraps the host
request, runs the global ``before`` hooks, the route's middleware pipeline
and the controller action, then the ``after`` hooks. Any exception along
the way becomes an error response.
"""

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from .config import Settings
from .exception_handler import GENERIC_ERROR_MESSAGE, ExceptionHandler
from .exceptions import UnknownActionError
from .host import AnonymousEnvironment, HostEnvironment, HostRequest, RouteTable
from .middleware import MiddlewarePipeline, MiddlewareRef, MiddlewareRegistry, is_predicate
from .models import HTTPMethod, Request, Response
from .parameters import ParameterResolver

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)

ALL_METHODS: Tuple[str, ...] = tuple(method.value for method in HTTPMethod)

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

BeforeHook = Callable[[Request], Any]
AfterHook = Callable[[Request, Any], Any]
Methods = Union[str, HTTPMethod, Sequence[Union[str, HTTPMethod]]]


def to_host_pattern(path: str) -> str:
    """Rewrite ``{name}`` placeholders into named captures.

    ``"/users/{id}"`` -> ``"/users/(?P<id>[\\w\\-]+)"``
    """
    return _PLACEHOLDER_RE.sub(r"(?P<\1>[\\w\\-]+)", path)


def _normalize_methods(methods: Methods) -> Tuple[str, ...]:
    if isinstance(methods, (str, HTTPMethod)):
        methods = [methods]
    normalized = []
    for method in methods:
        value = method.value if isinstance(method, HTTPMethod) else str(method).upper()
        normalized.append(value)
    return tuple(normalized)


def _as_list(middleware: Any) -> List[MiddlewareRef]:
    if middleware is None:
        return []
    if isinstance(middleware, (list, tuple)):
        return list(middleware)
    return [middleware]


@dataclass(frozen=True)
class RouteEntry:
    """One declared route. Immutable once recorded."""

    methods: Tuple[str, ...]
    path: str
    controller: Any
    action: str
    middleware: Tuple[MiddlewareRef, ...] = ()
    namespace: str = ""

    @property
    def host_pattern(self) -> str:
        return to_host_pattern(self.path)

    @property
    def controller_name(self) -> str:
        return getattr(self.controller, "__qualname__", None) or str(self.controller)


@dataclass(frozen=True)
class ScopeFrame:
    """The prefix, namespace and middleware applied to routes declared in a scope."""

    prefix: str = ""
    namespace: str = ""
    middleware: Tuple[MiddlewareRef, ...] = field(default_factory=tuple)

    def nested(
        self,
        prefix: Optional[str] = None,
        namespace: Optional[str] = None,
        middleware: Sequence[MiddlewareRef] = (),
    ) -> "ScopeFrame":
        """The frame of a group opened inside this one.

        Prefixes concatenate, the innermost namespace wins and middleware
        accumulate in declaration order.
        """
        return ScopeFrame(
            prefix=self.prefix + prefix if prefix is not None else self.prefix,
            namespace=namespace if namespace is not None else self.namespace,
            middleware=self.middleware + tuple(middleware),
        )


class Router:
    """Declares routes and dispatches host requests to controller actions.

    Args:
        container: Resolves controllers, middleware classes and the exception handler
        namespace: Namespace of routes declared outside any namespaced group
        environment: Host session/capability predicates; anonymous by default
        settings: Settings providing the ``debug`` flag for fallback error responses
    """

    def __init__(
        self,
        container: "Container",
        namespace: Optional[str] = None,
        environment: Optional[HostEnvironment] = None,
        settings: Optional[Settings] = None,
    ):
        self.container = container
        self.settings = settings if settings is not None else Settings()
        self.environment = environment if environment is not None else AnonymousEnvironment()
        self._scope = ScopeFrame(namespace=namespace if namespace is not None else self.settings.namespace)
        self._pending_middleware: List[MiddlewareRef] = []
        self._routes: List[RouteEntry] = []
        self._before: List[BeforeHook] = []
        self._after: List[AfterHook] = []
        self._middleware_registry = MiddlewareRegistry(container)
        self._parameter_resolver = ParameterResolver(container)

    # Scope state

    @property
    def namespace(self) -> str:
        return self._scope.namespace

    @property
    def prefix(self) -> str:
        return self._scope.prefix

    @property
    def group_middleware(self) -> Tuple[MiddlewareRef, ...]:
        return self._scope.middleware

    def set_namespace(self, namespace: str) -> "Router":
        self._scope = replace(self._scope, namespace=namespace)
        return self

    @property
    def routes(self) -> List[RouteEntry]:
        return list(self._routes)

    @property
    def middleware_registry(self) -> MiddlewareRegistry:
        return self._middleware_registry

    @property
    def parameter_resolver(self) -> ParameterResolver:
        return self._parameter_resolver

    # Declaration

    def get(self, path: str, controller: Any, action: str) -> "Router":
        return self.add_route(HTTPMethod.GET, path, controller, action)

    def post(self, path: str, controller: Any, action: str) -> "Router":
        return self.add_route(HTTPMethod.POST, path, controller, action)

    def put(self, path: str, controller: Any, action: str) -> "Router":
        return self.add_route(HTTPMethod.PUT, path, controller, action)

    def patch(self, path: str, controller: Any, action: str) -> "Router":
        return self.add_route(HTTPMethod.PATCH, path, controller, action)

    def delete(self, path: str, controller: Any, action: str) -> "Router":
        return self.add_route(HTTPMethod.DELETE, path, controller, action)

    def any(self, path: str, controller: Any, action: str) -> "Router":
        return self.add_route(ALL_METHODS, path, controller, action)

    def add_route(self, methods: Methods, path: str, controller: Any, action: str) -> "Router":
        """Record a route in the current scope.

        Group middleware come first, then any middleware set with
        ``middleware()`` since the previous route.
        """
        entry = RouteEntry(
            methods=_normalize_methods(methods),
            path=self._scope.prefix + path,
            controller=controller,
            action=action,
            middleware=self._scope.middleware + tuple(self._pending_middleware),
            namespace=self._scope.namespace,
        )
        self._routes.append(entry)
        self._pending_middleware = []
        return self

    def middleware(self, middleware: Union[MiddlewareRef, Sequence[MiddlewareRef]]) -> "Router":
        """Attach middleware to the next route (or group) declared."""
        self._pending_middleware.extend(_as_list(middleware))
        return self

    @contextmanager
    def scope(
        self,
        prefix: Optional[str] = None,
        namespace: Optional[str] = None,
        middleware: Any = None,
    ) -> Iterator["Router"]:
        """Context manager form of ``group``.

        Pending ``middleware()`` calls are folded into the scope. The outer
        scope is restored on exit, also when the body raises.
        """
        saved = self._scope
        pending, self._pending_middleware = self._pending_middleware, []
        self._scope = saved.nested(prefix, namespace, _as_list(middleware) + pending)
        try:
            yield self
        finally:
            self._scope = saved
            self._pending_middleware = []

    def group(self, attributes: Mapping[str, Any], body: Callable[["Router"], Any]) -> "Router":
        """Declare routes sharing ``prefix``, ``namespace`` and ``middleware``."""
        with self.scope(
            prefix=attributes.get("prefix"),
            namespace=attributes.get("namespace"),
            middleware=attributes.get("middleware"),
        ):
            body(self)
        return self

    def namespace_group(self, namespace: str, body: Callable[["Router"], Any]) -> "Router":
        return self.group({"namespace": namespace}, body)

    def before(self, callback: BeforeHook) -> "Router":
        """Run ``callback(request)`` before every route; a non-None result is returned as is."""
        self._before.append(callback)
        return self

    def after(self, callback: AfterHook) -> "Router":
        """Run ``callback(request, response)`` after every route; a non-None result replaces the response."""
        self._after.append(callback)
        return self

    def register_middleware(self, alias: str, target: Any) -> "Router":
        self._middleware_registry.register(alias, target)
        return self

    # Registration

    def register(self, route_table: RouteTable) -> None:
        """Hand every recorded route to the host route table."""
        for entry in self._routes:
            self._describe_action(entry)
            pattern = entry.host_pattern
            logger.debug(f"Registering {'|'.join(entry.methods)} /{entry.namespace}{pattern}")
            route_table.register_route(
                entry.namespace,
                pattern,
                list(entry.methods),
                self._create_callback(entry),
                self._create_permission_callback(entry),
            )

    def _describe_action(self, entry: RouteEntry) -> None:
        # Container-key controllers are only known at dispatch
        if not isinstance(entry.controller, type):
            return
        action = getattr(entry.controller, entry.action, None)
        if callable(action):
            self._parameter_resolver.describe(action)

    def _create_callback(self, entry: RouteEntry) -> Callable[[HostRequest], Any]:
        def callback(host_request: HostRequest) -> Any:
            return self.dispatch(entry, host_request)

        return callback

    def _create_permission_callback(self, entry: RouteEntry) -> Callable[[], bool]:
        def permission_callback() -> bool:
            return self.allows(entry)

        return permission_callback

    # Dispatch

    def dispatch(self, entry: RouteEntry, host_request: HostRequest) -> Any:
        """Handle one host request for ``entry``; never raises."""
        try:
            request = Request(host_request, self.environment)

            for hook in self._before:
                result = hook(request)
                if result is not None:
                    return result

            pipeline = MiddlewarePipeline(self._middleware_registry)
            pipeline.pipe(list(entry.middleware))

            def destination(request: Request) -> Any:
                return self._call_action(entry, request, host_request)

            response = pipeline.handle(request, destination)

            for hook in self._after:
                replacement = hook(request, response)
                if replacement is not None:
                    response = replacement

            return response
        except Exception as e:
            return self._handle_exception(e, entry)

    def _call_action(self, entry: RouteEntry, request: Request, host_request: HostRequest) -> Any:
        controller = self.container.make(entry.controller)
        action = getattr(controller, entry.action, None)
        if action is None or not callable(action):
            raise UnknownActionError(entry.controller_name, entry.action)

        args = self._parameter_resolver.resolve(
            action,
            host_request.url_params,
            request,
            controller=entry.controller_name,
        )
        return action(*args)

    def _handle_exception(self, exception: Exception, entry: RouteEntry) -> Response:
        if self.container.has(ExceptionHandler):
            try:
                handler = self.container.make(ExceptionHandler)
                return handler.handle(exception)
            except Exception as e:
                logger.error(f"Exception handler failed: {e}", exc_info=e)

        logger.error(
            f"Unhandled exception dispatching {entry.controller_name}.{entry.action}: {exception}",
            exc_info=exception,
        )
        return Response.server_error(str(exception) if self.settings.debug else GENERIC_ERROR_MESSAGE)

    def allows(self, entry: RouteEntry) -> bool:
        """Coarse permission check run by the host before dispatch.

        ``auth`` and ``admin`` are checked against the host environment,
        permission predicates are called; anything else is left to the
        middleware pipeline.
        """
        for middleware in entry.middleware:
            if middleware == "auth":
                if not self.environment.is_user_logged_in():
                    return False
            elif middleware == "admin":
                if not self.environment.current_user_can("manage_options"):
                    return False
            elif is_predicate(middleware):
                if not middleware():
                    return False
        return True
