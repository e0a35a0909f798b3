"""
Middleware registry and onion-model pipeline.

A middleware receives the request and a ``next`` callable and decides
whether, and when, to call it::

    def timing(request, next):
        started = time.monotonic()
        response = next(request)
        response.headers["X-Elapsed"] = f"{time.monotonic() - started:.3f}"
        return response

Objects work too when they expose ``handle(request, next)``. Middleware
are referenced from routes by alias (``"auth"``), by class (built through
the container) or directly.
"""

import inspect
import logging
from functools import reduce
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Protocol,
    Union,
    runtime_checkable,
)

from .exceptions import (
    InvalidMiddlewareConfigError,
    InvalidMiddlewareTypeError,
    UnknownMiddlewareError,
)
from .models import Request, Response

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)

# The next handler in the middleware chain
Next = Callable[[Request], Any]

# What a route or pipeline may hold: an alias, a class, an object or a callable
MiddlewareRef = Union[str, type, Callable[..., Any], "Middleware"]


@runtime_checkable
class Middleware(Protocol):
    """Capability of middleware objects."""

    def handle(self, request: Request, next: Next) -> Any: ...


class AuthMiddleware:
    """Rejects requests from users who are not logged in."""

    def handle(self, request: Request, next: Next) -> Any:
        if not request.is_authenticated():
            return Response.unauthorized("Login required")
        return next(request)


class AdminMiddleware:
    """Rejects requests from users without the ``manage_options`` capability."""

    capability = "manage_options"

    def handle(self, request: Request, next: Next) -> Any:
        if not request.user_can(self.capability):
            return Response.forbidden("Administrator privileges required")
        return next(request)


BUILTIN_MIDDLEWARE: Dict[str, type] = {
    "auth": AuthMiddleware,
    "admin": AdminMiddleware,
}


def is_predicate(target: Any) -> bool:
    """True for callables that take no required arguments.

    Such callables are permission predicates (``lambda: user_is_editor()``)
    rather than ``(request, next)`` middleware.
    """
    if isinstance(target, type) or not callable(target) or isinstance(target, Middleware):
        return False
    try:
        signature = inspect.signature(target)
    except (TypeError, ValueError):
        return False
    for param in signature.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        if param.default is inspect.Parameter.empty:
            return False
    return True


class MiddlewareRegistry:
    """Maps middleware aliases to classes or callables.

    ``auth`` and ``admin`` are always registered. Classes are built through
    the container on every resolution, so each pipeline gets its own
    instance.
    """

    def __init__(self, container: "Container"):
        self.container = container
        self._middleware: Dict[str, Any] = dict(BUILTIN_MIDDLEWARE)

    def register(self, alias: str, target: Any) -> None:
        """Register (or replace) the middleware behind ``alias``."""
        self._middleware[alias] = target

    def register_many(self, middleware: Mapping[str, Any]) -> None:
        for alias, target in middleware.items():
            self.register(alias, target)

    def has(self, alias: str) -> bool:
        return alias in self._middleware

    def aliases(self) -> List[str]:
        return list(self._middleware)

    def target(self, alias: str) -> Any:
        """The raw registered target, without resolving it."""
        if alias not in self._middleware:
            raise UnknownMiddlewareError(alias)
        return self._middleware[alias]

    def resolve(self, alias: str) -> Any:
        """Resolve ``alias`` to a middleware instance or callable.

        Raises:
            UnknownMiddlewareError: If ``alias`` was never registered
            InvalidMiddlewareConfigError: If the registered target is unusable
        """
        target = self.target(alias)

        if isinstance(target, type):
            return self.container.make(target)

        if isinstance(target, str) and self.container.has(target):
            return self.container.make(target)

        if callable(target):
            return target

        raise InvalidMiddlewareConfigError(alias, target)


class MiddlewarePipeline:
    """Runs a request through middleware, onion style.

    The first middleware piped is the outermost layer: it runs first on the
    way in and last on the way out.
    """

    def __init__(self, registry: MiddlewareRegistry):
        self.registry = registry
        self._middleware: List[MiddlewareRef] = []

    def pipe(self, middleware: Union[MiddlewareRef, Iterable[MiddlewareRef]]) -> "MiddlewarePipeline":
        if isinstance(middleware, (list, tuple)):
            self._middleware.extend(middleware)
        else:
            self._middleware.append(middleware)
        return self

    @property
    def middlewares(self) -> List[MiddlewareRef]:
        return list(self._middleware)

    def clear(self) -> None:
        self._middleware = []

    def handle(self, request: Request, destination: Next) -> Any:
        """Run ``request`` through the chain and into ``destination``."""
        layers = [self._to_layer(entry) for entry in self._middleware]

        chain = reduce(
            lambda next_handler, layer: self._wrap(layer, next_handler),
            reversed(layers),
            destination,
        )
        return chain(request)

    @staticmethod
    def _wrap(layer: Callable[[Request, Next], Any], next_handler: Next) -> Next:
        def run(request: Request) -> Any:
            return layer(request, next_handler)

        return run

    def _to_layer(self, entry: MiddlewareRef) -> Callable[[Request, Next], Any]:
        """Normalize one chain entry into a ``(request, next)`` callable."""
        middleware: Any = entry
        if isinstance(middleware, str):
            middleware = self.registry.resolve(middleware)
        if isinstance(middleware, type):
            middleware = self.registry.container.make(middleware)

        if isinstance(middleware, Middleware):
            return middleware.handle

        if is_predicate(middleware):
            return self._guard(middleware)

        if callable(middleware):
            return middleware

        raise InvalidMiddlewareTypeError(middleware)

    @staticmethod
    def _guard(predicate: Callable[[], Any]) -> Callable[[Request, Next], Any]:
        def guard(request: Request, next: Next) -> Any:
            if not predicate():
                logger.debug(f"Permission predicate {predicate!r} denied {request!r}")
                return Response.forbidden()
            return next(request)

        return guard
