"""
Dependency injection container for restpress.

Services are registered under a key (a class or a string) and built on
demand. Classes that were never registered are auto-wired: their
constructor's annotated parameters are resolved recursively.
"""

import inspect
import logging
from typing import Any, Callable, Dict, Set, Union, get_type_hints

from .exceptions import UnresolvableServiceError
from .parameters import PRIMITIVE_TYPES, unwrap_optional

logger = logging.getLogger(__name__)

ServiceKey = Union[type, str]
Factory = Callable[["Container"], Any]


class Binding:
    """A registered factory and whether its result is shared."""

    def __init__(self, factory: Factory, shared: bool = False):
        self.factory = factory
        self.shared = shared


class Container:
    """Resolve services by class or by name.

    Factories receive the container so they can resolve their own
    dependencies::

        container.singleton(Mailer, lambda c: Mailer(c.make(Settings)))
    """

    def __init__(self):
        self._bindings: Dict[ServiceKey, Binding] = {}
        self._instances: Dict[ServiceKey, Any] = {}
        self._resolving: Set[ServiceKey] = set()

    def bind(self, key: ServiceKey, factory: Factory) -> None:
        """Register a factory; every ``make`` builds a new instance."""
        self._instances.pop(key, None)
        self._bindings[key] = Binding(factory)

    def singleton(self, key: ServiceKey, factory: Factory) -> None:
        """Register a factory whose first result is reused afterwards."""
        self._instances.pop(key, None)
        self._bindings[key] = Binding(factory, shared=True)

    def instance(self, key: ServiceKey, value: Any) -> None:
        """Register an already-built service."""
        self._bindings.pop(key, None)
        self._instances[key] = value

    def has(self, key: ServiceKey) -> bool:
        """True when ``key`` was explicitly registered.

        Auto-wirable classes are not reported; ``make`` still builds them.
        """
        return key in self._instances or key in self._bindings

    def make(self, key: ServiceKey) -> Any:
        """Build (or fetch) the service registered under ``key``.

        Raises:
            UnresolvableServiceError: If ``key`` is unknown and cannot be auto-wired
        """
        if key in self._instances:
            return self._instances[key]

        binding = self._bindings.get(key)
        if binding is not None:
            value = binding.factory(self)
            if binding.shared:
                self._instances[key] = value
            return value

        if isinstance(key, type):
            return self._autowire(key)

        raise UnresolvableServiceError(key, "no binding registered")

    def _autowire(self, cls: type) -> Any:
        if inspect.isabstract(cls) or getattr(cls, "_is_protocol", False):
            raise UnresolvableServiceError(cls, "cannot instantiate an abstract type")
        if cls in PRIMITIVE_TYPES:
            raise UnresolvableServiceError(cls, "primitive types are not services")
        if cls in self._resolving:
            raise UnresolvableServiceError(cls, "circular dependency")

        self._resolving.add(cls)
        try:
            kwargs = self._constructor_arguments(cls)
        finally:
            self._resolving.discard(cls)

        logger.debug(f"Auto-wiring {cls.__qualname__}")
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise UnresolvableServiceError(cls, str(e)) from e

    def _constructor_arguments(self, cls: type) -> Dict[str, Any]:
        init = cls.__init__
        if init is object.__init__:
            return {}

        try:
            signature = inspect.signature(init)
        except (TypeError, ValueError):
            return {}

        try:
            hints = get_type_hints(init)
        except (NameError, TypeError):
            hints = {}

        kwargs: Dict[str, Any] = {}
        for index, (name, param) in enumerate(signature.parameters.items()):
            if index == 0 and name in ("self", "cls"):
                continue
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue

            annotation, nullable = unwrap_optional(hints.get(name, param.annotation))
            has_default = param.default is not inspect.Parameter.empty

            if isinstance(annotation, type) and annotation not in PRIMITIVE_TYPES:
                try:
                    kwargs[name] = self.make(annotation)
                    continue
                except UnresolvableServiceError:
                    if not has_default and not nullable:
                        raise

            if has_default:
                kwargs[name] = param.default
            elif nullable:
                kwargs[name] = None
            else:
                raise UnresolvableServiceError(cls, f"cannot resolve constructor parameter '{name}'")

        return kwargs
