"""
Controller argument binding.

Each controller action is described once (``describe_action``) as an
ordered list of ``ParameterSpec`` values. At dispatch time the
``ParameterResolver`` walks that list and picks a value for every
parameter, in priority order:

1. ``Request`` (or a subclass) annotation -> the current request
2. ``FormRequest`` subclass annotation -> a validated form request
3. any other class the container can build -> the service
4. a path capture with the parameter's name -> the capture, coerced
5. a request parameter with the parameter's name -> the value, coerced
6. the declared default
7. ``None`` when the annotation allows it
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)
from uuid import UUID

from .exceptions import (
    ConfigurationError,
    InvalidParameterError,
    UnresolvableParameterError,
    UnresolvableServiceError,
)
from .models import Request

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = (int, float, bool, str, list, tuple, dict, bytes)

TRUTHY_STRINGS = frozenset({"1", "true", "yes", "on"})

# Parameter kinds, decided once when the action is described
KIND_REQUEST = "request"
KIND_FORM_REQUEST = "form_request"
KIND_SERVICE = "service"
KIND_PRIMITIVE = "primitive"
KIND_UNTYPED = "untyped"


def unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    """Split ``Optional[T]`` into ``(T, True)``.

    Returns ``(None, False)`` for a missing annotation and
    ``(annotation, False)`` for anything that is not an optional.
    """
    if annotation is inspect.Parameter.empty or annotation is None:
        return None, False
    if get_origin(annotation) is Union:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        nullable = len(args) < len(get_args(annotation))
        if len(args) == 1:
            return args[0], nullable
        return annotation, nullable
    return annotation, False


def _base_type(annotation: Any) -> Any:
    """``List[int]`` -> ``list``; plain classes are returned unchanged."""
    origin = get_origin(annotation)
    if origin is not None and isinstance(origin, type):
        return origin
    return annotation


@dataclass(frozen=True)
class ParameterSpec:
    """One declared parameter of a controller action."""

    name: str
    annotation: Any
    kind: str
    has_default: bool = False
    default: Any = None
    nullable: bool = False


@dataclass(frozen=True)
class ActionDescriptor:
    """The ordered parameter list of a controller action."""

    qualname: str
    parameters: Tuple[ParameterSpec, ...]


def _kind_of(annotation: Any) -> str:
    from .forms import FormRequest

    if annotation is None:
        return KIND_UNTYPED
    base = _base_type(annotation)
    if not isinstance(base, type):
        return KIND_UNTYPED
    if base in PRIMITIVE_TYPES:
        return KIND_PRIMITIVE
    if issubclass(base, Request):
        return KIND_REQUEST
    if issubclass(base, FormRequest):
        return KIND_FORM_REQUEST
    return KIND_SERVICE


def describe_action(func: Callable) -> ActionDescriptor:
    """Build the parameter descriptor for a controller action.

    ``func`` may be a bound method or the plain function looked up on the
    controller class; in the latter case the leading ``self`` is skipped.
    """
    signature = inspect.signature(func)
    try:
        hints = get_type_hints(func)
    except NameError as e:
        qualname = getattr(func, "__qualname__", repr(func))
        raise ConfigurationError(f"Unable to resolve type hints of {qualname}: {e}") from e
    except TypeError:
        hints = {}

    specs: List[ParameterSpec] = []
    for index, (name, param) in enumerate(signature.parameters.items()):
        if index == 0 and name == "self" and not inspect.ismethod(func):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        raw = hints.get(name, param.annotation)
        annotation, nullable = unwrap_optional(raw)
        kind = _kind_of(annotation)
        has_default = param.default is not inspect.Parameter.empty

        specs.append(
            ParameterSpec(
                name=name,
                annotation=annotation,
                kind=kind,
                has_default=has_default,
                default=param.default if has_default else None,
                # An untyped parameter accepts anything, None included
                nullable=nullable or kind == KIND_UNTYPED,
            )
        )

    return ActionDescriptor(getattr(func, "__qualname__", repr(func)), tuple(specs))


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return int(float(text))


def coerce(value: Any, annotation: Any, name: str = "value") -> Any:
    """Convert a raw request value to the declared primitive type.

    Raises:
        InvalidParameterError: If the value cannot be parsed as an ``int`` or ``float``
    """
    target = _base_type(annotation)

    if target is int:
        try:
            return _parse_int(value)
        except (TypeError, ValueError, OverflowError):
            raise InvalidParameterError(name, value, "int")
    if target is float:
        try:
            return float(str(value).strip()) if isinstance(value, str) else float(value)
        except (TypeError, ValueError):
            raise InvalidParameterError(name, value, "float")
    if target is bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUTHY_STRINGS
    if target is str:
        if isinstance(value, bool):
            return "1" if value else ""
        return "" if value is None else str(value)
    if target is list:
        if isinstance(value, list):
            return value
        if isinstance(value, tuple):
            return list(value)
        return [value]
    if isinstance(target, type) and issubclass(target, Enum):
        return _parse_enum(value, target, name)
    if target is UUID:
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            raise InvalidParameterError(name, value, "UUID")
    return value


def _parse_enum(value: Any, enum_type: type, name: str) -> Enum:
    """Match a member by value, by stringified value, then by name."""
    if isinstance(value, enum_type):
        return value
    for member in enum_type:
        if member.value == value or str(member.value) == str(value) or member.name == value:
            return member
    raise InvalidParameterError(name, value, enum_type.__name__)


class ParameterResolver:
    """Binds controller action parameters for one invocation.

    Descriptors are computed once per action function and cached.
    """

    def __init__(self, container: "Container"):
        self.container = container
        self._descriptors: Dict[Callable, ActionDescriptor] = {}

    def describe(self, func: Callable) -> ActionDescriptor:
        key = getattr(func, "__func__", func)
        descriptor = self._descriptors.get(key)
        if descriptor is None:
            descriptor = describe_action(key)
            self._descriptors[key] = descriptor
        return descriptor

    def resolve(
        self,
        func: Callable,
        url_params: Mapping[str, Any],
        request: Request,
        controller: Optional[str] = None,
    ) -> List[Any]:
        """Return the positional arguments for calling ``func``.

        Args:
            func: The controller action (bound or unbound)
            url_params: Named captures of the matched route
            request: The current request
            controller: Controller name used in error messages

        Raises:
            UnresolvableParameterError: If a parameter matches no rule
        """
        descriptor = self.describe(func)
        owner, _, action = descriptor.qualname.rpartition(".")
        owner = controller or owner or "<function>"

        args = []
        for spec in descriptor.parameters:
            args.append(self._resolve_one(spec, url_params, request, owner, action))
        return args

    def _resolve_one(
        self,
        spec: ParameterSpec,
        url_params: Mapping[str, Any],
        request: Request,
        controller: str,
        action: str,
    ) -> Any:
        if spec.kind == KIND_REQUEST:
            return request

        if spec.kind == KIND_FORM_REQUEST:
            form = spec.annotation.create_from(request)
            form.validate()
            return form

        if spec.kind == KIND_SERVICE:
            try:
                return self.container.make(spec.annotation)
            except UnresolvableServiceError as e:
                logger.debug(f"Could not auto-wire parameter {spec.name}: {e}")

        # Service types the container cannot build (enums, UUIDs) bind from values
        coerce_to = spec.annotation if spec.kind in (KIND_PRIMITIVE, KIND_SERVICE) else None

        if spec.name in url_params:
            return self._bind_value(spec, url_params[spec.name], coerce_to)

        if request.has(spec.name):
            return self._bind_value(spec, request.get(spec.name), coerce_to)

        if spec.has_default:
            return spec.default

        if spec.nullable:
            return None

        raise UnresolvableParameterError(spec.name, controller, action)

    @staticmethod
    def _bind_value(spec: ParameterSpec, value: Any, coerce_to: Any) -> Any:
        if value is None and spec.nullable:
            return None
        return coerce(value, coerce_to, spec.name)
