"""
A Laravel-flavoured integration layer for WordPress REST APIs.

Routes are declared against controller actions inside groups sharing a
prefix, a namespace and middleware. Each request runs through an onion
middleware pipeline, the action's parameters are resolved from the URL,
the request and the container, and form requests are validated with a
rule-based validator before the action is called.
"""

from .application import Application, RouteServiceProvider, ServiceProvider
from .config import Settings
from .container import Container
from .error_models import ResponseEnvelope
from .exception_handler import ExceptionHandler
from .exceptions import (
    ApiError,
    ForbiddenError,
    InvalidMiddlewareConfigError,
    InvalidMiddlewareTypeError,
    InvalidParameterError,
    NotFoundError,
    RestPressError,
    UnauthorizedError,
    UnknownMiddlewareError,
    UnknownRuleError,
    UnresolvableParameterError,
    ValidationError,
)
from .forms import FormRequest
from .host import HookRegistrar, Hooks, HostEnvironment, HostRequest, RouteTable
from .middleware import (
    AdminMiddleware,
    AuthMiddleware,
    Middleware,
    MiddlewarePipeline,
    MiddlewareRegistry,
)
from .models import HTTPMethod, Request, Response, ResponseCode
from .parameters import ParameterResolver
from .router import RouteEntry, Router
from .validation import RuleRegistry, Validator

__version__ = "0.1.0"
__author__ = "RestPress Contributors"
__license__ = "MIT"

__all__ = [
    "Application",
    "ServiceProvider",
    "RouteServiceProvider",
    "Settings",
    "Container",
    "Router",
    "RouteEntry",
    "Request",
    "Response",
    "ResponseCode",
    "ResponseEnvelope",
    "HTTPMethod",
    "HostRequest",
    "HostEnvironment",
    "RouteTable",
    "Hooks",
    "HookRegistrar",
    "Middleware",
    "MiddlewareRegistry",
    "MiddlewarePipeline",
    "AuthMiddleware",
    "AdminMiddleware",
    "ParameterResolver",
    "FormRequest",
    "Validator",
    "RuleRegistry",
    "ExceptionHandler",
    "RestPressError",
    "ApiError",
    "NotFoundError",
    "UnauthorizedError",
    "ForbiddenError",
    "ValidationError",
    "InvalidParameterError",
    "UnknownMiddlewareError",
    "InvalidMiddlewareConfigError",
    "InvalidMiddlewareTypeError",
    "UnresolvableParameterError",
    "UnknownRuleError",
]
