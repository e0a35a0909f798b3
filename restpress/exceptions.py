"""
Custom exceptions for restpress.

Two families live here. Configuration errors are programmer mistakes
(an unknown middleware alias, an action that cannot be bound) and are
raised immediately. API errors describe request-level failures and carry
the HTTP status and response code used when they are translated into a
response by the exception handler.
"""

from typing import Any, Dict, List, Optional

from .models import ResponseCode


class RestPressError(Exception):
    """Base exception for restpress errors."""

    pass


class ConfigurationError(RestPressError):
    """Raised when routes, middleware or services are misconfigured."""

    pass


class UnknownMiddlewareError(ConfigurationError):
    """Raised when a middleware alias is not registered."""

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"Unknown middleware: {alias}")


class InvalidMiddlewareConfigError(ConfigurationError):
    """Raised when a registered middleware target is neither a class nor callable."""

    def __init__(self, alias: str, target: Any = None):
        self.alias = alias
        self.target = target
        super().__init__(f"Invalid middleware configuration: {alias}")


class InvalidMiddlewareTypeError(ConfigurationError):
    """Raised when a pipeline entry cannot be executed as middleware."""

    def __init__(self, middleware: Any):
        self.middleware = middleware
        super().__init__(f"Invalid middleware type: {type(middleware).__name__}")


class UnresolvableParameterError(ConfigurationError):
    """Raised when a controller parameter cannot be bound to any value."""

    def __init__(self, parameter: str, controller: str, action: str):
        self.parameter = parameter
        self.controller = controller
        self.action = action
        super().__init__(
            f'Unable to resolve parameter "{parameter}" in {controller}.{action}'
        )


class UnresolvableServiceError(ConfigurationError):
    """Raised when the container cannot build the requested service."""

    def __init__(self, key: Any, reason: Optional[str] = None):
        self.key = key
        name = getattr(key, "__qualname__", None) or str(key)
        message = f"Unable to resolve service: {name}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UnknownActionError(ConfigurationError):
    """Raised when a route points at a controller action that does not exist."""

    def __init__(self, controller: str, action: str):
        self.controller = controller
        self.action = action
        super().__init__(f"Unknown controller action: {controller}.{action}")


class UnknownRuleError(ConfigurationError):
    """Raised when a ruleset names a validation rule that is not registered."""

    def __init__(self, rule: str):
        self.rule = rule
        super().__init__(f"Unknown validation rule: {rule}")


class ApiError(RestPressError):
    """An error that maps directly onto an error response.

    Args:
        message: Human-readable message placed in the response ``msg``
        code: Machine-readable response code placed in the response ``code``
        status_code: HTTP status of the response
        data: Optional payload placed in the response ``data``
    """

    default_message = "error"
    default_code = ResponseCode.ERROR
    default_status = 400

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[int] = None,
        status_code: Optional[int] = None,
        data: Any = None,
    ):
        self.message = message if message is not None else self.default_message
        self.code = int(code if code is not None else self.default_code)
        self.status_code = status_code if status_code is not None else self.default_status
        self.data = data
        super().__init__(self.message)

    def with_data(self, data: Any) -> "ApiError":
        """Attach extra response data and return the error for raising."""
        self.data = data
        return self


class NotFoundError(ApiError):
    """404 - the requested resource does not exist."""

    default_message = "Resource not found"
    default_code = ResponseCode.NOT_FOUND
    default_status = 404

    def __init__(self, message: Optional[str] = None, code: Optional[int] = None):
        super().__init__(message, code)

    @classmethod
    def make(cls, resource: str = "Resource") -> "NotFoundError":
        return cls(f"{resource} not found")


class UnauthorizedError(ApiError):
    """401 - the user is not logged in."""

    default_message = "User not logged in"
    default_code = ResponseCode.UNAUTHORIZED
    default_status = 401

    def __init__(self, message: Optional[str] = None, code: Optional[int] = None):
        super().__init__(message, code)


class ForbiddenError(ApiError):
    """403 - the user lacks the required permissions."""

    default_message = "Insufficient permissions"
    default_code = ResponseCode.FORBIDDEN
    default_status = 403

    def __init__(self, message: Optional[str] = None, code: Optional[int] = None):
        super().__init__(message, code)


class InvalidParameterError(ApiError):
    """400 - a request value could not be converted to the declared parameter type."""

    default_message = "Invalid parameter"
    default_code = ResponseCode.INVALID_PARAMS
    default_status = 400

    def __init__(self, parameter: str, value: Any, expected: str):
        self.parameter = parameter
        self.value = value
        self.expected = expected
        super().__init__(f'Parameter "{parameter}" must be of type {expected}')


class ValidationError(ApiError):
    """422 - request data failed validation.

    ``errors`` maps each failing field to its ordered list of messages.
    """

    default_message = "Validation failed"
    default_code = ResponseCode.VALIDATION_ERROR
    default_status = 422

    def __init__(
        self,
        errors: Dict[str, List[str]],
        message: Optional[str] = None,
        code: Optional[int] = None,
    ):
        self.errors = errors
        super().__init__(message, code, data=errors)

    @classmethod
    def with_errors(cls, errors: Dict[str, List[str]], message: Optional[str] = None) -> "ValidationError":
        return cls(errors, message)
