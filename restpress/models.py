"""
Core data models for restpress.
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Union

if TYPE_CHECKING:
    from .host import HostEnvironment, HostRequest


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class ResponseCode(IntEnum):
    """Machine-readable codes placed in the ``code`` field of every response.

    0 is success; 1-999 generic errors; the HTTP-shaped codes mirror their
    status; 1000-5999 are grouped by domain (users, posts, permissions,
    validation, system).
    """

    SUCCESS = 0

    ERROR = 1
    UNKNOWN_ERROR = 2
    INVALID_PARAMS = 3
    OPERATION_FAILED = 4

    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    VALIDATION_ERROR = 422
    SERVER_ERROR = 500

    USER_NOT_FOUND = 1001
    USER_NOT_AUTHENTICATED = 1002
    USER_UPDATE_FAILED = 1003
    USER_CREATE_FAILED = 1004
    USER_DELETE_FAILED = 1005

    POST_NOT_FOUND = 2001
    POST_CREATE_FAILED = 2002
    POST_UPDATE_FAILED = 2003
    POST_DELETE_FAILED = 2004

    PERMISSION_DENIED = 3001
    INSUFFICIENT_PERMISSIONS = 3002
    TOKEN_INVALID = 3003
    TOKEN_EXPIRED = 3004

    VALIDATION_FAILED = 4001
    REQUIRED_FIELD_MISSING = 4002
    INVALID_FORMAT = 4003
    DUPLICATE_ENTRY = 4004

    DATABASE_ERROR = 5001
    FILE_UPLOAD_ERROR = 5002
    EXTERNAL_API_ERROR = 5003
    CACHE_ERROR = 5004

    def message(self) -> str:
        """Default message for this code, e.g. ``"user not found"``."""
        if self is ResponseCode.SUCCESS:
            return "success"
        return self.name.lower().replace("_", " ")

    @classmethod
    def message_for(cls, code: int) -> str:
        try:
            return cls(code).message()
        except ValueError:
            return "unknown error"


class Request:
    """Read-only view over an inbound host request.

    Wraps the raw ``HostRequest`` together with the host environment so
    that controllers and middleware can ask who is calling.
    """

    def __init__(self, host_request: "HostRequest", environment: Optional["HostEnvironment"] = None):
        from .host import AnonymousEnvironment

        self.host_request = host_request
        self.environment = environment if environment is not None else AnonymousEnvironment()

    def all(self) -> Dict[str, Any]:
        """All parameters (url, query, body and json merged)."""
        return self.host_request.get_params()

    def get(self, key: str, default: Any = None) -> Any:
        value = self.host_request.get_param(key)
        return default if value is None else value

    def route(self, key: str, default: Any = None) -> Any:
        """Get a path capture, e.g. ``id`` for ``/users/{id}``."""
        return self.host_request.url_params.get(key, default)

    def query(self, key: str, default: Any = None) -> Any:
        return self.host_request.query_params.get(key, default)

    def input(self, key: str, default: Any = None) -> Any:
        return self.host_request.body_params.get(key, default)

    def json(self, key: Optional[str] = None, default: Any = None) -> Any:
        params = self.host_request.json_params or {}
        if key is None:
            return params
        return params.get(key, default)

    @property
    def method(self) -> str:
        return self.host_request.method.upper()

    @property
    def path(self) -> str:
        return self.host_request.route

    def is_method(self, method: Union[str, HTTPMethod]) -> bool:
        if isinstance(method, HTTPMethod):
            method = method.value
        return self.method == method.upper()

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.host_request.get_header(name)
        return default if value is None else value

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.host_request.headers)

    def has(self, key: str) -> bool:
        return self.host_request.has_param(key)

    def has_all(self, keys: Iterable[str]) -> bool:
        return all(self.has(key) for key in keys)

    def only(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {key: self.get(key) for key in keys if self.has(key)}

    def except_(self, keys: Iterable[str]) -> Dict[str, Any]:
        excluded = set(keys)
        return {key: value for key, value in self.all().items() if key not in excluded}

    def user_id(self) -> Optional[int]:
        return self.environment.current_user_id()

    def is_authenticated(self) -> bool:
        return self.environment.is_user_logged_in()

    def user_can(self, capability: str) -> bool:
        return self.environment.current_user_can(capability)

    def validate(self, rules: Dict[str, Any], messages: Optional[Dict[str, str]] = None) -> Dict[str, List[str]]:
        """Validate all parameters against ``rules``.

        Returns:
            The per-field error map; empty when every rule passed.
        """
        from .validation import Validator

        validator = Validator(self.all(), rules, messages)
        validator.validate()
        return validator.errors()

    def __repr__(self) -> str:
        return f"Request({self.method} {self.path})"


JSON_CONTENT_TYPE = "application/json; charset=UTF-8"


@dataclass
class Response:
    """Represents an HTTP response.

    ``body`` is normally the ``{"code", "data", "msg"}`` envelope built by
    the factory classmethods, where ``code == 0`` means success.
    """

    status_code: int = 200
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.headers.setdefault("Content-Type", JSON_CONTENT_TYPE)

    @property
    def code(self) -> Optional[int]:
        if isinstance(self.body, dict):
            return self.body.get("code")
        return None

    @property
    def data(self) -> Any:
        if isinstance(self.body, dict):
            return self.body.get("data")
        return None

    @property
    def message(self) -> Optional[str]:
        if isinstance(self.body, dict):
            return self.body.get("msg")
        return None

    @property
    def ok(self) -> bool:
        return self.status_code < 400 and self.code in (None, ResponseCode.SUCCESS)

    def to_json(self) -> str:
        """Serialize the body; envelopes are validated through ``ResponseEnvelope``."""
        from .error_models import ResponseEnvelope

        if ResponseEnvelope.is_envelope(self.body):
            return ResponseEnvelope.model_validate(self.body).model_dump_json()
        return json.dumps(self.body)

    @classmethod
    def json(cls, data: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> "Response":
        return cls(status_code, data, dict(headers or {}))

    @classmethod
    def make(
        cls,
        code: int,
        data: Any,
        message: str,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.json({"code": int(code), "data": data, "msg": message}, status_code, headers)

    @classmethod
    def success(
        cls,
        data: Any = None,
        message: str = "success",
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.make(ResponseCode.SUCCESS, data, message, status_code, headers)

    @classmethod
    def error(
        cls,
        message: str = "error",
        code: int = ResponseCode.ERROR,
        data: Any = None,
        status_code: int = 400,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.make(code, data, message, status_code, headers)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized") -> "Response":
        return cls.error(message, ResponseCode.UNAUTHORIZED, None, 401)

    @classmethod
    def forbidden(
        cls,
        message: str = "Forbidden",
        code: int = ResponseCode.FORBIDDEN,
        data: Any = None,
        status_code: int = 403,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.error(message, code, data, status_code, headers)

    @classmethod
    def not_found(
        cls,
        message: str = "Not Found",
        code: int = ResponseCode.NOT_FOUND,
        data: Any = None,
        status_code: int = 404,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.error(message, code, data, status_code, headers)

    @classmethod
    def bad_request(
        cls,
        message: str = "Bad Request",
        code: int = ResponseCode.BAD_REQUEST,
        data: Any = None,
        status_code: int = 400,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.error(message, code, data, status_code, headers)

    @classmethod
    def validation_error(cls, errors: Dict[str, List[str]], message: str = "Validation Failed") -> "Response":
        return cls.error(message, ResponseCode.VALIDATION_ERROR, errors, 422)

    @classmethod
    def server_error(cls, message: str = "Internal Server Error") -> "Response":
        return cls.error(message, ResponseCode.SERVER_ERROR, None, 500)

    @classmethod
    def paginate(
        cls,
        items: List[Any],
        total: int,
        page: int,
        per_page: int,
        message: str = "success",
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.success(
            {
                "items": items,
                "pagination": {
                    "total": total,
                    "page": page,
                    "per_page": per_page,
                    "total_pages": math.ceil(total / per_page) if per_page > 0 else 0,
                },
            },
            message,
            status_code,
            headers,
        )

    @classmethod
    def cursor_paginate(
        cls,
        items: List[Any],
        next_cursor: Optional[str],
        has_more: bool,
        message: str = "success",
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Response":
        return cls.success(
            {
                "items": items,
                "pagination": {"next_cursor": next_cursor, "has_more": has_more},
            },
            message,
            status_code,
            headers,
        )
