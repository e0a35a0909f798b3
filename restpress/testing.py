"""
In-memory host for exercising routers without WordPress.

``FakeHost`` plays both host roles restpress depends on: it is the route
table routes get registered into, and the environment answering "who is
logged in". Requests are matched against the registered patterns the way
the WordPress REST server does it, the permission callback is consulted,
and the dispatch callback produces the response::

    host = FakeHost()
    router = Router(container, environment=host)
    router.get("/users/{id}", UserController, "show")
    router.register(host)

    host.login(1, capabilities={"manage_options"})
    response = host.get("/api/v1/users/42")
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .host import DispatchCallback, HostRequest, PermissionCallback
from .models import Response, ResponseCode


@dataclass
class RegisteredRoute:
    """A route as recorded by the fake route table."""

    namespace: str
    pattern: str
    methods: List[str]
    callback: DispatchCallback
    permission_callback: PermissionCallback
    regex: "re.Pattern[str]" = field(init=False)

    def __post_init__(self):
        self.regex = re.compile(f"^/{self.namespace.strip('/')}{self.pattern}$")

    @property
    def full_pattern(self) -> str:
        return f"/{self.namespace.strip('/')}{self.pattern}"


class FakeHost:
    """An in-memory route table and host environment."""

    def __init__(self):
        self.routes: List[RegisteredRoute] = []
        self.user_id: Optional[int] = None
        self.capabilities: Set[str] = set()

    # HostEnvironment

    def is_user_logged_in(self) -> bool:
        return self.user_id is not None

    def current_user_can(self, capability: str) -> bool:
        return self.is_user_logged_in() and capability in self.capabilities

    def current_user_id(self) -> Optional[int]:
        return self.user_id

    def login(self, user_id: int = 1, capabilities: Iterable[str] = ()) -> "FakeHost":
        self.user_id = user_id
        self.capabilities = set(capabilities)
        return self

    def logout(self) -> "FakeHost":
        self.user_id = None
        self.capabilities = set()
        return self

    # RouteTable

    def register_route(
        self,
        namespace: str,
        pattern: str,
        methods: Sequence[str],
        callback: DispatchCallback,
        permission_callback: PermissionCallback,
    ) -> None:
        self.routes.append(
            RegisteredRoute(namespace, pattern, [m.upper() for m in methods], callback, permission_callback)
        )

    def patterns(self) -> List[str]:
        return [route.full_pattern for route in self.routes]

    # Requests

    def request(
        self,
        method: str,
        path: str,
        query: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Match ``path`` and run the route the way the host would."""
        method = method.upper()
        path_matched = False
        for route in self.routes:
            match = route.regex.match(path)
            if match is None:
                continue
            path_matched = True
            if method not in route.methods:
                continue

            if not route.permission_callback():
                status = 403 if self.is_user_logged_in() else 401
                return Response.error(
                    "Sorry, you are not allowed to do that.",
                    ResponseCode.FORBIDDEN if status == 403 else ResponseCode.UNAUTHORIZED,
                    None,
                    status,
                )

            host_request = HostRequest(
                method=method,
                route=path,
                url_params=match.groupdict(),
                query_params=dict(query or {}),
                body_params=dict(body or {}),
                json_params=dict(json) if json is not None else None,
                headers=dict(headers or {}),
            )
            return route.callback(host_request)

        if path_matched:
            return Response.error("No route was found matching the URL and request method.", ResponseCode.ERROR, None, 405)
        return Response.not_found("No route was found matching the URL and request method.")

    def get(self, path: str, **kwargs: Any) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Any:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Any:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Any:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Any:
        return self.request("DELETE", path, **kwargs)
