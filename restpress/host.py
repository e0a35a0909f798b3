"""
Contracts with the host environment.

restpress never talks to a web server directly. The host (WordPress in
production, ``restpress.testing.FakeHost`` in tests) owns the route table,
the notion of a logged-in user and the action/filter hooks; this module
describes what restpress expects from it.
"""

import logging
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)


@dataclass
class HostRequest:
    """The raw request handed over by the host route table.

    ``url_params`` holds the named captures of the matched route pattern.
    """

    method: str
    route: str
    url_params: Dict[str, Any] = field(default_factory=dict)
    query_params: Dict[str, Any] = field(default_factory=dict)
    body_params: Dict[str, Any] = field(default_factory=dict)
    json_params: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def _sources(self) -> List[Dict[str, Any]]:
        # Highest priority first
        sources = []
        if self.json_params:
            sources.append(self.json_params)
        sources.extend([self.body_params, self.query_params, self.url_params])
        return sources

    def get_param(self, key: str) -> Any:
        """Look a parameter up across json, body, query and url params, in that order."""
        for source in self._sources():
            if key in source:
                return source[key]
        return None

    def has_param(self, key: str) -> bool:
        return any(key in source for source in self._sources())

    def get_params(self) -> Dict[str, Any]:
        """Merged view of every parameter source."""
        merged: Dict[str, Any] = {}
        for source in reversed(self._sources()):
            merged.update(source)
        return merged

    def get_header(self, name: str) -> Optional[str]:
        """Get a header value, case-insensitively."""
        lowered = name.lower().replace("_", "-")
        for key, value in self.headers.items():
            if key.lower().replace("_", "-") == lowered:
                return value
        return None


@runtime_checkable
class HostEnvironment(Protocol):
    """Who is calling: the host's session and capability predicates."""

    def is_user_logged_in(self) -> bool: ...

    def current_user_can(self, capability: str) -> bool: ...

    def current_user_id(self) -> Optional[int]: ...


class AnonymousEnvironment:
    """Environment used when the host provides none: nobody is logged in."""

    def is_user_logged_in(self) -> bool:
        return False

    def current_user_can(self, capability: str) -> bool:
        return False

    def current_user_id(self) -> Optional[int]:
        return None


# Host-side callbacks installed by Router.register()
DispatchCallback = Callable[[HostRequest], Any]
PermissionCallback = Callable[[], bool]


@runtime_checkable
class RouteTable(Protocol):
    """The host's route table (``register_rest_route`` in WordPress)."""

    def register_route(
        self,
        namespace: str,
        pattern: str,
        methods: Sequence[str],
        callback: DispatchCallback,
        permission_callback: PermissionCallback,
    ) -> None: ...


class Hooks:
    """In-process action and filter registry.

    Callbacks run in ascending priority order; callbacks sharing a priority
    run in the order they were added.
    """

    def __init__(self):
        self._actions: Dict[str, List[Tuple[int, int, Callable]]] = {}
        self._filters: Dict[str, List[Tuple[int, int, Callable]]] = {}
        self._counter = 0

    def _add(self, table: Dict[str, List[Tuple[int, int, Callable]]], hook: str, callback: Callable, priority: int):
        self._counter += 1
        table.setdefault(hook, []).append((priority, self._counter, callback))
        table[hook].sort(key=lambda item: (item[0], item[1]))

    def add_action(self, hook: str, callback: Callable, priority: int = 10) -> None:
        self._add(self._actions, hook, callback, priority)

    def add_filter(self, hook: str, callback: Callable, priority: int = 10) -> None:
        self._add(self._filters, hook, callback, priority)

    def has_action(self, hook: str) -> bool:
        return bool(self._actions.get(hook))

    def do_action(self, hook: str, *args: Any) -> None:
        callbacks = self._actions.get(hook, [])
        logger.debug(f"Running action {hook} ({len(callbacks)} callbacks)")
        for _, _, callback in list(callbacks):
            callback(*args)

    def apply_filters(self, hook: str, value: Any, *args: Any) -> Any:
        for _, _, callback in list(self._filters.get(hook, [])):
            value = callback(value, *args)
        return value


class HookRegistrar:
    """Collects hooks bound to container-resolved class methods.

    Class/method hooks are deferred until ``register_all()`` so the
    instances are only built once the container is fully configured.
    Raw callables are added to the host hooks straight away.
    """

    def __init__(self, container: "Container", hooks: Hooks):
        self.container = container
        self.hooks = hooks
        self._pending: List[Dict[str, Any]] = []

    def add_action(self, hook: str, cls: Any, method: str, priority: int = 10) -> "HookRegistrar":
        self._pending.append(
            {"type": "action", "hook": hook, "class": cls, "method": method, "priority": priority}
        )
        return self

    def add_filter(self, hook: str, cls: Any, method: str, priority: int = 10) -> "HookRegistrar":
        self._pending.append(
            {"type": "filter", "hook": hook, "class": cls, "method": method, "priority": priority}
        )
        return self

    def add_raw_action(self, hook: str, callback: Callable, priority: int = 10) -> "HookRegistrar":
        self.hooks.add_action(hook, callback, priority)
        return self

    def add_raw_filter(self, hook: str, callback: Callable, priority: int = 10) -> "HookRegistrar":
        self.hooks.add_filter(hook, callback, priority)
        return self

    def register_all(self) -> None:
        """Resolve every deferred hook through the container and attach it."""
        for entry in self._pending:
            instance = self.container.make(entry["class"])
            callback = getattr(instance, entry["method"])
            if entry["type"] == "filter":
                self.hooks.add_filter(entry["hook"], callback, entry["priority"])
            else:
                self.hooks.add_action(entry["hook"], callback, entry["priority"])
        self._pending.clear()
