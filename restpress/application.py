"""
Application bootstrap: container, settings and service providers.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Type, Union

from .config import Settings
from .container import Container
from .exception_handler import ExceptionHandler
from .host import AnonymousEnvironment, HookRegistrar, Hooks, HostEnvironment, RouteTable
from .router import Router

logger = logging.getLogger(__name__)

REST_API_INIT = "rest_api_init"


class ServiceProvider(ABC):
    """Registers services with the application and wires them up on boot."""

    def __init__(self, app: "Application"):
        self.app = app

    @property
    def container(self) -> "Application":
        return self.app

    @abstractmethod
    def register(self) -> None:
        """Bind services into the container."""

    def boot(self) -> None:
        """Called once every provider has been registered."""

    def config(self, key: str, default: Any = None) -> Any:
        return self.app.config(key, default)


class Application(Container):
    """The container every plugin or theme builds on.

    Args:
        settings: Initial settings; defaults are used when omitted
        hooks: Host action/filter registry
        environment: Host session/capability predicates
        route_table: Host route table routes are registered into on ``rest_api_init``
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        hooks: Optional[Hooks] = None,
        environment: Optional[HostEnvironment] = None,
        route_table: Optional[RouteTable] = None,
    ):
        super().__init__()
        self.settings = settings if settings is not None else Settings(base_path=os.getcwd())
        self.hooks = hooks if hooks is not None else Hooks()
        self.environment = environment if environment is not None else AnonymousEnvironment()
        self.route_table = route_table
        self._providers: List[ServiceProvider] = []
        self._booted: List[ServiceProvider] = []
        self._register_base_bindings()

    def _register_base_bindings(self) -> None:
        self.instance(Application, self)
        self.instance(Container, self)
        self.instance("app", self)
        self.instance(Hooks, self.hooks)
        self.bind(Settings, lambda app: app.settings)
        self.singleton(ExceptionHandler, lambda app: ExceptionHandler(debug=app.settings.debug))

    def register(self, provider: Union[ServiceProvider, Type[ServiceProvider]]) -> "Application":
        if isinstance(provider, type):
            provider = provider(self)
        self._providers.append(provider)
        provider.register()
        logger.debug(f"Registered provider {type(provider).__name__}")
        return self

    def boot(self) -> None:
        for provider in self._providers:
            if provider in self._booted:
                continue
            provider.boot()
            self._booted.append(provider)

    @property
    def providers(self) -> List[ServiceProvider]:
        return list(self._providers)

    def configure(self, **values: Any) -> "Application":
        """Merge ``values`` into the settings.

        Services built from the settings before this call keep their old
        configuration; the exception handler is rebound to pick up ``debug``.
        """
        self.settings = self.settings.merged(**values)
        self.singleton(ExceptionHandler, lambda app: ExceptionHandler(debug=app.settings.debug))
        return self

    def config(self, key: str, default: Any = None) -> Any:
        return getattr(self.settings, key, default)

    def base_path(self, path: str = "") -> str:
        return os.path.join(self.settings.base_path, path) if path else self.settings.base_path

    def configure_logging(self) -> None:
        """Apply ``settings.log_level`` to the restpress loggers."""
        logging.getLogger("restpress").setLevel(self.settings.log_level)


RouteLoader = Callable[[Router], Any]


class RouteServiceProvider(ServiceProvider):
    """Provides the ``Router`` and registers its routes on ``rest_api_init``.

    Subclasses declare routes in ``routes()``; a loader callable can be
    passed instead.
    """

    def __init__(self, app: Application, loader: Optional[RouteLoader] = None):
        super().__init__(app)
        self.loader = loader
        self._routes_loaded = False

    def register(self) -> None:
        self.app.singleton(
            Router,
            lambda app: Router(app, environment=app.environment, settings=app.settings),
        )

    def boot(self) -> None:
        hooks = HookRegistrar(self.app, self.app.hooks)
        hooks.add_raw_action(REST_API_INIT, self.load_routes)
        hooks.register_all()

    def routes(self, router: Router) -> None:
        """Declare routes; the default defers to the loader given at construction."""
        if self.loader is not None:
            self.loader(router)

    def load_routes(self, route_table: Optional[RouteTable] = None) -> Router:
        """Declare the routes (once) and register them into the route table."""
        router = self.app.make(Router)
        if not self._routes_loaded:
            self.routes(router)
            self._routes_loaded = True
        table = route_table if route_table is not None else self.app.route_table
        if table is None:
            raise RuntimeError("No route table available to register routes into")
        router.register(table)
        logger.debug(f"Registered {len(router.routes)} routes")
        return router
