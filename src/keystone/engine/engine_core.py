import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Hashable, Iterable, Mapping, Optional, Union

from keystone.constants import (
    ENGINE_DISPOSED,
    ENGINE_ERROR,
    ENGINE_INITIALIZED,
    STATE_CHANGED,
)
from keystone.di import Container, ServiceRegistry, call_hook
from keystone.engine.api_manager import ApiManager
from keystone.engine.engine_contract import LifecycleState
from keystone.errors import ConfigurationError, EngineStateError
from keystone.models import EngineOptions, LifecycleStrategy, Performance
from keystone.plugins import EventTracePlugin, PluginManager
from keystone.usecase.loader import load_plugin, load_service
from keystone.util import EventBus, StateStore, create_state

LIVE_STATES = (
    LifecycleState.INITIALIZED,
    LifecycleState.DISPOSING,
    LifecycleState.DISPOSE_FAILED,
)


class Engine:
    """
    Composition root: owns a container, an event bus, a service registry,
    a plugin manager and the public API facade.

    Lifecycle::

        UNINITIALIZED -> INITIALIZING -> INITIALIZED -> DISPOSING -> UNINITIALIZED
                              |                             |
                              +-> UNINITIALIZED (failure)   +-> DISPOSE_FAILED -> DISPOSING (retry)
    """

    def __init__(self, options: Union[EngineOptions, Mapping[str, Any], None] = None):
        self._logger = logging.getLogger(__name__)
        self._options = self._prepare_options(options)

        self.container = Container()
        self.events = EventBus()
        self.registry = ServiceRegistry(
            self.container, self.events, self._options.options.lifecycle
        )
        self.plugins = PluginManager(self)
        self.api = ApiManager(self)

        self._state = LifecycleState.UNINITIALIZED
        self._lifecycle_lock: Optional[asyncio.Lock] = None
        self._autostart_task: Optional[asyncio.Future] = None

        self._register_default_services()
        self._apply_options()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def init(self) -> None:
        """
        Initialise every registered service, then the API facade.

        On failure ``engine.error`` is emitted, the error is re-raised and the
        engine is left uninitialised.
        """
        async with self._lock():
            if self._state is LifecycleState.INITIALIZED:
                self._logger.warning("Engine already initialized")
                return
            if self._state is LifecycleState.DISPOSE_FAILED:
                raise EngineStateError(
                    "Engine dispose failed earlier; call dispose() again before init()"
                )

            self._logger.info("Initializing engine...")
            self._set_state(LifecycleState.INITIALIZING)
            try:
                await self.registry.init_services()
                self.api.init()
            except Exception as e:
                await self._release_after_failed_init()
                self._set_state(LifecycleState.UNINITIALIZED)
                self._logger.error(f"Engine initialization failed: {e}")
                self.events.emit(ENGINE_ERROR, {"error": e, "phase": "init"})
                raise

            self._set_state(LifecycleState.INITIALIZED)
            self._logger.info("Engine initialized")
            self.events.emit(ENGINE_INITIALIZED)

    async def dispose(self) -> None:
        """
        Dispose initialised services in reverse order.

        A no-op on an engine that was never initialised. If a service fails to
        dispose the engine moves to DISPOSE_FAILED and calling dispose() again
        retries the services still pending.
        """
        async with self._lock():
            if self._state not in (
                LifecycleState.INITIALIZED,
                LifecycleState.DISPOSE_FAILED,
            ):
                return

            self._logger.info("Disposing engine...")
            self._set_state(LifecycleState.DISPOSING)
            try:
                await self.registry.dispose_services()
            except Exception as e:
                self._set_state(LifecycleState.DISPOSE_FAILED)
                self._logger.error(f"Engine dispose failed: {e}")
                self.events.emit(ENGINE_ERROR, {"error": e, "phase": "dispose"})
                raise

            self.api.reset()
            self._set_state(LifecycleState.UNINITIALIZED)
            self._logger.info("Engine disposed")
            self.events.emit(ENGINE_DISPOSED)

    async def __aenter__(self) -> "Engine":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    # ------------------------------------------------------------------
    # Services and plugins
    # ------------------------------------------------------------------
    def register_service(
        self,
        service_id: Hashable,
        factory: Callable[[], Any],
        init_fn: Optional[Callable[[], Any]] = None,
        dispose_fn: Optional[Callable[[], Any]] = None,
        depends_on: Iterable[Hashable] = (),
    ) -> Any:
        """
        Register a service through the registry.

        Without explicit callbacks the instance's own ``init``/``dispose``
        methods are used, if it has them.
        """
        if init_fn is None:
            init_fn = self._instance_hook(service_id, "init")
        if dispose_fn is None:
            dispose_fn = self._instance_hook(service_id, "dispose")
        return self.registry.register_service(
            service_id, factory, init_fn, dispose_fn, depends_on
        )

    def get(self, service_id: Hashable) -> Any:
        return self.container.resolve(service_id)

    def has(self, service_id: Hashable) -> bool:
        return self.container.has(service_id)

    def use(self, plugin: Any, options: Any = None) -> "Engine":
        self.plugins.use(plugin, options)
        return self

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._state is LifecycleState.INITIALIZED

    @property
    def running(self) -> bool:
        """True while any service may still be live (including a failed dispose)."""
        return self._state in LIVE_STATES

    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def performance(self) -> Performance:
        return self._options.options.performance

    @property
    def debug(self) -> bool:
        return self._options.options.debug

    @property
    def autostart_task(self) -> Optional[asyncio.Future]:
        return self._autostart_task

    @property
    def state_store(self) -> StateStore:
        return self.container.resolve("state")

    def __repr__(self) -> str:
        return f"<Engine state={self._state.value} services={len(self.registry.service_ids())}>"

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    def _prepare_options(self, options) -> EngineOptions:
        if options is None:
            options = EngineOptions()
        elif isinstance(options, Mapping):
            try:
                options = EngineOptions.from_dict(options)
            except Exception as e:
                raise ConfigurationError(f"Invalid engine options: {e}") from e
        elif not isinstance(options, EngineOptions):
            raise ConfigurationError(
                f"Engine options must be EngineOptions or a mapping, got {type(options).__name__}"
            )

        options = options.copy()
        try:
            options.options = replace(
                options.options,
                performance=Performance(options.options.performance),
                lifecycle=LifecycleStrategy(options.options.lifecycle),
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return options

    def _register_default_services(self) -> None:
        self.container.register_instance("events", self.events)
        self.container.register_instance("container", self.container)
        self.container.register_instance("plugins", self.plugins)
        self.container.register_instance("options", self._options)
        if self._options.container is not None:
            self.container.register_instance("target", self._options.container)

        store = self.registry.register_service(
            "state", lambda: create_state({"initialized": False, "running": False})
        )
        store.subscribe(lambda snapshot: self.events.emit(STATE_CHANGED, snapshot))

        self.api.expose("events")
        self.api.expose("state")

    def _apply_options(self) -> None:
        runtime = self._options.options

        self._logger.debug(
            f"Applying options: performance={runtime.performance.value}, "
            f"debug={runtime.debug}, auto_start={runtime.auto_start}, "
            f"lifecycle={runtime.lifecycle.value}"
        )

        if runtime.debug:
            logging.getLogger("keystone").setLevel(logging.DEBUG)
            self.plugins.use(EventTracePlugin())

        for service_id, entry in self._options.services.items():
            factory, depends_on = load_service(entry)
            self.register_service(service_id, factory, depends_on=depends_on)

        for entry in self._options.plugins:
            plugin, plugin_options = load_plugin(entry)
            self.plugins.use(plugin, plugin_options)

        if runtime.auto_start:
            self._schedule_auto_start()

    def _schedule_auto_start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning(
                "auto_start requested outside a running event loop; call init() explicitly"
            )
            return
        # the task is available immediately; its first step runs on the next tick
        self._autostart_task = loop.create_task(self.init())
        self._autostart_task.add_done_callback(self._log_auto_init_failure)

    def _log_auto_init_failure(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._logger.error(f"Automatic engine start failed: {error}")

    def _instance_hook(self, service_id: Hashable, name: str) -> Callable[[], Any]:
        async def hook() -> None:
            method = getattr(self.container.resolve(service_id), name, None)
            if callable(method):
                await call_hook(method)

        return hook

    async def _release_after_failed_init(self) -> None:
        # services are already rolled back when init_services itself fails
        if not self.registry.initialized_ids:
            return
        try:
            await self.registry.dispose_services()
        except Exception as e:
            self._logger.error(f"Error releasing services after failed init: {e}")

    def _lock(self) -> asyncio.Lock:
        if self._lifecycle_lock is None:
            self._lifecycle_lock = asyncio.Lock()
        return self._lifecycle_lock

    def _set_state(self, state: LifecycleState) -> None:
        self._state = state
        self.state_store.update(
            initialized=state is LifecycleState.INITIALIZED,
            running=state in LIVE_STATES,
        )

    @staticmethod
    def create_engine(**args) -> "Engine":
        """Static factory method to create an engine from keyword options."""
        return Engine(args)
