"""Service lifecycle bookkeeping: factories plus init/dispose callbacks."""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple

from keystone.constants import (
    SERVICE_DISPOSED,
    SERVICE_INITIALIZED,
    SERVICES_DISPOSED,
    SERVICES_INITIALIZED,
)
from keystone.di.container import Container
from keystone.errors import (
    CyclicDependencyError,
    EngineStateError,
    ServiceDisposeError,
    ServiceInitError,
    ServiceNotRegisteredError,
    describe_id,
)
from keystone.models import LifecycleStrategy
from keystone.util.eventbus import EventBus

LifecycleCallback = Callable[[], Any]


@dataclass
class ServiceEntry:
    service_id: Hashable
    init_fn: Optional[LifecycleCallback] = None
    dispose_fn: Optional[LifecycleCallback] = None
    depends_on: Tuple[Hashable, ...] = field(default_factory=tuple)


async def call_hook(fn: Optional[LifecycleCallback]) -> None:
    """Call a sync or async lifecycle callback, awaiting its result if needed."""
    if fn is None:
        return
    result = fn()
    if inspect.isawaitable(result):
        await result


class ServiceRegistry:
    """
    Tracks registered services and drives their init/dispose callbacks.

    Services are initialised in dependency order and disposed in the reverse
    order. Only services whose initialisation succeeded are ever disposed, and
    a failed initialisation disposes the services already started in the same
    call before the error is raised.
    """

    def __init__(
        self,
        container: Container,
        events: EventBus,
        strategy: LifecycleStrategy = LifecycleStrategy.SEQUENTIAL,
    ):
        self._container = container
        self._events = events
        self.strategy = LifecycleStrategy(strategy)
        self._entries: Dict[Hashable, ServiceEntry] = {}
        self._initialized: List[Hashable] = []
        self._logger = logging.getLogger(__name__)

    def register_service(
        self,
        service_id: Hashable,
        factory: Callable[[], Any],
        init_fn: Optional[LifecycleCallback] = None,
        dispose_fn: Optional[LifecycleCallback] = None,
        depends_on: Iterable[Hashable] = (),
    ) -> Any:
        """
        Build the service now and register the instance into the container.

        Args:
            service_id: Identifier the instance is registered under
            factory: Zero-argument callable producing the instance
            init_fn: Optional callback run by init_services()
            dispose_fn: Optional callback run by dispose_services()
            depends_on: Identifiers that must be initialised first

        Returns:
            The created instance

        Raises:
            EngineStateError: if ``service_id`` is currently initialised
        """
        if service_id in self._initialized:
            raise EngineStateError(
                f"Service '{describe_id(service_id)}' is initialized; dispose it before re-registering"
            )

        instance = factory()
        self._container.register_instance(service_id, instance)
        self._entries[service_id] = ServiceEntry(
            service_id=service_id,
            init_fn=init_fn,
            dispose_fn=dispose_fn,
            depends_on=tuple(depends_on),
        )
        self._logger.debug(f"Registered service '{describe_id(service_id)}'")
        return instance

    def service_ids(self) -> List[Hashable]:
        return list(self._entries)

    def dependencies_of(self, service_id: Hashable) -> Tuple[Hashable, ...]:
        return self._entries[service_id].depends_on

    def is_initialized(self, service_id: Hashable) -> bool:
        return service_id in self._initialized

    @property
    def initialized_ids(self) -> List[Hashable]:
        return list(self._initialized)

    def resolve_order(self) -> List[Hashable]:
        """
        Registered services sorted so that dependencies come first.

        Ties keep registration order. A dependency that is not a registered
        service but is present in the container (e.g. a plain instance) is
        treated as already available.
        """
        order: List[Hashable] = []
        done = set()

        def visit(service_id: Hashable, path: List[Hashable]) -> None:
            if service_id in done:
                return
            if service_id in path:
                raise CyclicDependencyError(path[path.index(service_id):] + [service_id])

            entry = self._entries.get(service_id)
            if entry is None:
                if self._container.has(service_id):
                    return
                raise ServiceNotRegisteredError(service_id)

            path.append(service_id)
            for dependency in entry.depends_on:
                visit(dependency, path)
            path.pop()

            done.add(service_id)
            order.append(service_id)

        for service_id in self._entries:
            visit(service_id, [])
        return order

    def resolve_layers(self) -> List[List[Hashable]]:
        """Group the dependency order into layers whose members are independent."""
        return self._group_layers(self.resolve_order())

    def _group_layers(self, ordered: List[Hashable]) -> List[List[Hashable]]:
        # ``ordered`` lists dependencies before their dependents
        members = set(ordered)
        levels: Dict[Hashable, int] = {}
        for service_id in ordered:
            deps = [d for d in self._entries[service_id].depends_on if d in members]
            levels[service_id] = 1 + max((levels[d] for d in deps), default=-1)

        layers: List[List[Hashable]] = [[] for _ in range(max(levels.values(), default=-1) + 1)]
        for service_id, level in levels.items():
            layers[level].append(service_id)
        return layers

    async def init_services(self) -> None:
        """Run every pending init callback; emits ``services.initialized``."""
        if self.strategy is LifecycleStrategy.PARALLEL:
            await self._init_parallel()
        else:
            await self._init_sequential()

        self._events.emit(SERVICES_INITIALIZED)

    async def dispose_services(self) -> None:
        """
        Run dispose callbacks of initialised services in reverse order.

        A failing callback stops the sequence; the failing service and those
        not yet reached stay pending so a later call retries them.
        """
        if self.strategy is LifecycleStrategy.PARALLEL:
            await self._dispose_parallel()
        else:
            await self._dispose_sequential()

        self._events.emit(SERVICES_DISPOSED)

    async def _init_sequential(self) -> None:
        started: List[Hashable] = []
        for service_id in self.resolve_order():
            if service_id in self._initialized:
                continue
            try:
                await self._init_one(service_id)
            except Exception as e:
                self._logger.error(f"Service '{describe_id(service_id)}' failed to initialize: {e}")
                await self._rollback(started)
                raise ServiceInitError(service_id, e) from e
            started.append(service_id)

    async def _init_parallel(self) -> None:
        started: List[Hashable] = []
        for layer in self.resolve_layers():
            pending = [s for s in layer if s not in self._initialized]
            results = await asyncio.gather(
                *(self._init_one(s) for s in pending), return_exceptions=True
            )

            failure: Optional[Tuple[Hashable, BaseException]] = None
            for service_id, result in zip(pending, results):
                if isinstance(result, BaseException):
                    self._logger.error(
                        f"Service '{describe_id(service_id)}' failed to initialize: {result}"
                    )
                    failure = failure or (service_id, result)
                else:
                    started.append(service_id)

            if failure is not None:
                await self._rollback(started)
                service_id, error = failure
                raise ServiceInitError(service_id, error) from error

    async def _init_one(self, service_id: Hashable) -> None:
        await call_hook(self._entries[service_id].init_fn)
        self._initialized.append(service_id)
        self._logger.debug(f"Service '{describe_id(service_id)}' initialized")
        self._events.emit(SERVICE_INITIALIZED, {"id": service_id})

    async def _dispose_sequential(self) -> None:
        while self._initialized:
            service_id = self._initialized[-1]
            try:
                await self._dispose_one(service_id)
            except Exception as e:
                self._logger.error(f"Service '{describe_id(service_id)}' failed to dispose: {e}")
                raise ServiceDisposeError(service_id, e) from e

    async def _dispose_parallel(self) -> None:
        # only initialised services; later registrations may not resolve yet
        for layer in reversed(self._group_layers(list(self._initialized))):
            pending = [s for s in layer if s in self._initialized]
            results = await asyncio.gather(
                *(self._dispose_one(s) for s in pending), return_exceptions=True
            )
            for service_id, result in zip(pending, results):
                if isinstance(result, BaseException):
                    self._logger.error(
                        f"Service '{describe_id(service_id)}' failed to dispose: {result}"
                    )
                    raise ServiceDisposeError(service_id, result) from result

    async def _dispose_one(self, service_id: Hashable) -> None:
        await call_hook(self._entries[service_id].dispose_fn)
        self._initialized.remove(service_id)
        self._logger.debug(f"Service '{describe_id(service_id)}' disposed")
        self._events.emit(SERVICE_DISPOSED, {"id": service_id})

    async def _rollback(self, started: List[Hashable]) -> None:
        """Dispose services started by a failed init call, newest first."""
        for service_id in reversed(started):
            if service_id not in self._initialized:
                continue
            try:
                await self._dispose_one(service_id)
            except Exception as e:
                self._logger.error(
                    f"Error disposing '{describe_id(service_id)}' after failed init: {e}"
                )
                # drop it anyway; the init call as a whole failed
                self._initialized.remove(service_id)
