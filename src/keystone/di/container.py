"""Dependency container: named registrations resolved on demand."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, TypeVar, Union, overload

from keystone.errors import CyclicDependencyError, ServiceNotRegisteredError, describe_id

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceKey(Generic[T]):
    """Typed identifier: ``resolve(ServiceKey[Clock]("clock"))`` is typed as ``Clock``."""

    name: str

    def __str__(self) -> str:
        return self.name


ServiceIdentifier = Union[str, type, ServiceKey, Hashable]


@dataclass
class ServiceRegistration:
    factory: Callable[[], Any]
    singleton: bool = True


class Container:
    """
    Registry of services keyed by identifier.

    Factories take no arguments; a service obtains its own dependencies by
    resolving them from the same container inside its factory. Singletons are
    built on first resolve and cached. Resolving an identifier that is already
    being built on the current thread raises CyclicDependencyError.
    """

    def __init__(self) -> None:
        self._registrations: Dict[Hashable, ServiceRegistration] = {}
        self._instances: Dict[Hashable, Any] = {}
        self._lock = threading.RLock()
        self._local = threading.local()
        self._logger = logging.getLogger(__name__)

    def register(
        self, service_id: ServiceIdentifier, factory: Callable[[], Any], singleton: bool = True
    ) -> None:
        """
        Register a zero-argument factory (a class or any callable).

        Re-registering an identifier replaces the previous mapping and drops
        any instance cached for it.
        """
        if not callable(factory):
            raise TypeError(f"Factory for '{describe_id(service_id)}' is not callable")

        with self._lock:
            if service_id in self._registrations or service_id in self._instances:
                self._logger.debug(f"Overwriting registration for '{describe_id(service_id)}'")
            self._registrations[service_id] = ServiceRegistration(factory, singleton)
            self._instances.pop(service_id, None)

        self._logger.debug(
            f"Registered '{describe_id(service_id)}' ({'singleton' if singleton else 'transient'})"
        )

    def register_instance(self, service_id: ServiceIdentifier, instance: Any) -> None:
        with self._lock:
            if service_id in self._instances:
                self._logger.debug(f"Overwriting instance for '{describe_id(service_id)}'")
            self._instances[service_id] = instance
        self._logger.debug(f"Registered instance for '{describe_id(service_id)}'")

    @overload
    def resolve(self, service_id: ServiceKey[T]) -> T: ...

    @overload
    def resolve(self, service_id: ServiceIdentifier) -> Any: ...

    def resolve(self, service_id):
        with self._lock:
            if service_id in self._instances:
                return self._instances[service_id]

            registration = self._registrations.get(service_id)
            if registration is None:
                raise ServiceNotRegisteredError(service_id)

            stack = self._resolution_stack()
            if service_id in stack:
                raise CyclicDependencyError(stack[stack.index(service_id):] + [service_id])

            stack.append(service_id)
            try:
                instance = registration.factory()
            finally:
                stack.pop()

            if registration.singleton:
                self._instances[service_id] = instance
            return instance

    def has(self, service_id: ServiceIdentifier) -> bool:
        with self._lock:
            return service_id in self._instances or service_id in self._registrations

    def __contains__(self, service_id: ServiceIdentifier) -> bool:
        return self.has(service_id)

    def unregister(self, service_id: ServiceIdentifier) -> Optional[Any]:
        """Forget an identifier; returns the cached instance, if any."""
        with self._lock:
            self._registrations.pop(service_id, None)
            return self._instances.pop(service_id, None)

    def ids(self) -> List[Hashable]:
        with self._lock:
            seen = dict.fromkeys(self._registrations)
            seen.update(dict.fromkeys(self._instances))
            return list(seen)

    def clear(self) -> None:
        with self._lock:
            self._registrations.clear()
            self._instances.clear()
        self._logger.debug("Container cleared")

    def _resolution_stack(self) -> List[Hashable]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack
