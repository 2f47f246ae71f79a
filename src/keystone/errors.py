"""Exception hierarchy shared by every keystone component."""

from typing import Hashable, Sequence


def describe_id(service_id: Hashable) -> str:
    """Readable name for a service identifier (string, type or ServiceKey)."""
    if isinstance(service_id, str):
        return service_id
    if isinstance(service_id, type):
        return service_id.__qualname__
    return str(service_id)


class KeystoneError(Exception):
    """Base class for all keystone errors."""


class ConfigurationError(KeystoneError, ValueError):
    """Raised when engine options are invalid."""


class ServiceNotRegisteredError(KeystoneError, LookupError):
    """Raised when resolving an identifier with no registration."""

    def __init__(self, service_id: Hashable):
        self.service_id = service_id
        super().__init__(f"Service not registered: {describe_id(service_id)}")


class CyclicDependencyError(KeystoneError):
    """Raised when a service (directly or transitively) depends on itself."""

    def __init__(self, chain: Sequence[Hashable]):
        self.chain = list(chain)
        path = " -> ".join(describe_id(item) for item in self.chain)
        super().__init__(f"Cyclic dependency detected: {path}")


class InvalidPluginError(KeystoneError, TypeError):
    """Raised when an object does not satisfy the plugin contract."""


class PluginInstallError(KeystoneError):
    def __init__(self, name: str, cause: BaseException):
        self.name = name
        super().__init__(f"Error installing plugin '{name}': {cause}")


class ServiceLifecycleError(KeystoneError):
    """Base class for failures raised by service init/dispose callbacks."""

    phase = "lifecycle"

    def __init__(self, service_id: Hashable, cause: BaseException):
        self.service_id = service_id
        super().__init__(
            f"Service '{describe_id(service_id)}' failed during {self.phase}: {cause}"
        )


class ServiceInitError(ServiceLifecycleError):
    phase = "init"


class ServiceDisposeError(ServiceLifecycleError):
    phase = "dispose"


class EngineStateError(KeystoneError, RuntimeError):
    """Raised when a lifecycle operation is not allowed in the current state."""
