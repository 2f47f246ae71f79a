"""keystone: dependency container, event bus, plugins and service lifecycle."""

from keystone.constants import VERSION
from keystone.engine import ApiManager, Engine, LifecycleState, Plugin, PluginCore, ServiceCore
from keystone.di import Container, ServiceKey, ServiceRegistry
from keystone.errors import (
    ConfigurationError,
    CyclicDependencyError,
    EngineStateError,
    InvalidPluginError,
    KeystoneError,
    PluginInstallError,
    ServiceDisposeError,
    ServiceInitError,
    ServiceNotRegisteredError,
)
from keystone.models import EngineOptions, LifecycleStrategy, Performance, RuntimeOptions
from keystone.plugins import EventTracePlugin, PluginManager
from keystone.util import EventBus, StateStore, create_state

__version__ = VERSION

__all__ = [
    "ApiManager",
    "ConfigurationError",
    "Container",
    "CyclicDependencyError",
    "Engine",
    "EngineOptions",
    "EngineStateError",
    "EventBus",
    "EventTracePlugin",
    "InvalidPluginError",
    "KeystoneError",
    "LifecycleState",
    "LifecycleStrategy",
    "Performance",
    "Plugin",
    "PluginCore",
    "PluginInstallError",
    "PluginManager",
    "RuntimeOptions",
    "ServiceCore",
    "ServiceDisposeError",
    "ServiceInitError",
    "ServiceKey",
    "ServiceNotRegisteredError",
    "ServiceRegistry",
    "StateStore",
    "VERSION",
    "create_state",
]
