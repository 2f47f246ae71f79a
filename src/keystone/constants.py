"""
Global constants for keystone.
"""

VERSION = "0.4.0"

# Lifecycle events emitted by the engine
ENGINE_INITIALIZED = "engine.initialized"
ENGINE_DISPOSED = "engine.disposed"
ENGINE_ERROR = "engine.error"

# Events emitted by the service registry
SERVICES_INITIALIZED = "services.initialized"
SERVICES_DISPOSED = "services.disposed"
SERVICE_INITIALIZED = "service.initialized"
SERVICE_DISPOSED = "service.disposed"

# Plugin bookkeeping events
PLUGIN_INSTALLED = "plugin.installed"
PLUGIN_REMOVED = "plugin.removed"

STATE_CHANGED = "state.changed"

LIFECYCLE_EVENTS = (
    ENGINE_INITIALIZED,
    ENGINE_DISPOSED,
    ENGINE_ERROR,
    SERVICES_INITIALIZED,
    SERVICES_DISPOSED,
    SERVICE_INITIALIZED,
    SERVICE_DISPOSED,
    PLUGIN_INSTALLED,
    PLUGIN_REMOVED,
    STATE_CHANGED,
)

# Environment variable overriding the configured log level
LOG_LEVEL_ENV = "KEYSTONE_LOG_LEVEL"
