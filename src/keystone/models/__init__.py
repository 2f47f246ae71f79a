from keystone.models.models import (
    Meta,
    Performance,
    LifecycleStrategy,
    RuntimeOptions,
    PluginSpec,
    ServiceSpec,
    EngineOptions,
    dacite_config,
)

__all__ = [
    "Meta",
    "Performance",
    "LifecycleStrategy",
    "RuntimeOptions",
    "PluginSpec",
    "ServiceSpec",
    "EngineOptions",
    "dacite_config",
]
