from .config_loader import ConfigLoader, load_engine_options
from .loader import load_plugin, load_service, resolve_object

__all__ = [
    "ConfigLoader",
    "load_engine_options",
    "load_plugin",
    "load_service",
    "resolve_object",
]
