"""Engine package for keystone"""

# engine_contract first: plugins and loaders import it while this package is loading
from .engine_contract import LifecycleState, Plugin, PluginCore, ServiceCore
from .engine_core import Engine
from .api_manager import ApiManager

__all__ = [
    "ApiManager",
    "Engine",
    "LifecycleState",
    "Plugin",
    "PluginCore",
    "ServiceCore",
]
