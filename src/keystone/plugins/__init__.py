from .plugin_manager import PluginManager
from .event_trace import EventTracePlugin, TraceEntry

__all__ = ["PluginManager", "EventTracePlugin", "TraceEntry"]
