"""Event tracing plugin.

Records lifecycle events emitted on the engine bus into a fixed-size ring
buffer and logs each one at DEBUG level. Installed automatically when the
engine runs with ``debug`` enabled.
"""

from collections import deque
from dataclasses import dataclass
from time import perf_counter
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional

from keystone.constants import LIFECYCLE_EVENTS
from keystone.engine.engine_contract import PluginCore

if TYPE_CHECKING:
    from keystone.engine.engine_core import Engine


@dataclass(frozen=True)
class TraceEntry:
    name: str
    timestamp: float
    summary: str


class EventTracePlugin(PluginCore):
    name = "event-trace"
    description = "Keeps a ring buffer of recent lifecycle events"
    version = "1.0.0"

    DEFAULT_CAPACITY = 50

    def __init__(self, capacity: int = DEFAULT_CAPACITY, events=LIFECYCLE_EVENTS):
        super().__init__()
        self._traces: Deque[TraceEntry] = deque(maxlen=capacity)
        self._events = tuple(events)
        self._unsubscribers: List[Callable[[], None]] = []

    def install(self, engine: "Engine", options: Optional[Dict[str, Any]] = None) -> None:
        options = options or {}
        if "capacity" in options:
            self._traces = deque(self._traces, maxlen=int(options["capacity"]))
        for event in options.get("events", self._events):
            self._unsubscribers.append(engine.events.on(event, self._recorder(event)))

    def uninstall(self, engine: "Engine") -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def recent(self) -> List[TraceEntry]:
        return list(self._traces)

    def clear(self) -> None:
        self._traces.clear()

    def _recorder(self, event: str) -> Callable[[Any], None]:
        def record(payload: Any) -> None:
            if payload is None:
                summary = "-"
            else:
                text = str(payload)
                summary = text if len(text) <= 60 else text[:57] + "..."
            self._traces.append(TraceEntry(event, perf_counter(), summary))
            self._logger.debug(f"[trace] {event}: {summary}")

        return record
