import logging
from threading import RLock
from typing import Any, Callable, Dict, Mapping, Optional, Set

StateSubscriber = Callable[[Dict[str, Any]], None]

logger = logging.getLogger(__name__)


class StateStore:
    """
    Small observable dictionary.

    Readers always receive copies; every update notifies subscribers with a
    copy of the merged state.
    """

    def __init__(self, initial_state: Optional[Mapping[str, Any]] = None):
        self._initial = dict(initial_state or {})
        self._state = dict(self._initial)
        self._subscribers: Set[StateSubscriber] = set()
        self._lock = RLock()

    def get(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._state)

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._state[key]

    def update(self, changes: Optional[Mapping[str, Any]] = None, **kwargs) -> None:
        """Merge ``changes`` (and keyword arguments) into the state."""
        with self._lock:
            if changes:
                self._state.update(changes)
            self._state.update(kwargs)
            snapshot = dict(self._state)
        self._notify(snapshot)

    def reset(self) -> None:
        """Restore the state captured at construction."""
        with self._lock:
            self._state = dict(self._initial)
            snapshot = dict(self._state)
        self._notify(snapshot)

    def subscribe(self, subscriber: StateSubscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.add(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.discard(subscriber)

        return unsubscribe

    def clear_subscribers(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def _notify(self, snapshot: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(dict(snapshot))
            except Exception as e:
                logger.error(f"Error in state subscriber: {e}", exc_info=True)


def create_state(initial_state: Optional[Mapping[str, Any]] = None) -> StateStore:
    return StateStore(initial_state)
