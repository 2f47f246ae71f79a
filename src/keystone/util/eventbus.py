from collections import defaultdict
from threading import RLock
from typing import Any, Callable, Dict, List, Set
import asyncio
import inspect
import logging
import traceback


EventHandler = Callable[[Any], Any]


class EventBus:
    """
    Synchronous publish/subscribe dispatcher owned by one engine.

    Handlers are kept in unordered sets, split into persistent and once
    subsets. ``emit`` snapshots the handlers under the lock and invokes them
    outside it, so handlers may subscribe or unsubscribe while being called.
    """

    def __init__(self):
        self._handlers: Dict[str, Set[EventHandler]] = defaultdict(set)
        self._once_handlers: Dict[str, Set[EventHandler]] = defaultdict(set)
        self._lock = RLock()
        self._tasks: Set[asyncio.Future] = set()
        self._logger = logging.getLogger(__name__)

    def on(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe a handler and return a callable that unsubscribes it."""
        with self._lock:
            self._handlers[event].add(handler)

        def unsubscribe() -> None:
            with self._lock:
                bucket = self._handlers.get(event)
                if bucket is not None:
                    bucket.discard(handler)
                    if not bucket:
                        del self._handlers[event]

        return unsubscribe

    def once(self, event: str, handler: EventHandler) -> None:
        """Subscribe a handler for the next emission of ``event`` only."""
        with self._lock:
            self._once_handlers[event].add(handler)

    def off(self, event: str, handler: EventHandler = None) -> None:
        """
        Remove handlers for an event.

        Without ``handler`` every persistent and once handler for the event is
        dropped; otherwise only that exact handler is removed from both sets.
        Removing a handler that is not subscribed is a no-op.
        """
        with self._lock:
            if handler is None:
                self._handlers.pop(event, None)
                self._once_handlers.pop(event, None)
                return

            for registry in (self._handlers, self._once_handlers):
                bucket = registry.get(event)
                if bucket is None:
                    continue
                bucket.discard(handler)
                if not bucket:
                    del registry[event]

    def emit(self, event: str, data: Any = None) -> None:
        """
        Deliver ``data`` to every handler subscribed to ``event``.

        The once-set is taken and cleared before any handler runs, so a
        once-handler that re-subscribes itself is not invoked again within
        this call. A failing handler is logged and never stops delivery.
        """
        with self._lock:
            handlers: List[EventHandler] = list(self._handlers.get(event, ()))
            once_handlers: List[EventHandler] = list(
                self._once_handlers.pop(event, ())
            )

        if not handlers and not once_handlers:
            self._logger.debug(f"Emitting '{event}' with no subscribers")
            return

        for handler in handlers:
            self._invoke(event, handler, data)

        for handler in once_handlers:
            self._invoke(event, handler, data, once=True)

    def clear(self) -> None:
        """Drop every subscription on the bus."""
        with self._lock:
            self._handlers.clear()
            self._once_handlers.clear()
        self._logger.debug("Event bus subscriptions cleared")

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._handlers.get(event, ())) + len(
                self._once_handlers.get(event, ())
            )

    def has_listeners(self, event: str) -> bool:
        return self.listener_count(event) > 0

    def pending_tasks(self) -> int:
        """Number of coroutine handlers scheduled by emit() that are still running."""
        return len(self._tasks)

    def events(self) -> List[str]:
        """Names of events that currently have at least one subscriber."""
        with self._lock:
            return sorted(set(self._handlers) | set(self._once_handlers))

    def _invoke(
        self, event: str, handler: EventHandler, data: Any, once: bool = False
    ) -> None:
        kind = "once handler" if once else "handler"
        try:
            result = handler(data)
        except Exception as e:
            self._logger.error(
                f"Error in event {kind} for '{event}': {e}\n{traceback.format_exc()}"
            )
            return

        if inspect.isawaitable(result):
            self._schedule(event, result)

    def _schedule(self, event: str, awaitable) -> None:
        # emit never suspends; coroutine handlers run as tasks on the loop
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning(
                f"Async handler for '{event}' dropped: no running event loop"
            )
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        # the loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def log_failure(t: asyncio.Future) -> None:
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                self._logger.error(
                    f"Error in async event handler for '{event}': {error}",
                    exc_info=error,
                )

        task.add_done_callback(log_failure)
