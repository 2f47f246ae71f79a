from enum import Enum
from logging import Logger
from typing import TYPE_CHECKING, Any, Optional, Protocol
import logging

from keystone.models import Meta

if TYPE_CHECKING:
    from keystone.engine.engine_core import Engine


class LifecycleState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    DISPOSING = "disposing"
    DISPOSE_FAILED = "dispose_failed"


class Plugin(Protocol):
    """Structural plugin contract: a name plus install/uninstall hooks."""

    name: str

    def install(self, engine: "Engine", options: Any = None) -> None: ...


class ServiceCore(object):
    """
    Optional base class for services managed by the engine.

    Any object works as a service; ``init`` and ``dispose`` are looked up by
    name and may be plain or ``async`` methods. Subclasses override only the
    hooks they need.
    """

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or logging.getLogger(self.__class__.__module__)

    async def init(self) -> None:
        pass

    async def dispose(self) -> None:
        pass


class PluginCore(object):
    """
    Base class for plugins installed through the PluginManager.

    Lifecycle methods to override:
    - install(engine, options): register services, subscribe to events
    - uninstall(engine): undo what install did
    """

    meta: Meta

    name: str = ""
    description: str = ""
    version: str = "0.0.0"

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or logging.getLogger(self.__class__.__module__)
        if not self.name:
            self.name = self.__class__.__name__
        self.meta = Meta(
            name=self.name,
            description=self.description or "No description",
            version=self.version,
        )

    def install(self, engine: "Engine", options: Any = None) -> None:
        pass

    def uninstall(self, engine: "Engine") -> None:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.meta}>"


def is_plugin(candidate: Any) -> bool:
    return isinstance(getattr(candidate, "name", None), str) and callable(
        getattr(candidate, "install", None)
    )
