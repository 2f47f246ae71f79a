import logging
from typing import TYPE_CHECKING, Any, Dict, Hashable, List

if TYPE_CHECKING:
    from keystone.engine.engine_core import Engine


class ApiManager:
    """
    Stable public surface over the engine's services.

    ``engine.api.<name>`` returns the service exposed under ``name``. Exposed
    services are resolved and cached by init(); before that, attribute access
    resolves lazily from the container.
    """

    def __init__(self, engine: "Engine"):
        self._engine = engine
        self._exposed: Dict[str, Hashable] = {}
        self._resolved: Dict[str, Any] = {}
        self._logger = logging.getLogger(__name__)

    def expose(self, name: str, service_id: Hashable = None) -> None:
        """Expose the service registered as ``service_id`` (default ``name``)."""
        if name.startswith("_") or hasattr(type(self), name):
            raise ValueError(f"'{name}' cannot be used as an API name")
        self._exposed[name] = name if service_id is None else service_id
        self._resolved.pop(name, None)

    def names(self) -> List[str]:
        return list(self._exposed)

    def init(self) -> None:
        """Resolve every exposed service; called by the engine once services are ready."""
        for name, service_id in self._exposed.items():
            self._resolved[name] = self._engine.container.resolve(service_id)
        self._logger.debug(f"API ready: {', '.join(self._exposed) or 'nothing exposed'}")

    def reset(self) -> None:
        self._resolved.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._exposed

    def __getattr__(self, name: str) -> Any:
        # Only called for names not found through normal attribute lookup
        exposed = self.__dict__.get("_exposed", {})
        if name not in exposed:
            raise AttributeError(f"No API exposed under '{name}'")
        resolved = self.__dict__["_resolved"]
        if name not in resolved:
            resolved[name] = self._engine.container.resolve(exposed[name])
        return resolved[name]
