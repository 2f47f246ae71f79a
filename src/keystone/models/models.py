from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from dacite import Config, from_dict


class Performance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LifecycleStrategy(str, Enum):
    SEQUENTIAL = "sequential"  # one service at a time, dependency order
    PARALLEL = "parallel"  # fan-out/join with compensating disposal


@dataclass
class Meta:
    name: str
    description: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}: {self.version}"


@dataclass(frozen=True)
class RuntimeOptions:
    performance: Performance = Performance.MEDIUM
    debug: bool = False
    auto_start: bool = False
    lifecycle: LifecycleStrategy = LifecycleStrategy.SEQUENTIAL


@dataclass
class PluginSpec:
    """A plugin referenced by import path, e.g. ``mypkg.plugins:TracingPlugin``."""

    path: str
    options: Optional[Dict[str, Any]] = None


@dataclass
class ServiceSpec:
    """A service declared in configuration rather than in code."""

    factory: str  # import path of a callable returning the service
    depends_on: List[str] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EngineOptions:
    """
    Configuration consumed once by the Engine constructor.

    ``plugins`` items may be plugin objects, import path strings, PluginSpec
    instances or ``{path, options}`` mappings. ``services`` values may be
    zero-argument factories, import path strings, ServiceSpec instances or
    ``{factory, depends_on, options}`` mappings.
    """

    container: Any = None
    options: RuntimeOptions = field(default_factory=RuntimeOptions)
    plugins: List[Any] = field(default_factory=list)
    services: Dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "EngineOptions":
        """Detach from the caller's object so later mutation has no effect."""
        return EngineOptions(
            container=self.container,
            options=replace(self.options),
            plugins=list(self.plugins),
            services=dict(self.services),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineOptions":
        return from_dict(data_class=cls, data=dict(data), config=dacite_config())


def dacite_config() -> Config:
    """
    Dacite configuration for option dataclasses.

    Enum fields are cast from their string values; unknown keys are rejected.
    """
    return Config(
        check_types=True,
        strict=True,
        cast=[Enum],
        type_hooks={
            List[Any]: lambda x: [] if x is None else x,
            Dict[str, Any]: lambda x: {} if x is None else x,
        },
    )
