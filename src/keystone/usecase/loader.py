import inspect
import logging
from functools import partial
from importlib import import_module
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from keystone.engine.engine_contract import is_plugin
from keystone.errors import ConfigurationError, InvalidPluginError
from keystone.models import PluginSpec, ServiceSpec

logger = logging.getLogger(__name__)


def resolve_object(path: str) -> Any:
    """
    Import an object from ``package.module:attribute`` (or the dotted form
    ``package.module.attribute``).
    """
    if ":" in path:
        module_name, _, attribute = path.partition(":")
    else:
        module_name, _, attribute = path.rpartition(".")

    if not module_name or not attribute:
        raise ConfigurationError(f"Invalid import path '{path}'")

    logger.debug(f"Importing '{attribute}' from module '{module_name}'")
    try:
        module = import_module(module_name)
    except ModuleNotFoundError as e:
        raise ConfigurationError(f"Failed to import module '{module_name}': {e}") from e

    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ConfigurationError(
                f"Module '{module_name}' has no attribute '{attribute}'"
            ) from e
    return target


def load_plugin(entry: Any) -> Tuple[Any, Optional[Dict[str, Any]]]:
    """
    Turn a configured plugin entry into ``(plugin, options)``.

    Accepts plugin objects, import paths, PluginSpec instances and
    ``{path, options}`` mappings. A plugin class found at an import path is
    instantiated without arguments.
    """
    options = None
    if isinstance(entry, Mapping):
        entry = PluginSpec(path=entry["path"], options=entry.get("options"))
    if isinstance(entry, PluginSpec):
        options = entry.options
        entry = entry.path
    if isinstance(entry, str):
        entry = resolve_object(entry)
    if inspect.isclass(entry):
        entry = entry()

    if not is_plugin(entry):
        raise InvalidPluginError(f"Configured plugin {entry!r} does not satisfy the plugin contract")
    return entry, options


def load_service(entry: Any) -> Tuple[Callable[[], Any], List[str]]:
    """
    Turn a configured service entry into ``(factory, depends_on)``.

    Accepts zero-argument factories, import paths, ServiceSpec instances and
    ``{factory, depends_on, options}`` mappings; ``options`` become keyword
    arguments of the imported factory.
    """
    if callable(entry) and not isinstance(entry, str):
        return entry, []
    if isinstance(entry, str):
        entry = ServiceSpec(factory=entry)
    elif isinstance(entry, Mapping):
        entry = ServiceSpec(
            factory=entry["factory"],
            depends_on=list(entry.get("depends_on") or []),
            options=dict(entry.get("options") or {}),
        )

    if not isinstance(entry, ServiceSpec):
        raise ConfigurationError(f"Unsupported service declaration: {entry!r}")

    factory = resolve_object(entry.factory)
    if not callable(factory):
        raise ConfigurationError(f"Service factory '{entry.factory}' is not callable")
    return partial(factory, **entry.options), list(entry.depends_on)
