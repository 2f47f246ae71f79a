import logging
import traceback
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from keystone.constants import PLUGIN_INSTALLED, PLUGIN_REMOVED
from keystone.engine.engine_contract import Plugin, is_plugin
from keystone.errors import InvalidPluginError, PluginInstallError

if TYPE_CHECKING:
    from keystone.engine.engine_core import Engine


class PluginManager:
    """
    Installs and removes plugins on one engine.

    Plugins are keyed by name. Installing a name twice is a logged no-op;
    removing an unknown name is a logged no-op.
    """

    def __init__(self, engine: "Engine"):
        self._engine = engine
        self._plugins: Dict[str, Plugin] = {}
        self._installing: Set[str] = set()
        self._logger = logging.getLogger(__name__)

    def use(self, plugin: Plugin, options: Any = None) -> None:
        """
        Install a plugin.

        The plugin is only recorded if its install hook returns normally.
        Errors from install are raised as PluginInstallError and the plugin
        stays unregistered, so the call may be retried.
        """
        if not is_plugin(plugin):
            raise InvalidPluginError(
                f"Object {plugin!r} does not provide a string 'name' and a callable 'install'"
            )

        if plugin.name in self._plugins or plugin.name in self._installing:
            self._logger.warning(f"Plugin '{plugin.name}' is already installed")
            return

        self._installing.add(plugin.name)
        try:
            plugin.install(self._engine, options)
        except Exception as e:
            self._logger.error(
                f"Error installing plugin '{plugin.name}': {e}\n{traceback.format_exc()}"
            )
            raise PluginInstallError(plugin.name, e) from e
        finally:
            self._installing.discard(plugin.name)

        self._plugins[plugin.name] = plugin
        self._logger.info(f"Plugin '{plugin.name}' installed")
        self._engine.events.emit(PLUGIN_INSTALLED, {"name": plugin.name})

    def remove(self, name: str) -> None:
        """
        Uninstall a plugin by name.

        Errors from the uninstall hook are logged; the plugin is removed from
        bookkeeping regardless.
        """
        # popped first so an uninstall hook calling remove() again is a no-op
        plugin = self._plugins.pop(name, None)
        if plugin is None:
            self._logger.warning(f"Plugin '{name}' not found")
            return

        uninstall = getattr(plugin, "uninstall", None)
        if callable(uninstall):
            try:
                uninstall(self._engine)
            except Exception as e:
                self._logger.error(
                    f"Error uninstalling plugin '{name}': {e}\n{traceback.format_exc()}"
                )

        self._logger.info(f"Plugin '{name}' removed")
        self._engine.events.emit(PLUGIN_REMOVED, {"name": name})

    def remove_all(self) -> None:
        """Remove every plugin, most recently installed first."""
        for name in reversed(list(self._plugins)):
            self.remove(name)

    def has(self, name: str) -> bool:
        return name in self._plugins

    def get(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)

    def names(self) -> List[str]:
        return list(self._plugins)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._plugins)
