import logging

import pytest
from unittest.mock import Mock

from keystone.constants import PLUGIN_INSTALLED, PLUGIN_REMOVED
from keystone.engine import Engine, PluginCore
from keystone.errors import InvalidPluginError, PluginInstallError
from keystone.plugins import PluginManager


class CounterPlugin(PluginCore):
    name = "counter"

    def __init__(self):
        super().__init__()
        self.installs = []
        self.uninstalls = 0

    def install(self, engine, options=None):
        self.installs.append(options)
        engine.container.register_instance("counter", 0)

    def uninstall(self, engine):
        self.uninstalls += 1


class BrokenPlugin(PluginCore):
    name = "broken"

    def install(self, engine, options=None):
        raise RuntimeError("cannot install")


@pytest.fixture
def engine():
    return Engine()


def test_use_installs_and_records_plugin(engine):
    plugin = CounterPlugin()

    engine.plugins.use(plugin, {"step": 2})

    assert plugin.installs == [{"step": 2}]
    assert engine.plugins.has("counter")
    assert engine.plugins.get("counter") is plugin
    assert engine.get("counter") == 0


def test_use_same_name_twice_is_noop(engine, caplog):
    plugin = CounterPlugin()
    engine.plugins.use(plugin)

    with caplog.at_level(logging.WARNING):
        engine.plugins.use(CounterPlugin())

    assert plugin.installs == [None]
    assert engine.plugins.get("counter") is plugin
    assert "already installed" in caplog.text


def test_failed_install_is_not_recorded_and_can_retry(engine):
    with pytest.raises(PluginInstallError) as exc_info:
        engine.plugins.use(BrokenPlugin())

    assert exc_info.value.name == "broken"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert not engine.plugins.has("broken")


def test_use_rejects_objects_without_contract(engine):
    with pytest.raises(InvalidPluginError):
        engine.plugins.use(object())

    with pytest.raises(InvalidPluginError):
        engine.plugins.use(Mock(spec=["name"]))


def test_duck_typed_plugin_is_accepted(engine):
    plugin = Mock()
    plugin.name = "duck"

    engine.plugins.use(plugin, {"quack": True})

    plugin.install.assert_called_once_with(engine, {"quack": True})
    assert "duck" in engine.plugins


def test_remove_calls_uninstall_and_forgets(engine):
    plugin = CounterPlugin()
    engine.plugins.use(plugin)

    engine.plugins.remove("counter")

    assert plugin.uninstalls == 1
    assert not engine.plugins.has("counter")
    assert engine.plugins.get("counter") is None


def test_remove_unknown_is_noop(engine, caplog):
    with caplog.at_level(logging.WARNING):
        engine.plugins.remove("ghost")
    assert "not found" in caplog.text


def test_remove_without_uninstall_hook(engine):
    plugin = Mock(spec=["name", "install"])
    plugin.name = "minimal"
    engine.plugins.use(plugin)

    engine.plugins.remove("minimal")

    assert not engine.plugins.has("minimal")


def test_failing_uninstall_still_removes(engine, caplog):
    plugin = CounterPlugin()
    plugin.uninstall = Mock(side_effect=RuntimeError("uninstall broke"))
    engine.plugins.use(plugin)

    with caplog.at_level(logging.ERROR):
        engine.plugins.remove("counter")

    assert not engine.plugins.has("counter")
    assert "uninstall broke" in caplog.text


def test_plugin_events_emitted(engine):
    seen = []
    engine.events.on(PLUGIN_INSTALLED, lambda data: seen.append(("installed", data)))
    engine.events.on(PLUGIN_REMOVED, lambda data: seen.append(("removed", data)))

    engine.plugins.use(CounterPlugin())
    engine.plugins.remove("counter")

    assert seen == [("installed", {"name": "counter"}), ("removed", {"name": "counter"})]


def test_remove_all_in_reverse_order():
    engine = Mock()
    manager = PluginManager(engine)
    order = []
    for name in ("first", "second"):
        plugin = Mock()
        plugin.name = name
        plugin.uninstall.side_effect = lambda _, name=name: order.append(name)
        manager.use(plugin)

    manager.remove_all()

    assert order == ["second", "first"]
    assert len(manager) == 0


def test_plugin_core_defaults():
    class Unnamed(PluginCore):
        pass

    plugin = Unnamed()

    assert plugin.name == "Unnamed"
    assert plugin.meta.version == "0.0.0"
    assert "Unnamed" in repr(plugin)


def test_engine_use_is_chainable(engine):
    assert engine.use(CounterPlugin()) is engine


def test_uninstall_hook_removing_itself_does_not_raise(engine):
    class SelfRemoving(PluginCore):
        name = "self-removing"
        uninstalls = 0

        def uninstall(self, engine):
            type(self).uninstalls += 1
            engine.plugins.remove(self.name)

    removed = []
    engine.events.on(PLUGIN_REMOVED, removed.append)
    engine.plugins.use(SelfRemoving())

    engine.plugins.remove("self-removing")

    assert SelfRemoving.uninstalls == 1
    assert not engine.plugins.has("self-removing")
    assert removed == [{"name": "self-removing"}]


def test_install_hook_reusing_itself_installs_once(engine):
    class Reentrant(PluginCore):
        name = "reentrant"
        calls = 0

        def install(self, engine, options=None):
            type(self).calls += 1
            engine.use(self)

    plugin = Reentrant()
    engine.use(plugin)

    assert Reentrant.calls == 1
    assert engine.plugins.get("reentrant") is plugin


def test_failed_install_can_be_retried(engine):
    plugin = BrokenPlugin()
    with pytest.raises(PluginInstallError):
        engine.plugins.use(plugin)

    plugin.install = Mock()
    engine.plugins.use(plugin)

    assert engine.plugins.get("broken") is plugin
