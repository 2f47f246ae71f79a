import asyncio
import logging

import pytest
from unittest.mock import AsyncMock, Mock

from keystone.constants import (
    ENGINE_DISPOSED,
    ENGINE_ERROR,
    ENGINE_INITIALIZED,
    STATE_CHANGED,
)
from keystone.engine import Engine, LifecycleState
from keystone.errors import (
    ConfigurationError,
    EngineStateError,
    ServiceDisposeError,
    ServiceInitError,
    ServiceNotRegisteredError,
)
from keystone.models import EngineOptions, Performance, RuntimeOptions

from sample_services import Clock, MarkerPlugin


class ServiceA:
    pass


class ServiceB:
    def __init__(self, container):
        self.a = container.resolve("A")


def record_events(engine, *names):
    seen = []
    for name in names:
        engine.events.on(name, lambda data, name=name: seen.append(name))
    return seen


def test_default_services_registered():
    target = object()
    engine = Engine({"container": target})

    assert engine.get("events") is engine.events
    assert engine.get("container") is engine.container
    assert engine.get("plugins") is engine.plugins
    assert engine.get("options") is engine.options
    assert engine.get("target") is target
    assert engine.state_store.get() == {"initialized": False, "running": False}


def test_target_absent_without_container_option():
    engine = Engine()
    assert not engine.has("target")


def test_default_options():
    engine = Engine()

    assert engine.performance is Performance.MEDIUM
    assert engine.debug is False
    assert engine.state is LifecycleState.UNINITIALIZED
    assert not engine.initialized
    assert not engine.running


def test_performance_from_string():
    engine = Engine({"options": {"performance": "high"}})
    assert engine.performance is Performance.HIGH


def test_invalid_performance_rejected():
    with pytest.raises(ConfigurationError):
        Engine({"options": {"performance": "turbo"}})

    with pytest.raises(ConfigurationError):
        Engine(EngineOptions(options=RuntimeOptions(performance="turbo")))


def test_unknown_option_rejected():
    with pytest.raises(ConfigurationError):
        Engine({"options": {"warp": True}})


def test_invalid_options_type_rejected():
    with pytest.raises(ConfigurationError):
        Engine(["not", "options"])


def test_options_are_copied():
    options = EngineOptions()
    engine = Engine(options)

    options.plugins.append(MarkerPlugin())

    assert engine.options is not options
    assert engine.options.plugins == []


def test_create_engine_factory():
    engine = Engine.create_engine(options={"performance": "low"})
    assert engine.performance is Performance.LOW


def test_resolve_before_dependency_registered_fails():
    engine = Engine()

    with pytest.raises(ServiceNotRegisteredError):
        engine.register_service("B", lambda: ServiceB(engine.container))

    engine.container.register("B2", lambda: ServiceB(engine.container))
    with pytest.raises(ServiceNotRegisteredError):
        engine.get("B2")


def test_dependency_registered_first_is_shared():
    engine = Engine()
    a = engine.register_service("A", ServiceA)
    b = engine.register_service("B", lambda: ServiceB(engine.container), depends_on=["A"])

    assert engine.get("B") is b
    assert b.a is a
    assert engine.get("A") is a


@pytest.mark.asyncio
async def test_init_runs_services_and_emits_event():
    engine = Engine()
    clock = engine.register_service("clock", Clock)
    seen = record_events(engine, ENGINE_INITIALIZED)

    await engine.init()

    assert clock.started
    assert engine.initialized
    assert engine.running
    assert engine.state is LifecycleState.INITIALIZED
    assert seen == [ENGINE_INITIALIZED]
    assert engine.state_store.get() == {"initialized": True, "running": True}


@pytest.mark.asyncio
async def test_second_init_is_noop():
    engine = Engine()
    init = Mock()
    engine.register_service("svc", object, init_fn=init)

    await engine.init()
    await engine.init()

    init.assert_called_once()
    assert engine.initialized


@pytest.mark.asyncio
async def test_dispose_never_initialized_is_silent():
    engine = Engine()
    seen = []
    for name in (ENGINE_DISPOSED, ENGINE_ERROR, STATE_CHANGED):
        engine.events.on(name, seen.append)

    await engine.dispose()

    assert seen == []
    assert engine.state is LifecycleState.UNINITIALIZED


@pytest.mark.asyncio
async def test_dispose_runs_hooks_and_emits_event():
    engine = Engine()
    clock = engine.register_service("clock", Clock)
    seen = record_events(engine, ENGINE_DISPOSED)
    await engine.init()

    await engine.dispose()

    assert not clock.started
    assert not engine.initialized
    assert not engine.running
    assert seen == [ENGINE_DISPOSED]


@pytest.mark.asyncio
async def test_engine_can_reinitialize_after_dispose():
    engine = Engine()
    init = Mock()
    engine.register_service("svc", object, init_fn=init)

    await engine.init()
    await engine.dispose()
    await engine.init()

    assert init.call_count == 2
    assert engine.initialized


@pytest.mark.asyncio
async def test_init_failure_emits_error_and_resets_state():
    engine = Engine()
    errors = []
    engine.events.on(ENGINE_ERROR, errors.append)
    dispose_ok = Mock()
    engine.register_service("ok", object, dispose_fn=dispose_ok)
    engine.register_service("bad", object, init_fn=Mock(side_effect=RuntimeError("no")))

    with pytest.raises(ServiceInitError):
        await engine.init()

    assert engine.state is LifecycleState.UNINITIALIZED
    assert not engine.initialized
    assert errors[0]["phase"] == "init"
    assert isinstance(errors[0]["error"], ServiceInitError)
    dispose_ok.assert_called_once()


@pytest.mark.asyncio
async def test_dispose_failure_moves_to_dispose_failed_and_retries():
    engine = Engine()
    errors = []
    engine.events.on(ENGINE_ERROR, errors.append)
    dispose = Mock(side_effect=[RuntimeError("busy"), None])
    engine.register_service("flaky", object, dispose_fn=dispose)
    await engine.init()

    with pytest.raises(ServiceDisposeError):
        await engine.dispose()

    assert engine.state is LifecycleState.DISPOSE_FAILED
    assert engine.running
    assert not engine.initialized
    assert errors[0]["phase"] == "dispose"

    with pytest.raises(EngineStateError):
        await engine.init()

    await engine.dispose()

    assert engine.state is LifecycleState.UNINITIALIZED
    assert dispose.call_count == 2


@pytest.mark.asyncio
async def test_register_service_uses_instance_hooks():
    engine = Engine()
    service = Mock()
    service.init = AsyncMock()
    service.dispose = Mock()
    engine.register_service("svc", lambda: service)

    await engine.init()
    await engine.dispose()

    service.init.assert_awaited_once()
    service.dispose.assert_called_once()


@pytest.mark.asyncio
async def test_services_initialized_in_dependency_order():
    engine = Engine()
    order = []
    engine.register_service("api", object, init_fn=lambda: order.append("api"), depends_on=["db"])
    engine.register_service("db", object, init_fn=lambda: order.append("db"))

    await engine.init()

    assert order == ["db", "api"]


@pytest.mark.asyncio
async def test_async_context_manager():
    engine = Engine()
    clock = engine.register_service("clock", Clock)

    async with engine as entered:
        assert entered is engine
        assert engine.initialized
        assert clock.started

    assert not engine.initialized
    assert not clock.started


@pytest.mark.asyncio
async def test_state_changes_emitted_on_bus():
    engine = Engine()
    snapshots = []
    engine.events.on(STATE_CHANGED, snapshots.append)

    await engine.init()

    assert snapshots[-1] == {"initialized": True, "running": True}


@pytest.mark.asyncio
async def test_auto_start_initializes_on_next_tick():
    engine = Engine({"options": {"auto_start": True}})
    assert not engine.initialized

    await asyncio.sleep(0)
    await engine.autostart_task

    assert engine.initialized


@pytest.mark.asyncio
async def test_auto_start_failure_is_logged(caplog):
    engine = Engine({"options": {"auto_start": True}})
    engine.register_service("bad", object, init_fn=Mock(side_effect=RuntimeError("nope")))

    with caplog.at_level(logging.ERROR):
        await asyncio.sleep(0)
        with pytest.raises(ServiceInitError):
            await engine.autostart_task
        await asyncio.sleep(0)

    assert not engine.initialized
    assert "Automatic engine start failed" in caplog.text


@pytest.mark.asyncio
async def test_auto_start_task_available_from_constructor():
    engine = Engine({"options": {"auto_start": True}})

    assert engine.autostart_task is not None
    assert not engine.initialized

    await engine.autostart_task

    assert engine.initialized


@pytest.mark.asyncio
async def test_parallel_dispose_with_late_unresolved_service():
    engine = Engine({"options": {"lifecycle": "parallel"}})
    await engine.init()

    engine.register_service("late", object, depends_on=["missing"])
    await engine.dispose()

    assert engine.state == LifecycleState.UNINITIALIZED


def test_auto_start_without_loop_warns(caplog):
    with caplog.at_level(logging.WARNING):
        engine = Engine({"options": {"auto_start": True}})

    assert engine.autostart_task is None
    assert "auto_start requested outside a running event loop" in caplog.text


def test_debug_installs_event_trace():
    keystone_logger = logging.getLogger("keystone")
    try:
        engine = Engine({"options": {"debug": True}})

        assert engine.debug
        assert engine.plugins.has("event-trace")
        assert keystone_logger.level == logging.DEBUG
    finally:
        keystone_logger.setLevel(logging.NOTSET)


def test_configured_plugins_and_services_applied():
    engine = Engine(
        {
            "plugins": [{"path": "sample_services:MarkerPlugin", "options": {"color": "red"}}],
            "services": {
                "clock": {"factory": "sample_services:Clock", "options": {"tz": "CET"}},
                "greeter": "sample_services.Greeter",
            },
        }
    )

    assert engine.plugins.has("marker")
    assert engine.get("marker") == {"color": "red"}
    assert engine.get("clock").tz == "CET"
    assert engine.get("greeter").greet("ada") == "hello, ada"


def test_repr_mentions_state():
    assert "uninitialized" in repr(Engine())
