"""ShutdownHookPlugin tests."""

import atexit
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from tickwork.scheduler import SchedulerBootstrap, ShutdownHookPlugin


@pytest.fixture
def scheduler():
    return SimpleNamespace(is_shutdown=False, shutdown=MagicMock())


class TestShutdownHookPlugin:

    def test_registers_exit_hook(self, monkeypatch, scheduler):
        registered = []
        monkeypatch.setattr(atexit, "register", registered.append)
        plugin = ShutdownHookPlugin()

        plugin.initialize("hook", scheduler)

        assert plugin.name == "hook"
        assert registered == [plugin._on_exit]

    @pytest.mark.parametrize("clean", [False, True])
    def test_exit_shuts_scheduler_down(self, monkeypatch, scheduler, clean):
        monkeypatch.setattr(atexit, "register", lambda func: None)
        plugin = ShutdownHookPlugin(clean_shutdown=clean)
        plugin.initialize("hook", scheduler)

        plugin._on_exit()

        scheduler.shutdown.assert_called_once_with(clean)

    def test_exit_after_shutdown_is_noop(self, monkeypatch, scheduler):
        monkeypatch.setattr(atexit, "register", lambda func: None)
        plugin = ShutdownHookPlugin()
        plugin.initialize("hook", scheduler)
        scheduler.is_shutdown = True

        plugin._on_exit()

        scheduler.shutdown.assert_not_called()

    def test_exit_hook_errors_logged(self, monkeypatch, scheduler):
        monkeypatch.setattr(atexit, "register", lambda func: None)
        scheduler.shutdown.side_effect = RuntimeError("pool stuck")
        plugin = ShutdownHookPlugin()
        plugin.initialize("hook", scheduler)

        plugin._on_exit()

    def test_shutdown_unregisters(self, monkeypatch, scheduler):
        unregistered = []
        monkeypatch.setattr(atexit, "register", lambda func: None)
        monkeypatch.setattr(atexit, "unregister", unregistered.append)
        plugin = ShutdownHookPlugin()
        plugin.initialize("hook", scheduler)

        plugin.shutdown()
        plugin.shutdown()

        assert unregistered == [plugin._on_exit]

    def test_core_shutdown_unregisters(self, make_resources):
        plugin = ShutdownHookPlugin()
        resources = make_resources()
        resources.add_plugin(plugin, name="hook")

        core = SchedulerBootstrap(resources).build()
        core.shutdown(wait_for_jobs_to_complete=True)

        assert not plugin._registered
