"""
Scheduler bootstrap tests.

Covers ordered start-up, idempotent builds, and rollback of completed
steps when a later step fails.
"""

from datetime import timedelta
import logging

import pytest

from tickwork.core.config import SchedulerSettings
from tickwork.core.exceptions import BootstrapError, ConfigurationError
from tickwork.scheduler import (
    InMemoryTriggerStore,
    SchedulerBootstrap,
    ShutdownHookPlugin,
    ThreadWorkerPool,
)
from tests.conftest import FailingStore, FakeWorkerPool, RecordingPlugin


class TestBuild:

    def test_builds_running_scheduler(self, make_resources, metrics):
        pool = FakeWorkerPool(size=4)
        log = []
        resources = make_resources(worker_pool=pool)
        resources.add_plugin(RecordingPlugin(log), name="first")
        resources.add_plugin(RecordingPlugin(log), name="second")

        core = SchedulerBootstrap(resources).build()
        try:
            assert core.is_started
            assert not core.is_in_standby
            assert pool.initialize_calls == 1
            assert pool.thread_name_prefix == "Test_Worker"
            assert resources.pool_size == 4
            assert resources.store.concurrency_hint == 4
            assert resources.frozen
            assert log == ["initialize:first", "initialize:second", "start", "start"]
            assert resources.plugins[0][1].scheduler is core
            assert metrics.sample("tickwork_bootstraps_total", {"status": "success"}) == 1
        finally:
            core.shutdown()

        assert pool.shutdown_calls == [False]
        assert log[-2:] == ["shutdown", "shutdown"]

    def test_build_is_idempotent(self, make_resources):
        bootstrap = SchedulerBootstrap(make_resources(worker_pool=FakeWorkerPool()))

        core = bootstrap.build()
        try:
            assert bootstrap.build() is core
            assert bootstrap.core is core
            assert bootstrap.resources.worker_pool.initialize_calls == 1
        finally:
            core.shutdown()

    def test_resources_passed_to_build(self, make_resources):
        bootstrap = SchedulerBootstrap()
        core = bootstrap.build(make_resources())
        try:
            assert core.is_started
        finally:
            core.shutdown()

    def test_no_resources(self):
        with pytest.raises(BootstrapError) as exc_info:
            SchedulerBootstrap().build()

        assert exc_info.value.step == "validate"


class TestRollback:

    def test_validation_failure_has_no_side_effects(self, make_resources, metrics):
        pool = FakeWorkerPool()
        resources = make_resources(worker_pool=pool, thread_name="")

        with pytest.raises(BootstrapError) as exc_info:
            SchedulerBootstrap(resources).build()

        assert exc_info.value.step == "validate"
        assert isinstance(exc_info.value.cause, ConfigurationError)
        assert pool.initialize_calls == 0
        assert pool.shutdown_calls == []
        assert metrics.sample("tickwork_bootstraps_total", {"status": "failed"}) == 1

    def test_pool_failure_leaves_nothing_to_undo(self, make_resources):
        pool = FakeWorkerPool(fail_on_initialize=True)

        with pytest.raises(BootstrapError) as exc_info:
            SchedulerBootstrap(make_resources(worker_pool=pool)).build()

        assert exc_info.value.step == "start_worker_pool"
        assert pool.shutdown_calls == []

    def test_store_failure_shuts_pool_down_once(self, make_resources):
        pool = FakeWorkerPool()
        store = FailingStore()
        log = []
        resources = make_resources(worker_pool=pool, store=store)
        resources.add_plugin(RecordingPlugin(log), name="p")
        bootstrap = SchedulerBootstrap(resources)

        with pytest.raises(BootstrapError) as exc_info:
            bootstrap.build()

        error = exc_info.value
        assert error.step == "initialize_store"
        assert isinstance(error.cause, RuntimeError)
        assert error.error_code.value == "E2001"
        assert pool.shutdown_calls == [False]
        assert store.shutdown_calls == 1
        assert bootstrap.core is None
        assert log == []

    def test_plugin_failure_releases_everything(self, make_resources):
        pool = FakeWorkerPool()
        log = []
        resources = make_resources(worker_pool=pool)
        resources.add_plugin(RecordingPlugin(log), name="first")
        resources.add_plugin(RecordingPlugin(log, fail_on_initialize=True), name="second")
        resources.add_plugin(RecordingPlugin(log), name="third")

        with pytest.raises(BootstrapError) as exc_info:
            SchedulerBootstrap(resources).build()

        assert exc_info.value.step == "initialize_plugins"
        assert log == ["initialize:first", "initialize:second", "shutdown"]
        assert pool.shutdown_calls == [False]

    def test_rollback_error_does_not_mask_failure(self, make_resources):
        class BrokenShutdownPool(FakeWorkerPool):
            def shutdown(self, wait_for_completion=False):
                super().shutdown(wait_for_completion)
                raise RuntimeError("pool shutdown exploded")

        pool = BrokenShutdownPool()

        with pytest.raises(BootstrapError) as exc_info:
            SchedulerBootstrap(make_resources(worker_pool=pool, store=FailingStore())).build()

        assert "store unavailable" in exc_info.value.message
        assert len(pool.shutdown_calls) == 1


class TestFromSettings:

    @pytest.fixture
    def tickwork_logger(self):
        root = logging.getLogger("tickwork")
        yield root
        for handler in [h for h in root.handlers if getattr(h, "_tickwork", False)]:
            root.removeHandler(handler)
        root.setLevel(logging.NOTSET)

    def test_log_level_warning_drops_info(self, tickwork_logger, caplog):
        settings = SchedulerSettings(
            log_level="WARNING", pool_size=1, make_daemon=True, idle_wait_ms=100,
            install_shutdown_hook=False,
        )

        core = SchedulerBootstrap.from_settings(settings).build()
        core.shutdown(wait_for_jobs_to_complete=True)

        assert not logging.getLogger("tickwork.pool").isEnabledFor(logging.INFO)
        assert not [
            r for r in caplog.records
            if r.name == "tickwork.pool" and r.levelno == logging.INFO
        ]

    def test_log_level_debug_enables_loop_debug(self, tickwork_logger):
        SchedulerBootstrap.from_settings(
            SchedulerSettings(log_level="DEBUG", install_shutdown_hook=False)
        )

        assert tickwork_logger.level == logging.DEBUG
        assert logging.getLogger("tickwork.scheduler").isEnabledFor(logging.DEBUG)

    def test_default_collaborators(self):
        settings = SchedulerSettings(
            pool_size=3,
            misfire_threshold_ms=2000,
            batch_time_window_ms=250,
            max_batch_size=4,
            install_shutdown_hook=False,
        )

        resources = SchedulerBootstrap.from_settings(settings).resources

        assert isinstance(resources.worker_pool, ThreadWorkerPool)
        assert resources.worker_pool.pool_size() == 3
        assert isinstance(resources.store, InMemoryTriggerStore)
        assert resources.store.misfire_threshold == timedelta(seconds=2)
        assert resources.batch_time_window == timedelta(milliseconds=250)
        assert resources.max_batch_size == 4
        assert resources.plugins == ()

    def test_shutdown_hook_installed(self):
        settings = SchedulerSettings(install_shutdown_hook=True, shutdown_hook_clean=True)

        resources = SchedulerBootstrap.from_settings(settings).resources

        [(name, plugin)] = resources.plugins
        assert name == "shutdown_hook"
        assert isinstance(plugin, ShutdownHookPlugin)
        assert plugin.clean_shutdown

    def test_build_and_shutdown(self):
        settings = SchedulerSettings(pool_size=2, make_daemon=True, idle_wait_ms=100)
        bootstrap = SchedulerBootstrap.from_settings(settings)

        core = bootstrap.build()
        core.shutdown(wait_for_jobs_to_complete=True)

        assert core.is_shutdown
        assert bootstrap.resources.worker_pool.is_shutdown
