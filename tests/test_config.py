"""SchedulerSettings tests."""

import pytest

from tickwork.core.config import SchedulerSettings, get_settings, reset_settings
from tickwork.core.exceptions import ConfigurationError, ErrorCode


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


class TestDefaults:

    def test_defaults(self):
        settings = SchedulerSettings()

        assert settings.thread_name == "Tickwork Scheduler Thread"
        assert settings.pool_size == 10
        assert settings.max_batch_size == 1
        assert settings.batch_time_window_ms == 0
        assert settings.misfire_threshold_ms == 5000
        assert settings.idle_wait_ms == 30000
        assert settings.install_shutdown_hook is True
        assert settings.log_level == "INFO"

    def test_log_level_normalized(self):
        assert SchedulerSettings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            SchedulerSettings(log_level="LOUD")

    def test_blank_thread_name(self):
        with pytest.raises(ValueError):
            SchedulerSettings(thread_name="  ")

    def test_pool_size_bounds(self):
        with pytest.raises(ValueError):
            SchedulerSettings(pool_size=0)


class TestEnvironment:

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TICKWORK_POOL_SIZE", "3")
        monkeypatch.setenv("TICKWORK_MAKE_DAEMON", "true")

        settings = SchedulerSettings()

        assert settings.pool_size == 3
        assert settings.make_daemon is True


class TestLoadFromFile:

    def test_flat_file(self, tmp_path):
        path = tmp_path / "tickwork.yaml"
        path.write_text("pool_size: 4\nmax_batch_size: 8\n")

        settings = SchedulerSettings.load_from_file(path)

        assert settings.pool_size == 4
        assert settings.max_batch_size == 8

    def test_scheduler_section(self, tmp_path):
        path = tmp_path / "tickwork.yaml"
        path.write_text("scheduler:\n  thread_name: Reports\n  batch_time_window_ms: 250\n")

        settings = SchedulerSettings.load_from_file(path)

        assert settings.thread_name == "Reports"
        assert settings.batch_time_window_ms == 250

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "tickwork.yaml"
        path.write_text("")

        assert SchedulerSettings.load_from_file(path).pool_size == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            SchedulerSettings.load_from_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "tickwork.yaml"
        path.write_text("pool_size: [1, 2\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            SchedulerSettings.load_from_file(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "tickwork.yaml"
        path.write_text("max_batch_size: 0\n")

        with pytest.raises(ConfigurationError) as exc_info:
            SchedulerSettings.load_from_file(path)

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID
        assert exc_info.value.context["path"] == str(path)


class TestGlobalSettings:

    def test_cached(self):
        assert get_settings() is get_settings()

    def test_reads_working_directory_file(self, tmp_path):
        (tmp_path / "tickwork.yaml").write_text("pool_size: 2\n")

        assert get_settings().pool_size == 2

    def test_reset(self, tmp_path):
        first = get_settings()
        (tmp_path / "tickwork.yaml").write_text("pool_size: 7\n")
        reset_settings()

        second = get_settings()

        assert second is not first
        assert second.pool_size == 7
