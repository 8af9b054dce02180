"""TriggerDefinition construction and validation tests."""

from datetime import datetime, timedelta, timezone

import pytest

from tickwork.core.exceptions import ConfigurationError
from tickwork.scheduler import REPEAT_INDEFINITELY, TriggerDefinition
from tests.conftest import SECOND, T0


class TestValidation:

    def test_end_before_start(self, make_trigger):
        with pytest.raises(ConfigurationError, match="End time"):
            make_trigger(end_time=T0 - SECOND)

    def test_end_equal_to_start_allowed(self, make_trigger):
        assert make_trigger(repeat_count=0, end_time=T0).end_time == T0

    def test_negative_interval(self):
        with pytest.raises(ConfigurationError):
            TriggerDefinition("t", "job", T0, repeat_count=0, repeat_interval=-SECOND)

    def test_zero_interval_with_repeats(self):
        with pytest.raises(ConfigurationError, match="zero"):
            TriggerDefinition("t", "job", T0, repeat_count=2, repeat_interval=timedelta(0))

    def test_sub_millisecond_interval_with_repeats(self):
        with pytest.raises(ConfigurationError):
            TriggerDefinition("t", "job", T0, repeat_count=2, repeat_interval=timedelta(microseconds=10))

    def test_zero_interval_single_shot_allowed(self):
        trigger = TriggerDefinition("t", "job", T0)
        assert trigger.repeat_count == 0
        assert trigger.repeat_interval == timedelta(0)

    @pytest.mark.parametrize("count", [-2, -100])
    def test_negative_repeat_count(self, make_trigger, count):
        with pytest.raises(ConfigurationError):
            make_trigger(repeat_count=count)

    def test_naive_datetime_rejected(self):
        with pytest.raises(ConfigurationError, match="timezone-aware"):
            TriggerDefinition("t", "job", datetime(2024, 1, 1))

    @pytest.mark.parametrize("name,job_name", [("", "job"), ("t", ""), ("  ", "job")])
    def test_empty_names(self, name, job_name):
        with pytest.raises(ConfigurationError):
            TriggerDefinition(name, job_name, T0)

    def test_negative_times_triggered(self, make_trigger):
        with pytest.raises(ConfigurationError):
            make_trigger(times_triggered=-1)

    def test_error_context(self, make_trigger):
        with pytest.raises(ConfigurationError) as exc_info:
            make_trigger(name="broken", end_time=T0 - SECOND)

        error = exc_info.value
        assert error.context["trigger_name"] == "broken"
        assert error.to_dict()["code"] == "E1001"
        assert str(error).startswith("[E1001]")


class TestConstructors:

    def test_repeating_defaults_to_indefinite(self):
        trigger = TriggerDefinition.repeating("t", "job", timedelta(minutes=5), start_time=T0)

        assert trigger.is_indefinite
        assert trigger.repeat_count == REPEAT_INDEFINITELY
        assert trigger.repeat_interval == timedelta(minutes=5)

    def test_repeating_starts_now(self):
        before = datetime.now(timezone.utc)
        trigger = TriggerDefinition.repeating("t", "job", SECOND, repeat_count=2)
        assert trigger.start_time >= before

    def test_one_shot(self):
        trigger = TriggerDefinition.one_shot("t", "job", run_date=T0, job_data={"a": 1})

        assert trigger.repeat_count == 0
        assert trigger.start_time == T0
        assert trigger.job_data == {"a": 1}

    def test_job_data_copied(self):
        data = {"a": 1}
        trigger = TriggerDefinition.one_shot("t", "job", run_date=T0, job_data=data)
        data["a"] = 2

        assert trigger.job_data["a"] == 1

    def test_frozen(self, make_trigger):
        trigger = make_trigger()
        with pytest.raises(AttributeError):
            trigger.times_triggered = 5

    def test_to_dict(self, make_trigger):
        data = make_trigger(name="nightly", repeat_count=3, next_fire_time=T0).to_dict()

        assert data["name"] == "nightly"
        assert data["repeat_interval_ms"] == 1000
        assert data["next_fire_time"] == T0.isoformat()
        assert data["misfire_policy"] == "smart_policy"
        assert data["previous_fire_time"] is None
