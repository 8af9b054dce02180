"""
Shared test fixtures.

Base fixtures:
  - Fixed reference time and a mock clock advancing only when ticked
  - Trigger factory
  - Recording signaler, fake worker pool and failing store doubles

Per-test fixtures:
  - In-memory store wired to the mock clock
  - A running scheduler core with short waits, shut down after the test
"""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from tickwork.core.observability import MetricsCollector
from tickwork.scheduler import (
    InMemoryTriggerStore,
    SchedulerBootstrap,
    SchedulerResources,
    SignalKind,
    StandardRunShellFactory,
    ThreadWorkerPool,
    TriggerDefinition,
)


# Monday
T0 = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
SECOND = timedelta(seconds=1)


class MockClock:
    """Clock for deterministic time control; advances only when ticked."""

    def __init__(self, start_time: datetime = T0):
        self._current = start_time

    def now(self) -> datetime:
        return self._current

    def __call__(self) -> datetime:
        return self._current

    def tick(self, seconds: float = 1) -> None:
        """Advance time by specified seconds."""
        self._current += timedelta(seconds=seconds)

    def set(self, time: datetime) -> None:
        self._current = time


class RecordingSignaler:
    """Signaler keeping every notification."""

    def __init__(self):
        self.signals: List[Tuple[SignalKind, Dict[str, Any]]] = []

    def notify(self, kind: SignalKind, **details: Any) -> None:
        self.signals.append((kind, details))

    def kinds(self) -> List[SignalKind]:
        return [kind for kind, _ in self.signals]


class FakeWorkerPool:
    """Worker pool double counting lifecycle calls; runs tasks inline."""

    def __init__(self, size: int = 3, fail_on_initialize: bool = False):
        self.size = size
        self.fail_on_initialize = fail_on_initialize
        self.initialize_calls = 0
        self.shutdown_calls: List[bool] = []
        self.thread_name_prefix: Optional[str] = None
        self.ran: List[Callable] = []

    def initialize(self) -> None:
        self.initialize_calls += 1
        if self.fail_on_initialize:
            raise RuntimeError("pool failed to start")

    def shutdown(self, wait_for_completion: bool = False) -> None:
        self.shutdown_calls.append(wait_for_completion)

    def run(self, task: Callable) -> bool:
        if self.shutdown_calls:
            return False
        self.ran.append(task)
        return True

    def pool_size(self) -> int:
        return self.size

    def set_thread_name_prefix(self, name: str) -> None:
        self.thread_name_prefix = name

    def block_for_available_threads(self, timeout: Optional[float] = None) -> int:
        if self.shutdown_calls:
            return 0
        time.sleep(0.01)
        return self.size


class FailingStore(InMemoryTriggerStore):
    """In-memory store whose initialize() raises."""

    def __init__(self):
        super().__init__()
        self.shutdown_calls = 0

    def initialize(self, signaler) -> None:
        raise RuntimeError("store unavailable")

    def shutdown(self) -> None:
        self.shutdown_calls += 1


class RecordingPlugin:
    """Plugin recording its lifecycle calls into a shared list."""

    def __init__(self, log: List[str], fail_on_initialize: bool = False):
        self.log = log
        self.fail_on_initialize = fail_on_initialize
        self.scheduler = None

    def initialize(self, name: str, scheduler) -> None:
        self.log.append(f"initialize:{name}")
        if self.fail_on_initialize:
            raise RuntimeError(f"plugin {name} failed")
        self.scheduler = scheduler

    def start(self) -> None:
        self.log.append("start")

    def shutdown(self) -> None:
        self.log.append("shutdown")


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def make_trigger() -> Callable[..., TriggerDefinition]:
    """Factory for repeating triggers starting at T0."""

    def _make(
        name: str = "trigger",
        job_name: str = "job",
        interval: timedelta = SECOND,
        repeat_count: int = 3,
        start_time: datetime = T0,
        **kwargs
    ) -> TriggerDefinition:
        return TriggerDefinition(
            name=name,
            job_name=job_name,
            start_time=start_time,
            repeat_count=repeat_count,
            repeat_interval=interval if repeat_count != 0 else timedelta(0),
            **kwargs
        )

    return _make


@pytest.fixture
def signaler() -> RecordingSignaler:
    return RecordingSignaler()


@pytest.fixture
def store(clock: MockClock, signaler: RecordingSignaler) -> InMemoryTriggerStore:
    store = InMemoryTriggerStore(misfire_threshold=timedelta(seconds=5), clock=clock)
    store.initialize(signaler)
    return store


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def make_resources(metrics: MetricsCollector) -> Callable[..., SchedulerResources]:
    """Factory for resources around real default collaborators."""

    def _make(**overrides) -> SchedulerResources:
        values = dict(
            worker_pool=ThreadWorkerPool(size=2),
            store=InMemoryTriggerStore(),
            run_shell_factory=StandardRunShellFactory(),
            thread_name="Test Scheduler Thread",
            worker_thread_prefix="Test_Worker",
            make_daemon=True,
            idle_wait=timedelta(milliseconds=200),
            metrics=metrics,
        )
        values.update(overrides)
        return SchedulerResources(**values)

    return _make


@pytest.fixture
def core(make_resources):
    """Running scheduler core, shut down after the test."""
    core = SchedulerBootstrap(make_resources()).build()
    yield core
    core.shutdown(wait_for_jobs_to_complete=True)
