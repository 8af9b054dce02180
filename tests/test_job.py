"""JobDetail execution history tests."""

import threading

from tickwork.scheduler import JobDetail, JobExecution, JobStatus
from tests.conftest import T0


def execution(n: int, status: JobStatus = JobStatus.COMPLETED) -> JobExecution:
    return JobExecution(
        execution_id=str(n),
        job_name="job",
        trigger_name="trigger",
        status=status,
        started_at=T0,
    )


class TestExecutionHistory:

    def test_keeps_latest_records(self):
        job = JobDetail("job", func=print, max_history=3)

        for n in range(5):
            job.add_execution(execution(n))

        assert [e.execution_id for e in job.executions] == ["2", "3", "4"]
        assert job.get_last_execution().execution_id == "4"

    def test_history_list_trimmed_in_place(self):
        job = JobDetail("job", func=print, max_history=2)
        history = job.executions

        for n in range(4):
            job.add_execution(execution(n))

        assert job.executions is history
        assert len(history) == 2

    def test_concurrent_workers_lose_no_records(self):
        job = JobDetail("job", func=print, max_history=10_000)
        start = threading.Barrier(8)

        def worker(offset):
            start.wait()
            for n in range(250):
                job.add_execution(execution(offset * 1000 + n))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(job.executions) == 2000

    def test_concurrent_trim_respects_limit(self):
        job = JobDetail("job", func=print, max_history=50)

        def worker():
            for n in range(200):
                job.add_execution(execution(n))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(job.executions) == 50

    def test_success_rate(self):
        job = JobDetail("job", func=print)
        job.add_execution(execution(1))
        job.add_execution(execution(2, JobStatus.FAILED))

        assert job.get_success_rate() == 0.5
