import threading

from job_status_client.models import JobStatus
from job_status_client.status_cache import StatusCache


def test_unknown_before_first_observation():
    assert StatusCache().get() == JobStatus.unknown


def test_last_writer_wins():
    cache = StatusCache()
    cache.set(JobStatus.pending)
    cache.set(JobStatus.completed)
    assert cache.get() == JobStatus.completed


def test_concurrent_writers_leave_a_written_value():
    cache = StatusCache()
    values = [JobStatus.pending, JobStatus.completed, JobStatus.error]
    reads = []

    def writer(status):
        for _ in range(1000):
            cache.set(status)
            reads.append(cache.get())

    threads = [threading.Thread(target=writer, args=(status,)) for status in values]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert cache.get() in values
    assert set(reads) <= set(values)
