import threading

from job_status_client.models import JobStatus


class StatusCache:
    """Latest observed job status, shared by the polling and webhook paths.

    Both paths write without any ordering between them, so the last writer
    wins. Reads and writes go through the same lock.
    """

    def __init__(self, initial: JobStatus = JobStatus.unknown):
        self._status = initial
        self._lock = threading.Lock()

    def set(self, status: JobStatus) -> None:
        with self._lock:
            self._status = status

    def get(self) -> JobStatus:
        with self._lock:
            return self._status
