from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from job_status_client.errors import ResolutionTimeout


class JobStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    error = "error"
    # Client-side only: nothing has been observed yet
    unknown = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.error)


class StatusPayload(BaseModel):
    """Wire shape shared by GET /status replies and webhook deliveries"""

    model_config = {"extra": "allow"}

    status: JobStatus

    @field_validator("status")
    @classmethod
    def reject_unknown(cls, value: JobStatus) -> JobStatus:
        if value is JobStatus.unknown:
            raise ValueError("'unknown' is not a server-side job status")
        return value


class StatusResponse(BaseModel):
    status: JobStatus
    raw_response: dict
    elapsed_time: float


class RaceOutcome(str, Enum):
    webhook = "webhook"
    polling = "polling"
    timeout = "timeout"


class ArbitrationState(str, Enum):
    idle = "idle"
    awaiting_webhook_registration = "awaiting_webhook_registration"
    racing = "racing"
    resolved = "resolved"
    timed_out = "timed_out"
    failed = "failed"


class ResolutionResult(BaseModel):
    status: JobStatus
    outcome: RaceOutcome
    authoritative: bool
    elapsed_time: float
    error: Optional[str] = None

    @property
    def timed_out(self) -> bool:
        return self.outcome is RaceOutcome.timeout

    def raise_for_timeout(self) -> None:
        if self.timed_out:
            raise ResolutionTimeout(self.error or "Timed out waiting for job completion")


class StatusPollingConfig(BaseModel):
    base_interval: float = 4.0
    mid_interval: float = 2.0
    final_interval: float = 1.0
    max_attempts: int = 10
    request_timeout: float = 10.0

    @model_validator(mode="after")
    def check_schedule(self) -> "StatusPollingConfig":
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not self.base_interval >= self.mid_interval >= self.final_interval > 0:
            raise ValueError(
                "intervals must satisfy base_interval >= mid_interval >= final_interval > 0"
            )
        return self


class ArbitrationConfig(BaseModel):
    timeout: float = 30.0
    webhook_host: str = "localhost"
    webhook_port: int = 9090
    # Externally reachable callback URL, when it differs from the bound address
    webhook_url: Optional[str] = None
    require_webhook: bool = True
    registration_timeout: float = 10.0
