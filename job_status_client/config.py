import sys
from typing import Optional

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict

from job_status_client.models import ArbitrationConfig, StatusPollingConfig


class ClientSettings(BaseSettings):
    """Client settings read from JOB_CLIENT_* environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="JOB_CLIENT_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    base_url: str = "http://localhost:8080"
    webhook_host: str = "localhost"
    webhook_port: int = 9090
    webhook_url: Optional[str] = None
    require_webhook: bool = True
    max_attempts: int = 10
    base_interval: float = 4.0
    mid_interval: float = 2.0
    final_interval: float = 1.0
    request_timeout: float = 10.0
    resolve_timeout: float = 30.0
    log_level: str = "INFO"

    def polling_config(self) -> StatusPollingConfig:
        return StatusPollingConfig(
            base_interval=self.base_interval,
            mid_interval=self.mid_interval,
            final_interval=self.final_interval,
            max_attempts=self.max_attempts,
            request_timeout=self.request_timeout,
        )

    def arbitration_config(self) -> ArbitrationConfig:
        return ArbitrationConfig(
            timeout=self.resolve_timeout,
            webhook_host=self.webhook_host,
            webhook_port=self.webhook_port,
            webhook_url=self.webhook_url,
            require_webhook=self.require_webhook,
            registration_timeout=self.request_timeout,
        )


def setup_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
