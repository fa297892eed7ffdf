import asyncio
from typing import Any, Callable, Optional

import aiohttp
from loguru import logger

from job_status_client.errors import (
    DecodeFailure,
    PollExhausted,
    RetriesExhausted,
    TransportFailure,
)
from job_status_client.models import JobStatus, StatusPollingConfig, StatusResponse
from job_status_client.status_api import StatusApi
from job_status_client.status_cache import StatusCache


class PollingScheduler:
    def __init__(
        self,
        api: StatusApi,
        cache: StatusCache,
        config: Optional[StatusPollingConfig] = None,
        on_status_change: Optional[Callable[[StatusResponse], Any]] = None,
    ):
        self.api = api
        self.cache = cache
        self.config = config or StatusPollingConfig()
        self.on_status_change = on_status_change
        self.logger = logger

    def interval_for(self, attempt: int, max_attempts: int) -> float:
        """Picks the wait after `attempt`, tightening as the budget runs out"""
        if attempt > (3 * max_attempts) // 4:
            return self.config.final_interval
        if attempt > max_attempts // 2:
            return self.config.mid_interval
        return self.config.base_interval

    async def _handle_status_change(
        self, status_response: StatusResponse, last_status: Optional[JobStatus]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if last_status != status_response.status and self.on_status_change is not None:
            self.logger.debug(f"Job status changed to {status_response.status.value}")
            try:
                result = self.on_status_change(status_response)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.logger.error(f"Status change callback failed: {e!r}")

    async def _wait_before_retry(self, attempt: int, max_attempts: int) -> None:
        delay = self.interval_for(attempt, max_attempts)
        self.logger.debug(f"Waiting {delay:.2f}s before next poll")
        await asyncio.sleep(delay)

    async def poll(self, max_attempts: Optional[int] = None) -> JobStatus:
        """Poll the status endpoint until a terminal status or the retry budget runs out"""
        max_attempts = self.config.max_attempts if max_attempts is None else max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        last_status = None
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            for attempt in range(max_attempts):
                is_final = attempt == max_attempts - 1
                try:
                    status_response = await self.api.fetch_status(session)
                except (TransportFailure, DecodeFailure) as polling_error:
                    self.logger.error(
                        f"Error polling status (attempt {attempt + 1}/{max_attempts}): {polling_error}"
                    )
                    if is_final:
                        raise PollExhausted(
                            f"Final polling attempt failed: {polling_error}"
                        ) from polling_error
                else:
                    self.cache.set(status_response.status)
                    self.logger.info(f"Job status: {status_response.status.value}")
                    await self._handle_status_change(status_response, last_status)
                    last_status = status_response.status

                    if status_response.status.is_terminal:
                        self.logger.info(
                            f"Job reached {status_response.status.value} via polling"
                        )
                        return status_response.status

                if not is_final:
                    await self._wait_before_retry(attempt, max_attempts)

        raise RetriesExhausted(
            f"No terminal status after {max_attempts} polling attempts"
        )
