import asyncio
from typing import Any, Callable, Optional, Tuple

import aiohttp
from loguru import logger

from job_status_client.config import ClientSettings
from job_status_client.errors import RegistrationFailure, RetriesExhausted
from job_status_client.models import (
    ArbitrationConfig,
    ArbitrationState,
    JobStatus,
    RaceOutcome,
    ResolutionResult,
    StatusPollingConfig,
    StatusResponse,
)
from job_status_client.polling import PollingScheduler
from job_status_client.status_api import StatusApi
from job_status_client.status_cache import StatusCache
from job_status_client.tasks import BackgroundTasks
from job_status_client.webhook_receiver import WebhookReceiver


class ResultSlot:
    """Single-assignment slot that the webhook and polling paths race to fill.

    Only the first publish is observed. Later publishes, and any publish after
    the slot is closed, return False without blocking.
    """

    def __init__(self):
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._closed = False

    @property
    def filled(self) -> bool:
        return self._future.done()

    def publish(self, outcome: RaceOutcome, status: JobStatus) -> bool:
        if self._closed or self._future.done():
            return False
        self._future.set_result((outcome, status))
        return True

    def close(self) -> None:
        self._closed = True

    async def wait(self, timeout: float) -> Tuple[RaceOutcome, JobStatus]:
        return await asyncio.wait_for(asyncio.shield(self._future), timeout)


class ArbitrationEngine:
    """Resolves a job's final status from whichever of webhook or polling reports first.

    Usage:

        async with ArbitrationEngine("http://localhost:8080") as engine:
            result = await engine.resolve()
            if result.timed_out:
                ...  # result.status is the cached, non-authoritative value

    The webhook receiver is started on the first resolution and stays up until
    `close()`. The polling task of a resolution that the webhook wins keeps
    running in the background; its late result is dropped.
    """

    def __init__(
        self,
        base_url: str,
        config: Optional[ArbitrationConfig] = None,
        polling_config: Optional[StatusPollingConfig] = None,
        cache: Optional[StatusCache] = None,
        on_status_change: Optional[Callable[[StatusResponse], Any]] = None,
    ):
        self.config = config or ArbitrationConfig()
        self.cache = cache or StatusCache()
        self.api = StatusApi(base_url)
        self.poller = PollingScheduler(
            self.api, self.cache, polling_config, on_status_change=on_status_change
        )
        self.receiver = WebhookReceiver(
            self.cache,
            host=self.config.webhook_host,
            port=self.config.webhook_port,
            on_status=self._on_webhook_status,
        )
        self.tasks = BackgroundTasks()
        self.state = ArbitrationState.idle
        self.polling_task: Optional[asyncio.Task] = None
        self._slot: Optional[ResultSlot] = None
        self.logger = logger

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        on_status_change: Optional[Callable[[StatusResponse], Any]] = None,
    ) -> "ArbitrationEngine":
        return cls(
            settings.base_url,
            config=settings.arbitration_config(),
            polling_config=settings.polling_config(),
            on_status_change=on_status_change,
        )

    async def __aenter__(self) -> "ArbitrationEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _on_webhook_status(self, status: JobStatus) -> None:
        slot = self._slot
        if slot is None or not slot.publish(RaceOutcome.webhook, status):
            self.logger.debug(f"Ignoring late webhook status {status.value}")

    async def _poll_and_publish(self, slot: ResultSlot) -> Optional[JobStatus]:
        try:
            status = await self.poller.poll()
        except RetriesExhausted as e:
            self.logger.warning(f"Polling gave up: {e}")
            return None

        if not slot.publish(RaceOutcome.polling, status):
            self.logger.debug(f"Discarding polling result {status.value}, already resolved")
        return status

    async def _register_webhook(self) -> None:
        callback_url = self.config.webhook_url or self.receiver.url
        timeout = aiohttp.ClientTimeout(total=self.config.registration_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            await self.api.register_webhook(session, callback_url)

    async def resolve(self, timeout: Optional[float] = None) -> ResolutionResult:
        """Races the webhook against polling and returns the first terminal status.

        On timeout the cached status is returned with `authoritative=False`.
        Raises RegistrationFailure if the webhook cannot be registered and
        `require_webhook` is set.
        """
        timeout = self.config.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.state = ArbitrationState.idle

        slot = ResultSlot()
        self._slot = slot

        try:
            await self.receiver.start()

            self.state = ArbitrationState.awaiting_webhook_registration
            try:
                await self._register_webhook()
            except RegistrationFailure as e:
                if self.config.require_webhook:
                    self.state = ArbitrationState.failed
                    self.logger.error(f"Webhook registration failed: {e}")
                    raise
                self.logger.warning(f"Webhook registration failed, relying on polling: {e}")

            self.state = ArbitrationState.racing
            self.logger.info("Racing webhook against polling")
            self.polling_task = self.tasks.spawn(
                self._poll_and_publish(slot), name="status-polling"
            )

            try:
                outcome, status = await slot.wait(timeout)
            except asyncio.TimeoutError:
                self.state = ArbitrationState.timed_out
                status = self.cache.get()
                message = f"Timed out after {timeout}s waiting for job completion"
                self.logger.warning(f"{message}, last known status: {status.value}")
                return ResolutionResult(
                    status=status,
                    outcome=RaceOutcome.timeout,
                    authoritative=False,
                    elapsed_time=loop.time() - started,
                    error=message,
                )

            self.state = ArbitrationState.resolved
            self.logger.info(f"Received status {status.value} via {outcome.value}")
            return ResolutionResult(
                status=status,
                outcome=outcome,
                authoritative=True,
                elapsed_time=loop.time() - started,
            )
        finally:
            slot.close()
            if self._slot is slot:
                self._slot = None

    async def close(self) -> None:
        await self.tasks.cancel_all()
        await self.receiver.stop()
