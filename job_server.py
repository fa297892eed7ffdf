import asyncio
import json
import random
from typing import Optional

import aiohttp
from aiohttp import web
from loguru import logger
from pydantic import AnyHttpUrl, BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from job_status_client.config import setup_logging
from job_status_client.errors import BadRequest
from job_status_client.models import JobStatus


class ServerSettings(BaseSettings):
    """Server settings read from JOB_SERVER_* environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="JOB_SERVER_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    host: str = "localhost"
    port: int = 8080
    min_delay: float = 5.0
    max_delay: float = 15.0
    notify_timeout: float = 10.0
    log_level: str = "INFO"


class WebhookRegistration(BaseModel):
    url: AnyHttpUrl


class WebhookRegistry:
    """Holds at most one callback URL; each registration replaces the last"""

    def __init__(self, timeout: float = 10.0):
        self.url: Optional[str] = None
        self.timeout = timeout
        self.logger = logger

    def register(self, body) -> str:
        try:
            registration = WebhookRegistration.model_validate(body)
        except ValidationError as e:
            raise BadRequest(f"Invalid webhook request: {e.errors()}") from e

        self.url = str(registration.url)
        self.logger.info(f"Registered webhook URL: {self.url}")
        return self.url

    async def notify(self, payload: dict) -> bool:
        """Best-effort POST of `payload` to the registered URL; never raises"""
        url = self.url
        if url is None:
            self.logger.info("No webhook URL registered")
            return False

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload) as response:
                    self.logger.info(
                        f"Webhook notification sent, response status: {response.status}"
                    )
                    return response.status == 200
        except Exception as e:
            self.logger.error(f"Failed to notify webhook {url}: {e!r}")
            return False


class JobSimulator:
    """One job that completes after a random delay, counted from the first status query"""

    def __init__(
        self,
        min_delay: float = 5.0,
        max_delay: float = 15.0,
        registry: Optional[WebhookRegistry] = None,
    ):
        if min_delay < 0 or min_delay > max_delay:
            raise ValueError(f"Invalid delay range [{min_delay}, {max_delay}]")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.registry = registry
        self.completion_delay: Optional[float] = None
        self.timer: Optional[asyncio.Task] = None
        self.logger = logger

        self._status = JobStatus.pending
        self._status_lock = asyncio.Lock()
        self._started = False
        self._start_lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._started

    async def query_status(self) -> JobStatus:
        # The start lock is released before the status lock is taken
        async with self._start_lock:
            if not self._started:
                self._started = True
                self._start_timer()

        async with self._status_lock:
            return self._status

    def _start_timer(self) -> None:
        self.completion_delay = random.uniform(self.min_delay, self.max_delay)
        self.logger.info(f"Job completion will be in: {self.completion_delay:.1f} seconds")
        self.timer = asyncio.create_task(self._complete_after(self.completion_delay))

    async def _complete_after(self, delay: float) -> None:
        await asyncio.sleep(delay)

        async with self._status_lock:
            self._status = JobStatus.completed
        self.logger.info("Job completed")

        if self.registry is not None:
            await self.registry.notify({"status": JobStatus.completed.value})

    async def shutdown(self) -> None:
        """Discards a pending timer; only used when the process is going away"""
        if self.timer is not None and not self.timer.done():
            self.timer.cancel()
            await asyncio.gather(self.timer, return_exceptions=True)


class JobServer:
    def __init__(self, min_delay: float = 5.0, max_delay: float = 15.0, notify_timeout: float = 10.0):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.registry = WebhookRegistry(timeout=notify_timeout)
        self.dumps = json.dumps
        self._job: Optional[JobSimulator] = None
        self._runner: Optional[web.AppRunner] = None
        self.app = web.Application()
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_post("/register-webhook", self.handle_register_webhook)
        self.logger = logger

    @classmethod
    def from_settings(cls, settings: ServerSettings) -> "JobServer":
        return cls(settings.min_delay, settings.max_delay, settings.notify_timeout)

    @property
    def job(self) -> JobSimulator:
        if self._job is None:
            self._job = JobSimulator(self.min_delay, self.max_delay, registry=self.registry)
        return self._job

    async def handle_status(self, request: web.Request) -> web.Response:
        status = await self.job.query_status()
        try:
            body = self.dumps({"status": status.value})
        except (TypeError, ValueError) as e:
            self.logger.error(f"Failed to encode status: {e}")
            return web.json_response({"error": "Failed to encode status"}, status=500)
        return web.json_response(text=body)

    async def handle_register_webhook(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
            self.registry.register(body)
        except (ValueError, BadRequest) as e:
            self.logger.warning(f"Rejected webhook registration: {e}")
            return web.json_response({"error": "Invalid webhook request"}, status=400)
        return web.json_response({"url": self.registry.url})

    async def start(self, host: str = "localhost", port: int = 8080) -> web.TCPSite:
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()
        self._runner = runner
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        if self._job is not None:
            await self._job.shutdown()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None


async def serve(settings: ServerSettings) -> None:
    server = JobServer.from_settings(settings)
    await server.start(settings.host, settings.port)
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    settings = ServerSettings()
    setup_logging(settings.log_level)
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Server stopped")


if __name__ == "__main__":
    main()
