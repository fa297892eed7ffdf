from typing import Callable, Optional

from aiohttp import web
from loguru import logger
from pydantic import ValidationError

from job_status_client.models import JobStatus, StatusPayload
from job_status_client.status_cache import StatusCache


class WebhookReceiver:
    """Listens for status updates pushed by the job server.

    Every well-formed delivery updates the cache. Terminal statuses are also
    handed to `on_status`, which must not block. Deliveries may repeat.
    """

    path = "/webhook"

    def __init__(
        self,
        cache: StatusCache,
        host: str = "localhost",
        port: int = 9090,
        on_status: Optional[Callable[[JobStatus], None]] = None,
    ):
        self.cache = cache
        self.host = host
        self.port = port
        self.on_status = on_status
        self.deliveries = 0
        self.app = web.Application()
        self.app.router.add_post(self.path, self.handle_webhook)
        self.logger = logger
        self._runner: Optional[web.AppRunner] = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def url(self) -> str:
        if self._runner is None:
            raise RuntimeError("Webhook receiver is not running")
        return f"http://{self.host}:{self.port}{self.path}"

    async def handle_webhook(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
            payload = StatusPayload.model_validate(data)
        except (ValueError, ValidationError) as e:
            self.logger.warning(f"Invalid webhook payload: {e}")
            return web.json_response({"error": "Invalid webhook payload"}, status=400)

        self.deliveries += 1
        self.cache.set(payload.status)
        self.logger.info(f"Webhook received: {data}")

        if payload.status.is_terminal and self.on_status is not None:
            self.on_status(payload.status)
        return web.json_response({"received": payload.status.value})

    async def start(self) -> str:
        """Binds the listener and returns its callback URL once it accepts connections"""
        if self._runner is not None:
            return self.url

        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner

        # Port 0 asks the OS for a free port; report the one actually bound
        if self.port == 0 and runner.addresses:
            self.port = runner.addresses[0][1]
        self.logger.info(f"Webhook receiver listening on {self.url}")
        return self.url

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        self.logger.info("Webhook receiver stopped")
