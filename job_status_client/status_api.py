import asyncio

import aiohttp
from loguru import logger
from pydantic import ValidationError

from job_status_client.errors import DecodeFailure, RegistrationFailure, TransportFailure
from job_status_client.models import StatusPayload, StatusResponse


class StatusApi:
    """HTTP calls against the job server, with aiohttp errors translated"""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        self.logger = logger

    async def fetch_status(self, session: aiohttp.ClientSession) -> StatusResponse:
        """Fetches the status of the job from the server"""
        start_time = asyncio.get_running_loop().time()
        url = f"{self.base_url}/status"

        try:
            async with session.get(url) as response:
                response.raise_for_status()
                data = await response.json()
        except aiohttp.ContentTypeError as e:
            raise DecodeFailure(f"Non-JSON reply from {url}: {e.message}") from e
        except aiohttp.ClientResponseError as e:
            raise TransportFailure(f"HTTP error {e.status} at {url}: {e.message}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailure(f"Request to {url} failed: {e!r}") from e
        except ValueError as e:
            raise DecodeFailure(f"Malformed JSON from {url}: {e}") from e

        try:
            payload = StatusPayload.model_validate(data)
        except ValidationError as e:
            raise DecodeFailure(f"Unexpected status payload {data!r}") from e

        return StatusResponse(
            status=payload.status,
            raw_response=data,
            elapsed_time=asyncio.get_running_loop().time() - start_time,
        )

    async def register_webhook(self, session: aiohttp.ClientSession, webhook_url: str) -> None:
        url = f"{self.base_url}/register-webhook"
        try:
            async with session.post(url, json={"url": webhook_url}) as response:
                if response.status != 200:
                    raise RegistrationFailure(
                        f"Failed to register webhook, status code: {response.status}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RegistrationFailure(f"Error registering webhook at {url}: {e!r}") from e

        self.logger.info(f"Registered webhook {webhook_url} with {self.base_url}")
