from typing import AsyncGenerator, Awaitable, Callable, Tuple

import pytest
import pytest_asyncio
from job_server import JobServer
from job_status_client.models import StatusPollingConfig

HOST = "127.0.0.1"
BASE_URL_TEMPLATE = "http://127.0.0.1:{}"


@pytest_asyncio.fixture
async def make_server(
    unused_tcp_port_factory,
) -> AsyncGenerator[Callable[[float], Awaitable[Tuple[JobServer, str]]], None]:
    """Start JobServers whose job completes after a fixed delay; yields (server, base_url)."""
    servers = []

    async def start(delay: float) -> Tuple[JobServer, str]:
        port = unused_tcp_port_factory()
        server_instance = JobServer(min_delay=delay, max_delay=delay)
        await server_instance.start(host=HOST, port=port)
        servers.append(server_instance)
        return server_instance, BASE_URL_TEMPLATE.format(port)

    yield start
    for server_instance in servers:
        await server_instance.stop()


@pytest_asyncio.fixture
async def server(make_server) -> Tuple[JobServer, str]:
    """A JobServer whose job completes one second after the first status query."""
    return await make_server(1.0)


@pytest.fixture
def base_url(server) -> str:
    _, url = server
    return url


@pytest.fixture
def polling_config() -> StatusPollingConfig:
    """Fast polling schedule for tests."""
    return StatusPollingConfig(
        base_interval=0.2,
        mid_interval=0.1,
        final_interval=0.05,
        max_attempts=40,
        request_timeout=2.0,
    )
