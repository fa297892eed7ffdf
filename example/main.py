import asyncio

from job_server import JobServer, ServerSettings
from job_status_client.arbitration import ArbitrationEngine
from job_status_client.config import ClientSettings, setup_logging


async def status_changed(status_response):
    print(f"Polled status changed to: {status_response.status.value}")
    print(f"Request latency: {status_response.elapsed_time:.6f}s")


async def main():
    settings = ClientSettings()
    server_settings = ServerSettings()
    setup_logging(settings.log_level)

    server = JobServer.from_settings(server_settings)
    await server.start(host=server_settings.host, port=server_settings.port)
    print(f"Server started on http://{server_settings.host}:{server_settings.port}")

    async with ArbitrationEngine.from_settings(settings, on_status_change=status_changed) as engine:
        try:
            result = await engine.resolve()
            print(f"Final status: {result.status.value} (via {result.outcome.value})")
            print(f"Total time: {result.elapsed_time:.6f}s")
            result.raise_for_timeout()
        except TimeoutError as e:
            print(f"Resolution timed out: {e}")
        except Exception as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
