import pytest
from conftest import HOST
from job_server import JobServer, ServerSettings
from job_status_client.arbitration import ArbitrationEngine
from job_status_client.config import ClientSettings
from job_status_client.models import JobStatus, RaceOutcome


def test_client_settings_from_environment(monkeypatch):
    monkeypatch.setenv("JOB_CLIENT_BASE_URL", "http://jobs.internal:8080")
    monkeypatch.setenv("JOB_CLIENT_MAX_ATTEMPTS", "20")
    monkeypatch.setenv("JOB_CLIENT_RESOLVE_TIMEOUT", "45")
    monkeypatch.setenv("JOB_CLIENT_REQUIRE_WEBHOOK", "false")

    settings = ClientSettings()
    polling = settings.polling_config()
    arbitration = settings.arbitration_config()

    assert settings.base_url == "http://jobs.internal:8080"
    assert polling.max_attempts == 20
    assert polling.base_interval == 4.0
    assert arbitration.timeout == 45.0
    assert arbitration.require_webhook is False


def test_client_settings_reject_bad_schedule(monkeypatch):
    monkeypatch.setenv("JOB_CLIENT_MID_INTERVAL", "8")

    with pytest.raises(ValueError):
        ClientSettings().polling_config()


def test_server_settings_defaults():
    settings = ServerSettings()

    assert (settings.min_delay, settings.max_delay) == (5.0, 15.0)
    assert settings.port == 8080


def test_engine_from_settings(monkeypatch):
    monkeypatch.setenv("JOB_CLIENT_BASE_URL", "http://jobs.internal:8080/")
    monkeypatch.setenv("JOB_CLIENT_WEBHOOK_PORT", "9191")
    monkeypatch.setenv("JOB_CLIENT_MAX_ATTEMPTS", "7")

    engine = ArbitrationEngine.from_settings(ClientSettings())

    assert engine.api.base_url == "http://jobs.internal:8080"
    assert engine.receiver.port == 9191
    assert engine.poller.config.max_attempts == 7


def test_server_from_settings(monkeypatch):
    monkeypatch.setenv("JOB_SERVER_MIN_DELAY", "2")
    monkeypatch.setenv("JOB_SERVER_MAX_DELAY", "3")

    server_instance = JobServer.from_settings(ServerSettings())

    assert (server_instance.min_delay, server_instance.max_delay) == (2.0, 3.0)


@pytest.mark.asyncio
async def test_settings_driven_resolution(monkeypatch, unused_tcp_port_factory):
    server_port = unused_tcp_port_factory()
    monkeypatch.setenv("JOB_SERVER_HOST", HOST)
    monkeypatch.setenv("JOB_SERVER_PORT", str(server_port))
    monkeypatch.setenv("JOB_SERVER_MIN_DELAY", "0.3")
    monkeypatch.setenv("JOB_SERVER_MAX_DELAY", "0.3")
    monkeypatch.setenv("JOB_CLIENT_BASE_URL", f"http://{HOST}:{server_port}")
    monkeypatch.setenv("JOB_CLIENT_WEBHOOK_HOST", HOST)
    monkeypatch.setenv("JOB_CLIENT_WEBHOOK_PORT", "0")
    monkeypatch.setenv("JOB_CLIENT_BASE_INTERVAL", "0.2")
    monkeypatch.setenv("JOB_CLIENT_MID_INTERVAL", "0.1")
    monkeypatch.setenv("JOB_CLIENT_FINAL_INTERVAL", "0.05")
    monkeypatch.setenv("JOB_CLIENT_RESOLVE_TIMEOUT", "5")

    server_settings = ServerSettings()
    server_instance = JobServer.from_settings(server_settings)
    await server_instance.start(host=server_settings.host, port=server_settings.port)
    try:
        async with ArbitrationEngine.from_settings(ClientSettings()) as engine:
            result = await engine.resolve()
    finally:
        await server_instance.stop()

    assert result.status == JobStatus.completed
    assert result.outcome in (RaceOutcome.webhook, RaceOutcome.polling)
    assert result.authoritative
