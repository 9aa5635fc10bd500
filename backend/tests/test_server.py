"""Tests for the FastAPI endpoints."""
import pytest
from fastapi.testclient import TestClient

from conftest import make_services, message_update
from server import create_app

SECRET = "hook-secret"
AGENT_KEY = "agent-key"


async def empty_site(url, timeout):
    return "<html><body></body></html>"


@pytest.fixture
def services():
    return make_services(fetch=empty_site, webhook_secret=SECRET, agent_secret_key=AGENT_KEY)


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services, start_background=False))


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------
def test_webhook_rejects_wrong_secret(client, services):
    resp = client.post("/api/telegram/webhook", json=message_update("hi"),
                       headers={"X-Telegram-Bot-Api-Secret-Token": "nope"})
    assert resp.status_code == 401
    assert len(services.updates) == 0


def test_webhook_queues_update(client, services):
    resp = client.post("/api/telegram/webhook", json=message_update("hi"),
                       headers={"X-Telegram-Bot-Api-Secret-Token": SECRET})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert len(services.updates) == 1
    assert client.get("/api/status").json()["queued_updates"] == 1


def test_webhook_ignores_garbage_body(client, services):
    resp = client.post("/api/telegram/webhook", content=b"not json",
                       headers={"X-Telegram-Bot-Api-Secret-Token": SECRET})
    assert resp.status_code == 200
    assert len(services.updates) == 0


def test_webhook_processes_updates_when_running(services):
    app = create_app(services=services, start_background=False)
    with TestClient(app) as client:
        client.post("/api/telegram/webhook", json=message_update("Queued via webhook"),
                    headers={"X-Telegram-Bot-Api-Secret-Token": SECRET})
        client.portal.call(services.updates.join)
    assert len(services.contexts) == 1


# ---------------------------------------------------------------------------
# Scraper trigger & status
# ---------------------------------------------------------------------------
def test_trigger_requires_agent_key(client):
    assert client.post("/api/scraper/trigger").status_code == 401
    assert client.post("/api/scraper/trigger", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_trigger_starts_a_run(services):
    app = create_app(services=services, start_background=False)
    with TestClient(app) as client:
        resp = client.post("/api/scraper/trigger", headers={"Authorization": f"Bearer {AGENT_KEY}"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "triggered"
        assert body["run_id"]


def test_status(client, services):
    body = client.get("/api/status").json()
    assert body == {
        "contexts": 0,
        "seen_fingerprints": 0,
        "pending_prompts": 0,
        "queued_updates": 0,
        "scraper_running": False,
        "last_run": None,
    }


def test_root(client):
    body = client.get("/api/").json()
    assert body["service"] == "Newsdesk Review Bot"
    assert "GET /api/status" in body["endpoints"]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
def test_startup_registers_webhook_and_commands():
    services = make_services(fetch=empty_site, webhook_secret=SECRET, backend_url="https://bot.example.com")
    with TestClient(create_app(services=services)):
        pass

    webhook = services.api.of("setWebhook")[0]
    assert webhook == {"url": "https://bot.example.com/api/telegram/webhook", "secret_token": SECRET}
    commands = services.api.of("setMyCommands")[0]["commands"]
    assert [c["command"] for c in commands] == ["start", "gpt"]


def test_startup_without_public_url_clears_webhook():
    services = make_services(fetch=empty_site)
    with TestClient(create_app(services=services)):
        pass

    assert services.api.of("setWebhook") == []
    assert len(services.api.of("deleteWebhook")) == 1
