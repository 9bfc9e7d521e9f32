"""Tests for the webhook and liveness endpoints."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from ledgerbot.api import create_http_app
from ledgerbot.orchestrator import AppComponents


class RecordingPool:

    def __init__(self):
        self.submitted = []
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    async def submit(self, message):
        self.submitted.append(message)

    async def stop(self):
        self.stopped = True


class IdleRelay:

    def __init__(self):
        self.cancelled = False

    async def run(self):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


def onmessage(**fields):
    payload = {
        "event": "onmessage",
        "session": "ledger-session",
        "id": "false_5579999887766@c.us_3EB0",
        "from": "5579999887766@c.us",
        "body": "spent 10 on coffee",
        "type": "chat",
        "isGroupMsg": False,
        "fromMe": False,
    }
    payload.update(fields)
    return payload


@pytest.fixture
def pool():
    return RecordingPool()


@pytest.fixture
def components(pool, transport):
    return AppComponents(flow=None, pool=pool, relay=IdleRelay(), transport=transport)


@pytest.fixture
def client(components):
    return TestClient(create_http_app(components, run_background=False))


class TestLiveness:

    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_liveness(self, client, path):
        response = client.get(path)
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestWebhook:

    def test_onmessage_is_queued(self, client, pool):
        response = client.post("/webhook", json=onmessage())

        assert response.status_code == 200
        assert response.json() == {"ok": True, "queued": True}
        [message] = pool.submitted
        assert message.from_address == "5579999887766@c.us"
        assert message.body == "spent 10 on coffee"
        assert message.message_id == "false_5579999887766@c.us_3EB0"
        assert not message.should_ignore

    def test_other_events_are_acknowledged(self, client, pool):
        response = client.post("/webhook", json={"event": "onack", "ack": 3})

        assert response.status_code == 200
        assert response.json()["queued"] is False
        assert pool.submitted == []

    def test_nested_message_payload(self, client, pool):
        payload = {"event": "onmessage", "data": onmessage(event=None, body="paid 5")}

        client.post("/webhook", json=payload)

        assert pool.submitted[0].body == "paid 5"

    def test_group_flag_is_carried(self, client, pool):
        client.post("/webhook", json=onmessage(isGroupMsg=True, author="5511987654321@c.us"))

        [message] = pool.submitted
        assert message.is_group
        assert message.author == "5511987654321@c.us"
        assert message.should_ignore

    def test_media_body_is_dropped(self, client, pool):
        client.post("/webhook", json=onmessage(type="image", body="/9j/4AAQSkZJRg"))

        assert pool.submitted[0].body == ""

    def test_object_ids_are_serialized(self, client, pool):
        client.post("/webhook", json=onmessage(id={"_serialized": "abc", "fromMe": False}))
        assert pool.submitted[0].message_id == "abc"

    def test_non_object_body_is_rejected(self, client):
        assert client.post("/webhook", json=[1, 2]).status_code == 400


class TestWebhookSecret:

    @pytest.fixture
    def secured(self, components):
        return TestClient(create_http_app(components, webhook_secret="s3cret", run_background=False))

    def test_missing_secret_is_rejected(self, secured, pool):
        response = secured.post("/webhook", json=onmessage())

        assert response.status_code == 401
        assert pool.submitted == []

    def test_wrong_secret_is_rejected(self, secured):
        response = secured.post("/webhook", json=onmessage(), headers={"X-Webhook-Secret": "nope"})
        assert response.status_code == 401

    def test_matching_secret_is_accepted(self, secured, pool):
        response = secured.post(
            "/webhook",
            json=onmessage(),
            headers={"X-Webhook-Secret": "s3cret"},
        )
        assert response.status_code == 200
        assert len(pool.submitted) == 1


class TestLifespan:

    def test_background_tasks_start_and_stop(self, components, pool):
        app = create_http_app(components)

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert pool.started

        assert pool.stopped
        assert components.relay.cancelled
