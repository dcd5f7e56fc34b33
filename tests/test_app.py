"""Tests for the status server routes."""

import asyncio
import threading

import pytest

from invoice_sync.app import (
    BroadcastWorker,
    SyncRuntime,
    _initial_session,
    create_app,
    resource_listener,
)
from invoice_sync.data.defaults import DEMO_USER_ID
from invoice_sync.models.common import Resource
from invoice_sync.settings import SyncSettings

from factories import OTHER_USER_ID, USER_ID, customer_row


@pytest.fixture
def runtime(backend, make_orchestrator, session):
    backend.tables["customers"]["c-1"] = customer_row("c-1")
    runtime = SyncRuntime(make_orchestrator(session), timeout=5.0)
    runtime.start()
    yield runtime
    runtime.stop()


@pytest.fixture
def client(runtime):
    app = create_app(runtime)
    app.config["TESTING"] = True
    return app.test_client()


def test_status(client):
    response = client.get("/api/sync/status")

    assert response.status_code == 200
    body = response.get_json()
    assert body["online"] is True
    assert body["user_id"] == USER_ID
    assert set(body["resources"]) == {
        "documents",
        "customers",
        "company_info",
        "template_preferences",
        "payment_methods",
    }


def test_reload(client, backend):
    before = backend.calls["select:customers"]

    response = client.post("/api/sync/customers/reload")

    assert response.status_code == 200
    assert response.get_json() == {"resource": "customers", "size": 1, "loaded": True}
    assert backend.calls["select:customers"] > before


def test_reload_unknown_resource(client):
    response = client.post("/api/sync/invoices/reload")

    assert response.status_code == 404
    assert "invoices" in response.get_json()["error"]


def test_sign_in_requires_uuid(client):
    response = client.post("/api/sync/session", json={"user_id": "bob"})

    assert response.status_code == 400


def test_sign_in_and_out(client):
    signed_in = client.post(
        "/api/sync/session", json={"user_id": OTHER_USER_ID, "access_token": "t"}
    ).get_json()
    signed_out = client.delete("/api/sync/session").get_json()

    assert signed_in["user_id"] == OTHER_USER_ID
    assert signed_in["online"] is True
    assert signed_out["online"] is False
    assert signed_out["is_loading"] is False


class TestInitialSession:
    def test_demo_backend_signs_in_demo_user(self, monkeypatch):
        monkeypatch.delenv("INVOICE_SYNC_USER_ID", raising=False)
        monkeypatch.delenv("INVOICE_SYNC_DEMO_SIGNED_IN", raising=False)

        session = _initial_session(SyncSettings(backend="demo"))

        assert session.user_id == DEMO_USER_ID

    def test_demo_user_can_be_disabled(self, monkeypatch):
        monkeypatch.delenv("INVOICE_SYNC_USER_ID", raising=False)
        monkeypatch.setenv("INVOICE_SYNC_DEMO_SIGNED_IN", "false")

        assert _initial_session(SyncSettings(backend="demo")) is None

    def test_hosted_backend_uses_configured_user(self, monkeypatch):
        monkeypatch.setenv("INVOICE_SYNC_USER_ID", USER_ID)
        monkeypatch.setenv("INVOICE_SYNC_ACCESS_TOKEN", "jwt")

        session = _initial_session(SyncSettings(backend="impl"))

        assert (session.user_id, session.access_token) == (USER_ID, "jwt")

    def test_hosted_backend_without_user_is_offline(self, monkeypatch):
        monkeypatch.delenv("INVOICE_SYNC_USER_ID", raising=False)

        assert _initial_session(SyncSettings(backend="impl")) is None


class TestBroadcast:
    def test_sends_leave_the_event_loop_thread(self):
        sent = []
        worker = BroadcastWorker(lambda message: sent.append((message, threading.get_ident())))

        async def scenario():
            worker({"type": "a"})
            worker({"type": "b"})
            return threading.get_ident()

        loop_thread = asyncio.run(scenario())
        worker.close()

        assert [message["type"] for message, _ in sent] == ["a", "b"]
        assert all(thread != loop_thread for _, thread in sent)

    def test_failed_send_does_not_stop_the_worker(self):
        sent = []

        def send(message):
            if message["type"] == "bad":
                raise RuntimeError("client gone")
            sent.append(message)

        worker = BroadcastWorker(send)
        worker({"type": "bad"})
        worker({"type": "good"})
        worker.close()

        assert sent == [{"type": "good"}]

    def test_resource_changes_are_announced(self, backend, make_orchestrator, session):
        backend.tables["customers"]["c-1"] = customer_row("c-1")
        sent = []
        worker = BroadcastWorker(sent.append)

        async def scenario():
            orchestrator = make_orchestrator(session)
            orchestrator.add_listener(resource_listener(orchestrator, worker))
            orchestrator.start()
            await orchestrator.wait_idle()
            await orchestrator.close()

        asyncio.run(scenario())
        worker.close()

        customers = [m for m in sent if m.get("resource") == Resource.CUSTOMERS.value]
        assert 1 in [m["size"] for m in customers]
