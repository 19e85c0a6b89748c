"""Tests for the HTTP API."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from release_pilot.server import app, get_app_settings, get_store


@pytest.fixture
def client_for(store):
    """Build a test client bound to a given settings object and the test store."""

    def factory(settings):
        app.dependency_overrides[get_app_settings] = lambda: settings
        app.dependency_overrides[get_store] = lambda: store
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()


@pytest.fixture
def client(client_for, settings):
    return client_for(settings)


class TestDigests:
    def test_list_seeds_and_orders(self, client):
        response = client.get("/digests")
        assert response.status_code == 200
        digests = response.json()["digests"]
        assert [d["id"] for d in digests] == ["dg-2025-11-21", "dg-2025-11-20"]
        assert digests[0]["productId"] == "launchpad"
        assert "shippedAt" in digests[0]["highlights"][0]

    def test_run_defaults_to_launchpad(self, client, store):
        response = client.post("/digests")
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["digest"]["productId"] == "launchpad"
        assert body["sources"][0] == "mock://releases?product=launchpad"
        assert "durationMs" in body
        assert "error" not in body
        assert store.count() == 1

    def test_dry_run_does_not_store(self, client, store):
        response = client.post("/digests", json={"productId": "orbit", "dryRun": True})
        assert response.status_code == 200
        body = response.json()
        assert body["digest"]["id"].startswith("dg-preview-")
        assert body["digest"]["title"] == "Orbit daily release brief"
        assert store.count() == 0

    def test_run_failure_is_500(self, client, store, monkeypatch):
        def broken_create(draft):
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "create", broken_create)
        response = client.post("/digests", json={})
        assert response.status_code == 500
        body = response.json()
        assert body == {"ok": False, "error": "disk full", "durationMs": body["durationMs"]}


class TestChat:
    def test_message_required(self, client):
        response = client.post("/chat", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "Message is required."}

    def test_incidents_action(self, client):
        response = client.post(
            "/chat",
            json={"message": "Any incidents I should know about?", "actionId": "incidents"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["reply"]["role"] == "assistant"
        assert body["reply"]["actionId"] == "incidents"
        assert body["reply"]["content"].startswith("Incident recap:")
        assert len(body["references"]) == 2

    def test_quick_actions(self, client):
        response = client.get("/chat/actions")
        assert [a["id"] for a in response.json()["actions"]] == [
            "latest_digest",
            "health_focus",
            "incidents",
        ]

    def test_bootstrap(self, client):
        messages = client.get("/chat/bootstrap").json()["messages"]
        assert messages[0]["role"] == "system"
        assert messages[1]["content"].startswith("Morning! ")


class TestSlack:
    def test_url_verification(self, client):
        response = client.post("/slack", json={"type": "url_verification", "challenge": "abc123"})
        assert response.status_code == 200
        assert response.json() == {"challenge": "abc123"}

    def test_slash_command(self, client):
        response = client.post("/slack", data={"command": "/digest", "text": ""})
        assert response.status_code == 200
        body = response.json()
        assert body["text"].startswith("Today: Top-line metrics remain healthy")
        assert body["blocks"][0]["type"] == "header"

    def test_bad_token_rejected(self, client_for, make_settings):
        client = client_for(make_settings(SLACK_VERIFICATION_TOKEN="expected"))
        response = client.post("/slack", data={"command": "/digest", "token": "nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Verification failed."}

    def test_undecodable_form_body(self, client):
        response = client.post(
            "/slack",
            content=b"command=%2Fdigest&text=\xff\xfe",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        assert response.status_code == 200
        assert response.json()["text"].startswith("Today: ")

    def test_run_from_slack(self, client, store):
        response = client.post("/slack", data={"command": "/digest", "text": "run"})
        assert response.status_code == 200
        assert "created with status WARNING" in response.json()["text"]
        assert store.count() == 1
