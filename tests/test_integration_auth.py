"""Integration tests for the HTTP login flow.

Tests the complete flow including:
- Login with and without a password
- Cookie issuance
- Uniform failure responses
- Session lookup from cookies
"""

import pytest
from fastapi.testclient import TestClient

from sessionkit import app as app_module
from sessionkit.service.runtime import get_runtime
from sessionkit.service.tokens import parse_cookies
from sessionkit.storage.errors import StorageError


@pytest.fixture
def client():
    return TestClient(app_module.app)


@pytest.fixture
def seeded(fast_hasher):
    store = get_runtime().store
    store.create_record(
        "app",
        "alice",
        user_id="u1",
        hashed_password=fast_hasher.hash("correct-pw"),
        attributes={"name": "Alice"},
    )
    store.create_record("github", "1234", user_id="u2")
    return store


def _cookie_values(response) -> dict:
    values = {}
    for header in response.headers.get_list("set-cookie"):
        values.update(parse_cookies(header.split(";")[0]))
    return values


class TestLogin:
    def test_login_sets_three_cookies(self, client, seeded):
        response = client.post(
            "/v1/auth/login",
            json={"scope": "app", "identifier": "alice", "password": "correct-pw"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["data"]["user"] == {"user_id": "u1", "attributes": {"name": "Alice"}}
        assert "access_token_expires_at" in body["data"]
        cookies = response.headers.get_list("set-cookie")
        assert len(cookies) == 3
        assert set(_cookie_values(response)) == {
            "access_token",
            "encrypt_refresh_token",
            "fingerprint_token",
        }

    def test_raw_refresh_token_not_returned(self, client, seeded):
        response = client.post(
            "/v1/auth/login",
            json={"scope": "app", "identifier": "alice", "password": "correct-pw"},
        )

        raw = seeded.get_refresh_tokens("u1")[0]
        assert raw not in response.text
        assert all(raw not in c for c in response.headers.get_list("set-cookie"))
        encrypted = _cookie_values(response)["encrypt_refresh_token"]
        assert get_runtime().auth.codec.decrypt(encrypted) == raw

    def test_passwordless_login(self, client, seeded):
        response = client.post(
            "/v1/auth/login", json={"scope": "github", "identifier": "1234"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["user"]["user_id"] == "u2"

    def test_failures_are_indistinguishable(self, client, seeded):
        unknown = client.post(
            "/v1/auth/login",
            json={"scope": "app", "identifier": "bob", "password": "x"},
        )
        wrong = client.post(
            "/v1/auth/login",
            json={"scope": "app", "identifier": "alice", "password": "x"},
        )
        missing = client.post(
            "/v1/auth/login", json={"scope": "app", "identifier": "alice"}
        )

        for response in (unknown, wrong, missing):
            assert response.status_code == 401
            assert "set-cookie" not in response.headers
        assert unknown.json()["error"] == wrong.json()["error"] == missing.json()["error"]
        assert unknown.json()["error"]["code"] == "unauthorized"

    def test_persistence_failure(self, client, seeded, monkeypatch):
        def fail(value, user_id):
            raise StorageError("disk full")

        monkeypatch.setattr(seeded, "set_refresh_token", fail)
        response = client.post(
            "/v1/auth/login",
            json={"scope": "app", "identifier": "alice", "password": "correct-pw"},
        )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "server_error"
        assert "disk full" not in response.text
        assert "set-cookie" not in response.headers

    def test_invalid_body(self, client):
        response = client.post(
            "/v1/auth/login", json={"scope": "a:b", "identifier": "alice"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_request_id_echoed(self, client, seeded):
        response = client.post(
            "/v1/auth/login",
            json={"scope": "app", "identifier": "bob"},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json()["request_id"] == "req-123"


class TestSession:
    def _login(self, client):
        response = client.post(
            "/v1/auth/login",
            json={"scope": "app", "identifier": "alice", "password": "correct-pw"},
        )
        return _cookie_values(response)

    def test_session_from_cookies(self, client, seeded):
        cookies = self._login(client)

        response = client.get(
            "/v1/auth/session",
            headers={
                "Cookie": f"access_token={cookies['access_token']}; "
                f"fingerprint_token={cookies['fingerprint_token']}"
            },
        )

        assert response.status_code == 200
        assert response.json()["data"]["user_id"] == "u1"

    def test_session_rejects_foreign_fingerprint(self, client, seeded):
        first = self._login(client)
        second = self._login(client)

        response = client.get(
            "/v1/auth/session",
            headers={
                "Cookie": f"access_token={first['access_token']}; "
                f"fingerprint_token={second['fingerprint_token']}"
            },
        )

        assert response.status_code == 401

    def test_session_without_cookies(self, client):
        response = client.get("/v1/auth/session")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"
