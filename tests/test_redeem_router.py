"""
Integration tests for the public redemption, payload and get-key endpoints.
"""
from datetime import datetime, timedelta

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from keygate.core.config import get_settings
from keygate.core.deps import get_key_store
from keygate.core.errors import StoreUnavailable
from keygate.main import app
from keygate.services.key_store import MAX_DEVICE_ID_LENGTH, InMemoryKeyStore
from keygate.services.sql_key_store import SqlKeyStore

from tests.conftest import START


class DownStore(InMemoryKeyStore):
    def get(self, key_id):
        raise StoreUnavailable()


@pytest.fixture
def key_id(sql_lifecycle):
    return sql_lifecycle.issue(label="Buyer", duration=timedelta(days=30)).id


def redeem(client, key=None, hwid=None):
    params = {k: v for k, v in {"key": key, "hwid": hwid}.items() if v is not None}
    return client.get("/redeem", params=params)


class TestRedeem:
    """Tests for GET /redeem."""

    def test_first_use_binds(self, client, key_id, sql_store):
        response = redeem(client, key_id, "device-x")

        assert response.status_code == 200
        data = response.json()
        assert data["outcome"] == "authorized"
        assert data["authorized"] is True
        assert data["message"] == "Access granted."
        assert sql_store.get(key_id).device_binding == "device-x"

    def test_same_device_again(self, client, key_id):
        redeem(client, key_id, "device-x")

        assert redeem(client, key_id, "device-x").status_code == 200

    def test_other_device_denied(self, client, key_id):
        redeem(client, key_id, "device-x")

        response = redeem(client, key_id, "device-y")

        assert response.status_code == 403
        assert response.json()["outcome"] == "device_mismatch"
        assert response.json()["authorized"] is False
        assert response.json()["message"] == "This key is linked to another device"

    @pytest.mark.parametrize("key, hwid", [(None, "device-x"), ("KEY_X", None), ("", ""), (None, None)])
    def test_missing_parameters(self, client, key, hwid):
        response = redeem(client, key, hwid)

        assert response.status_code == 400
        assert response.json()["outcome"] == "missing_parameters"

    def test_unknown_key(self, client):
        response = redeem(client, "KEY_NOPE", "device-x")

        assert response.status_code == 404
        assert response.json()["outcome"] == "not_found"

    def test_expired_key_not_bound(self, client, sql_lifecycle, sql_store, clock):
        key = sql_lifecycle.issue(duration=timedelta(hours=1))
        clock.advance(hours=2)

        response = redeem(client, key.id, "device-x")

        assert response.status_code == 403
        assert response.json()["outcome"] == "expired"
        assert sql_store.get(key.id).device_binding is None

    def test_store_outage_is_503(self, client):
        app.dependency_overrides[get_key_store] = lambda: DownStore()

        response = redeem(client, "KEY_X", "device-x")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error"] == "store_unavailable"


    def test_pool_timeout_is_503(self, client):
        session = MagicMock()
        session.execute.side_effect = PoolTimeoutError("QueuePool limit reached, connection timed out")
        app.dependency_overrides[get_key_store] = lambda: SqlKeyStore(session)

        response = redeem(client, "KEY_X", "device-x")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"

    def test_overlong_device_id_rejected(self, client, key_id, sql_store):
        response = redeem(client, key_id, "d" * (MAX_DEVICE_ID_LENGTH + 1))

        assert response.status_code == 400
        assert response.json()["outcome"] == "missing_parameters"
        assert sql_store.get(key_id).device_binding is None


class TestPayloads:
    """Tests for GET /payloads/{name}."""

    def test_authorized_delivery(self, client, key_id):
        response = client.get("/payloads/script", params={"key": key_id, "hwid": "device-x"})

        assert response.status_code == 200
        assert response.text == "print('protected script')\n"

    def test_denied_delivery_returns_no_payload(self, client, key_id):
        redeem(client, key_id, "device-x")

        response = client.get("/payloads/script", params={"key": key_id, "hwid": "device-y"})

        assert response.status_code == 403
        assert "protected script" not in response.text

    def test_unknown_payload_never_binds(self, client, key_id, sql_store):
        response = client.get("/payloads/bogus", params={"key": key_id, "hwid": "device-x"})

        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "message": "Unknown payload: bogus"}
        assert sql_store.get(key_id).device_binding is None

    def test_missing_payload_file(self, client, key_id):
        response = client.get("/payloads/safe", params={"key": key_id, "hwid": "device-x"})

        assert response.status_code == 404
        assert response.json()["message"] == "Payload 'safe' is missing on server"


class TestPublicKey:
    """Tests for GET /getkey."""

    def test_issues_temporary_key(self, client, sql_store):
        response = client.get("/getkey")

        assert response.status_code == 201
        data = response.json()
        assert data["hours"] == 24
        assert datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00")) == START + timedelta(hours=24)
        record = sql_store.get(data["key"])
        assert record.label == "Public - 2026-01-01"
        assert record.device_binding is None

    def test_public_key_redeemable(self, client):
        key = client.get("/getkey").json()["key"]

        assert redeem(client, key, "device-x").status_code == 200

    def test_disabled(self, client, monkeypatch):
        monkeypatch.setattr(get_settings(), "PUBLIC_ISSUE_ENABLED", False)

        response = client.get("/getkey")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
