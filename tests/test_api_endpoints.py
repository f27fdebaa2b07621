"""
Tests for the SongSplit REST API.

Tests cover:
- Distribution and preview endpoints
- Song registration and lookup
- Balance and history queries
- Admin controls
- Error-code to HTTP status mapping
- Authentication
- Health and metrics endpoints
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from api import state
from storage import StorageWriteError


def distribute(client, amount=1000, song_id=1, caller="deployer", headers=None):
    return client.post(
        "/royalties/distribute",
        json={"caller": caller, "song_id": song_id, "amount": amount},
        headers=headers,
    )


class TestDistributeEndpoint:
    """Tests for POST /royalties/distribute."""

    def test_distribute_success(self, flask_client):
        response = distribute(flask_client)

        assert response.status_code == 201
        assert response.get_json() == {"ok": True, "value": 0}

    def test_distribute_persists(self, flask_client, memory_storage):
        distribute(flask_client)

        saved = memory_storage.load_ledger()
        assert saved["payment_counter"] == 1
        assert saved["total_balances"] == {"wallet_1": 600, "wallet_2": 400}

    def test_zero_amount(self, flask_client):
        response = distribute(flask_client, amount=0)

        assert response.status_code == 400
        assert response.get_json() == {"ok": False, "value": 103, "error": "invalid_amount"}

    def test_unknown_song(self, flask_client):
        response = distribute(flask_client, song_id=999)

        assert response.status_code == 404
        assert response.get_json()["value"] == 102

    def test_too_small_amount(self, flask_client):
        response = distribute(flask_client, amount=1)

        assert response.status_code == 422
        assert response.get_json()["error"] == "distribution_failed"

    def test_paused(self, flask_client):
        flask_client.post("/royalties/admin/pause", json={"caller": "deployer"})

        response = distribute(flask_client)
        assert response.status_code == 409
        assert response.get_json()["value"] == 101

    def test_missing_field(self, flask_client):
        response = flask_client.post("/royalties/distribute", json={"caller": "deployer", "song_id": 1})

        assert response.status_code == 400
        assert "amount" in response.get_json()["error"]

    @pytest.mark.parametrize("amount", ["1000", 10.5, True])
    def test_wrong_amount_type(self, flask_client, amount):
        response = distribute(flask_client, amount=amount)
        assert response.status_code == 400

    def test_non_json_body(self, flask_client):
        response = flask_client.post("/royalties/distribute", data="nope", content_type="text/plain")
        assert response.status_code == 400

    def test_storage_failure(self, flask_client, memory_storage, monkeypatch):
        def fail(_data):
            raise StorageWriteError("disk full")

        monkeypatch.setattr(memory_storage, "save_ledger", fail)

        response = distribute(flask_client)
        assert response.status_code == 503
        assert response.get_json() == {"error": "Storage unavailable"}

        # The unsaved distribution was rolled back
        assert state.ledger.get_payment_counter().value == 0
        assert state.ledger.get_contributor_balance(1, "wallet_1").value == 0
        assert state.ledger.get_total_balance("wallet_2").value == 0
        assert state.ledger.get_royalty_history(1, 0).value is None
        assert state.ledger.get_events() == []

    def test_retry_after_storage_failure_credits_once(self, flask_client, memory_storage, monkeypatch):
        real_save = memory_storage.save_ledger
        calls = []

        def fail_once(data):
            calls.append(data)
            if len(calls) == 1:
                raise StorageWriteError("disk full")
            real_save(data)

        monkeypatch.setattr(memory_storage, "save_ledger", fail_once)

        assert distribute(flask_client).status_code == 503
        retry = distribute(flask_client)

        assert retry.status_code == 201
        assert retry.get_json() == {"ok": True, "value": 0}
        assert flask_client.get("/royalties/balances/1/wallet_1").get_json()["value"] == 600
        assert state.ledger.get_payment_counter().value == 1
        assert memory_storage.load_ledger()["total_balances"] == {"wallet_1": 600, "wallet_2": 400}

    def test_rejected_distribution_not_saved(self, flask_client, memory_storage, monkeypatch):
        def fail(_data):
            raise StorageWriteError("disk full")

        monkeypatch.setattr(memory_storage, "save_ledger", fail)

        # Nothing changed, so nothing is written and no 503 is raised
        assert distribute(flask_client, amount=0).status_code == 400


class TestPreviewEndpoint:
    """Tests for GET /royalties/songs/<id>/preview."""

    def test_preview(self, flask_client):
        response = flask_client.get("/royalties/songs/1/preview?amount=1000")

        assert response.status_code == 200
        assert response.get_json()["value"] == {"wallet_1": 600, "wallet_2": 400}
        assert state.ledger.get_payment_counter().value == 0

    def test_preview_requires_amount(self, flask_client):
        assert flask_client.get("/royalties/songs/1/preview").status_code == 400
        assert flask_client.get("/royalties/songs/1/preview?amount=abc").status_code == 400

    def test_preview_unknown_song(self, flask_client):
        assert flask_client.get("/royalties/songs/7/preview?amount=10").status_code == 404


class TestSongEndpoints:
    """Tests for song registration and lookup."""

    SONG = {
        "caller": "deployer",
        "song_id": 2,
        "title": "B-Side",
        "artist": "deployer",
        "ipfs_hash": "QmBSide",
        "contributors": [
            {"contributor": "wallet_1", "percentage": 50},
            {"contributor": "wallet_3", "percentage": 50},
        ],
    }

    def test_get_seeded_song(self, flask_client):
        response = flask_client.get("/royalties/songs/1")

        assert response.status_code == 200
        song = response.get_json()["value"]
        assert song["title"] == "Test Song"
        assert song["contributors"][0] == {"contributor": "wallet_1", "percentage": 60}

    def test_get_missing_song(self, flask_client):
        response = flask_client.get("/royalties/songs/99")
        assert response.status_code == 404
        assert response.get_json() == {"error": "Song not found"}

    def test_register_song(self, flask_client):
        response = flask_client.post("/royalties/songs", json=self.SONG)

        assert response.status_code == 201
        assert response.get_json() == {"ok": True, "value": 2}
        assert distribute(flask_client, song_id=2, amount=100).status_code == 201

    def test_register_requires_admin(self, flask_client):
        response = flask_client.post("/royalties/songs", json=dict(self.SONG, caller="wallet_1"))

        assert response.status_code == 403
        assert response.get_json()["error"] == "unauthorized"

    def test_register_duplicate(self, flask_client):
        response = flask_client.post("/royalties/songs", json=dict(self.SONG, song_id=1))

        assert response.status_code == 422
        assert response.get_json()["value"] == 102

    def test_register_bad_contributors(self, flask_client):
        body = dict(self.SONG, contributors=[{"contributor": "wallet_1", "percentage": 500}])
        assert flask_client.post("/royalties/songs", json=body).status_code == 422

    def test_register_missing_title(self, flask_client):
        body = {k: v for k, v in self.SONG.items() if k != "title"}
        assert flask_client.post("/royalties/songs", json=body).status_code == 400

    def test_song_payments(self, flask_client):
        distribute(flask_client, amount=300)
        distribute(flask_client, amount=200)

        payments = flask_client.get("/royalties/songs/1/payments").get_json()["value"]
        assert [(p["payment_id"], p["amount"]) for p in payments] == [(0, 300), (1, 200)]
        assert payments[0]["distributor"] == "deployer"


class TestQueryEndpoints:
    """Tests for balances, history and ledger state."""

    def test_contributor_balance(self, flask_client):
        distribute(flask_client)
        distribute(flask_client, amount=500)

        response = flask_client.get("/royalties/balances/1/wallet_1")
        assert response.get_json() == {"ok": True, "value": 900}
        assert flask_client.get("/royalties/balances/1/wallet_2").get_json()["value"] == 600

    def test_unknown_balance_is_zero(self, flask_client):
        assert flask_client.get("/royalties/balances/1/nobody").get_json()["value"] == 0

    def test_total_balance(self, flask_client):
        distribute(flask_client)
        assert flask_client.get("/royalties/balances/wallet_1").get_json()["value"] == 600

    def test_history(self, flask_client):
        distribute(flask_client)

        record = flask_client.get("/royalties/history/1/0").get_json()["value"]
        assert record["amount"] == 1000
        assert record["distributor"] == "deployer"
        assert isinstance(record["timestamp"], int)

    def test_missing_history_is_null(self, flask_client):
        response = flask_client.get("/royalties/history/1/5")

        assert response.status_code == 200
        assert response.get_json() == {"ok": True, "value": None}

    def test_ledger_state(self, flask_client):
        distribute(flask_client)

        value = flask_client.get("/royalties/state").get_json()["value"]
        assert value["admin"] == "deployer"
        assert value["paused"] is False
        assert value["payment_counter"] == 1

    def test_events(self, flask_client):
        distribute(flask_client)
        flask_client.post("/royalties/admin/pause", json={"caller": "deployer"})

        events = flask_client.get("/royalties/events?limit=1").get_json()["value"]
        assert len(events) == 1
        assert events[0]["event_type"] == "Paused"


class TestAdminEndpoints:
    """Tests for pause, unpause and admin transfer."""

    def test_pause_and_unpause(self, flask_client, memory_storage):
        response = flask_client.post("/royalties/admin/pause", json={"caller": "deployer"})
        assert response.get_json() == {"ok": True, "value": True}
        assert memory_storage.load_ledger()["paused"] is True

        flask_client.post("/royalties/admin/unpause", json={"caller": "deployer"})
        assert distribute(flask_client).status_code == 201

    def test_pause_unauthorized(self, flask_client):
        response = flask_client.post("/royalties/admin/pause", json={"caller": "wallet_1"})

        assert response.status_code == 403
        assert response.get_json() == {"ok": False, "value": 100, "error": "unauthorized"}

    def test_pause_requires_caller(self, flask_client):
        assert flask_client.post("/royalties/admin/pause", json={}).status_code == 400

    def test_transfer_admin(self, flask_client):
        response = flask_client.post(
            "/royalties/admin/transfer", json={"caller": "deployer", "new_admin": "wallet_1"}
        )
        assert response.status_code == 200

        assert flask_client.post("/royalties/admin/pause", json={"caller": "deployer"}).status_code == 403
        assert flask_client.post("/royalties/admin/pause", json={"caller": "wallet_1"}).status_code == 200

    @pytest.mark.parametrize("path, body", [
        ("/royalties/admin/pause", {"caller": "deployer"}),
        ("/royalties/admin/transfer", {"caller": "deployer", "new_admin": "wallet_1"}),
        ("/royalties/songs", dict(TestSongEndpoints.SONG)),
    ])
    def test_admin_change_rolled_back_on_storage_failure(self, flask_client, memory_storage, monkeypatch, path, body):
        def fail(_data):
            raise StorageWriteError("disk full")

        monkeypatch.setattr(memory_storage, "save_ledger", fail)

        assert flask_client.post(path, json=body).status_code == 503
        assert state.ledger.is_paused().value is False
        assert state.ledger.get_admin().value == "deployer"
        assert state.ledger.get_song(2) is None

    def test_transfer_blank_admin(self, flask_client):
        response = flask_client.post(
            "/royalties/admin/transfer", json={"caller": "deployer", "new_admin": "  "}
        )
        assert response.status_code == 400
        assert state.ledger.get_admin().value == "deployer"


class TestAuthentication:
    """Tests for the X-API-Key requirement on mutating routes."""

    @pytest.fixture
    def auth_required(self, monkeypatch):
        import api.utils

        monkeypatch.setattr(api.utils, "API_KEY_REQUIRED", True)
        monkeypatch.setattr(api.utils, "API_KEY", "test-api-key-12345")

    def test_missing_key(self, flask_client, auth_required):
        assert distribute(flask_client).status_code == 401

    def test_invalid_key(self, flask_client, auth_required):
        response = distribute(flask_client, headers={"X-API-Key": "wrong"})
        assert response.status_code == 403

    def test_valid_key(self, flask_client, auth_required, test_auth_headers):
        assert distribute(flask_client, headers=test_auth_headers).status_code == 201

    def test_server_key_unconfigured(self, flask_client, auth_required, monkeypatch):
        import api.utils

        monkeypatch.setattr(api.utils, "API_KEY", None)
        assert distribute(flask_client, headers={"X-API-Key": "anything"}).status_code == 503

    def test_reads_are_open(self, flask_client, auth_required):
        assert flask_client.get("/royalties/balances/1/wallet_1").status_code == 200


class TestMonitoringEndpoints:
    """Tests for health probes and metrics."""

    def test_health(self, flask_client):
        data = flask_client.get("/health").get_json()

        assert data["status"] == "healthy"
        assert data["checks"]["ledger"]["songs"]["total"] == 1
        assert data["checks"]["storage"]["backend_type"] == "MemoryStorage"

    def test_liveness(self, flask_client):
        assert flask_client.get("/health/live").get_json() == {"status": "alive"}

    def test_readiness(self, flask_client):
        assert flask_client.get("/health/ready").status_code == 200

    def test_readiness_without_storage(self, flask_client, monkeypatch):
        monkeypatch.setattr(state, "storage", None)
        assert flask_client.get("/health/ready").status_code == 503

    def test_prometheus_metrics(self, flask_client):
        distribute(flask_client)

        response = flask_client.get("/metrics")
        text = response.get_data(as_text=True)

        assert response.mimetype == "text/plain"
        assert "songsplit_royalty_distributions_total 1" in text
        assert "songsplit_ledger_payment_counter 1.0" in text
        assert 'path="/royalties/distribute"' in text

    def test_json_metrics(self, flask_client):
        distribute(flask_client, amount=0)

        counters = flask_client.get("/metrics/json").get_json()["counters"]
        assert counters["royalty_rejections_total"] == {'code="103",operation="distribute"': 1}

    def test_request_id_header(self, flask_client):
        response = flask_client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_unknown_route(self, flask_client):
        response = flask_client.get("/nope")
        assert response.status_code == 404
        assert response.get_json() == {"error": "Endpoint not found"}
