"""
Test suite for the HTTP adapter: routing, status mapping and headers.
"""

import json

import pytest

from at_kvstore.store import decode_queue
from tests.fixtures import ConfigFactory


class TestSetEndpoint:

    def test_set_then_get(self, client):
        r = client.post("/set", json={"key": "greeting", "value": "hello"})
        assert r.status_code == 201

        r = client.get("/get", params={"key": "greeting"})
        assert r.status_code == 200
        assert r.json() == {"value": "hello"}

    @pytest.mark.parametrize("body", [
        {"key": "", "value": "v"},
        {"key": "k", "value": ""},
        {"value": "v"},
        {"key": "k"},
        {"key": "k", "value": "v", "expiry": -1},
        {"key": "k", "value": "v", "expiry": "soon"},
        {"key": "k", "value": "v", "expiry": 10**12},
        {"key": "k", "value": "v", "expiry": True},
        {"key": "k", "value": "v", "expiry": 1.5},
        {"key": "k", "value": "v", "condition": "ZZ"},
    ])
    def test_bad_requests(self, client, body):
        r = client.post("/set", json=body)
        assert r.status_code == 400
        assert r.json()["detail"].startswith("KV-001")

    def test_expiry_as_numeric_string(self, client, fake_clock):
        assert client.post("/set", json={"key": "k", "value": "v", "expiry": "5"}).status_code == 201
        fake_clock.advance(5)
        assert client.get("/get", params={"key": "k"}).status_code == 404

    def test_malformed_json(self, client):
        r = client.post("/set", content=b"{not json", headers={"content-type": "application/json"})
        assert r.status_code == 400

    def test_nx_conflict(self, client):
        assert client.post("/set", json={"key": "k", "value": "v1", "condition": "NX"}).status_code == 201

        r = client.post("/set", json={"key": "k", "value": "v2", "condition": "NX"})
        assert r.status_code == 409
        assert r.json()["detail"] == "KV-003: Key already exists"

        assert client.get("/get", params={"key": "k"}).json() == {"value": "v1"}

    def test_xx_on_missing_key(self, client):
        r = client.post("/set", json={"key": "k", "value": "v", "condition": "XX"})
        assert r.status_code == 404
        assert r.json()["detail"] == "KV-004: Key does not exist"
        assert client.get("/get", params={"key": "k"}).status_code == 404

    def test_expiry(self, client, fake_clock, store):
        client.post("/set", json={"key": "k", "value": "v", "expiry": 1})
        assert client.get("/get", params={"key": "k"}).status_code == 200

        fake_clock.advance(1)

        r = client.get("/get", params={"key": "k"})
        assert r.status_code == 404
        assert r.json()["detail"].startswith("KV-002")
        assert not store.exists("k")

    def test_get_requires_method(self, client):
        assert client.get("/set").status_code == 405
        assert client.post("/get").status_code == 405


class TestGetEndpoint:

    def test_missing_key_param(self, client):
        r = client.get("/get")
        assert r.status_code == 400

    def test_unknown_key(self, client):
        r = client.get("/get", params={"key": "nope"})
        assert r.status_code == 404


class TestQueueEndpoint:

    def test_push_and_read(self, client):
        r = client.post("/qpush", json={"key": "jobs", "values": ["a"]})
        assert r.status_code == 201
        assert r.json()["length"] == 1

        r = client.post("/qpush", json={"key": "jobs", "values": ["b", "c"]})
        assert r.json()["length"] == 3

        value = client.get("/get", params={"key": "jobs"}).json()["value"]
        assert decode_queue(value) == ["a", "b", "c"]

    @pytest.mark.parametrize("body", [
        {"key": "jobs", "values": []},
        {"key": "", "values": ["a"]},
        {"key": "jobs"},
        {"key": "jobs", "values": "a"},
        {"key": "jobs", "values": ["a", ""]},
    ])
    def test_bad_requests(self, client, body):
        assert client.post("/qpush", json=body).status_code == 400

    def test_push_onto_scalar(self, client):
        client.post("/set", json={"key": "k", "value": "plain"})

        r = client.post("/qpush", json={"key": "k", "values": ["a"]})
        assert r.status_code == 500
        assert r.json()["detail"].startswith("KV-005")

        assert client.get("/get", params={"key": "k"}).json() == {"value": "plain"}


class TestCommandEndpoint:

    def test_set_get_qpush(self, client):
        r = client.post("/command", json={"command": "SET k v EX 10 NX"})
        assert r.status_code == 201

        r = client.post("/command", json={"command": "GET k"})
        assert r.status_code == 200
        assert r.json() == {"value": "v"}

        r = client.post("/command", json={"command": "QPUSH q a b"})
        assert r.status_code == 201
        assert r.json()["length"] == 2

    def test_command_conditions(self, client):
        client.post("/command", json={"command": "SET k v1"})
        assert client.post("/command", json={"command": "SET k v2 NX"}).status_code == 409
        assert client.post("/command", json={"command": "SET other v XX"}).status_code == 404

    def test_command_expiry(self, client, fake_clock):
        client.post("/command", json={"command": "SET k v EX 5"})
        fake_clock.advance(5)
        assert client.post("/command", json={"command": "GET k"}).status_code == 404

    def test_out_of_range_expiry(self, client):
        r = client.post("/command", json={"command": "SET k v EX 300000000000"})
        assert r.status_code == 400
        assert r.json()["detail"].startswith("KV-001")
        assert client.post("/command", json={"command": "GET k"}).status_code == 404

    def test_unknown_command(self, client):
        r = client.post("/command", json={"command": "FLUSHALL"})
        assert r.status_code == 400
        assert r.json()["detail"].startswith("KV-006")

    def test_malformed_command(self, client):
        assert client.post("/command", json={"command": "SET k v EX"}).status_code == 400
        assert client.post("/command", json={}).status_code == 400


class TestServiceEndpoints:

    def test_correlation_id_echoed(self, client):
        r = client.get("/healthz", headers={"X-Correlation-ID": "corr-123"})
        assert r.headers["X-Correlation-ID"] == "corr-123"
        assert r.headers["X-Service-Name"] == "at-kvstore-test"

    def test_correlation_id_generated(self, client):
        r = client.get("/healthz")
        assert r.headers["X-Correlation-ID"].startswith("req_")

    def test_health(self, client):
        client.post("/set", json={"key": "k", "value": "v"})
        body = client.get("/healthz").json()
        assert body["ok"] is True
        assert body["keys"] == 1
        assert body["sweeper_running"] is False

    def test_metrics(self, client):
        client.post("/set", json={"key": "k", "value": "v"})
        r = client.get("/metrics")
        assert r.status_code == 200
        assert "kvstore_operations_total" in r.text
        assert "kvstore_keys" in r.text

    def test_payload_too_large(self, store):
        from fastapi.testclient import TestClient
        from at_kvstore.app import create_app

        app = create_app(store=store, settings=ConfigFactory.minimal_kvstore(max_payload_size=64))
        client = TestClient(app)

        r = client.post("/set", content=json.dumps({"key": "k", "value": "x" * 100}),
                        headers={"content-type": "application/json"})
        assert r.status_code == 413
        assert r.json()["detail"].startswith("KV-007")
        assert not store.exists("k")

    def test_independent_apps_have_independent_stores(self, test_config):
        from fastapi.testclient import TestClient
        from at_kvstore.app import create_app

        first = TestClient(create_app(settings=test_config))
        second = TestClient(create_app(settings=test_config))

        first.post("/set", json={"key": "k", "value": "v"})
        assert second.get("/get", params={"key": "k"}).status_code == 404
