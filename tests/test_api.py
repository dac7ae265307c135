"""
Tests for the HTTP API.

Uses FastAPI TestClient against an app wired to an in-memory store.
"""

import pytest
from fastapi.testclient import TestClient

from herbchain.catalog import ASHWAGANDHA, DEFAULT_RULES
from herbchain.config import Config
from herbchain.errors import StorageFault
from herbchain.main import create_app
from herbchain.storage.memory import MemoryLedgerStore

EVENT = {
    "batch_id": "BATCH-API-1",
    "lat": 26.5,
    "lng": 74.5,
    "timestamp": "2024-01-15T08:00:00Z",
    "collector_id": "collector-1",
    "species": ASHWAGANDHA,
    "quality": {"moisture": 10.0, "visual_grade": "good", "estimated_yield": 20.0},
    "zone": "Rajasthan Zone A",
}


class UnsavableRuleStore(MemoryLedgerStore):
    async def save_rule(self, doc):
        raise StorageFault("rules collection unavailable")


@pytest.fixture
def client():
    app = create_app(store=MemoryLedgerStore(rules=DEFAULT_RULES), config=Config)
    with TestClient(app) as test_client:
        yield test_client


def _login(client, role, email=None):
    email = email or f"{role.lower()}@example.com"
    client.post(
        "/auth/register",
        json={"role": role, "fullName": f"{role} Org", "email": email, "password": "secret123"},
    )
    response = client.post("/auth/login", json={"email": email, "password": "secret123", "role": role})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _admin(client):
    response = client.post(
        "/auth/login",
        json={"email": Config.ADMIN_EMAIL, "password": Config.ADMIN_PASSWORD, "role": "Admin"},
    )
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


class TestAuth:
    def test_register_and_login(self, client):
        headers = _login(client, "Collector")

        assert headers["Authorization"].startswith("Bearer ")

    def test_wrong_password(self, client):
        _login(client, "Tester")

        response = client.post(
            "/auth/login", json={"email": "tester@example.com", "password": "wrong-pass", "role": "Tester"}
        )

        assert response.status_code == 401

    def test_admin_cannot_register(self, client):
        response = client.post(
            "/auth/register",
            json={"role": "Admin", "fullName": "X", "email": "x@example.com", "password": "secret123"},
        )

        assert response.status_code == 403

    def test_role_enforced(self, client):
        headers = _login(client, "Tester")

        response = client.post("/api/collector/collection-events", json=EVENT, headers=headers)

        assert response.status_code == 403

    def test_token_required(self, client):
        assert client.get("/api/ledger").status_code in (401, 403)


class TestSubmission:
    def test_accepted_event(self, client):
        headers = _login(client, "Collector")

        response = client.post("/api/collector/collection-events", json=EVENT, headers=headers)

        assert response.status_code == 201
        body = response.json()
        assert body["validation"]["accepted"] is True
        assert body["transaction"]["height"] == 0

    def test_rejected_event(self, client):
        headers = _login(client, "Collector")

        response = client.post(
            "/api/collector/collection-events", json={**EVENT, "lat": 20.0, "lng": 70.0}, headers=headers
        )

        assert response.status_code == 422
        assert "outside approved zones" in response.json()["validation"]["errors"][0]

    def test_validate_only(self, client):
        headers = _login(client, "Collector")

        response = client.post("/api/collector/validate", json=EVENT, headers=headers)

        assert response.status_code == 200
        assert response.json()["accepted"] is True
        assert client.get("/api/ledger", headers=headers).json()["height"] == 0

    def test_processing_step_for_unknown_batch(self, client):
        headers = _login(client, "Processor")
        step = {
            "batch_id": "UNKNOWN",
            "step_type": "drying",
            "timestamp": "2024-01-17T09:00:00Z",
            "processor_id": "processor-1",
        }

        response = client.post("/api/processor/processing-steps", json=step, headers=headers)

        assert response.status_code == 404


class TestLedgerAndProvenance:
    @pytest.fixture
    def recorded(self, client):
        collector = _login(client, "Collector")
        processor = _login(client, "Processor")
        lab = _login(client, "Tester")
        client.post("/api/collector/collection-events", json=EVENT, headers=collector)
        client.post(
            "/api/processor/processing-steps",
            json={
                "batch_id": "BATCH-API-1",
                "step_type": "drying",
                "timestamp": "2024-01-17T09:00:00Z",
                "processor_id": "processor-1",
            },
            headers=processor,
        )
        client.post(
            "/api/lab/quality-tests",
            json={
                "batch_id": "BATCH-API-1",
                "test_type": "dna_barcode",
                "result": "pass",
                "values": {"match": 1.0},
                "certificate_hash": "cert-api-1",
                "lab_id": "lab-1",
                "timestamp": "2024-01-25T14:00:00Z",
            },
            headers=lab,
        )
        return collector

    def test_export_and_verify(self, client, recorded):
        export = client.get("/api/ledger", headers=recorded).json()
        verify = client.get("/api/ledger/verify", headers=recorded).json()

        assert export["height"] == 3
        assert [t["kind"] for t in export["transactions"]] == ["collection_event", "processing_step", "quality_test"]
        assert verify == {"valid": True, "verifiedEntries": 3, "latestHash": export["latestHash"]}

    def test_entry_by_height(self, client, recorded):
        assert client.get("/api/ledger/1", headers=recorded).json()["kind"] == "processing_step"
        assert client.get("/api/ledger/9", headers=recorded).status_code == 404

    def test_batch_history(self, client, recorded):
        body = client.get("/api/ledger/batch/BATCH-API-1", headers=recorded).json()

        assert len(body["transactions"]) == 3

    def test_conservation_status(self, client, recorded):
        body = client.get(
            f"/api/conservation/{ASHWAGANDHA}/Rajasthan Zone A", params={"day": "2024-01-15"}, headers=recorded
        ).json()

        assert body["dailyHarvestUsed"] == 20.0
        assert body["season"] == "2023-2024"

    def test_provenance_and_scan(self, client, recorded):
        manufacturer = _login(client, "Manufacturer")

        built = client.post("/api/manufacturer/provenance/BATCH-API-1", headers=manufacturer)
        code = built.json()["final_product"]["product_code"]
        scan = client.get(f"/api/public/scan/{code}")

        assert built.status_code == 201
        assert scan.status_code == 200
        assert scan.json()["verified"] is True
        assert scan.json()["summary"]["stages"][0] == f"Harvested {ASHWAGANDHA}"
        assert client.get("/api/public/provenance/BATCH-API-1").status_code == 200

    def test_legacy_scan(self, client, recorded):
        client.post("/api/manufacturer/provenance/BATCH-API-1", headers=_admin(client))

        scan = client.get("/api/public/scan/QR_BATCH-API-1_abc123")

        assert scan.json()["verified"] is False

    def test_qrcode_png(self, client, recorded):
        client.post("/api/manufacturer/provenance/BATCH-API-1", headers=_admin(client))

        response = client.get("/api/public/provenance/BATCH-API-1/qrcode")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

    def test_unknown_provenance(self, client):
        assert client.get("/api/public/provenance/NOPE").status_code == 404


class TestAdmin:
    def test_retire_rule(self, client):
        admin = _admin(client)

        response = client.put(
            "/api/admin/rules/ashwagandha-seasonal-restrictions", json={"active": False}, headers=admin
        )
        rules = client.get("/api/rules", params={"species": ASHWAGANDHA}, headers=admin).json()

        assert response.status_code == 200
        assert "ashwagandha-seasonal-restrictions" not in [r["id"] for r in rules]

    def test_create_rule(self, client):
        admin = _admin(client)
        rule = {
            "id": "tulsi-quality",
            "type": "quality",
            "species": "Ocimum sanctum",
            "parameters": {"max_moisture": 10},
        }

        response = client.post("/api/admin/rules", json=rule, headers=admin)

        assert response.status_code == 201
        assert response.json()["parameters"]["max_moisture"] == 10

    def test_invalid_rule(self, client):
        response = client.post(
            "/api/admin/rules", json={"id": "x", "type": "lunar", "species": "y"}, headers=_admin(client)
        )

        assert response.status_code == 422

    def test_non_admin_refused(self, client):
        headers = _login(client, "Collector")

        assert client.get("/api/admin/dashboard", headers=headers).status_code == 403

    def test_failed_save_leaves_rule_in_force(self):
        app = create_app(store=UnsavableRuleStore(rules=DEFAULT_RULES), config=Config)
        with TestClient(app) as client:
            admin = _admin(client)
            response = client.put(
                "/api/admin/rules/ashwagandha-conservation-limits", json={"active": False}, headers=admin
            )
            rules = client.get("/api/rules", params={"species": ASHWAGANDHA}, headers=admin).json()

        assert response.status_code == 503
        assert "ashwagandha-conservation-limits" in [r["id"] for r in rules]

    def test_failed_save_does_not_register_rule(self):
        app = create_app(store=UnsavableRuleStore(rules=DEFAULT_RULES), config=Config)
        with TestClient(app) as client:
            admin = _admin(client)
            response = client.post(
                "/api/admin/rules",
                json={
                    "id": "tulsi-quality",
                    "type": "quality",
                    "species": "Ocimum sanctum",
                    "parameters": {"max_moisture": 10},
                },
                headers=admin,
            )
            rules = client.get("/api/rules", params={"species": "Ocimum sanctum"}, headers=admin).json()

        assert response.status_code == 503
        assert rules == []
