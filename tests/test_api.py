"""
End-to-end tests for the HTTP surface with in-memory collaborators.

Run with: pytest tests/test_api.py -v
"""
import pytest
from fastapi.testclient import TestClient

from conftest import FakeEngine, make_image_bytes
from partscan.api import deps
from partscan.db.database import get_db
from partscan.main import app
from partscan.services.catalog import CatalogImportReconciler
from partscan.services.orchestrator import ScanRegistry

API = "/api/v1"


@pytest.fixture
def engine(sample_result):
    return FakeEngine(result=sample_result)


@pytest.fixture
def client(persistence, catalog_store, history_store, session_factory, engine):
    registry = ScanRegistry(
        engine_factory=lambda: engine,
        persistence=persistence,
        catalog_store=catalog_store,
        history_store=history_store,
    )

    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_catalog_store] = lambda: catalog_store
    app.dependency_overrides[deps.get_history_store] = lambda: history_store
    app.dependency_overrides[deps.get_reconciler] = lambda: CatalogImportReconciler(persistence, catalog_store)
    app.dependency_overrides[get_db] = override_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def open_scan(client):
    response = client.post(f"{API}/scans")
    assert response.status_code == 201
    return response.json()["scanId"]


def upload(client, scan_id, count):
    for i in range(count):
        response = client.post(
            f"{API}/scans/{scan_id}/photos",
            files={"file": (f"angle{i}.png", make_image_bytes(color=(i * 50, 0, 0)), "image/png")},
        )
        assert response.status_code == 201


class TestScanEndpoints:
    """Tests for the scan workflow over HTTP."""

    def test_full_identification(self, client):
        scan_id = open_scan(client)
        upload(client, scan_id, 3)

        response = client.post(f"{API}/scans/{scan_id}/identify")

        assert response.status_code == 200
        body = response.json()
        assert body["stage"] == "RESULT"
        assert body["result"]["summary"] == "ok"
        assert body["result"]["parts"][0]["partNumber"] == "A1"
        assert body["result"]["parts"][0]["matchPercentage"] == 85
        assert len(body["uploads"]) == 3

        history = client.get(f"{API}/history").json()
        assert len(history) == 1
        assert history[0]["totalMatches"] == 1

    def test_too_few_angles(self, client, engine):
        scan_id = open_scan(client)
        upload(client, scan_id, 2)

        response = client.post(f"{API}/scans/{scan_id}/identify")

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert client.get(f"{API}/scans/{scan_id}").json()["stage"] == "IDLE"
        assert engine.calls == []

    def test_batch_import_labels(self, client):
        scan_id = open_scan(client)
        upload(client, scan_id, 1)

        response = client.post(
            f"{API}/scans/{scan_id}/photos/batch",
            files=[("files", (f"g{i}.png", make_image_bytes(), "image/png")) for i in range(2)],
        )

        assert response.status_code == 201
        assert [p["angle"] for p in response.json()] == ["Batch 2", "Batch 3"]

    def test_bad_image_rejected(self, client):
        scan_id = open_scan(client)
        response = client.post(
            f"{API}/scans/{scan_id}/photos/batch",
            files=[("files", ("ok.png", make_image_bytes(), "image/png")),
                   ("files", ("bad.png", b"nope", "image/png"))],
        )
        assert response.status_code == 400
        assert client.get(f"{API}/scans/{scan_id}").json()["photos"] == []

    def test_remove_and_clear(self, client):
        scan_id = open_scan(client)
        upload(client, scan_id, 3)
        photos = client.get(f"{API}/scans/{scan_id}").json()["photos"]

        state = client.delete(f"{API}/scans/{scan_id}/photos/{photos[0]['id']}").json()
        assert [p["id"] for p in state["photos"]] == [p["id"] for p in photos[1:]]

        state = client.delete(f"{API}/scans/{scan_id}/photos").json()
        assert state["photos"] == []

    def test_reset_and_adjust(self, client):
        scan_id = open_scan(client)
        upload(client, scan_id, 3)
        client.post(f"{API}/scans/{scan_id}/identify")

        adjusted = client.post(f"{API}/scans/{scan_id}/adjust").json()
        assert adjusted["stage"] == "IDLE"
        assert len(adjusted["photos"]) == 3

        reset = client.post(f"{API}/scans/{scan_id}/reset").json()
        assert reset["photos"] == []

    def test_unknown_scan(self, client):
        assert client.get(f"{API}/scans/missing").status_code == 404

    def test_close_scan(self, client):
        scan_id = open_scan(client)
        assert client.delete(f"{API}/scans/{scan_id}").status_code == 204
        assert client.get(f"{API}/scans/{scan_id}").status_code == 404


class TestCatalogEndpoints:
    """Tests for catalog import and listing."""

    def test_import_csv_then_list(self, client):
        data = b"Part Number,Part Name,Station\nX1,Bolt,S1\n,Bad,\n"
        response = client.post(
            f"{API}/catalog/import",
            files={"file": ("inventory.csv", data, "text/csv")},
        )

        assert response.status_code == 200
        assert response.json()["accepted"] == 1
        assert response.json()["rejected"] == 1

        catalog = client.get(f"{API}/catalog").json()
        assert catalog == [{"partNumber": "X1", "partName": "Bolt", "station": "S1"}]

    def test_unparseable_file(self, client):
        response = client.post(
            f"{API}/catalog/import",
            files={"file": ("inventory.xlsx", b"garbage", "application/octet-stream")},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestHealth:
    def test_health(self, client):
        body = client.get(f"{API}/health").json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
