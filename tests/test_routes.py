"""
API tests through FastAPI's TestClient with the database dependencies overridden.
"""
import io

import pandas as pd
import pytest
from fastapi.testclient import TestClient

import main
from database import get_live_engine, get_mirror_db, get_mirror_engine


def _xlsx(rows):
    buf = io.BytesIO()
    pd.DataFrame(rows).to_excel(buf, header=False, index=False)
    return buf.getvalue()


XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def client(live_data, mirror_engine, mirror_factory):
    def _mirror_db():
        db = mirror_factory()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_live_engine] = lambda: live_data
    main.app.dependency_overrides[get_mirror_engine] = lambda: mirror_engine
    main.app.dependency_overrides[get_mirror_db] = _mirror_db
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


class TestWipEndpoints:

    def test_line_items(self, client):
        response = client.get("/api/wip")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [r["opsNo"] for r in body["data"]] == ["EM-25-0001", "EM-25-0002", "EM-25-0003"]
        assert body["data"][0]["untrackedPcs"] == 1
        assert body["summary"]["totalOrders"] == 3
        assert body["summary"]["byCompany"]["EHI"] == {"orders": 0, "pcs": 0}
        assert body["syncStatus"]["liveSource"] == "live"
        assert body["syncStatus"]["mirroredSource"]["status"] == "error"

    def test_filters(self, client):
        body = client.get("/api/wip", params={"buyer": "B2"}).json()
        assert [r["opsNo"] for r in body["data"]] == ["EM-25-0002"]
        body = client.get("/api/wip", params={"company": "EHI"}).json()
        assert body["data"] == []

    def test_invalid_company(self, client):
        assert client.get("/api/wip", params={"company": "ACME"}).status_code == 422

    def test_orders_without_document(self, client):
        body = client.get("/api/wip/orders").json()
        assert body["view"] == "open"
        assert body["openOpsLoaded"] is False
        assert body["hiddenCount"] == 0
        assert len(body["data"]) == 3
        assert all(g["isOpen"] for g in body["data"])

    def test_orders_open_view_hides_closed(self, client):
        upload = client.post(
            "/api/open-ops",
            files={"file": ("Order Status.xlsx", _xlsx([["OPS No"], ["EM-25-0002"], ["EM-25-0003"]]), XLSX_TYPE)},
            data={"uploaded_by": "tester"},
        )
        assert upload.status_code == 200

        body = client.get("/api/wip/orders").json()
        assert body["openOpsLoaded"] is True
        assert [g["opsNo"] for g in body["data"]] == ["EM-25-0002", "EM-25-0003"]
        assert body["hiddenCount"] == 1
        assert body["summary"]["totalOrders"] == 2

        body = client.get("/api/wip/orders", params={"view": "all"}).json()
        assert {g["opsNo"]: g["isOpen"] for g in body["data"]} == {
            "EM-25-0001": False, "EM-25-0002": True, "EM-25-0003": True,
        }


class TestOpenOpsEndpoints:

    def test_missing_document(self, client):
        assert client.get("/api/open-ops").status_code == 404

    def test_upload_and_read_back(self, client):
        rows = [["Order Status"], ["EM-25-0101"], ["EM-25-0139 B"], ["EM-25-0101"]]
        response = client.post(
            "/api/open-ops",
            files={"file": ("Order Status.xlsx", _xlsx(rows), XLSX_TYPE)},
            data={"uploaded_by": "tester"},
        )
        assert response.status_code == 200

        doc = client.get("/api/open-ops").json()
        assert doc["opsNumbers"] == ["EM-25-0101", "EM-25-0139 B"]
        assert doc["maxSequence"] == 139
        assert doc["fileName"] == "Order Status.xlsx"
        assert doc["uploadedBy"] == "tester"

    def test_upload_replaces_previous(self, client):
        for ops in ("EM-25-0001", "EM-25-0002"):
            client.post("/api/open-ops", files={"file": ("s.xlsx", _xlsx([[ops]]), XLSX_TYPE)})
        assert client.get("/api/open-ops").json()["opsNumbers"] == ["EM-25-0002"]

    def test_rejects_other_file_types(self, client):
        response = client.post("/api/open-ops", files={"file": ("ops.csv", b"EM-25-0001\n", "text/csv")})
        assert response.status_code == 400

    def test_sheet_without_ops_numbers(self, client):
        response = client.post("/api/open-ops", files={"file": ("s.xlsx", _xlsx([["nothing here"]]), XLSX_TYPE)})
        assert response.status_code == 422


class TestSyncEndpoints:

    def test_task_status_list(self, client):
        assert "tasks" in client.get("/api/sync-control/status").json()

    def test_unknown_task(self, client):
        assert client.get("/api/sync-status/not-a-task").status_code == 404

    def test_recent_runs_empty(self, client):
        assert client.get("/api/sync-status/runs").json() == []

    def test_mirror_status(self, client):
        assert client.get("/api/sync-status/mirror").json()["status"] == "error"

    def test_trigger_requires_ehi_credentials(self, client, monkeypatch):
        for name in ("ehi_sql_host", "ehi_sql_user", "ehi_sql_password", "ehi_sql_database"):
            monkeypatch.setattr(main.settings, name, None)
        assert client.post("/api/sync-control/mirror").status_code == 503


class TestSharedSecret:

    def test_open_when_no_secret(self, client, monkeypatch):
        monkeypatch.setattr(main.settings, "app_shared_secret", None)
        assert client.get("/api/wip").status_code == 200

    def test_rejects_missing_key(self, client, monkeypatch):
        monkeypatch.setattr(main.settings, "app_shared_secret", "s3cret")
        assert client.get("/api/wip").status_code == 401
        assert client.get("/api/wip", headers={"X-Access-Key": "wrong"}).status_code == 401

    def test_accepts_header_and_cookie(self, client, monkeypatch):
        monkeypatch.setattr(main.settings, "app_shared_secret", "s3cret")
        assert client.get("/api/wip", headers={"X-Access-Key": "s3cret"}).status_code == 200
        client.cookies.set("access_key", "s3cret")
        assert client.get("/api/wip").status_code == 200

    def test_health_is_public(self, client, monkeypatch):
        monkeypatch.setattr(main.settings, "app_shared_secret", "s3cret")
        assert client.get("/health").status_code == 200
