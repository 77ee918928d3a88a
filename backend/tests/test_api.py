import base64
import json

import pytest
from fastapi.testclient import TestClient

import backend.main as main
import backend.routers.attendance as attendance_router
import backend.services.attendance as attendance_service


@pytest.fixture()
def client(store_path):
    with TestClient(main.app) as c:
        yield c


def _check_in(client, payload=None):
    res = client.post("/api/attendance", json=payload) if payload is not None else client.post("/api/attendance")
    assert res.status_code == 201
    return res.json()


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_attendance_config_reports_settings(client):
    res = client.get("/config/attendance")
    assert res.status_code == 200
    payload = res.json()
    assert payload["checkout_mode"] in {"reject", "overwrite"}
    assert payload["code_max_attempts"] >= 1
    assert set(payload["artifact"]) == {"width", "margin", "dark", "light"}


def test_check_in_returns_code_and_artifact(client):
    body = _check_in(client, {"name": "Ada"})

    assert body["success"] is True
    code = body["code"]
    assert len(code) == 6 and code.isdigit()
    assert body["artifact"].startswith("data:image/png;base64,")
    assert base64.b64decode(body["artifact"].split(",", 1)[1]).startswith(b"\x89PNG")
    assert body["url"].endswith(f"/api/attendance/{code}")
    assert body["createdAt"] == body["updatedAt"]


def test_check_in_without_body(client):
    body = _check_in(client)

    res = client.get(f"/api/attendance/{body['code']}")
    assert res.status_code == 200
    record = res.json()["data"]
    assert record["code"] == body["code"]
    assert "checkOut" not in record


def test_check_in_renders_code_view_for_browsers(client):
    res = client.post("/api/attendance", json={"name": "Ada"}, headers={"Accept": "text/html"})
    assert res.status_code == 201
    assert res.headers["content-type"].startswith("text/html")
    assert "data:image/png;base64," in res.text

    records = client.get("/api/attendance").json()["data"]
    assert len(records) == 1
    assert records[0]["code"] in res.text


def test_check_in_rejects_reserved_fields(client):
    res = client.post("/api/attendance", json={"code": "000001", "name": "Mallory"})
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Field 'code' is reserved."}

    res = client.get("/api/attendance")
    assert res.json()["count"] == 0


def test_check_in_rejects_nested_values(client):
    res = client.post("/api/attendance", json={"meta": {"room": 4}})
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_check_in_rejects_non_object_body(client):
    res = client.post("/api/attendance", json=["Ada"])
    assert res.status_code == 422


def test_check_in_then_check_out_then_list(client):
    created = _check_in(client, {"name": "Ada"})
    code = created["code"]

    res = client.put(f"/api/attendance/{code}")
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "Checkout recorded successfully"

    record = body["data"]
    assert record["code"] == code
    assert record["name"] == "Ada"
    assert record["checkOut"] == record["updatedAt"]
    assert record["updatedAt"] > record["createdAt"]
    assert record["createdAt"] == created["createdAt"]

    res = client.get("/api/attendance")
    assert res.status_code == 200
    listing = res.json()
    assert listing["success"] is True
    assert listing["count"] == 1
    assert listing["data"] == [record]


def test_check_out_unknown_code_is_404_and_does_not_mutate(client, store_path):
    _check_in(client, {"name": "Ada"})
    before = store_path.read_bytes()

    res = client.put("/api/attendance/999999x")
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Attendance record not found"}
    assert store_path.read_bytes() == before


def test_repeat_check_out_is_rejected(client, monkeypatch):
    monkeypatch.setattr(attendance_service, "CHECKOUT_MODE", "reject")
    code = _check_in(client)["code"]

    first = client.put(f"/api/attendance/{code}")
    assert first.status_code == 200

    second = client.put(f"/api/attendance/{code}")
    assert second.status_code == 409
    assert second.json() == {"success": False, "message": "Attendance record already checked out"}

    record = client.get(f"/api/attendance/{code}").json()["data"]
    assert record["checkOut"] == first.json()["data"]["checkOut"]


def test_repeat_check_out_overwrites_in_overwrite_mode(client, monkeypatch):
    monkeypatch.setattr(attendance_service, "CHECKOUT_MODE", "overwrite")
    code = _check_in(client)["code"]

    first = client.put(f"/api/attendance/{code}").json()["data"]
    second = client.put(f"/api/attendance/{code}")
    assert second.status_code == 200
    assert second.json()["data"]["checkOut"] > first["checkOut"]


def test_get_unknown_record_is_404(client):
    res = client.get("/api/attendance/123456")
    assert res.status_code == 404
    assert res.json()["success"] is False


def test_artifact_is_regenerated_as_png(client):
    code = _check_in(client)["code"]

    res = client.get(f"/api/attendance/{code}/artifact")
    assert res.status_code == 200
    assert res.headers["content-type"] == "image/png"
    assert res.content.startswith(b"\x89PNG")

    res = client.get("/api/attendance/654321x/artifact")
    assert res.status_code == 404


def test_corrupt_store_returns_503(client, store_path):
    store_path.write_text("{not json", encoding="utf-8")

    res = client.get("/api/attendance")
    assert res.status_code == 503
    assert res.json() == {"success": False, "message": "Attendance store unavailable. Please retry."}

    res = client.post("/api/attendance", json={"name": "Ada"})
    assert res.status_code == 503


def test_legacy_qr_code_field_is_read_as_artifact(client, store_path):
    legacy = [
        {
            "code": "482913",
            "qrCode": "data:image/png;base64,AAAA",
            "createdAt": "2026-10-19T08:00:00.000Z",
            "updatedAt": "2026-10-19T08:00:00.000Z",
            "name": "Ada",
        }
    ]
    store_path.write_text(json.dumps(legacy), encoding="utf-8")

    res = client.put("/api/attendance/482913")
    assert res.status_code == 200
    record = res.json()["data"]
    assert record["artifact"] == "data:image/png;base64,AAAA"
    assert "qrCode" not in record


def test_form_check_in_renders_code_view(client):
    res = client.post("/api/attendance", data={"name": "Ada"}, headers={"Accept": "text/html"})
    assert res.status_code == 201
    assert res.headers["content-type"].startswith("text/html")

    records = client.get("/api/attendance").json()["data"]
    assert len(records) == 1
    assert records[0]["name"] == "Ada"
    assert records[0]["code"] in res.text


def test_form_check_in_returns_json_by_default(client):
    res = client.post("/api/attendance", data={"name": "Ada", "room": "B12"})
    assert res.status_code == 201
    code = res.json()["code"]

    record = client.get(f"/api/attendance/{code}").json()["data"]
    assert record["name"] == "Ada"
    assert record["room"] == "B12"


def test_form_check_in_rejects_reserved_fields(client):
    res = client.post("/api/attendance", data={"checkOut": "now"})
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Field 'checkOut' is reserved."}
    assert client.get("/api/attendance").json()["count"] == 0


def test_check_in_rejects_malformed_json(client):
    res = client.post(
        "/api/attendance",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert res.status_code == 422


@pytest.mark.parametrize(
    "accept, html",
    [
        ("text/html", True),
        ("text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8", True),
        ("application/json;q=0.1, text/html", True),
        ("text/html;q=0.1, application/json", False),
        ("text/html;q=0", False),
        ("*/*", False),
        ("", False),
    ],
)
def test_response_format_follows_accept_quality(client, accept, html):
    res = client.post("/api/attendance", json={"name": "Ada"}, headers={"Accept": accept})
    assert res.status_code == 201
    assert res.headers["content-type"].startswith("text/html") is html


def test_accept_quality_prefers_most_specific_range():
    accept = "text/*;q=0.2, text/html;q=0.7, */*;q=0.1"
    assert attendance_router._accept_quality(accept, "text/html") == 0.7
    assert attendance_router._accept_quality(accept, "application/json") == 0.1
    assert attendance_router._accept_quality("text/html;q=abc", "text/html") == 0.0


def test_check_out_accepts_timestamps_without_timezone(client, store_path):
    legacy = [
        {
            "code": "482913",
            "createdAt": "2026-10-19T08:00:00",
            "updatedAt": "2026-10-19T08:00:00",
        }
    ]
    store_path.write_text(json.dumps(legacy), encoding="utf-8")

    res = client.put("/api/attendance/482913")
    assert res.status_code == 200
    record = res.json()["data"]
    assert record["checkOut"] == record["updatedAt"]
    assert record["updatedAt"].endswith("Z")
