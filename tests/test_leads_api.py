from unittest.mock import AsyncMock
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from leadcapture.core.exceptions import StorageError

JANE = {"name": "Jane Doe", "email": "jane@example.com"}


def submit(client, payload=None, ip="203.0.113.7", **headers):
    return client.post("/leads", json=payload or JANE, headers={"X-Forwarded-For": ip, **headers})


def test_submit_lead(client):
    response = submit(client, {**JANE, "company": "Acme", "customFields": {"plan": "pro"}})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Lead submitted successfully"
    assert UUID(body["leadId"]).version == 4
    assert response.headers["X-Request-ID"]


def test_submit_short_name(client):
    response = submit(client, {"name": "A", "email": "jane@example.com"})
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Name must be at least 2 characters long",
            "field": "name",
        },
    }


def test_submit_missing_email(client):
    response = submit(client, {"name": "A", "phone": "not a phone"})
    assert response.status_code == 400
    assert response.json()["error"]["field"] == "email"


def test_submit_invalid_json(client):
    response = client.post("/leads", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"] == {
        "code": "VALIDATION_ERROR",
        "message": "Invalid JSON in request body",
    }


def test_submit_spam(client):
    payload = {**JANE, "customFields": {f"field{i}": "x" for i in range(15)}}
    response = submit(client, payload, **{"User-Agent": ""})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "SPAM_DETECTED"


def test_rate_limit_per_client_and_hour(client):
    now = 1792318500.0
    client.app.state.rate_limiter.clock = lambda: now

    for _ in range(10):
        assert submit(client, ip="198.51.100.9").status_code == 200

    response = submit(client, ip="198.51.100.9")
    assert response.status_code == 429
    error = response.json()["error"]
    assert error["code"] == "RATE_LIMIT_EXCEEDED"
    assert error["resetMinutes"] == 45
    assert response.headers["Retry-After"] == "2700"

    assert submit(client, ip="198.51.100.10").status_code == 200

    client.app.state.rate_limiter.clock = lambda: now + 3600
    assert submit(client, ip="198.51.100.9").status_code == 200


def test_storage_failure_is_generic(client, monkeypatch):
    monkeypatch.setattr(
        client.app.state.lead_store,
        "insert",
        AsyncMock(side_effect=StorageError(details={"error": "disk full"})),
    )
    response = submit(client)
    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INTERNAL_ERROR"
    assert "disk full" not in error["message"]


def test_store_timeout_is_generic(client, monkeypatch, slow_session_factory, auth_headers):
    store = client.app.state.lead_store
    monkeypatch.setattr(store, "session_factory", slow_session_factory)
    monkeypatch.setattr(store, "timeout_seconds", 0.01)

    response = submit(client)
    assert response.status_code == 500
    assert response.json()["error"] == {
        "code": "INTERNAL_ERROR",
        "message": "An internal error occurred while processing your request",
    }
    assert "timeout" not in response.text

    response = client.get("/leads", headers=auth_headers)
    assert response.status_code == 500
    assert "timeout" not in response.text


def test_unexpected_error_is_generic(client, monkeypatch):
    monkeypatch.setattr(
        client.app.state.lead_store,
        "insert",
        AsyncMock(side_effect=RuntimeError("boom")),
    )
    unsafe_client = TestClient(client.app, raise_server_exceptions=False)
    response = unsafe_client.post("/leads", json=JANE, headers={"X-Request-ID": "req-500"})
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"
    assert "boom" not in response.text
    assert response.headers["X-Error-ID"].startswith("err_")
    assert response.headers["X-Request-ID"] == "req-500"


def test_list_requires_api_key(client):
    response = client.get("/leads")
    assert response.status_code == 401
    assert response.json()["error"] == {
        "code": "UNAUTHORIZED",
        "message": "API key is required. Include X-Api-Key header.",
    }

    response = client.get("/leads", headers={"X-Api-Key": "wrong"})
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid API key"


def test_list_raw_leads(client, auth_headers):
    submit(client, {**JANE, "customFields": {"plan": "pro"}}, Origin="https://example.com")

    response = client.get("/leads", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["format"] == "raw"
    assert body["count"] == 1
    assert body["hasMore"] is False
    assert body["nextToken"] is None

    lead = body["data"][0]
    assert set(lead) == {"leadId", "createdAt", "updatedAt", "source", "contact", "customFields", "metadata"}
    assert lead["source"] == "https://example.com"
    assert lead["contact"]["email"] == "jane@example.com"
    assert lead["customFields"] == {"plan": "pro"}
    assert lead["metadata"]["ipAddress"] == "203.0.113.7"
    assert lead["metadata"]["referrer"] == "direct"


def test_list_export_format(client, auth_headers):
    submit(client, {**JANE, "customFields": {"plan": "pro"}})

    response = client.get("/leads", params={"format": "export"}, headers=auth_headers)
    assert response.status_code == 200
    record = response.json()["data"][0]
    assert record["firstname"] == "Jane"
    assert record["lastname"] == "Doe"
    assert record["mautic_plan"] == "pro"
    assert record["company"] == ""


def test_list_paginates(client, auth_headers):
    submitted = {submit(client, ip=f"198.51.100.{i}").json()["leadId"] for i in range(5)}

    seen = []
    params = {"limit": 2}
    while True:
        body = client.get("/leads", params=params, headers=auth_headers).json()
        seen.extend(item["leadId"] for item in body["data"])
        if not body["hasMore"]:
            assert body["nextToken"] is None
            break
        params = {"limit": 2, "nextToken": body["nextToken"]}

    assert len(seen) == 5
    assert set(seen) == submitted


def test_list_by_email(client, auth_headers):
    submit(client, JANE)
    submit(client, {"name": "Bob Smith", "email": "bob@example.com"})

    body = client.get("/leads", params={"email": "BOB@example.com"}, headers=auth_headers).json()
    assert body["count"] == 1
    assert body["data"][0]["contact"]["email"] == "bob@example.com"


def test_get_single_lead(client, auth_headers):
    lead_id = submit(client).json()["leadId"]

    body = client.get("/leads", params={"leadId": lead_id}, headers=auth_headers).json()
    assert body["count"] == 1
    assert body["data"][0]["leadId"] == lead_id


def test_get_unknown_lead(client, auth_headers):
    response = client.get(
        "/leads",
        params={"leadId": "7b1e2c9a-4f3d-4a8b-9c1d-2e3f4a5b6c7d"},
        headers=auth_headers,
    )
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "LEAD_NOT_FOUND"


@pytest.mark.parametrize(
    "params, field",
    [
        ({"limit": "0"}, "limit"),
        ({"limit": "101"}, "limit"),
        ({"limit": "ten"}, "limit"),
        ({"email": "not-an-email"}, "email"),
        ({"startDate": "last week"}, "startDate"),
        ({"startDate": "2026-10-02", "endDate": "2026-10-01"}, "startDate"),
        ({"format": "csv"}, "format"),
        ({"leadId": "12345"}, "leadId"),
        ({"nextToken": "garbage"}, "nextToken"),
    ],
)
def test_list_rejects_bad_params(client, auth_headers, params, field):
    response = client.get("/leads", params=params, headers=auth_headers)
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["field"] == field


def test_count_leads(client, auth_headers):
    for i in range(3):
        submit(client, ip=f"198.51.100.{i}")

    response = client.get("/leads/count", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 3
    assert body["startDate"] is None

    body = client.get("/leads/count", params={"startDate": "2000-01-01"}, headers=auth_headers).json()
    assert body["count"] == 3
    assert body["startDate"] == "2000-01-01T00:00:00.000000Z"

    assert client.get("/leads/count").status_code == 401


def test_erase_lead(client, auth_headers):
    lead_id = submit(client).json()["leadId"]

    assert client.delete(f"/leads/{lead_id}").status_code == 401

    response = client.delete(f"/leads/{lead_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "leadId": lead_id, "deleted": True}

    response = client.delete(f"/leads/{lead_id}", headers=auth_headers)
    assert response.status_code == 404

    response = client.delete("/leads/not-a-uuid", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["field"] == "leadId"
