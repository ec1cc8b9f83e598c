import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client():
    from main import app

    with TestClient(app) as c:
        yield c


def _active_project(client, total_credits=10000):
    resp = client.post("/api/projects", json={
        "developer_id": "dev-kasigau",
        "name": "Kasigau Corridor REDD+",
        "total_credits": total_credits,
        "price_per_credit": 100.0,
        "vintage": 2024,
        "sector": "Afforestation",
    })
    assert resp.status_code == 201, resp.text
    project_id = resp.json()["project_id"]
    assert client.post(f"/api/projects/{project_id}/approve").status_code == 200
    return project_id


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "backend": "memory"}


def test_issue_purchase_retire_flow(client):
    project_id = _active_project(client)

    resp = client.post(f"/api/projects/{project_id}/issuances", json={"quantity": 10000})
    assert resp.status_code == 201
    assert len(resp.json()["batch_serials"]) == 5

    resp = client.post(f"/api/projects/{project_id}/purchases", json={"buyer_id": "buyer-1", "quantity": 4000})
    assert resp.status_code == 201
    assert resp.json()["total_value"] == 400000.0

    resp = client.post(
        f"/api/projects/{project_id}/retirements",
        json={"buyer_id": "buyer-1", "quantity": 2000, "reason": "Annual offset"},
    )
    assert resp.status_code == 201

    inventory = client.get(f"/api/projects/{project_id}").json()
    assert inventory["available_credits"] == 6000
    assert inventory["held_credits"] == 2000
    assert inventory["retired_credits"] == 2000

    holding = client.get(f"/api/holdings/buyer-1/{project_id}").json()
    assert holding["quantity"] == 2000
    assert holding["retired_quantity"] == 2000

    portfolio = client.get("/api/buyers/buyer-1/portfolio").json()
    assert portfolio["total_owned"] == 2000
    assert portfolio["total_spent"] == 400000.0

    ledger = client.get("/api/ledger", params={"page": 1, "page_size": 2}).json()
    assert ledger["total"] == 3
    assert [e["type"] for e in ledger["entries"]] == ["retirement", "purchase"]

    batches = client.get(f"/api/projects/{project_id}/batches").json()
    assert [b["status"] for b in batches] == ["retired", "traded", "issued", "issued", "issued"]

    audit = client.get(f"/api/projects/{project_id}/audit").json()
    assert audit["is_consistent"] is True


def test_oversell_is_a_conflict(client):
    project_id = _active_project(client, total_credits=100)
    resp = client.post(f"/api/projects/{project_id}/purchases", json={"buyer_id": "buyer-1", "quantity": 101})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INSUFFICIENT_SUPPLY"


def test_unknown_project_is_404(client):
    resp = client.get("/api/projects/missing")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_non_positive_quantity_is_400(client):
    project_id = _active_project(client)
    resp = client.post(f"/api/projects/{project_id}/issuances", json={"quantity": -5})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_QUANTITY"


def test_malformed_body_is_400(client):
    project_id = _active_project(client)
    resp = client.post(f"/api/projects/{project_id}/purchases", json={"buyer_id": "buyer-1", "quantity": "lots"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_purchase_from_pending_project_is_409(client):
    resp = client.post("/api/projects", json={
        "developer_id": "dev-1", "name": "Pending", "total_credits": 10,
        "price_per_credit": 5.0, "vintage": 2024,
    })
    project_id = resp.json()["project_id"]
    resp = client.post(f"/api/projects/{project_id}/purchases", json={"buyer_id": "buyer-1", "quantity": 1})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "PROJECT_NOT_ACTIVE"


def test_reject_then_approve_is_invalid_transition(client):
    resp = client.post("/api/projects", json={
        "developer_id": "dev-1", "name": "Doubtful", "total_credits": 10,
        "price_per_credit": 5.0, "vintage": 2024,
    })
    project_id = resp.json()["project_id"]
    assert client.post(f"/api/projects/{project_id}/reject", json={"reason": "No baseline"}).status_code == 200
    resp = client.post(f"/api/projects/{project_id}/approve")
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_TRANSITION"


@pytest.mark.parametrize("quantity", [True, "10", 2.0, 2.5])
def test_quantity_must_be_a_json_integer(client, quantity):
    project_id = _active_project(client)

    resp = client.post(f"/api/projects/{project_id}/purchases", json={"buyer_id": "buyer-1", "quantity": quantity})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    assert client.get(f"/api/projects/{project_id}").json()["available_credits"] == 10000

    resp = client.post(f"/api/projects/{project_id}/issuances", json={"quantity": quantity})
    assert resp.status_code == 400


def test_total_credits_must_be_a_json_integer(client):
    resp = client.post("/api/projects", json={
        "developer_id": "dev-1", "name": "Loose", "total_credits": "100",
        "price_per_credit": 5.0, "vintage": 2024,
    })
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
