"""Integration tests for API endpoints"""

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from compensation_engine.infrastructure.database.models import Member


@pytest.fixture
def lvl1_root(make_member) -> Member:
    """Root member with 1000 balance and 6 funded referrals"""
    root = make_member(balance="1000")
    for _ in range(6):
        make_member(referrer=root, balance="100")
    return root


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "compensation_claim_total" in response.text


def test_request_id_header(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_level_status_endpoint(client: TestClient, lvl1_root: Member):
    response = client.get(f"/v1/members/{lvl1_root.id}/levels")

    assert response.status_code == 200
    data = response.json()
    assert data["character_level"] == "A"
    assert data["digit_level"] == "Lvl1"
    assert data["valid_members"] == 6
    assert Decimal(data["potential_income"]["total"]) == Decimal("3.50")
    assert data["can_claim"] is True


def test_level_status_unknown_member(client: TestClient):
    response = client.get("/v1/members/999/levels")
    assert response.status_code == 404


def test_recalculate_endpoint(client: TestClient, lvl1_root: Member):
    first = client.post(f"/v1/members/{lvl1_root.id}/levels/recalculate")
    second = client.post(f"/v1/members/{lvl1_root.id}/levels/recalculate")

    assert first.status_code == 200
    assert first.json()["changed"] is True
    assert first.json()["digit_after"] == "Lvl1"
    assert second.json()["changed"] is False


def test_daily_claim_flow(client: TestClient, lvl1_root: Member):
    """Recalculate, claim once, second claim is rejected"""
    client.post(f"/v1/members/{lvl1_root.id}/levels/recalculate")

    claimed = client.post(f"/v1/members/{lvl1_root.id}/claims/daily-income")
    assert claimed.status_code == 200
    data = claimed.json()
    assert Decimal(data["total_income"]) == Decimal("3.50")
    assert Decimal(data["new_balance"]) == Decimal("1003.50")
    assert data["transaction_type"] == "level_income"

    again = client.post(f"/v1/members/{lvl1_root.id}/claims/daily-income")
    assert again.status_code == 409

    status = client.get(f"/v1/members/{lvl1_root.id}/claims/daily-income")
    assert status.json()["can_claim"] is False


def test_claim_without_income_returns_422(client: TestClient, make_member):
    member = make_member()
    response = client.post(f"/v1/members/{member.id}/claims/daily-income")
    assert response.status_code == 422


def test_team_claim_lists_missing_criteria(client: TestClient, make_member):
    member = make_member(balance="5000")

    response = client.post(f"/v1/members/{member.id}/claims/team-income")

    assert response.status_code == 422
    assert response.json()["detail"]["missing"] == ["no digit level assigned"]


def test_referral_network_endpoint(client: TestClient, lvl1_root: Member):
    response = client.get(f"/v1/members/{lvl1_root.id}/referral-network")

    assert response.status_code == 200
    data = response.json()
    assert len(data["direct_referrals"]) == 6
    assert data["upline"] == []
    assert data["downline_counts"] == {"1": 6}


def test_level_statistics_endpoint(client: TestClient, lvl1_root: Member):
    client.post(f"/v1/members/{lvl1_root.id}/levels/recalculate")

    response = client.get("/v1/levels/statistics")

    assert response.status_code == 200
    assert response.json()["digit_levels"]["Lvl1"] == 1


def test_wallets_endpoint(client: TestClient, make_member):
    member = make_member(balance="250")

    response = client.get(f"/v1/members/{member.id}/wallets")

    assert response.status_code == 200
    wallets = {w["wallet"]: w for w in response.json()["wallets"]}
    assert Decimal(wallets["normal"]["balance"]) == Decimal("250")
    assert wallets["normal"]["transactions"][0]["type"] == "deposit"
    assert wallets["investment"]["transactions"] == []


def test_transfer_endpoint(client: TestClient, make_member):
    member = make_member(balance="250")

    response = client.post(
        f"/v1/members/{member.id}/wallets/transfer",
        json={"source": "normal", "target": "investment", "amount": "100"},
    )

    assert response.status_code == 200
    assert Decimal(response.json()["normal_balance"]) == Decimal("150")
    assert Decimal(response.json()["investment_balance"]) == Decimal("100")


def test_transfer_insufficient_balance(client: TestClient, make_member):
    member = make_member(balance="50")
    response = client.post(
        f"/v1/members/{member.id}/wallets/transfer",
        json={"source": "normal", "target": "investment", "amount": "75"},
    )
    assert response.status_code == 422


def test_transfer_same_wallet(client: TestClient, make_member):
    member = make_member(balance="50")
    response = client.post(
        f"/v1/members/{member.id}/wallets/transfer",
        json={"source": "normal", "target": "normal", "amount": "10"},
    )
    assert response.status_code == 400


def test_jobs_endpoints(client: TestClient, make_member):
    make_member(balance="1000")

    listing = client.get("/v1/jobs")
    assert listing.status_code == 200
    assert {job["name"] for job in listing.json()} >= {"self_income", "daily_level_snapshot"}

    triggered = client.post("/v1/jobs/self_income/trigger")
    assert triggered.status_code == 200
    assert triggered.json()["updated"] == 1
    assert Decimal(triggered.json()["total_amount"]) == Decimal("5.00")


def test_trigger_unknown_job(client: TestClient):
    response = client.post("/v1/jobs/lucky_draw/trigger")
    assert response.status_code == 404
