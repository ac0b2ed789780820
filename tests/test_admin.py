from unittest.mock import patch

import pytest
import stripe
from fastapi import status

from showcase.services.payouts import PayoutSummary, create_payout_for_seller


@pytest.fixture
def complete_order(client, place_order):
    """Place, pay and confirm an order; optionally keep its lines out of any payout."""

    def _complete(lines, with_payouts: bool = True) -> dict:
        created = place_order(lines)
        client.post("/api/payments/create-session", json={"orderId": created["order_id"]})
        if with_payouts:
            response = client.post(f"/api/payments/confirm/{created['order_number']}")
        else:
            with patch("showcase.services.settlement.process_order_payouts", return_value=PayoutSummary()):
                response = client.post(f"/api/payments/confirm/{created['order_number']}")
        assert response.status_code == status.HTTP_200_OK, response.text
        return created

    return _complete


def test_finance_summary(client, seller, make_product, place_order, complete_order, admin_headers):
    """Only completed orders count towards the finance totals."""
    mug = make_product(seller, price="100.00")
    bowl = make_product(seller, price="50.00", title="Clay bowl")
    complete_order([(mug.id, 2), (bowl.id, 1)])
    place_order([(mug.id, 1)])

    response = client.get("/api/admin/finance/summary", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["order_count"] == 1
    assert data["gross_sales"] == "250.00"
    assert data["platform_revenue"] == "7.50"
    assert data["seller_net"] == "242.50"


def test_finance_summary_time_window(client, seller, make_product, complete_order, admin_headers):
    mug = make_product(seller, price="100.00")
    complete_order([(mug.id, 1)])

    inside = client.get(
        "/api/admin/finance/summary",
        params={"start": "2000-01-01T00:00:00", "end": "2100-01-01T00:00:00"},
        headers=admin_headers,
    )
    outside = client.get(
        "/api/admin/finance/summary",
        params={"start": "2099-01-01T00:00:00", "end": "2100-01-01T00:00:00"},
        headers=admin_headers,
    )

    assert inside.json()["order_count"] == 1
    assert inside.json()["gross_sales"] == "100.00"
    assert outside.json()["order_count"] == 0
    assert outside.json()["gross_sales"] == "0.00"


def test_finance_summary_rejects_inverted_window(client, admin_headers):
    response = client.get(
        "/api/admin/finance/summary",
        params={"start": "2026-02-01T00:00:00", "end": "2026-01-01T00:00:00"},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_seller_balances(client, seller, make_user, make_product, complete_order, stripe_api, admin_headers):
    other = make_user(payout_ready=True)
    failing_destination = other.payout_destination_account_id
    mug = make_product(seller, price="100.00")
    bowl = make_product(other, price="50.00", title="Clay bowl")

    def _transfer(**kwargs):
        if kwargs["destination"] == failing_destination:
            raise stripe.APIConnectionError("Network down")
        return stripe_api.Transfer.create.return_value

    stripe_api.Transfer.create.side_effect = _transfer
    complete_order([(mug.id, 1), (bowl.id, 2)])
    complete_order([(mug.id, 1)], with_payouts=False)

    response = client.get("/api/admin/finance/sellers", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    balances = {row["seller_id"]: row for row in response.json()}
    assert balances[seller.id]["email"] == "seller@example.com"
    assert balances[seller.id]["paid"] == "97.00"
    assert balances[seller.id]["pending_balance"] == "97.00"
    assert balances[seller.id]["in_pending_payouts"] == "0.00"
    assert balances[other.id]["paid"] == "0.00"
    assert balances[other.id]["in_pending_payouts"] == "97.00"


def test_seller_balances_count_settling_payouts(client, db, seller, make_product, complete_order, admin_headers):
    mug = make_product(seller, price="100.00")
    complete_order([(mug.id, 1)], with_payouts=False)
    payout = create_payout_for_seller(db, seller.id)
    payout.status = "settling"
    db.commit()

    response = client.get("/api/admin/finance/sellers", headers=admin_headers)

    row = response.json()[0]
    assert row["pending_balance"] == "0.00"
    assert row["in_pending_payouts"] == "97.00"
    assert row["paid"] == "0.00"


def test_admin_creates_and_marks_payout_paid(client, seller, make_product, complete_order, admin_user, admin_headers):
    mug = make_product(seller, price="100.00")
    complete_order([(mug.id, 1)], with_payouts=False)

    response = client.post(
        "/api/admin/payouts",
        json={"sellerId": seller.id, "notes": "Manual run"},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    payout = response.json()
    assert payout["seller_id"] == seller.id
    assert payout["total_amount"] == "97.00"
    assert payout["status"] == "pending"
    assert payout["created_by"] == admin_user.id
    assert len(payout["order_item_ids"]) == 1

    response = client.post(
        f"/api/admin/payouts/{payout['id']}/mark-paid",
        json={"notes": "Bank transfer 42"},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    paid = response.json()
    assert paid["status"] == "paid"
    assert paid["processed_at"] is not None
    assert paid["notes"] == "Manual run\nBank transfer 42"

    again = client.post(f"/api/admin/payouts/{payout['id']}/mark-paid", json={}, headers=admin_headers)
    assert again.status_code == status.HTTP_200_OK
    assert again.json()["processed_at"] == paid["processed_at"]


def test_admin_create_payout_without_balance(client, seller, admin_headers):
    response = client.post("/api/admin/payouts", json={"sellerId": seller.id}, headers=admin_headers)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["code"] == "no_pending_balance"


def test_admin_create_payout_unknown_seller(client, admin_headers):
    response = client.post("/api/admin/payouts", json={"sellerId": 99999}, headers=admin_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["code"] == "seller_not_found"


def test_admin_settle_retries_failed_transfer(client, seller, make_product, complete_order, stripe_api, admin_headers):
    mug = make_product(seller, price="100.00")
    stripe_api.Transfer.create.side_effect = stripe.APIConnectionError("Network down")
    complete_order([(mug.id, 1)])
    pending = client.get("/api/admin/payouts", params={"status": "pending"}, headers=admin_headers).json()
    assert len(pending) == 1

    still_down = client.post(f"/api/admin/payouts/{pending[0]['id']}/settle", headers=admin_headers)
    assert still_down.status_code == status.HTTP_502_BAD_GATEWAY
    assert still_down.json()["code"] == "payout_settlement_failed"

    stripe_api.Transfer.create.side_effect = None
    response = client.post(f"/api/admin/payouts/{pending[0]['id']}/settle", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "paid"
    assert response.json()["external_transfer_id"] == "tr_test_123"


def test_admin_list_payouts_filters(client, seller, make_user, make_product, complete_order, admin_headers):
    other = make_user(payout_ready=True)
    complete_order([(make_product(seller).id, 1)])
    complete_order([(make_product(other).id, 1)])

    everything = client.get("/api/admin/payouts", headers=admin_headers)
    for_seller = client.get("/api/admin/payouts", params={"seller_id": seller.id}, headers=admin_headers)
    pending = client.get("/api/admin/payouts", params={"status": "pending"}, headers=admin_headers)

    assert everything.status_code == status.HTTP_200_OK
    assert len(everything.json()) == 2
    assert [p["seller_id"] for p in for_seller.json()] == [seller.id]
    assert pending.json() == []


def test_admin_unknown_payout(client, admin_headers):
    response = client.post("/api/admin/payouts/99999/mark-paid", json={}, headers=admin_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["code"] == "payout_not_found"


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/admin/finance/summary"),
        ("get", "/api/admin/finance/sellers"),
        ("get", "/api/admin/payouts"),
    ],
)
def test_admin_endpoints_forbidden_for_regular_users(client, auth_headers, method, path):
    response = getattr(client, method)(path, headers=auth_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "Admin access required"


def test_admin_endpoints_require_auth(client):
    response = client.get("/api/admin/finance/summary")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_admin_without_configured_email(client, admin_headers, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "")

    response = client.get("/api/admin/finance/summary", headers=admin_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
