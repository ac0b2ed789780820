import asyncio
import json
from unittest.mock import patch

import stripe
from fastapi import status

from showcase.models import Order, SellerPayout


def _session_event(event_type: str, session: dict) -> dict:
    return {"id": "evt_test", "type": event_type, "data": {"object": session}}


def _post_event(client, event: dict):
    with patch("stripe.Webhook.construct_event") as mock_construct:
        mock_construct.return_value = event
        return client.post(
            "/webhooks/stripe",
            content=json.dumps(event).encode(),
            headers={"stripe-signature": "test_signature"},
        )


def _completed_session(order_number: str, **extra) -> dict:
    session = {
        "id": "cs_test_123",
        "client_reference_id": order_number,
        "metadata": {"order_number": order_number},
        "payment_status": "paid",
        "payment_intent": "pi_test_123",
    }
    session.update(extra)
    return session


def test_stripe_webhook_completed_settles_order(client, seller, make_product, place_order, stripe_api, db):
    """Test that a completed checkout session settles the order."""
    mug = make_product(seller, quantity=10)
    created = place_order([(mug.id, 2)])

    response = _post_event(client, _session_event("checkout.session.completed", _completed_session(created["order_number"])))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["received"] is True
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    db.refresh(order)
    assert order.status == "completed"
    assert order.external_payment_id == "pi_test_123"
    db.refresh(mug)
    assert mug.quantity == 8
    assert db.query(SellerPayout).filter(SellerPayout.status == "paid").count() == 1
    stripe_api.Transfer.create.assert_called_once()


def test_stripe_webhook_duplicate_delivery(client, seller, make_product, place_order, stripe_api, db):
    """Test that the same event delivered twice settles once (no double deduction)."""
    mug = make_product(seller, quantity=10)
    created = place_order([(mug.id, 2)])
    event = _session_event("checkout.session.completed", _completed_session(created["order_number"]))

    first = _post_event(client, event)
    second = _post_event(client, event)

    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_200_OK
    db.refresh(mug)
    assert mug.quantity == 8
    assert db.query(SellerPayout).count() == 1
    stripe_api.Transfer.create.assert_called_once()


def test_stripe_webhook_after_browser_confirmation(client, seller, make_product, place_order, db):
    mug = make_product(seller, quantity=10)
    created = place_order([(mug.id, 1)])
    client.post("/api/payments/create-session", json={"orderId": created["order_id"]})
    assert client.post(f"/api/payments/confirm/{created['order_number']}").status_code == status.HTTP_200_OK

    response = _post_event(client, _session_event("checkout.session.completed", _completed_session(created["order_number"])))

    assert response.status_code == status.HTTP_200_OK
    db.refresh(mug)
    assert mug.quantity == 9


def test_stripe_webhook_finds_order_by_session_id(client, seller, make_product, place_order, db):
    mug = make_product(seller)
    created = place_order([(mug.id, 1)])
    client.post("/api/payments/create-session", json={"orderId": created["order_id"]})

    response = _post_event(
        client,
        _session_event("checkout.session.completed", {"id": "cs_test_123", "payment_status": "paid"}),
    )

    assert response.status_code == status.HTTP_200_OK
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    db.refresh(order)
    assert order.status == "completed"
    assert order.external_payment_id == "cs_test_123"


def test_stripe_webhook_completed_but_unpaid(client, seller, make_product, place_order, db):
    """Delayed payment methods complete the session before funds arrive."""
    mug = make_product(seller, quantity=10)
    created = place_order([(mug.id, 1)])
    session = _completed_session(created["order_number"], payment_status="unpaid")

    response = _post_event(client, _session_event("checkout.session.completed", session))

    assert response.status_code == status.HTTP_200_OK
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    assert order.status == "pending"

    succeeded = _completed_session(created["order_number"])
    response = _post_event(client, _session_event("checkout.session.async_payment_succeeded", succeeded))

    assert response.status_code == status.HTTP_200_OK
    db.refresh(order)
    assert order.status == "completed"
    db.refresh(mug)
    assert mug.quantity == 9


def test_stripe_webhook_async_payment_failed(client, seller, make_product, place_order, stripe_api, db):
    mug = make_product(seller, quantity=10)
    created = place_order([(mug.id, 1)])

    response = _post_event(
        client,
        _session_event("checkout.session.async_payment_failed", _completed_session(created["order_number"], payment_status="unpaid")),
    )

    assert response.status_code == status.HTTP_200_OK
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    db.refresh(order)
    assert order.status == "failed"
    db.refresh(mug)
    assert mug.quantity == 10
    stripe_api.Transfer.create.assert_not_called()


def test_stripe_webhook_completed_for_failed_order(client, seller, make_product, place_order, admin_headers, db):
    mug = make_product(seller, quantity=10)
    created = place_order([(mug.id, 1)])
    client.patch(f"/api/orders/{created['order_id']}/status", json={"status": "failed"}, headers=admin_headers)

    response = _post_event(client, _session_event("checkout.session.completed", _completed_session(created["order_number"])))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["received"] is True
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    db.refresh(order)
    assert order.status == "failed"
    db.refresh(mug)
    assert mug.quantity == 10


def test_stripe_webhook_other_event_ignored(client, seller, make_product, place_order, db):
    mug = make_product(seller)
    created = place_order([(mug.id, 1)])

    response = _post_event(client, _session_event("payment_intent.created", {"id": "pi_test_123"}))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["received"] is True
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    assert order.status == "pending"


def test_stripe_webhook_unknown_order(client):
    response = _post_event(client, _session_event("checkout.session.completed", _completed_session("ORD-0-MISSING")))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["received"] is True


def test_stripe_webhook_invalid_signature(client):
    """Test Stripe webhook with invalid signature."""
    with patch("stripe.Webhook.construct_event") as mock_construct:
        mock_construct.side_effect = stripe.SignatureVerificationError("Invalid signature", "bad_sig")

        response = client.post(
            "/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "invalid_signature"},
        )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid signature"


def test_stripe_webhook_invalid_payload(client):
    with patch("stripe.Webhook.construct_event") as mock_construct:
        mock_construct.side_effect = ValueError("Invalid JSON")

        response = client.post(
            "/webhooks/stripe",
            content=b"not json",
            headers={"stripe-signature": "test_signature"},
        )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid payload"


def test_stripe_webhook_without_secret_changes_nothing(client, seller, make_product, place_order, monkeypatch, db):
    """Unverifiable events are acknowledged but never settle an order."""
    mug = make_product(seller)
    created = place_order([(mug.id, 1)])
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "")
    event = _session_event("checkout.session.completed", _completed_session(created["order_number"]))

    with patch("stripe.Webhook.construct_event") as mock_construct:
        response = client.post("/webhooks/stripe", content=json.dumps(event).encode())

    assert response.status_code == status.HTTP_200_OK
    mock_construct.assert_not_called()
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    assert order.status == "pending"


def test_stripe_webhook_amount_mismatch_not_settled(client, seller, make_product, place_order, stripe_api, db):
    """A signed session that charged less than the order total is acknowledged but not applied."""
    mug = make_product(seller, price="100.00", quantity=10)
    created = place_order([(mug.id, 2)])
    session = _completed_session(created["order_number"], amount_total=100, currency="usd")

    response = _post_event(client, _session_event("checkout.session.completed", session))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["received"] is True
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    assert order.status == "pending"
    db.refresh(mug)
    assert mug.quantity == 10
    stripe_api.Transfer.create.assert_not_called()


def test_stripe_webhook_currency_mismatch_not_settled(client, seller, make_product, place_order, db):
    mug = make_product(seller, price="100.00")
    created = place_order([(mug.id, 1)])
    session = _completed_session(created["order_number"], amount_total=10000, currency="eur")

    response = _post_event(client, _session_event("checkout.session.completed", session))

    assert response.status_code == status.HTTP_200_OK
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    assert order.status == "pending"


def test_stripe_webhook_matching_amount_settles(client, seller, make_product, place_order, db):
    mug = make_product(seller, price="100.00")
    created = place_order([(mug.id, 2)])
    session = _completed_session(created["order_number"], amount_total=20000, currency="usd")

    response = _post_event(client, _session_event("checkout.session.completed", session))

    assert response.status_code == status.HTTP_200_OK
    order = db.query(Order).filter(Order.id == created["order_id"]).first()
    db.refresh(order)
    assert order.status == "completed"


def test_stripe_webhook_settles_outside_event_loop(client, seller, make_product, place_order, stripe_api):
    """Payout transfers triggered by the webhook run in a worker thread."""
    mug = make_product(seller)
    created = place_order([(mug.id, 1)])
    threads = []

    def _transfer(**kwargs):
        try:
            asyncio.get_running_loop()
            threads.append("event loop")
        except RuntimeError:
            threads.append("worker")
        return stripe_api.Transfer.create.return_value

    stripe_api.Transfer.create.side_effect = _transfer

    response = _post_event(client, _session_event("checkout.session.completed", _completed_session(created["order_number"])))

    assert response.status_code == status.HTTP_200_OK
    assert threads == ["worker"]
