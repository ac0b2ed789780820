import pytest

from showcase.services import stripe_service
from showcase.services.url_utils import append_query_params


def _checkout(**overrides):
    kwargs = {
        "order_number": "ORD-1-ABC123",
        "line_items": [{"title": "Handmade mug", "quantity": 2, "unit_amount": 10000}],
        "customer_email": "ana@example.com",
        "success_url": "https://shop.example.com/payment-confirmation?status=approved",
        "cancel_url": "https://shop.example.com/payment-confirmation?status=rejected",
        "currency": "usd",
    }
    kwargs.update(overrides)
    return stripe_service.create_checkout_session(**kwargs)


def test_stripe_create_checkout_session_success(stripe_api):
    """Test successful Stripe checkout session creation."""
    url, session_id = _checkout()

    assert url == "https://checkout.stripe.com/c/pay/cs_test_123"
    assert session_id == "cs_test_123"

    stripe_api.checkout.Session.create.assert_called_once()
    call_kwargs = stripe_api.checkout.Session.create.call_args[1]
    assert call_kwargs["mode"] == "payment"
    assert call_kwargs["client_reference_id"] == "ORD-1-ABC123"
    assert call_kwargs["metadata"] == {"order_number": "ORD-1-ABC123"}
    assert call_kwargs["payment_intent_data"] == {"transfer_group": "ORD-1-ABC123"}


def test_stripe_create_checkout_session_parameters(stripe_api):
    """Test that one Stripe line item is sent per order line."""
    _checkout(
        line_items=[
            {"title": "Handmade mug", "quantity": 2, "unit_amount": 10000},
            {"title": "Clay bowl", "quantity": 1, "unit_amount": 5000},
        ],
        currency="eur",
    )

    call_kwargs = stripe_api.checkout.Session.create.call_args[1]
    assert len(call_kwargs["line_items"]) == 2
    line_item = call_kwargs["line_items"][1]
    assert line_item["price_data"]["currency"] == "eur"
    assert line_item["price_data"]["unit_amount"] == 5000
    assert line_item["price_data"]["product_data"]["name"] == "Clay bowl"
    assert line_item["quantity"] == 1


def test_stripe_create_checkout_session_sets_timeout(stripe_api):
    _checkout(timeout_seconds=7)

    stripe_api.new_default_http_client.assert_called_once_with(timeout=7)
    assert stripe_api.default_http_client == stripe_api.new_default_http_client.return_value


def test_stripe_create_checkout_session_no_secret(monkeypatch):
    """Test Stripe service error when secret key is not set."""
    monkeypatch.setenv("STRIPE_SECRET_KEY", "")

    with pytest.raises(ValueError, match="STRIPE_SECRET_KEY"):
        _checkout()


def test_stripe_retrieve_checkout_session(stripe_api):
    session = stripe_service.retrieve_checkout_session("cs_test_123")

    stripe_api.checkout.Session.retrieve.assert_called_once_with("cs_test_123")
    assert session["payment_status"] == "paid"


def test_stripe_create_transfer(stripe_api):
    transfer_id = stripe_service.create_transfer(
        amount_cents=24250,
        currency="usd",
        destination_account_id="acct_seller",
        metadata={"payout_id": "1"},
    )

    assert transfer_id == "tr_test_123"
    stripe_api.Transfer.create.assert_called_once_with(
        amount=24250,
        currency="usd",
        destination="acct_seller",
        metadata={"payout_id": "1"},
    )


def test_stripe_create_transfer_rejects_zero_amount(stripe_api):
    with pytest.raises(ValueError, match="greater than 0"):
        stripe_service.create_transfer(amount_cents=0, currency="usd", destination_account_id="acct_seller")

    stripe_api.Transfer.create.assert_not_called()


def test_append_query_params_preserves_existing_query():
    url = append_query_params("https://shop.example.com/return?lang=es#top", {"status": "approved", "n": 3})

    assert url == "https://shop.example.com/return?lang=es&status=approved&n=3#top"


def test_stripe_create_transfer_idempotency_key(stripe_api):
    stripe_service.create_transfer(
        amount_cents=500,
        currency="usd",
        destination_account_id="acct_seller",
        idempotency_key="payout-7",
    )

    assert stripe_api.Transfer.create.call_args.kwargs["idempotency_key"] == "payout-7"
