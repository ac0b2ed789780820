import logging

import stripe

logger = logging.getLogger(__name__)


def _configure(timeout_seconds: int | None = None) -> None:
    from showcase.config import settings

    if not settings.STRIPE_SECRET_KEY:
        raise ValueError("STRIPE_SECRET_KEY is not set")
    stripe.api_key = settings.STRIPE_SECRET_KEY
    if timeout_seconds:
        stripe.default_http_client = stripe.new_default_http_client(timeout=timeout_seconds)


def create_checkout_session(
    order_number: str,
    line_items: list[dict],
    customer_email: str,
    success_url: str,
    cancel_url: str,
    currency: str,
    timeout_seconds: int | None = None,
) -> tuple[str, str]:
    """Create a Stripe Checkout Session and return (checkout URL, session ID).

    ``line_items`` are ``{"title", "quantity", "unit_amount"}`` dicts with the
    unit amount already in the currency's minor unit.
    """
    _configure(timeout_seconds)
    session = stripe.checkout.Session.create(
        payment_method_types=["card"],
        line_items=[
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": item["title"]},
                    "unit_amount": item["unit_amount"],
                },
                "quantity": item["quantity"],
            }
            for item in line_items
        ],
        mode="payment",
        customer_email=customer_email,
        client_reference_id=order_number,
        success_url=success_url,
        cancel_url=cancel_url,
        metadata={"order_number": order_number},
        payment_intent_data={"transfer_group": order_number},
    )
    return session.url, session.id


def retrieve_checkout_session(session_id: str, timeout_seconds: int | None = None):
    _configure(timeout_seconds)
    return stripe.checkout.Session.retrieve(session_id)


def create_transfer(
    amount_cents: int,
    currency: str,
    destination_account_id: str,
    metadata: dict | None = None,
    idempotency_key: str | None = None,
) -> str:
    """Send a transfer to a connected account and return the transfer ID.

    Retries that reuse ``idempotency_key`` return the original transfer instead of sending a new one.
    """
    _configure()
    if amount_cents <= 0:
        raise ValueError("Transfer amount must be greater than 0")
    params = {}
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    transfer = stripe.Transfer.create(
        amount=amount_cents,
        currency=currency,
        destination=destination_account_id,
        metadata=metadata or {},
        **params,
    )
    logger.info("Transfer %s created for %s %s to %s", transfer.id, amount_cents, currency, destination_account_id)
    return transfer.id
