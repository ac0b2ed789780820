import logging
from dataclasses import dataclass

import stripe
from sqlalchemy.orm import Session

from showcase.config import Settings
from showcase.exceptions import OrderNotFound, OrderStateConflict, PaymentSessionUnavailable
from showcase.models import Order
from showcase.models.order import ORDER_STATUS_PENDING
from showcase.services import stripe_service
from showcase.services.fees import to_cents
from showcase.services.url_utils import append_query_params

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackUrls:
    success: str
    failure: str
    pending: str


@dataclass(frozen=True)
class CheckoutResult:
    checkout_url: str
    session_id: str
    back_urls: BackUrls


def build_back_urls(client_url: str, order_number: str) -> BackUrls:
    """Buyer redirect targets; each carries the order number as the correlation token."""
    base = f"{client_url.rstrip('/')}/payment-confirmation"

    def _url(outcome: str) -> str:
        return append_query_params(base, {"status": outcome, "external_reference": order_number})

    return BackUrls(success=_url("approved"), failure=_url("rejected"), pending=_url("pending"))


def build_line_items(order: Order) -> list[dict]:
    return [
        {
            "title": item.product.title if item.product else f"Product {item.product_id}",
            "quantity": item.quantity,
            "unit_amount": to_cents(item.unit_price),
        }
        for item in order.items
    ]


def notification_url(config: Settings) -> str:
    return f"{config.SERVER_URL.rstrip('/')}/webhooks/stripe"


def create_payment_session(
    db: Session,
    config: Settings,
    order_id: int,
    payer_email: str | None = None,
) -> CheckoutResult:
    """Open a hosted checkout session for a pending order and remember its id on the order.

    Any processor failure leaves the order pending so the buyer can retry; a new
    session simply replaces the stored session id.
    """
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", order_id=order_id)
    if order.status != ORDER_STATUS_PENDING:
        raise OrderStateConflict(
            f"Order {order.order_number} is {order.status}; payment can only start for pending orders",
            order_id=order.id,
        )

    back_urls = build_back_urls(config.CLIENT_URL, order.order_number)
    try:
        checkout_url, session_id = stripe_service.create_checkout_session(
            order_number=order.order_number,
            line_items=build_line_items(order),
            customer_email=payer_email or order.customer_email,
            success_url=back_urls.success,
            cancel_url=back_urls.failure,
            currency=config.STRIPE_CURRENCY,
            timeout_seconds=config.PAYMENT_SESSION_TIMEOUT_SECONDS,
        )
    except ValueError as exc:
        logger.error("Payment processor not configured for order %s: %s", order.order_number, exc)
        raise PaymentSessionUnavailable("Payment processor is not configured") from exc
    except stripe.StripeError as exc:
        logger.error("Stripe rejected checkout for order %s: %s", order.order_number, exc)
        raise PaymentSessionUnavailable("Payment session unavailable, please retry") from exc

    if not checkout_url or not session_id:
        raise PaymentSessionUnavailable("Payment processor returned an incomplete session")

    order.payment_session_id = session_id
    db.commit()
    logger.info(
        "Checkout session %s opened for order %s (notifications: %s)",
        session_id,
        order.order_number,
        notification_url(config),
    )
    return CheckoutResult(checkout_url=checkout_url, session_id=session_id, back_urls=back_urls)


def session_matches_order(session, order: Order, currency: str) -> bool:
    """Check the amount and currency a checkout session charged against the stored order.

    Fields the session does not carry are not compared.
    """
    amount_total = session.get("amount_total")
    if amount_total is not None:
        try:
            amount_total_cents = int(amount_total)
        except (TypeError, ValueError):
            logger.warning("Invalid Stripe amount_total for order %s: %s", order.order_number, amount_total)
            return False
        expected_cents = to_cents(order.total_amount)
        if amount_total_cents != expected_cents:
            logger.warning(
                "Stripe amount mismatch for order %s: expected=%s, received=%s",
                order.order_number,
                expected_cents,
                amount_total_cents,
            )
            return False

    session_currency = session.get("currency")
    if session_currency and str(session_currency).lower() != currency.lower():
        logger.warning("Stripe currency mismatch for order %s: %s", order.order_number, session_currency)
        return False
    return True
