import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from showcase.config import Settings, get_settings
from showcase.exceptions import OrderNotFound, OrderStateConflict, ShowcaseError
from showcase.models import Order, get_db
from showcase.models.order import ORDER_STATUS_FAILED
from showcase.services.payment_gateways import session_matches_order
from showcase.services.settlement import close_order, confirm_payment

router = APIRouter()
logger = logging.getLogger(__name__)

CONFIRMING_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
FAILING_EVENTS = {"checkout.session.async_payment_failed"}


def _find_order(db: Session, session: dict) -> Order | None:
    order_number = (session.get("metadata") or {}).get("order_number") or session.get("client_reference_id")
    if order_number:
        return db.query(Order).filter(Order.order_number == order_number).first()
    session_id = session.get("id")
    if session_id:
        return db.query(Order).filter(Order.payment_session_id == session_id).first()
    return None


@router.post(
    "/stripe",
    summary="Stripe webhook",
)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """
    Stripe sends checkout events here. Completed (and async-succeeded) sessions
    settle the order; async failures mark it failed; everything else is acknowledged.
    Duplicate deliveries are harmless: settlement is idempotent.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    if not config.STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set, ignoring unverified webhook")
        return {"received": True}

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, config.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.error(f"Invalid payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid signature: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    # Settlement makes blocking processor calls for payout transfers.
    await run_in_threadpool(_apply_event, db, config, event)
    return {"received": True}


def _apply_event(db: Session, config: Settings, event) -> None:
    event_type = event["type"]
    if event_type not in CONFIRMING_EVENTS and event_type not in FAILING_EVENTS:
        logger.info("Ignoring Stripe event %s", event_type)
        return

    session = event["data"]["object"]
    order = _find_order(db, session)
    if order is None:
        logger.warning("No order found for Stripe session %s", session.get("id"))
        return

    if event_type in FAILING_EVENTS:
        try:
            close_order(db, order.id, ORDER_STATUS_FAILED)
        except OrderStateConflict as e:
            logger.info("Not failing order %s: %s", order.order_number, e.message)
        return

    if event_type == "checkout.session.completed" and session.get("payment_status") not in (None, "paid"):
        # Delayed payment methods complete the session before the money arrives.
        logger.info("Order %s checkout completed, payment still %s", order.order_number, session.get("payment_status"))
        return

    if not session_matches_order(session, order, config.STRIPE_CURRENCY):
        return

    try:
        result = confirm_payment(
            db,
            config,
            order_id=order.id,
            external_payment_id=session.get("payment_intent") or session.get("id"),
        )
    except (OrderNotFound, OrderStateConflict) as e:
        logger.warning("Stripe confirmation for order %s not applied: %s", order.order_number, e.message)
        return
    except ShowcaseError as e:
        logger.error("Error settling order %s: %s", order.order_number, e.message)
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(
        "Stripe event %s settled order %s (already_completed=%s, payouts paid=%s failed=%s)",
        event_type,
        result.order_number,
        result.already_completed,
        result.payouts.paid,
        result.payouts.failed,
    )
