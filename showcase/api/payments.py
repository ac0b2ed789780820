import logging
from typing import Annotated

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from showcase.config import Settings, get_settings
from showcase.exceptions import PaymentNotConfirmed, PaymentSessionUnavailable
from showcase.models import Order, get_db
from showcase.models.order import ORDER_STATUS_COMPLETED
from showcase.schemas.orders import OrderStatusResponse
from showcase.schemas.payments import (
    BackUrlsResponse,
    ConfirmationResponse,
    PaymentSessionRequest,
    PaymentSessionResponse,
    PayoutSummaryResponse,
)
from showcase.services import stripe_service
from showcase.services.payment_gateways import create_payment_session, session_matches_order
from showcase.services.settlement import ConfirmationResult, confirm_payment

router = APIRouter()
logger = logging.getLogger(__name__)

PAID_SESSION_STATUS = "paid"


def confirmation_to_response(result: ConfirmationResult) -> ConfirmationResponse:
    return ConfirmationResponse(
        order_number=result.order_number,
        status=result.status,
        already_completed=result.already_completed,
        payouts=PayoutSummaryResponse(
            processed=result.payouts.processed,
            paid=result.payouts.paid,
            failed=result.payouts.failed,
            skipped=result.payouts.skipped,
            payout_ids=result.payouts.payout_ids,
        ),
    )


@router.post(
    "/create-session",
    response_model=PaymentSessionResponse,
    summary="Open a hosted checkout session for an order",
)
def create_session(
    body: PaymentSessionRequest,
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[Settings, Depends(get_settings)],
):
    """
    Line items are built from the stored order lines, never from the request.
    Returns the checkout URL to redirect the buyer to. On processor errors the
    order stays pending and a `payment_session_unavailable` error is returned.
    """
    payer_email = body.payer.email if body.payer else None
    result = create_payment_session(db, config, body.order_id, payer_email=payer_email)
    return PaymentSessionResponse(
        order_id=body.order_id,
        session_id=result.session_id,
        checkout_url=result.checkout_url,
        back_urls=BackUrlsResponse(
            success=result.back_urls.success,
            failure=result.back_urls.failure,
            pending=result.back_urls.pending,
        ),
    )


@router.post(
    "/confirm/{order_number}",
    response_model=ConfirmationResponse,
    summary="Confirm payment for an order",
)
def confirm(
    order_number: str,
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[Settings, Depends(get_settings)],
):
    """
    Called by the buyer's browser after returning from checkout. The stored checkout
    session is checked with Stripe before settling. Safe to call repeatedly: an
    already completed order returns success with an empty payout summary.
    """
    order = db.query(Order).filter(Order.order_number == order_number).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    if order.status == ORDER_STATUS_COMPLETED:
        return confirmation_to_response(confirm_payment(db, config, order_id=order.id))

    if not order.payment_session_id:
        raise PaymentNotConfirmed(f"Order {order_number} has no payment session")

    try:
        session = stripe_service.retrieve_checkout_session(
            order.payment_session_id,
            timeout_seconds=config.PAYMENT_SESSION_TIMEOUT_SECONDS,
        )
    except (ValueError, stripe.StripeError) as exc:
        logger.error("Could not verify checkout session for order %s: %s", order_number, exc)
        raise PaymentSessionUnavailable("Could not verify payment, please retry") from exc

    if session.get("payment_status") != PAID_SESSION_STATUS:
        logger.info(
            "Order %s not confirmed: session %s payment_status=%s",
            order_number,
            order.payment_session_id,
            session.get("payment_status"),
        )
        raise PaymentNotConfirmed(f"Payment for order {order_number} is not completed yet")

    if not session_matches_order(session, order, config.STRIPE_CURRENCY):
        raise PaymentNotConfirmed(f"Payment for order {order_number} does not match the order amount")

    result = confirm_payment(
        db,
        config,
        order_id=order.id,
        external_payment_id=session.get("payment_intent") or session.get("id"),
    )
    return confirmation_to_response(result)


@router.get(
    "/{order_id}",
    response_model=OrderStatusResponse,
    summary="Get payment status of an order",
)
def payment_status(
    order_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderStatusResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_session_id=order.payment_session_id,
    )
