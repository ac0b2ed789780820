import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from showcase.config import Settings
from showcase.exceptions import OrderNotFound, OrderStateConflict, ShowcaseError
from showcase.models import Order, OrderItem, Product
from showcase.models.order import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_FAILED,
    ORDER_STATUS_PENDING,
)
from showcase.services.payouts import PayoutSummary, process_order_payouts, utcnow

logger = logging.getLogger(__name__)

CLOSED_STATUSES = {ORDER_STATUS_FAILED, ORDER_STATUS_CANCELLED}


@dataclass
class ConfirmationResult:
    order_id: int
    order_number: str
    status: str
    already_completed: bool
    payouts: PayoutSummary = field(default_factory=PayoutSummary)


def _get_order(db: Session, order_id: int | None = None, order_number: str | None = None) -> Order:
    query = db.query(Order)
    if order_id is not None:
        order = query.filter(Order.id == order_id).first()
    else:
        order = query.filter(Order.order_number == order_number).first()
    if order is None:
        raise OrderNotFound(f"Order {order_number or order_id} not found")
    return order


def _deduct_stock(db: Session, order_id: int) -> None:
    items = db.query(OrderItem).filter(OrderItem.order_id == order_id).all()
    quantities: dict[int, int] = {}
    for item in items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    products = (
        db.query(Product)
        .filter(Product.id.in_(sorted(quantities)))
        .order_by(Product.id)
        .with_for_update()
        .all()
    )
    for product in products:
        # Final and authoritative: floor at zero instead of re-validating stock.
        product.quantity = max(0, product.quantity - quantities[product.id])


def confirm_payment(
    db: Session,
    config: Settings,
    order_number: str | None = None,
    order_id: int | None = None,
    external_payment_id: str | None = None,
) -> ConfirmationResult:
    """Settle a paid order exactly once, then pay its sellers.

    The pending -> completed transition and the stock deduction commit together.
    Calling this again for a completed order is a no-op that reports success.
    Payout problems are reported in the summary and never undo the confirmation.
    """
    order = _get_order(db, order_id=order_id, order_number=order_number)

    try:
        values = {Order.status: ORDER_STATUS_COMPLETED, Order.updated_at: utcnow()}
        if external_payment_id:
            values[Order.external_payment_id] = external_payment_id
        applied = (
            db.query(Order)
            .filter(Order.id == order.id, Order.status == ORDER_STATUS_PENDING)
            .update(values, synchronize_session=False)
        )
        if applied:
            _deduct_stock(db, order.id)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Settlement of order %s failed: %s", order.order_number, exc, exc_info=True)
        raise ShowcaseError(f"Could not confirm order {order.order_number}") from exc

    db.refresh(order)
    if not applied:
        if order.status in CLOSED_STATUSES:
            raise OrderStateConflict(
                f"Order {order.order_number} is {order.status} and cannot be completed",
                order_id=order.id,
            )
        logger.info("Order %s already completed, skipping settlement", order.order_number)
        return ConfirmationResult(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            already_completed=True,
        )

    logger.info("Order %s completed, stock deducted", order.order_number)
    summary = process_order_payouts(db, config, order.id)
    return ConfirmationResult(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        already_completed=False,
        payouts=summary,
    )


def close_order(db: Session, order_id: int, new_status: str) -> Order:
    """Move a pending order to failed or cancelled. Completed orders never leave completed."""
    if new_status not in CLOSED_STATUSES:
        raise OrderStateConflict(f"Status '{new_status}' cannot be set explicitly")
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if order is None:
        db.rollback()
        raise OrderNotFound(f"Order {order_id} not found", order_id=order_id)
    if order.status == new_status:
        db.rollback()
        return order
    if order.status != ORDER_STATUS_PENDING:
        db.rollback()
        raise OrderStateConflict(
            f"Order {order.order_number} is {order.status}; only pending orders can become {new_status}",
            order_id=order.id,
        )
    order.status = new_status
    db.commit()
    db.refresh(order)
    logger.info("Order %s marked %s", order.order_number, new_status)
    return order
