"""Seller payout engine.

Each completed order line is owed to its seller exactly once. Payouts batch
every completed line of a seller that is not yet linked to a payout item;
linking happens under a lock on the seller row plus the line rows, and the
unique constraint on ``seller_payout_items.order_item_id`` backs that up.
Settlement (the processor transfer) runs after the linking commit, so a
failed transfer leaves a pending payout instead of losing the linkage.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from showcase.config import Settings
from showcase.exceptions import NoPendingBalance, PayoutNotFound, PayoutSettlementError, SellerNotFound
from showcase.models import Order, OrderItem, SellerPayout, SellerPayoutItem, User
from showcase.models.order import ORDER_STATUS_COMPLETED
from showcase.models.payout import PAYOUT_STATUS_PAID, PAYOUT_STATUS_PENDING, PAYOUT_STATUS_SETTLING
from showcase.services import stripe_service
from showcase.services.fees import round2, to_cents

logger = logging.getLogger(__name__)


@dataclass
class PayoutSummary:
    processed: int = 0
    paid: int = 0
    failed: int = 0
    skipped: int = 0
    payout_ids: list[int] = field(default_factory=list)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def unlinked_lines_query(db: Session, seller_id: int):
    """Completed-order lines of a seller that no payout item references yet."""
    linked = select(SellerPayoutItem.order_item_id)
    return (
        db.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            OrderItem.seller_id == seller_id,
            Order.status == ORDER_STATUS_COMPLETED,
            ~OrderItem.id.in_(linked),
        )
    )


def pending_balance(db: Session, seller_id: int) -> Decimal:
    lines = unlinked_lines_query(db, seller_id).all()
    return round2(sum((line.seller_net_amount for line in lines), Decimal("0")))


def create_payout_for_seller(
    db: Session,
    seller_id: int,
    created_by: int | None = None,
    notes: str | None = None,
) -> SellerPayout:
    """Link every unpaid completed line of the seller to a new pending payout.

    Raises NoPendingBalance when there is nothing to pay out.
    """
    try:
        seller = db.query(User).filter(User.id == seller_id).with_for_update().first()
        if seller is None:
            raise SellerNotFound(f"Seller {seller_id} not found", seller_id=seller_id)

        lines = unlinked_lines_query(db, seller_id).order_by(OrderItem.id).with_for_update(of=OrderItem).all()
        if not lines:
            raise NoPendingBalance(f"Seller {seller_id} has no pending balance", seller_id=seller_id)

        total = round2(sum((line.seller_net_amount for line in lines), Decimal("0")))
        payout = SellerPayout(
            seller_id=seller_id,
            total_amount=total,
            status=PAYOUT_STATUS_PENDING,
            notes=notes,
            created_by=created_by,
        )
        db.add(payout)
        db.flush()
        db.add_all(SellerPayoutItem(payout_id=payout.id, order_item_id=line.id) for line in lines)
        db.commit()
    except (NoPendingBalance, SellerNotFound):
        db.rollback()
        raise
    except IntegrityError as exc:
        # Another payout linked one of these lines first.
        db.rollback()
        logger.warning("Concurrent payout creation for seller %s: %s", seller_id, exc)
        raise NoPendingBalance(f"Seller {seller_id} has no pending balance", seller_id=seller_id) from exc

    logger.info("Payout %s created for seller %s: total=%s lines=%s", payout.id, seller_id, total, len(lines))
    return payout


def _release_claim(db: Session, payout_id: int) -> None:
    db.query(SellerPayout).filter(
        SellerPayout.id == payout_id, SellerPayout.status == PAYOUT_STATUS_SETTLING
    ).update({SellerPayout.status: PAYOUT_STATUS_PENDING}, synchronize_session=False)
    db.commit()


def settle_payout(db: Session, config: Settings, payout_id: int) -> SellerPayout:
    """Transfer a pending payout to the seller's payout destination and mark it paid.

    The payout is claimed (``pending -> settling``) and committed before the
    transfer is sent, so at most one caller transfers a given payout. Paid and
    already-claimed payouts are returned unchanged. A failed transfer releases
    the claim and leaves the payout pending for a retry.
    """
    payout = db.query(SellerPayout).filter(SellerPayout.id == payout_id).first()
    if payout is None:
        raise PayoutNotFound(f"Payout {payout_id} not found", payout_id=payout_id)
    if payout.status != PAYOUT_STATUS_PENDING:
        return payout

    seller = db.query(User).filter(User.id == payout.seller_id).first()
    destination = seller.payout_destination_account_id if seller else None
    if not destination:
        raise PayoutSettlementError(f"Seller {payout.seller_id} has no payout destination", payout_id=payout.id)

    claimed = (
        db.query(SellerPayout)
        .filter(SellerPayout.id == payout.id, SellerPayout.status == PAYOUT_STATUS_PENDING)
        .update({SellerPayout.status: PAYOUT_STATUS_SETTLING}, synchronize_session=False)
    )
    db.commit()
    db.refresh(payout)
    if not claimed:
        logger.info("Payout %s is already %s, not transferring", payout.id, payout.status)
        return payout

    try:
        transfer_id = stripe_service.create_transfer(
            amount_cents=to_cents(payout.total_amount),
            currency=config.STRIPE_CURRENCY,
            destination_account_id=destination,
            metadata={"payout_id": str(payout.id), "seller_id": str(payout.seller_id)},
            idempotency_key=f"payout-{payout.id}",
        )
    except (ValueError, stripe.StripeError) as exc:
        logger.error("Transfer for payout %s failed: %s", payout.id, exc)
        _release_claim(db, payout.id)
        raise PayoutSettlementError(f"Transfer for payout {payout.id} failed", payout_id=payout.id) from exc

    return mark_payout_paid(db, payout.id, external_transfer_id=transfer_id)


def mark_payout_paid(
    db: Session,
    payout_id: int,
    notes: str | None = None,
    external_transfer_id: str | None = None,
) -> SellerPayout:
    payout = db.query(SellerPayout).filter(SellerPayout.id == payout_id).with_for_update().first()
    if payout is None:
        db.rollback()
        raise PayoutNotFound(f"Payout {payout_id} not found", payout_id=payout_id)
    if payout.status == PAYOUT_STATUS_PAID:
        db.rollback()
        return payout

    payout.status = PAYOUT_STATUS_PAID
    payout.processed_at = utcnow()
    if external_transfer_id:
        payout.external_transfer_id = external_transfer_id
    if notes:
        payout.notes = f"{payout.notes}\n{notes}" if payout.notes else notes
    db.commit()
    db.refresh(payout)
    logger.info("Payout %s marked paid", payout.id)
    return payout


def process_order_payouts(db: Session, config: Settings, order_id: int) -> PayoutSummary:
    """Create and settle payouts for every seller that appears in a completed order.

    Failures are counted per seller and never raised, so one seller cannot block another.
    """
    summary = PayoutSummary()
    seller_ids = [
        row[0]
        for row in db.query(OrderItem.seller_id)
        .filter(OrderItem.order_id == order_id)
        .distinct()
        .order_by(OrderItem.seller_id)
        .all()
    ]

    for seller_id in seller_ids:
        summary.processed += 1
        try:
            payout = create_payout_for_seller(db, seller_id, notes=f"Automatic payout after order {order_id}")
        except NoPendingBalance:
            summary.skipped += 1
            continue
        except Exception:
            db.rollback()
            logger.exception("Could not create payout for seller %s", seller_id)
            summary.failed += 1
            continue

        summary.payout_ids.append(payout.id)
        try:
            settle_payout(db, config, payout.id)
            summary.paid += 1
        except PayoutSettlementError:
            summary.failed += 1
        except Exception:
            db.rollback()
            logger.exception("Unexpected error settling payout %s", payout.id)
            summary.failed += 1

    logger.info(
        "Payouts for order %s: processed=%s paid=%s failed=%s skipped=%s",
        order_id,
        summary.processed,
        summary.paid,
        summary.failed,
        summary.skipped,
    )
    return summary
