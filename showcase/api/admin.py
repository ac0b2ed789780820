import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from showcase.config import Settings, get_settings
from showcase.dependencies import require_admin
from showcase.models import SellerPayout, User, get_db
from showcase.schemas.admin import (
    FinanceSummaryResponse,
    PayoutCreateRequest,
    PayoutMarkPaidRequest,
    PayoutResponse,
    SellerBalanceResponse,
)
from showcase.services import finance, payouts

router = APIRouter()
logger = logging.getLogger(__name__)


def payout_to_response(payout: SellerPayout) -> PayoutResponse:
    return PayoutResponse(
        id=payout.id,
        seller_id=payout.seller_id,
        total_amount=payout.total_amount,
        status=payout.status,
        notes=payout.notes,
        created_by=payout.created_by,
        external_transfer_id=payout.external_transfer_id,
        order_item_ids=[item.order_item_id for item in payout.items],
        created_at=payout.created_at.isoformat() if payout.created_at else "",
        processed_at=payout.processed_at.isoformat() if payout.processed_at else None,
    )


@router.get(
    "/finance/summary",
    response_model=FinanceSummaryResponse,
    summary="Gross sales, platform revenue and seller net",
)
def get_finance_summary(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    start: datetime | None = None,
    end: datetime | None = None,
):
    """Totals of completed orders created in [start, end)."""
    if start and end and start >= end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must be before end")
    summary = finance.finance_summary(db, start=start, end=end)
    return FinanceSummaryResponse(
        start=start,
        end=end,
        order_count=summary.order_count,
        gross_sales=summary.gross_sales,
        platform_revenue=summary.platform_revenue,
        seller_net=summary.seller_net,
    )


@router.get(
    "/finance/sellers",
    response_model=list[SellerBalanceResponse],
    summary="Per-seller pending and paid balances",
)
def get_seller_balances(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    return [
        SellerBalanceResponse(
            seller_id=balance.seller_id,
            email=balance.email,
            display_name=balance.display_name,
            pending_balance=balance.pending_balance,
            in_pending_payouts=balance.in_pending_payouts,
            paid=balance.paid,
        )
        for balance in finance.seller_balances(db)
    ]


@router.get(
    "/payouts",
    response_model=list[PayoutResponse],
    summary="List payouts",
)
def list_payouts(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    payout_status: Annotated[str | None, Query(alias="status", pattern="^(pending|settling|paid)$")] = None,
    seller_id: int | None = None,
):
    query = db.query(SellerPayout)
    if payout_status:
        query = query.filter(SellerPayout.status == payout_status)
    if seller_id is not None:
        query = query.filter(SellerPayout.seller_id == seller_id)
    return [payout_to_response(p) for p in query.order_by(SellerPayout.created_at.desc(), SellerPayout.id.desc()).all()]


@router.post(
    "/payouts",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a payout from a seller's pending balance",
)
def create_payout(
    body: PayoutCreateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Links all of the seller's unpaid completed lines; 409 `no_pending_balance` when there are none."""
    payout = payouts.create_payout_for_seller(db, body.seller_id, created_by=admin.id, notes=body.notes)
    logger.info("Admin %s created payout %s for seller %s", admin.id, payout.id, body.seller_id)
    return payout_to_response(payout)


@router.post(
    "/payouts/{payout_id}/mark-paid",
    response_model=PayoutResponse,
    summary="Mark a payout as paid",
)
def mark_payout_paid(
    payout_id: int,
    body: PayoutMarkPaidRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """For payouts settled outside the processor. Marking an already paid payout is a no-op."""
    payout = payouts.mark_payout_paid(db, payout_id, notes=body.notes)
    logger.info("Admin %s marked payout %s paid", admin.id, payout_id)
    return payout_to_response(payout)


@router.post(
    "/payouts/{payout_id}/settle",
    response_model=PayoutResponse,
    summary="Retry the processor transfer for a pending payout",
)
def settle_payout(
    payout_id: int,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[Settings, Depends(get_settings)],
):
    payout = payouts.settle_payout(db, config, payout_id)
    logger.info("Admin %s settled payout %s", admin.id, payout_id)
    return payout_to_response(payout)
