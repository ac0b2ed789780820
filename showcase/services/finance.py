from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from showcase.models import Order, OrderItem, SellerPayout, SellerPayoutItem, User
from showcase.models.order import ORDER_STATUS_COMPLETED
from showcase.models.payout import PAYOUT_STATUS_PAID, PAYOUT_STATUS_PENDING
from showcase.services.fees import round2


@dataclass(frozen=True)
class FinanceSummary:
    order_count: int
    gross_sales: Decimal
    platform_revenue: Decimal
    seller_net: Decimal


@dataclass(frozen=True)
class SellerBalance:
    seller_id: int
    email: str
    display_name: str | None
    pending_balance: Decimal
    in_pending_payouts: Decimal
    paid: Decimal


def _money(value) -> Decimal:
    return round2(Decimal(value or 0))


def finance_summary(db: Session, start: datetime | None = None, end: datetime | None = None) -> FinanceSummary:
    """Totals over completed orders created within [start, end)."""
    query = db.query(
        func.count(Order.id),
        func.sum(Order.total_amount),
        func.sum(Order.platform_fee_amount),
        func.sum(Order.seller_net_amount),
    ).filter(Order.status == ORDER_STATUS_COMPLETED)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at < end)
    count, gross, fee, net = query.one()
    return FinanceSummary(
        order_count=count or 0,
        gross_sales=_money(gross),
        platform_revenue=_money(fee),
        seller_net=_money(net),
    )


def seller_balances(db: Session) -> list[SellerBalance]:
    completed = (
        db.query(OrderItem.seller_id, OrderItem.id, OrderItem.seller_net_amount)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.status == ORDER_STATUS_COMPLETED)
        .all()
    )
    linked = dict(
        db.query(SellerPayoutItem.order_item_id, SellerPayout.status)
        .join(SellerPayout, SellerPayout.id == SellerPayoutItem.payout_id)
        .all()
    )

    totals: dict[int, dict[str, Decimal]] = {}
    for seller_id, item_id, net in completed:
        bucket = totals.setdefault(
            seller_id,
            {"unlinked": Decimal("0"), PAYOUT_STATUS_PENDING: Decimal("0"), PAYOUT_STATUS_PAID: Decimal("0")},
        )
        payout_status = linked.get(item_id)
        if payout_status is None:
            bucket["unlinked"] += Decimal(net)
        elif payout_status == PAYOUT_STATUS_PAID:
            bucket[PAYOUT_STATUS_PAID] += Decimal(net)
        else:
            # pending or settling payouts
            bucket[PAYOUT_STATUS_PENDING] += Decimal(net)

    sellers = {user.id: user for user in db.query(User).filter(User.id.in_(list(totals))).all()} if totals else {}
    return [
        SellerBalance(
            seller_id=seller_id,
            email=sellers[seller_id].email if seller_id in sellers else "",
            display_name=sellers[seller_id].display_name if seller_id in sellers else None,
            pending_balance=_money(bucket["unlinked"]),
            in_pending_payouts=_money(bucket[PAYOUT_STATUS_PENDING]),
            paid=_money(bucket[PAYOUT_STATUS_PAID]),
        )
        for seller_id, bucket in sorted(totals.items())
    ]
