import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from showcase.config import Settings, get_settings
from showcase.dependencies import get_current_user, get_current_user_optional, require_admin
from showcase.models import Order, User, get_db
from showcase.schemas.orders import (
    OrderCreateRequest,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderItemResponse,
    OrderStatusResponse,
    OrderStatusUpdateRequest,
    OrderSummaryResponse,
)
from showcase.services.order_assembler import CustomerInfo, RequestedLine, assemble_order
from showcase.services.settlement import close_order

router = APIRouter()
logger = logging.getLogger(__name__)


def _isoformat(value) -> str:
    return value.isoformat() if value else ""


def order_to_detail_response(order: Order) -> OrderDetailResponse:
    return OrderDetailResponse(
        id=order.id,
        order_number=order.order_number,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        customer_address=order.customer_address,
        customer_city=order.customer_city,
        total_amount=order.total_amount,
        platform_fee_percentage=order.platform_fee_percentage,
        platform_fee_amount=order.platform_fee_amount,
        seller_net_amount=order.seller_net_amount,
        status=order.status,
        external_payment_id=order.external_payment_id,
        created_at=_isoformat(order.created_at),
        items=[
            OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                seller_id=item.seller_id,
                title=item.product.title if item.product else None,
                image_url=item.product.image_url if item.product else None,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
                platform_fee_amount=item.platform_fee_amount,
                seller_net_amount=item.seller_net_amount,
            )
            for item in order.items
        ],
    )


@router.post(
    "/create",
    response_model=OrderCreateResponse,
    summary="Create a pending order from cart lines",
)
def create_order(
    body: OrderCreateRequest,
    current_user: Annotated[User | None, Depends(get_current_user_optional)],
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[Settings, Depends(get_settings)],
):
    """
    Validate cart lines against live stock and seller payout settings and store a pending order.
    Prices and fees are computed on the server; `totalAmount`, if sent, must match within one cent.
    Anonymous checkout is allowed.
    """
    assembled = assemble_order(
        db,
        config,
        customer=CustomerInfo(
            name=body.customer_name,
            email=body.customer_email,
            phone=body.customer_phone,
            address=body.customer_address,
            city=body.customer_city,
        ),
        lines=[
            RequestedLine(product_id=line.product_id, quantity=line.quantity, unit_price=line.price)
            for line in body.items
        ],
        user_id=current_user.id if current_user else None,
        expected_total=body.total_amount,
    )
    return OrderCreateResponse(
        order_id=assembled.order_id,
        order_number=assembled.order_number,
        status=assembled.status,
        total_amount=assembled.total_amount,
        platform_fee_percentage=assembled.platform_fee_percentage,
        platform_fee_amount=assembled.platform_fee_amount,
        seller_net_amount=assembled.seller_net_amount,
    )


@router.get(
    "/me",
    response_model=list[OrderSummaryResponse],
    summary="List my purchases",
)
def my_orders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Returns the orders placed by the current user, newest first."""
    orders = (
        db.query(Order)
        .filter(Order.user_id == current_user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [
        OrderSummaryResponse(
            id=o.id,
            order_number=o.order_number,
            customer_email=o.customer_email,
            total_amount=o.total_amount,
            status=o.status,
            created_at=_isoformat(o.created_at),
        )
        for o in orders
    ]


@router.get(
    "/{order_number}",
    response_model=OrderDetailResponse,
    summary="Get order by order number",
)
def get_order(
    order_number: str,
    db: Annotated[Session, Depends(get_db)],
):
    """Order detail with its lines; the order number is the buyer's correlation token."""
    order = db.query(Order).filter(Order.order_number == order_number).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order_to_detail_response(order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderStatusResponse,
    summary="Fail or cancel a pending order (admin)",
)
def update_order_status(
    order_id: int,
    body: OrderStatusUpdateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Only `failed` and `cancelled` can be set here; `completed` comes from payment confirmation."""
    order = close_order(db, order_id, body.status.value)
    logger.info("Admin %s set order %s to %s", admin.id, order.order_number, order.status)
    return OrderStatusResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_session_id=order.payment_session_id,
    )
