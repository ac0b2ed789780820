import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from showcase.config import Settings
from showcase.exceptions import (
    InsufficientStock,
    ProductNotFound,
    SellerIneligible,
    ShowcaseError,
    TotalMismatch,
    ValidationError,
)
from showcase.models import Order, OrderItem, Product, User
from showcase.models.order import ORDER_STATUS_PENDING
from showcase.services.fees import LineAmounts, calculate_line, sum_lines

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = Decimal("0.01")
ORDER_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str | None = None
    address: str | None = None
    city: str | None = None


@dataclass(frozen=True)
class RequestedLine:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None  # informational; the product's current price is authoritative


@dataclass(frozen=True)
class AssembledOrder:
    order_id: int
    order_number: str
    status: str
    total_amount: Decimal
    platform_fee_percentage: Decimal
    platform_fee_amount: Decimal
    seller_net_amount: Decimal


def generate_order_number(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def _unique_order_number(db: Session, prefix: str) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number(prefix)
        if not db.query(Order.id).filter(Order.order_number == candidate).first():
            return candidate
    raise ShowcaseError("Could not allocate a unique order number")


def _merge_lines(lines: list[RequestedLine]) -> dict[int, int]:
    quantities: dict[int, int] = {}
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError(f"Quantity for product {line.product_id} must be positive")
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
    return quantities


def _lock_products(db: Session, product_ids: list[int]) -> dict[int, Product]:
    # Sorted acquisition keeps concurrent assemblers from deadlocking on each other.
    products = (
        db.query(Product)
        .filter(Product.id.in_(product_ids))
        .order_by(Product.id)
        .with_for_update()
        .all()
    )
    return {product.id: product for product in products}


def _check_seller(db: Session, product: Product) -> User:
    if not product.seller_id:
        raise SellerIneligible(f"Product {product.id} has no seller", product_id=product.id)
    seller = db.query(User).filter(User.id == product.seller_id).first()
    if seller is None:
        raise SellerIneligible(f"Seller of product {product.id} does not exist", product_id=product.id)
    if not seller.payout_automation_enabled:
        raise SellerIneligible(
            f"Seller of '{product.title}' has automatic payouts disabled",
            product_id=product.id,
            seller_id=seller.id,
        )
    if not seller.payout_destination_account_id:
        raise SellerIneligible(
            f"Seller of '{product.title}' has no payout account configured",
            product_id=product.id,
            seller_id=seller.id,
        )
    return seller


class _OrderNumberTaken(Exception):
    pass


def assemble_order(
    db: Session,
    config: Settings,
    customer: CustomerInfo,
    lines: list[RequestedLine],
    user_id: int | None = None,
    expected_total: Decimal | None = None,
) -> AssembledOrder:
    """Validate a cart against live stock and seller eligibility and persist it as a pending order.

    Runs as one transaction: any rejection rolls back before anything is written.
    Stock is checked here but only deducted when payment is confirmed. When a
    concurrent order takes the same order number first, the whole transaction
    is retried with a new number.
    """
    if not lines:
        raise ValidationError("Order must contain at least one item")
    if not customer.name or not customer.email:
        raise ValidationError("Customer name and email are required")

    quantities = _merge_lines(lines)
    fee_percentage = Decimal(config.PLATFORM_FEE_PERCENTAGE)

    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        try:
            return _persist_order(db, config, customer, quantities, fee_percentage, user_id, expected_total)
        except _OrderNumberTaken as exc:
            logger.warning("Order number %s taken concurrently (attempt %s)", exc, attempt)
    raise ShowcaseError("Could not allocate a unique order number")


def _persist_order(
    db: Session,
    config: Settings,
    customer: CustomerInfo,
    quantities: dict[int, int],
    fee_percentage: Decimal,
    user_id: int | None,
    expected_total: Decimal | None,
) -> AssembledOrder:
    order_number = None
    try:
        products = _lock_products(db, sorted(quantities))

        priced: list[tuple[Product, int, LineAmounts]] = []
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None:
                raise ProductNotFound(f"Product {product_id} not found", product_id=product_id)
            _check_seller(db, product)
            if quantity > product.quantity:
                raise InsufficientStock(
                    f"Only {product.quantity} unit(s) of '{product.title}' available",
                    product_id=product.id,
                    available=product.quantity,
                    requested=quantity,
                )
            priced.append((product, quantity, calculate_line(product.price, quantity, fee_percentage)))

        totals = sum_lines(amounts for _, _, amounts in priced)
        if expected_total is not None and abs(Decimal(expected_total) - totals.total_amount) > TOTAL_TOLERANCE:
            raise TotalMismatch(
                f"Cart total {expected_total} does not match current total {totals.total_amount}",
                expected=str(expected_total),
                actual=str(totals.total_amount),
            )

        order_number = _unique_order_number(db, config.ORDER_NUMBER_PREFIX)
        order = Order(
            order_number=order_number,
            user_id=user_id,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            customer_address=customer.address,
            customer_city=customer.city,
            total_amount=totals.total_amount,
            platform_fee_percentage=fee_percentage,
            platform_fee_amount=totals.platform_fee_amount,
            seller_net_amount=totals.seller_net_amount,
            status=ORDER_STATUS_PENDING,
        )
        db.add(order)
        db.flush()

        for product, quantity, amounts in priced:
            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    seller_id=product.seller_id,
                    quantity=quantity,
                    unit_price=product.price,
                    subtotal=amounts.subtotal,
                    platform_fee_amount=amounts.platform_fee_amount,
                    seller_net_amount=amounts.seller_net_amount,
                )
            )
        db.commit()
    except ShowcaseError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        if order_number and db.query(Order.id).filter(Order.order_number == order_number).first():
            raise _OrderNumberTaken(order_number) from exc
        logger.error("Failed to persist order for %s: %s", customer.email, exc, exc_info=True)
        raise ShowcaseError("Failed to create order") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to persist order for %s: %s", customer.email, exc, exc_info=True)
        raise ShowcaseError("Failed to create order") from exc

    logger.info(
        "Order %s created: total=%s fee=%s net=%s lines=%s",
        order.order_number,
        totals.total_amount,
        totals.platform_fee_amount,
        totals.seller_net_amount,
        len(priced),
    )
    return AssembledOrder(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        total_amount=totals.total_amount,
        platform_fee_percentage=fee_percentage,
        platform_fee_amount=totals.platform_fee_amount,
        seller_net_amount=totals.seller_net_amount,
    )
