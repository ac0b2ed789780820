"""Shopping cart: the buyer's working set before an order exists.

The cart is never authoritative for price or stock; order assembly re-checks
both. ``Cart`` is the local view (one entry per unit, repeats allowed) and the
``*_server_cart`` functions are the per-user mirror, stored compressed as
``(product_id, quantity)`` pairs.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from showcase.exceptions import CartStockExceeded, ValidationError
from showcase.models import CartItem, Product
from showcase.services.fees import round2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartProduct:
    """Client-side snapshot of a product; ``available`` is advisory only."""

    id: int
    title: str
    price: Decimal
    available: int
    seller_id: int | None = None
    image_url: str | None = None


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


def compress(entries: Iterable[CartProduct]) -> list[CartLine]:
    """Collapse repeated entries into (product_id, quantity) pairs, first-seen order."""
    counts = Counter(entry.id for entry in entries)
    return [CartLine(product_id=product_id, quantity=quantity) for product_id, quantity in counts.items()]


def expand(lines: Iterable[CartLine], lookup: Callable[[int], CartProduct | None]) -> list[CartProduct]:
    """Inverse of ``compress``; lines whose product can no longer be found are dropped."""
    entries: list[CartProduct] = []
    for line in lines:
        product = lookup(line.product_id)
        if product is None:
            logger.info("Dropping cart line for missing product %s", line.product_id)
            continue
        entries.extend([product] * line.quantity)
    return entries


@dataclass
class Cart:
    entries: list[CartProduct] = field(default_factory=list)

    def count(self, product_id: int) -> int:
        return sum(1 for entry in self.entries if entry.id == product_id)

    def add(self, product: CartProduct) -> None:
        if self.count(product.id) + 1 > product.available:
            raise CartStockExceeded(
                f"Only {product.available} unit(s) of '{product.title}' available",
                product_id=product.id,
            )
        self.entries.append(product)

    def remove_at(self, index: int) -> CartProduct:
        """Remove one occurrence by position."""
        return self.entries.pop(index)

    def clear(self) -> None:
        self.entries.clear()

    @property
    def total(self) -> Decimal:
        return round2(sum((Decimal(entry.price) for entry in self.entries), Decimal("0")))

    def lines(self) -> list[CartLine]:
        return compress(self.entries)


class CartSession:
    """Local cart plus the optional server mirror for an authenticated buyer.

    ``load_remote`` / ``save_remote`` are the transport to the cart endpoints.
    Reconciliation runs once per session: a non-empty server cart wins,
    otherwise the local cart is pushed up. After that every local change is
    written through as a full replace.
    """

    def __init__(
        self,
        load_remote: Callable[[], list[CartProduct]] | None = None,
        save_remote: Callable[[list[CartLine]], None] | None = None,
    ):
        self.cart = Cart()
        self._load_remote = load_remote
        self._save_remote = save_remote
        self._reconciled = False

    @property
    def is_synced(self) -> bool:
        return self._load_remote is not None and self._save_remote is not None

    def reconcile(self) -> None:
        if not self.is_synced or self._reconciled:
            return
        self._reconciled = True
        remote = self._load_remote()
        if remote:
            self.cart.entries = list(remote)
        elif self.cart.entries:
            self._save_remote(self.cart.lines())

    def _push(self) -> None:
        if self.is_synced and self._reconciled:
            self._save_remote(self.cart.lines())

    def add(self, product: CartProduct) -> None:
        self.cart.add(product)
        self._push()

    def remove_at(self, index: int) -> CartProduct:
        removed = self.cart.remove_at(index)
        self._push()
        return removed

    def clear(self) -> None:
        self.cart.clear()
        self._push()


def get_server_cart(db: Session, user_id: int) -> list[tuple[Product, int]]:
    rows = (
        db.query(CartItem)
        .join(Product, Product.id == CartItem.product_id)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.added_at.desc(), CartItem.id.desc())
        .all()
    )
    return [(row.product, row.quantity) for row in rows]


def save_server_cart(db: Session, user_id: int, lines: Iterable[CartLine]) -> int:
    """Replace the stored cart with ``lines``; returns the number of stored lines.

    Duplicate product ids keep the last quantity; unknown products are skipped.
    Raises ValidationError for a non-positive quantity.
    """
    quantities: dict[int, int] = {}
    for line in lines:
        if not line.product_id:
            continue
        if line.quantity <= 0:
            raise ValidationError(f"Quantity for product {line.product_id} must be positive")
        quantities[line.product_id] = line.quantity

    known = {
        row[0] for row in db.query(Product.id).filter(Product.id.in_(list(quantities))).all()
    } if quantities else set()

    try:
        db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
        for product_id, quantity in quantities.items():
            if product_id not in known:
                logger.info("Skipping unknown product %s in cart of user %s", product_id, user_id)
                continue
            db.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(known)


def clear_server_cart(db: Session, user_id: int) -> None:
    db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
    db.commit()
