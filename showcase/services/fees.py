from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    """Round a money value to cents, half away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int(round2(value) * 100)


@dataclass(frozen=True)
class LineAmounts:
    subtotal: Decimal
    platform_fee_amount: Decimal
    seller_net_amount: Decimal


@dataclass(frozen=True)
class OrderAmounts:
    total_amount: Decimal
    platform_fee_amount: Decimal
    seller_net_amount: Decimal


def calculate_line(unit_price: Decimal, quantity: int, fee_percentage: Decimal) -> LineAmounts:
    """Split one cart line into subtotal, platform fee and seller net.

    The net is derived by subtraction from the already rounded subtotal and fee,
    so ``subtotal == platform_fee_amount + seller_net_amount`` holds exactly.
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")
    subtotal = round2(Decimal(unit_price) * quantity)
    platform_fee_amount = round2(subtotal * Decimal(fee_percentage) / Decimal("100"))
    seller_net_amount = round2(subtotal - platform_fee_amount)
    return LineAmounts(
        subtotal=subtotal,
        platform_fee_amount=platform_fee_amount,
        seller_net_amount=seller_net_amount,
    )


def sum_lines(lines: Iterable[LineAmounts]) -> OrderAmounts:
    total = fee = net = Decimal("0")
    for line in lines:
        total += line.subtotal
        fee += line.platform_fee_amount
        net += line.seller_net_amount
    return OrderAmounts(
        total_amount=round2(total),
        platform_fee_amount=round2(fee),
        seller_net_amount=round2(net),
    )
