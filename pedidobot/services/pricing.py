from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence


def format_money(cents: int | None) -> str:
    value = int(cents or 0) / 100
    return f"${value:.2f}"


def cents_from_amount(amount) -> int:
    """Convert a decimal amount (``163.0``, ``"54.33"``) to integer cents, rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def unit_price_cents(package_price_cents: int, package_size: int) -> Decimal:
    if package_size <= 0:
        raise ValueError("package_size must be positive")
    return Decimal(package_price_cents) / Decimal(package_size)


def split_package_price(package_price_cents: int, package_size: int, quantities: Sequence[int]) -> list[int]:
    """Price each flavor split of one or more packages.

    Every split gets ``floor(unit_price * quantity)``; the last split absorbs the
    remainder so that the parts add up to the price of the pieces as a whole.
    """
    if not quantities:
        return []
    if any(quantity < 0 for quantity in quantities):
        raise ValueError("quantities must not be negative")

    unit = unit_price_cents(package_price_cents, package_size)
    total = int((unit * sum(quantities)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    parts = [int(unit * quantity) for quantity in quantities[:-1]]
    parts.append(total - sum(parts))
    return parts
