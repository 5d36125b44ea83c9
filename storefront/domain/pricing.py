# storefront/domain/pricing.py
"""
Wyliczanie kwot zamowienia. Wszystko na Decimal, zaokraglenie HALF_UP do groszy.
"""
import random
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from storefront.utils.settings import (
    TAX_RATE,
    FREE_SHIPPING_THRESHOLD,
    STANDARD_SHIPPING,
    ORDER_NUMBER_PREFIX,
)

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_subtotal(lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
    """lines: pary (cena jednostkowa, ilosc)"""
    return money(sum((Decimal(price) * qty for price, qty in lines), Decimal("0.00")))


def calculate_shipping(subtotal: Decimal) -> Decimal:
    #prog wlacznie, 50.00 juz bez kosztow wysylki
    if subtotal >= FREE_SHIPPING_THRESHOLD:
        return Decimal("0.00")
    return money(STANDARD_SHIPPING)


def calculate_tax(subtotal: Decimal) -> Decimal:
    return money(subtotal * TAX_RATE)


def calculate_totals(lines: Iterable[Tuple[Decimal, int]]) -> dict:
    subtotal = calculate_subtotal(lines)
    shipping = calculate_shipping(subtotal)
    tax = calculate_tax(subtotal)
    return {
        "subtotal": subtotal,
        "shipping_cost": shipping,
        "tax": tax,
        "total_amount": subtotal + shipping + tax,
    }


def to_minor_units(amount: Decimal) -> int:
    """Kwota w centach dla procesora platnosci."""
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | None) -> Decimal:
    if amount is None:
        return Decimal("0.00")
    return money(Decimal(amount) / 100)


def generate_order_number() -> str:
    millis = int(time.time() * 1000)
    return f"{ORDER_NUMBER_PREFIX}{millis}-{random.randint(1000, 9999)}"
