from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def within_tolerance(expected, actual, tolerance) -> bool:
    return abs(to_decimal(expected) - to_decimal(actual)) <= to_decimal(tolerance)


def format_try(value) -> str:
    """Format an amount the way the storefront shows it: ₺1.234,50."""
    amount = quantize(value)
    integer, _, fraction = f"{amount:,.2f}".partition(".")
    return f"₺{integer.replace(',', '.')},{fraction}"


def format_amount(value) -> str:
    """Plain amount for error messages: 100 -> "100", 99.5 -> "99.5"."""
    amount = quantize(value)
    if amount == amount.to_integral_value():
        return str(amount.to_integral_value())
    return format(amount.normalize(), "f")
