from decimal import Decimal

ZERO = Decimal("0")


def to_money(value) -> Decimal:
    """Coerce a stored amount to Decimal without passing through binary floats."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    if hasattr(value, "to_decimal"):
        # bson.Decimal128
        return value.to_decimal()
    return Decimal(value)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))


def format_money(amount: Decimal, currency: str = "Rs.") -> str:
    return f"{currency} {amount.quantize(Decimal('1')):,}"


def coerce_money(value):
    """Before-validator for money fields; legacy records hold amounts as doubles."""
    if isinstance(value, float) or hasattr(value, "to_decimal"):
        return to_money(value)
    return value
