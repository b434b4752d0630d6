"""
Formatters utility.

Utility functions for formatting data in the app layer.
"""

from decimal import ROUND_HALF_UP, Decimal


def quantize_money(amount: Decimal, quantum: Decimal) -> Decimal:
    """
    Round an amount half-up to the smallest currency unit.

    Args:
        amount: Amount at full precision
        quantum: Smallest currency unit (e.g. Decimal("0.01"))

    Returns:
        Rounded amount
    """
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def format_money(
    amount: Decimal | None,
    quantum: Decimal = Decimal("0.01"),
    symbol: str = "$",
) -> str:
    """
    Format a stored money value without altering it.

    The amount is printed with at least the quantum's number of decimals,
    and with more when the stored value carries them, so the printed
    number always equals the stored one.

    Args:
        amount: Amount (None is printed as zero)
        quantum: Smallest currency unit
        symbol: Currency symbol prefix

    Returns:
        Formatted string like "$64,000.00" or "-$4,000.00"

    Example:
        >>> format_money(Decimal("64000"), Decimal("1"))
        '$64,000'
        >>> format_money(Decimal("100.50"), Decimal("1"))
        '$100.50'
    """
    if amount is None:
        amount = Decimal("0")
    decimals = max(
        -quantum.as_tuple().exponent,
        -amount.as_tuple().exponent,
        0,
    )
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.{decimals}f}"


def format_percentage(ratio: Decimal | None) -> str:
    """
    Format a fraction as a percentage.

    Args:
        ratio: Fraction (0.60 = 60%)

    Returns:
        "60%" or "12.5%"; "-" when ratio is None
    """
    if ratio is None:
        return "-"
    percent = (ratio * 100).normalize()
    if percent == percent.to_integral_value():
        return f"{int(percent)}%"
    return f"{percent:f}%"
