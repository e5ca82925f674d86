"""Number formatting shared by the aggregators and the exports.

Rates in the analytics payload are strings with a fixed number of decimals
("12.5", "0.0"), rounded half away from zero on the exact binary value of the
float. Currency display follows the Brazilian convention (R$ 1.234,56).
"""

from decimal import ROUND_HALF_UP, Decimal


def to_fixed(value: float, digits: int) -> str:
    """Format `value` with exactly `digits` decimals.

    Examples:
        to_fixed(12.345, 1) -> "12.3"
        to_fixed(2.5, 0)    -> "3"
        to_fixed(0, 2)      -> "0.00"
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded == 0:
        # Avoid "-0.0"
        rounded = abs(rounded)
    return f"{rounded:.{digits}f}"


def percentage(part: float, whole: float, digits: int = 1) -> str:
    """`part / whole * 100` as a fixed-decimal string; zero `whole` gives 0."""
    if not whole:
        return to_fixed(0, digits)
    return to_fixed((part / whole) * 100, digits)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Plain division that yields 0 instead of raising on a zero denominator."""
    if not denominator:
        return 0.0
    return numerator / denominator


def format_currency(value: float) -> str:
    """Format a BRL amount: 1234.5 -> 'R$ 1.234,50'."""
    sign = "-" if value < 0 else ""
    grouped = f"{abs(value):,.2f}"  # 1,234.50
    localized = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {localized}"


def format_percentage(value: float) -> str:
    """Signed percentage with one decimal: 12.34 -> '+12.3%'."""
    prefix = "+" if value >= 0 else ""
    return f"{prefix}{to_fixed(value, 1)}%"


def format_roas(value: float) -> str:
    """ROAS as a multiplier: 2.5 -> '2.50x'."""
    return f"{to_fixed(value, 2)}x"


def roi_tier(roi: float) -> str:
    """Bucket an ROI percentage for dashboard colouring."""
    if roi > 50:
        return "excellent"
    if roi > 0:
        return "positive"
    if roi > -20:
        return "warning"
    return "negative"
