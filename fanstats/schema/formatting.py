"""Value formatting for chart results.

Formatting rules used by previews and the CLI text output:
- Unavailable values: N/A
- Numbers: thousands separators, whole numbers when rounded (1,234)
- Currency: €1,234 (prefix configurable per element)
- Percentages: X.X%
- Element formatting: prefix + value + suffix, 0 or 2 decimals
"""

import math

from .models import NA, ElementFormat, Unavailable, ValueType


def _missing(value) -> bool:
    if value is None or isinstance(value, Unavailable) or value == NA:
        return True
    return isinstance(value, float) and math.isnan(value)


def format_number(value: float | int | None, decimals: int = 0) -> str:
    """Format a number with comma separators."""
    if _missing(value):
        return NA
    return f"{value:,.{decimals}f}"


def format_integer(value: float | int | None) -> str:
    """Format a whole number with comma separators."""
    if _missing(value):
        return NA
    return f"{int(round(value)):,}"


def format_currency(value: float | int | None, symbol: str = "€") -> str:
    """Format a money value: €1,234 (negative as -€1,234)."""
    if _missing(value):
        return NA
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.0f}"


def format_percentage(value: float | int | None) -> str:
    """Format a rate as X.X% (no sign prefix)."""
    if _missing(value):
        return NA
    return f"{value:.1f}%"


def format_with(value: float | int | None, formatting: ElementFormat) -> str:
    """Apply an element's prefix/suffix formatting."""
    if _missing(value):
        return NA
    decimals = 0 if formatting.rounded else 2
    return f"{formatting.prefix}{value:,.{decimals}f}{formatting.suffix}"


def format_value(
    value: float | int | str | None,
    value_type: ValueType | None = None,
    formatting: ElementFormat | None = None,
) -> str:
    """Format a chart value, preferring element formatting over its type."""
    if isinstance(value, str):
        return value
    if formatting is not None:
        return format_with(value, formatting)
    formatters = {
        ValueType.CURRENCY: format_currency,
        ValueType.PERCENTAGE: format_percentage,
        ValueType.NUMBER: format_number,
    }
    formatter = formatters.get(value_type, format_number)
    return formatter(value)
