"""Currency validation, rounding and formatting utilities."""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

# ISO 4217 currency codes accepted for plan prices
supported_currencies = [
    "USD",  # United States Dollar
    "VND",  # Vietnamese Dong
    "EUR",  # Euro
    "GBP",  # British Pound Sterling
    "AUD",  # Australian Dollar
    "CAD",  # Canadian Dollar
    "JPY",  # Japanese Yen
    "KRW",  # South Korean Won
    "SGD",  # Singapore Dollar
    "THB",  # Thai Baht
    "MYR",  # Malaysian Ringgit
    "IDR",  # Indonesian Rupiah
    "PHP",  # Philippine Peso
]

# Currencies without minor units
zero_decimal_currencies = [
    "JPY",  # Japanese Yen
    "KRW",  # South Korean Won
    "VND",  # Vietnamese Dong
]

currency_symbols = {
    "USD": "$",
    "VND": "₫",
    "EUR": "€",
    "GBP": "£",
    "AUD": "A$",
    "CAD": "CA$",
    "JPY": "¥",
    "KRW": "₩",
    "SGD": "S$",
    "THB": "฿",
    "MYR": "RM",
    "IDR": "Rp",
    "PHP": "₱",
}


def validate_currency(currency: str) -> bool:
    """
    Validate if a currency code is supported.

    Example:
        >>> validate_currency("USD")
        True
        >>> validate_currency("XYZ")
        False
    """
    if not currency:
        return False

    return currency.upper() in supported_currencies


def get_currency_decimal_places(currency: str) -> int:
    """
    Get the number of decimal places for a currency.

    Example:
        >>> get_currency_decimal_places("USD")
        2
        >>> get_currency_decimal_places("VND")
        0
    """
    if currency.upper() in zero_decimal_currencies:
        return 0
    return 2


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a numeric value to Decimal.

    Floats go through ``str`` so 29.99 stays 29.99. Values that cannot be
    interpreted as a finite number become zero.
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            return Decimal("0")
    if not result.is_finite():
        return Decimal("0")
    return result


def round_amount(amount: Decimal, precision: int = 2) -> Decimal:
    """
    Round half-up to a number of decimal places.

    Example:
        >>> round_amount(Decimal("85.4715"))
        Decimal('85.47')
    """
    quantum = Decimal(1).scaleb(-precision)
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def format_amount_for_currency(amount: Decimal, currency: str) -> str:
    """
    Format an amount with symbol and thousand separators.

    Examples:
        >>> format_amount_for_currency(Decimal("85.47"), "USD")
        '$85.47 USD'
        >>> format_amount_for_currency(Decimal("250000"), "VND")
        '₫250,000 VND'
    """
    currency_upper = currency.upper()
    symbol = currency_symbols.get(currency_upper, currency_upper)
    places = get_currency_decimal_places(currency_upper)
    rounded = round_amount(to_decimal(amount), places)
    return f"{symbol}{rounded:,.{places}f} {currency_upper}"


def currencies_match(currency1: str, currency2: str) -> bool:
    """Check if two currency codes match (case-insensitive)."""
    if not currency1 or not currency2:
        return False

    return currency1.upper() == currency2.upper()
