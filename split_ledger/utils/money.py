"""
Money Arithmetic Module

Currency-aware amounts for the split ledger. Every amount is a Decimal rounded
to its currency's precision: two places for most currencies, none for the
zero-decimal ones (CLP, COP). Arithmetic never mixes currencies implicitly.

Rounding is half away from zero at the precision boundary, so 0.005 USD
becomes 0.01 and -0.005 USD becomes -0.01.

Example Usage:
    from split_ledger.utils.money import create_money, add_money, format_money

    lunch = create_money("12.345", "USD")        # Money(amount=12.35, currency='USD')
    total = add_money(lunch, create_money(7, "USD"))
    format_money(total.amount, "USD")             # '$19.35'
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List, NamedTuple, Union

from split_ledger.exceptions import ValidationError
from split_ledger.schemas.money_schema import Money

logger = logging.getLogger(__name__)

Amount = Union[Decimal, int, float, str]

# Slack allowed when comparing amounts that went through independent rounding
TOLERANCE = Decimal("0.01")

MAX_AMOUNT = Decimal("999999.99")


class CurrencyConfig(NamedTuple):
    symbol: str
    decimal_places: int
    locale: str
    thousands_separator: str
    decimal_separator: str
    symbol_position: str  # "prefix" or "suffix"
    symbol_spacing: str


CURRENCY_CONFIG: Dict[str, CurrencyConfig] = {
    "USD": CurrencyConfig("$", 2, "en-US", ",", ".", "prefix", ""),
    "EUR": CurrencyConfig("€", 2, "de-DE", ".", ",", "suffix", " "),
    "ARS": CurrencyConfig("$", 2, "es-AR", ".", ",", "prefix", " "),
    "BRL": CurrencyConfig("R$", 2, "pt-BR", ".", ",", "prefix", " "),
    "CLP": CurrencyConfig("$", 0, "es-CL", ".", ",", "prefix", ""),
    "COP": CurrencyConfig("$", 0, "es-CO", ".", ",", "prefix", " "),
    "MXN": CurrencyConfig("$", 2, "es-MX", ",", ".", "prefix", ""),
    "PEN": CurrencyConfig("S/", 2, "es-PE", ",", ".", "prefix", " "),
    "UYU": CurrencyConfig("$U", 2, "es-UY", ".", ",", "prefix", " "),
}

SUPPORTED_CURRENCIES = tuple(CURRENCY_CONFIG.keys())

_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


def _get_config(currency: str) -> CurrencyConfig:
    config = CURRENCY_CONFIG.get(currency)
    if config is None:
        raise ValidationError(f"Unsupported currency: {currency}")
    return config


def to_decimal(value: Amount) -> Decimal:
    """
    Convert a numeric input to Decimal without binary float noise.

    Floats go through ``str`` first, so ``0.1`` becomes ``Decimal('0.1')``
    rather than its exact binary expansion.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return result


def get_quantum(currency: str) -> Decimal:
    """Smallest representable unit of a currency (0.01 or 1)."""
    return Decimal(1).scaleb(-_get_config(currency).decimal_places)


def round_amount(value: Amount, currency: str) -> Decimal:
    """
    Round a value to the currency's precision, half away from zero.

    Example:
        >>> round_amount("100.005", "USD")
        Decimal('100.01')
        >>> round_amount("1234.5", "CLP")
        Decimal('1235')
    """
    return to_decimal(value).quantize(get_quantum(currency), rounding=ROUND_HALF_UP)


def create_money(amount: Amount, currency: str) -> Money:
    """
    Create a Money value rounded to the currency's precision.

    Args:
        amount: Non-negative amount
        currency: Supported currency code

    Returns:
        Money with the rounded amount

    Raises:
        ValidationError: If the amount is negative or the currency unsupported
    """
    value = to_decimal(amount)
    if value < 0:
        raise ValidationError("Amount cannot be negative")
    return Money(amount=round_amount(value, currency), currency=currency)


def _ensure_same_currency(money1: Money, money2: Money, operation: str) -> None:
    if money1.currency != money2.currency:
        raise ValidationError(
            f"Cannot {operation} different currencies: {money1.currency} and {money2.currency}"
        )


def add_money(money1: Money, money2: Money) -> Money:
    """Add two amounts of the same currency."""
    _ensure_same_currency(money1, money2, "add")
    return create_money(money1.amount + money2.amount, money1.currency)


def subtract_money(money1: Money, money2: Money) -> Money:
    """
    Subtract two amounts of the same currency.

    The result may be negative; it is used for deltas and is not re-validated.
    """
    _ensure_same_currency(money1, money2, "subtract")
    return Money(
        amount=round_amount(money1.amount - money2.amount, money1.currency),
        currency=money1.currency,
    )


def multiply_money(money: Money, factor: Amount) -> Money:
    """Multiply an amount by a non-negative factor."""
    factor = to_decimal(factor)
    if factor < 0:
        raise ValidationError("Factor cannot be negative")
    return create_money(money.amount * factor, money.currency)


def divide_money(money: Money, divisor: Amount) -> Money:
    """Divide an amount by a positive divisor."""
    divisor = to_decimal(divisor)
    if divisor <= 0:
        raise ValidationError("Divisor must be greater than 0")
    return create_money(money.amount / divisor, money.currency)


def convert_money(money: Money, target_currency: str, rate: Amount) -> Money:
    """
    Convert an amount into another currency using an exchange rate.

    Same-currency conversion returns the input unchanged and ignores the rate.

    Raises:
        ValidationError: If the rate is not positive or the target is unsupported
    """
    if money.currency == target_currency:
        return money

    rate = to_decimal(rate)
    if rate <= 0:
        raise ValidationError("Exchange rate must be greater than 0")

    return create_money(money.amount * rate, target_currency)


def compare_money(money1: Money, money2: Money) -> int:
    """Return -1, 0 or 1 comparing two amounts of the same currency."""
    _ensure_same_currency(money1, money2, "compare")
    if money1.amount < money2.amount:
        return -1
    if money1.amount > money2.amount:
        return 1
    return 0


def is_equal_money(money1: Money, money2: Money) -> bool:
    """
    Check whether two amounts are equal, absorbing rounding noise.

    Different currencies are never equal; this is not an error.

    Example:
        >>> is_equal_money(create_money(100.001, "USD"), create_money(100.009, "USD"))
        True
    """
    return (
        money1.currency == money2.currency
        and abs(money1.amount - money2.amount) <= TOLERANCE
    )


def _group_digits(amount: Decimal, config: CurrencyConfig) -> str:
    # Format with en-US separators, then swap in the locale's own
    formatted = format(abs(amount), f",.{config.decimal_places}f")
    return formatted.translate(
        str.maketrans({",": config.thousands_separator, ".": config.decimal_separator})
    )


def format_money(amount: Amount, currency: str) -> str:
    """
    Format an amount using the currency's locale conventions.

    Example:
        >>> format_money(1234.56, "USD")
        '$1,234.56'
        >>> format_money(1234.56, "EUR")
        '1.234,56 €'
        >>> format_money(1234.56, "CLP")
        '$1.235'
    """
    config = _get_config(currency)
    rounded = round_amount(amount, currency)
    number = _group_digits(rounded, config)

    if config.symbol_position == "suffix":
        body = f"{number}{config.symbol_spacing}{config.symbol}"
    else:
        body = f"{config.symbol}{config.symbol_spacing}{number}"

    return f"-{body}" if rounded < 0 else body


def format_money_compact(amount: Amount, currency: str) -> str:
    """Format an amount as symbol followed directly by the grouped number."""
    config = _get_config(currency)
    rounded = round_amount(amount, currency)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{config.symbol}{_group_digits(rounded, config)}"


def parse_money(money_string: str, currency: str) -> Decimal:
    """
    Parse a currency string back into a Decimal.

    The currency symbol and all whitespace are removed. The last ``,`` or ``.``
    is taken as the decimal point and every other separator is dropped as a
    thousands separator. Zero-decimal currencies have no decimal point, so a
    final separator followed by exactly three digits is grouping there.

    Args:
        money_string: Text such as "$1,234.56" or "1.234,56 €"
        currency: Supported currency code

    Returns:
        The parsed amount (not rounded)

    Raises:
        ValidationError: If the text cannot be parsed or the currency is unsupported

    Example:
        >>> parse_money("1.234,56 €", "EUR")
        Decimal('1234.56')
        >>> parse_money("$1.235", "CLP")
        Decimal('1235')
    """
    config = _get_config(currency)
    if not isinstance(money_string, str):
        raise ValidationError(f"Invalid money format: {money_string!r}")

    cleaned = re.sub(r"\s+", "", money_string.replace(config.symbol, ""))

    last_separator = max(cleaned.rfind(","), cleaned.rfind("."))
    if last_separator >= 0:
        integer_part = cleaned[:last_separator]
        fraction = cleaned[last_separator + 1:]
        is_grouping = (
            config.decimal_places == 0 and len(fraction) == 3 and fraction.isdigit()
        )
        if is_grouping:
            cleaned = re.sub(r"[,.]", "", cleaned)
        else:
            cleaned = re.sub(r"[,.]", "", integer_part) + "." + fraction

    if not _NUMBER_PATTERN.match(cleaned):
        raise ValidationError(f"Invalid money format: {money_string}")

    return Decimal(cleaned)


def get_currency_symbol(currency: str) -> str:
    return _get_config(currency).symbol


def is_supported_currency(currency: str) -> bool:
    return currency in CURRENCY_CONFIG


def get_supported_currencies() -> List[str]:
    return list(SUPPORTED_CURRENCIES)


def validate_amount(amount: Amount, currency: str) -> List[str]:
    """
    Collect the reasons an expense amount is unacceptable for a currency.

    Returns:
        List of error messages, empty when the amount is valid

    Raises:
        ValidationError: If the amount is not a number or the currency unsupported
    """
    config = _get_config(currency)
    value = to_decimal(amount)
    errors: List[str] = []

    if value <= 0:
        errors.append("Amount must be greater than 0")

    if value > MAX_AMOUNT:
        errors.append(f"Amount cannot exceed {MAX_AMOUNT}")
        return errors

    if value != value.quantize(get_quantum(currency), rounding=ROUND_HALF_UP):
        if config.decimal_places == 0:
            errors.append(f"Currency {currency} does not allow decimals")
        else:
            errors.append(
                f"Currency {currency} allows at most {config.decimal_places} decimals"
            )

    return errors
