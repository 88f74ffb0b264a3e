"""
Tests for currency-aware money arithmetic, formatting and parsing.
"""
import pytest
from decimal import Decimal

from split_ledger.exceptions import ValidationError
from split_ledger.schemas.money_schema import Money
from split_ledger.utils.money import (
    add_money,
    compare_money,
    convert_money,
    create_money,
    divide_money,
    format_money,
    format_money_compact,
    get_currency_symbol,
    get_supported_currencies,
    is_equal_money,
    is_supported_currency,
    multiply_money,
    parse_money,
    round_amount,
    subtract_money,
    to_decimal,
    validate_amount,
)


@pytest.mark.unit
class TestRounding:
    """Test rounding to currency precision."""

    def test_half_away_from_zero(self):
        assert round_amount("100.005", "USD") == Decimal("100.01")
        assert round_amount("-0.005", "USD") == Decimal("-0.01")
        assert round_amount("0.004", "USD") == Decimal("0.00")

    def test_zero_decimal_currency(self):
        assert round_amount("1234.5", "CLP") == Decimal("1235")
        assert round_amount("999.4", "COP") == Decimal("999")

    def test_float_input_has_no_binary_noise(self):
        assert to_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), "abc", True])
    def test_invalid_numbers_rejected(self, value):
        with pytest.raises(ValidationError):
            to_decimal(value)


@pytest.mark.unit
class TestCreateMoney:
    """Test Money construction."""

    def test_rounds_to_precision(self):
        money = create_money("12.345", "USD")
        assert money == Money(amount=Decimal("12.35"), currency="USD")

    def test_zero_decimal_currency_rounds_to_units(self):
        assert create_money(1234.5, "CLP").amount == Decimal("1235")

    def test_zero_is_allowed(self):
        assert create_money(0, "EUR").amount == Decimal("0.00")

    def test_negative_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            create_money(-1, "USD")

    def test_unsupported_currency_rejected(self):
        with pytest.raises(ValidationError, match="Unsupported currency: XYZ"):
            create_money(10, "XYZ")

    def test_money_is_immutable(self):
        money = create_money(10, "USD")
        with pytest.raises(Exception):
            money.amount = Decimal("20")


@pytest.mark.unit
class TestArithmetic:
    """Test add, subtract, multiply, divide and convert."""

    def test_add_is_exact_for_decimal_fractions(self):
        total = add_money(create_money(0.1, "USD"), create_money(0.2, "USD"))
        assert total.amount == Decimal("0.30")

    def test_add_different_currencies_rejected(self):
        with pytest.raises(ValidationError, match="different currencies"):
            add_money(create_money(10, "USD"), create_money(10, "EUR"))

    def test_subtract_may_go_negative(self):
        delta = subtract_money(create_money(10, "USD"), create_money(15, "USD"))
        assert delta.amount == Decimal("-5.00")

    def test_subtract_different_currencies_rejected(self):
        with pytest.raises(ValidationError):
            subtract_money(create_money(10, "USD"), create_money(1, "MXN"))

    def test_multiply(self):
        assert multiply_money(create_money(10, "USD"), "1.5").amount == Decimal("15.00")

    def test_multiply_negative_factor_rejected(self):
        with pytest.raises(ValidationError, match="Factor cannot be negative"):
            multiply_money(create_money(10, "USD"), -2)

    def test_divide_rounds_result(self):
        assert divide_money(create_money(100, "USD"), 3).amount == Decimal("33.33")

    @pytest.mark.parametrize("divisor", [0, -1])
    def test_divide_by_non_positive_rejected(self, divisor):
        with pytest.raises(ValidationError, match="Divisor must be greater than 0"):
            divide_money(create_money(100, "USD"), divisor)

    def test_convert(self):
        converted = convert_money(create_money(100, "USD"), "EUR", "0.9")
        assert converted == Money(amount=Decimal("90.00"), currency="EUR")

    def test_convert_to_zero_decimal_currency(self):
        converted = convert_money(create_money("10.50", "USD"), "CLP", "950.5")
        assert converted.amount == Decimal("9980")

    def test_convert_same_currency_ignores_rate(self):
        money = create_money(100, "USD")
        assert convert_money(money, "USD", 0) is money

    def test_convert_non_positive_rate_rejected(self):
        with pytest.raises(ValidationError, match="Exchange rate must be greater than 0"):
            convert_money(create_money(100, "USD"), "EUR", 0)


@pytest.mark.unit
class TestComparison:
    """Test compare_money and is_equal_money."""

    def test_compare(self):
        ten = create_money(10, "USD")
        twenty = create_money(20, "USD")
        assert compare_money(ten, twenty) == -1
        assert compare_money(twenty, ten) == 1
        assert compare_money(ten, create_money("10.00", "USD")) == 0

    def test_compare_different_currencies_rejected(self):
        with pytest.raises(ValidationError):
            compare_money(create_money(10, "USD"), create_money(10, "EUR"))

    def test_equal_within_tolerance(self):
        assert is_equal_money(create_money(100.001, "USD"), create_money(100.009, "USD"))

    def test_not_equal_beyond_tolerance(self):
        assert not is_equal_money(create_money("100.00", "USD"), create_money("100.02", "USD"))

    def test_different_currencies_are_never_equal(self):
        assert not is_equal_money(create_money(100, "USD"), create_money(100, "EUR"))


@pytest.mark.unit
class TestFormatting:
    """Test locale-aware formatting."""

    @pytest.mark.parametrize("amount,currency,expected", [
        ("1234.56", "USD", "$1,234.56"),
        ("1234.56", "EUR", "1.234,56 €"),
        ("1234.56", "CLP", "$1.235"),
        ("1234567", "COP", "$ 1.234.567"),
        ("1234.56", "BRL", "R$ 1.234,56"),
        ("1234.56", "PEN", "S/ 1,234.56"),
        ("1234.56", "MXN", "$1,234.56"),
        ("1234.56", "UYU", "$U 1.234,56"),
        ("0", "ARS", "$ 0,00"),
    ])
    def test_format_money(self, amount, currency, expected):
        assert format_money(amount, currency) == expected

    def test_negative_amount_gets_leading_sign(self):
        assert format_money(-5, "USD") == "-$5.00"
        assert format_money("-1234.5", "EUR") == "-1.234,50 €"

    def test_format_compact(self):
        assert format_money_compact("1234.56", "EUR") == "€1.234,56"
        assert format_money_compact("1234.56", "BRL") == "R$1.234,56"

    def test_unsupported_currency_rejected(self):
        with pytest.raises(ValidationError):
            format_money(10, "GBP")


@pytest.mark.unit
class TestParsing:
    """Test parsing formatted strings back into amounts."""

    @pytest.mark.parametrize("text,currency,expected", [
        ("$1,234.56", "USD", Decimal("1234.56")),
        ("1.234,56 €", "EUR", Decimal("1234.56")),
        ("R$ 1.234.567,89", "BRL", Decimal("1234567.89")),
        ("$1.235", "CLP", Decimal("1235")),
        ("$ 1.234.567", "COP", Decimal("1234567")),
        ("12,50", "EUR", Decimal("12.50")),
        ("42", "USD", Decimal("42")),
        ("-$5.00", "USD", Decimal("-5.00")),
    ])
    def test_parse_money(self, text, currency, expected):
        assert parse_money(text, currency) == expected

    def test_parse_reads_back_formatted_value(self):
        for currency in get_supported_currencies():
            formatted = format_money("98765.43", currency)
            assert parse_money(formatted, currency) == round_amount("98765.43", currency)

    @pytest.mark.parametrize("text", ["abc", "", "12.34.x", "$"])
    def test_unparseable_rejected(self, text):
        with pytest.raises(ValidationError, match="Invalid money format"):
            parse_money(text, "USD")


@pytest.mark.unit
class TestCurrencyHelpers:
    """Test currency lookups and amount validation."""

    def test_symbols(self):
        assert get_currency_symbol("USD") == "$"
        assert get_currency_symbol("EUR") == "€"
        assert get_currency_symbol("PEN") == "S/"

    def test_supported_currencies(self):
        assert get_supported_currencies() == [
            "USD", "EUR", "ARS", "BRL", "CLP", "COP", "MXN", "PEN", "UYU",
        ]
        assert is_supported_currency("CLP")
        assert not is_supported_currency("usd")

    def test_valid_amount(self):
        assert validate_amount("10.50", "USD") == []
        assert validate_amount(1500, "CLP") == []

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount(self, amount):
        assert validate_amount(amount, "USD") == ["Amount must be greater than 0"]

    def test_amount_over_maximum(self):
        assert validate_amount(1000000, "USD") == ["Amount cannot exceed 999999.99"]

    def test_too_many_decimals(self):
        assert validate_amount("10.555", "USD") == ["Currency USD allows at most 2 decimals"]

    def test_decimals_in_zero_decimal_currency(self):
        assert validate_amount("10.5", "CLP") == ["Currency CLP does not allow decimals"]
