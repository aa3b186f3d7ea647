"""Unit tests for amount and address validation."""

import pytest

from filwallet.address import IDAddress
from filwallet.shared.validation import (
    ATTOFIL_PER_FIL,
    AddressValidator,
    AmountValidator,
    ValidationResult,
    format_fil,
)


class TestValidationResult:
    def test_valid_result(self):
        result = ValidationResult(is_valid=True, normalized_value=100)
        assert result.is_valid is True
        assert result.error_message is None
        assert result.normalized_value == 100

    def test_invalid_result(self):
        result = ValidationResult(is_valid=False, error_message="Error")
        assert result.is_valid is False
        assert result.error_message == "Error"


class TestAmountValidatorParseFil:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1", ATTOFIL_PER_FIL),
            ("1.5", 1_500_000_000_000_000_000),
            ("1.5 FIL", 1_500_000_000_000_000_000),
            ("0.000000000000000001", 1),
            ("2 milliFIL", 2_000_000_000_000_000),
            ("3 nanofil", 3_000_000_000),
            ("100 attofil", 100),
            ("1,000", 1000 * ATTOFIL_PER_FIL),
        ],
    )
    def test_valid_amounts(self, value, expected):
        result = AmountValidator.parse_fil(value)
        assert result.is_valid is True, result.error_message
        assert result.normalized_value == expected

    def test_empty(self):
        result = AmountValidator.parse_fil("   ")
        assert result.is_valid is False
        assert result.error_message == "Amount is required"

    def test_negative(self):
        result = AmountValidator.parse_fil("-1")
        assert result.is_valid is False
        assert "positive" in result.error_message

    def test_not_a_number(self):
        result = AmountValidator.parse_fil("abc")
        assert result.is_valid is False

    def test_special_values(self):
        assert AmountValidator.parse_fil("NaN").is_valid is False
        assert AmountValidator.parse_fil("Infinity").is_valid is False

    def test_zero_rejected_by_default(self):
        assert AmountValidator.parse_fil("0").is_valid is False

    def test_zero_allowed_when_requested(self):
        result = AmountValidator.parse_fil("0", allow_zero=True)
        assert result.is_valid is True
        assert result.normalized_value == 0

    def test_too_many_decimals(self):
        result = AmountValidator.parse_fil("0.0000000000000000001")
        assert result.is_valid is False
        assert "precision" in result.error_message

    def test_fractional_attofil(self):
        assert AmountValidator.parse_fil("1.5 attofil").is_valid is False

    def test_exceeds_supply(self):
        assert AmountValidator.parse_fil("3000000000").is_valid is False


class TestAmountValidatorValidateAgainstBalance:
    def test_within_balance(self):
        assert AmountValidator.validate_against_balance(50, 100).is_valid is True

    def test_exact_balance(self):
        assert AmountValidator.validate_against_balance(100, 100).is_valid is True

    def test_exceeds_balance(self):
        result = AmountValidator.validate_against_balance(ATTOFIL_PER_FIL * 2, ATTOFIL_PER_FIL)
        assert result.is_valid is False
        assert "2 FIL" in result.error_message


class TestFormatFil:
    def test_whole(self):
        assert format_fil(10 * ATTOFIL_PER_FIL) == "10 FIL"

    def test_fraction(self):
        assert format_fil(1_500_000_000_000_000_000) == "1.5 FIL"

    def test_smallest_unit(self):
        assert format_fil(1) == "0.000000000000000001 FIL"

    def test_negative(self):
        assert format_fil(-ATTOFIL_PER_FIL) == "-1 FIL"


class TestAddressValidator:
    def test_valid_id_address(self):
        result = AddressValidator.validate("f01234")
        assert result.is_valid is True
        assert result.normalized_value == IDAddress(1234)

    def test_empty(self):
        result = AddressValidator.validate("")
        assert result.is_valid is False
        assert result.error_message == "Address is required"

    def test_invalid(self):
        result = AddressValidator.validate("f1notanaddress")
        assert result.is_valid is False
        assert result.error_message
