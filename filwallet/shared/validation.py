"""Input validation utilities for FIL amounts and addresses."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

ATTOFIL_PER_FIL = 10**18
FIL_DECIMALS = 18

# Unit suffixes accepted by amount parsing, with their power of ten
# relative to one attoFIL.
UNIT_EXPONENTS = {
    "fil": 18,
    "millifil": 15,
    "microfil": 12,
    "nanofil": 9,
    "picofil": 6,
    "femtofil": 3,
    "attofil": 0,
}


@dataclass
class ValidationResult:
    is_valid: bool
    error_message: str | None = None
    normalized_value: Any = None


class AmountValidator:
    # Upper bound of total FIL supply, in attoFIL.
    MAX_AMOUNT = 2_000_000_000 * ATTOFIL_PER_FIL

    @staticmethod
    def split_unit(value: str) -> tuple[str, int]:
        raw = value.strip().replace(",", "").replace(" ", "")
        lowered = raw.lower()
        for unit in sorted(UNIT_EXPONENTS, key=len, reverse=True):
            if lowered.endswith(unit):
                return raw[: -len(unit)], UNIT_EXPONENTS[unit]
        return raw, UNIT_EXPONENTS["fil"]

    @classmethod
    def parse_fil(cls, value: str, allow_zero: bool = False) -> ValidationResult:
        """Parse a human FIL amount ("1.5", "1.5 FIL", "300 nanoFIL") into attoFIL."""
        if not value or not value.strip():
            return ValidationResult(
                is_valid=False,
                error_message="Amount is required",
            )

        number, exponent = cls.split_unit(value)

        if number.startswith("-") or number.startswith("+"):
            return ValidationResult(
                is_valid=False,
                error_message="Amount must be a positive number",
            )

        try:
            amount_decimal = Decimal(number)
        except (InvalidOperation, ValueError):
            return ValidationResult(
                is_valid=False,
                error_message="Amount must be a valid number",
            )

        if not amount_decimal.is_finite():
            return ValidationResult(
                is_valid=False,
                error_message="Invalid numeric format (special value detected)",
            )

        if amount_decimal == 0 and not allow_zero:
            return ValidationResult(
                is_valid=False,
                error_message="Amount must be greater than zero",
            )

        places = max(0, -amount_decimal.as_tuple().exponent)
        if places > exponent:
            return ValidationResult(
                is_valid=False,
                error_message="Amount has more precision than one attoFIL",
            )

        atto = int(amount_decimal.scaleb(exponent))
        if atto > cls.MAX_AMOUNT:
            return ValidationResult(
                is_valid=False,
                error_message="Amount exceeds maximum allowed value",
            )

        return ValidationResult(is_valid=True, normalized_value=atto)

    @staticmethod
    def validate_against_balance(atto: int, available: int) -> ValidationResult:
        if atto > available:
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"Requested {format_fil(atto)} exceeds available "
                    f"{format_fil(available)}"
                ),
            )

        return ValidationResult(is_valid=True)


def format_fil(atto: int) -> str:
    """Render an attoFIL amount as a trimmed FIL string, e.g. ``1.5 FIL``."""
    sign = "-" if atto < 0 else ""
    whole, frac = divmod(abs(atto), ATTOFIL_PER_FIL)
    if not frac:
        return f"{sign}{whole} FIL"
    frac_str = f"{frac:0{FIL_DECIMALS}d}".rstrip("0")
    return f"{sign}{whole}.{frac_str} FIL"


class AddressValidator:
    @staticmethod
    def validate(value: str) -> ValidationResult:
        # Deferred: filwallet.errors imports this package.
        from filwallet.address import parse_address
        from filwallet.errors import InvalidInput

        if not value or not value.strip():
            return ValidationResult(
                is_valid=False,
                error_message="Address is required",
            )

        try:
            address = parse_address(value)
        except InvalidInput as e:
            return ValidationResult(is_valid=False, error_message=str(e))

        return ValidationResult(is_valid=True, normalized_value=address)
