"""
Input validation and STX amount precision tests
"""

from decimal import Decimal

import pytest

from services.errors import ValidationError
from utils.decimal_precision import (
    MAX_AMOUNT_MICRO_STX,
    format_stx,
    format_stx_amount,
    micro_stx_to_stx,
    stx_to_micro_stx,
)
from utils.input_validation import (
    normalize_contact_name,
    normalize_phone,
    require_positive_amount,
    validate_amount_micro_stx,
    validate_contact_name,
    validate_phone,
    validate_stx_address,
)


class TestStxAddressValidation:
    def test_mainnet_and_testnet_addresses(self):
        assert validate_stx_address("SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7").valid
        assert validate_stx_address("ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM").valid

    def test_wrong_length(self):
        result = validate_stx_address("SP2J6ZY48GV1EZ5V")
        assert not result.valid
        assert "41 characters" in result.error

    def test_wrong_prefix(self):
        result = validate_stx_address("SX2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7")
        assert not result.valid
        assert "SP" in result.error

    def test_lowercase_body_is_invalid(self):
        assert not validate_stx_address("SP2j6zy48gv1ez5v2v5rb9mp66sw86pykknrv9ej7").valid

    def test_missing(self):
        assert not validate_stx_address(None).valid
        assert not validate_stx_address("").valid


class TestPhoneValidation:
    def test_e164_is_canonical(self):
        assert validate_phone("+14155552671")

    def test_whatsapp_prefix_is_stripped(self):
        assert normalize_phone("whatsapp:+14155552671") == "+14155552671"

    def test_non_e164_is_not_canonical(self):
        assert not validate_phone("4155552671")
        assert normalize_phone("not a phone") is None


class TestContactNames:
    def test_normalization(self):
        assert normalize_contact_name("  john   DOE ") == "John Doe"

    def test_invalid_characters(self):
        assert not validate_contact_name("John<script>").valid

    def test_too_long(self):
        assert not validate_contact_name("a" * 101).valid


class TestAmounts:
    def test_positive_amount_to_micro_stx(self):
        assert require_positive_amount(Decimal("5")) == 5_000_000
        assert require_positive_amount(Decimal("0.000001")) == 1

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_non_positive_rejected(self, amount):
        with pytest.raises(ValidationError):
            require_positive_amount(amount)

    def test_below_precision_rejected(self):
        with pytest.raises(ValidationError, match="too small"):
            require_positive_amount(Decimal("0.0000001"))

    def test_above_supply_rejected(self):
        assert not validate_amount_micro_stx(MAX_AMOUNT_MICRO_STX + 1).valid

    def test_micro_amount_must_be_int(self):
        assert not validate_amount_micro_stx(1.5).valid
        assert not validate_amount_micro_stx(True).valid


class TestDecimalPrecision:
    @pytest.mark.parametrize("micro", [0, 1, 999_999, 1_000_000, 123_456_789_012])
    def test_micro_round_trip_is_exact(self, micro):
        assert stx_to_micro_stx(micro_stx_to_stx(micro)) == micro

    @pytest.mark.parametrize("stx", ["0.1", "5", "10.123456", "0.000001"])
    def test_stx_round_trip_recovers_value(self, stx):
        assert micro_stx_to_stx(stx_to_micro_stx(stx)) == Decimal(stx)

    def test_float_input_has_no_binary_artifacts(self):
        assert stx_to_micro_stx(0.1) == 100_000

    def test_truncates_below_six_places(self):
        assert stx_to_micro_stx("0.0000005") == 0
        assert stx_to_micro_stx("5.0000019") == 5_000_001

    def test_sub_micro_amount_is_rejected(self):
        with pytest.raises(ValidationError, match="too small"):
            require_positive_amount(Decimal("0.0000005"))

    def test_display_formats(self):
        assert format_stx(5_000_000) == "5.000000 STX"
        assert format_stx_amount(Decimal("5.50")) == "5.5"
        assert format_stx_amount(Decimal("10")) == "10"
