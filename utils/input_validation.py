"""
Input validation for phone numbers, Stacks addresses, contact names and amounts.

Validators return a ValidationResult rather than raising so callers can pick
the user-facing wording; `require_*` helpers raise ValidationError.
"""

import re
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import phonenumbers

from services.errors import ValidationError
from utils.decimal_precision import MAX_AMOUNT_MICRO_STX, stx_to_micro_stx

logger = logging.getLogger(__name__)

STX_ADDRESS_LENGTH = 41
STX_ADDRESS_PREFIXES = ("SP", "ST")
STX_ADDRESS_BODY_RE = re.compile(r"^[0-9A-Z]+$")

CONTACT_NAME_MAX_LENGTH = 100
CONTACT_NAME_RE = re.compile(r"^[a-zA-Z0-9\s\-_.]+$")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


def validate_stx_address(address: Optional[str]) -> ValidationResult:
    """
    Validate Stacks address format.

    Mainnet addresses start with SP, testnet with ST; both are exactly 41
    characters of 0-9/A-Z.
    """
    if not address or not isinstance(address, str):
        return ValidationResult(False, "Address is required")

    clean_address = address.strip()

    if len(clean_address) != STX_ADDRESS_LENGTH:
        return ValidationResult(
            False, f"Address must be exactly {STX_ADDRESS_LENGTH} characters (got {len(clean_address)})"
        )

    if not clean_address.startswith(STX_ADDRESS_PREFIXES):
        return ValidationResult(False, "Address must start with SP (mainnet) or ST (testnet)")

    if not STX_ADDRESS_BODY_RE.match(clean_address[2:]):
        return ValidationResult(False, "Address contains invalid characters (use only 0-9 and A-Z)")

    return ValidationResult(True)


def is_valid_stx_address(address: Optional[str]) -> bool:
    return validate_stx_address(address).valid


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Return the E.164 form of a phone number, or None if it is not valid"""
    if not phone or not isinstance(phone, str):
        return None
    clean_phone = phone.strip()
    if clean_phone.startswith("whatsapp:"):
        clean_phone = clean_phone[len("whatsapp:"):]
    try:
        parsed = phonenumbers.parse(clean_phone, None)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def validate_phone(phone: Optional[str]) -> bool:
    """True when the identifier is already in canonical E.164 form"""
    normalized = normalize_phone(phone)
    return normalized is not None and normalized == phone


def normalize_contact_name(name: str) -> str:
    """Trim and title-case each word: '  john   DOE ' -> 'John Doe'"""
    return " ".join(word[:1].upper() + word[1:].lower() for word in name.split())


def validate_contact_name(name: Optional[str]) -> ValidationResult:
    if not name or not isinstance(name, str):
        return ValidationResult(False, "Name is required")

    clean_name = name.strip()
    if not clean_name:
        return ValidationResult(False, "Name cannot be empty")

    if len(clean_name) > CONTACT_NAME_MAX_LENGTH:
        return ValidationResult(False, f"Name is too long (max {CONTACT_NAME_MAX_LENGTH} characters)")

    if not CONTACT_NAME_RE.match(clean_name):
        return ValidationResult(False, "Name contains invalid characters")

    return ValidationResult(True)


def validate_amount_micro_stx(amount: int) -> ValidationResult:
    if not isinstance(amount, int) or isinstance(amount, bool):
        return ValidationResult(False, "Amount must be an integer (microSTX)")
    if amount <= 0:
        return ValidationResult(False, "Amount must be greater than 0")
    if amount > MAX_AMOUNT_MICRO_STX:
        return ValidationResult(False, "Amount is too large")
    return ValidationResult(True)


def require_positive_amount(amount: Decimal) -> int:
    """Validate a user-entered STX amount and return it in microSTX"""
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0.")
    micro_stx = stx_to_micro_stx(amount)
    result = validate_amount_micro_stx(micro_stx)
    if not result.valid:
        if micro_stx <= 0:
            raise ValidationError("Amount is too small (minimum: 0.000001 STX).")
        raise ValidationError(f"{result.error}.")
    return micro_stx


def require_stx_address(address: str) -> str:
    result = validate_stx_address(address)
    if not result.valid:
        raise ValidationError(f"Invalid STX address: {result.error}")
    return address.strip()
