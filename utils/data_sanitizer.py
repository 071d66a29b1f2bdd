"""
Data Sanitization Module
Masks phone numbers, ledger addresses and secrets before they reach the logs
"""

import re
from typing import Any, Dict, Optional


class DataSanitizer:
    """Masking helpers for log-safe output"""

    SENSITIVE_PATTERNS = {
        "phone": re.compile(r"\+?\d{9,15}"),
        "stx_address": re.compile(r"\bS[PT][0-9A-Z]{39}\b"),
        "token": re.compile(r'(?i)(token|bearer|api[_-]?key)["\':=\s]*([a-zA-Z0-9_-]{16,})'),
    }

    SENSITIVE_FIELDS = {
        "auth_token",
        "api_key",
        "signer_api_key",
        "twilio_auth_token",
        "key_ref",
        "private_key",
    }

    @classmethod
    def mask_phone(cls, phone: Optional[str]) -> str:
        """+2348012345678 -> +234******5678"""
        if not phone:
            return "[NO_PHONE]"
        if len(phone) <= 8:
            return "***"
        return f"{phone[:4]}{'*' * (len(phone) - 8)}{phone[-4:]}"

    @classmethod
    def mask_address(cls, address: Optional[str]) -> str:
        if not address:
            return "[NO_ADDRESS]"
        if len(address) <= 12:
            return address
        return f"{address[:6]}...{address[-4:]}"

    @classmethod
    def sanitize_text(cls, text: str) -> str:
        """Mask sensitive patterns in free text"""
        if not text:
            return text
        text = cls.SENSITIVE_PATTERNS["stx_address"].sub(lambda m: cls.mask_address(m.group(0)), text)
        text = cls.SENSITIVE_PATTERNS["phone"].sub(lambda m: cls.mask_phone(m.group(0)), text)
        return cls.SENSITIVE_PATTERNS["token"].sub(lambda m: f"{m.group(1)}=[REDACTED]", text)

    @classmethod
    def sanitize_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = {}
        for key, value in data.items():
            if key.lower() in cls.SENSITIVE_FIELDS:
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = cls.sanitize_dict(value)
            elif isinstance(value, str):
                sanitized[key] = cls.sanitize_text(value)
            else:
                sanitized[key] = value
        return sanitized

    @classmethod
    def mask_api_key(cls, api_key: Optional[str], show_chars: int = 2) -> str:
        if not api_key:
            return "[NO_API_KEY]"
        if len(api_key) <= show_chars * 2:
            return "[REDACTED]"
        return f"[API_KEY:{api_key[:show_chars]}***{api_key[-show_chars:]}]"


def mask_phone(phone: Optional[str]) -> str:
    return DataSanitizer.mask_phone(phone)


def mask_address(address: Optional[str]) -> str:
    return DataSanitizer.mask_address(address)


def mask_api_key_safe(api_key: Optional[str]) -> str:
    """Safely mask API key for any logging"""
    return DataSanitizer.mask_api_key(api_key)
