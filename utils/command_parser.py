"""
Command Parser - turns raw WhatsApp text into typed commands.

Every function here is pure: no I/O, no state. Keyword matching is done on the
trimmed, lower-cased message while names, recipients and memos keep the case
the user typed. A parse function returns None when its shape does not match;
cross-family ambiguity is settled by the dispatcher's priority order.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from utils.input_validation import is_valid_stx_address

AMOUNT_PATTERN = r"(\d+(?:\.\d+)?)"

SEND_PATTERNS = (
    re.compile(rf"^send\s+{AMOUNT_PATTERN}\s+to\s+(.+)$", re.IGNORECASE),
    re.compile(rf"^send\s+{AMOUNT_PATTERN}\s+stx\s+to\s+(.+)$", re.IGNORECASE),
)
ESCROW_CREATE_PATTERN = re.compile(
    rf"^escrow\s+{AMOUNT_PATTERN}\s+(?:stx\s+)?to\s+(.+?)\s+for\s+(\d+)\s+(hours?|days?)\b",
    re.IGNORECASE,
)
ESCROW_ACTION_PATTERN = re.compile(r"^(release|refund|cancel)\s+escrow\s+#?(\d+)\b", re.IGNORECASE)
ESCROW_STATUS_PATTERN = re.compile(r"^escrow\s+status\s+#?(\d+)\b", re.IGNORECASE)
ADDRESS_SEARCH_PATTERN = re.compile(r"(SP|ST)[0-9A-Z]{38,40}")

HELP_WORDS = frozenset({"help", "menu", "commands", "?"})
CONTACTS_WORDS = frozenset({"contacts", "list contacts", "my contacts", "show contacts"})
LIST_ESCROWS_WORDS = frozenset({"my escrows", "escrows"})
REGISTRATION_KEYWORD = "register"
CANCEL_WORDS = frozenset({"cancel", "stop"})


class SimpleCommandKind(Enum):
    BALANCE = "balance"
    HISTORY = "history"
    CONTACTS = "contacts"


class ConfirmationReply(Enum):
    YES = "yes"
    NO = "no"


class EscrowTimeUnit(Enum):
    HOUR = "hour"
    DAY = "day"


@dataclass(frozen=True)
class SendCommand:
    amount: Decimal
    recipient: str


@dataclass(frozen=True)
class AddContactCommand:
    name: str
    address: str


@dataclass(frozen=True)
class EscrowCreateCommand:
    amount: Decimal
    recipient: str
    duration: int
    unit: EscrowTimeUnit


@dataclass(frozen=True)
class EscrowActionCommand:
    action: str
    escrow_id: int


@dataclass(frozen=True)
class EscrowStatusCommand:
    escrow_id: int


@dataclass(frozen=True)
class ListEscrowsCommand:
    pass


@dataclass(frozen=True)
class SimpleCommand:
    kind: SimpleCommandKind


def normalize(message: str) -> str:
    return (message or "").strip().lower()


def parse_send(message: str) -> Optional[SendCommand]:
    """'send 10 to Bob', 'send 10 stx to Bob', 'send 10.5 to SP2J6...'"""
    text = (message or "").strip()
    for pattern in SEND_PATTERNS:
        match = pattern.match(text)
        if match:
            recipient = match.group(2).strip()
            if not recipient:
                return None
            return SendCommand(amount=Decimal(match.group(1)), recipient=recipient)
    return None


def parse_add_contact(message: str) -> Optional[AddContactCommand]:
    """
    'add contact John SP2J6...' or 'add contact John Doe SP2J6...'.

    The address is the last whitespace-delimited token and every token between
    'add contact' and the address forms the name.
    """
    parts = (message or "").split()
    if len(parts) < 4:
        return None
    if parts[0].lower() != "add" or parts[1].lower() != "contact":
        return None
    name = " ".join(parts[2:-1]).strip()
    if not name:
        return None
    return AddContactCommand(name=name, address=parts[-1])


def parse_escrow_create(message: str) -> Optional[EscrowCreateCommand]:
    """'escrow 5 to John for 24 hours', 'escrow 10 to Jane for 3 days'"""
    match = ESCROW_CREATE_PATTERN.match((message or "").strip())
    if not match:
        return None
    unit_text = match.group(4).lower()
    unit = EscrowTimeUnit.HOUR if unit_text.startswith("hour") else EscrowTimeUnit.DAY
    return EscrowCreateCommand(
        amount=Decimal(match.group(1)),
        recipient=match.group(2).strip(),
        duration=int(match.group(3)),
        unit=unit,
    )


def parse_escrow_action(message: str) -> Optional[EscrowActionCommand]:
    """'release escrow #1', 'refund escrow 2', 'cancel escrow #3'"""
    match = ESCROW_ACTION_PATTERN.match((message or "").strip())
    if not match:
        return None
    return EscrowActionCommand(action=match.group(1).lower(), escrow_id=int(match.group(2)))


def parse_escrow_status(message: str) -> Optional[EscrowStatusCommand]:
    match = ESCROW_STATUS_PATTERN.match((message or "").strip())
    if not match:
        return None
    return EscrowStatusCommand(escrow_id=int(match.group(1)))


def parse_list_escrows(message: str) -> Optional[ListEscrowsCommand]:
    if normalize(message) in LIST_ESCROWS_WORDS:
        return ListEscrowsCommand()
    return None


def parse_simple_command(message: str) -> Optional[SimpleCommand]:
    text = normalize(message)
    if text == "balance":
        return SimpleCommand(SimpleCommandKind.BALANCE)
    if text.startswith("history"):
        return SimpleCommand(SimpleCommandKind.HISTORY)
    if text in CONTACTS_WORDS:
        return SimpleCommand(SimpleCommandKind.CONTACTS)
    return None


def extract_registration_address(message: str) -> Optional[str]:
    """Return a valid STX address found anywhere in the message"""
    text = (message or "").strip()
    if is_valid_stx_address(text):
        return text
    match = ADDRESS_SEARCH_PATTERN.search(text)
    if match and is_valid_stx_address(match.group(0)):
        return match.group(0)
    return None


def parse_confirmation(message: str) -> Optional[ConfirmationReply]:
    """Exact 'yes'/'no' only; anything else means re-prompt"""
    text = normalize(message)
    if text == "yes":
        return ConfirmationReply.YES
    if text == "no":
        return ConfirmationReply.NO
    return None


def is_help_command(message: str) -> bool:
    return normalize(message) in HELP_WORDS


def is_registration_command(message: str) -> bool:
    return normalize(message).startswith(REGISTRATION_KEYWORD)


def is_cancel_command(message: str) -> bool:
    return normalize(message) in CANCEL_WORDS


def is_escrow_command(message: str) -> bool:
    """Shape check used by the dispatcher to pick the escrow router"""
    text = normalize(message)
    return (
        text.startswith("escrow")
        or text.startswith("release escrow")
        or text.startswith("refund escrow")
        or text.startswith("cancel escrow")
        or "escrow status" in text
        or text in LIST_ESCROWS_WORDS
    )


def escrow_timeout_blocks(duration: int, unit: str) -> int:
    """6 blocks per hour, 144 per day (~10 minute blocks)"""
    unit_text = unit.value if isinstance(unit, EscrowTimeUnit) else str(unit).lower()
    if unit_text.startswith("hour"):
        return duration * 6
    if unit_text.startswith("day"):
        return duration * 144
    raise ValueError(f"Unsupported escrow time unit: {unit!r}")


def describe_duration(duration: int, unit: EscrowTimeUnit) -> str:
    label = "hour" if unit == EscrowTimeUnit.HOUR else "day"
    return f"{duration} {label}{'s' if duration > 1 else ''}"
