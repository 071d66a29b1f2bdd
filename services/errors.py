"""
Error taxonomy for the conversational payment engine.

Services raise these exceptions; routers and the confirmation protocol turn
them into OperationResult values so every failure ends in exactly one
user-facing message.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CONFLICT = "conflict"
    STORAGE = "storage"
    LEDGER = "ledger"
    MESSAGING = "messaging"


class StxBotError(Exception):
    """Base class for all domain errors"""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(StxBotError):
    """Bad amount, address or command format"""
    kind = ErrorKind.VALIDATION


class NotFoundError(StxBotError):
    """Unknown recipient, escrow or account"""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.suggestion = suggestion
        super().__init__(message)


class RecipientNotFoundError(NotFoundError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(
            f'Recipient "{token}" not found. Add them as a contact or use their STX address.',
            suggestion="contacts",
        )


class NoActiveStateError(NotFoundError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("No active conversation state to update")


class AuthorizationError(StxBotError):
    """Wrong party attempting an escrow action"""
    kind = ErrorKind.AUTHORIZATION


class InsufficientFundsError(StxBotError):
    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(self, message: str, shortfall_micro_stx: int):
        self.shortfall_micro_stx = shortfall_micro_stx
        super().__init__(message)


class ConflictError(StxBotError):
    """Duplicate address, contact name or account"""
    kind = ErrorKind.CONFLICT


class StorageError(StxBotError):
    kind = ErrorKind.STORAGE


class LedgerError(StxBotError):
    kind = ErrorKind.LEDGER


class LedgerUnavailableError(LedgerError):
    """Transport-level failure talking to the Stacks API (retryable for reads)"""


class MessagingError(StxBotError):
    kind = ErrorKind.MESSAGING


class InvalidRecipientError(MessagingError):
    pass


class EmptyMessageError(MessagingError):
    pass


class StateTransitionError(StxBotError):
    """Raised when an invalid record status transition is attempted"""
    kind = ErrorKind.CONFLICT
