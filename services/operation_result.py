"""Outcome of handling one inbound message"""

from dataclasses import dataclass, field
from typing import List, Optional

from services.errors import ErrorKind, StxBotError


@dataclass(frozen=True)
class Notification:
    user_id: str
    text: str


@dataclass(frozen=True)
class OperationResult:
    """
    What the dispatcher should send: `message` goes back to the sender and each
    notification to its recipient.
    """
    success: bool
    message: str
    error_kind: Optional[ErrorKind] = None
    notifications: List[Notification] = field(default_factory=list)

    @classmethod
    def ok(cls, message: str, notifications: Optional[List[Notification]] = None) -> "OperationResult":
        return cls(success=True, message=message, notifications=list(notifications or []))

    @classmethod
    def failure(cls, message: str, error_kind: Optional[ErrorKind] = None) -> "OperationResult":
        return cls(success=False, message=message, error_kind=error_kind)

    @classmethod
    def from_error(cls, error: StxBotError, prefix: str = "❌ ") -> "OperationResult":
        message = f"{prefix}{error.message}"
        suggestion = getattr(error, "suggestion", None)
        if suggestion:
            message += f'\n\n💡 Type "{suggestion}" to see what you have.'
        return cls.failure(message, error.kind)
