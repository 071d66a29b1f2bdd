"""
Typed conversation-state payloads.

Each (state_type, step) pair owns exactly one payload dataclass. Payloads are
stored as JSON and rebuilt into their dataclass on read, so an execute step
only ever sees the fields its own step defined.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type

from models import StateType
from services.errors import ValidationError


class RegistrationStep:
    AWAITING_ADDRESS = "awaiting_address"


class PaymentStep:
    CONFIRM_SEND = "confirm_send"


class EscrowStep:
    CONFIRM_CREATE = "confirm_create"
    CONFIRM_RELEASE = "confirm_release"
    CONFIRM_REFUND = "confirm_refund"
    CONFIRM_CANCEL = "confirm_cancel"


@dataclass(frozen=True)
class ResolvedRecipient:
    """Outcome of recipient resolution: a raw address or a saved contact"""
    type: str
    address: str
    name: Optional[str] = None
    contact_phone: Optional[str] = None

    @property
    def is_contact(self) -> bool:
        return self.type == "contact"

    @property
    def label(self) -> str:
        return self.name or self.address

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedRecipient":
        return cls(
            type=data["type"],
            address=data["address"],
            name=data.get("name"),
            contact_phone=data.get("contact_phone"),
        )


@dataclass(frozen=True)
class AwaitingAddressPayload:
    started_at: str


@dataclass(frozen=True)
class ConfirmSendPayload:
    amount: str
    amount_micro_stx: int
    fee_micro_stx: int
    sender_address: str
    recipient: ResolvedRecipient


@dataclass(frozen=True)
class ConfirmEscrowCreatePayload:
    amount: str
    amount_micro_stx: int
    fee_micro_stx: int
    sender_address: str
    recipient: ResolvedRecipient
    timeout_blocks: int
    time_description: str


@dataclass(frozen=True)
class ConfirmEscrowActionPayload:
    """Shared shape for release / refund / cancel confirmations"""
    escrow_record_id: int
    contract_escrow_id: int
    caller_address: str
    amount_micro_stx: int
    memo: Optional[str] = None


PAYLOAD_TYPES: Dict[Tuple[str, str], Type] = {
    (StateType.REGISTRATION.value, RegistrationStep.AWAITING_ADDRESS): AwaitingAddressPayload,
    (StateType.PAYMENT.value, PaymentStep.CONFIRM_SEND): ConfirmSendPayload,
    (StateType.ESCROW.value, EscrowStep.CONFIRM_CREATE): ConfirmEscrowCreatePayload,
    (StateType.ESCROW.value, EscrowStep.CONFIRM_RELEASE): ConfirmEscrowActionPayload,
    (StateType.ESCROW.value, EscrowStep.CONFIRM_REFUND): ConfirmEscrowActionPayload,
    (StateType.ESCROW.value, EscrowStep.CONFIRM_CANCEL): ConfirmEscrowActionPayload,
}


def payload_type_for(state_type: str, step: str) -> Type:
    try:
        return PAYLOAD_TYPES[(state_type, step)]
    except KeyError:
        raise ValidationError(f"Unknown conversation step {state_type}/{step}") from None


def serialize_payload(state_type: str, step: str, payload: Any) -> Dict[str, Any]:
    expected = payload_type_for(state_type, step)
    if not isinstance(payload, expected):
        raise ValidationError(
            f"Payload for {state_type}/{step} must be {expected.__name__}, got {type(payload).__name__}"
        )
    return dataclasses.asdict(payload)


def deserialize_payload(state_type: str, step: str, data: Dict[str, Any]) -> Any:
    payload_cls = payload_type_for(state_type, step)
    kwargs = {}
    for payload_field in dataclasses.fields(payload_cls):
        if payload_field.name not in data:
            continue
        value = data[payload_field.name]
        if payload_field.name == "recipient" and isinstance(value, dict):
            value = ResolvedRecipient.from_dict(value)
        kwargs[payload_field.name] = value
    return payload_cls(**kwargs)


def merge_payload(payload: Any, changes: Dict[str, Any]) -> Any:
    """Apply a partial update; only fields of the current step's shape are accepted"""
    known = {f.name for f in dataclasses.fields(payload)}
    unknown = set(changes) - known
    if unknown:
        raise ValidationError(
            f"Fields {sorted(unknown)} are not part of {type(payload).__name__}"
        )
    if "recipient" in changes and isinstance(changes["recipient"], dict):
        changes = {**changes, "recipient": ResolvedRecipient.from_dict(changes["recipient"])}
    return dataclasses.replace(payload, **changes)
