"""
STX WhatsApp Bot - Database Schema
==================================

Entities backing the conversational payment engine:
- Accounts mapping a WhatsApp phone number to a Stacks address
- Per-user contact books
- The single in-flight conversation state per user
- Direct payment and escrow records mirroring on-chain activity
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import (
    BigInteger, String, DateTime, Integer, Text, JSON,
    UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# ============================================================================
# ENUMS - Business Logic Constants
# ============================================================================

class StateType(Enum):
    """Owner of a conversation state - one per command router"""
    REGISTRATION = "registration"
    PAYMENT = "payment"
    ESCROW = "escrow"


class TransactionStatus(Enum):
    """Direct payment lifecycle - monotonic, no regression"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class EscrowStatus(Enum):
    """Escrow lifecycle: pending -> active -> released/refunded/cancelled"""
    PENDING = "pending"
    ACTIVE = "active"
    RELEASED = "released"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class EscrowAction(Enum):
    """User-triggered escrow resolutions"""
    RELEASE = "release"
    REFUND = "refund"
    CANCEL = "cancel"


# ============================================================================
# MODELS
# ============================================================================

class Account(Base):
    """Registered user - WhatsApp identity bound to a single Stacks address"""
    __tablename__ = "accounts"

    user_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    ledger_address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    def __repr__(self):
        return f"<Account(user_id='{self.user_id}', ledger_address='{self.ledger_address}')>"


class Contact(Base):
    """Address book entry owned by exactly one account"""
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # Stored normalized (trimmed, title case) so uniqueness is case-insensitive
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    ledger_address: Mapped[str] = mapped_column(String(64), nullable=False)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "display_name", name="uq_contact_owner_name"),
        Index("idx_contact_owner", "user_id"),
    )

    def __repr__(self):
        return f"<Contact(owner='{self.user_id}', name='{self.display_name}')>"


class ConversationState(Base):
    """The single in-flight multi-step operation for a user"""
    __tablename__ = "conversation_states"

    user_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    state_type: Mapped[str] = mapped_column(String(20), nullable=False)
    step: Mapped[str] = mapped_column(String(40), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, index=True)

    def __repr__(self):
        return f"<ConversationState(user_id='{self.user_id}', {self.state_type}/{self.step})>"


class Transaction(Base):
    """Audit row for a broadcast direct payment"""
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tx_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, unique=True, index=True)

    sender_user_id: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    sender_address: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_user_id: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    recipient_address: Mapped[str] = mapped_column(String(64), nullable=False)

    amount_micro_stx: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_micro_stx: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    memo: Mapped[Optional[str]] = mapped_column(String(34), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    block_height: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    __table_args__ = (
        CheckConstraint("amount_micro_stx > 0", name="ck_transaction_amount_positive"),
    )

    def __repr__(self):
        return f"<Transaction(tx_id='{self.tx_id}', status='{self.status}')>"


class Escrow(Base):
    """Local mirror of one on-chain escrow"""
    __tablename__ = "escrows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Assigned by the contract; unknown until the create transaction confirms
    contract_escrow_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, unique=True, index=True)

    sender_user_id: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    sender_address: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_user_id: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    recipient_address: Mapped[str] = mapped_column(String(64), nullable=False)

    amount_micro_stx: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timeout_blocks: Mapped[int] = mapped_column(Integer, nullable=False)
    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EscrowStatus.PENDING.value, index=True)
    tx_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)
    resolution_tx_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    __table_args__ = (
        CheckConstraint("amount_micro_stx > 0", name="ck_escrow_amount_positive"),
        Index("idx_escrow_parties", "sender_user_id", "recipient_user_id"),
    )

    @property
    def display_id(self) -> int:
        """Identifier users type in commands: contract id once known"""
        return self.contract_escrow_id if self.contract_escrow_id is not None else self.id

    def __repr__(self):
        return f"<Escrow(id={self.id}, contract_id={self.contract_escrow_id}, status='{self.status}')>"
