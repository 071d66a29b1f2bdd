"""
Transaction Service - audit records for direct STX payments.

Rows are created right after a successful broadcast and only their status
fields change afterwards (pending -> confirmed | failed).
"""

import logging
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from database import Database
from models import Transaction, TransactionStatus
from services.errors import NotFoundError, StorageError, ValidationError
from utils.datetime_helpers import get_naive_utc_now
from utils.input_validation import validate_amount_micro_stx
from utils.transaction_state_validator import TransactionStateValidator

logger = logging.getLogger(__name__)

MAX_MEMO_LENGTH = 34


class TransactionService:
    def __init__(self, database: Database):
        self.database = database

    async def record_transaction(
        self,
        tx_id: str,
        sender_user_id: str,
        sender_address: str,
        recipient_address: str,
        amount_micro_stx: int,
        fee_micro_stx: int = 0,
        recipient_user_id: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> Transaction:
        amount_check = validate_amount_micro_stx(amount_micro_stx)
        if not amount_check.valid:
            raise ValidationError(amount_check.error)
        if memo and len(memo) > MAX_MEMO_LENGTH:
            memo = memo[:MAX_MEMO_LENGTH]

        try:
            async with self.database.session() as session:
                transaction = Transaction(
                    tx_id=tx_id,
                    sender_user_id=sender_user_id,
                    sender_address=sender_address,
                    recipient_user_id=recipient_user_id,
                    recipient_address=recipient_address,
                    amount_micro_stx=amount_micro_stx,
                    fee_micro_stx=fee_micro_stx,
                    memo=memo,
                    status=TransactionStatus.PENDING.value,
                    created_at=get_naive_utc_now(),
                )
                session.add(transaction)
                await session.flush()
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to record transaction {tx_id}: {e}")
            raise StorageError("Could not record transaction") from e

        logger.info(f"💾 Transaction {tx_id[:12]}... recorded as pending")
        return transaction

    async def get_by_tx_id(self, tx_id: str) -> Optional[Transaction]:
        try:
            async with self.database.session() as session:
                result = await session.execute(select(Transaction).where(Transaction.tx_id == tx_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("Could not load transaction") from e

    async def get_history(self, user_id: str, limit: int = 10) -> List[Transaction]:
        """Most recent payments sent or received by the user"""
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Transaction)
                    .where(or_(Transaction.sender_user_id == user_id, Transaction.recipient_user_id == user_id))
                    .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("Could not load transaction history") from e

    async def list_pending(self, limit: int = 50) -> List[Transaction]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Transaction)
                    .where(Transaction.status == TransactionStatus.PENDING.value, Transaction.tx_id.is_not(None))
                    .order_by(Transaction.created_at, Transaction.id)
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("Could not load pending transactions") from e

    async def update_status(
        self, tx_id: str, status: TransactionStatus, block_height: Optional[int] = None
    ) -> Transaction:
        """Move a transaction forward; regressions raise StateTransitionError"""
        try:
            async with self.database.session() as session:
                result = await session.execute(select(Transaction).where(Transaction.tx_id == tx_id))
                transaction = result.scalar_one_or_none()
                if transaction is None:
                    raise NotFoundError(f"Transaction {tx_id} not found")

                TransactionStateValidator.validate_and_transition(transaction, status)
                if block_height is not None:
                    transaction.block_height = block_height
                if status == TransactionStatus.CONFIRMED and transaction.confirmed_at is None:
                    transaction.confirmed_at = get_naive_utc_now()
        except SQLAlchemyError as e:
            raise StorageError("Could not update transaction") from e

        logger.info(f"🔄 Transaction {tx_id[:12]}... -> {status.value}")
        return transaction
