"""
Escrow Service - local mirror of on-chain escrows.

The record is created as pending when the create transaction is broadcast,
promoted to active once the chain assigns the contract escrow id, and moved to
a terminal status by release / refund / cancel. Records are never deleted.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from database import Database
from models import Escrow, EscrowAction, EscrowStatus
from services.errors import NotFoundError, StorageError, ValidationError
from utils.datetime_helpers import get_naive_utc_now
from utils.escrow_state_validator import EscrowStateValidator
from utils.input_validation import validate_amount_micro_stx

logger = logging.getLogger(__name__)

ACTION_TO_STATUS = {
    EscrowAction.RELEASE: EscrowStatus.RELEASED,
    EscrowAction.REFUND: EscrowStatus.REFUNDED,
    EscrowAction.CANCEL: EscrowStatus.CANCELLED,
}


class EscrowService:
    def __init__(self, database: Database):
        self.database = database

    async def record_pending(
        self,
        sender_user_id: str,
        sender_address: str,
        recipient_address: str,
        amount_micro_stx: int,
        timeout_blocks: int,
        memo: str,
        tx_id: str,
        recipient_user_id: Optional[str] = None,
    ) -> Escrow:
        amount_check = validate_amount_micro_stx(amount_micro_stx)
        if not amount_check.valid:
            raise ValidationError(amount_check.error)
        if timeout_blocks <= 0:
            raise ValidationError("Escrow timeout must be at least one block")

        now = get_naive_utc_now()
        try:
            async with self.database.session() as session:
                escrow = Escrow(
                    sender_user_id=sender_user_id,
                    sender_address=sender_address,
                    recipient_user_id=recipient_user_id,
                    recipient_address=recipient_address,
                    amount_micro_stx=amount_micro_stx,
                    timeout_blocks=timeout_blocks,
                    memo=memo,
                    status=EscrowStatus.PENDING.value,
                    tx_id=tx_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(escrow)
                await session.flush()
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to record escrow for tx {tx_id}: {e}")
            raise StorageError("Could not record escrow") from e

        logger.info(f"🔒 Escrow record #{escrow.id} saved as pending (tx {tx_id[:12]}...)")
        return escrow

    async def get(self, record_id: int) -> Optional[Escrow]:
        try:
            async with self.database.session() as session:
                return await session.get(Escrow, record_id)
        except SQLAlchemyError as e:
            raise StorageError("Could not load escrow") from e

    async def find_by_display_id(self, escrow_id: int) -> Optional[Escrow]:
        """
        Look up the escrow a user refers to as #N.

        Contract ids take precedence; records still waiting for their contract
        id are addressed by their local id.
        """
        try:
            async with self.database.session() as session:
                result = await session.execute(select(Escrow).where(Escrow.contract_escrow_id == escrow_id))
                escrow = result.scalar_one_or_none()
                if escrow is not None:
                    return escrow
                result = await session.execute(
                    select(Escrow).where(Escrow.id == escrow_id, Escrow.contract_escrow_id.is_(None))
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("Could not load escrow") from e

    async def list_for_user(self, user_id: str, ledger_address: Optional[str] = None) -> List[Escrow]:
        conditions = [Escrow.sender_user_id == user_id, Escrow.recipient_user_id == user_id]
        if ledger_address:
            conditions.append(Escrow.recipient_address == ledger_address)
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Escrow).where(or_(*conditions)).order_by(Escrow.created_at.desc(), Escrow.id.desc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("Could not load escrows") from e

    async def list_pending_since(self, since: datetime, limit: int = 50) -> List[Escrow]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Escrow)
                    .where(
                        Escrow.status == EscrowStatus.PENDING.value,
                        Escrow.tx_id.is_not(None),
                        Escrow.created_at >= since,
                    )
                    .order_by(Escrow.created_at)
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("Could not load pending escrows") from e

    async def activate(self, record_id: int, contract_escrow_id: int) -> Escrow:
        """pending -> active once the contract assigned its id"""
        try:
            async with self.database.session() as session:
                escrow = await session.get(Escrow, record_id)
                if escrow is None:
                    raise NotFoundError(f"Escrow record {record_id} not found")
                EscrowStateValidator.validate_and_transition(escrow, EscrowStatus.ACTIVE)
                escrow.contract_escrow_id = contract_escrow_id
                escrow.updated_at = get_naive_utc_now()
        except SQLAlchemyError as e:
            raise StorageError("Could not activate escrow") from e

        logger.info(f"🟢 Escrow record #{record_id} active as contract escrow #{contract_escrow_id}")
        return escrow

    async def apply_action(self, record_id: int, action: EscrowAction, tx_id: str) -> Escrow:
        """active -> released | refunded | cancelled"""
        new_status = ACTION_TO_STATUS[action]
        try:
            async with self.database.session() as session:
                escrow = await session.get(Escrow, record_id)
                if escrow is None:
                    raise NotFoundError(f"Escrow record {record_id} not found")
                EscrowStateValidator.validate_and_transition(escrow, new_status)
                escrow.resolution_tx_id = tx_id
                escrow.updated_at = get_naive_utc_now()
        except SQLAlchemyError as e:
            raise StorageError("Could not update escrow") from e

        return escrow
