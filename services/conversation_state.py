"""
Conversation State Store
========================

At most one in-flight multi-step operation per user, persisted in the
conversation_states table with a fixed TTL. Expired rows are treated as absent
by every read; they are only removed by an explicit clear, a claim, or the
periodic purge.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from database import Database
from models import ConversationState, StateType
from services.errors import NoActiveStateError, StorageError
from services.state_payloads import deserialize_payload, merge_payload, serialize_payload
from utils.datetime_helpers import get_naive_utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveState:
    user_id: str
    state_type: StateType
    step: str
    payload: Any
    created_at: datetime
    expires_at: datetime


class ConversationStateStore:
    """Single active conversation state per user, with expiry"""

    def __init__(
        self,
        database: Database,
        ttl_minutes: int = Config.CONVERSATION_STATE_TTL_MINUTES,
        clock: Callable[[], datetime] = get_naive_utc_now,
    ):
        self.database = database
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    def _to_active(self, row: ConversationState) -> ActiveState:
        return ActiveState(
            user_id=row.user_id,
            state_type=StateType(row.state_type),
            step=row.step,
            payload=deserialize_payload(row.state_type, row.step, row.payload or {}),
            created_at=row.created_at,
            expires_at=row.expires_at,
        )

    async def _load_unexpired(self, session, user_id: str) -> Optional[ConversationState]:
        result = await session.execute(
            select(ConversationState).where(
                ConversationState.user_id == user_id,
                ConversationState.expires_at > self.clock(),
            )
        )
        return result.scalar_one_or_none()

    async def set_state(self, user_id: str, state_type: StateType, step: str, payload: Any) -> ActiveState:
        """Create or replace the user's state; TTL restarts from now"""
        data = serialize_payload(state_type.value, step, payload)
        now = self.clock()
        try:
            async with self.database.session() as session:
                row = await session.get(ConversationState, user_id)
                if row is None:
                    row = ConversationState(user_id=user_id)
                    session.add(row)
                row.state_type = state_type.value
                row.step = step
                row.payload = data
                row.created_at = now
                row.expires_at = now + self.ttl
                active = self._to_active(row)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to save conversation state: {e}")
            raise StorageError("Could not save conversation state") from e

        logger.debug(f"💬 State set {state_type.value}/{step} (expires {active.expires_at:%H:%M:%S})")
        return active

    async def get_state(self, user_id: str) -> Optional[ActiveState]:
        try:
            async with self.database.session() as session:
                row = await self._load_unexpired(session, user_id)
                return self._to_active(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to read conversation state: {e}")
            raise StorageError("Could not read conversation state") from e

    async def update_state_data(self, user_id: str, changes: Dict[str, Any]) -> ActiveState:
        """Merge changes into the active payload and refresh the TTL"""
        current = await self.get_state(user_id)
        if current is None:
            raise NoActiveStateError(user_id)
        payload = merge_payload(current.payload, changes)
        return await self.set_state(user_id, current.state_type, current.step, payload)

    async def clear_state(self, user_id: str) -> bool:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    delete(ConversationState).where(ConversationState.user_id == user_id)
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to clear conversation state: {e}")
            raise StorageError("Could not clear conversation state") from e

    async def claim_state(self, user_id: str) -> Optional[ActiveState]:
        """
        Atomically take ownership of the active state.

        The row is deleted only if it is still the exact version that was read
        (same created_at) and still unexpired, so of two concurrent claims at
        most one gets the state back.
        """
        try:
            async with self.database.session() as session:
                row = await self._load_unexpired(session, user_id)
                if row is None:
                    return None
                active = self._to_active(row)
                result = await session.execute(
                    delete(ConversationState).where(
                        ConversationState.user_id == user_id,
                        ConversationState.created_at == active.created_at,
                        ConversationState.expires_at > self.clock(),
                    ).execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    logger.info(f"🔒 State for {user_id[-4:]} already claimed")
                    return None
                return active
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to claim conversation state: {e}")
            raise StorageError("Could not claim conversation state") from e

    async def has_active_state(self, user_id: str) -> bool:
        return await self.get_state(user_id) is not None

    async def get_state_type(self, user_id: str) -> Optional[StateType]:
        state = await self.get_state(user_id)
        return state.state_type if state else None

    async def clean_expired_states(self) -> int:
        """Delete expired rows; returns how many were removed"""
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    delete(ConversationState).where(ConversationState.expires_at <= self.clock())
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to purge expired states: {e}")
            raise StorageError("Could not purge expired conversation states") from e

        if removed:
            logger.info(f"🧹 Purged {removed} expired conversation states")
        return removed

    async def get_all_active_states(self) -> List[ActiveState]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(ConversationState)
                    .where(ConversationState.expires_at > self.clock())
                    .order_by(ConversationState.created_at)
                )
                return [self._to_active(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to list conversation states: {e}")
            raise StorageError("Could not list conversation states") from e
