"""
Confirmation Protocol
=====================

Two-phase confirm / execute for every fund-moving action.

stage():   persist the pending action and answer with the prompt.
resolve(): interpret the user's reply to a staged action:
    - anything other than yes/no -> fixed reminder, state untouched
    - "no"  -> state cleared, cancellation acknowledged
    - "yes" -> state claimed atomically, then the action runs exactly once.
      A second "yes" finds nothing to claim and gets the unknown-command
      answer. Failures during execution are reported, never retried; the
      state is already gone by then.
"""

import logging
from typing import Any, Awaitable, Callable

from models import StateType
from services.conversation_state import ActiveState, ConversationStateStore
from services.errors import ErrorKind, StxBotError
from services.operation_result import OperationResult
from utils.bot_messages import BotMessages
from utils.command_parser import ConfirmationReply, parse_confirmation

logger = logging.getLogger(__name__)

Executor = Callable[[ActiveState], Awaitable[OperationResult]]


class ConfirmationProtocol:
    def __init__(self, states: ConversationStateStore):
        self.states = states

    async def stage(
        self, user_id: str, state_type: StateType, step: str, payload: Any, prompt: str
    ) -> OperationResult:
        await self.states.set_state(user_id, state_type, step, payload)
        logger.info(f"📝 Staged {state_type.value}/{step} for user ...{user_id[-4:]}")
        return OperationResult.ok(prompt)

    async def resolve(
        self,
        user_id: str,
        message: str,
        execute: Executor,
        cancel_text: str,
        failure_prefix: str = "❌ ",
    ) -> OperationResult:
        reply = parse_confirmation(message)

        if reply is None:
            return OperationResult.ok(BotMessages.CONFIRMATION_REMINDER)

        if reply == ConfirmationReply.NO:
            await self.states.clear_state(user_id)
            logger.info(f"🚫 User ...{user_id[-4:]} declined staged action")
            return OperationResult.ok(cancel_text)

        claimed = await self.states.claim_state(user_id)
        if claimed is None:
            return OperationResult.failure(BotMessages.unknown_command(), ErrorKind.NOT_FOUND)

        logger.info(f"▶️ Executing {claimed.state_type.value}/{claimed.step} for user ...{user_id[-4:]}")
        try:
            return await execute(claimed)
        except StxBotError as e:
            logger.warning(f"⚠️ {claimed.state_type.value}/{claimed.step} failed: {e.message}")
            return OperationResult.from_error(e, prefix=failure_prefix)
