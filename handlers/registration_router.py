"""
Registration Router
===================

no state -> awaiting_address -> registered

An address in the first message (e.g. "register SP2J6...") registers
immediately. Otherwise the user is prompted and the next message is taken as
the address. Checks run in order: address format, address not taken, create.
"""

import logging
from typing import Optional

from models import StateType
from handlers.base_router import CommandRouter
from services.confirmation import ConfirmationProtocol
from services.conversation_state import ActiveState, ConversationStateStore
from services.errors import ConflictError, StxBotError
from services.identity_resolver import IdentityResolver
from services.operation_result import OperationResult
from services.state_payloads import AwaitingAddressPayload, RegistrationStep
from utils.bot_messages import BotMessages
from utils.command_parser import extract_registration_address, is_cancel_command
from utils.datetime_helpers import get_naive_utc_now
from utils.input_validation import validate_stx_address

logger = logging.getLogger(__name__)


class RegistrationRouter(CommandRouter):
    state_type = StateType.REGISTRATION

    def __init__(
        self,
        identities: IdentityResolver,
        states: ConversationStateStore,
        confirmation: ConfirmationProtocol,
    ):
        self.identities = identities
        self.states = states
        self.confirmation = confirmation

    async def handle_command(self, user_id: str, text: str) -> Optional[OperationResult]:
        try:
            if await self.identities.account_exists(user_id):
                raise ConflictError('You are already registered. Type "help" for available commands.')

            address = extract_registration_address(text)
            if address is not None:
                return await self._complete(user_id, address)

            return await self.confirmation.stage(
                user_id,
                StateType.REGISTRATION,
                RegistrationStep.AWAITING_ADDRESS,
                AwaitingAddressPayload(started_at=get_naive_utc_now().isoformat()),
                BotMessages.registration_prompt(),
            )
        except StxBotError as e:
            return OperationResult.from_error(e)

    async def handle_state_flow(self, user_id: str, text: str, state: ActiveState) -> OperationResult:
        if is_cancel_command(text):
            await self.states.clear_state(user_id)
            return OperationResult.ok(BotMessages.REGISTRATION_CANCELLED)

        candidate = extract_registration_address(text) or (text or "").strip()
        check = validate_stx_address(candidate)
        if not check.valid:
            # State stays staged so the user can try again
            return OperationResult.failure(BotMessages.invalid_registration_address(check.error))

        try:
            result = await self._complete(user_id, candidate)
        except StxBotError as e:
            await self.states.clear_state(user_id)
            return OperationResult.from_error(e)

        await self.states.clear_state(user_id)
        return result

    async def _complete(self, user_id: str, address: str) -> OperationResult:
        if await self.identities.address_exists(address):
            raise ConflictError("This STX address is already registered to another account.")

        account = await self.identities.create_account(user_id, address)
        return OperationResult.ok(BotMessages.registration_welcome(user_id, account.ledger_address))
