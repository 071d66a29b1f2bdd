"""
Dispatcher - single entry point for inbound WhatsApp messages.

Routing priority:
1. help / menu                          -> help text (even with an active state)
2. no account, or "register..."         -> registration router
3. active escrow or payment state       -> that router's state flow
4. escrow command shape                 -> escrow router
5. anything else                        -> payment router
6. no router claimed the message        -> unknown-command text

Every reply goes out through the messaging gateway: one message to the sender
plus any notifications the operation produced.
"""

import logging

from handlers.escrow_router import EscrowRouter
from handlers.payment_router import PaymentRouter
from handlers.registration_router import RegistrationRouter
from models import StateType
from services.conversation_state import ConversationStateStore
from services.errors import MessagingError
from services.identity_resolver import IdentityResolver
from services.operation_result import OperationResult
from services.whatsapp_service import WhatsAppService
from utils.bot_messages import BotMessages
from utils.command_parser import is_escrow_command, is_help_command, is_registration_command
from utils.data_sanitizer import mask_phone

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        identities: IdentityResolver,
        states: ConversationStateStore,
        registration: RegistrationRouter,
        payments: PaymentRouter,
        escrows: EscrowRouter,
        messaging: WhatsAppService,
    ):
        self.identities = identities
        self.states = states
        self.registration = registration
        self.payments = payments
        self.escrows = escrows
        self.messaging = messaging
        self.state_routers = {
            StateType.PAYMENT: payments,
            StateType.ESCROW: escrows,
        }

    async def on_inbound_message(self, user_id: str, text: str) -> None:
        logger.info(f"📨 Message from {mask_phone(user_id)}: '{(text or '')[:30]}'")
        try:
            result = await self.route(user_id, text)
        except Exception as e:
            logger.exception(f"❌ Error processing message from {mask_phone(user_id)}: {e}")
            result = OperationResult.failure(BotMessages.GENERIC_FAILURE)

        await self._deliver(user_id, result)

    async def route(self, user_id: str, text: str) -> OperationResult:
        if is_help_command(text):
            account = await self.identities.find_account(user_id)
            if account is None:
                return OperationResult.ok(BotMessages.help_unregistered())
            return OperationResult.ok(BotMessages.help_registered(account.ledger_address))

        state = await self.states.get_state(user_id)

        account_exists = await self.identities.account_exists(user_id)
        if not account_exists or is_registration_command(text):
            logger.debug("Routing to registration router")
            if state is not None and state.state_type == StateType.REGISTRATION:
                return await self.registration.handle_state_flow(user_id, text, state)
            return await self.registration.handle_command(user_id, text)

        if state is not None and state.state_type in self.state_routers:
            logger.debug(f"Routing to {state.state_type.value} state flow ({state.step})")
            return await self.state_routers[state.state_type].handle_state_flow(user_id, text, state)

        if is_escrow_command(text):
            logger.debug("Routing to escrow router")
            result = await self.escrows.handle_command(user_id, text)
        else:
            logger.debug("Routing to payment router")
            result = await self.payments.handle_command(user_id, text)

        if result is None:
            return OperationResult.failure(BotMessages.unknown_command())
        return result

    async def _deliver(self, user_id: str, result: OperationResult) -> None:
        outgoing = [(user_id, result.message)]
        outgoing.extend((note.user_id, note.text) for note in result.notifications)
        for recipient, text in outgoing:
            try:
                send_result = await self.messaging.send_message(recipient, text)
            except MessagingError as e:
                logger.error(f"❌ Could not message {mask_phone(recipient)}: {e.message}")
                continue
            if not send_result.delivered:
                logger.warning(f"⚠️ Message to {mask_phone(recipient)} not delivered: {send_result.error}")
