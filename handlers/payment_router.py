"""
Payment Router
==============

balance, history, contacts, add contact, send.

Only "send" moves funds and so is the only command that stages a
confirmation. Everything a user could fix (amount, recipient, balance) is
checked before staging.
"""

import logging
from typing import Optional

from config import Config
from handlers.base_router import CommandRouter
from models import Account, StateType
from services.confirmation import ConfirmationProtocol
from services.contact_service import ContactService
from services.conversation_state import ActiveState
from services.errors import InsufficientFundsError, StxBotError, ValidationError
from services.identity_resolver import IdentityResolver
from services.operation_result import Notification, OperationResult
from services.stacks_gateway import StacksGateway
from services.state_payloads import ConfirmSendPayload, PaymentStep
from services.transaction_service import TransactionService
from utils.bot_messages import BotMessages
from utils.command_parser import (
    SimpleCommandKind,
    normalize,
    parse_add_contact,
    parse_send,
    parse_simple_command,
)
from utils.data_sanitizer import mask_address
from utils.decimal_precision import format_stx_amount, micro_stx_to_stx
from utils.input_validation import require_positive_amount

logger = logging.getLogger(__name__)

SEND_FORMAT_HELP = (
    "❌ Invalid format.\n\n"
    "Use: send [amount] to [name or address]\n\n"
    "Examples:\n• send 5 to John\n• send 10 to SP2J6ZY48GV1..."
)
ADD_CONTACT_FORMAT_HELP = (
    "❌ Invalid format.\n\n"
    "Use: add contact [Name] [STX-Address]\n\n"
    "Example: add contact John SP2J6ZY48GV1EZ5V..."
)
PAYMENT_MEMO = "Payment via WhatsApp"


class PaymentRouter(CommandRouter):
    state_type = StateType.PAYMENT

    def __init__(
        self,
        identities: IdentityResolver,
        contacts: ContactService,
        transactions: TransactionService,
        ledger: StacksGateway,
        confirmation: ConfirmationProtocol,
    ):
        self.identities = identities
        self.contacts = contacts
        self.transactions = transactions
        self.ledger = ledger
        self.confirmation = confirmation

    async def handle_command(self, user_id: str, text: str) -> Optional[OperationResult]:
        try:
            account = await self.identities.get_account(user_id)

            simple = parse_simple_command(text)
            if simple is not None:
                if simple.kind == SimpleCommandKind.BALANCE:
                    return await self._balance(account)
                if simple.kind == SimpleCommandKind.HISTORY:
                    return await self._history(user_id)
                return await self._list_contacts(user_id)

            command_text = normalize(text)
            if command_text.startswith("add contact"):
                return await self._add_contact(user_id, text)
            if command_text.startswith("send"):
                return await self._stage_send(user_id, account, text)
        except StxBotError as e:
            return OperationResult.from_error(e)

        return None

    async def handle_state_flow(self, user_id: str, text: str, state: ActiveState) -> OperationResult:
        return await self.confirmation.resolve(
            user_id,
            text,
            self._execute,
            cancel_text=BotMessages.PAYMENT_CANCELLED,
            failure_prefix="❌ Payment failed: ",
        )

    async def _balance(self, account: Account) -> OperationResult:
        balance = await self.ledger.get_balance(account.ledger_address)
        return OperationResult.ok(
            BotMessages.balance(balance.balance_micro_stx, balance.locked_micro_stx, account.ledger_address)
        )

    async def _history(self, user_id: str) -> OperationResult:
        transactions = await self.transactions.get_history(user_id, limit=Config.HISTORY_LIMIT)
        return OperationResult.ok(BotMessages.history(transactions, user_id))

    async def _list_contacts(self, user_id: str) -> OperationResult:
        contacts = await self.contacts.list_contacts(user_id)
        return OperationResult.ok(BotMessages.contact_list(contacts))

    async def _add_contact(self, user_id: str, text: str) -> OperationResult:
        command = parse_add_contact(text)
        if command is None:
            return OperationResult.failure(ADD_CONTACT_FORMAT_HELP)
        contact = await self.contacts.add_contact(user_id, command.name, command.address)
        return OperationResult.ok(BotMessages.contact_added(contact.display_name, contact.ledger_address))

    async def _stage_send(self, user_id: str, account: Account, text: str) -> OperationResult:
        command = parse_send(text)
        if command is None:
            return OperationResult.failure(SEND_FORMAT_HELP)

        amount_micro_stx = require_positive_amount(command.amount)
        recipient = await self.identities.resolve_recipient(user_id, command.recipient)
        if recipient.address == account.ledger_address:
            raise ValidationError("You cannot send STX to your own address.")

        balance = await self.ledger.get_balance(account.ledger_address)
        fees = await self.ledger.estimate_fee()
        needed = amount_micro_stx + fees.medium
        if balance.spendable_micro_stx < needed:
            raise InsufficientFundsError(
                BotMessages.insufficient_balance(balance.spendable_micro_stx, needed, fees.medium),
                shortfall_micro_stx=needed - balance.spendable_micro_stx,
            )

        amount = format_stx_amount(micro_stx_to_stx(amount_micro_stx))
        payload = ConfirmSendPayload(
            amount=amount,
            amount_micro_stx=amount_micro_stx,
            fee_micro_stx=fees.medium,
            sender_address=account.ledger_address,
            recipient=recipient,
        )
        prompt = BotMessages.confirm_send(amount, recipient.label, recipient.address, fees.medium, needed)
        return await self.confirmation.stage(user_id, StateType.PAYMENT, PaymentStep.CONFIRM_SEND, payload, prompt)

    async def _execute(self, state: ActiveState) -> OperationResult:
        payload: ConfirmSendPayload = state.payload
        user_id = state.user_id

        account = await self.identities.get_account(user_id)
        signer = self.ledger.resolve_signer(account)
        tx_id = await self.ledger.broadcast_transfer(
            signer,
            payload.recipient.address,
            payload.amount_micro_stx,
            payload.fee_micro_stx,
            memo=PAYMENT_MEMO,
        )

        recipient_user_id = await self.identities.find_recipient_user(payload.recipient)
        try:
            await self.transactions.record_transaction(
                tx_id=tx_id,
                sender_user_id=user_id,
                sender_address=payload.sender_address,
                recipient_address=payload.recipient.address,
                amount_micro_stx=payload.amount_micro_stx,
                fee_micro_stx=payload.fee_micro_stx,
                recipient_user_id=recipient_user_id,
                memo=PAYMENT_MEMO,
            )
        except StxBotError as e:
            # Funds already moved; the sender still needs the txid
            logger.error(f"❌ Broadcast {tx_id} succeeded but recording failed: {e.message}")

        logger.info(
            f"💸 Payment {payload.amount} STX to {mask_address(payload.recipient.address)} broadcast as {tx_id}"
        )
        notifications = []
        if recipient_user_id and recipient_user_id != user_id:
            notifications.append(
                Notification(recipient_user_id, BotMessages.payment_received(payload.amount, user_id, tx_id))
            )
        return OperationResult.ok(
            BotMessages.payment_sent(payload.amount, payload.recipient.name or "Address", tx_id),
            notifications,
        )
