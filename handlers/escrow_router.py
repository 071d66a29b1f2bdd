"""
Escrow Router
=============

Contract-backed escrow commands:
- "escrow 5 to John for 24 hours"  create (confirm_create)
- "release escrow #1"              sender or recipient, active only (confirm_release)
- "refund escrow #1"               sender only, active and past timeout (confirm_refund)
- "cancel escrow #1"               sender only, active only (confirm_cancel)
- "escrow status #1", "my escrows" read-only
"""

import logging
from typing import Optional

from handlers.base_router import CommandRouter
from models import Account, Escrow, EscrowAction, EscrowStatus, StateType
from services.confirmation import ConfirmationProtocol
from services.conversation_state import ActiveState
from services.errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    StxBotError,
    ValidationError,
)
from services.escrow_contract import EscrowContract
from services.escrow_service import EscrowService
from services.identity_resolver import IdentityResolver
from services.operation_result import Notification, OperationResult
from services.stacks_gateway import StacksGateway
from services.state_payloads import ConfirmEscrowActionPayload, ConfirmEscrowCreatePayload, EscrowStep
from utils.bot_messages import BotMessages, short_address
from utils.command_parser import (
    EscrowActionCommand,
    describe_duration,
    escrow_timeout_blocks,
    normalize,
    parse_escrow_action,
    parse_escrow_create,
    parse_escrow_status,
    parse_list_escrows,
)
from utils.decimal_precision import format_stx_amount, micro_stx_to_stx
from utils.input_validation import require_positive_amount

logger = logging.getLogger(__name__)

CREATE_FORMAT_HELP = (
    "❌ Invalid format.\n\n"
    "Use: escrow [amount] to [name/address] for [time] hours/days\n\n"
    "Examples:\n• escrow 5 to John for 24 hours\n• escrow 10 to Jane for 3 days"
)

ACTION_STEPS = {
    EscrowAction.RELEASE: EscrowStep.CONFIRM_RELEASE,
    EscrowAction.REFUND: EscrowStep.CONFIRM_REFUND,
    EscrowAction.CANCEL: EscrowStep.CONFIRM_CANCEL,
}
STEP_ACTIONS = {step: action for action, step in ACTION_STEPS.items()}

FAILURE_PREFIXES = {
    EscrowStep.CONFIRM_CREATE: "❌ Failed to create escrow: ",
    EscrowStep.CONFIRM_RELEASE: "❌ Failed to release escrow: ",
    EscrowStep.CONFIRM_REFUND: "❌ Failed to refund escrow: ",
    EscrowStep.CONFIRM_CANCEL: "❌ Failed to cancel escrow: ",
}


def escrow_memo(time_description: str) -> str:
    return f"Escrow via WhatsApp - {time_description}"


class EscrowRouter(CommandRouter):
    state_type = StateType.ESCROW

    def __init__(
        self,
        identities: IdentityResolver,
        escrows: EscrowService,
        contract: EscrowContract,
        ledger: StacksGateway,
        confirmation: ConfirmationProtocol,
    ):
        self.identities = identities
        self.escrows = escrows
        self.contract = contract
        self.ledger = ledger
        self.confirmation = confirmation

    async def handle_command(self, user_id: str, text: str) -> Optional[OperationResult]:
        try:
            account = await self.identities.get_account(user_id)

            status_command = parse_escrow_status(text)
            if status_command is not None:
                return await self._status(account, status_command.escrow_id)

            if parse_list_escrows(text) is not None:
                return await self._list(account)

            action_command = parse_escrow_action(text)
            if action_command is not None:
                return await self._stage_action(account, action_command)

            create_command = parse_escrow_create(text)
            if create_command is not None:
                return await self._stage_create(account, create_command)

            command_text = normalize(text)
            for verb in ("release", "refund", "cancel"):
                if command_text.startswith(f"{verb} escrow"):
                    return OperationResult.failure(
                        f"❌ Invalid format.\n\nUse: {verb} escrow #[id]\n\nExample: {verb} escrow #1"
                    )
            if "escrow status" in command_text:
                return OperationResult.failure(
                    "❌ Invalid format.\n\nUse: escrow status #[id]\n\nExample: escrow status #1"
                )
            if command_text.startswith("escrow"):
                return OperationResult.failure(CREATE_FORMAT_HELP)
        except StxBotError as e:
            return OperationResult.from_error(e)

        return None

    async def handle_state_flow(self, user_id: str, text: str, state: ActiveState) -> OperationResult:
        return await self.confirmation.resolve(
            user_id,
            text,
            self._execute,
            cancel_text=BotMessages.ESCROW_CANCELLED,
            failure_prefix=FAILURE_PREFIXES.get(state.step, "❌ "),
        )

    # Read-only commands

    def _is_recipient(self, escrow: Escrow, account: Account) -> bool:
        return escrow.recipient_user_id == account.user_id or escrow.recipient_address == account.ledger_address

    def _is_party(self, escrow: Escrow, account: Account) -> bool:
        return escrow.sender_user_id == account.user_id or self._is_recipient(escrow, account)

    async def _status(self, account: Account, escrow_id: int) -> OperationResult:
        escrow = await self.escrows.find_by_display_id(escrow_id)
        if escrow is None or not self._is_party(escrow, account):
            raise NotFoundError(f"Escrow #{escrow_id} not found.", suggestion="my escrows")
        sender_label = escrow.sender_user_id or f"{escrow.sender_address[:10]}..."
        recipient_label = escrow.recipient_user_id or f"{escrow.recipient_address[:10]}..."
        return OperationResult.ok(BotMessages.escrow_status(escrow, sender_label, recipient_label))

    async def _list(self, account: Account) -> OperationResult:
        escrows = await self.escrows.list_for_user(account.user_id, account.ledger_address)
        return OperationResult.ok(BotMessages.escrow_list(escrows, account.user_id))

    # Staging

    async def _stage_create(self, account: Account, command) -> OperationResult:
        amount_micro_stx = require_positive_amount(command.amount)
        if command.duration <= 0:
            raise ValidationError("Escrow duration must be greater than 0.")
        timeout_blocks = escrow_timeout_blocks(command.duration, command.unit)
        time_description = describe_duration(command.duration, command.unit)

        recipient = await self.identities.resolve_recipient(account.user_id, command.recipient)
        if recipient.address == account.ledger_address:
            raise ValidationError("You cannot create an escrow to your own address.")

        balance = await self.ledger.get_balance(account.ledger_address)
        fees = await self.ledger.estimate_fee()
        needed = amount_micro_stx + fees.medium
        if balance.spendable_micro_stx < needed:
            raise InsufficientFundsError(
                BotMessages.insufficient_balance(balance.spendable_micro_stx, needed, fees.medium),
                shortfall_micro_stx=needed - balance.spendable_micro_stx,
            )

        amount = format_stx_amount(micro_stx_to_stx(amount_micro_stx))
        payload = ConfirmEscrowCreatePayload(
            amount=amount,
            amount_micro_stx=amount_micro_stx,
            fee_micro_stx=fees.medium,
            sender_address=account.ledger_address,
            recipient=recipient,
            timeout_blocks=timeout_blocks,
            time_description=time_description,
        )
        prompt = BotMessages.confirm_escrow_create(
            amount, recipient.label, recipient.address, time_description, fees.medium, needed
        )
        return await self.confirmation.stage(
            account.user_id, StateType.ESCROW, EscrowStep.CONFIRM_CREATE, payload, prompt
        )

    async def _stage_action(self, account: Account, command: EscrowActionCommand) -> OperationResult:
        action = EscrowAction(command.action)
        escrow = await self.escrows.find_by_display_id(command.escrow_id)
        if escrow is None:
            raise NotFoundError(f"Escrow #{command.escrow_id} not found.", suggestion="my escrows")

        is_sender = escrow.sender_user_id == account.user_id
        if action == EscrowAction.RELEASE:
            if not is_sender and not self._is_recipient(escrow, account):
                raise AuthorizationError("You are not authorized to release this escrow.")
        elif not is_sender:
            verb = "refund" if action == EscrowAction.REFUND else "cancel"
            raise AuthorizationError(f"Only the sender can {verb} this escrow.")

        if escrow.status != EscrowStatus.ACTIVE.value or escrow.contract_escrow_id is None:
            past = {"release": "released", "refund": "refunded", "cancel": "cancelled"}[action.value]
            raise ValidationError(f"Escrow is {escrow.status}. Only active escrows can be {past}.")

        if action == EscrowAction.REFUND and not await self.contract.can_refund(escrow.contract_escrow_id):
            return OperationResult.failure(
                BotMessages.refund_timeout_not_reached(escrow.display_id, escrow.timeout_blocks),
                ValidationError.kind,
            )

        counterparty = escrow.recipient_user_id or short_address(escrow.recipient_address)
        payload = ConfirmEscrowActionPayload(
            escrow_record_id=escrow.id,
            contract_escrow_id=escrow.contract_escrow_id,
            caller_address=account.ledger_address,
            amount_micro_stx=escrow.amount_micro_stx,
            memo=escrow.memo,
        )
        prompt = BotMessages.confirm_escrow_action(
            action.value, escrow.display_id, escrow.amount_micro_stx, escrow.memo, counterparty
        )
        return await self.confirmation.stage(
            account.user_id, StateType.ESCROW, ACTION_STEPS[action], payload, prompt
        )

    # Execution

    async def _execute(self, state: ActiveState) -> OperationResult:
        if state.step == EscrowStep.CONFIRM_CREATE:
            return await self._execute_create(state)
        return await self._execute_action(state, STEP_ACTIONS[state.step])

    async def _execute_create(self, state: ActiveState) -> OperationResult:
        payload: ConfirmEscrowCreatePayload = state.payload
        user_id = state.user_id

        account = await self.identities.get_account(user_id)
        signer = self.ledger.resolve_signer(account)
        memo = escrow_memo(payload.time_description)
        tx_id = await self.contract.create_escrow(
            signer, payload.recipient.address, payload.amount_micro_stx, payload.timeout_blocks, memo
        )

        recipient_user_id = await self.identities.find_recipient_user(payload.recipient)
        try:
            await self.escrows.record_pending(
                sender_user_id=user_id,
                sender_address=payload.sender_address,
                recipient_address=payload.recipient.address,
                amount_micro_stx=payload.amount_micro_stx,
                timeout_blocks=payload.timeout_blocks,
                memo=memo,
                tx_id=tx_id,
                recipient_user_id=recipient_user_id,
            )
        except StxBotError as e:
            logger.error(f"❌ Escrow tx {tx_id} broadcast but local record failed: {e.message}")

        notifications = []
        if recipient_user_id and recipient_user_id != user_id:
            notifications.append(
                Notification(
                    recipient_user_id,
                    BotMessages.escrow_received(payload.amount, user_id, payload.time_description),
                )
            )
        return OperationResult.ok(
            BotMessages.escrow_created(
                payload.amount, payload.recipient.name or "Address", payload.time_description, tx_id
            ),
            notifications,
        )

    async def _execute_action(self, state: ActiveState, action: EscrowAction) -> OperationResult:
        payload: ConfirmEscrowActionPayload = state.payload
        user_id = state.user_id

        escrow = await self.escrows.get(payload.escrow_record_id)
        if escrow is None:
            raise NotFoundError(f"Escrow #{payload.contract_escrow_id} not found.")
        if escrow.status != EscrowStatus.ACTIVE.value:
            raise ValidationError(f"Escrow is {escrow.status}.")

        account = await self.identities.get_account(user_id)
        signer = self.ledger.resolve_signer(account)
        if action == EscrowAction.RELEASE:
            tx_id = await self.contract.release_escrow(signer, payload.contract_escrow_id)
        elif action == EscrowAction.REFUND:
            tx_id = await self.contract.refund_escrow(signer, payload.contract_escrow_id)
        else:
            tx_id = await self.contract.cancel_escrow(signer, payload.contract_escrow_id)

        try:
            escrow = await self.escrows.apply_action(payload.escrow_record_id, action, tx_id)
        except StxBotError as e:
            logger.error(f"❌ Escrow #{payload.contract_escrow_id} {action.value} broadcast ({tx_id}) "
                         f"but local status update failed: {e.message}")

        logger.info(f"🔐 Escrow #{payload.contract_escrow_id} {action.value} by ...{user_id[-4:]}: {tx_id}")

        notifications = []
        counterparty = await self._counterparty_user(escrow, user_id)
        if counterparty:
            notifications.append(
                Notification(
                    counterparty,
                    BotMessages.escrow_action_notice(
                        action.value, payload.contract_escrow_id, payload.amount_micro_stx, user_id
                    ),
                )
            )
        return OperationResult.ok(
            BotMessages.escrow_action_done(action.value, payload.contract_escrow_id, tx_id),
            notifications,
        )

    async def _counterparty_user(self, escrow: Escrow, actor_user_id: str) -> Optional[str]:
        if escrow.sender_user_id != actor_user_id:
            return escrow.sender_user_id
        if escrow.recipient_user_id:
            return escrow.recipient_user_id if escrow.recipient_user_id != actor_user_id else None
        account = await self.identities.find_account_by_address(escrow.recipient_address)
        return account.user_id if account and account.user_id != actor_user_id else None
