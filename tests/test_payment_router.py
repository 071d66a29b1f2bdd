"""
Payment flow tests
balance, contacts, history and the send -> confirm -> broadcast path
"""

import pytest

from models import StateType, TransactionStatus
from services.errors import ErrorKind, LedgerError
from services.state_payloads import ConfirmSendPayload
from utils.bot_messages import BotMessages
from tests.e2e_test_foundation import (
    ALICE,
    ALICE_ADDRESS,
    BOB,
    BOB_ADDRESS,
    STRANGER_ADDRESS,
    messages_to,
)


async def add_john(container, address=BOB_ADDRESS):
    result = await container.dispatcher.route(ALICE, f"add contact John {address}")
    assert result.success, result.message


class TestReadCommands:
    @pytest.mark.asyncio
    async def test_balance(self, registered):
        result = await registered.dispatcher.route(ALICE, "balance")

        assert result.success
        assert "10.000000 STX" in result.message

    @pytest.mark.asyncio
    async def test_contacts_empty_then_listed(self, registered):
        empty = await registered.dispatcher.route(ALICE, "contacts")
        assert "no contacts yet" in empty.message

        await add_john(registered)
        listed = await registered.dispatcher.route(ALICE, "contacts")
        assert "*John*" in listed.message

    @pytest.mark.asyncio
    async def test_add_contact_bad_format(self, registered):
        result = await registered.dispatcher.route(ALICE, "add contact John")

        assert not result.success
        assert "add contact [Name] [STX-Address]" in result.message

    @pytest.mark.asyncio
    async def test_add_contact_invalid_address(self, registered):
        result = await registered.dispatcher.route(ALICE, "add contact John SP123")

        assert not result.success
        assert result.error_kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_history_empty(self, registered):
        result = await registered.dispatcher.route(ALICE, "history")

        assert "No transactions yet" in result.message


class TestSendStaging:
    @pytest.mark.asyncio
    async def test_unknown_recipient_stages_nothing(self, registered):
        result = await registered.dispatcher.route(ALICE, "send 5 to John")

        assert not result.success
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert 'Recipient "John" not found' in result.message
        assert result.message.endswith('💡 Type "contacts" to see what you have.')
        assert await registered.states.get_state(ALICE) is None

    @pytest.mark.asyncio
    async def test_send_to_contact_stages_confirmation(self, registered):
        await add_john(registered)

        result = await registered.dispatcher.route(ALICE, "send 5 to John")

        assert result.success
        assert "Confirm Payment" in result.message
        state = await registered.states.get_state(ALICE)
        assert state.state_type == StateType.PAYMENT
        assert isinstance(state.payload, ConfirmSendPayload)
        assert state.payload.amount == "5"
        assert state.payload.amount_micro_stx == 5_000_000
        assert state.payload.recipient.address == BOB_ADDRESS
        assert state.payload.fee_micro_stx == 250

    @pytest.mark.asyncio
    async def test_displayed_amount_matches_staged_amount(self, registered):
        await add_john(registered)

        result = await registered.dispatcher.route(ALICE, "send 5.0000001 to John")

        state = await registered.states.get_state(ALICE)
        assert state.payload.amount_micro_stx == 5_000_000
        assert state.payload.amount == "5"
        assert "5.0000001" not in result.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["send 0 to John", "send 0.0 to John", "send -1 to John", "send abc to John"])
    async def test_non_positive_or_non_numeric_amount_never_stages(self, registered, text):
        await add_john(registered)

        result = await registered.dispatcher.route(ALICE, text)

        assert not result.success
        assert await registered.states.get_state(ALICE) is None

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, registered):
        await add_john(registered)

        result = await registered.dispatcher.route(ALICE, "send 10 to John")

        assert not result.success
        assert result.error_kind == ErrorKind.INSUFFICIENT_FUNDS
        assert result.message.startswith("❌ Insufficient balance.")
        assert await registered.states.get_state(ALICE) is None

    @pytest.mark.asyncio
    async def test_cannot_send_to_self(self, registered):
        result = await registered.dispatcher.route(ALICE, f"send 1 to {ALICE_ADDRESS}")

        assert not result.success
        assert "own address" in result.message


class TestSendExecution:
    @pytest.mark.asyncio
    async def test_yes_broadcasts_records_and_notifies(self, registered, fake_ledger, twilio_client):
        await add_john(registered)
        await registered.dispatcher.on_inbound_message(ALICE, "send 5 to John")

        await registered.dispatcher.on_inbound_message(ALICE, "yes")

        assert len(fake_ledger.transfers) == 1
        transfer = fake_ledger.transfers[0]
        assert transfer["recipient"] == BOB_ADDRESS
        assert transfer["amount"] == 5_000_000
        assert transfer["memo"] == "Payment via WhatsApp"

        transaction = await registered.transactions.get_by_tx_id(transfer["tx_id"])
        assert transaction.status == TransactionStatus.PENDING.value
        assert transaction.recipient_user_id == BOB
        assert await registered.states.get_state(ALICE) is None

        assert "Payment Sent!" in messages_to(twilio_client, ALICE)[-1]
        assert "Payment Received!" in messages_to(twilio_client, BOB)[-1]

    @pytest.mark.asyncio
    async def test_second_yes_does_not_resend(self, registered, fake_ledger):
        await add_john(registered)
        await registered.dispatcher.route(ALICE, "send 5 to John")

        await registered.dispatcher.route(ALICE, "yes")
        second = await registered.dispatcher.route(ALICE, "yes")

        assert len(fake_ledger.transfers) == 1
        assert second.message == BotMessages.unknown_command()

    @pytest.mark.asyncio
    async def test_no_cancels(self, registered, fake_ledger):
        await add_john(registered)
        await registered.dispatcher.route(ALICE, "send 5 to John")

        result = await registered.dispatcher.route(ALICE, "no")
        follow_up = await registered.dispatcher.route(ALICE, "yes")

        assert result.message == BotMessages.PAYMENT_CANCELLED
        assert not follow_up.success
        assert fake_ledger.transfers == []

    @pytest.mark.asyncio
    async def test_unregistered_recipient_gets_no_notification(self, registered, fake_ledger, twilio_client):
        await registered.dispatcher.route(ALICE, f"send 1 to {STRANGER_ADDRESS}")

        result = await registered.dispatcher.route(ALICE, "yes")

        assert result.success
        assert result.notifications == []
        assert "To: Address" in result.message

    @pytest.mark.asyncio
    async def test_broadcast_failure_reported(self, registered, fake_ledger):
        await add_john(registered)
        await registered.dispatcher.route(ALICE, "send 5 to John")
        fake_ledger.broadcast_error = LedgerError("Broadcast failed: bad nonce")

        result = await registered.dispatcher.route(ALICE, "yes")

        assert not result.success
        assert result.message == "❌ Payment failed: Broadcast failed: bad nonce"
        assert await registered.transactions.get_history(ALICE) == []
        assert await registered.states.get_state(ALICE) is None

    @pytest.mark.asyncio
    async def test_history_after_payment(self, registered):
        await add_john(registered)
        await registered.dispatcher.route(ALICE, "send 2 to John")
        await registered.dispatcher.route(ALICE, "yes")

        sender_view = await registered.dispatcher.route(ALICE, "history")
        recipient_view = await registered.dispatcher.route(BOB, "history")

        assert "📤 Sent" in sender_view.message
        assert "2.000000 STX" in sender_view.message
        assert "📥 Received" in recipient_view.message
