"""
Confirmation protocol tests
A staged action runs at most once, never after "no", and failures are reported
"""

from unittest.mock import AsyncMock

import pytest

from models import StateType
from services.errors import ErrorKind, LedgerError
from services.operation_result import OperationResult
from services.state_payloads import ConfirmSendPayload, PaymentStep, ResolvedRecipient
from utils.bot_messages import BotMessages
from tests.e2e_test_foundation import ALICE, ALICE_ADDRESS, BOB_ADDRESS


def staged_payload() -> ConfirmSendPayload:
    return ConfirmSendPayload(
        amount="5",
        amount_micro_stx=5_000_000,
        fee_micro_stx=250,
        sender_address=ALICE_ADDRESS,
        recipient=ResolvedRecipient(type="address", address=BOB_ADDRESS),
    )


@pytest.fixture
def protocol(container):
    return container.confirmation


async def stage(protocol):
    return await protocol.stage(
        ALICE, StateType.PAYMENT, PaymentStep.CONFIRM_SEND, staged_payload(), "Confirm?"
    )


class TestStaging:
    @pytest.mark.asyncio
    async def test_stage_persists_state_and_returns_prompt(self, protocol, container):
        result = await stage(protocol)

        assert result.success
        assert result.message == "Confirm?"
        assert (await container.states.get_state(ALICE)).payload.amount == "5"


class TestResolve:
    @pytest.mark.asyncio
    async def test_yes_executes_once_with_claimed_state(self, protocol, container):
        await stage(protocol)
        execute = AsyncMock(return_value=OperationResult.ok("done"))

        result = await protocol.resolve(ALICE, "yes", execute, cancel_text="cancelled")

        assert result.message == "done"
        execute.assert_awaited_once()
        claimed = execute.await_args.args[0]
        assert claimed.payload.amount_micro_stx == 5_000_000
        assert await container.states.get_state(ALICE) is None

    @pytest.mark.asyncio
    async def test_second_yes_finds_nothing(self, protocol):
        await stage(protocol)
        execute = AsyncMock(return_value=OperationResult.ok("done"))

        await protocol.resolve(ALICE, "yes", execute, cancel_text="cancelled")
        second = await protocol.resolve(ALICE, "yes", execute, cancel_text="cancelled")

        assert execute.await_count == 1
        assert not second.success
        assert second.error_kind == ErrorKind.NOT_FOUND
        assert second.message == BotMessages.unknown_command()

    @pytest.mark.asyncio
    async def test_no_cancels_and_later_yes_does_nothing(self, protocol, container):
        await stage(protocol)
        execute = AsyncMock(return_value=OperationResult.ok("done"))

        cancelled = await protocol.resolve(ALICE, "NO", execute, cancel_text="cancelled")
        after = await protocol.resolve(ALICE, "yes", execute, cancel_text="cancelled")

        assert cancelled.message == "cancelled"
        assert not after.success
        execute.assert_not_awaited()
        assert await container.states.get_state(ALICE) is None

    @pytest.mark.asyncio
    async def test_other_reply_reprompts_and_keeps_state(self, protocol, container):
        await stage(protocol)
        execute = AsyncMock()

        result = await protocol.resolve(ALICE, "maybe", execute, cancel_text="cancelled")

        assert result.message == BotMessages.CONFIRMATION_REMINDER
        execute.assert_not_awaited()
        assert await container.states.has_active_state(ALICE)

    @pytest.mark.asyncio
    async def test_execution_failure_is_reported_and_not_retried(self, protocol, container):
        await stage(protocol)
        execute = AsyncMock(side_effect=LedgerError("signer offline"))

        result = await protocol.resolve(
            ALICE, "yes", execute, cancel_text="cancelled", failure_prefix="❌ Payment failed: "
        )

        assert not result.success
        assert result.message == "❌ Payment failed: signer offline"
        assert result.error_kind == ErrorKind.LEDGER
        assert await container.states.get_state(ALICE) is None
