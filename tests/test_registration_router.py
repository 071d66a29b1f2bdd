"""
Registration flow tests
Immediate registration, the awaiting-address step, and uniqueness conflicts
"""

import pytest

from models import StateType
from tests.e2e_test_foundation import ALICE, ALICE_ADDRESS, BOB, MAINNET_ADDRESS, messages_to


class TestImmediateRegistration:
    @pytest.mark.asyncio
    async def test_bare_address_registers_new_user(self, container, fake_ledger, twilio_client):
        """Unregistered user sends an address; balance then reads that address"""
        fake_ledger.set_balance(MAINNET_ADDRESS, "12.5")

        await container.dispatcher.on_inbound_message(ALICE, MAINNET_ADDRESS)

        account = await container.identities.find_account(ALICE)
        assert account.ledger_address == MAINNET_ADDRESS
        assert "registered successfully" in messages_to(twilio_client, ALICE)[-1]

        await container.dispatcher.on_inbound_message(ALICE, "balance")
        assert "12.500000 STX" in messages_to(twilio_client, ALICE)[-1]

    @pytest.mark.asyncio
    async def test_register_command_with_address(self, container):
        result = await container.dispatcher.route(ALICE, f"register {ALICE_ADDRESS}")

        assert result.success
        assert ALICE_ADDRESS in result.message

    @pytest.mark.asyncio
    async def test_address_already_taken(self, container):
        await container.identities.create_account(BOB, ALICE_ADDRESS)

        result = await container.dispatcher.route(ALICE, f"register {ALICE_ADDRESS}")

        assert not result.success
        assert "already registered to another account" in result.message
        assert not await container.identities.account_exists(ALICE)

    @pytest.mark.asyncio
    async def test_registered_user_cannot_register_again(self, container):
        await container.identities.create_account(ALICE, ALICE_ADDRESS)

        result = await container.dispatcher.route(ALICE, f"register {MAINNET_ADDRESS}")

        assert not result.success
        assert "already registered" in result.message
        assert (await container.identities.find_account(ALICE)).ledger_address == ALICE_ADDRESS


class TestAwaitingAddress:
    @pytest.mark.asyncio
    async def test_prompt_then_address(self, container):
        prompt = await container.dispatcher.route(ALICE, "hi there")

        assert "send your Stacks (STX) address" in prompt.message
        assert await container.states.get_state_type(ALICE) == StateType.REGISTRATION

        result = await container.dispatcher.route(ALICE, ALICE_ADDRESS)

        assert result.success
        assert await container.identities.account_exists(ALICE)
        assert await container.states.get_state(ALICE) is None

    @pytest.mark.asyncio
    async def test_invalid_address_keeps_state(self, container):
        await container.dispatcher.route(ALICE, "register")

        result = await container.dispatcher.route(ALICE, "SP123")

        assert not result.success
        assert "Invalid STX address" in result.message
        assert await container.states.get_state_type(ALICE) == StateType.REGISTRATION

    @pytest.mark.asyncio
    async def test_cancel_clears_state(self, container):
        await container.dispatcher.route(ALICE, "register")

        result = await container.dispatcher.route(ALICE, "cancel")

        assert "Registration cancelled" in result.message
        assert await container.states.get_state(ALICE) is None
        assert not await container.identities.account_exists(ALICE)

    @pytest.mark.asyncio
    async def test_conflict_in_state_flow_clears_state(self, container):
        await container.identities.create_account(BOB, ALICE_ADDRESS)
        await container.dispatcher.route(ALICE, "register")

        result = await container.dispatcher.route(ALICE, ALICE_ADDRESS)

        assert not result.success
        assert "already registered to another account" in result.message
        assert await container.states.get_state(ALICE) is None
