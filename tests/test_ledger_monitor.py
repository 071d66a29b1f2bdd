"""
Ledger monitor and sync job tests
Pending transactions and escrows follow the chain; expired states are purged
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from jobs.ledger_sync import LEDGER_SYNC_JOB_ID, run_ledger_sync
from models import EscrowStatus, StateType, TransactionStatus
from services.errors import StateTransitionError
from services.stacks_gateway import TX_NOT_FOUND, TxStatus
from services.state_payloads import AwaitingAddressPayload, RegistrationStep
from utils.datetime_helpers import get_naive_utc_now
from utils.escrow_state_validator import EscrowStateValidator
from utils.transaction_state_validator import TransactionStateValidator
from tests.e2e_test_foundation import ALICE, ALICE_ADDRESS, BOB, BOB_ADDRESS, FrozenClock


async def pending_transaction(container, tx_id="0xaaa"):
    return await container.transactions.record_transaction(
        tx_id=tx_id,
        sender_user_id=ALICE,
        sender_address=ALICE_ADDRESS,
        recipient_address=BOB_ADDRESS,
        amount_micro_stx=1_000_000,
        fee_micro_stx=250,
        recipient_user_id=BOB,
    )


async def pending_escrow(container, tx_id="0xeee"):
    return await container.escrows.record_pending(
        sender_user_id=ALICE,
        sender_address=ALICE_ADDRESS,
        recipient_address=BOB_ADDRESS,
        amount_micro_stx=2_000_000,
        timeout_blocks=6,
        memo="Escrow via WhatsApp - 1 hour",
        tx_id=tx_id,
        recipient_user_id=BOB,
    )


class TestTransactionSync:
    @pytest.mark.asyncio
    async def test_confirmed_transaction(self, container, fake_ledger):
        await pending_transaction(container)
        fake_ledger.tx_statuses["0xaaa"] = TxStatus("0xaaa", "success", block_height=812)

        result = await container.monitor.check_pending_transactions()

        transaction = await container.transactions.get_by_tx_id("0xaaa")
        assert result.transactions_confirmed == 1
        assert transaction.status == TransactionStatus.CONFIRMED.value
        assert transaction.block_height == 812
        assert transaction.confirmed_at is not None

    @pytest.mark.asyncio
    async def test_failed_transaction(self, container, fake_ledger):
        await pending_transaction(container)
        fake_ledger.tx_statuses["0xaaa"] = TxStatus("0xaaa", "abort_by_post_condition", block_height=812)

        result = await container.monitor.check_pending_transactions()

        assert result.transactions_failed == 1
        assert (await container.transactions.get_by_tx_id("0xaaa")).status == TransactionStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_still_pending(self, container):
        await pending_transaction(container)

        result = await container.monitor.check_pending_transactions()

        assert result.transactions_checked == 1
        assert result.changed == 0

    @pytest.mark.asyncio
    async def test_unindexed_transactions_do_not_block_newer_ones(self, container, fake_ledger):
        for n in range(50):
            tx_id = f"0xstuck{n:02d}"
            await pending_transaction(container, tx_id=tx_id)
            fake_ledger.tx_statuses[tx_id] = TxStatus(tx_id, TX_NOT_FOUND)
        await pending_transaction(container, tx_id="0xnew")
        fake_ledger.tx_statuses["0xnew"] = TxStatus("0xnew", "success", block_height=900)

        later = get_naive_utc_now() + timedelta(hours=1)
        with patch("services.ledger_monitor.get_naive_utc_now", new=lambda: later):
            first = await container.monitor.check_pending_transactions()
            second = await container.monitor.check_pending_transactions()

        assert first.transactions_failed == 50
        assert second.transactions_confirmed == 1
        assert (await container.transactions.get_by_tx_id("0xnew")).status == TransactionStatus.CONFIRMED.value
        assert (await container.transactions.get_by_tx_id("0xstuck00")).status == TransactionStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_recent_unindexed_transaction_stays_pending(self, container, fake_ledger):
        await pending_transaction(container)
        fake_ledger.tx_statuses["0xaaa"] = TxStatus("0xaaa", TX_NOT_FOUND)

        result = await container.monitor.check_pending_transactions()

        assert result.transactions_failed == 0
        assert (await container.transactions.get_by_tx_id("0xaaa")).status == TransactionStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_confirmed_cannot_regress(self, container):
        await pending_transaction(container)
        await container.transactions.update_status("0xaaa", TransactionStatus.CONFIRMED, 10)

        with pytest.raises(StateTransitionError):
            await container.transactions.update_status("0xaaa", TransactionStatus.PENDING)


class TestEscrowSync:
    @pytest.mark.asyncio
    async def test_confirmed_create_activates_with_contract_id(self, container, fake_ledger):
        escrow = await pending_escrow(container)
        fake_ledger.tx_statuses["0xeee"] = TxStatus("0xeee", "success", block_height=900, result_repr="(ok u9)")

        result = await container.monitor.check_pending_escrows()

        activated = await container.escrows.get(escrow.id)
        assert result.escrows_activated == 1
        assert activated.status == EscrowStatus.ACTIVE.value
        assert activated.contract_escrow_id == 9
        assert (await container.escrows.find_by_display_id(9)).id == escrow.id

    @pytest.mark.asyncio
    async def test_failed_create_stays_pending(self, container, fake_ledger):
        escrow = await pending_escrow(container)
        fake_ledger.tx_statuses["0xeee"] = TxStatus("0xeee", "abort_by_response", result_repr="(err u1)")

        result = await container.monitor.check_pending_escrows()

        assert result.escrows_failed == 1
        assert (await container.escrows.get(escrow.id)).status == EscrowStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_unexpected_result_is_reported(self, container, fake_ledger):
        await pending_escrow(container)
        fake_ledger.tx_statuses["0xeee"] = TxStatus("0xeee", "success", result_repr="(ok true)")

        result = await container.monitor.check_pending_escrows()

        assert result.escrows_activated == 0
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_old_pending_escrows_are_skipped(self, container, fake_ledger):
        await pending_escrow(container)
        fake_ledger.tx_statuses["0xeee"] = TxStatus("0xeee", "success", result_repr="(ok u9)")
        container.monitor.pending_escrow_window_hours = 0

        result = await container.monitor.check_pending_escrows()

        assert result.escrows_checked == 0


class TestStatusValidators:
    def test_escrow_transitions(self):
        assert EscrowStateValidator.is_valid_transition("pending", "active")
        assert EscrowStateValidator.is_valid_transition(EscrowStatus.ACTIVE, EscrowStatus.REFUNDED)
        assert not EscrowStateValidator.is_valid_transition("pending", "released")
        assert not EscrowStateValidator.is_valid_transition("cancelled", "active")
        assert EscrowStateValidator.is_terminal_state(EscrowStatus.RELEASED)

    def test_transaction_transitions(self):
        ok, _ = TransactionStateValidator.validate_transition(TransactionStatus.PENDING, TransactionStatus.CONFIRMED)
        blocked, reason = TransactionStateValidator.validate_transition(
            TransactionStatus.FAILED, TransactionStatus.CONFIRMED
        )
        assert ok
        assert not blocked
        assert reason == "Invalid transition: failed -> confirmed"


class TestLedgerSyncJob:
    @pytest.mark.asyncio
    async def test_job_runs_monitor_and_purges_states(self, container, fake_ledger):
        await pending_transaction(container)
        fake_ledger.tx_statuses["0xaaa"] = TxStatus("0xaaa", "success", block_height=1)
        await container.states.set_state(
            ALICE, StateType.REGISTRATION, RegistrationStep.AWAITING_ADDRESS, AwaitingAddressPayload("t")
        )
        container.states.clock = FrozenClock(get_naive_utc_now() + timedelta(hours=1))

        results = await run_ledger_sync(container.monitor, container.states)

        assert results["status"] == "success"
        assert results["states_cleaned"] == 1
        assert "confirmed=1" in results["ledger"]

    @pytest.mark.asyncio
    async def test_job_reports_partial_on_item_errors(self, container, fake_ledger):
        await pending_escrow(container)
        fake_ledger.tx_statuses["0xeee"] = TxStatus("0xeee", "success", result_repr="garbage")

        results = await run_ledger_sync(container.monitor, container.states)

        assert results["status"] == "partial"

    @pytest.mark.asyncio
    async def test_scheduler_registers_single_job(self, container):
        with patch.object(container.scheduler.scheduler, "add_job") as add_job:
            container.scheduler.setup_jobs()

        kwargs = add_job.call_args.kwargs
        assert kwargs["id"] == LEDGER_SYNC_JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True
        assert kwargs["replace_existing"] is True
        assert kwargs["trigger"].interval == timedelta(seconds=container.scheduler.interval_seconds)

