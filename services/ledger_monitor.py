"""
Ledger Monitor
Polls the chain for broadcast transactions and escrow creations that are still
pending locally and moves their records forward.

- Transactions: pending -> confirmed | failed (with block height). A txid the
  API still cannot find after the unindexed timeout is marked failed so it
  leaves the pending queue.
- Escrows: pending -> active once the create-escrow call succeeds and the
  contract escrow id can be read from its '(ok uN)' result. A failed create is
  logged and the record stays pending.
"""

import logging
from datetime import timedelta
from typing import List

from config import Config
from models import TransactionStatus
from services.errors import StxBotError
from services.escrow_contract import parse_created_escrow_id
from services.escrow_service import EscrowService
from services.stacks_gateway import StacksGateway
from services.transaction_service import TransactionService
from utils.datetime_helpers import get_naive_utc_now

logger = logging.getLogger(__name__)


class LedgerSyncResult:
    """Counters for one monitor pass"""

    def __init__(self):
        self.transactions_checked = 0
        self.transactions_confirmed = 0
        self.transactions_failed = 0
        self.escrows_checked = 0
        self.escrows_activated = 0
        self.escrows_failed = 0
        self.errors: List[str] = []

    def add_error(self, error: str):
        self.errors.append(error)
        logger.error(f"LEDGER_MONITOR_ERROR: {error}")

    @property
    def changed(self) -> int:
        return (
            self.transactions_confirmed
            + self.transactions_failed
            + self.escrows_activated
        )

    def summary(self) -> str:
        return (
            f"tx checked={self.transactions_checked} confirmed={self.transactions_confirmed} "
            f"failed={self.transactions_failed} | escrows checked={self.escrows_checked} "
            f"activated={self.escrows_activated} failed={self.escrows_failed} | "
            f"errors={len(self.errors)}"
        )


class LedgerMonitor:
    def __init__(
        self,
        transactions: TransactionService,
        escrows: EscrowService,
        ledger: StacksGateway,
        pending_escrow_window_hours: int = Config.PENDING_ESCROW_WINDOW_HOURS,
        unindexed_tx_timeout_minutes: int = Config.UNINDEXED_TX_TIMEOUT_MINUTES,
    ):
        self.transactions = transactions
        self.escrows = escrows
        self.ledger = ledger
        self.pending_escrow_window_hours = pending_escrow_window_hours
        self.unindexed_tx_timeout_minutes = unindexed_tx_timeout_minutes

    async def run(self) -> LedgerSyncResult:
        result = LedgerSyncResult()
        await self.check_pending_transactions(result)
        await self.check_pending_escrows(result)
        if result.changed or result.errors:
            logger.info(f"🔄 Ledger sync: {result.summary()}")
        return result

    async def check_pending_transactions(self, result: LedgerSyncResult = None) -> LedgerSyncResult:
        result = result or LedgerSyncResult()
        pending = await self.transactions.list_pending()
        unindexed_cutoff = get_naive_utc_now() - timedelta(minutes=self.unindexed_tx_timeout_minutes)
        for transaction in pending:
            result.transactions_checked += 1
            try:
                status = await self.ledger.get_transaction_status(transaction.tx_id)
                if status.pending:
                    if not status.indexed and transaction.created_at < unindexed_cutoff:
                        await self.transactions.update_status(transaction.tx_id, TransactionStatus.FAILED)
                        result.transactions_failed += 1
                        logger.warning(
                            f"⚠️ Transaction {transaction.tx_id[:12]}... never reached the network, marked failed"
                        )
                    continue
                if status.confirmed:
                    await self.transactions.update_status(
                        transaction.tx_id, TransactionStatus.CONFIRMED, status.block_height
                    )
                    result.transactions_confirmed += 1
                else:
                    await self.transactions.update_status(
                        transaction.tx_id, TransactionStatus.FAILED, status.block_height
                    )
                    result.transactions_failed += 1
                    logger.warning(f"⚠️ Transaction {transaction.tx_id[:12]}... failed on chain: {status.status}")
            except StxBotError as e:
                result.add_error(f"transaction {transaction.tx_id}: {e.message}")
        return result

    async def check_pending_escrows(self, result: LedgerSyncResult = None) -> LedgerSyncResult:
        result = result or LedgerSyncResult()
        since = get_naive_utc_now() - timedelta(hours=self.pending_escrow_window_hours)
        pending = await self.escrows.list_pending_since(since)
        for escrow in pending:
            result.escrows_checked += 1
            try:
                status = await self.ledger.get_transaction_status(escrow.tx_id)
                if status.pending:
                    continue
                if status.failed:
                    result.escrows_failed += 1
                    logger.warning(
                        f"⚠️ Escrow record #{escrow.id} create tx {escrow.tx_id[:12]}... failed: {status.status}"
                    )
                    continue

                contract_escrow_id = parse_created_escrow_id(status.result_repr)
                if contract_escrow_id is None:
                    result.add_error(
                        f"escrow record #{escrow.id}: unexpected create result {status.result_repr!r}"
                    )
                    continue
                await self.escrows.activate(escrow.id, contract_escrow_id)
                result.escrows_activated += 1
            except StxBotError as e:
                result.add_error(f"escrow record #{escrow.id}: {e.message}")
        return result
