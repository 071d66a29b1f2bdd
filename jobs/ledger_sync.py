"""
Ledger sync job
Runs the ledger monitor and purges expired conversation states on a fixed
interval.
"""

import logging
from typing import Dict, Any

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Config
from services.conversation_state import ConversationStateStore
from services.errors import StxBotError
from services.ledger_monitor import LedgerMonitor

logger = logging.getLogger(__name__)

LEDGER_SYNC_JOB_ID = "ledger_sync"


async def run_ledger_sync(monitor: LedgerMonitor, states: ConversationStateStore) -> Dict[str, Any]:
    """One pass: chain status for pending records, then expired state cleanup"""
    results: Dict[str, Any] = {"status": "success"}

    try:
        sync = await monitor.run()
        results["ledger"] = sync.summary()
        if sync.errors:
            results["status"] = "partial"
    except StxBotError as e:
        logger.error(f"❌ Ledger sync failed: {e.message}")
        results["status"] = "error"
        results["ledger"] = e.message

    try:
        results["states_cleaned"] = await states.clean_expired_states()
    except StxBotError as e:
        logger.error(f"❌ Conversation state cleanup failed: {e.message}")
        results["status"] = "error"

    return results


class LedgerSyncScheduler:
    def __init__(
        self,
        monitor: LedgerMonitor,
        states: ConversationStateStore,
        interval_seconds: int = Config.LEDGER_SYNC_INTERVAL_SECONDS,
    ):
        self.monitor = monitor
        self.states = states
        self.interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
            timezone="UTC",
        )

    def setup_jobs(self):
        self.scheduler.add_job(
            run_ledger_sync,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            args=[self.monitor, self.states],
            id=LEDGER_SYNC_JOB_ID,
            name="🔄 Ledger Sync - pending transactions, escrows, expired states",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"✅ Ledger sync scheduled every {self.interval_seconds}s")

    def start(self):
        self.setup_jobs()
        self.scheduler.start()
        logger.info("🚀 Ledger sync scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("📴 Ledger sync scheduler stopped")
