"""
Transaction State Transition Validator
======================================

Direct payments only move forward: pending -> confirmed | failed.
"""

import logging
from typing import Dict, Set, Tuple

from models import TransactionStatus
from services.errors import StateTransitionError

logger = logging.getLogger(__name__)


class TransactionStateValidator:
    VALID_TRANSITIONS: Dict[TransactionStatus, Set[TransactionStatus]] = {
        TransactionStatus.PENDING: {TransactionStatus.CONFIRMED, TransactionStatus.FAILED},
        TransactionStatus.CONFIRMED: set(),
        TransactionStatus.FAILED: set(),
    }

    @classmethod
    def validate_transition(
        cls, from_status: TransactionStatus, to_status: TransactionStatus
    ) -> Tuple[bool, str]:
        if from_status == to_status:
            return True, "No status change required"
        if to_status in cls.VALID_TRANSITIONS.get(from_status, set()):
            return True, "Valid state transition"
        return False, f"Invalid transition: {from_status.value} -> {to_status.value}"

    @classmethod
    def validate_and_transition(cls, transaction, new_status: TransactionStatus) -> None:
        current_status = TransactionStatus(transaction.status)
        is_valid, reason = cls.validate_transition(current_status, new_status)
        if not is_valid:
            logger.error(f"❌ TRANSITION_BLOCKED: tx {transaction.tx_id}: {reason}")
            raise StateTransitionError(reason)
        transaction.status = new_status.value
