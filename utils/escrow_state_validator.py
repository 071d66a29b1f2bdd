"""
Escrow State Transition Validator
================================

Keeps the local escrow record in step with the contract lifecycle:
pending -> active -> released / refunded / cancelled.
Terminal states never transition again.
"""

import logging
from typing import Dict, Set, Optional, Tuple

from models import EscrowStatus
from services.errors import StateTransitionError

logger = logging.getLogger(__name__)


class EscrowStateValidator:
    """
    Validates escrow status changes.

    Prevents invalid transitions like:
    - ACTIVE -> PENDING (backwards transition)
    - PENDING -> RELEASED (resolving before the chain confirmed the lock)
    - CANCELLED -> ACTIVE (resurrection)
    """

    VALID_TRANSITIONS: Dict[EscrowStatus, Set[EscrowStatus]] = {
        # PENDING: create transaction broadcast, waiting for the chain
        EscrowStatus.PENDING: {EscrowStatus.ACTIVE},

        # ACTIVE: funds locked in the contract
        EscrowStatus.ACTIVE: {
            EscrowStatus.RELEASED,
            EscrowStatus.REFUNDED,
            EscrowStatus.CANCELLED,
        },

        EscrowStatus.RELEASED: set(),
        EscrowStatus.REFUNDED: set(),
        EscrowStatus.CANCELLED: set(),
    }

    TERMINAL_STATES: Set[EscrowStatus] = {
        EscrowStatus.RELEASED,
        EscrowStatus.REFUNDED,
        EscrowStatus.CANCELLED,
    }

    @classmethod
    def is_valid_transition(cls, from_status, to_status) -> bool:
        try:
            from_enum = EscrowStatus(from_status) if isinstance(from_status, str) else from_status
            to_enum = EscrowStatus(to_status) if isinstance(to_status, str) else to_status
        except ValueError:
            return False
        is_valid, _ = cls.validate_transition(from_enum, to_enum)
        return is_valid

    @classmethod
    def validate_transition(
        cls,
        from_status: EscrowStatus,
        to_status: EscrowStatus,
        escrow_id: Optional[int] = None,
    ) -> Tuple[bool, str]:
        """
        Validate if a state transition is allowed.

        Returns:
            Tuple[bool, str]: (is_valid, reason)
        """
        escrow_ref = f"Escrow #{escrow_id}" if escrow_id is not None else "Escrow"

        if from_status == to_status:
            return True, "No status change required"

        valid_next_states = cls.VALID_TRANSITIONS.get(from_status, set())
        if to_status in valid_next_states:
            logger.info(f"✅ VALID_TRANSITION: {escrow_ref} {from_status.value} -> {to_status.value}")
            return True, "Valid state transition"

        error_msg = (
            f"Invalid transition: {from_status.value} -> {to_status.value}. "
            f"Valid transitions from {from_status.value}: "
            f"{sorted(s.value for s in valid_next_states)}"
        )
        logger.error(f"❌ INVALID_TRANSITION: {escrow_ref} {from_status.value} -> {to_status.value}")
        return False, error_msg

    @classmethod
    def validate_and_transition(cls, escrow, new_status: EscrowStatus) -> None:
        """
        Validate and apply a status change to an Escrow row.

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        current_status = EscrowStatus(escrow.status)
        is_valid, reason = cls.validate_transition(current_status, new_status, escrow.id)
        if not is_valid:
            raise StateTransitionError(f"State transition validation failed: {reason}")

        escrow.status = new_status.value
        logger.info(f"🔄 STATUS_UPDATED: Escrow #{escrow.id} {current_status.value} -> {new_status.value}")

    @classmethod
    def is_terminal_state(cls, status: EscrowStatus) -> bool:
        return status in cls.TERMINAL_STATES
