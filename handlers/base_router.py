"""Common shape of the registration, payment and escrow routers"""

from abc import ABC, abstractmethod
from typing import Optional

from models import StateType
from services.conversation_state import ActiveState
from services.operation_result import OperationResult


class CommandRouter(ABC):
    """
    A router owns one command family and the conversation states tagged with
    its state_type.
    """

    state_type: StateType

    @abstractmethod
    async def handle_command(self, user_id: str, text: str) -> Optional[OperationResult]:
        """Handle a fresh command; None when the text is not this router's"""

    @abstractmethod
    async def handle_state_flow(self, user_id: str, text: str, state: ActiveState) -> OperationResult:
        """Handle a reply while this router's state is active"""
