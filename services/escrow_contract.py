"""Escrow contract client: the four entry points plus read-only status checks"""

import logging
import re
from typing import Any, Dict, Optional

from config import Config
from services.errors import LedgerError
from services.stacks_gateway import Signer, StacksGateway
from utils.clarity import serialize_uint, unwrap_ok

logger = logging.getLogger(__name__)

CREATE_RESULT_RE = re.compile(r"^\(ok u(\d+)\)$")


def parse_created_escrow_id(result_repr: Optional[str]) -> Optional[int]:
    """Contract escrow id from a create-escrow result such as '(ok u7)'"""
    if not result_repr:
        return None
    match = CREATE_RESULT_RE.match(result_repr.strip())
    return int(match.group(1)) if match else None


class EscrowContract:
    def __init__(
        self,
        gateway: StacksGateway,
        contract_address: str = Config.ESCROW_CONTRACT_ADDRESS,
        contract_name: str = Config.ESCROW_CONTRACT_NAME,
    ):
        self.gateway = gateway
        self.contract_address = contract_address
        self.contract_name = contract_name

    async def _call(self, signer: Signer, function_name: str, args, post_condition=None) -> str:
        return await self.gateway.call_contract(
            signer,
            self.contract_address,
            self.contract_name,
            function_name,
            args,
            post_condition_micro_stx=post_condition,
        )

    async def create_escrow(
        self, signer: Signer, recipient_address: str, amount_micro_stx: int, timeout_blocks: int, memo: str
    ) -> str:
        return await self._call(
            signer,
            "create-escrow",
            [
                {"type": "principal", "value": recipient_address},
                {"type": "uint", "value": str(amount_micro_stx)},
                {"type": "uint", "value": str(timeout_blocks)},
                {"type": "string-utf8", "value": memo},
            ],
            post_condition=amount_micro_stx,
        )

    async def release_escrow(self, signer: Signer, contract_escrow_id: int) -> str:
        return await self._call(signer, "release-escrow", [{"type": "uint", "value": str(contract_escrow_id)}])

    async def refund_escrow(self, signer: Signer, contract_escrow_id: int) -> str:
        return await self._call(signer, "refund-escrow", [{"type": "uint", "value": str(contract_escrow_id)}])

    async def cancel_escrow(self, signer: Signer, contract_escrow_id: int) -> str:
        return await self._call(signer, "cancel-escrow", [{"type": "uint", "value": str(contract_escrow_id)}])

    async def _read(self, function_name: str, contract_escrow_id: int) -> Any:
        return await self.gateway.read_contract(
            self.contract_address,
            self.contract_name,
            function_name,
            [serialize_uint(contract_escrow_id)],
        )

    async def get_escrow(self, contract_escrow_id: int) -> Optional[Dict[str, Any]]:
        return await self._read("get-escrow", contract_escrow_id)

    async def get_status(self, contract_escrow_id: int) -> Any:
        return unwrap_ok(await self._read("get-status", contract_escrow_id))

    async def can_refund(self, contract_escrow_id: int) -> bool:
        """True once the escrow is active and its timeout height has passed"""
        try:
            value = unwrap_ok(await self._read("can-refund", contract_escrow_id))
        except ValueError as e:
            logger.warning(f"⚠️ can-refund for escrow #{contract_escrow_id} returned an error: {e}")
            return False
        if not isinstance(value, bool):
            raise LedgerError(f"Unexpected can-refund result: {value!r}")
        return value
