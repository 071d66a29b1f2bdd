"""
Stacks Ledger Gateway
=====================

Reads go to the Hiro Stacks API. Writes (STX transfers and contract calls) go
to the custody signer service, which holds user keys, signs and broadcasts the
transaction and answers with its txid.

Read calls retry with exponential backoff on transport errors. Writes are never
retried: a write that fails mid-flight may already have been broadcast.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from config import Config
from models import Account
from services.errors import LedgerError, LedgerUnavailableError
from utils.clarity import deserialize
from utils.data_sanitizer import mask_address, mask_api_key_safe

logger = logging.getLogger(__name__)

FAILED_TX_STATUSES = {"abort_by_response", "abort_by_post_condition", "dropped_replace_by_fee",
                      "dropped_replace_across_fork", "dropped_too_expensive", "dropped_stale_garbage_collect"}
# The API has no record of the txid (not broadcast yet, or dropped before the mempool)
TX_NOT_FOUND = "not_found"


@dataclass(frozen=True)
class BalanceInfo:
    address: str
    balance_micro_stx: int
    locked_micro_stx: int

    @property
    def spendable_micro_stx(self) -> int:
        return max(self.balance_micro_stx - self.locked_micro_stx, 0)


@dataclass(frozen=True)
class AccountInfo:
    address: str
    balance_micro_stx: int
    nonce: int


@dataclass(frozen=True)
class FeeEstimate:
    low: int
    medium: int
    high: int


@dataclass(frozen=True)
class TxStatus:
    tx_id: str
    status: str
    block_height: Optional[int] = None
    result_repr: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status == "success"

    @property
    def failed(self) -> bool:
        return self.status in FAILED_TX_STATUSES

    @property
    def pending(self) -> bool:
        return not self.confirmed and not self.failed

    @property
    def indexed(self) -> bool:
        return self.status != TX_NOT_FOUND


@dataclass(frozen=True)
class Signer:
    """Reference the custody signer uses to pick the signing key"""
    address: str
    key_ref: str


def _parse_micro_stx(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value)
    if text.startswith("0x"):
        return int(text, 16)
    return int(text)


class StacksGateway:
    """Async client for the Stacks network and the custody signer"""

    def __init__(
        self,
        api_url: str = Config.STACKS_API_URL,
        signer_url: str = Config.STACKS_SIGNER_URL,
        signer_api_key: str = Config.STACKS_SIGNER_API_KEY,
        network: str = Config.STACKS_NETWORK,
        timeout_seconds: int = Config.HTTP_TIMEOUT_SECONDS,
        read_retries: int = Config.LEDGER_READ_RETRIES,
    ):
        self.api_url = api_url.rstrip("/")
        self.signer_url = signer_url.rstrip("/")
        self.signer_api_key = signer_api_key
        self.network = network
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.read_retries = read_retries

        if not self.signer_url:
            logger.warning("STACKS_SIGNER_URL not configured - transfers will fail")
        else:
            logger.info(f"🔑 Custody signer configured with key: {mask_api_key_safe(signer_api_key)}")

    def _get_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "User-Agent": "STX-WhatsApp-Bot/1.0"}

    def _get_signer_headers(self) -> Dict[str, str]:
        headers = self._get_headers()
        if self.signer_api_key:
            headers["Authorization"] = f"Bearer {self.signer_api_key}"
        return headers

    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(method, url, **kwargs) as response:
                if response.status == 404:
                    return None
                if response.status >= 500 or response.status == 429:
                    error_text = await response.text()
                    raise LedgerUnavailableError(f"Stacks API {response.status}: {error_text[:200]}")
                if response.status >= 400:
                    error_text = await response.text()
                    raise LedgerError(f"Stacks API {response.status}: {error_text[:200]}")
                return await response.json(content_type=None)

    async def _read(self, method: str, path: str, **kwargs) -> Any:
        """Hiro API read with retry and exponential backoff on transport errors"""
        url = f"{self.api_url}{path}"
        for attempt in range(self.read_retries + 1):
            try:
                return await self._request_json(method, url, headers=self._get_headers(), **kwargs)
            except (aiohttp.ClientError, asyncio.TimeoutError, LedgerUnavailableError) as e:
                if attempt >= self.read_retries:
                    logger.error(f"❌ Stacks API unreachable after {attempt + 1} attempts: {path}: {e}")
                    raise LedgerUnavailableError("Stacks network is unavailable. Please try again later.") from e
                delay = (2 ** attempt) * 0.5 + random.uniform(0, 0.25)
                logger.warning(f"⚠️ Stacks API read failed ({e}), retrying in {delay:.2f}s")
                await asyncio.sleep(delay)

    async def _write(self, path: str, body: Dict[str, Any]) -> str:
        """Single POST to the custody signer; returns the broadcast txid"""
        if not self.signer_url:
            raise LedgerError("Transaction signing is not configured.")
        url = f"{self.signer_url}{path}"
        try:
            data = await self._request_json("POST", url, json=body, headers=self._get_signer_headers())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ Signer request failed: {path}: {e}")
            raise LedgerError(f"Broadcast failed: {e}") from e

        if not data:
            raise LedgerError("Broadcast failed: empty response from signer")
        if data.get("error"):
            raise LedgerError(f"Broadcast failed: {data.get('reason') or data['error']}")
        tx_id = data.get("txid") or data.get("tx_id")
        if not tx_id:
            raise LedgerError("Broadcast failed: signer returned no txid")
        return tx_id if tx_id.startswith("0x") else f"0x{tx_id}"

    # Reads

    async def get_balance(self, address: str) -> BalanceInfo:
        data = await self._read("GET", f"/extended/v1/address/{address}/balances")
        stx = (data or {}).get("stx") or {}
        return BalanceInfo(
            address=address,
            balance_micro_stx=_parse_micro_stx(stx.get("balance")),
            locked_micro_stx=_parse_micro_stx(stx.get("locked")),
        )

    async def get_account_info(self, address: str) -> AccountInfo:
        data = await self._read("GET", f"/v2/accounts/{address}", params={"proof": "0"})
        if data is None:
            raise LedgerError(f"Account {mask_address(address)} not found on the network")
        return AccountInfo(
            address=address,
            balance_micro_stx=_parse_micro_stx(data.get("balance")),
            nonce=int(data.get("nonce", 0)),
        )

    async def estimate_fee(self) -> FeeEstimate:
        """Fee tiers in microSTX; falls back to fixed defaults when the node cannot say"""
        try:
            rate = await self._read("GET", "/v2/fees/transfer")
            base = int(rate) * Config.ESTIMATED_TRANSFER_BYTES
        except (LedgerError, TypeError, ValueError) as e:
            logger.warning(f"⚠️ Fee estimate unavailable, using defaults: {e}")
            return FeeEstimate(Config.DEFAULT_FEE_LOW, Config.DEFAULT_FEE_MEDIUM, Config.DEFAULT_FEE_HIGH)

        return FeeEstimate(
            low=max(base, Config.DEFAULT_FEE_LOW),
            medium=max(base * 3 // 2, Config.DEFAULT_FEE_MEDIUM),
            high=max(base * 2, Config.DEFAULT_FEE_HIGH),
        )

    async def get_block_height(self) -> int:
        data = await self._read("GET", "/extended/v1/block", params={"limit": "1"})
        results = (data or {}).get("results") or []
        if not results:
            raise LedgerError("Could not read current block height")
        return int(results[0]["height"])

    async def get_transaction_status(self, tx_id: str) -> TxStatus:
        data = await self._read("GET", f"/extended/v1/tx/{tx_id}")
        if data is None:
            # Not indexed yet; pending until the caller gives up on it
            return TxStatus(tx_id=tx_id, status=TX_NOT_FOUND)
        tx_result = data.get("tx_result") or {}
        return TxStatus(
            tx_id=tx_id,
            status=data.get("tx_status", "pending"),
            block_height=data.get("block_height"),
            result_repr=tx_result.get("repr"),
        )

    async def read_contract(
        self,
        contract_address: str,
        contract_name: str,
        function_name: str,
        arguments: List[str],
        sender: Optional[str] = None,
    ) -> Any:
        """Call a read-only function; arguments are hex-serialized Clarity values"""
        data = await self._read(
            "POST",
            f"/v2/contracts/call-read/{contract_address}/{contract_name}/{function_name}",
            json={"sender": sender or contract_address, "arguments": arguments},
        )
        if not data or not data.get("okay"):
            cause = (data or {}).get("cause", "no response")
            raise LedgerError(f"Read-only call {function_name} failed: {cause}")
        return deserialize(data["result"])

    # Writes

    def resolve_signer(self, account: Account) -> Signer:
        return Signer(address=account.ledger_address, key_ref=account.user_id)

    async def broadcast_transfer(
        self,
        signer: Signer,
        recipient_address: str,
        amount_micro_stx: int,
        fee_micro_stx: int,
        memo: str = "",
    ) -> str:
        account_info = await self.get_account_info(signer.address)
        body = {
            "network": self.network,
            "sender": signer.address,
            "key_ref": signer.key_ref,
            "recipient": recipient_address,
            "amount": str(amount_micro_stx),
            "fee": str(fee_micro_stx),
            "nonce": account_info.nonce,
            "memo": memo,
        }
        tx_id = await self._write("/transfers", body)
        logger.info(f"📤 Transfer broadcast {mask_address(signer.address)} -> {mask_address(recipient_address)}: {tx_id}")
        return tx_id

    async def call_contract(
        self,
        signer: Signer,
        contract_address: str,
        contract_name: str,
        function_name: str,
        arguments: List[Dict[str, Any]],
        post_condition_micro_stx: Optional[int] = None,
    ) -> str:
        """
        Ask the signer to build, sign and broadcast a contract call.

        arguments are typed values, e.g. {"type": "uint", "value": "5"}.
        When post_condition_micro_stx is given the signer attaches a
        deny-mode post condition that the sender transfers exactly that amount.
        """
        account_info = await self.get_account_info(signer.address)
        body = {
            "network": self.network,
            "sender": signer.address,
            "key_ref": signer.key_ref,
            "contract_address": contract_address,
            "contract_name": contract_name,
            "function_name": function_name,
            "function_args": arguments,
            "nonce": account_info.nonce,
        }
        if post_condition_micro_stx is not None:
            body["post_conditions"] = [
                {"type": "stx", "principal": signer.address, "condition": "eq",
                 "amount": str(post_condition_micro_stx)}
            ]
            body["post_condition_mode"] = "deny"
        else:
            body["post_condition_mode"] = "allow"

        tx_id = await self._write("/contract-calls", body)
        logger.info(f"📜 Contract call {contract_name}.{function_name} broadcast: {tx_id}")
        return tx_id
