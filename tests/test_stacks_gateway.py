"""
Stacks gateway tests
Clarity codec, fee tiers, read retries, signer writes and the escrow contract client
"""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from models import Account
from services.errors import LedgerError, LedgerUnavailableError
from services.escrow_contract import EscrowContract, parse_created_escrow_id
from services.stacks_gateway import Signer, StacksGateway
from utils.clarity import (
    ClarityResponse,
    deserialize,
    serialize_bool,
    serialize_string_ascii,
    serialize_string_utf8,
    serialize_uint,
    unwrap_ok,
)
from tests.e2e_test_foundation import ALICE, ALICE_ADDRESS, BOB_ADDRESS


@pytest.fixture
def gateway():
    return StacksGateway(
        api_url="https://api.testnet.hiro.so",
        signer_url="https://signer.internal",
        signer_api_key="sk_test_123456",
        network="testnet",
        read_retries=2,
    )


class TestClarityCodec:
    def test_uint(self):
        encoded = serialize_uint(7)
        assert encoded == "0x01" + "00" * 15 + "07"
        assert deserialize(encoded) == 7

    def test_bool_and_string(self):
        assert deserialize(serialize_bool(True)) is True
        assert deserialize(serialize_bool(False)) is False
        assert deserialize(serialize_string_utf8("héllo")) == "héllo"
        assert deserialize(serialize_string_ascii("memo")) == "memo"

    def test_response_ok_wrapping_bool(self):
        value = deserialize("0x0703")
        assert value == ClarityResponse(ok=True, value=True)
        assert unwrap_ok(value) is True

    def test_response_err(self):
        value = deserialize("0x08" + "01" + "00" * 15 + "65")
        assert value.ok is False
        with pytest.raises(ValueError):
            unwrap_ok(value)

    def test_optional_tuple(self):
        # (some (tuple (amount u5) (active true)))
        body = (
            "0a" + "0c" + "00000002"
            + "06" + b"amount".hex() + "01" + "00" * 15 + "05"
            + "06" + b"active".hex() + "03"
        )
        assert deserialize("0x" + body) == {"amount": 5, "active": True}
        assert deserialize("0x09") is None

    def test_trailing_bytes_rejected(self):
        with pytest.raises(ValueError):
            deserialize("0x0303")

    def test_uint_out_of_range(self):
        with pytest.raises(ValueError):
            serialize_uint(-1)


class TestFeeEstimate:
    @pytest.mark.asyncio
    async def test_tiers_from_fee_rate(self, gateway):
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value=2)):
            fees = await gateway.estimate_fee()

        # 2 microSTX/byte * 180 bytes = 360
        assert fees.low == 360
        assert fees.medium == 540
        assert fees.high == 720

    @pytest.mark.asyncio
    async def test_minimums_apply(self, gateway):
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value=1)):
            fees = await gateway.estimate_fee()

        assert (fees.low, fees.medium, fees.high) == (180, 270, 360)

    @pytest.mark.asyncio
    async def test_fallback_when_endpoint_fails(self, gateway):
        with patch.object(gateway, "_request_json", new=AsyncMock(side_effect=LedgerError("400"))):
            fees = await gateway.estimate_fee()

        assert (fees.low, fees.medium, fees.high) == (180, 250, 360)


class TestReads:
    @pytest.mark.asyncio
    async def test_balance_parsing(self, gateway):
        payload = {"stx": {"balance": "12500000", "locked": "2500000"}}
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value=payload)):
            balance = await gateway.get_balance(ALICE_ADDRESS)

        assert balance.balance_micro_stx == 12_500_000
        assert balance.spendable_micro_stx == 10_000_000

    @pytest.mark.asyncio
    async def test_read_retries_then_succeeds(self, gateway):
        request = AsyncMock(side_effect=[aiohttp.ClientError("reset"), {"stx": {"balance": "1"}}])
        with patch.object(gateway, "_request_json", new=request), \
                patch("services.stacks_gateway.asyncio.sleep", new=AsyncMock()):
            balance = await gateway.get_balance(ALICE_ADDRESS)

        assert balance.balance_micro_stx == 1
        assert request.await_count == 2

    @pytest.mark.asyncio
    async def test_read_gives_up_after_retries(self, gateway):
        request = AsyncMock(side_effect=LedgerUnavailableError("503"))
        with patch.object(gateway, "_request_json", new=request), \
                patch("services.stacks_gateway.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(LedgerUnavailableError):
                await gateway.get_balance(ALICE_ADDRESS)

        assert request.await_count == 3

    @pytest.mark.asyncio
    async def test_account_info_and_block_height(self, gateway):
        request = AsyncMock(side_effect=[
            {"balance": "0x00000000000000000000000000989680", "nonce": 12},
            {"results": [{"height": 150233}]},
        ])
        with patch.object(gateway, "_request_json", new=request):
            info = await gateway.get_account_info(ALICE_ADDRESS)
            height = await gateway.get_block_height()

        assert info.balance_micro_stx == 10_000_000
        assert info.nonce == 12
        assert height == 150233

    @pytest.mark.asyncio
    async def test_unindexed_transaction_is_pending(self, gateway):
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value=None)):
            status = await gateway.get_transaction_status("0xabc")

        assert status.pending
        assert not status.indexed

    @pytest.mark.asyncio
    async def test_transaction_status(self, gateway):
        payload = {"tx_status": "success", "block_height": 120, "tx_result": {"repr": "(ok u4)"}}
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value=payload)):
            status = await gateway.get_transaction_status("0xabc")

        assert status.confirmed
        assert status.block_height == 120
        assert parse_created_escrow_id(status.result_repr) == 4

    @pytest.mark.asyncio
    async def test_failed_transaction_status(self, gateway):
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value={"tx_status": "abort_by_response"})):
            status = await gateway.get_transaction_status("0xabc")

        assert status.failed

    @pytest.mark.asyncio
    async def test_read_contract_not_okay(self, gateway):
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value={"okay": False, "cause": "NoSuchContract"})):
            with pytest.raises(LedgerError, match="NoSuchContract"):
                await gateway.read_contract(ALICE_ADDRESS, "escrow", "get-escrow", [serialize_uint(1)])


class TestWrites:
    @pytest.mark.asyncio
    async def test_transfer_goes_to_signer_once(self, gateway):
        account = Account(user_id=ALICE, ledger_address=ALICE_ADDRESS)
        request = AsyncMock(side_effect=[{"balance": "0x0", "nonce": 4}, {"txid": "abc123"}])
        with patch.object(gateway, "_request_json", new=request):
            tx_id = await gateway.broadcast_transfer(
                gateway.resolve_signer(account), BOB_ADDRESS, 5_000_000, 250, memo="hi"
            )

        assert tx_id == "0xabc123"
        method, url = request.await_args_list[1].args
        body = request.await_args_list[1].kwargs["json"]
        assert (method, url) == ("POST", "https://signer.internal/transfers")
        assert body["nonce"] == 4
        assert body["key_ref"] == ALICE
        assert body["amount"] == "5000000"
        assert request.await_args_list[1].kwargs["headers"]["Authorization"] == "Bearer sk_test_123456"

    @pytest.mark.asyncio
    async def test_signer_rejection(self, gateway):
        request = AsyncMock(side_effect=[{"nonce": 0}, {"error": "rejected", "reason": "NotEnoughFunds"}])
        with patch.object(gateway, "_request_json", new=request):
            with pytest.raises(LedgerError, match="NotEnoughFunds"):
                await gateway.broadcast_transfer(Signer(ALICE_ADDRESS, ALICE), BOB_ADDRESS, 1, 180)

    @pytest.mark.asyncio
    async def test_write_not_retried_on_transport_error(self, gateway):
        request = AsyncMock(side_effect=[{"nonce": 0}, aiohttp.ClientError("reset")])
        with patch.object(gateway, "_request_json", new=request):
            with pytest.raises(LedgerError):
                await gateway.broadcast_transfer(Signer(ALICE_ADDRESS, ALICE), BOB_ADDRESS, 1, 180)

        assert request.await_count == 2

    @pytest.mark.asyncio
    async def test_unconfigured_signer(self):
        gateway = StacksGateway(signer_url="")
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value={"nonce": 0})):
            with pytest.raises(LedgerError, match="not configured"):
                await gateway.broadcast_transfer(Signer(ALICE_ADDRESS, ALICE), BOB_ADDRESS, 1, 180)


class TestEscrowContract:
    @pytest.mark.asyncio
    async def test_create_escrow_attaches_post_condition(self, gateway):
        contract = EscrowContract(gateway, "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM", "escrow")
        request = AsyncMock(side_effect=[{"nonce": 1}, {"txid": "0xfeed"}])
        with patch.object(gateway, "_request_json", new=request):
            tx_id = await contract.create_escrow(Signer(ALICE_ADDRESS, ALICE), BOB_ADDRESS, 5_000_000, 144, "memo")

        body = request.await_args_list[1].kwargs["json"]
        assert tx_id == "0xfeed"
        assert body["function_name"] == "create-escrow"
        assert body["post_condition_mode"] == "deny"
        assert body["post_conditions"][0]["amount"] == "5000000"

    @pytest.mark.asyncio
    async def test_can_refund_reads_contract(self, gateway):
        contract = EscrowContract(gateway, "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM", "escrow")
        request = AsyncMock(return_value={"okay": True, "result": "0x0703"})
        with patch.object(gateway, "_request_json", new=request):
            assert await contract.can_refund(3) is True

        assert request.await_args.kwargs["json"]["arguments"] == [serialize_uint(3)]

    @pytest.mark.asyncio
    async def test_can_refund_err_means_false(self, gateway):
        contract = EscrowContract(gateway, "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM", "escrow")
        err = "0x08" + "01" + "00" * 15 + "01"
        with patch.object(gateway, "_request_json", new=AsyncMock(return_value={"okay": True, "result": err})):
            assert await contract.can_refund(3) is False

    def test_parse_created_escrow_id(self):
        assert parse_created_escrow_id("(ok u12)") == 12
        assert parse_created_escrow_id("(err u3)") is None
        assert parse_created_escrow_id(None) is None

    @pytest.mark.asyncio
    async def test_get_escrow_and_status(self, gateway):
        contract = EscrowContract(gateway, "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM", "escrow")
        details = "0x0a0c00000001" + "06" + b"amount".hex() + "01" + "00" * 15 + "05"
        status = "0x07" + serialize_string_ascii("active")[2:]
        request = AsyncMock(side_effect=[
            {"okay": True, "result": details},
            {"okay": True, "result": status},
        ])
        with patch.object(gateway, "_request_json", new=request):
            escrow = await contract.get_escrow(5)
            state = await contract.get_status(5)

        assert escrow == {"amount": 5}
        assert state == "active"
        assert request.await_args_list[0].args[1].endswith("/escrow/get-escrow")
