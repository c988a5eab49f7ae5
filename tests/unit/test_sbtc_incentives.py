from decimal import Decimal

import httpx
import pytest

from stacks_agent.config import Settings
from stacks_agent.providers.base import UpstreamResponseError
from stacks_agent.providers.hiro import BroadcastError, HiroProvider
from stacks_agent.services import sbtc
from stacks_agent.stacks.clarity import (
    ClarityType,
    ContractCallError,
    bool_cv,
    none_cv,
    ok_cv,
    principal_cv,
    some_cv,
    uint_cv,
)
from stacks_agent.stacks.keys import derive_account
from stacks_agent.stacks.transactions import PayloadType

ADDRESS = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"
MNEMONIC = " ".join(["abandon"] * 11 + ["about"])


class _FakeHiro(HiroProvider):
    def __init__(self, answers=None, fee=None):
        super().__init__(api_key="", base_url="https://hiro.test")
        self.answers = answers or {}
        self.fee = fee
        self.calls = []
        self.broadcasts = []

    async def call_read_only(self, contract_address, contract_name, function_name, function_args, sender):
        self.calls.append((contract_address, contract_name, function_name, list(function_args), sender))
        answer = self.answers[function_name]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def get_next_nonce(self, address):
        return 7

    async def estimate_fee(self, payload_hex, estimated_len):
        if isinstance(self.fee, Exception):
            raise self.fee
        return self.fee

    async def broadcast_transaction(self, raw_transaction):
        self.broadcasts.append(raw_transaction)
        return "0x" + "ab" * 32


@pytest.mark.asyncio
@pytest.mark.parametrize("current,upcoming", [(True, True), (True, False), (False, True), (False, False)])
async def test_enrollment_checks_both_cycles(current, upcoming):
    hiro = _FakeHiro(
        {
            "is-enrolled-this-cycle": ok_cv(bool_cv(current)),
            "is-enrolled-in-next-cycle": ok_cv(bool_cv(upcoming)),
        }
    )
    settings = Settings()

    result = await sbtc.is_sbtc_enrolled(ADDRESS, hiro=hiro, settings=settings)

    assert result["currentCycle"] is current
    assert result["nextCycle"] is upcoming
    assert result["formatted"] == (
        f"Enrolled for current cycle: {'Yes' if current else 'No'}, "
        f"Enrolled for next cycle: {'Yes' if upcoming else 'No'}"
    )
    called = [(call[1], call[2]) for call in hiro.calls]
    assert called == [
        (settings.sbtc_contract_name, "is-enrolled-this-cycle"),
        (settings.sbtc_contract_name, "is-enrolled-in-next-cycle"),
    ]
    assert hiro.calls[0][3] == [principal_cv(ADDRESS)]


@pytest.mark.asyncio
async def test_enrollment_accepts_plain_bool_results():
    hiro = _FakeHiro(
        {
            "is-enrolled-this-cycle": bool_cv(False),
            "is-enrolled-in-next-cycle": bool_cv(True),
        }
    )

    result = await sbtc.is_sbtc_enrolled(ADDRESS, hiro=hiro, settings=Settings())

    assert (result["currentCycle"], result["nextCycle"]) == (False, True)


@pytest.mark.asyncio
async def test_current_cycle():
    hiro = _FakeHiro({"current-cycle-id": ok_cv(uint_cv(42))})

    result = await sbtc.get_sbtc_current_cycle(ADDRESS, hiro=hiro, settings=Settings())

    assert result == {"cycleId": 42, "formatted": "Current sBTC rewards cycle ID: 42"}


@pytest.mark.asyncio
async def test_current_cycle_rejects_non_integer():
    hiro = _FakeHiro({"current-cycle-id": bool_cv(True)})

    with pytest.raises(UpstreamResponseError):
        await sbtc.get_sbtc_current_cycle(ADDRESS, hiro=hiro, settings=Settings())


@pytest.mark.asyncio
async def test_reward_address_present_and_missing():
    reward = "SP804CDG3KBN9M6E00AD744K8DC697G7HBCG520Q"
    present = _FakeHiro({"get-latest-reward-address": some_cv(principal_cv(reward))})
    missing = _FakeHiro({"get-latest-reward-address": none_cv()})

    found = await sbtc.get_sbtc_reward_address(ADDRESS, hiro=present, settings=Settings())
    absent = await sbtc.get_sbtc_reward_address(ADDRESS, hiro=missing, settings=Settings())

    assert found["rewardAddress"] == reward
    assert found["formatted"] == f"The reward address for {ADDRESS} is {reward}"
    assert absent["rewardAddress"] is None
    assert absent["formatted"] == f"No reward address is set for {ADDRESS}"


@pytest.mark.asyncio
async def test_rewards_by_cycle_scale_by_eight_decimals():
    hiro = _FakeHiro({"reward-amount-for-cycle-and-address": ok_cv(uint_cv(12_345_000))})

    result = await sbtc.get_sbtc_rewards_by_cycle(3, ADDRESS, hiro=hiro, settings=Settings())

    assert result["rewards"] == Decimal("0.12345")
    assert result["formatted"] == f"sBTC rewards for cycle 3 and address {ADDRESS}: 0.12345 sBTC"
    args = hiro.calls[0][3]
    assert args[0] == uint_cv(3)
    assert args[1].type == ClarityType.PRINCIPAL_STANDARD


@pytest.mark.asyncio
async def test_contract_errors_propagate():
    hiro = _FakeHiro({"current-cycle-id": ContractCallError("Read-only call failed: runtime error")})

    with pytest.raises(ContractCallError):
        await sbtc.get_sbtc_current_cycle(ADDRESS, hiro=hiro, settings=Settings())


@pytest.mark.asyncio
async def test_enroll_signs_and_broadcasts_with_estimated_fee():
    account = derive_account(MNEMONIC)
    hiro = _FakeHiro(fee=1234)

    result = await sbtc.enroll_sbtc_incentives(account, hiro=hiro, settings=Settings())

    assert result["success"] is True
    assert result["txid"] == "0x" + "ab" * 32
    assert result["formatted"].endswith(result["txid"])
    raw = hiro.broadcasts[0]
    assert raw[5] == 0x04
    # nonce and fee follow the signer hash in the spending condition
    assert int.from_bytes(raw[7 + 20:7 + 28], "big") == 7
    assert int.from_bytes(raw[7 + 28:7 + 36], "big") == 1234
    assert bytes([PayloadType.CONTRACT_CALL]) + bytes([22]) in raw


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [
        UpstreamResponseError("Fee estimation returned no estimates"),
        httpx.ConnectError("connection refused"),
    ],
)
async def test_enroll_falls_back_to_default_fee(failure):
    account = derive_account(MNEMONIC)
    hiro = _FakeHiro(fee=failure)
    settings = Settings()

    await sbtc.enroll_sbtc_incentives(account, hiro=hiro, settings=settings)

    raw = hiro.broadcasts[0]
    assert int.from_bytes(raw[7 + 28:7 + 36], "big") == settings.default_tx_fee_ustx


@pytest.mark.asyncio
async def test_rejected_broadcast_raises():
    account = derive_account(MNEMONIC)

    class _Rejecting(_FakeHiro):
        async def broadcast_transaction(self, raw_transaction):
            raise BroadcastError("Transaction broadcast failed: NotEnoughFunds")

    with pytest.raises(BroadcastError):
        await sbtc.enroll_sbtc_incentives(account, hiro=_Rejecting(fee=180), settings=Settings())


@pytest.mark.asyncio
async def test_broadcast_rejection_reason_from_node():
    def handler(request):
        return httpx.Response(400, json={"error": "transaction rejected", "reason": "BadNonce"})

    hiro = HiroProvider(api_key="", base_url="https://hiro.test", transport=httpx.MockTransport(handler))

    with pytest.raises(BroadcastError, match="BadNonce"):
        await hiro.broadcast_transaction(b"\x00\x01")


@pytest.mark.asyncio
async def test_broadcast_returns_prefixed_txid():
    def handler(request):
        assert request.headers["content-type"] == "application/octet-stream"
        return httpx.Response(200, text='"' + "cd" * 32 + '"')

    hiro = HiroProvider(api_key="", base_url="https://hiro.test", transport=httpx.MockTransport(handler))

    assert await hiro.broadcast_transaction(b"\x00\x01") == "0x" + "cd" * 32
