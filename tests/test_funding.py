"""
Tests for the funding wait
"""
from pathlib import Path
from typing import List

import pytest

from core.errors import ConfigurationError, FundingTimeout, RpcError
from core.rpc import JsonRpcClient
from node.funding import BalanceObservation, FundingPhase, FundingWaiter
from tests.fake_node import DEV_ADDRESS, DEV_PRIVATE_KEY, RPC_URL, FakeNode


class StubRpc:
    """Returns scripted balances; an exception instance in the script is raised instead"""

    def __init__(self, script: List):
        self.script = list(script)
        self.queried = []

    def get_balance(self, address: str) -> int:
        self.queried.append(address)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


def _waiter(key_path: Path, rpc, clock: FakeClock, **kwargs) -> FundingWaiter:
    observations = kwargs.pop("observations", None)
    return FundingWaiter(
        key_path, rpc,
        on_observation=observations.append if observations is not None else None,
        sleep=clock.sleep, clock=clock,
        **kwargs,
    )


def test_not_funded_while_zero_then_funded_at_one_wei(key_file: Path):
    clock = FakeClock()
    observations: List[BalanceObservation] = []
    rpc = StubRpc([0, 0, 0, 1])
    waiter = _waiter(key_file, rpc, clock, observations=observations)

    account = waiter.wait()

    assert account.address == DEV_ADDRESS
    assert waiter.phase == FundingPhase.FUNDED
    assert [o.funded for o in observations] == [False, False, False, True]
    assert observations[-1].balance_wei == 1
    assert clock.sleeps == [5.0, 5.0, 5.0]
    assert rpc.queried == [DEV_ADDRESS] * 4


def test_rpc_failures_are_retried(key_file: Path):
    clock = FakeClock()
    observations: List[BalanceObservation] = []
    rpc = StubRpc([RpcError("connection refused"), RpcError("timeout"), 0, 2 * 10**18])
    waiter = _waiter(key_file, rpc, clock, observations=observations)

    waiter.wait()

    assert waiter.phase == FundingPhase.FUNDED
    assert len(observations) == 2
    assert observations[-1].balance == 2
    assert len(clock.sleeps) == 3


def test_waits_for_key_file(tmp_path: Path):
    key_path = tmp_path / "key"
    clock = FakeClock()
    phases = []

    def sleep(seconds):
        phases.append(waiter.phase)
        clock.sleep(seconds)
        if len(clock.sleeps) == 2:
            key_path.write_text("")
        if len(clock.sleeps) == 3:
            key_path.write_text(DEV_PRIVATE_KEY)

    rpc = StubRpc([7])
    waiter = FundingWaiter(key_path, rpc, key_poll_interval=0.5, sleep=sleep, clock=clock)

    assert waiter.wait().address == DEV_ADDRESS
    assert phases == [FundingPhase.WAITING_FOR_KEY] * 3
    assert clock.sleeps == [0.5, 0.5, 0.5]


def test_no_balance_query_before_key_exists(tmp_path: Path):
    clock = FakeClock()
    rpc = StubRpc([])
    waiter = _waiter(tmp_path / "key", rpc, clock, timeout=3.0, key_poll_interval=1.0)

    with pytest.raises(FundingTimeout, match="never appeared"):
        waiter.wait()
    assert rpc.queried == []
    assert waiter.phase == FundingPhase.WAITING_FOR_KEY


def test_timeout_while_polling(key_file: Path):
    clock = FakeClock()
    rpc = StubRpc([0] * 10)
    waiter = _waiter(key_file, rpc, clock, timeout=12.0)

    with pytest.raises(FundingTimeout, match="not funded"):
        waiter.wait()
    assert waiter.phase == FundingPhase.POLLING_BALANCE
    assert len(rpc.queried) == 4


def test_unusable_key_file(tmp_path: Path):
    key_path = tmp_path / "key"
    key_path.write_text("not-a-key")
    waiter = _waiter(key_path, StubRpc([]), FakeClock())

    with pytest.raises(ConfigurationError):
        waiter.wait()


def test_partly_written_key_is_waited_out(tmp_path: Path):
    key_path = tmp_path / "key"
    key_path.write_text(f"0x{DEV_PRIVATE_KEY[:20]}")
    clock = FakeClock()

    def sleep(seconds):
        clock.sleep(seconds)
        if len(clock.sleeps) == 2:
            key_path.write_text(f"0x{DEV_PRIVATE_KEY}\n")

    waiter = FundingWaiter(key_path, StubRpc([1]), key_poll_interval=0.5, sleep=sleep, clock=clock)

    assert waiter.wait().address == DEV_ADDRESS
    assert clock.sleeps == [0.5, 0.5]


def test_key_still_incomplete_at_deadline(tmp_path: Path):
    key_path = tmp_path / "key"
    key_path.write_text(DEV_PRIVATE_KEY[:40])
    rpc = StubRpc([])
    waiter = _waiter(key_path, rpc, FakeClock(), timeout=2.0)

    with pytest.raises(FundingTimeout, match="incomplete"):
        waiter.wait()
    assert rpc.queried == []


def test_binary_key_file_is_a_configuration_error(tmp_path: Path):
    key_path = tmp_path / "key"
    key_path.write_bytes(b"\xff\xfe\x00\x81")
    waiter = _waiter(key_path, StubRpc([]), FakeClock())

    with pytest.raises(ConfigurationError, match="not a text file"):
        waiter.wait()


def test_polls_through_json_rpc(key_file: Path, fake_node: FakeNode):
    fake_node.balances = [0, 0, 3]
    clock = FakeClock()
    rpc = JsonRpcClient(RPC_URL, session=fake_node.client)
    waiter = _waiter(key_file, rpc, clock, poll_interval=1.0)

    waiter.wait()

    assert len(fake_node.calls("eth_getBalance")) == 3
    assert waiter.last_observation.balance_wei == 3
