"""
Funding wait for the node's operating account
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Callable, Optional
import logging
import time

from core.account import NodeAccount
from core.errors import ConfigurationError, FundingTimeout, RpcError
from core.rpc import JsonRpcClient, from_wei

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_KEY_POLL_INTERVAL = 1.0


class FundingPhase(str, Enum):
    WAITING_FOR_KEY = "waiting_for_key"
    POLLING_BALANCE = "polling_balance"
    FUNDED = "funded"


@dataclass(frozen=True)
class BalanceObservation:
    """One balance reading taken while waiting for funds"""
    address: str
    balance_wei: int

    @property
    def balance(self) -> Decimal:
        return from_wei(self.balance_wei)

    @property
    def funded(self) -> bool:
        return self.balance > FundingWaiter.FUNDING_THRESHOLD


class FundingWaiter:
    """
    Waits until the node has written its key and its account holds funds.

    WAITING_FOR_KEY -> POLLING_BALANCE -> FUNDED, never backwards.
    Balance query failures are retried on the poll interval. With no
    timeout the wait is unbounded.
    """
    FUNDING_THRESHOLD = Decimal(0)

    def __init__(self, key_path: Path, rpc: JsonRpcClient,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 key_poll_interval: float = DEFAULT_KEY_POLL_INTERVAL,
                 timeout: Optional[float] = None,
                 on_observation: Optional[Callable[[BalanceObservation], None]] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.key_path = Path(key_path)
        self.rpc = rpc
        self.poll_interval = poll_interval
        self.key_poll_interval = key_poll_interval
        self.timeout = timeout
        self.on_observation = on_observation
        self.phase = FundingPhase.WAITING_FOR_KEY
        self.last_observation: Optional[BalanceObservation] = None
        self._sleep = sleep
        self._clock = clock

    def wait(self) -> NodeAccount:
        """Block until the account is funded and return it"""
        deadline = None if self.timeout is None else self._clock() + self.timeout

        account = self._wait_for_key(deadline)
        self.phase = FundingPhase.POLLING_BALANCE
        logger.info(f"Waiting for funds on {account.address}")

        while True:
            observation = self._poll(account)
            if observation is not None and observation.funded:
                self.phase = FundingPhase.FUNDED
                logger.info(f"Account {account.address} funded with {observation.balance} ETH")
                return account
            self._check_deadline(deadline, f"Account {account.address} was not funded")
            self._sleep(self.poll_interval)

    def _wait_for_key(self, deadline: Optional[float]) -> NodeAccount:
        """
        Poll until the key file holds a complete hex key.
        An empty or partially written file is waited out; anything else is fatal.
        """
        logger.info(f"Waiting for node key at {self.key_path}")
        while True:
            try:
                text = NodeAccount.read_key_file(self.key_path)
            except ValueError as e:
                raise ConfigurationError(f"Node key {self.key_path} is unusable: {e}") from e

            if NodeAccount.is_complete_key(text):
                try:
                    return NodeAccount.from_private_key(text)
                except ValueError as e:
                    raise ConfigurationError(f"Node key {self.key_path} is unusable: {e}") from e
            if not NodeAccount.is_partial_key(text):
                raise ConfigurationError(f"Node key {self.key_path} is not a hex private key")

            if text:
                logger.debug(f"Node key {self.key_path} is still being written")
                self._check_deadline(deadline, f"Node key {self.key_path} was incomplete")
            else:
                self._check_deadline(deadline, f"Node key {self.key_path} never appeared")
            self._sleep(self.key_poll_interval)

    def _poll(self, account: NodeAccount) -> Optional[BalanceObservation]:
        try:
            balance_wei = self.rpc.get_balance(account.address)
        except RpcError as e:
            logger.warning(f"Balance query failed, retrying in {self.poll_interval}s: {e}")
            return None

        observation = BalanceObservation(address=account.address, balance_wei=balance_wei)
        self.last_observation = observation
        if not observation.funded:
            logger.info(f"Balance of {account.address} is {observation.balance} ETH, waiting for funding")
        if self.on_observation is not None:
            self.on_observation(observation)
        return observation

    def _check_deadline(self, deadline: Optional[float], message: str):
        if deadline is not None and self._clock() >= deadline:
            raise FundingTimeout(f"{message} within {self.timeout}s")
