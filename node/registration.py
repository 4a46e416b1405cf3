"""
Role-specific registration performed once the node is funded
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, Optional, Tuple
import logging
import time

import requests
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field

from core.account import NodeAccount
from core.config import NodeConfig, ProtocolGeneration, Role
from core.errors import ConfigurationError, RegistrationFailure, RpcError
from core.rpc import JsonRpcClient, from_wei

logger = logging.getLogger(__name__)


class RegistrationRequest(BaseModel):
    """A single registration call, built and fired once"""
    role: Role
    endpoint: str
    amount_wei: int = Field(..., gt=0)

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class RegistrationResult:
    role: Role
    detail: str
    tx_hash: Optional[str] = None


class RegistrationAction(ABC):
    """Strategy for activating a funded node"""
    role: ClassVar[Role]

    @abstractmethod
    def build_request(self, account: NodeAccount) -> RegistrationRequest:
        ...

    @abstractmethod
    def perform(self, account: NodeAccount) -> RegistrationResult:
        ...


class BidderDeposit(RegistrationAction):
    """Deposit through the node's local HTTP API"""
    role = Role.BIDDER

    AUTO_DEPOSIT_PATH = "/v1/bidder/auto_deposit/{amount}"
    PREPAY_PATH = "/v1/bidder/prepay/{amount}"

    def __init__(self, node_api_url: str, amount_wei: int,
                 path_template: str = AUTO_DEPOSIT_PATH,
                 session: Optional[requests.Session] = None,
                 timeout: float = 30.0):
        self.node_api_url = node_api_url.rstrip("/")
        self.amount_wei = amount_wei
        self.path_template = path_template
        self.session = session or requests.Session()
        self.timeout = timeout

    def build_request(self, account: NodeAccount) -> RegistrationRequest:
        path = self.path_template.format(amount=self.amount_wei)
        return RegistrationRequest(
            role=self.role,
            endpoint=f"{self.node_api_url}{path}",
            amount_wei=self.amount_wei,
        )

    def perform(self, account: NodeAccount) -> RegistrationResult:
        request = self.build_request(account)
        logger.info(f"Depositing {from_wei(request.amount_wei)} ETH via {request.endpoint}")
        try:
            response = self.session.post(request.endpoint, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RegistrationFailure(f"Deposit request to {request.endpoint} failed: {e}") from e

        if response.status_code != 200:
            raise RegistrationFailure(
                f"Deposit request to {request.endpoint} failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return RegistrationResult(
            role=self.role,
            detail=f"Deposited {from_wei(request.amount_wei)} ETH for bidder {account.address}",
        )


class ProviderStake(RegistrationAction):
    """Stake on-chain by calling registerAndStake() on the provider registry"""
    role = Role.PROVIDER

    STAKE_FUNCTION = "registerAndStake()"

    def __init__(self, rpc: JsonRpcClient, provider_registry: str, amount_wei: int,
                 receipt_attempts: int = 30, receipt_interval: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.rpc = rpc
        self.provider_registry = to_checksum_address(provider_registry)
        self.amount_wei = amount_wei
        self.receipt_attempts = receipt_attempts
        self.receipt_interval = receipt_interval
        self._sleep = sleep

    def build_request(self, account: NodeAccount) -> RegistrationRequest:
        return RegistrationRequest(
            role=self.role,
            endpoint=self.provider_registry,
            amount_wei=self.amount_wei,
        )

    def perform(self, account: NodeAccount) -> RegistrationResult:
        request = self.build_request(account)
        logger.info(f"Staking {from_wei(request.amount_wei)} ETH in provider registry {request.endpoint}")
        try:
            transaction = self._build_transaction(account, request)
            signed = Account.sign_transaction(transaction, account.private_key)
            raw = getattr(signed, "raw_transaction", None)
            if raw is None:
                raw = signed.rawTransaction
            tx_hash = self.rpc.send_raw_transaction("0x" + bytes(raw).hex())
        except RpcError as e:
            raise RegistrationFailure(f"Stake transaction could not be submitted: {e}") from e

        logger.info(f"Stake transaction submitted: {tx_hash}")
        self._await_receipt(tx_hash)
        return RegistrationResult(
            role=self.role,
            detail=f"Staked {from_wei(request.amount_wei)} ETH for provider {account.address}",
            tx_hash=tx_hash,
        )

    def _build_transaction(self, account: NodeAccount, request: RegistrationRequest) -> dict:
        data = "0x" + function_signature_to_4byte_selector(self.STAKE_FUNCTION).hex()
        gas = self.rpc.estimate_gas({
            "from": account.address,
            "to": request.endpoint,
            "value": hex(request.amount_wei),
            "data": data,
        })
        return {
            "nonce": self.rpc.get_transaction_count(account.address),
            "gasPrice": self.rpc.gas_price(),
            "gas": gas,
            "to": request.endpoint,
            "value": request.amount_wei,
            "data": data,
            "chainId": self.rpc.chain_id(),
        }

    def _await_receipt(self, tx_hash: str):
        for _ in range(self.receipt_attempts):
            try:
                receipt = self.rpc.get_transaction_receipt(tx_hash)
            except RpcError as e:
                raise RegistrationFailure(f"Could not fetch receipt for {tx_hash}: {e}") from e
            if receipt is not None:
                if receipt.get("status") != "0x1":
                    raise RegistrationFailure(f"Stake transaction {tx_hash} reverted")
                return
            self._sleep(self.receipt_interval)
        raise RegistrationFailure(f"Stake transaction {tx_hash} was not mined")


class ProviderManualRegistration(RegistrationAction):
    """Current protocol: providers register themselves; only print instructions"""
    role = Role.PROVIDER

    def __init__(self, amount_wei: int, provider_registry: Optional[str] = None):
        self.amount_wei = amount_wei
        self.provider_registry = provider_registry

    def build_request(self, account: NodeAccount) -> RegistrationRequest:
        return RegistrationRequest(
            role=self.role,
            endpoint=self.provider_registry or "manual",
            amount_wei=self.amount_wei,
        )

    def perform(self, account: NodeAccount) -> RegistrationResult:
        request = self.build_request(account)
        registry = f" at {self.provider_registry}" if self.provider_registry else ""
        instructions = (
            f"Provider account {account.address} is funded.\n"
            f"Register it by staking at least {from_wei(request.amount_wei)} ETH "
            f"in the provider registry{registry}.\n"
            "This protocol version requires provider registration to be completed manually, "
            "see the mev-commit provider documentation."
        )
        return RegistrationResult(role=self.role, detail=instructions)


ActionFactory = Callable[[NodeConfig, JsonRpcClient, Optional[requests.Session]], RegistrationAction]


def _bidder_prepay(config, rpc, session):
    return BidderDeposit(config.node_api_url, config.deposit_wei,
                         path_template=BidderDeposit.PREPAY_PATH, session=session)


def _bidder_auto_deposit(config, rpc, session):
    return BidderDeposit(config.node_api_url, config.deposit_wei,
                         path_template=BidderDeposit.AUTO_DEPOSIT_PATH, session=session)


def _provider_stake(config, rpc, session):
    if config.contracts is None:
        raise ConfigurationError("On-chain provider staking needs the provider registry address")
    return ProviderStake(rpc, config.contracts.provider_registry, config.stake_wei)


def _provider_manual(config, rpc, session):
    registry = config.contracts.provider_registry if config.contracts is not None else None
    return ProviderManualRegistration(config.stake_wei, provider_registry=registry)


ACTIONS: Dict[Tuple[Role, ProtocolGeneration], ActionFactory] = {
    (Role.BIDDER, ProtocolGeneration.LEGACY): _bidder_prepay,
    (Role.BIDDER, ProtocolGeneration.CURRENT): _bidder_auto_deposit,
    (Role.PROVIDER, ProtocolGeneration.LEGACY): _provider_stake,
    (Role.PROVIDER, ProtocolGeneration.CURRENT): _provider_manual,
}


def select_action(config: NodeConfig, rpc: JsonRpcClient,
                  session: Optional[requests.Session] = None) -> RegistrationAction:
    """Pick the registration strategy for the configured role and protocol generation"""
    return ACTIONS[(config.role, config.protocol)](config, rpc, session)


class RoleActionDispatcher:
    """Fires the selected registration action exactly once, without retries"""

    def __init__(self, action: RegistrationAction):
        self.action = action
        self._fired = False

    @classmethod
    def for_config(cls, config: NodeConfig, rpc: JsonRpcClient,
                   session: Optional[requests.Session] = None) -> 'RoleActionDispatcher':
        return cls(select_action(config, rpc, session))

    @property
    def fired(self) -> bool:
        return self._fired

    def dispatch(self, account: NodeAccount) -> RegistrationResult:
        if self._fired:
            raise RuntimeError("Registration was already dispatched for this run")
        self._fired = True
        logger.info(f"Registering {self.action.role.value} account {account.address}")
        result = self.action.perform(account)
        logger.info(f"Registration complete for {account.address}")
        return result
