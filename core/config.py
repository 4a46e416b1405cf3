"""
Immutable launcher configuration
"""
from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_NODE_API_URL = "http://127.0.0.1:13523"
DEFAULT_DATA_DIR = Path.home() / ".mev-commit"
KEY_FILE_NAME = "key"

# 1 ETH deposit for bidders, 1000 ETH stake for providers (wei)
DEFAULT_DEPOSIT_WEI = 10**18
DEFAULT_STAKE_WEI = 1000 * 10**18


class Role(str, Enum):
    """Operating role of the node"""
    BIDDER = "bidder"
    PROVIDER = "provider"


class ProtocolGeneration(str, Enum):
    """Protocol generation deciding how registration is performed"""
    LEGACY = "legacy"
    CURRENT = "current"

    @classmethod
    def for_version(cls, version: str) -> 'ProtocolGeneration':
        """Releases before 0.4.0 use the legacy registration flow"""
        parts = version.lstrip("v").split(".")
        try:
            major = int(parts[0])
            minor = int(parts[1]) if len(parts) > 1 else 0
        except ValueError:
            return cls.CURRENT
        if (major, minor) < (0, 4):
            return cls.LEGACY
        return cls.CURRENT


class ContractAddresses(BaseModel):
    """Network-specific contract address set"""
    block_tracker: str = Field(..., alias="BlockTracker")
    bidder_registry: str = Field(..., alias="BidderRegistry")
    provider_registry: str = Field(..., alias="ProviderRegistry")
    commitment_store: str = Field(..., alias="PreConfCommitmentStore")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class NodeConfig(BaseModel):
    """
    Everything needed to launch and register one node.
    Built once at startup and never mutated.
    """
    rpc_endpoint: str
    role: Role
    binary: Path
    bootnodes: Tuple[str, ...] = ()
    contracts: Optional[ContractAddresses] = None
    data_dir: Path = DEFAULT_DATA_DIR
    node_api_url: str = DEFAULT_NODE_API_URL
    protocol: ProtocolGeneration = ProtocolGeneration.CURRENT
    deposit_wei: int = Field(default=DEFAULT_DEPOSIT_WEI, gt=0)
    stake_wei: int = Field(default=DEFAULT_STAKE_WEI, gt=0)
    funding_timeout: Optional[float] = Field(default=None, gt=0)

    model_config = ConfigDict(frozen=True)

    @property
    def key_path(self) -> Path:
        """Path of the private key file written by the node"""
        return self.data_dir / KEY_FILE_NAME

    def launch_args(self) -> List[str]:
        """Compose the node's full command line"""
        args = [
            str(self.binary),
            "--settlement-rpc-endpoint", self.rpc_endpoint,
            "--peer-type", self.role.value,
            "--priv-key-file", str(self.key_path),
        ]
        if self.bootnodes:
            args += ["--bootnodes", ",".join(self.bootnodes)]
        if self.contracts is not None:
            args += [
                "--block-tracker-contract", self.contracts.block_tracker,
                "--bidder-registry-contract", self.contracts.bidder_registry,
                "--provider-registry-contract", self.contracts.provider_registry,
                "--preconf-contract", self.contracts.commitment_store,
            ]
        return args
