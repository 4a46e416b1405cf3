"""
Contract address resolution
"""
from typing import Optional
import ipaddress
import logging
import re

import requests
from pydantic import ValidationError

from core.config import ContractAddresses
from core.errors import AddressFetchFailure, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONTRACTS_URL = "https://contracts.testnet.mev-commit.xyz/contracts.json"
DEV_CONTRACTS_PATH = "/contracts.json"

_IPV4_PATTERN = re.compile(r"(?<![\d.])(\d{1,3}(?:\.\d{1,3}){3})(?![\d.])")


def dev_contracts_url(rpc_url: str) -> str:
    """
    Derive the development contracts endpoint from the RPC URL.
    The RPC host must be an IPv4 literal.
    """
    match = _IPV4_PATTERN.search(rpc_url)
    if match is None:
        raise ConfigurationError(f"No IPv4 address found in RPC URL {rpc_url!r}")
    try:
        ip = ipaddress.IPv4Address(match.group(1))
    except ipaddress.AddressValueError as e:
        raise ConfigurationError(f"Invalid IPv4 address in RPC URL {rpc_url!r}") from e
    return f"http://{ip}{DEV_CONTRACTS_PATH}"


class ContractAddressResolver:
    """Fetches the network's contract addresses from a JSON endpoint"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, url: str = DEFAULT_CONTRACTS_URL) -> ContractAddresses:
        """Fetch and validate the four contract addresses from `url`"""
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise AddressFetchFailure(f"Could not reach contracts endpoint {url}: {e}") from e

        if response.status_code != 200:
            raise AddressFetchFailure(
                f"Contracts endpoint {url} answered with status {response.status_code}"
            )
        try:
            document = response.json()
        except ValueError as e:
            raise AddressFetchFailure(f"Contracts endpoint {url} did not return JSON") from e

        try:
            contracts = ContractAddresses.model_validate(document)
        except ValidationError as e:
            missing = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            raise AddressFetchFailure(f"Contracts endpoint {url} is missing: {missing}") from e

        logger.info(f"Resolved contract addresses from {url}")
        return contracts

    def fetch_for_dev(self, rpc_url: str) -> ContractAddresses:
        """Discover the development endpoint from the RPC URL and fetch from it"""
        return self.fetch(dev_contracts_url(rpc_url))
