"""
Minimal JSON-RPC client for the settlement chain
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import itertools
import logging

import requests

from core.errors import RpcError

logger = logging.getLogger(__name__)

WEI_PER_ETHER = Decimal(10) ** 18


def from_wei(wei: int) -> Decimal:
    """Convert an integer wei amount to ether"""
    return Decimal(wei) / WEI_PER_ETHER


class JsonRpcClient:
    """JSON-RPC 2.0 over HTTP POST"""

    def __init__(self, url: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout
        self._ids = itertools.count(1)

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Issue one RPC call and return its `result`"""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RpcError(f"{method} failed: {e}") from e

        if response.status_code != 200:
            raise RpcError(f"{method} failed with HTTP status {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise RpcError(f"{method} returned a non-JSON response") from e

        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise RpcError(f"{method} failed: {message}")
        if "result" not in body:
            raise RpcError(f"{method} returned no result")
        return body["result"]

    def _call_int(self, method: str, params: Optional[List[Any]] = None) -> int:
        result = self.call(method, params)
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise RpcError(f"{method} returned a non-quantity result: {result!r}") from e

    def get_balance(self, address: str) -> int:
        """Balance of `address` in wei"""
        return self._call_int("eth_getBalance", [address, "latest"])

    def chain_id(self) -> int:
        return self._call_int("eth_chainId")

    def gas_price(self) -> int:
        return self._call_int("eth_gasPrice")

    def get_transaction_count(self, address: str) -> int:
        return self._call_int("eth_getTransactionCount", [address, "pending"])

    def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        return self._call_int("eth_estimateGas", [transaction])

    def send_raw_transaction(self, raw_transaction: str) -> str:
        """Submit a signed transaction, returning its hash"""
        return self.call("eth_sendRawTransaction", [raw_transaction])

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt of a mined transaction, or None while pending"""
        return self.call("eth_getTransactionReceipt", [tx_hash])
