"""
In-process stand-in for the node API, the settlement RPC and the release/contract endpoints.
"""
import sys
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

BASE_URL = "http://testserver"
RPC_URL = f"{BASE_URL}/rpc"

CONTRACTS = {
    "BlockTracker": "0x2eEbF31f5c932D51556E70235FB98bB2237d065c",
    "BidderRegistry": "0x7ffa86fF89489Bca72Fec2a978e33f9870B2Bd25",
    "ProviderRegistry": "0x4FC9b98e1A0Ff10de4c2cf294656854F1d5B207D",
    "PreConfCommitmentStore": "0xCAC68D97a56b19204Dd3dbDC103CB24D47A825A3",
}

TX_HASH = "0x" + "ab" * 32

# Hardhat's first development account
DEV_PRIVATE_KEY = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

SLEEPING_CHILD = [sys.executable, "-c", "import time; time.sleep(60)"]


class FakeNode:
    """Scriptable fake; every call is recorded for assertions"""

    def __init__(self):
        self.balances: List[int] = [0]
        self.deposit_status = 200
        self.receipt_status: Optional[str] = "0x1"
        self.failing_methods: set = set()
        self.contracts: Dict[str, str] = dict(CONTRACTS)
        self.version: Optional[str] = "0.4.3"
        self.deposits: List[str] = []
        self.rpc_calls: List[Dict[str, Any]] = []
        self.app = self._create_app()
        self.client = TestClient(self.app, base_url=BASE_URL)

    def calls(self, method: str) -> List[Dict[str, Any]]:
        return [c for c in self.rpc_calls if c["method"] == method]

    def _next_balance(self) -> int:
        if len(self.balances) > 1:
            return self.balances.pop(0)
        return self.balances[0]

    def _rpc_result(self, method: str, params: List[Any]) -> Any:
        if method == "eth_getBalance":
            return hex(self._next_balance())
        if method == "eth_chainId":
            return hex(17864)
        if method == "eth_gasPrice":
            return hex(10**9)
        if method == "eth_getTransactionCount":
            return "0x0"
        if method == "eth_estimateGas":
            return hex(200000)
        if method == "eth_sendRawTransaction":
            return TX_HASH
        if method == "eth_getTransactionReceipt":
            if self.receipt_status is None:
                return None
            return {"transactionHash": params[0], "status": self.receipt_status}
        raise KeyError(method)

    def _create_app(self) -> FastAPI:
        app = FastAPI(title="Fake mev-commit node")

        @app.post("/v1/bidder/auto_deposit/{amount}")
        async def auto_deposit(amount: str):
            self.deposits.append(f"auto_deposit/{amount}")
            return JSONResponse({"amount": amount}, status_code=self.deposit_status)

        @app.post("/v1/bidder/prepay/{amount}")
        async def prepay(amount: str):
            self.deposits.append(f"prepay/{amount}")
            return JSONResponse({"amount": amount}, status_code=self.deposit_status)

        @app.get("/contracts.json")
        async def contracts():
            return self.contracts

        @app.get("/latest.json")
        async def latest():
            if self.version is None:
                return {}
            return {"version": self.version}

        @app.post("/rpc")
        async def rpc(payload: Dict[str, Any] = Body(...)):
            self.rpc_calls.append(payload)
            method = payload["method"]
            response = {"jsonrpc": "2.0", "id": payload.get("id")}
            if method in self.failing_methods:
                response["error"] = {"code": -32000, "message": f"{method} unavailable"}
            else:
                response["result"] = self._rpc_result(method, payload.get("params", []))
            return response

        return app
