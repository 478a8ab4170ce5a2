"""Web3 signing agent — EIP-5792 atomic batches with a per-call fallback.

The connected wallet (a node with an unlocked account, or a wallet bridge
exposing JSON-RPC) signs everything.  This module never holds keys.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from web3 import AsyncWeb3
from web3.types import RPCEndpoint

from src.chain.base import SigningAgent
from src.chain.client import classify_chain_error, classify_rpc_payload
from src.chain.models import Call
from src.core.errors import (
    ChainError,
    ChainNetworkError,
    ChainRevertError,
    ChainUnsupportedError,
    WalletCapabilityError,
)

log = structlog.get_logger()

# EIP-5792 status codes (v2) and their v1 string forms
_PENDING = (100, "PENDING")
_CONFIRMED = (200, "CONFIRMED")


def _atomic_from_capabilities(caps: dict[str, Any], chain_id: int) -> bool:
    """Read the atomic-batch flag out of a ``wallet_getCapabilities`` result.

    Wallets key capabilities by hex chain id (``0x0`` for all chains).  The
    current shape is ``{"atomic": {"status": "supported" | "ready"}}``; the
    earlier draft used ``{"atomicBatch": {"supported": true}}``.
    """
    chain_caps = caps.get(hex(chain_id)) or caps.get("0x0") or {}
    atomic = chain_caps.get("atomic") or {}
    if atomic.get("status") in ("supported", "ready"):
        return True
    legacy = chain_caps.get("atomicBatch") or {}
    return bool(legacy.get("supported"))


class Web3SigningAgent(SigningAgent):
    """Wallet reached through the same AsyncWeb3 provider as the reads."""

    def __init__(
        self,
        w3: AsyncWeb3,
        account: str,
        *,
        chain_id: int,
        receipt_timeout_secs: float = 120.0,
        poll_interval_secs: float = 1.0,
    ) -> None:
        super().__init__()
        self._w3 = w3
        self._account = AsyncWeb3.to_checksum_address(account)
        self._chain_id = chain_id
        self._timeout = receipt_timeout_secs
        self._poll = poll_interval_secs
        self._log = log.bind(client="wallet", account=self._account)

    @property
    def account(self) -> str:
        return self._account

    async def _request(self, method: str, params: list[Any]) -> Any:
        try:
            response = await self._w3.provider.make_request(RPCEndpoint(method), params)
        except Exception as exc:
            raise classify_chain_error(exc) from exc
        if response.get("error"):
            raise classify_rpc_payload(response["error"])
        return response.get("result")

    async def _probe_atomic_batch(self) -> bool:
        try:
            caps = await self._request("wallet_getCapabilities", [self._account])
        except ChainError as exc:
            self._log.info("capabilities_unavailable", error=str(exc))
            return False
        return _atomic_from_capabilities(caps or {}, self._chain_id)

    async def send_calls(self, calls: list[Call]) -> str:
        self._log.info("sending_batch", calls=len(calls))
        try:
            result = await self._send_calls_request(calls)
        except ChainUnsupportedError as exc:
            if exc.status_code in (-32601, 4200):
                # the wallet has no wallet_sendCalls at all
                raise WalletCapabilityError(str(exc), status_code=exc.status_code) from exc
            raise
        batch_id = result["id"] if isinstance(result, dict) else str(result)
        tx_hash = await self._wait_for_batch(batch_id)
        self._log.info("batch_confirmed", batch_id=batch_id, tx_hash=tx_hash)
        return tx_hash

    async def _send_calls_request(self, calls: list[Call]) -> Any:
        return await self._request(
            "wallet_sendCalls",
            [{
                "version": "2.0.0",
                "chainId": hex(self._chain_id),
                "from": self._account,
                "atomicRequired": True,
                "calls": [
                    {"to": c.target, "value": hex(c.value), "data": c.data}
                    for c in calls
                ],
            }],
        )

    async def _wait_for_batch(self, batch_id: str) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        while True:
            status = await self._request("wallet_getCallsStatus", [batch_id])
            code = status.get("status")
            if code in _CONFIRMED:
                receipts = status.get("receipts") or []
                if any(int(str(r.get("status", "0x1")), 16) == 0 for r in receipts):
                    raise ChainRevertError(f"Batch {batch_id} reverted")
                if receipts and receipts[-1].get("transactionHash"):
                    return str(receipts[-1]["transactionHash"])
                return batch_id
            if code not in _PENDING:
                raise ChainRevertError(f"Batch {batch_id} failed with status {code}")
            if loop.time() >= deadline:
                raise ChainNetworkError(f"Batch {batch_id} not settled after {self._timeout}s")
            await asyncio.sleep(self._poll)

    async def send_transaction(self, call: Call) -> str:
        self._log.info("sending_transaction", label=call.label, to=call.target)
        try:
            tx_hash = await self._w3.eth.send_transaction(call.as_tx(self._account))
        except Exception as exc:
            self._log.error("send_failed", label=call.label, error=str(exc))
            raise classify_chain_error(exc) from exc
        return tx_hash.to_0x_hex()

    async def wait_for_receipt(self, tx_hash: str) -> None:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._timeout, poll_latency=self._poll
            )
        except Exception as exc:
            self._log.error("receipt_failed", tx_hash=tx_hash, error=str(exc))
            raise classify_chain_error(exc) from exc
        if receipt["status"] != 1:
            raise ChainRevertError(f"Transaction {tx_hash} reverted")
        self._log.info("transaction_confirmed", tx_hash=tx_hash, block=receipt["blockNumber"])
