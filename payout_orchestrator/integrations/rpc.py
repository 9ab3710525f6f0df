"""
JSON-RPC transfer executor.

The node (or a custody proxy in front of it) holds the executor key, so
submission is ``eth_sendTransaction`` from ``EXECUTOR_ADDRESS``. When a route
needs an ERC-20 allowance, an ``approve`` is sent first. Transfers are never
retried here: a failure is reported to the engine, which records it on the item.
"""
import asyncio
import itertools
from typing import Any, Dict, List, Optional

import aiohttp

from payout_orchestrator.config import RPC_TIMEOUT_SECONDS, ExecutionConfig
from payout_orchestrator.errors import CollaboratorError
from payout_orchestrator.integrations.base import TransferExecutor
from payout_orchestrator.models.schemas.quotes import TransferRoute
from payout_orchestrator.utils import get_logger

logger = get_logger(__name__)

# keccak256("approve(address,uint256)")[:4]
ERC20_APPROVE_SELECTOR = "0x095ea7b3"


def encode_approve(spender: str, amount: int) -> str:
    """ABI-encode ``approve(spender, amount)`` calldata."""
    spender_hex = spender.lower().removeprefix("0x")
    if len(spender_hex) != 40:
        raise CollaboratorError(f"Invalid approval address: {spender}", provider="rpc", code="invalid_route")
    return ERC20_APPROVE_SELECTOR + spender_hex.rjust(64, "0") + format(amount, "x").rjust(64, "0")


def _hex_quantity(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.startswith("0x") else hex(int(value))
    return hex(int(value))


class RpcTransferExecutor(TransferExecutor):
    name = "rpc"

    def __init__(self, config: ExecutionConfig, *, timeout_seconds: Optional[float] = None):
        self.config = config
        self.timeout_seconds = float(timeout_seconds or RPC_TIMEOUT_SECONDS)
        self._ids = itertools.count(1)

    def _rpc_url(self, chain_id: int) -> str:
        url = self.config.rpc_urls.get(chain_id)
        if not url:
            raise CollaboratorError(f"Unsupported chain: {chain_id}", provider=self.name, code="unsupported_chain")
        return url

    def signer_address(self, chain_id: int) -> str:
        self._rpc_url(chain_id)
        if not self.config.executor_address:
            raise CollaboratorError("EXECUTOR_ADDRESS not configured", provider=self.name, code="no_signer")
        return self.config.executor_address

    async def execute_route(self, route: TransferRoute) -> Optional[str]:
        url = self._rpc_url(route.chain_id)
        sender = self.signer_address(route.chain_id)

        if route.approval_address and route.from_token and route.from_amount:
            approve_hash = await self._send_transaction(url, {
                "from": sender,
                "to": route.from_token,
                "data": encode_approve(route.approval_address, route.from_amount),
            })
            logger.info(
                "Token approval submitted",
                chain_id=route.chain_id,
                route_id=route.route_id,
                tx_hash=approve_hash,
            )

        tx = route.transaction_request
        tx_hash = await self._send_transaction(url, {
            "from": sender,
            "to": tx.get("to"),
            "data": tx.get("data"),
            "value": _hex_quantity(tx.get("value")),
            "gas": _hex_quantity(tx.get("gasLimit") or tx.get("gas")),
            "gasPrice": _hex_quantity(tx.get("gasPrice")),
        })
        logger.info("Transfer submitted", chain_id=route.chain_id, route_id=route.route_id, tx_hash=tx_hash)
        return tx_hash

    async def _send_transaction(self, url: str, tx: Dict[str, Any]) -> Optional[str]:
        params: List[Dict[str, Any]] = [{k: v for k, v in tx.items() if v is not None}]
        result = await self._call(url, "eth_sendTransaction", params)
        return str(result) if result else None

    async def _call(self, url: str, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise CollaboratorError(
                            f"RPC {method} failed ({response.status}): {body[:200]}",
                            provider=self.name,
                            code=f"http_{response.status}",
                        )
                    data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise CollaboratorError(f"RPC request error: {e}", provider=self.name, code="network_error")
        except asyncio.TimeoutError:
            raise CollaboratorError(f"RPC {method} timed out", provider=self.name, code="timeout")

        if data.get("error"):
            error = data["error"]
            raise CollaboratorError(
                f"RPC {method} error: {error.get('message', error)}",
                provider=self.name,
                code="rpc_error",
            )
        return data.get("result")


__all__ = ["RpcTransferExecutor", "encode_approve", "ERC20_APPROVE_SELECTOR"]
