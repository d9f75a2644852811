"""Minimal async JSON-RPC client for a Sui fullnode."""

from __future__ import annotations

import itertools
from typing import Any, Dict, List, Optional

import httpx

from .config import get_chain_settings

SUI_COIN_TYPE = "0x2::sui::SUI"

_REQUEST_IDS = itertools.count(1)


class JsonRpcError(Exception):
    """Raised when the node answers with a JSON-RPC error object."""

    def __init__(self, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class RpcTransportError(Exception):
    """Raised when the node cannot be reached or answers with garbage."""


class SuiRpcClient:
    """Issues one JSON-RPC request per call over ``httpx.AsyncClient``.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_chain_settings()
        self._url = url or settings.rpc_url
        self._timeout = timeout if timeout is not None else settings.timeout
        self._headers = headers or {}
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    async def call(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(_REQUEST_IDS), "method": method, "params": params}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, headers=self._headers, transport=self._transport
            ) as client:
                response = await client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            raise RpcTransportError(f"{method}: {exc}") from exc
        if response.status_code >= 400:
            raise RpcTransportError(f"{method}: node responded with HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise RpcTransportError(f"{method}: node returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise RpcTransportError(f"{method}: node returned an unexpected payload")
        if data.get("error"):
            error = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            raise JsonRpcError(error.get("code"), str(error.get("message") or "JSON-RPC error"), error.get("data"))
        return data.get("result")

    async def multi_get_objects(self, object_ids: List[str]) -> List[Dict[str, Any]]:
        result = await self.call("sui_multiGetObjects", [object_ids, {"showOwner": True}])
        return result if isinstance(result, list) else []

    async def get_reference_gas_price(self) -> int:
        result = await self.call("suix_getReferenceGasPrice", [])
        try:
            return int(result)
        except (TypeError, ValueError) as exc:
            raise RpcTransportError(f"suix_getReferenceGasPrice: unexpected result {result!r}") from exc

    async def get_coins(self, owner: str, coin_type: str = SUI_COIN_TYPE, limit: int = 50) -> List[Dict[str, Any]]:
        result = await self.call("suix_getCoins", [owner, coin_type, None, limit])
        data = result.get("data") if isinstance(result, dict) else None
        return data if isinstance(data, list) else []

    async def dry_run(self, tx_bytes: str) -> Dict[str, Any]:
        result = await self.call("sui_dryRunTransactionBlock", [tx_bytes])
        if not isinstance(result, dict):
            raise RpcTransportError("sui_dryRunTransactionBlock: node returned an unexpected payload")
        return result


__all__ = ["JsonRpcError", "RpcTransportError", "SUI_COIN_TYPE", "SuiRpcClient"]
