"""Dry-run simulation of built transactions against a Sui fullnode."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .models import SimulationResult
from .rpc import JsonRpcError, RpcTransportError, SuiRpcClient
from .transaction import ObjectRef, ResolvedObject, SharedObjectRef, Transaction, encode_transaction_bytes

logger = logging.getLogger(__name__)

DEFAULT_GAS_ESTIMATE = 10_000_000  # 0.01 SUI


class ResolutionError(Exception):
    """Raised when chain state needed to serialise a transaction is missing."""


def _resolve_object(entry: Dict[str, Any], object_id: str) -> ResolvedObject:
    data = entry.get("data") if isinstance(entry, dict) else None
    if not isinstance(data, dict):
        error = entry.get("error") if isinstance(entry, dict) else None
        raise ResolutionError(f"object {object_id} could not be loaded: {error or 'not found'}")
    owner = data.get("owner")
    if isinstance(owner, dict) and isinstance(owner.get("Shared"), dict):
        return SharedObjectRef(
            object_id=object_id,
            initial_shared_version=int(owner["Shared"]["initial_shared_version"]),
        )
    return ObjectRef(object_id=object_id, version=int(data["version"]), digest=str(data["digest"]))


def _select_gas_coins(coins: List[Dict[str, Any]], budget: int, exclude: set) -> List[ObjectRef]:
    selected: List[ObjectRef] = []
    total = 0
    for coin in sorted(coins, key=lambda item: int(item.get("balance", 0)), reverse=True):
        coin_id = str(coin.get("coinObjectId", ""))
        if not coin_id or coin_id in exclude:
            continue
        selected.append(ObjectRef(object_id=coin_id, version=int(coin["version"]), digest=str(coin["digest"])))
        total += int(coin.get("balance", 0))
        if total >= budget:
            break
    if not selected:
        raise ResolutionError("sender owns no SUI coins to pay for gas")
    return selected


class Simulator:
    """Resolves, serialises and dry-runs a :class:`Transaction`.

    Every failure (transport, JSON-RPC, missing objects or coins) is reported
    in the returned :class:`SimulationResult`; nothing is raised.  ``success``
    reflects the execution status the node reports for the dry run.
    """

    def __init__(self, client: Optional[SuiRpcClient] = None) -> None:
        self._client = client or SuiRpcClient()

    async def _serialise(self, tx: Transaction, sender: str) -> str:
        objects: Dict[str, ResolvedObject] = {}
        object_ids = tx.object_ids
        if object_ids:
            entries = await self._client.multi_get_objects(object_ids)
            if len(entries) != len(object_ids):
                raise ResolutionError("node returned an incomplete object list")
            for object_id, entry in zip(object_ids, entries):
                objects[object_id] = _resolve_object(entry, object_id)

        gas_price = await self._client.get_reference_gas_price()
        coins = await self._client.get_coins(sender)
        payment = _select_gas_coins(coins, tx.gas_budget, exclude={oid.lower() for oid in object_ids})
        data = tx.to_bcs(sender=sender, gas_payment=payment, gas_price=gas_price, objects=objects)
        return encode_transaction_bytes(data)

    async def simulate(self, tx: Transaction, sender: Optional[str] = None) -> SimulationResult:
        sender = sender or tx.sender
        if not sender:
            return SimulationResult(success=False, error="A sender address is required to simulate")
        tx_bytes: Optional[str] = None
        try:
            tx_bytes = await self._serialise(tx, sender)
            result = await self._client.dry_run(tx_bytes)
        except (JsonRpcError, RpcTransportError, ResolutionError) as exc:
            logger.warning("simulation.failed", extra={"error": str(exc), "rpc_url": self._client.url})
            return SimulationResult(success=False, error=str(exc), transaction_bytes=tx_bytes)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("simulation.bad_chain_state", extra={"error": repr(exc)})
            return SimulationResult(
                success=False,
                error=f"Unexpected chain state while simulating: {exc!r}",
                transaction_bytes=tx_bytes,
            )

        effects = result.get("effects") if isinstance(result.get("effects"), dict) else {}
        status = effects.get("status") if isinstance(effects.get("status"), dict) else {}
        success = status.get("status") == "success"
        error = None if success else str(status.get("error") or "Dry run did not succeed")
        logger.info("simulation.completed", extra={"success": success})
        return SimulationResult(success=success, effects=effects, error=error, transaction_bytes=tx_bytes)

    async def estimate_gas(self, tx: Transaction, sender: Optional[str] = None) -> int:
        """Return computation plus storage cost of a dry run, in MIST."""

        result = await self.simulate(tx, sender)
        gas_used = result.gas_used
        if gas_used is None:
            return DEFAULT_GAS_ESTIMATE
        try:
            return int(gas_used["computationCost"]) + int(gas_used["storageCost"])
        except (KeyError, TypeError, ValueError):
            return DEFAULT_GAS_ESTIMATE


__all__ = ["DEFAULT_GAS_ESTIMATE", "ResolutionError", "Simulator"]
