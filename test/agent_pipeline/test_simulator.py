"""Dry-run simulation against a mocked Sui fullnode."""

import asyncio
import base64
import json

import httpx
import pytest

from agent_pipeline.planner import parse_plan
from agent_pipeline.rpc import JsonRpcError, SuiRpcClient
from agent_pipeline.simulator import DEFAULT_GAS_ESTIMATE, Simulator
from agent_pipeline.transaction import build

SENDER = "0x" + "a" * 64
COIN_A = "0x" + "1" * 64
GAS_COIN = "0x" + "9" * 64
DIGEST = "11111111111111111111111111111111"

SUCCESS_EFFECTS = {
    "status": {"status": "success"},
    "gasUsed": {"computationCost": "1000000", "storageCost": "2000000", "storageRebate": "500000"},
}


class FakeNode:
    """JSON-RPC handler answering the methods the simulator uses."""

    def __init__(self, *, dry_run=None, objects=None, coins=None, errors=None):
        self.dry_run = dry_run or {"effects": SUCCESS_EFFECTS}
        self.objects = objects
        self.coins = coins if coins is not None else [
            {"coinObjectId": GAS_COIN, "version": "4", "digest": DIGEST, "balance": "5000000000"}
        ]
        self.errors = errors or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method = body["method"]
        if method in self.errors:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": self.errors[method]})
        if method == "sui_multiGetObjects":
            result = self.objects or [
                {"data": {"objectId": oid, "version": "3", "digest": DIGEST, "owner": {"AddressOwner": SENDER}}}
                for oid in body["params"][0]
            ]
        elif method == "suix_getReferenceGasPrice":
            result = "750"
        elif method == "suix_getCoins":
            result = {"data": self.coins, "hasNextPage": False}
        elif method == "sui_dryRunTransactionBlock":
            result = self.dry_run
        else:  # pragma: no cover - unexpected call
            return httpx.Response(404)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def methods(self):
        return [request["method"] for request in self.requests]


def _simulator(node):
    return Simulator(SuiRpcClient("https://fullnode.test", transport=httpx.MockTransport(node)))


def _tx(*operations):
    plan = parse_plan({"operations": list(operations), "gasEstimate": 3_000_000, "description": ""})
    return build(plan, sender=SENDER)


def test_successful_dry_run():
    node = FakeNode()
    tx = _tx({"kind": "transferObjects", "arguments": [[COIN_A], SENDER]})

    result = asyncio.run(_simulator(node).simulate(tx))

    assert result.success
    assert result.error is None
    assert result.gas_used["computationCost"] == "1000000"
    assert node.methods() == [
        "sui_multiGetObjects",
        "suix_getReferenceGasPrice",
        "suix_getCoins",
        "sui_dryRunTransactionBlock",
    ]
    assert node.requests[0]["params"] == [[COIN_A], {"showOwner": True}]
    assert node.requests[2]["params"] == [SENDER, "0x2::sui::SUI", None, 50]
    sent = node.requests[3]["params"][0]
    assert sent == result.transaction_bytes
    # TransactionData::V1, ProgrammableTransaction, two inputs.
    assert base64.b64decode(sent).startswith(b"\x00\x00\x02")


def test_reported_execution_failure_is_data():
    node = FakeNode(dry_run={"effects": {"status": {"status": "failure", "error": "InsufficientCoinBalance"}}})
    result = asyncio.run(_simulator(node).simulate(_tx({"kind": "splitCoins", "arguments": ["gas", [1]]})))

    assert not result.success
    assert result.error == "InsufficientCoinBalance"
    assert result.transaction_bytes is not None


def test_json_rpc_error_is_data():
    node = FakeNode(errors={"sui_dryRunTransactionBlock": {"code": -32602, "message": "Invalid params"}})
    result = asyncio.run(_simulator(node).simulate(_tx({"kind": "splitCoins", "arguments": ["gas", [1]]})))

    assert not result.success
    assert result.error == "Invalid params"


def test_transport_error_is_data():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    simulator = Simulator(SuiRpcClient("https://fullnode.test", transport=httpx.MockTransport(refuse)))
    result = asyncio.run(simulator.simulate(_tx({"kind": "splitCoins", "arguments": ["gas", [1]]})))

    assert not result.success
    assert "connection refused" in result.error
    assert result.effects is None


def test_http_error_status_is_data():
    simulator = Simulator(
        SuiRpcClient("https://fullnode.test", transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    )
    result = asyncio.run(simulator.simulate(_tx({"kind": "splitCoins", "arguments": ["gas", [1]]})))
    assert not result.success
    assert "HTTP 503" in result.error


def test_missing_object_is_data():
    node = FakeNode(objects=[{"error": {"code": "notExists", "object_id": COIN_A}}])
    result = asyncio.run(_simulator(node).simulate(_tx({"kind": "transferObjects", "arguments": [[COIN_A], SENDER]})))
    assert not result.success
    assert COIN_A in result.error
    assert "sui_dryRunTransactionBlock" not in node.methods()


def test_no_gas_coins_is_data():
    node = FakeNode(coins=[])
    result = asyncio.run(_simulator(node).simulate(_tx({"kind": "splitCoins", "arguments": ["gas", [1]]})))
    assert not result.success
    assert "gas" in result.error


def test_shared_objects_are_resolved():
    pool = "0x" + "3" * 64
    node = FakeNode(
        objects=[{"data": {"objectId": pool, "version": "12", "digest": DIGEST, "owner": {"Shared": {"initial_shared_version": 5}}}}]
    )
    tx = _tx({"kind": "moveCall", "target": "0x2::coin::merge", "arguments": [{"object": pool}]})
    result = asyncio.run(_simulator(node).simulate(tx))
    assert result.success


def test_sender_is_required():
    plan = parse_plan({"operations": [{"kind": "splitCoins", "arguments": ["gas", [1]]}], "gasEstimate": 1})
    result = asyncio.run(_simulator(FakeNode()).simulate(build(plan)))
    assert not result.success
    assert "sender" in result.error


def test_estimate_gas_sums_computation_and_storage():
    estimate = asyncio.run(_simulator(FakeNode()).estimate_gas(_tx({"kind": "splitCoins", "arguments": ["gas", [1]]})))
    assert estimate == 3_000_000


def test_estimate_gas_defaults_when_dry_run_fails():
    node = FakeNode(errors={"suix_getReferenceGasPrice": {"code": -32000, "message": "boom"}})
    estimate = asyncio.run(_simulator(node).estimate_gas(_tx({"kind": "splitCoins", "arguments": ["gas", [1]]})))
    assert estimate == DEFAULT_GAS_ESTIMATE


def test_rpc_client_raises_json_rpc_error():
    node = FakeNode(errors={"suix_getReferenceGasPrice": {"code": -32000, "message": "boom", "data": {"x": 1}}})
    client = SuiRpcClient("https://fullnode.test", transport=httpx.MockTransport(node))
    with pytest.raises(JsonRpcError) as excinfo:
        asyncio.run(client.get_reference_gas_price())
    assert excinfo.value.code == -32000
    assert excinfo.value.data == {"x": 1}
