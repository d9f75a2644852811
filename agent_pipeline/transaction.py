"""Lowering of a :class:`PlanStructure` into a Sui programmable transaction.

:func:`build` is pure: it only inspects the plan, never the chain.  Object
inputs are recorded by id; :meth:`Transaction.to_bcs` needs the resolved
object references (fetched by the simulator) to produce ``TransactionData``.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from . import bcs
from .errors import MalformedArguments, UnsupportedOperation
from .models import OperationKind, PlanOperation, PlanStructure

logger = logging.getLogger(__name__)

_INPUT_PURE = 0
_INPUT_OBJECT = 1

_COMMAND_INDEX = {
    OperationKind.MOVE_CALL: 0,
    OperationKind.TRANSFER_OBJECTS: 1,
    OperationKind.SPLIT_COINS: 2,
    OperationKind.MERGE_COINS: 3,
}

_MOVE_STRING = "0x1::string::String"


@dataclass(frozen=True)
class Argument:
    """Reference to a value available to a command."""

    kind: str  # GasCoin | Input | Result | NestedResult
    index: int = 0
    sub_index: int = 0

    def to_bcs(self) -> bytes:
        if self.kind == "GasCoin":
            return bcs.uleb128(0)
        if self.kind == "Input":
            return bcs.uleb128(1) + bcs.encode_u16(self.index)
        if self.kind == "Result":
            return bcs.uleb128(2) + bcs.encode_u16(self.index)
        return bcs.uleb128(3) + bcs.encode_u16(self.index) + bcs.encode_u16(self.sub_index)

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "GasCoin":
            return {"kind": "GasCoin"}
        if self.kind == "NestedResult":
            return {"kind": "NestedResult", "index": self.index, "resultIndex": self.sub_index}
        return {"kind": self.kind, "index": self.index}


GAS_COIN = Argument("GasCoin")


@dataclass(frozen=True)
class PureInput:
    type_name: str
    value: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "Pure", "type": self.type_name, "bytes": base64.b64encode(self.value).decode("ascii")}


@dataclass(frozen=True)
class ObjectInput:
    object_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "Object", "objectId": self.object_id}


Input = Union[PureInput, ObjectInput]


@dataclass(frozen=True)
class ObjectRef:
    """An owned or immutable object at a specific version."""

    object_id: str
    version: int
    digest: str

    def to_bcs(self) -> bytes:
        return (
            bcs.encode_address(self.object_id)
            + bcs.encode_u64(self.version)
            + bcs.encode_bytes(bcs.b58decode(self.digest))
        )


@dataclass(frozen=True)
class SharedObjectRef:
    object_id: str
    initial_shared_version: int
    mutable: bool = True

    def to_bcs(self) -> bytes:
        return (
            bcs.encode_address(self.object_id)
            + bcs.encode_u64(self.initial_shared_version)
            + bcs.encode_bool(self.mutable)
        )


ResolvedObject = Union[ObjectRef, SharedObjectRef]


@dataclass(frozen=True)
class MoveCall:
    package: str
    module: str
    function: str
    type_arguments: Tuple[bcs.TypeTag, ...]
    arguments: Tuple[Argument, ...]

    kind = OperationKind.MOVE_CALL

    @property
    def target(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"

    def to_bcs(self) -> bytes:
        return (
            bcs.encode_address(self.package)
            + bcs.encode_str(self.module)
            + bcs.encode_str(self.function)
            + bcs.encode_vector([bcs.encode_type_tag(tag) for tag in self.type_arguments])
            + bcs.encode_vector([arg.to_bcs() for arg in self.arguments])
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "target": self.target,
            "typeArguments": [str(tag) for tag in self.type_arguments],
            "arguments": [arg.to_dict() for arg in self.arguments],
        }


@dataclass(frozen=True)
class TransferObjects:
    objects: Tuple[Argument, ...]
    recipient: Argument

    kind = OperationKind.TRANSFER_OBJECTS

    def to_bcs(self) -> bytes:
        return bcs.encode_vector([arg.to_bcs() for arg in self.objects]) + self.recipient.to_bcs()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "objects": [arg.to_dict() for arg in self.objects],
            "recipient": self.recipient.to_dict(),
        }


@dataclass(frozen=True)
class SplitCoins:
    coin: Argument
    amounts: Tuple[Argument, ...]

    kind = OperationKind.SPLIT_COINS

    def to_bcs(self) -> bytes:
        return self.coin.to_bcs() + bcs.encode_vector([arg.to_bcs() for arg in self.amounts])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "coin": self.coin.to_dict(),
            "amounts": [arg.to_dict() for arg in self.amounts],
        }


@dataclass(frozen=True)
class MergeCoins:
    destination: Argument
    sources: Tuple[Argument, ...]

    kind = OperationKind.MERGE_COINS

    def to_bcs(self) -> bytes:
        return self.destination.to_bcs() + bcs.encode_vector([arg.to_bcs() for arg in self.sources])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "destination": self.destination.to_dict(),
            "sources": [arg.to_dict() for arg in self.sources],
        }


Command = Union[MoveCall, TransferObjects, SplitCoins, MergeCoins]


@dataclass(frozen=True)
class Transaction:
    """An unsigned programmable transaction awaiting chain resolution."""

    inputs: Tuple[Input, ...]
    commands: Tuple[Command, ...]
    gas_budget: int
    sender: Optional[str] = None

    @property
    def object_ids(self) -> List[str]:
        return [item.object_id for item in self.inputs if isinstance(item, ObjectInput)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "gasBudget": self.gas_budget,
            "inputs": [item.to_dict() for item in self.inputs],
            "commands": [command.to_dict() for command in self.commands],
        }

    def to_bcs(
        self,
        *,
        sender: str,
        gas_payment: Sequence[ObjectRef],
        gas_price: int,
        objects: Mapping[str, ResolvedObject],
    ) -> bytes:
        """Serialise ``TransactionData::V1`` with every object input resolved.

        Raises ``KeyError`` when an object input is missing from ``objects``.
        """

        inputs: List[bytes] = []
        for item in self.inputs:
            if isinstance(item, PureInput):
                inputs.append(bcs.uleb128(_INPUT_PURE) + bcs.encode_bytes(item.value))
                continue
            resolved = objects[item.object_id]
            variant = 0 if isinstance(resolved, ObjectRef) else 1
            inputs.append(bcs.uleb128(_INPUT_OBJECT) + bcs.uleb128(variant) + resolved.to_bcs())

        commands = [bcs.uleb128(_COMMAND_INDEX[command.kind]) + command.to_bcs() for command in self.commands]
        owner = bcs.encode_address(sender)
        return (
            bcs.uleb128(0)  # TransactionData::V1
            + bcs.uleb128(0)  # TransactionKind::ProgrammableTransaction
            + bcs.encode_vector(inputs)
            + bcs.encode_vector(commands)
            + owner
            + bcs.encode_vector([ref.to_bcs() for ref in gas_payment])
            + owner
            + bcs.encode_u64(gas_price)
            + bcs.encode_u64(self.gas_budget)
            + bcs.uleb128(0)  # TransactionExpiration::None
        )


def encode_transaction_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@dataclass
class _Lowering:
    inputs: List[Input] = field(default_factory=list)
    object_slots: Dict[str, int] = field(default_factory=dict)
    commands: List[Command] = field(default_factory=list)

    def _fail(self, message: str) -> MalformedArguments:
        return MalformedArguments(f"operation {len(self.commands)}: {message}")

    def add_pure(self, type_name: str, value: Any) -> Argument:
        try:
            encoded = bcs.encode_pure(type_name, value)
        except ValueError as exc:
            raise self._fail(str(exc)) from exc
        self.inputs.append(PureInput(type_name=type_name, value=encoded))
        return Argument("Input", len(self.inputs) - 1)

    def add_object(self, object_id: Any) -> Argument:
        if not bcs.is_address(object_id):
            raise self._fail(f"invalid object id {object_id!r}")
        normalized = bcs.normalize_address(object_id)
        slot = self.object_slots.get(normalized)
        if slot is None:
            self.inputs.append(ObjectInput(object_id=normalized))
            slot = len(self.inputs) - 1
            self.object_slots[normalized] = slot
        return Argument("Input", slot)

    def reference(self, value: Any) -> Optional[Argument]:
        """Return a gas/result reference for ``value`` or ``None`` if it is not one."""

        if isinstance(value, str) and value.strip().lower() == "gas":
            return GAS_COIN
        if not isinstance(value, dict):
            return None
        if set(value) == {"result"}:
            index = value["result"]
            self._check_result_index(index)
            return Argument("Result", index)
        if set(value) == {"nestedResult"}:
            pair = value["nestedResult"]
            if not (isinstance(pair, (list, tuple)) and len(pair) == 2):
                raise self._fail("nestedResult must be a pair [command, result]")
            index, sub_index = pair
            self._check_result_index(index)
            if isinstance(sub_index, bool) or not isinstance(sub_index, int) or not 0 <= sub_index < 1 << 16:
                raise self._fail(f"invalid nested result index {sub_index!r}")
            return Argument("NestedResult", index, sub_index)
        if set(value) == {"object"}:
            return self.add_object(value["object"])
        return None

    def _check_result_index(self, index: Any) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self.commands):
            raise self._fail(f"result reference {index!r} does not point at an earlier command")

    def object_argument(self, value: Any) -> Argument:
        ref = self.reference(value)
        if ref is not None:
            return ref
        if isinstance(value, str):
            return self.add_object(value)
        raise self._fail(f"expected an object reference, got {value!r}")

    def amount_argument(self, value: Any) -> Argument:
        ref = self.reference(value)
        if ref is not None:
            return ref
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise self._fail(f"expected a non-negative integer amount, got {value!r}")
        return self.add_pure("u64", value)

    def recipient_argument(self, value: Any) -> Argument:
        ref = self.reference(value)
        if ref is not None and ref.kind != "Input":
            return ref
        if bcs.is_address(value):
            return self.add_pure("address", value)
        raise self._fail(f"expected a recipient address, got {value!r}")

    def move_argument(self, value: Any) -> Argument:
        ref = self.reference(value)
        if ref is not None:
            return ref
        if isinstance(value, dict) and set(value) == {"type", "value"}:
            return self.add_pure(value["type"], value["value"])
        if isinstance(value, bool):
            return self.add_pure("bool", value)
        if isinstance(value, int):
            return self.add_pure("u64", value)
        if isinstance(value, str):
            return self.add_pure(_MOVE_STRING, value)
        raise self._fail(f"unsupported moveCall argument {value!r}")

    def _list(self, value: Any, what: str) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            raise self._fail(f"{what} must be a list")
        return list(value)

    def _pair(self, operation: PlanOperation) -> Tuple[Any, Any]:
        if len(operation.arguments) != 2:
            raise self._fail(f"{operation.kind.value} takes exactly two arguments, got {len(operation.arguments)}")
        return operation.arguments[0], operation.arguments[1]

    def lower(self, operation: PlanOperation) -> Command:
        kind = operation.kind
        if kind is OperationKind.MOVE_CALL:
            return self._lower_move_call(operation)
        if kind is OperationKind.SPLIT_COINS:
            coin, amounts = self._pair(operation)
            amount_args = self._list(amounts, "splitCoins amounts")
            if not amount_args:
                raise self._fail("splitCoins needs at least one amount")
            return SplitCoins(
                coin=self.object_argument(coin),
                amounts=tuple(self.amount_argument(item) for item in amount_args),
            )
        if kind is OperationKind.MERGE_COINS:
            destination, sources = self._pair(operation)
            source_args = self._list(sources, "mergeCoins sources")
            if not source_args:
                raise self._fail("mergeCoins needs at least one source coin")
            return MergeCoins(
                destination=self.object_argument(destination),
                sources=tuple(self.object_argument(item) for item in source_args),
            )
        if kind is OperationKind.TRANSFER_OBJECTS:
            objects, recipient = self._pair(operation)
            object_args = self._list(objects, "transferObjects objects")
            if not object_args:
                raise self._fail("transferObjects needs at least one object")
            return TransferObjects(
                objects=tuple(self.object_argument(item) for item in object_args),
                recipient=self.recipient_argument(recipient),
            )
        raise UnsupportedOperation(f"unsupported operation kind {kind!r}")

    def _lower_move_call(self, operation: PlanOperation) -> MoveCall:
        target = (operation.target or "").strip()
        parts = target.split("::")
        if len(parts) != 3 or not all(parts):
            raise self._fail(f"moveCall target {target!r} is not <package>::<module>::<function>")
        package, module, function = parts
        if not bcs.is_address(package):
            raise self._fail(f"moveCall target {target!r} has an invalid package address")
        try:
            type_arguments = tuple(bcs.parse_type_tag(item) for item in operation.type_arguments or [])
        except ValueError as exc:
            raise self._fail(str(exc)) from exc
        return MoveCall(
            package=bcs.normalize_address(package),
            module=module,
            function=function,
            type_arguments=type_arguments,
            arguments=tuple(self.move_argument(item) for item in operation.arguments),
        )


def build(plan: PlanStructure, sender: Optional[str] = None) -> Transaction:
    """Lower ``plan`` 1:1 into programmable-transaction commands.

    Raises :class:`UnsupportedOperation` for an operation kind without a
    lowering and :class:`MalformedArguments` when an operation's arguments do
    not have the shape its kind requires.
    """

    lowering = _Lowering()
    for operation in plan.operations:
        lowering.commands.append(lowering.lower(operation))
    if sender is not None:
        if not bcs.is_address(sender):
            raise MalformedArguments(f"invalid sender address {sender!r}")
        sender = bcs.normalize_address(sender)
    tx = Transaction(
        inputs=tuple(lowering.inputs),
        commands=tuple(lowering.commands),
        gas_budget=plan.gas_estimate,
        sender=sender,
    )
    logger.debug("transaction.built", extra={"commands": len(tx.commands), "inputs": len(tx.inputs)})
    return tx


__all__ = [
    "Argument",
    "GAS_COIN",
    "MergeCoins",
    "MoveCall",
    "ObjectInput",
    "ObjectRef",
    "PureInput",
    "SharedObjectRef",
    "SplitCoins",
    "Transaction",
    "TransferObjects",
    "build",
    "encode_transaction_bytes",
]
