"""Binary Canonical Serialization helpers for Sui transaction data.

Only the subset needed to serialise programmable transactions is covered:
ULEB128 lengths, fixed-width little-endian integers, byte vectors, addresses,
Move type tags and typed pure values.  Every encoder raises ``ValueError`` on
out-of-range or mistyped input; callers translate that into their own errors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

ADDRESS_LENGTH = 32

_INT_WIDTHS = {"u8": 1, "u16": 2, "u32": 4, "u64": 8, "u128": 16, "u256": 32}

# Discriminants of the TypeTag enum.
_TYPE_TAG_INDEX = {
    "bool": 0,
    "u8": 1,
    "u64": 2,
    "u128": 3,
    "address": 4,
    "signer": 5,
    "vector": 6,
    "struct": 7,
    "u16": 8,
    "u32": 9,
    "u256": 10,
}

_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{1,64}$")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {char: index for index, char in enumerate(_B58_ALPHABET)}

_STRING_TYPES = {"0x1::string::String", "0x1::ascii::String"}
_ID_TYPES = {"0x2::object::ID"}


def uleb128(value: int) -> bytes:
    if value < 0:
        raise ValueError("ULEB128 values must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_uint(value: int, width: str) -> bytes:
    size = _INT_WIDTHS[width]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{width} expects an integer, got {type(value).__name__}")
    if value < 0 or value >= 1 << (size * 8):
        raise ValueError(f"{value} is out of range for {width}")
    return value.to_bytes(size, "little")


def encode_u16(value: int) -> bytes:
    return encode_uint(value, "u16")


def encode_u64(value: int) -> bytes:
    return encode_uint(value, "u64")


def encode_bool(value: bool) -> bytes:
    if not isinstance(value, bool):
        raise ValueError(f"bool expects true or false, got {value!r}")
    return b"\x01" if value else b"\x00"


def encode_bytes(value: bytes) -> bytes:
    return uleb128(len(value)) + bytes(value)


def encode_str(value: str) -> bytes:
    return encode_bytes(value.encode("utf-8"))


def encode_vector(items: Sequence[bytes]) -> bytes:
    return uleb128(len(items)) + b"".join(items)


def is_address(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX_ADDRESS.match(value.strip()))


def normalize_address(value: str) -> str:
    """Return ``value`` as a lower-case, 32-byte, ``0x``-prefixed hex address."""

    text = value.strip() if isinstance(value, str) else ""
    if not _HEX_ADDRESS.match(text):
        raise ValueError(f"invalid Sui address: {value!r}")
    return "0x" + text[2:].lower().rjust(ADDRESS_LENGTH * 2, "0")


def encode_address(value: str) -> bytes:
    return bytes.fromhex(normalize_address(value)[2:])


def b58decode(value: str) -> bytes:
    """Decode a base58 (Bitcoin alphabet) string such as an object digest."""

    number = 0
    for char in value:
        try:
            number = number * 58 + _B58_INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base58 character {char!r}") from None
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    leading = len(value) - len(value.lstrip("1"))
    return b"\x00" * leading + body


# ---------------------------------------------------------------------------
# Move type tags
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StructTag:
    address: str
    module: str
    name: str
    type_params: Tuple["TypeTag", ...] = ()

    def __str__(self) -> str:
        text = f"{self.address}::{self.module}::{self.name}"
        if self.type_params:
            text += "<" + ", ".join(str(param) for param in self.type_params) + ">"
        return text


@dataclass(frozen=True)
class TypeTag:
    kind: str
    element: Optional["TypeTag"] = None
    struct: Optional[StructTag] = None

    def __str__(self) -> str:
        if self.kind == "vector":
            return f"vector<{self.element}>"
        if self.kind == "struct":
            return str(self.struct)
        return self.kind


MAX_TYPE_DEPTH = 16


def _split_type_params(text: str) -> List[str]:
    params: List[str] = []
    depth = 0
    current = []
    for char in text:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
            if depth < 0:
                raise ValueError(f"unbalanced type parameters in {text!r}")
        if char == "," and depth == 0:
            params.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if depth != 0:
        raise ValueError(f"unbalanced type parameters in {text!r}")
    tail = "".join(current).strip()
    if tail:
        params.append(tail)
    return params


def parse_type_tag(text: str) -> TypeTag:
    """Parse ``u64``, ``vector<u8>`` or ``0x2::coin::Coin<0x2::sui::SUI>``.

    Types nested deeper than :data:`MAX_TYPE_DEPTH` levels are rejected.
    """

    if not isinstance(text, str):
        raise ValueError(f"type must be a string, got {type(text).__name__}")
    return _parse_type_tag(text, text, 0)


def _parse_type_tag(text: str, original: str, depth: int) -> TypeTag:
    if depth > MAX_TYPE_DEPTH:
        raise ValueError(f"type nests deeper than {MAX_TYPE_DEPTH} levels: {original[:64]!r}")
    source = text.strip()
    if source in _TYPE_TAG_INDEX and source not in {"vector", "struct"}:
        return TypeTag(kind=source)
    if source.startswith("vector<") and source.endswith(">"):
        return TypeTag(kind="vector", element=_parse_type_tag(source[len("vector<") : -1], original, depth + 1))

    params: Tuple[TypeTag, ...] = ()
    head = source
    if source.endswith(">") and "<" in source:
        head, _, rest = source.partition("<")
        params = tuple(_parse_type_tag(part, original, depth + 1) for part in _split_type_params(rest[:-1]))
        if not params:
            raise ValueError(f"empty type parameter list in {text!r}")
    parts = head.split("::")
    if len(parts) != 3:
        raise ValueError(f"unrecognised Move type {text!r}")
    address, module, name = parts
    if not _IDENTIFIER.match(module) or not _IDENTIFIER.match(name):
        raise ValueError(f"unrecognised Move type {text!r}")
    return TypeTag(
        kind="struct",
        struct=StructTag(address=normalize_address(address), module=module, name=name, type_params=params),
    )


def encode_type_tag(tag: TypeTag) -> bytes:
    out = uleb128(_TYPE_TAG_INDEX[tag.kind])
    if tag.kind == "vector":
        assert tag.element is not None
        return out + encode_type_tag(tag.element)
    if tag.kind == "struct":
        assert tag.struct is not None
        struct = tag.struct
        return (
            out
            + encode_address(struct.address)
            + encode_str(struct.module)
            + encode_str(struct.name)
            + encode_vector([encode_type_tag(param) for param in struct.type_params])
        )
    return out


def _short_struct_name(tag: TypeTag) -> str:
    """Return ``0x1::string::String`` style names with the address shortened."""

    assert tag.struct is not None
    address = "0x" + (tag.struct.address[2:].lstrip("0") or "0")
    return f"{address}::{tag.struct.module}::{tag.struct.name}"


def _coerce_int(value: Any) -> Any:
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def _encode_value(tag: TypeTag, value: Any) -> bytes:
    if tag.kind == "bool":
        return encode_bool(value)
    if tag.kind in _INT_WIDTHS:
        return encode_uint(_coerce_int(value), tag.kind)
    if tag.kind == "address":
        if not isinstance(value, str):
            raise ValueError(f"address expects a hex string, got {value!r}")
        return encode_address(value)
    if tag.kind == "vector":
        assert tag.element is not None
        if tag.element.kind == "u8" and isinstance(value, str):
            return encode_str(value)
        if tag.element.kind == "u8" and isinstance(value, (bytes, bytearray)):
            return encode_bytes(bytes(value))
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"{tag} expects a list, got {value!r}")
        return encode_vector([_encode_value(tag.element, item) for item in value])
    if tag.kind == "struct":
        name = _short_struct_name(tag)
        if name in _STRING_TYPES:
            if not isinstance(value, str):
                raise ValueError(f"{name} expects a string, got {value!r}")
            if name == "0x1::ascii::String" and not value.isascii():
                raise ValueError("ascii strings must only contain ASCII characters")
            return encode_str(value)
        if name in _ID_TYPES:
            return encode_address(value)
        if name == "0x1::option::Option":
            assert tag.struct is not None
            if len(tag.struct.type_params) != 1:
                raise ValueError("Option takes exactly one type parameter")
            if value is None:
                return b"\x00"
            return b"\x01" + _encode_value(tag.struct.type_params[0], value)
    raise ValueError(f"{tag} cannot be passed as a pure value")


def encode_pure(type_name: str, value: Any) -> bytes:
    """Return the BCS bytes of ``value`` interpreted as Move type ``type_name``."""

    return _encode_value(parse_type_tag(type_name), value)


__all__ = [
    "ADDRESS_LENGTH",
    "StructTag",
    "TypeTag",
    "b58decode",
    "encode_address",
    "encode_bool",
    "encode_bytes",
    "encode_pure",
    "encode_str",
    "encode_type_tag",
    "encode_u16",
    "encode_u64",
    "encode_uint",
    "encode_vector",
    "is_address",
    "normalize_address",
    "parse_type_tag",
    "uleb128",
]
