"""Canonical DAG-CBOR helpers, BigInt codec and content identifiers."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import Any

import cbor2

from filwallet.errors import InvalidInput

CID_VERSION = 0x01
DAG_CBOR_CODEC = 0x71
# Multihash code 0xb220 (blake2b-256) as a uvarint, then the digest length.
BLAKE2B_256_PREFIX = bytes([0xA0, 0xE4, 0x02, 0x20])
CID_TAG = 42


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def encode_bigint(value: int) -> bytes:
    """Filecoin BigInt bytes: empty for zero, else sign byte + big-endian magnitude."""
    if value == 0:
        return b""
    magnitude = abs(value)
    body = magnitude.to_bytes((magnitude.bit_length() + 7) // 8, "big")
    return (b"\x01" if value < 0 else b"\x00") + body


def decode_bigint(data: bytes) -> int:
    if not data:
        return 0
    if data[0] not in (0, 1):
        raise InvalidInput(f"invalid bigint sign byte: {data[0]}")
    magnitude = int.from_bytes(data[1:], "big")
    return -magnitude if data[0] == 1 else magnitude


def dumps(obj: Any) -> bytes:
    try:
        return cbor2.dumps(obj, canonical=True)
    except cbor2.CBOREncodeError as e:
        raise InvalidInput(f"cannot encode value as CBOR: {e}") from e


def loads(data: bytes) -> Any:
    try:
        return cbor2.loads(data)
    except (cbor2.CBORDecodeError, ValueError) as e:
        raise InvalidInput(f"cannot decode CBOR payload: {e}") from e


@dataclass(frozen=True)
class Cid:
    """A CIDv1 kept in its binary form."""

    data: bytes

    @classmethod
    def for_cbor(cls, encoded: bytes) -> "Cid":
        return cls(
            bytes([CID_VERSION, DAG_CBOR_CODEC])
            + BLAKE2B_256_PREFIX
            + blake2b_256(encoded)
        )

    @classmethod
    def parse(cls, text: str) -> "Cid":
        if not isinstance(text, str) or not text.startswith("b"):
            raise InvalidInput(f"unsupported CID encoding: {text!r}")
        body = text[1:].upper()
        try:
            data = base64.b32decode(body + "=" * (-len(body) % 8))
        except ValueError:
            raise InvalidInput(f"invalid CID: {text!r}") from None
        if not data or data[0] != CID_VERSION:
            raise InvalidInput(f"unsupported CID version: {text!r}")
        return cls(data)

    @classmethod
    def from_json(cls, value: Any) -> "Cid":
        if isinstance(value, dict) and isinstance(value.get("/"), str):
            return cls.parse(value["/"])
        raise InvalidInput(f"invalid CID JSON: {value!r}")

    def to_bytes(self) -> bytes:
        return self.data

    def to_json(self) -> dict[str, str]:
        return {"/": str(self)}

    def to_cbor_tag(self) -> cbor2.CBORTag:
        # DAG-CBOR links carry a leading multibase-identity zero byte.
        return cbor2.CBORTag(CID_TAG, b"\x00" + self.data)

    def __str__(self) -> str:
        return "b" + base64.b32encode(self.data).decode("ascii").lower().rstrip("=")
