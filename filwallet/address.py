"""Filecoin addresses as an explicit tagged variant.

An address is either the short numeric ``ID`` form (``f01234``) or a
robust, key- or actor-derived form (``f1...``, ``f2...``, ``f3...``).
Both can denote the same account; exact-match protocols such as the
multisig proposal hash need the ID form, which only the node can supply.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Union

from filwallet.errors import InvalidInput

MAINNET_PREFIX = "f"
TESTNET_PREFIX = "t"
NETWORK_PREFIXES = {"mainnet": MAINNET_PREFIX, "testnet": TESTNET_PREFIX}

CHECKSUM_SIZE = 4
MAX_ID = 2**63 - 1


class AddressProtocol(IntEnum):
    ID = 0
    SECP256K1 = 1
    ACTOR = 2
    BLS = 3


PAYLOAD_SIZES = {
    AddressProtocol.SECP256K1: 20,
    AddressProtocol.ACTOR: 20,
    AddressProtocol.BLS: 48,
}


def _b32encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").lower().rstrip("=")


def _b32decode(text: str) -> bytes:
    padded = text.upper() + "=" * (-len(text) % 8)
    return base64.b32decode(padded)


def checksum(protocol: AddressProtocol, payload: bytes) -> bytes:
    return hashlib.blake2b(
        bytes([protocol]) + payload, digest_size=CHECKSUM_SIZE
    ).digest()


def encode_uvarint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_uvarint(data: bytes) -> tuple[int, int]:
    """Return ``(value, bytes_consumed)``."""
    value = 0
    shift = 0
    for i, byte in enumerate(data):
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, i + 1
        shift += 7
        if shift > 63:
            break
    raise InvalidInput("malformed varint")


@dataclass(frozen=True)
class IDAddress:
    id: int
    network: str = field(default=MAINNET_PREFIX, compare=False)

    protocol = AddressProtocol.ID

    def __post_init__(self):
        if not 0 <= self.id <= MAX_ID:
            raise InvalidInput(f"actor id out of range: {self.id}")

    def to_bytes(self) -> bytes:
        return bytes([AddressProtocol.ID]) + encode_uvarint(self.id)

    def __str__(self) -> str:
        return f"{self.network}0{self.id}"


@dataclass(frozen=True)
class RobustAddress:
    protocol: AddressProtocol
    payload: bytes
    network: str = field(default=MAINNET_PREFIX, compare=False)

    def __post_init__(self):
        expected = PAYLOAD_SIZES.get(self.protocol)
        if expected is None:
            raise InvalidInput(f"invalid address protocol: {self.protocol}")
        if len(self.payload) != expected:
            raise InvalidInput(
                f"invalid address payload length {len(self.payload)} "
                f"for protocol {int(self.protocol)}"
            )

    def to_bytes(self) -> bytes:
        return bytes([self.protocol]) + self.payload

    def __str__(self) -> str:
        body = _b32encode(self.payload + checksum(self.protocol, self.payload))
        return f"{self.network}{int(self.protocol)}{body}"


Address = Union[IDAddress, RobustAddress]


def needs_resolution(address: Address) -> bool:
    """True when the address must be looked up to obtain its ID form."""
    return not isinstance(address, IDAddress)


def parse_address(text: str) -> Address:
    """Parse the string form of an address, validating its checksum."""
    if not isinstance(text, str):
        raise InvalidInput(f"invalid address: {text!r}")

    value = text.strip()
    if len(value) < 3:
        raise InvalidInput(f"invalid address: {text!r}")

    network = value[0]
    if network not in (MAINNET_PREFIX, TESTNET_PREFIX):
        raise InvalidInput(f"invalid address network prefix: {text!r}")

    try:
        protocol = AddressProtocol(int(value[1]))
    except ValueError:
        raise InvalidInput(f"invalid address protocol: {text!r}") from None

    raw = value[2:]
    if protocol == AddressProtocol.ID:
        if not raw.isdigit() or len(raw) > 20:
            raise InvalidInput(f"invalid ID address: {text!r}")
        return IDAddress(int(raw), network=network)

    try:
        decoded = _b32decode(raw)
    except ValueError:
        raise InvalidInput(f"invalid address encoding: {text!r}") from None

    payload, check = decoded[:-CHECKSUM_SIZE], decoded[-CHECKSUM_SIZE:]
    address = RobustAddress(protocol, payload, network=network)
    if checksum(protocol, payload) != check:
        raise InvalidInput(f"invalid address checksum: {text!r}")
    return address


def address_from_bytes(data: bytes, network: str = MAINNET_PREFIX) -> Address:
    """Decode the binary (protocol byte + payload) form used inside CBOR."""
    if not data:
        raise InvalidInput("empty address bytes")

    try:
        protocol = AddressProtocol(data[0])
    except ValueError:
        raise InvalidInput(f"invalid address protocol byte: {data[0]}") from None

    if protocol == AddressProtocol.ID:
        value, consumed = decode_uvarint(data[1:])
        if consumed != len(data) - 1:
            raise InvalidInput("trailing bytes after ID address")
        return IDAddress(value, network=network)
    return RobustAddress(protocol, bytes(data[1:]), network=network)


def new_secp256k1_address(public_key: bytes, network: str = MAINNET_PREFIX) -> RobustAddress:
    """Derive the ``f1`` address of an uncompressed secp256k1 public key."""
    payload = hashlib.blake2b(public_key, digest_size=20).digest()
    return RobustAddress(AddressProtocol.SECP256K1, payload, network=network)


def new_bls_address(public_key: bytes, network: str = MAINNET_PREFIX) -> RobustAddress:
    return RobustAddress(AddressProtocol.BLS, public_key, network=network)


def coerce_address(value: Address | str) -> Address:
    if isinstance(value, (IDAddress, RobustAddress)):
        return value
    return parse_address(value)
