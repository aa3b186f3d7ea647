"""Key pairs, signatures and the signer/derivation interfaces.

Key derivation from a seed phrase and BLS signing are provided by external
collaborators implementing :class:`KeyDeriver` and :class:`Signer`. A
secp256k1 :class:`Secp256k1Signer` built on ``ecdsa`` is included for the
common single-key case.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Protocol

from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string_canonize

from filwallet.address import (
    MAINNET_PREFIX,
    Address,
    AddressProtocol,
    RobustAddress,
    new_secp256k1_address,
)
from filwallet.encoding import blake2b_256
from filwallet.errors import InvalidInput

FIL_COIN_TYPE = 461


class SigType(IntEnum):
    SECP256K1 = 1
    BLS = 2

    @classmethod
    def from_name(cls, name: str) -> "SigType":
        try:
            return {"secp256k1": cls.SECP256K1, "bls": cls.BLS}[name.strip().lower()]
        except KeyError:
            raise InvalidInput(f"unknown signature type: {name}") from None


@dataclass(frozen=True)
class Signature:
    sig_type: SigType
    data: bytes

    def to_bytes(self) -> bytes:
        return bytes([self.sig_type]) + self.data

    def to_json(self) -> dict[str, Any]:
        return {"Type": int(self.sig_type), "Data": base64.b64encode(self.data).decode()}

    @classmethod
    def from_json(cls, value: dict[str, Any]) -> "Signature":
        return cls(SigType(value["Type"]), base64.b64decode(value["Data"]))


@dataclass(frozen=True)
class KeyPair:
    address: Address
    sig_type: SigType
    private_key: bytes = field(repr=False)


class Signer(Protocol):
    def sign(self, sig_type: SigType, private_key: bytes, data: bytes) -> Signature: ...

    def verify(self, signature: Signature, address: Address, data: bytes) -> bool: ...


class KeyDeriver(Protocol):
    def derive_key(self, path: str, seed: bytes) -> KeyPair: ...


def fil_derivation_path(index: int) -> str:
    """BIP44 path used for the ``index``-th Filecoin account."""
    if index < 0:
        raise InvalidInput("account index must not be negative")
    return f"m/44'/{FIL_COIN_TYPE}'/0'/0/{index}"


def derive_key_pair(deriver: KeyDeriver, seed: bytes, index: int = 0) -> KeyPair:
    return deriver.derive_key(fil_derivation_path(index), seed)


class Secp256k1Signer:
    """Filecoin secp256k1 signatures: 65 bytes ``r || s || recovery_id``
    over blake2b-256 of the payload."""

    SIGNATURE_SIZE = 65

    @staticmethod
    def _signing_key(private_key: bytes) -> SigningKey:
        try:
            return SigningKey.from_string(private_key, curve=SECP256k1)
        except (ValueError, AssertionError) as e:
            raise InvalidInput(f"invalid secp256k1 private key: {e}") from e

    @staticmethod
    def public_key(private_key: bytes) -> bytes:
        vk = Secp256k1Signer._signing_key(private_key).get_verifying_key()
        return vk.to_string("uncompressed")

    @classmethod
    def key_pair(cls, private_key: bytes, network: str = MAINNET_PREFIX) -> KeyPair:
        address = new_secp256k1_address(cls.public_key(private_key), network=network)
        return KeyPair(address=address, sig_type=SigType.SECP256K1, private_key=private_key)

    @classmethod
    def generate(cls, network: str = MAINNET_PREFIX) -> KeyPair:
        return cls.key_pair(SigningKey.generate(curve=SECP256k1).to_string(), network)

    @staticmethod
    def _recover(sig: bytes, digest: bytes) -> list[VerifyingKey]:
        return VerifyingKey.from_public_key_recovery_with_digest(
            sig[:64], digest, SECP256k1, sigdecode=sigdecode_string
        )

    def sign(self, sig_type: SigType, private_key: bytes, data: bytes) -> Signature:
        if sig_type != SigType.SECP256K1:
            raise InvalidInput(f"{sig_type.name} signing requires an external signer")

        sk = self._signing_key(private_key)
        digest = blake2b_256(data)
        rs = sk.sign_digest_deterministic(
            digest, hashfunc=hashlib.sha256, sigencode=sigencode_string_canonize
        )

        own_key = sk.get_verifying_key().to_string("uncompressed")
        for recovery_id, candidate in enumerate(self._recover(rs, digest)):
            if candidate.to_string("uncompressed") == own_key:
                return Signature(SigType.SECP256K1, rs + bytes([recovery_id]))
        raise InvalidInput("could not compute signature recovery id")

    def verify(self, signature: Signature, address: Address, data: bytes) -> bool:
        if signature.sig_type != SigType.SECP256K1:
            raise InvalidInput(
                f"{signature.sig_type.name} verification requires an external signer"
            )
        if not isinstance(address, RobustAddress) or address.protocol != AddressProtocol.SECP256K1:
            return False
        if len(signature.data) != self.SIGNATURE_SIZE:
            return False

        recovery_id = signature.data[64]
        try:
            candidates = self._recover(signature.data, blake2b_256(data))
        except (BadSignatureError, ValueError, AssertionError):
            return False
        if recovery_id >= len(candidates):
            return False

        recovered = new_secp256k1_address(candidates[recovery_id].to_string("uncompressed"))
        return recovered == address


def key_pair_from_lotus_export(
    exported: str, key_format: str = "hex-lotus", network: str = MAINNET_PREFIX
) -> KeyPair:
    """Load a secp256k1 key exported by ``lotus wallet export``.

    ``hex-lotus`` is hex-encoded KeyInfo JSON; ``json-lotus`` is the raw JSON.
    """
    try:
        if key_format == "hex-lotus":
            key_info = json.loads(binascii.unhexlify(exported.strip()))
        elif key_format == "json-lotus":
            key_info = json.loads(exported)
        else:
            raise InvalidInput(f"unrecognized key format: {key_format}")
        key_type = key_info["Type"]
        private_key = base64.b64decode(key_info["PrivateKey"])
    except (ValueError, KeyError, TypeError, binascii.Error) as e:
        raise InvalidInput(f"cannot parse exported key: {e}") from e

    if SigType.from_name(key_type) != SigType.SECP256K1:
        raise InvalidInput("only secp256k1 keys can be loaded without an external signer")
    return Secp256k1Signer.key_pair(private_key, network=network)
