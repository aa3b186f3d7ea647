"""Message records exchanged with the node."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

from filwallet.address import Address, parse_address
from filwallet.encoding import Cid, dumps, encode_bigint
from filwallet.errors import InvalidInput
from filwallet.keys import Signature, SigType

METHOD_SEND = 0


def _b64(data: bytes) -> str | None:
    return base64.b64encode(data).decode() if data else None


def _unb64(value: Any) -> bytes:
    if not value:
        return b""
    return base64.b64decode(value)


@dataclass(frozen=True)
class MessageIntent:
    """What the caller wants to send; unset gas and sequence fields get resolved."""

    to: Address | None
    from_address: Address | None
    value: int = 0
    method: int = METHOD_SEND
    params: bytes = b""
    gas_limit: int | None = None
    gas_fee_cap: int | None = None
    gas_premium: int | None = None
    sequence: int | None = None


@dataclass(frozen=True)
class Message:
    from_address: Address
    to: Address
    value: int = 0
    method: int = METHOD_SEND
    params: bytes = b""
    gas_limit: int = 0
    gas_fee_cap: int = 0
    gas_premium: int = 0
    sequence: int = 0
    version: int = 0

    @property
    def needs_gas_estimate(self) -> bool:
        return self.gas_limit == 0 or self.gas_fee_cap == 0 or self.gas_premium == 0

    def cbor_fields(self) -> list[Any]:
        return [
            self.version,
            self.to.to_bytes(),
            self.from_address.to_bytes(),
            self.sequence,
            encode_bigint(self.value),
            self.gas_limit,
            encode_bigint(self.gas_fee_cap),
            encode_bigint(self.gas_premium),
            int(self.method),
            self.params,
        ]

    def serialize(self) -> bytes:
        """Canonical encoding; identical messages always yield identical bytes."""
        return dumps(self.cbor_fields())

    def cid(self) -> Cid:
        return Cid.for_cbor(self.serialize())

    def signing_bytes(self) -> bytes:
        return self.cid().to_bytes()

    def to_json(self) -> dict[str, Any]:
        return {
            "Version": self.version,
            "To": str(self.to),
            "From": str(self.from_address),
            "Nonce": self.sequence,
            "Value": str(self.value),
            "GasLimit": self.gas_limit,
            "GasFeeCap": str(self.gas_fee_cap),
            "GasPremium": str(self.gas_premium),
            "Method": int(self.method),
            "Params": _b64(self.params),
        }

    @classmethod
    def from_json(cls, value: dict[str, Any]) -> "Message":
        try:
            return cls(
                from_address=parse_address(value["From"]),
                to=parse_address(value["To"]),
                value=int(value.get("Value") or 0),
                method=int(value.get("Method") or 0),
                params=_unb64(value.get("Params")),
                gas_limit=int(value.get("GasLimit") or 0),
                gas_fee_cap=int(value.get("GasFeeCap") or 0),
                gas_premium=int(value.get("GasPremium") or 0),
                sequence=int(value.get("Nonce") or 0),
                version=int(value.get("Version") or 0),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"malformed message JSON: {e}") from e


@dataclass(frozen=True)
class SignedMessage:
    message: Message
    signature: Signature

    def serialize(self) -> bytes:
        return dumps([self.message.cbor_fields(), self.signature.to_bytes()])

    def cid(self) -> Cid:
        # BLS signatures are aggregated per block, so the unsigned message
        # is what gets referenced on chain.
        if self.signature.sig_type == SigType.BLS:
            return self.message.cid()
        return Cid.for_cbor(self.serialize())

    def to_json(self) -> dict[str, Any]:
        return {"Message": self.message.to_json(), "Signature": self.signature.to_json()}


@dataclass(frozen=True)
class Receipt:
    exit_code: int
    return_bytes: bytes = b""
    gas_used: int = 0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class MsgLookup:
    message_ref: Cid
    receipt: Receipt
    height: int

    @classmethod
    def from_json(cls, value: dict[str, Any]) -> "MsgLookup":
        receipt = value["Receipt"]
        return cls(
            message_ref=Cid.from_json(value["Message"]),
            receipt=Receipt(
                exit_code=int(receipt["ExitCode"]),
                return_bytes=_unb64(receipt.get("Return")),
                gas_used=int(receipt.get("GasUsed") or 0),
            ),
            height=int(value["Height"]),
        )
