"""Builtin actor method numbers and parameter encoding.

Parameter encoding is pluggable through :class:`ParamsCodec`. The bundled
:class:`CborParamsCodec` covers the multisig, init and miner methods the
wallet sends, using the same JSON field names Lotus prints.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Protocol

from filwallet.address import (
    MAINNET_PREFIX,
    Address,
    IDAddress,
    address_from_bytes,
    parse_address,
)
from filwallet.encoding import Cid, decode_bigint, dumps, encode_bigint, loads
from filwallet.errors import InvalidInput

METHOD_SEND = 0

INIT_ACTOR = IDAddress(1)
STORAGE_POWER_ACTOR = IDAddress(4)

# RegisteredPoStProof StackedDrgWindow32GiBV1.
WINDOW_POST_32GIB = 8


class MultisigMethod(IntEnum):
    CONSTRUCTOR = 1
    PROPOSE = 2
    APPROVE = 3
    CANCEL = 4
    ADD_SIGNER = 5
    REMOVE_SIGNER = 6
    SWAP_SIGNER = 7
    CHANGE_NUM_APPROVALS_THRESHOLD = 8
    LOCK_BALANCE = 9


class InitMethod(IntEnum):
    CONSTRUCTOR = 1
    EXEC = 2


class PowerMethod(IntEnum):
    CONSTRUCTOR = 1
    CREATE_MINER = 2


class MinerMethod(IntEnum):
    CHANGE_WORKER_ADDRESS = 3
    WITHDRAW_BALANCE = 16
    CHANGE_MULTIADDRS = 18
    CONFIRM_CHANGE_WORKER_ADDRESS = 21
    CHANGE_OWNER_ADDRESS = 23
    CHANGE_BENEFICIARY = 30


# Names the node uses in StateActorCodeCIDs.
ACTOR_METHODS: dict[str, type[IntEnum]] = {
    "multisig": MultisigMethod,
    "init": InitMethod,
    "storageminer": MinerMethod,
    "storagepower": PowerMethod,
}


class ParamsCodec(Protocol):
    def encode_params(self, method: IntEnum, value: Any) -> bytes: ...

    def decode_params(self, method: IntEnum, data: bytes) -> Any: ...


def _b64(data: bytes) -> str | None:
    return base64.b64encode(data).decode() if data else None


def _unb64(value: Any) -> bytes:
    return base64.b64decode(value) if value else b""


def _addr(value: Any) -> bytes:
    return parse_address(value).to_bytes()


def _addr_str(data: bytes) -> str:
    return str(address_from_bytes(data))


def _big(value: Any) -> bytes:
    return encode_bigint(int(value))


def _big_str(data: bytes) -> str:
    return str(decode_bigint(data))


@dataclass(frozen=True)
class _Field:
    key: str
    encode: Callable[[Any], Any] = int
    decode: Callable[[Any], Any] = lambda v: v


def _array(*fields: _Field) -> tuple[Callable[[Any], Any], Callable[[Any], Any]]:
    """Map a JSON object onto a CBOR tuple, field by field."""

    def encode(value: dict[str, Any]) -> list[Any]:
        return [f.encode(value[f.key]) for f in fields]

    def decode(items: list[Any]) -> dict[str, Any]:
        if not isinstance(items, list) or len(items) != len(fields):
            raise InvalidInput(f"expected a {len(fields)}-element tuple")
        return {f.key: f.decode(item) for f, item in zip(fields, items)}

    return encode, decode


def _single_address(key: str) -> tuple[Callable[[Any], Any], Callable[[Any], Any]]:
    return (lambda value: _addr(value[key])), (lambda data: {key: _addr_str(data)})


_NO_PARAMS = (lambda value: None, lambda data: {})

_LAYOUTS: dict[tuple[type[IntEnum], int], tuple[Callable, Callable]] = {
    (MultisigMethod, MultisigMethod.CONSTRUCTOR): _array(
        _Field("Signers", lambda v: [_addr(a) for a in v], lambda v: [_addr_str(a) for a in v]),
        _Field("NumApprovalsThreshold"),
        _Field("UnlockDuration"),
        _Field("StartEpoch"),
    ),
    (MultisigMethod, MultisigMethod.PROPOSE): _array(
        _Field("To", _addr, _addr_str),
        _Field("Value", _big, _big_str),
        _Field("Method"),
        _Field("Params", _unb64, _b64),
    ),
    (MultisigMethod, MultisigMethod.APPROVE): _array(
        _Field("ID"), _Field("ProposalHash", _unb64, _b64)
    ),
    (MultisigMethod, MultisigMethod.CANCEL): _array(
        _Field("ID"), _Field("ProposalHash", _unb64, _b64)
    ),
    (MultisigMethod, MultisigMethod.ADD_SIGNER): _array(
        _Field("Signer", _addr, _addr_str), _Field("Increase", bool)
    ),
    (MultisigMethod, MultisigMethod.REMOVE_SIGNER): _array(
        _Field("Signer", _addr, _addr_str), _Field("Decrease", bool)
    ),
    (MultisigMethod, MultisigMethod.SWAP_SIGNER): _array(
        _Field("From", _addr, _addr_str), _Field("To", _addr, _addr_str)
    ),
    (MultisigMethod, MultisigMethod.CHANGE_NUM_APPROVALS_THRESHOLD): _array(
        _Field("NewThreshold")
    ),
    (MultisigMethod, MultisigMethod.LOCK_BALANCE): _array(
        _Field("StartEpoch"),
        _Field("UnlockDuration"),
        _Field("Amount", _big, _big_str),
    ),
    (InitMethod, InitMethod.EXEC): _array(
        _Field(
            "CodeCID",
            lambda v: Cid.from_json(v).to_cbor_tag(),
            lambda tag: Cid(tag.value[1:]).to_json(),
        ),
        _Field("ConstructorParams", _unb64, _b64),
    ),
    (PowerMethod, PowerMethod.CREATE_MINER): _array(
        _Field("Owner", _addr, _addr_str),
        _Field("Worker", _addr, _addr_str),
        _Field("WindowPoStProofType"),
        _Field("Peer", _unb64, _b64),
        _Field(
            "Multiaddrs",
            lambda v: [_unb64(a) for a in v or ()],
            lambda v: [_b64(a) for a in v],
        ),
    ),
    (MinerMethod, MinerMethod.WITHDRAW_BALANCE): _array(
        _Field("AmountRequested", _big, _big_str)
    ),
    (MinerMethod, MinerMethod.CHANGE_OWNER_ADDRESS): _single_address("NewOwner"),
    (MinerMethod, MinerMethod.CHANGE_WORKER_ADDRESS): _array(
        _Field("NewWorker", _addr, _addr_str),
        _Field(
            "NewControlAddrs",
            lambda v: [_addr(a) for a in v],
            lambda v: [_addr_str(a) for a in v],
        ),
    ),
    (MinerMethod, MinerMethod.CONFIRM_CHANGE_WORKER_ADDRESS): _NO_PARAMS,
    (MinerMethod, MinerMethod.CHANGE_BENEFICIARY): _array(
        _Field("NewBeneficiary", _addr, _addr_str),
        _Field("NewQuota", _big, _big_str),
        _Field("NewExpiration"),
    ),
}


class CborParamsCodec:
    """Encodes method parameters given as Lotus-style JSON objects."""

    def _layout(self, method: IntEnum) -> tuple[Callable, Callable]:
        try:
            return _LAYOUTS[(type(method), int(method))]
        except KeyError:
            raise InvalidInput(
                f"no parameter layout for {type(method).__name__}.{method.name}"
            ) from None

    def encode_params(self, method: IntEnum, value: Any) -> bytes:
        encode, _ = self._layout(method)
        try:
            obj = encode(value)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"invalid params for {method.name}: {e}") from e
        return b"" if obj is None else dumps(obj)

    def decode_params(self, method: IntEnum, data: bytes) -> Any:
        _, decode = self._layout(method)
        if not data:
            return {}
        try:
            return decode(loads(data))
        except (AttributeError, IndexError, TypeError, ValueError) as e:
            raise InvalidInput(f"cannot decode params for {method.name}: {e}") from e


@dataclass(frozen=True)
class ProposeReturn:
    txn_id: int
    applied: bool
    exit_code: int
    ret: bytes

    @classmethod
    def from_cbor(cls, data: bytes) -> "ProposeReturn":
        items = loads(data)
        if not isinstance(items, list) or len(items) != 4:
            raise InvalidInput("malformed multisig propose return")
        txn_id, applied, code, ret = items
        return cls(txn_id=int(txn_id), applied=bool(applied), exit_code=int(code), ret=ret or b"")


@dataclass(frozen=True)
class ExecReturn:
    """Init ``Exec`` return; power ``CreateMiner`` returns the same pair."""

    id_address: IDAddress
    robust_address: Address

    @classmethod
    def from_cbor(cls, data: bytes, network: str = MAINNET_PREFIX) -> "ExecReturn":
        items = loads(data)
        if not isinstance(items, list) or len(items) != 2:
            raise InvalidInput("malformed init exec return")
        id_address = address_from_bytes(items[0], network=network)
        if not isinstance(id_address, IDAddress):
            raise InvalidInput("init exec returned a non-ID address")
        return cls(
            id_address=id_address,
            robust_address=address_from_bytes(items[1], network=network),
        )
