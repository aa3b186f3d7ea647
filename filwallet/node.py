"""Typed client for the Lotus ``Filecoin.*`` JSON-RPC surface.

Responses are decoded into dataclasses here, once. A response that does
not have the expected shape raises :class:`~filwallet.errors.QueryFailed`
immediately instead of leaking half-parsed JSON into the pipeline.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from filwallet.address import Address, IDAddress, parse_address
from filwallet.config import ClientConfig
from filwallet.encoding import Cid
from filwallet.errors import InvalidInput, QueryFailed, SubmissionFailed
from filwallet.message import Message, MsgLookup, SignedMessage
from filwallet.shared.network import NetworkError, RpcClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

# An empty tipset key selects the current head.
HEAD: list[Any] = []
NO_LOOKBACK_LIMIT = -1
NO_WORKER_CHANGE = "<empty>"


@dataclass(frozen=True)
class ChainHead:
    height: int
    cids: tuple[Cid, ...]


@dataclass(frozen=True)
class ActorState:
    code: Cid
    head: Cid
    sequence: int
    balance: int


@dataclass(frozen=True)
class BeneficiaryTerm:
    new_beneficiary: Address
    new_quota: int
    new_expiration: int
    approved_by_beneficiary: bool = False
    approved_by_nominee: bool = False


@dataclass(frozen=True)
class MinerInfo:
    owner: Address
    worker: Address
    new_worker: Address | None
    worker_change_epoch: int
    control_addresses: tuple[Address, ...]
    beneficiary: Address
    pending_beneficiary_term: BeneficiaryTerm | None = None

    @property
    def has_pending_worker_change(self) -> bool:
        return self.new_worker is not None


@dataclass(frozen=True)
class PendingTransaction:
    id: int
    to: Address
    value: int
    method: int
    params: bytes
    approved: tuple[Address, ...]


@dataclass(frozen=True)
class ReadStateResult:
    balance: int
    code: Cid
    state: dict[str, Any]


def _optional_address(value: Any) -> Address | None:
    if not value or value == NO_WORKER_CHANGE:
        return None
    return parse_address(value)


def _decode_bytes(value: Any) -> bytes:
    return base64.b64decode(value) if value else b""


def _decode_lookup(raw: Any) -> MsgLookup | None:
    return MsgLookup.from_json(raw) if raw else None


def _decode_head(raw: Any) -> ChainHead:
    return ChainHead(
        height=int(raw["Height"]),
        cids=tuple(Cid.from_json(c) for c in raw["Cids"]),
    )


def _decode_actor(raw: Any) -> ActorState:
    return ActorState(
        code=Cid.from_json(raw["Code"]),
        head=Cid.from_json(raw["Head"]),
        sequence=int(raw["Nonce"]),
        balance=int(raw["Balance"]),
    )


def _decode_miner_info(raw: Any) -> MinerInfo:
    owner = parse_address(raw["Owner"])
    term = raw.get("PendingBeneficiaryTerm")
    pending = None
    if term:
        pending = BeneficiaryTerm(
            new_beneficiary=parse_address(term["NewBeneficiary"]),
            new_quota=int(term["NewQuota"]),
            new_expiration=int(term["NewExpiration"]),
            approved_by_beneficiary=bool(term.get("ApprovedByBeneficiary")),
            approved_by_nominee=bool(term.get("ApprovedByNominee")),
        )
    return MinerInfo(
        owner=owner,
        worker=parse_address(raw["Worker"]),
        new_worker=_optional_address(raw.get("NewWorker")),
        worker_change_epoch=int(raw.get("WorkerChangeEpoch", -1)),
        control_addresses=tuple(
            parse_address(a) for a in raw.get("ControlAddresses") or []
        ),
        # Nodes predating beneficiaries report none; the owner receives funds.
        beneficiary=_optional_address(raw.get("Beneficiary")) or owner,
        pending_beneficiary_term=pending,
    )


def _decode_pending(raw: Any) -> list[PendingTransaction]:
    return [
        PendingTransaction(
            id=int(txn["ID"]),
            to=parse_address(txn["To"]),
            value=int(txn["Value"]),
            method=int(txn["Method"]),
            params=_decode_bytes(txn.get("Params")),
            approved=tuple(parse_address(a) for a in txn.get("Approved") or []),
        )
        for txn in raw or []
    ]


def _decode_read_state(raw: Any) -> ReadStateResult:
    return ReadStateResult(
        balance=int(raw["Balance"]),
        code=Cid.from_json(raw["Code"]),
        state=dict(raw.get("State") or {}),
    )


class NodeClient:
    """Blocking, typed access to a Lotus-compatible node."""

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    @classmethod
    def from_config(cls, config: ClientConfig) -> "NodeClient":
        return cls(
            RpcClient(
                config.rpc_addr,
                token=config.token,
                timeout_config=config.timeout_config,
            )
        )

    def _call(self, method: str, params: list[Any]) -> Any:
        name = f"Filecoin.{method}"
        try:
            return self.rpc.call(name, params)
        except NetworkError as e:
            logger.warning("%s failed: %s", name, e.message)
            raise QueryFailed(e.message, method=name) from e

    def _query(self, method: str, params: list[Any], decode: Callable[[Any], T]) -> T:
        raw = self._call(method, params)
        try:
            return decode(raw)
        except (KeyError, TypeError, ValueError, InvalidInput) as e:
            raise QueryFailed(
                f"Filecoin.{method}: malformed response: {e}",
                method=f"Filecoin.{method}",
            ) from e

    def chain_head(self) -> ChainHead:
        return self._query("ChainHead", [], _decode_head)

    def balance(self, address: Address) -> int:
        return self._query("WalletBalance", [str(address)], int)

    def estimate_gas(self, message: Message, max_fee: int) -> Message:
        """Return ``message`` as completed by the node's gas estimator."""
        return self._query(
            "GasEstimateMessageGas",
            [message.to_json(), {"MaxFee": str(max_fee)}, HEAD],
            Message.from_json,
        )

    def next_sequence(self, address: Address) -> int:
        return self._query("MpoolGetNonce", [str(address)], int)

    def lookup_id(self, address: Address) -> IDAddress:
        def decode(raw: Any) -> IDAddress:
            resolved = parse_address(raw)
            if not isinstance(resolved, IDAddress):
                raise ValueError(f"node returned a non-ID address: {raw}")
            return resolved

        return self._query("StateLookupID", [str(address), HEAD], decode)

    def actor_state(self, address: Address) -> ActorState:
        return self._query("StateGetActor", [str(address), HEAD], _decode_actor)

    def miner_info(self, miner: Address) -> MinerInfo:
        return self._query("StateMinerInfo", [str(miner), HEAD], _decode_miner_info)

    def miner_available_balance(self, miner: Address) -> int:
        return self._query("StateMinerAvailableBalance", [str(miner), HEAD], int)

    def account_key(self, address: Address) -> Address:
        return self._query("StateAccountKey", [str(address), HEAD], parse_address)

    def push(self, signed: SignedMessage) -> Cid:
        """Submit to the mempool. Node rejections raise :class:`SubmissionFailed`."""
        try:
            raw = self.rpc.call("Filecoin.MpoolPush", [signed.to_json()])
        except NetworkError as e:
            logger.warning("MpoolPush rejected: %s", e.message)
            raise SubmissionFailed(
                f"node rejected the message: {e.message}", node_message=e.message
            ) from e
        try:
            return Cid.from_json(raw)
        except InvalidInput as e:
            raise SubmissionFailed(
                f"node accepted the message but returned no CID: {raw!r}"
            ) from e

    def search_message(self, message_ref: Cid) -> MsgLookup | None:
        """Look the message up on chain; ``None`` while it is not yet included."""

        return self._query(
            "StateSearchMsg",
            [HEAD, message_ref.to_json(), NO_LOOKBACK_LIMIT, True],
            _decode_lookup,
        )

    def wait_message(self, message_ref: Cid, confidence: int = 5) -> MsgLookup | None:
        """Block on the node until the message has ``confidence`` epochs on top."""
        return self._query(
            "StateWaitMsg",
            [message_ref.to_json(), confidence, NO_LOOKBACK_LIMIT, True],
            _decode_lookup,
        )

    def pending_transactions(self, multisig: Address) -> list[PendingTransaction]:
        return self._query("MsigGetPending", [str(multisig), HEAD], _decode_pending)

    def multisig_available_balance(self, multisig: Address) -> int:
        return self._query("MsigGetAvailableBalance", [str(multisig), HEAD], int)

    def read_state(self, address: Address) -> ReadStateResult:
        return self._query("StateReadState", [str(address), HEAD], _decode_read_state)

    def network_version(self) -> int:
        return self._query("StateNetworkVersion", [HEAD], int)

    def actor_code_cids(self, network_version: int) -> dict[str, Cid]:
        def decode(raw: Any) -> dict[str, Cid]:
            return {name: Cid.from_json(cid) for name, cid in raw.items()}

        return self._query("StateActorCodeCIDs", [network_version], decode)
