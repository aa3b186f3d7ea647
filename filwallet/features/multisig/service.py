"""Multisig actor support for fil-quick-wallet.

Builds the unsigned messages for creating a multisig account and for
proposing, approving and cancelling its pending transactions. Approvals
and cancellations carry a proposal hash so the actor rejects them if the
pending transaction differs from what the signer believes it approves.
Quorum is enforced on chain only.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from filwallet.actors import (
    ACTOR_METHODS,
    INIT_ACTOR,
    METHOD_SEND,
    ExecReturn,
    InitMethod,
    MultisigMethod,
    ParamsCodec,
    ProposeReturn,
)
from filwallet.address import (
    MAINNET_PREFIX,
    Address,
    IDAddress,
    needs_resolution,
    parse_address,
)
from filwallet.encoding import blake2b_256, dumps, encode_bigint
from filwallet.errors import InvalidInput, ProposalMismatch, QueryFailed
from filwallet.message import Message, Receipt
from filwallet.node import NodeClient, PendingTransaction
from filwallet.shared.logging import get_logger

logger = get_logger(__name__)

MULTISIG_ACTOR_NAME = "multisig"


def _b64(data: bytes) -> str | None:
    return base64.b64encode(data).decode() if data else None


@dataclass(frozen=True)
class ProposalHashData:
    """What a pending transaction does, in the exact form the actor hashes.

    The requester must be an ID address: the actor compares the stored
    proposer byte for byte, so a key address for the same account would
    produce a different hash.
    """

    requester: IDAddress
    to: Address
    value: int
    method: int = METHOD_SEND
    params: bytes = b""

    def __post_init__(self):
        if not isinstance(self.requester, IDAddress):
            raise InvalidInput(
                f"proposal requester must be an ID address, got {self.requester}"
            )

    def serialize(self) -> bytes:
        return dumps(
            [
                self.requester.to_bytes(),
                self.to.to_bytes(),
                encode_bigint(self.value),
                int(self.method),
                self.params,
            ]
        )

    def hash(self) -> bytes:
        return blake2b_256(self.serialize())


@dataclass(frozen=True)
class ProposalRequest:
    """The approver's view of a pending transaction."""

    to: Address
    value: int
    method: int = METHOD_SEND
    params: bytes = b""
    proposer: Address | None = None


@dataclass
class MultisigInfo:
    address: Address
    balance: int
    spendable: int
    threshold: int
    signers: list[Address]
    unlock_duration: int = 0
    start_epoch: int = 0
    initial_balance: int = 0
    pending: list[PendingTransaction] = field(default_factory=list)
    decoded_params: dict[int, Any] = field(default_factory=dict)

    @property
    def locked(self) -> int:
        return self.balance - self.spendable


class MultisigCoordinator:
    """Produces unsigned messages addressed to a multisig actor."""

    def __init__(self, node: NodeClient, codec: ParamsCodec):
        self.node = node
        self.codec = codec

    def _resolve_id(self, address: Address) -> IDAddress:
        if needs_resolution(address):
            return self.node.lookup_id(address)
        return address  # type: ignore[return-value]

    def _message(
        self,
        sender: Address,
        multisig: Address,
        method: MultisigMethod,
        params: bytes,
    ) -> Message:
        return Message(
            from_address=sender,
            to=multisig,
            method=method,
            params=params,
        )

    def create(
        self,
        signers: list[Address],
        sender: Address,
        threshold: int | None = None,
        value: int = 0,
        unlock_duration: int = 0,
        start_epoch: int = 0,
    ) -> Message:
        """Build an init actor ``Exec`` that deploys a new multisig account.

        Args:
            signers: Signer addresses; duplicates are rejected.
            sender: Account paying for the creation.
            threshold: Approvals required; defaults to all signers.
            value: Initial balance, in attoFIL.
            unlock_duration: Vesting duration in epochs; 0 disables vesting.
            start_epoch: Epoch the vesting starts from.
        """
        if not signers:
            raise InvalidInput("a multisig needs at least one signer")
        if len({s.to_bytes() for s in signers}) != len(signers):
            raise InvalidInput("duplicate signer address")
        if threshold is None:
            threshold = len(signers)
        if not 1 <= threshold <= len(signers):
            raise InvalidInput(
                f"threshold must be between 1 and {len(signers)}, got {threshold}"
            )
        if value < 0 or unlock_duration < 0:
            raise InvalidInput("value and unlock duration must not be negative")

        code_cids = self.node.actor_code_cids(self.node.network_version())
        code_cid = code_cids.get(MULTISIG_ACTOR_NAME)
        if code_cid is None:
            raise QueryFailed(
                "node did not report a multisig actor code CID",
                method="Filecoin.StateActorCodeCIDs",
            )

        constructor = self.codec.encode_params(
            MultisigMethod.CONSTRUCTOR,
            {
                "Signers": [str(s) for s in signers],
                "NumApprovalsThreshold": threshold,
                "UnlockDuration": unlock_duration,
                "StartEpoch": start_epoch,
            },
        )
        params = self.codec.encode_params(
            InitMethod.EXEC,
            {"CodeCID": code_cid.to_json(), "ConstructorParams": _b64(constructor)},
        )
        logger.info("Creating %d-of-%d multisig", threshold, len(signers))
        return Message(
            from_address=sender,
            to=INIT_ACTOR,
            value=value,
            method=InitMethod.EXEC,
            params=params,
        )

    def propose(
        self,
        multisig: Address,
        to: Address,
        value: int,
        sender: Address,
        method: int = METHOD_SEND,
        params: bytes = b"",
    ) -> Message:
        if value < 0:
            raise InvalidInput("value must not be negative")
        if method < 0:
            raise InvalidInput("method must not be negative")

        encoded = self.codec.encode_params(
            MultisigMethod.PROPOSE,
            {"To": str(to), "Value": str(value), "Method": int(method), "Params": _b64(params)},
        )
        logger.info("Proposing method %d to %s via %s", int(method), to, multisig)
        return self._message(sender, multisig, MultisigMethod.PROPOSE, encoded)

    def proposal_hash_data(
        self,
        requester: Address,
        to: Address,
        value: int,
        method: int = METHOD_SEND,
        params: bytes = b"",
    ) -> ProposalHashData:
        """Build the hash data, resolving ``requester`` to its ID form first."""
        return ProposalHashData(
            requester=self._resolve_id(requester),
            to=to,
            value=value,
            method=method,
            params=params,
        )

    def _verify_pending(
        self, multisig: Address, txn_id: int, expected: ProposalHashData
    ) -> None:
        pending = {txn.id: txn for txn in self.node.pending_transactions(multisig)}
        txn = pending.get(txn_id)
        if txn is None:
            raise ProposalMismatch(
                f"transaction {txn_id} is not pending on {multisig}", txn_id
            )
        if not txn.approved or not isinstance(txn.approved[0], IDAddress):
            raise ProposalMismatch(
                f"transaction {txn_id} has no ID-form proposer on record", txn_id
            )

        actual = ProposalHashData(
            requester=txn.approved[0],
            to=txn.to,
            value=txn.value,
            method=txn.method,
            params=txn.params,
        )
        if actual.hash() == expected.hash():
            return

        differences = [
            name
            for name in ("requester", "to", "value", "method", "params")
            if getattr(actual, name) != getattr(expected, name)
        ]
        logger.warning(
            "Proposal %d on %s differs in: %s", txn_id, multisig, ", ".join(differences)
        )
        raise ProposalMismatch(
            f"transaction {txn_id} does not match the supplied proposal "
            f"({', '.join(differences)} differ)",
            txn_id,
            differences,
        )

    def _txn_params(self, method: MultisigMethod, txn_id: int, proposal_hash: bytes) -> bytes:
        if txn_id < 0:
            raise InvalidInput("transaction id must not be negative")
        return self.codec.encode_params(
            method, {"ID": txn_id, "ProposalHash": _b64(proposal_hash)}
        )

    def approve(
        self,
        multisig: Address,
        txn_id: int,
        sender: Address,
        proposal: ProposalRequest,
    ) -> Message:
        """Approve ``txn_id`` only if it matches ``proposal``.

        Raises:
            InvalidInput: ``proposal.proposer`` was not given.
            ProposalMismatch: The pending transaction is missing or differs.
        """
        if proposal.proposer is None:
            raise InvalidInput("approving with a proposal hash requires the proposer")
        data = self.proposal_hash_data(
            proposal.proposer, proposal.to, proposal.value, proposal.method, proposal.params
        )
        self._verify_pending(multisig, txn_id, data)
        params = self._txn_params(MultisigMethod.APPROVE, txn_id, data.hash())
        return self._message(sender, multisig, MultisigMethod.APPROVE, params)

    def approve_blind(self, multisig: Address, txn_id: int, sender: Address) -> Message:
        """Approve by id alone; the actor cannot check what is being approved."""
        logger.warning("Blind approval of transaction %d on %s", txn_id, multisig)
        params = self._txn_params(MultisigMethod.APPROVE, txn_id, b"")
        return self._message(sender, multisig, MultisigMethod.APPROVE, params)

    def cancel(
        self,
        multisig: Address,
        txn_id: int,
        sender: Address,
        proposal: ProposalRequest,
    ) -> Message:
        # Only the proposer may cancel, so the sender is the requester.
        requester = self._resolve_id(sender)
        if proposal.proposer is not None and self._resolve_id(proposal.proposer) != requester:
            raise InvalidInput("only the proposer can cancel a pending transaction")
        data = ProposalHashData(
            requester=requester,
            to=proposal.to,
            value=proposal.value,
            method=proposal.method,
            params=proposal.params,
        )
        self._verify_pending(multisig, txn_id, data)
        params = self._txn_params(MultisigMethod.CANCEL, txn_id, data.hash())
        return self._message(sender, multisig, MultisigMethod.CANCEL, params)

    def cancel_blind(self, multisig: Address, txn_id: int, sender: Address) -> Message:
        logger.warning("Blind cancellation of transaction %d on %s", txn_id, multisig)
        params = self._txn_params(MultisigMethod.CANCEL, txn_id, b"")
        return self._message(sender, multisig, MultisigMethod.CANCEL, params)

    @staticmethod
    def decode_proposal_return(receipt: Receipt) -> ProposeReturn:
        return ProposeReturn.from_cbor(receipt.return_bytes)

    @staticmethod
    def decode_create_return(receipt: Receipt, network: str = MAINNET_PREFIX) -> ExecReturn:
        return ExecReturn.from_cbor(receipt.return_bytes, network=network)

    def _method_enum(
        self, target: Address, method: int, code_names: dict[bytes, str]
    ) -> IntEnum | None:
        code = self.node.actor_state(target).code
        methods = ACTOR_METHODS.get(code_names.get(code.to_bytes(), ""))
        if methods is None:
            return None
        try:
            return methods(method)
        except ValueError:
            return None

    def _decode_pending_params(self, pending: list[PendingTransaction]) -> dict[int, Any]:
        code_names = {
            cid.to_bytes(): name
            for name, cid in self.node.actor_code_cids(self.node.network_version()).items()
        }
        decoded: dict[int, Any] = {}
        for txn in pending:
            if txn.method == METHOD_SEND or not txn.params:
                continue
            try:
                method = self._method_enum(txn.to, txn.method, code_names)
                if method is not None:
                    decoded[txn.id] = self.codec.decode_params(method, txn.params)
            except (QueryFailed, InvalidInput) as e:
                logger.warning("Cannot decode params of transaction %d: %s", txn.id, e)
        return decoded

    def inspect(self, multisig: Address, decode_params: bool = False) -> MultisigInfo:
        """Read a multisig's signers, threshold, balances and pending transactions."""
        state = self.node.read_state(multisig)
        try:
            signers = [parse_address(s) for s in state.state.get("Signers") or []]
            threshold = int(state.state["NumApprovalsThreshold"])
            unlock_duration = int(state.state.get("UnlockDuration") or 0)
            start_epoch = int(state.state.get("StartEpoch") or 0)
            initial_balance = int(state.state.get("InitialBalance") or 0)
        except (KeyError, TypeError, ValueError, InvalidInput) as e:
            raise QueryFailed(
                f"{multisig} does not look like a multisig actor: {e}",
                method="Filecoin.StateReadState",
            ) from e

        pending = sorted(self.node.pending_transactions(multisig), key=lambda t: t.id)
        info = MultisigInfo(
            address=multisig,
            balance=state.balance,
            spendable=self.node.multisig_available_balance(multisig),
            threshold=threshold,
            signers=signers,
            unlock_duration=unlock_duration,
            start_epoch=start_epoch,
            initial_balance=initial_balance,
            pending=pending,
        )
        if decode_params:
            info.decoded_params = self._decode_pending_params(pending)
        return info
