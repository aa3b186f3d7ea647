"""Multisig recipes: common operations routed through propose/approve/cancel.

Each operation is a small dataclass that knows its inner call (target,
value, method and encoded params). :class:`RecipeRouter` resolves the
addresses an operation needs, runs its client-side checks when proposing,
and hands the inner call to :class:`MultisigCoordinator`. With
``Action.SEND`` the same inner call goes out as a plain message from a
single-key owner, worker or beneficiary, after the same checks.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Union

from filwallet.actors import (
    METHOD_SEND,
    STORAGE_POWER_ACTOR,
    WINDOW_POST_32GIB,
    ExecReturn,
    MinerMethod,
    MultisigMethod,
    ParamsCodec,
    PowerMethod,
)
from filwallet.address import MAINNET_PREFIX, Address, IDAddress, needs_resolution
from filwallet.errors import InvalidInput
from filwallet.features.multisig.service import MultisigCoordinator, ProposalRequest
from filwallet.message import Message, Receipt
from filwallet.node import NodeClient
from filwallet.shared.logging import get_logger
from filwallet.shared.validation import AmountValidator

logger = get_logger(__name__)


class OperationKind(Enum):
    TRANSFER = "transfer"
    WITHDRAW_BALANCE = "withdraw_balance"
    CHANGE_OWNER = "change_owner"
    CHANGE_WORKER = "change_worker"
    CONFIRM_CHANGE_WORKER = "confirm_change_worker"
    SET_CONTROL_ADDRESSES = "set_control_addresses"
    CHANGE_BENEFICIARY = "change_beneficiary"
    CONFIRM_CHANGE_BENEFICIARY = "confirm_change_beneficiary"
    CREATE_MINER = "create_miner"
    ADD_SIGNER = "add_signer"
    REMOVE_SIGNER = "remove_signer"
    SWAP_SIGNER = "swap_signer"
    CHANGE_THRESHOLD = "change_threshold"
    LOCK_BALANCE = "lock_balance"


class Action(Enum):
    PROPOSE = "propose"
    APPROVE = "approve"
    CANCEL = "cancel"
    SEND = "send"


@dataclass(frozen=True)
class InnerCall:
    to: Address
    value: int
    method: int
    params: bytes = b""


@dataclass(frozen=True)
class Transfer:
    kind: ClassVar[OperationKind] = OperationKind.TRANSFER

    to: Address
    value: int
    method: int = METHOD_SEND
    params: bytes = b""

    def __post_init__(self):
        if self.value < 0:
            raise InvalidInput("value must not be negative")

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        return InnerCall(self.to, self.value, self.method, self.params)


@dataclass(frozen=True)
class WithdrawBalance:
    """Withdraw from a miner; ``amount=None`` means everything available."""

    kind: ClassVar[OperationKind] = OperationKind.WITHDRAW_BALANCE

    miner: Address
    amount: int | None = None

    def __post_init__(self):
        if self.amount is not None and self.amount <= 0:
            raise InvalidInput("withdraw amount must be positive")

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        if self.amount is None:
            raise InvalidInput("withdraw amount is required")
        params = codec.encode_params(
            MinerMethod.WITHDRAW_BALANCE, {"AmountRequested": str(self.amount)}
        )
        return InnerCall(self.miner, 0, MinerMethod.WITHDRAW_BALANCE, params)


@dataclass(frozen=True)
class ChangeOwner:
    kind: ClassVar[OperationKind] = OperationKind.CHANGE_OWNER

    miner: Address
    new_owner: Address

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MinerMethod.CHANGE_OWNER_ADDRESS, {"NewOwner": str(self.new_owner)}
        )
        return InnerCall(self.miner, 0, MinerMethod.CHANGE_OWNER_ADDRESS, params)


@dataclass(frozen=True)
class ChangeWorker:
    """Request a worker key change; ``control_addresses=None`` keeps the current ones."""

    kind: ClassVar[OperationKind] = OperationKind.CHANGE_WORKER

    miner: Address
    new_worker: Address
    control_addresses: tuple[Address, ...] | None = None

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MinerMethod.CHANGE_WORKER_ADDRESS,
            {
                "NewWorker": str(self.new_worker),
                "NewControlAddrs": [str(a) for a in self.control_addresses or ()],
            },
        )
        return InnerCall(self.miner, 0, MinerMethod.CHANGE_WORKER_ADDRESS, params)


@dataclass(frozen=True)
class ConfirmChangeWorker:
    kind: ClassVar[OperationKind] = OperationKind.CONFIRM_CHANGE_WORKER

    miner: Address
    new_worker: Address

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(MinerMethod.CONFIRM_CHANGE_WORKER_ADDRESS, {})
        return InnerCall(self.miner, 0, MinerMethod.CONFIRM_CHANGE_WORKER_ADDRESS, params)


@dataclass(frozen=True)
class SetControlAddresses:
    """Replace the control addresses, keeping the current worker."""

    kind: ClassVar[OperationKind] = OperationKind.SET_CONTROL_ADDRESSES

    miner: Address
    control_addresses: tuple[Address, ...]
    worker: Address | None = None

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        if self.worker is None:
            raise InvalidInput("current worker is not known")
        params = codec.encode_params(
            MinerMethod.CHANGE_WORKER_ADDRESS,
            {
                "NewWorker": str(self.worker),
                "NewControlAddrs": [str(a) for a in self.control_addresses],
            },
        )
        return InnerCall(self.miner, 0, MinerMethod.CHANGE_WORKER_ADDRESS, params)


@dataclass(frozen=True)
class ChangeBeneficiary:
    kind: ClassVar[OperationKind] = OperationKind.CHANGE_BENEFICIARY

    miner: Address
    beneficiary: Address
    quota: int
    expiration: int
    overwrite_pending: bool = False

    def __post_init__(self):
        if self.quota < 0 or self.expiration < 0:
            raise InvalidInput("quota and expiration must not be negative")

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MinerMethod.CHANGE_BENEFICIARY,
            {
                "NewBeneficiary": str(self.beneficiary),
                "NewQuota": str(self.quota),
                "NewExpiration": self.expiration,
            },
        )
        return InnerCall(self.miner, 0, MinerMethod.CHANGE_BENEFICIARY, params)


@dataclass(frozen=True)
class ConfirmChangeBeneficiary:
    """Accept the miner's pending beneficiary term.

    Unset fields are copied from the term the node reports, so the
    confirmation matches what was proposed by the owner.
    """

    kind: ClassVar[OperationKind] = OperationKind.CONFIRM_CHANGE_BENEFICIARY

    miner: Address
    beneficiary: Address | None = None
    quota: int | None = None
    expiration: int | None = None

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        if self.beneficiary is None or self.quota is None or self.expiration is None:
            raise InvalidInput(f"no pending beneficiary term to confirm on {self.miner}")
        params = codec.encode_params(
            MinerMethod.CHANGE_BENEFICIARY,
            {
                "NewBeneficiary": str(self.beneficiary),
                "NewQuota": str(self.quota),
                "NewExpiration": self.expiration,
            },
        )
        return InnerCall(self.miner, 0, MinerMethod.CHANGE_BENEFICIARY, params)


@dataclass(frozen=True)
class CreateMiner:
    kind: ClassVar[OperationKind] = OperationKind.CREATE_MINER

    owner: Address
    worker: Address
    peer_id: bytes
    window_post_proof_type: int = WINDOW_POST_32GIB
    multiaddrs: tuple[bytes, ...] = ()

    def __post_init__(self):
        if not self.peer_id:
            raise InvalidInput("peer id is required")

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            PowerMethod.CREATE_MINER,
            {
                "Owner": str(self.owner),
                "Worker": str(self.worker),
                "WindowPoStProofType": self.window_post_proof_type,
                "Peer": base64.b64encode(self.peer_id).decode(),
                "Multiaddrs": [base64.b64encode(a).decode() for a in self.multiaddrs],
            },
        )
        return InnerCall(STORAGE_POWER_ACTOR, 0, PowerMethod.CREATE_MINER, params)


@dataclass(frozen=True)
class AddSigner:
    kind: ClassVar[OperationKind] = OperationKind.ADD_SIGNER

    signer: Address
    increase_threshold: bool = False

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MultisigMethod.ADD_SIGNER,
            {"Signer": str(self.signer), "Increase": self.increase_threshold},
        )
        return InnerCall(multisig, 0, MultisigMethod.ADD_SIGNER, params)


@dataclass(frozen=True)
class RemoveSigner:
    kind: ClassVar[OperationKind] = OperationKind.REMOVE_SIGNER

    signer: Address
    decrease_threshold: bool = False

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MultisigMethod.REMOVE_SIGNER,
            {"Signer": str(self.signer), "Decrease": self.decrease_threshold},
        )
        return InnerCall(multisig, 0, MultisigMethod.REMOVE_SIGNER, params)


@dataclass(frozen=True)
class SwapSigner:
    kind: ClassVar[OperationKind] = OperationKind.SWAP_SIGNER

    old_signer: Address
    new_signer: Address

    def __post_init__(self):
        if self.old_signer == self.new_signer:
            raise InvalidInput("old and new signer are the same address")

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MultisigMethod.SWAP_SIGNER,
            {"From": str(self.old_signer), "To": str(self.new_signer)},
        )
        return InnerCall(multisig, 0, MultisigMethod.SWAP_SIGNER, params)


@dataclass(frozen=True)
class ChangeThreshold:
    kind: ClassVar[OperationKind] = OperationKind.CHANGE_THRESHOLD

    new_threshold: int

    def __post_init__(self):
        if self.new_threshold < 1:
            raise InvalidInput("threshold must be at least 1")

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MultisigMethod.CHANGE_NUM_APPROVALS_THRESHOLD,
            {"NewThreshold": self.new_threshold},
        )
        return InnerCall(multisig, 0, MultisigMethod.CHANGE_NUM_APPROVALS_THRESHOLD, params)


@dataclass(frozen=True)
class LockBalance:
    kind: ClassVar[OperationKind] = OperationKind.LOCK_BALANCE

    start_epoch: int
    unlock_duration: int
    amount: int

    def __post_init__(self):
        if self.unlock_duration <= 0:
            raise InvalidInput("unlock duration must be positive")
        if self.amount < 0:
            raise InvalidInput("amount must not be negative")

    def inner_call(self, multisig: Address | None, codec: ParamsCodec) -> InnerCall:
        params = codec.encode_params(
            MultisigMethod.LOCK_BALANCE,
            {
                "StartEpoch": self.start_epoch,
                "UnlockDuration": self.unlock_duration,
                "Amount": str(self.amount),
            },
        )
        return InnerCall(multisig, 0, MultisigMethod.LOCK_BALANCE, params)


Operation = Union[
    Transfer,
    WithdrawBalance,
    ChangeOwner,
    ChangeWorker,
    ConfirmChangeWorker,
    SetControlAddresses,
    ChangeBeneficiary,
    ConfirmChangeBeneficiary,
    CreateMiner,
    AddSigner,
    RemoveSigner,
    SwapSigner,
    ChangeThreshold,
    LockBalance,
]


# Operations whose target is the multisig itself; the actor only accepts
# them from its own address, so they cannot be sent directly.
MULTISIG_ONLY_KINDS = frozenset(
    {
        OperationKind.ADD_SIGNER,
        OperationKind.REMOVE_SIGNER,
        OperationKind.SWAP_SIGNER,
        OperationKind.CHANGE_THRESHOLD,
        OperationKind.LOCK_BALANCE,
    }
)


class RecipeRouter:
    """Routes any :data:`Operation` through propose, approve or cancel,
    or sends it directly from a single-key owner or worker account."""

    def __init__(
        self,
        coordinator: MultisigCoordinator,
        node: NodeClient,
        codec: ParamsCodec,
    ):
        self.coordinator = coordinator
        self.node = node
        self.codec = codec
        # Resolution runs for every action so approvers rebuild identical params.
        self._resolvers: dict[OperationKind, Callable[[Any], Any]] = {
            OperationKind.CHANGE_OWNER: self._resolve_change_owner,
            OperationKind.CHANGE_WORKER: self._resolve_change_worker,
            OperationKind.CONFIRM_CHANGE_WORKER: self._resolve_confirm_change_worker,
            OperationKind.SET_CONTROL_ADDRESSES: self._resolve_set_control_addresses,
            OperationKind.CHANGE_BENEFICIARY: self._resolve_change_beneficiary,
            OperationKind.CONFIRM_CHANGE_BENEFICIARY: self._resolve_confirm_change_beneficiary,
        }
        self._prechecks: dict[OperationKind, Callable[[Any], Any]] = {
            OperationKind.WITHDRAW_BALANCE: self._check_withdraw,
            OperationKind.CHANGE_OWNER: self._check_change_owner,
            OperationKind.CHANGE_WORKER: self._check_change_worker,
            OperationKind.CONFIRM_CHANGE_WORKER: self._check_confirm_change_worker,
            OperationKind.CHANGE_BENEFICIARY: self._check_change_beneficiary,
            OperationKind.CONFIRM_CHANGE_BENEFICIARY: self._check_confirm_change_beneficiary,
        }
        self._sender_checks: dict[OperationKind, Callable[[Any, Address], None]] = {
            OperationKind.CONFIRM_CHANGE_BENEFICIARY: self._check_beneficiary_confirmer,
        }

    def _to_id(self, address: Address) -> IDAddress:
        if needs_resolution(address):
            return self.node.lookup_id(address)
        return address  # type: ignore[return-value]

    def _resolve_change_owner(self, op: ChangeOwner) -> ChangeOwner:
        return replace(op, new_owner=self._to_id(op.new_owner))

    def _resolve_change_worker(self, op: ChangeWorker) -> ChangeWorker:
        controls = op.control_addresses
        if controls is None:
            controls = self.node.miner_info(op.miner).control_addresses
        return replace(
            op,
            new_worker=self._to_id(op.new_worker),
            control_addresses=tuple(self._to_id(a) for a in controls),
        )

    def _resolve_confirm_change_worker(self, op: ConfirmChangeWorker) -> ConfirmChangeWorker:
        return replace(op, new_worker=self._to_id(op.new_worker))

    def _resolve_set_control_addresses(self, op: SetControlAddresses) -> SetControlAddresses:
        controls = tuple(self._to_id(a) for a in op.control_addresses)
        if len(set(controls)) != len(controls):
            raise InvalidInput("duplicate control address")
        worker = op.worker or self.node.miner_info(op.miner).worker
        return replace(op, control_addresses=controls, worker=self._to_id(worker))

    def _resolve_change_beneficiary(self, op: ChangeBeneficiary) -> ChangeBeneficiary:
        return replace(op, beneficiary=self._to_id(op.beneficiary))

    def _resolve_confirm_change_beneficiary(
        self, op: ConfirmChangeBeneficiary
    ) -> ConfirmChangeBeneficiary:
        if op.beneficiary is not None:
            op = replace(op, beneficiary=self._to_id(op.beneficiary))
        if None not in (op.beneficiary, op.quota, op.expiration):
            return op
        term = self.node.miner_info(op.miner).pending_beneficiary_term
        if term is None:
            return op
        return replace(
            op,
            beneficiary=op.beneficiary or self._to_id(term.new_beneficiary),
            quota=term.new_quota if op.quota is None else op.quota,
            expiration=term.new_expiration if op.expiration is None else op.expiration,
        )

    def _check_withdraw(self, op: WithdrawBalance) -> WithdrawBalance:
        available = self.node.miner_available_balance(op.miner)
        if op.amount is None:
            if available <= 0:
                raise InvalidInput(f"miner {op.miner} has no available balance")
            return replace(op, amount=available)
        result = AmountValidator.validate_against_balance(op.amount, available)
        if not result.is_valid:
            raise InvalidInput(f"withdraw from {op.miner}: {result.error_message}")
        return op

    def _check_change_owner(self, op: ChangeOwner) -> ChangeOwner:
        info = self.node.miner_info(op.miner)
        if self._to_id(info.owner) == op.new_owner:
            raise InvalidInput(f"{op.new_owner} is already the owner of {op.miner}")
        return op

    def _check_change_worker(self, op: ChangeWorker) -> ChangeWorker:
        info = self.node.miner_info(op.miner)
        if info.new_worker is None:
            if self._to_id(info.worker) == op.new_worker:
                raise InvalidInput(f"{op.new_worker} is already the worker of {op.miner}")
        elif self._to_id(info.new_worker) == op.new_worker:
            raise InvalidInput(
                f"worker change to {op.new_worker} is already pending "
                f"until epoch {info.worker_change_epoch}"
            )
        return op

    def _check_confirm_change_worker(self, op: ConfirmChangeWorker) -> ConfirmChangeWorker:
        info = self.node.miner_info(op.miner)
        if info.new_worker is None:
            raise InvalidInput(f"no worker change is pending on {op.miner}")
        if self._to_id(info.new_worker) != op.new_worker:
            raise InvalidInput(
                f"pending worker is {info.new_worker}, not {op.new_worker}"
            )
        height = self.node.chain_head().height
        if height < info.worker_change_epoch:
            raise InvalidInput(
                f"worker change can be confirmed at epoch {info.worker_change_epoch}, "
                f"current epoch is {height}"
            )
        return op

    def _check_change_beneficiary(self, op: ChangeBeneficiary) -> ChangeBeneficiary:
        info = self.node.miner_info(op.miner)
        owner = self._to_id(info.owner)
        if op.beneficiary == owner and self._to_id(info.beneficiary) == owner:
            raise InvalidInput(f"beneficiary of {op.miner} is already the owner")
        if info.pending_beneficiary_term is not None and not op.overwrite_pending:
            raise InvalidInput(
                f"a beneficiary change to {info.pending_beneficiary_term.new_beneficiary} "
                "is already pending; pass overwrite_pending=True to replace it"
            )
        return op

    def _check_confirm_change_beneficiary(
        self, op: ConfirmChangeBeneficiary
    ) -> ConfirmChangeBeneficiary:
        term = self.node.miner_info(op.miner).pending_beneficiary_term
        if term is None:
            raise InvalidInput(f"no pending beneficiary term found for miner {op.miner}")
        if (
            op.beneficiary != self._to_id(term.new_beneficiary)
            or op.quota != term.new_quota
            or op.expiration != term.new_expiration
        ):
            raise InvalidInput(
                f"pending beneficiary term of {op.miner} is {term.new_beneficiary} "
                f"(quota {term.new_quota}, expiration {term.new_expiration})"
            )
        return op

    def _check_beneficiary_confirmer(
        self, op: ConfirmChangeBeneficiary, sender: Address
    ) -> None:
        info = self.node.miner_info(op.miner)
        term = info.pending_beneficiary_term
        sender_id = self._to_id(sender)
        if sender_id == self._to_id(info.beneficiary):
            if term.approved_by_beneficiary:
                raise InvalidInput("beneficiary change already approved by current beneficiary")
        elif sender_id == self._to_id(term.new_beneficiary):
            if term.approved_by_nominee:
                raise InvalidInput("beneficiary change already approved by new beneficiary")
        else:
            raise InvalidInput(
                f"{sender} is neither the current nor the nominated beneficiary of {op.miner}"
            )

    def _prepare(self, operation: Operation, check: bool) -> Operation:
        resolver = self._resolvers.get(operation.kind)
        if resolver is not None:
            operation = resolver(operation)
        if check:
            precheck = self._prechecks.get(operation.kind)
            if precheck is not None:
                operation = precheck(operation)
        return operation

    def build_direct(self, sender: Address, operation: Operation) -> Message:
        """Build a plain message from ``sender`` carrying ``operation``.

        Used when the miner's owner, worker or beneficiary is a single key
        rather than a multisig. The same checks as a proposal apply.
        """
        if operation.kind in MULTISIG_ONLY_KINDS:
            raise InvalidInput(f"{operation.kind.value} only runs inside a multisig")
        operation = self._prepare(operation, check=True)
        sender_check = self._sender_checks.get(operation.kind)
        if sender_check is not None:
            sender_check(operation, sender)

        call = operation.inner_call(None, self.codec)
        logger.info("Sending %s to %s from %s", operation.kind.value, call.to, sender)
        return Message(
            from_address=sender,
            to=call.to,
            value=call.value,
            method=call.method,
            params=call.params,
        )

    def build_and_route(
        self,
        action: Action,
        multisig: Address | None,
        sender: Address,
        operation: Operation,
        txn_id: int | None = None,
        proposer: Address | None = None,
        blind: bool = False,
    ) -> Message:
        """Build the message carrying ``operation``.

        Args:
            action: Propose a new transaction, approve/cancel ``txn_id``, or
                send the operation directly without a multisig.
            multisig: The multisig account; ignored for ``Action.SEND``.
            sender: The signer sending the message.
            operation: What the pending transaction does.
            txn_id: Required for approve and cancel.
            proposer: Original proposer, required for a hashed approval.
            blind: Approve or cancel by id alone, without the proposal hash.

        Returns:
            An unsigned message ready for the transaction pipeline.
        """
        if action == Action.SEND:
            return self.build_direct(sender, operation)
        if multisig is None:
            raise InvalidInput(f"{action.value} requires a multisig address")

        if action == Action.PROPOSE:
            operation = self._prepare(operation, check=True)
            call = operation.inner_call(multisig, self.codec)
            logger.info("Routing %s proposal to %s", operation.kind.value, multisig)
            return self.coordinator.propose(
                multisig, call.to, call.value, sender, call.method, call.params
            )

        if txn_id is None:
            raise InvalidInput(f"{action.value} requires a transaction id")

        if blind:
            if action == Action.APPROVE:
                return self.coordinator.approve_blind(multisig, txn_id, sender)
            return self.coordinator.cancel_blind(multisig, txn_id, sender)

        operation = self._prepare(operation, check=False)
        call = operation.inner_call(multisig, self.codec)
        request = ProposalRequest(
            to=call.to,
            value=call.value,
            method=call.method,
            params=call.params,
            proposer=proposer,
        )
        logger.info(
            "Routing %s %s of transaction %d on %s",
            operation.kind.value,
            action.value,
            txn_id,
            multisig,
        )
        if action == Action.APPROVE:
            return self.coordinator.approve(multisig, txn_id, sender, request)
        return self.coordinator.cancel(multisig, txn_id, sender, request)

    @staticmethod
    def decode_create_miner_return(
        receipt: Receipt, network: str = MAINNET_PREFIX
    ) -> ExecReturn:
        return ExecReturn.from_cbor(receipt.return_bytes, network=network)
