"""Error taxonomy shared by every stage of the send pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from filwallet.shared.logging import format_error_for_user

if TYPE_CHECKING:
    from filwallet.encoding import Cid
    from filwallet.message import MsgLookup


class WalletError(Exception):
    """Base class for all errors raised by filwallet."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    @property
    def user_message(self) -> str:
        return format_error_for_user(self.message)


class InvalidInput(WalletError):
    """Malformed address, amount or method, caught before any network call."""


class QueryFailed(WalletError):
    """A node query failed at the transport or RPC level."""

    def __init__(self, message: str, method: str | None = None):
        super().__init__(message)
        self.method = method


class ResolutionFailed(QueryFailed):
    """Gas estimation or nonce lookup failed while completing a message."""


class AddressMismatch(WalletError):
    def __init__(self, key_address: Any, from_address: Any):
        super().__init__(
            f"key address {key_address} does not match the from address {from_address}"
        )
        self.key_address = key_address
        self.from_address = from_address


class SubmissionFailed(WalletError):
    """The node refused the signed message (bad signature, stale nonce, ...)."""

    def __init__(self, message: str, node_message: str | None = None):
        super().__init__(message)
        self.node_message = node_message


class ConfirmationIncomplete(WalletError):
    """Waiting stopped before the message was seen on chain.

    The message may still be included later; callers should re-check
    ``message_ref`` rather than assume failure.
    """

    def __init__(self, message: str, message_ref: Cid, attempts: int):
        super().__init__(message)
        self.message_ref = message_ref
        self.attempts = attempts


class ConfirmationTimeout(ConfirmationIncomplete):
    pass


class ConfirmationCancelled(ConfirmationIncomplete):
    pass


class ActorExecutionFailed(WalletError):
    """The message was included but its receipt carries a nonzero exit code."""

    def __init__(
        self,
        exit_code: int,
        message_ref: Cid,
        lookup: MsgLookup | None = None,
    ):
        super().__init__(f"message {message_ref} exited with exit code {exit_code}")
        self.exit_code = exit_code
        self.message_ref = message_ref
        self.lookup = lookup


class ProposalMismatch(WalletError):
    """The reconstructed proposal hash does not match the pending transaction."""

    def __init__(self, message: str, txn_id: int, differences: list[str] | None = None):
        super().__init__(message)
        self.txn_id = txn_id
        self.differences = differences or []
