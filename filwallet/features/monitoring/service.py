"""Confirmation tracking for pushed messages.

The waiter polls ``StateSearchMsg`` until the message shows up on chain,
the attempt budget runs out, or the caller cancels. Running out of
attempts does not mean the message failed: it may still be included
later, which is why timeouts and cancellations raise
:class:`~filwallet.errors.ConfirmationIncomplete` subclasses rather than
a failure.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from filwallet.actors import ProposeReturn
from filwallet.config import ConfirmationConfig
from filwallet.encoding import Cid
from filwallet.errors import (
    ActorExecutionFailed,
    ConfirmationCancelled,
    ConfirmationTimeout,
    InvalidInput,
)
from filwallet.message import MsgLookup
from filwallet.node import NodeClient
from filwallet.shared.logging import get_logger

logger = get_logger(__name__)


class WaitState(Enum):
    WAITING = "waiting"
    FOUND = "found"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProposalResult:
    message_ref: Cid
    lookup: MsgLookup
    txn_id: int
    applied: bool
    exit_code: int
    ret: bytes


class ConfirmationWaiter:
    def __init__(
        self,
        node: NodeClient,
        config: ConfirmationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.node = node
        self.config = config or ConfirmationConfig()
        self._clock = clock

    def wait(
        self,
        message_ref: Cid,
        cancel_event: threading.Event | None = None,
        deadline: float | None = None,
        on_status_update: Callable[[WaitState, int], None] | None = None,
    ) -> MsgLookup:
        """Block until ``message_ref`` is on chain.

        Args:
            message_ref: CID returned by the push.
            cancel_event: Setting it stops the wait at the next wake-up.
            deadline: Absolute ``time.monotonic()`` value after which waiting stops.
            on_status_update: Called with the state and attempt count after each poll.

        Returns:
            The lookup of a message that executed with exit code 0.

        Raises:
            ActorExecutionFailed: The message was included with a nonzero exit code.
            ConfirmationTimeout: ``max_attempts`` polls found nothing.
            ConfirmationCancelled: The event was set or the deadline passed.
            QueryFailed: A poll failed; not retried.
        """
        event = cancel_event or threading.Event()
        log = logger.with_context(message=str(message_ref))
        attempts = 0

        def notify(state: WaitState) -> None:
            if on_status_update:
                on_status_update(state, attempts)

        def cancelled() -> ConfirmationCancelled:
            notify(WaitState.CANCELLED)
            log.info("Stopped waiting after %d attempts", attempts)
            return ConfirmationCancelled(
                f"stopped waiting for {message_ref} after {attempts} attempts; "
                "it may still land on chain",
                message_ref,
                attempts,
            )

        while attempts < self.config.max_attempts:
            interval = self.config.poll_interval
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise cancelled()
                interval = min(interval, remaining)

            if event.wait(interval):
                raise cancelled()
            if deadline is not None and self._clock() >= deadline:
                raise cancelled()

            lookup = self.node.search_message(message_ref)
            attempts += 1

            if lookup is None:
                log.debug("Not yet on chain (attempt %d)", attempts)
                notify(WaitState.WAITING)
                continue

            notify(WaitState.FOUND)
            if not lookup.receipt.succeeded:
                log.warning(
                    "Included at height %d with exit code %d",
                    lookup.height,
                    lookup.receipt.exit_code,
                )
                raise ActorExecutionFailed(lookup.receipt.exit_code, message_ref, lookup)

            log.info("Included at height %d", lookup.height)
            return lookup

        notify(WaitState.TIMED_OUT)
        log.warning("Not found after %d attempts", attempts)
        raise ConfirmationTimeout(
            f"message {message_ref} was not confirmed after {attempts} attempts; "
            "it may still land on chain",
            message_ref,
            attempts,
        )

    def wait_for_proposal(
        self,
        message_ref: Cid,
        cancel_event: threading.Event | None = None,
        deadline: float | None = None,
    ) -> ProposalResult:
        """Wait for a multisig propose and decode the transaction id it created."""
        lookup = self.wait(message_ref, cancel_event=cancel_event, deadline=deadline)
        try:
            ret = ProposeReturn.from_cbor(lookup.receipt.return_bytes)
        except InvalidInput:
            raise InvalidInput(
                f"message {message_ref} did not return a multisig proposal"
            ) from None
        return ProposalResult(
            message_ref=message_ref,
            lookup=lookup,
            txn_id=ret.txn_id,
            applied=ret.applied,
            exit_code=ret.exit_code,
            ret=ret.ret,
        )
