from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace

from filwallet.address import Address
from filwallet.config import ClientConfig
from filwallet.encoding import Cid
from filwallet.errors import AddressMismatch, InvalidInput, QueryFailed, ResolutionFailed
from filwallet.features.monitoring.service import ConfirmationWaiter
from filwallet.keys import KeyPair, Secp256k1Signer, Signature, Signer
from filwallet.message import Message, MessageIntent, MsgLookup, SignedMessage
from filwallet.node import NodeClient

logger = logging.getLogger(__name__)


def build_message(intent: MessageIntent) -> Message:
    """Turn an intent into a message; unset gas and sequence fields become 0."""
    if intent.from_address is None:
        raise InvalidInput("from address is required")
    if intent.to is None:
        raise InvalidInput("to address is required")
    if intent.value < 0:
        raise InvalidInput("value must not be negative")
    if intent.method < 0:
        raise InvalidInput("method must not be negative")

    return Message(
        from_address=intent.from_address,
        to=intent.to,
        value=intent.value,
        method=intent.method,
        params=intent.params or b"",
        gas_limit=intent.gas_limit or 0,
        gas_fee_cap=intent.gas_fee_cap or 0,
        gas_premium=intent.gas_premium or 0,
        sequence=intent.sequence or 0,
    )


class FeeAndSequenceResolver:
    """Fills in gas parameters and the sequence number from the node.

    Fields the caller already set are never overwritten. Failures are not
    retried: the caller gets a :class:`ResolutionFailed` and decides.
    """

    def __init__(self, node: NodeClient, max_fee: int):
        self.node = node
        self.max_fee = max_fee

    def resolve(self, message: Message, sequence_pinned: bool = False) -> Message:
        try:
            if not sequence_pinned:
                message = replace(
                    message, sequence=self.node.next_sequence(message.from_address)
                )

            if message.needs_gas_estimate:
                estimated = self.node.estimate_gas(message, self.max_fee)
                message = replace(
                    message,
                    gas_limit=message.gas_limit or estimated.gas_limit,
                    gas_fee_cap=message.gas_fee_cap or estimated.gas_fee_cap,
                    gas_premium=message.gas_premium or estimated.gas_premium,
                )
        except QueryFailed as e:
            raise ResolutionFailed(
                f"could not complete message: {e.message}", method=e.method
            ) from e

        logger.debug(
            "Resolved message from %s: nonce=%d gas_limit=%d fee_cap=%d premium=%d",
            message.from_address,
            message.sequence,
            message.gas_limit,
            message.gas_fee_cap,
            message.gas_premium,
        )
        return message


class MessageSigner:
    def __init__(self, signer: Signer):
        self.signer = signer

    def sign(self, key_pair: KeyPair, message: Message) -> SignedMessage:
        # ID and key forms of one account are not interchangeable here.
        if key_pair.address != message.from_address:
            raise AddressMismatch(key_pair.address, message.from_address)
        signature = self.signer.sign(
            key_pair.sig_type, key_pair.private_key, message.signing_bytes()
        )
        return SignedMessage(message=message, signature=signature)


class MessageSubmitter:
    def __init__(self, node: NodeClient):
        self.node = node

    def submit(self, signed: SignedMessage) -> Cid:
        message_ref = self.node.push(signed)
        logger.info(
            "Message %s pushed from %s (nonce %d)",
            message_ref,
            signed.message.from_address,
            signed.message.sequence,
        )
        return message_ref


@dataclass(frozen=True)
class TransactionResult:
    message_ref: Cid
    lookup: MsgLookup


class TransactionManager:
    """Build, price, sign, push and optionally wait for a message.

    Each call runs the pipeline sequentially. Only one unconfirmed message
    per sender should be in flight at a time, since sequence numbers are
    read from the node's mempool view.
    """

    def __init__(
        self,
        config: ClientConfig,
        signer: Signer | None = None,
        node: NodeClient | None = None,
        waiter: ConfirmationWaiter | None = None,
    ):
        self.config = config
        self.node = node or NodeClient.from_config(config)
        self.signer = signer or Secp256k1Signer()
        self.resolver = FeeAndSequenceResolver(self.node, config.max_fee)
        self.message_signer = MessageSigner(self.signer)
        self.submitter = MessageSubmitter(self.node)
        self.waiter = waiter or ConfirmationWaiter(self.node, config.confirmation)

    def prepare(self, intent: MessageIntent) -> Message:
        message = build_message(intent)
        return self.resolver.resolve(message, sequence_pinned=intent.sequence is not None)

    def sign(self, key_pair: KeyPair, message: Message) -> SignedMessage:
        return self.message_signer.sign(key_pair, message)

    def submit(self, signed: SignedMessage) -> Cid:
        return self.submitter.submit(signed)

    def send(self, key_pair: KeyPair, intent: MessageIntent) -> Cid:
        message = self.prepare(intent)
        return self.submit(self.sign(key_pair, message))

    def send_message(
        self, key_pair: KeyPair, message: Message, sequence_pinned: bool = False
    ) -> Cid:
        """Resolve, sign and push an already built message (multisig calls)."""
        resolved = self.resolver.resolve(message, sequence_pinned=sequence_pinned)
        return self.submit(self.sign(key_pair, resolved))

    def send_and_wait(
        self,
        key_pair: KeyPair,
        intent: MessageIntent,
        cancel_event: threading.Event | None = None,
    ) -> TransactionResult:
        message_ref = self.send(key_pair, intent)
        lookup = self.waiter.wait(message_ref, cancel_event=cancel_event)
        return TransactionResult(message_ref=message_ref, lookup=lookup)

    def explorer_url(self, message_ref: Cid) -> str:
        return f"{self.config.explorer_url}{message_ref}"

    def balance(self, address: Address) -> int:
        return self.node.balance(address)

    def sign_bytes(self, key_pair: KeyPair, data: bytes) -> Signature:
        return self.signer.sign(key_pair.sig_type, key_pair.private_key, data)

    def verify_bytes(self, signature: Signature, address: Address, data: bytes) -> bool:
        return self.signer.verify(signature, address, data)
