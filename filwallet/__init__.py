"""fil-quick-wallet - a client-side Filecoin wallet core.

This package is organized as:
- address, encoding, keys, message: chain data types
- node: typed Lotus JSON-RPC client
- transaction: build, resolve, sign and push messages
- features.monitoring: confirmation tracking
- features.multisig: multisig coordination and recipes
- shared: logging, transport and validation utilities
"""

from filwallet.address import (
    Address,
    IDAddress,
    RobustAddress,
    needs_resolution,
    parse_address,
)
from filwallet.config import ClientConfig, ConfirmationConfig
from filwallet.errors import (
    ActorExecutionFailed,
    AddressMismatch,
    ConfirmationCancelled,
    ConfirmationIncomplete,
    ConfirmationTimeout,
    InvalidInput,
    ProposalMismatch,
    QueryFailed,
    ResolutionFailed,
    SubmissionFailed,
    WalletError,
)
from filwallet.keys import KeyPair, Secp256k1Signer, Signature, SigType
from filwallet.message import Message, MessageIntent, MsgLookup, SignedMessage
from filwallet.node import NodeClient
from filwallet.transaction import TransactionManager, TransactionResult, build_message
from filwallet.shared import (
    AddressValidator,
    AmountValidator,
    NetworkError,
    NetworkErrorType,
    TimeoutConfig,
    ValidationResult,
)

__version__ = "0.1.0"
__all__ = [
    "Address",
    "IDAddress",
    "RobustAddress",
    "needs_resolution",
    "parse_address",
    "ClientConfig",
    "ConfirmationConfig",
    "TimeoutConfig",
    "KeyPair",
    "Secp256k1Signer",
    "Signature",
    "SigType",
    "Message",
    "MessageIntent",
    "MsgLookup",
    "SignedMessage",
    "NodeClient",
    "TransactionManager",
    "TransactionResult",
    "build_message",
    "NetworkError",
    "NetworkErrorType",
    "AddressValidator",
    "AmountValidator",
    "ValidationResult",
    "WalletError",
    "InvalidInput",
    "QueryFailed",
    "ResolutionFailed",
    "AddressMismatch",
    "SubmissionFailed",
    "ConfirmationIncomplete",
    "ConfirmationTimeout",
    "ConfirmationCancelled",
    "ActorExecutionFailed",
    "ProposalMismatch",
]
