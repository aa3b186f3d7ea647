from unittest.mock import MagicMock

import pytest

from filwallet.address import IDAddress
from filwallet.config import ClientConfig, ConfirmationConfig
from filwallet.encoding import Cid, dumps
from filwallet.keys import Secp256k1Signer
from filwallet.message import MsgLookup, Receipt
from filwallet.node import NodeClient

SENDER_PRIVATE_KEY = bytes(range(1, 33))
APPROVER_PRIVATE_KEY = bytes(range(33, 65))


def make_cid(seed: bytes = b"message") -> Cid:
    return Cid.for_cbor(dumps(seed))


def make_lookup(
    message_ref: Cid,
    exit_code: int = 0,
    return_bytes: bytes = b"",
    height: int = 1000,
) -> MsgLookup:
    return MsgLookup(
        message_ref=message_ref,
        receipt=Receipt(exit_code=exit_code, return_bytes=return_bytes, gas_used=1234),
        height=height,
    )


@pytest.fixture
def sender_key():
    """secp256k1 key pair of the account sending messages"""
    return Secp256k1Signer.key_pair(SENDER_PRIVATE_KEY)


@pytest.fixture
def approver_key():
    return Secp256k1Signer.key_pair(APPROVER_PRIVATE_KEY)


@pytest.fixture
def multisig_address():
    return IDAddress(2000)


@pytest.fixture
def node():
    """Scripted stand-in for a Lotus node; configure return values per test."""
    return MagicMock(spec=NodeClient)


@pytest.fixture
def client_config():
    return ClientConfig(
        rpc_addr="http://127.0.0.1:1234/rpc/v1",
        confirmation=ConfirmationConfig(poll_interval=0, max_attempts=5),
    )


@pytest.fixture
def cid_factory():
    return make_cid


@pytest.fixture
def lookup_factory():
    return make_lookup
