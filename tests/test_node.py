"""Unit tests for the typed Lotus node client."""

import base64
from unittest.mock import Mock

import pytest

from filwallet.address import IDAddress
from filwallet.encoding import Cid, dumps
from filwallet.errors import QueryFailed, SubmissionFailed
from filwallet.keys import Signature, SigType
from filwallet.message import Message, SignedMessage
from filwallet.node import NodeClient
from filwallet.shared.network import NetworkError, NetworkErrorType, RpcClient


@pytest.fixture
def rpc():
    return Mock(spec=RpcClient)


@pytest.fixture
def client(rpc):
    return NodeClient(rpc)


@pytest.fixture
def cid():
    return Cid.for_cbor(dumps("node-test"))


@pytest.fixture
def message():
    return Message(from_address=IDAddress(1001), to=IDAddress(1002), value=5)


def _rpc_error(text="boom"):
    return NetworkError(error_type=NetworkErrorType.RPC_ERROR, message=text)


@pytest.mark.unit
class TestQueries:
    def test_chain_head(self, client, rpc, cid):
        rpc.call.return_value = {"Cids": [cid.to_json()], "Height": 3000, "Blocks": []}
        head = client.chain_head()
        assert head.height == 3000
        assert head.cids == (cid,)
        rpc.call.assert_called_once_with("Filecoin.ChainHead", [])

    def test_balance(self, client, rpc):
        rpc.call.return_value = "1500000000000000000"
        assert client.balance(IDAddress(1001)) == 1_500_000_000_000_000_000
        rpc.call.assert_called_once_with("Filecoin.WalletBalance", ["f01001"])

    def test_next_sequence(self, client, rpc):
        rpc.call.return_value = 12
        assert client.next_sequence(IDAddress(1001)) == 12

    def test_estimate_gas(self, client, rpc, message):
        estimated = {**message.to_json(), "GasLimit": 600000, "GasFeeCap": "101", "GasPremium": "99"}
        rpc.call.return_value = estimated

        result = client.estimate_gas(message, max_fee=7 * 10**16)

        assert result.gas_limit == 600000
        assert result.gas_fee_cap == 101
        assert result.gas_premium == 99
        method, params = rpc.call.call_args.args
        assert method == "Filecoin.GasEstimateMessageGas"
        assert params[1] == {"MaxFee": "70000000000000000"}

    def test_lookup_id(self, client, rpc):
        rpc.call.return_value = "f01234"
        assert client.lookup_id(IDAddress(1234)) == IDAddress(1234)

    def test_lookup_id_rejects_robust_result(self, client, rpc):
        rpc.call.return_value = "f2" + "a" * 39
        with pytest.raises(QueryFailed):
            client.lookup_id(IDAddress(1))

    def test_actor_state(self, client, rpc, cid):
        rpc.call.return_value = {
            "Code": cid.to_json(),
            "Head": cid.to_json(),
            "Nonce": 4,
            "Balance": "100",
        }
        state = client.actor_state(IDAddress(1001))
        assert state.sequence == 4
        assert state.balance == 100
        assert state.code == cid

    def test_miner_info_without_pending_changes(self, client, rpc):
        rpc.call.return_value = {
            "Owner": "f0100",
            "Worker": "f0101",
            "NewWorker": "<empty>",
            "WorkerChangeEpoch": -1,
            "ControlAddresses": ["f0102"],
            "Beneficiary": "f0100",
            "PendingBeneficiaryTerm": None,
        }
        info = client.miner_info(IDAddress(5000))
        assert info.owner == IDAddress(100)
        assert info.worker == IDAddress(101)
        assert info.new_worker is None
        assert info.has_pending_worker_change is False
        assert info.control_addresses == (IDAddress(102),)
        assert info.pending_beneficiary_term is None

    def test_miner_info_with_pending_changes(self, client, rpc):
        rpc.call.return_value = {
            "Owner": "f0100",
            "Worker": "f0101",
            "NewWorker": "f0103",
            "WorkerChangeEpoch": 9000,
            "ControlAddresses": None,
            "Beneficiary": "f0100",
            "PendingBeneficiaryTerm": {
                "NewBeneficiary": "f0104",
                "NewQuota": "1000",
                "NewExpiration": 20000,
                "ApprovedByBeneficiary": False,
                "ApprovedByNominee": True,
            },
        }
        info = client.miner_info(IDAddress(5000))
        assert info.new_worker == IDAddress(103)
        assert info.worker_change_epoch == 9000
        assert info.control_addresses == ()
        assert info.pending_beneficiary_term.new_beneficiary == IDAddress(104)
        assert info.pending_beneficiary_term.new_quota == 1000

    def test_miner_info_defaults_beneficiary_to_owner(self, client, rpc):
        rpc.call.return_value = {"Owner": "f0100", "Worker": "f0101"}
        assert client.miner_info(IDAddress(5000)).beneficiary == IDAddress(100)

    def test_pending_transactions(self, client, rpc):
        rpc.call.return_value = [
            {
                "ID": 3,
                "To": "f0200",
                "Value": "10",
                "Method": 0,
                "Params": None,
                "Approved": ["f0300"],
            }
        ]
        [txn] = client.pending_transactions(IDAddress(2000))
        assert txn.id == 3
        assert txn.to == IDAddress(200)
        assert txn.value == 10
        assert txn.params == b""
        assert txn.approved == (IDAddress(300),)

    def test_pending_transactions_empty(self, client, rpc):
        rpc.call.return_value = None
        assert client.pending_transactions(IDAddress(2000)) == []

    def test_read_state(self, client, rpc, cid):
        rpc.call.return_value = {
            "Balance": "50",
            "Code": cid.to_json(),
            "State": {"NumApprovalsThreshold": 2},
        }
        result = client.read_state(IDAddress(2000))
        assert result.balance == 50
        assert result.state["NumApprovalsThreshold"] == 2

    def test_actor_code_cids(self, client, rpc, cid):
        rpc.call.return_value = {"multisig": cid.to_json()}
        assert client.actor_code_cids(21) == {"multisig": cid}
        rpc.call.assert_called_once_with("Filecoin.StateActorCodeCIDs", [21])

    def test_malformed_response_raises_query_failed(self, client, rpc):
        rpc.call.return_value = {"Height": "not-a-number"}
        with pytest.raises(QueryFailed) as exc_info:
            client.chain_head()
        assert exc_info.value.method == "Filecoin.ChainHead"

    def test_transport_error_raises_query_failed(self, client, rpc):
        rpc.call.side_effect = _rpc_error("actor not found")
        with pytest.raises(QueryFailed) as exc_info:
            client.account_key(IDAddress(1001))
        assert "actor not found" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, NetworkError)


@pytest.mark.unit
class TestMessageSearch:
    def test_not_found_returns_none(self, client, rpc, cid):
        rpc.call.return_value = None
        assert client.search_message(cid) is None
        method, params = rpc.call.call_args.args
        assert method == "Filecoin.StateSearchMsg"
        assert params[1] == cid.to_json()
        assert params[3] is True

    def test_found_decodes_receipt(self, client, rpc, cid):
        rpc.call.return_value = {
            "Message": cid.to_json(),
            "Receipt": {
                "ExitCode": 0,
                "Return": base64.b64encode(b"\x82\x00\x01").decode(),
                "GasUsed": 4000,
            },
            "Height": 1234,
        }
        lookup = client.search_message(cid)
        assert lookup.message_ref == cid
        assert lookup.height == 1234
        assert lookup.receipt.exit_code == 0
        assert lookup.receipt.return_bytes == b"\x82\x00\x01"
        assert lookup.receipt.gas_used == 4000

    def test_wait_message(self, client, rpc, cid):
        rpc.call.return_value = {
            "Message": cid.to_json(),
            "Receipt": {"ExitCode": 7, "Return": None, "GasUsed": 1},
            "Height": 5,
        }
        lookup = client.wait_message(cid, confidence=3)
        assert lookup.receipt.exit_code == 7
        assert rpc.call.call_args.args[1][1] == 3

    def test_wait_message_empty_result(self, client, rpc, cid):
        rpc.call.return_value = None
        assert client.wait_message(cid) is None
        method, params = rpc.call.call_args.args
        assert method == "Filecoin.StateWaitMsg"
        assert params[0] == cid.to_json()


@pytest.mark.unit
class TestPush:
    @pytest.fixture
    def signed(self, message):
        return SignedMessage(message, Signature(SigType.SECP256K1, b"\x01" * 65))

    def test_returns_cid(self, client, rpc, signed, cid):
        rpc.call.return_value = cid.to_json()
        assert client.push(signed) == cid
        rpc.call.assert_called_once_with("Filecoin.MpoolPush", [signed.to_json()])

    def test_rejection_raises_submission_failed(self, client, rpc, signed):
        rpc.call.side_effect = _rpc_error("minimum expected nonce is 5")
        with pytest.raises(SubmissionFailed) as exc_info:
            client.push(signed)
        assert exc_info.value.node_message == "minimum expected nonce is 5"

    def test_missing_cid_raises_submission_failed(self, client, rpc, signed):
        rpc.call.return_value = None
        with pytest.raises(SubmissionFailed):
            client.push(signed)


@pytest.mark.unit
def test_from_config_forwards_token(client_config):
    client_config.token = "secret"
    node = NodeClient.from_config(client_config)
    assert node.rpc.token == "secret"
    assert node.rpc.rpc_addr == client_config.rpc_addr
