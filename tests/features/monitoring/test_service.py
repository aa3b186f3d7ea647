"""Tests for the confirmation waiter."""

import threading

import pytest

from filwallet.actors import ProposeReturn
from filwallet.config import ConfirmationConfig
from filwallet.encoding import dumps
from filwallet.errors import (
    ActorExecutionFailed,
    ConfirmationCancelled,
    ConfirmationIncomplete,
    ConfirmationTimeout,
    InvalidInput,
    QueryFailed,
)
from filwallet.features.monitoring.service import (
    ConfirmationWaiter,
    ProposalResult,
    WaitState,
)


@pytest.fixture
def message_ref(cid_factory):
    return cid_factory(b"pushed")


def _waiter(node, max_attempts=5, clock=None):
    config = ConfirmationConfig(poll_interval=0, max_attempts=max_attempts)
    if clock is None:
        return ConfirmationWaiter(node, config)
    return ConfirmationWaiter(node, config, clock=clock)


class TestConfirmationConfig:
    def test_default_config(self):
        config = ConfirmationConfig()
        assert config.poll_interval == 30.0
        assert config.max_attempts == 60

    def test_rejects_zero_attempts(self):
        with pytest.raises(InvalidInput):
            ConfirmationConfig(max_attempts=0)

    def test_rejects_negative_interval(self):
        with pytest.raises(InvalidInput):
            ConfirmationConfig(poll_interval=-1)


@pytest.mark.unit
class TestConfirmationWaiter:
    def test_found_after_empty_polls(self, node, message_ref, lookup_factory):
        node.search_message.side_effect = [None, None, None, lookup_factory(message_ref)]

        lookup = _waiter(node).wait(message_ref)

        assert lookup.message_ref == message_ref
        assert node.search_message.call_count == 4

    def test_one_query_per_attempt(self, node, message_ref, lookup_factory):
        node.search_message.return_value = lookup_factory(message_ref)
        _waiter(node).wait(message_ref)
        node.search_message.assert_called_once_with(message_ref)

    def test_timeout_after_exact_attempt_budget(self, node, message_ref):
        node.search_message.return_value = None

        with pytest.raises(ConfirmationTimeout) as exc_info:
            _waiter(node, max_attempts=3).wait(message_ref)

        assert node.search_message.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.message_ref == message_ref
        assert "may still land" in str(exc_info.value)
        assert isinstance(exc_info.value, ConfirmationIncomplete)

    def test_nonzero_exit_code_is_failure(self, node, message_ref, lookup_factory):
        lookup = lookup_factory(message_ref, exit_code=7)
        node.search_message.return_value = lookup

        with pytest.raises(ActorExecutionFailed) as exc_info:
            _waiter(node).wait(message_ref)

        assert exc_info.value.exit_code == 7
        assert exc_info.value.lookup is lookup
        assert exc_info.value.message_ref == message_ref

    def test_query_failure_propagates_without_retry(self, node, message_ref):
        node.search_message.side_effect = QueryFailed("node down", method="Filecoin.StateSearchMsg")

        with pytest.raises(QueryFailed):
            _waiter(node).wait(message_ref)

        assert node.search_message.call_count == 1

    def test_cancel_before_first_poll(self, node, message_ref):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ConfirmationCancelled) as exc_info:
            _waiter(node).wait(message_ref, cancel_event=cancel)

        assert exc_info.value.attempts == 0
        node.search_message.assert_not_called()

    def test_cancel_between_polls(self, node, message_ref):
        cancel = threading.Event()

        def search(ref):
            cancel.set()
            return None

        node.search_message.side_effect = search

        with pytest.raises(ConfirmationCancelled) as exc_info:
            _waiter(node).wait(message_ref, cancel_event=cancel)

        assert exc_info.value.attempts == 1
        assert not isinstance(exc_info.value, ConfirmationTimeout)

    def test_deadline_in_the_past(self, node, message_ref):
        waiter = _waiter(node, clock=lambda: 100.0)
        with pytest.raises(ConfirmationCancelled):
            waiter.wait(message_ref, deadline=50.0)
        node.search_message.assert_not_called()

    def test_deadline_reached_while_waiting(self, node, message_ref):
        times = iter([0.0, 0.0, 10.0, 10.0])
        node.search_message.return_value = None
        waiter = _waiter(node, clock=lambda: next(times))

        with pytest.raises(ConfirmationCancelled) as exc_info:
            waiter.wait(message_ref, deadline=5.0)

        assert exc_info.value.attempts == 1

    def test_status_updates(self, node, message_ref, lookup_factory):
        node.search_message.side_effect = [None, lookup_factory(message_ref)]
        updates = []

        _waiter(node).wait(message_ref, on_status_update=lambda s, n: updates.append((s, n)))

        assert updates == [(WaitState.WAITING, 1), (WaitState.FOUND, 2)]

    def test_timeout_status_update(self, node, message_ref):
        node.search_message.return_value = None
        updates = []

        with pytest.raises(ConfirmationTimeout):
            _waiter(node, max_attempts=1).wait(
                message_ref, on_status_update=lambda s, n: updates.append(s)
            )

        assert updates == [WaitState.WAITING, WaitState.TIMED_OUT]


@pytest.mark.unit
class TestWaitForProposal:
    def test_decodes_transaction_id(self, node, message_ref, lookup_factory):
        ret = dumps([3, False, 0, b""])
        node.search_message.return_value = lookup_factory(message_ref, return_bytes=ret)

        result = _waiter(node).wait_for_proposal(message_ref)

        assert isinstance(result, ProposalResult)
        assert result.txn_id == 3
        assert result.applied is False
        assert result.exit_code == 0

    def test_applied_proposal(self, node, message_ref, lookup_factory):
        ret = dumps([0, True, 0, b"\x01"])
        node.search_message.return_value = lookup_factory(message_ref, return_bytes=ret)
        result = _waiter(node).wait_for_proposal(message_ref)
        assert result.applied is True
        assert result.ret == b"\x01"

    def test_non_proposal_return(self, node, message_ref, lookup_factory):
        node.search_message.return_value = lookup_factory(message_ref, return_bytes=b"")
        with pytest.raises(InvalidInput):
            _waiter(node).wait_for_proposal(message_ref)

    def test_propose_return_decoder(self):
        decoded = ProposeReturn.from_cbor(dumps([5, True, 16, None]))
        assert decoded.txn_id == 5
        assert decoded.exit_code == 16
        assert decoded.ret == b""
