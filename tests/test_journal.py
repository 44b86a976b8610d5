"""
Unit tests for ExecutionJournal: record on first execution, replay after.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from activities.interface import ActivityError, ActivityFailure, IssuanceActivities
from activities.journal import ExecutionJournal, NonDeterminismError, normalize
from agent.state import make_request
from storage.history import InMemoryHistoryStore, new_record
from tests.conftest import START_TIME, FakeActivities, FakeClock

REQUEST = make_request("example", ["example.com"])


@pytest.fixture()
def history():
    store = InMemoryHistoryStore()
    store.save(new_record("j-1", REQUEST))
    return store


def _journal(store, activities, clock=None) -> ExecutionJournal:
    return ExecutionJournal(store.load("j-1"), store, activities, clock or FakeClock())


class TestLiveCalls:

    def test_call_records_result(self, history):
        activities = FakeActivities(zones=["example.com"])
        journal = _journal(history, activities)

        assert journal.call("get_zones") == ["example.com"]

        events = history.load("j-1")["events"]
        assert events == [{
            "seq": 0,
            "kind": "activity",
            "name": "get_zones",
            "args": [],
            "result": ["example.com"],
            "error": None,
        }]

    def test_tuples_come_back_as_lists(self, history):
        activities = FakeActivities(propagation_seconds=30)
        journal = _journal(history, activities)
        activities.dns_names = ["example.com"]

        results, seconds = journal.call("dns01_authorization", ("https://ca.test/authz/0",))

        assert seconds == 30
        assert isinstance(results, list)
        # the collaborator itself received a list, not the caller's tuple
        assert activities.calls[0][1] == (["https://ca.test/authz/0"],)

    def test_failure_is_recorded_and_raised(self, history):
        activities = FakeActivities(
            failures={"check_dns_challenge": [ActivityError("NXDOMAIN", retryable=True)]}
        )
        journal = _journal(history, activities)

        with pytest.raises(ActivityFailure) as exc_info:
            journal.call("check_dns_challenge", [])

        assert exc_info.value.retryable is True
        assert exc_info.value.activity == "check_dns_challenge"
        assert history.load("j-1")["events"][0]["error"] == {
            "type": "ActivityError",
            "detail": "NXDOMAIN",
            "retryable": True,
        }

    def test_unexpected_exception_is_terminal(self, history):
        activities = FakeActivities(failures={"get_zones": [KeyError("zones")]})
        journal = _journal(history, activities)

        with pytest.raises(ActivityFailure) as exc_info:
            journal.call("get_zones")

        assert exc_info.value.retryable is False
        assert exc_info.value.error_type == "KeyError"


class TestReplay:

    def test_replay_returns_recorded_result_without_calling(self, history):
        _journal(history, FakeActivities(zones=["example.com"])).call("get_zones")

        activities = MagicMock(spec=IssuanceActivities)
        journal = _journal(history, activities)

        assert journal.is_replaying
        assert journal.call("get_zones") == ["example.com"]
        assert not journal.is_replaying
        activities.get_zones.assert_not_called()

    def test_replay_reraises_recorded_failure(self, history):
        failing = FakeActivities(failures={"answer_challenges": [ActivityError("rejected")]})
        with pytest.raises(ActivityFailure):
            _journal(history, failing).call("answer_challenges", [])

        with pytest.raises(ActivityFailure) as exc_info:
            _journal(history, MagicMock(spec=IssuanceActivities)).call("answer_challenges", [])
        assert exc_info.value.detail == "rejected"
        assert exc_info.value.retryable is False

    def test_clock_is_recorded_once(self, history):
        assert _journal(history, FakeActivities(), FakeClock()).current_time() == START_TIME

        later = FakeClock(start=START_TIME + 500)
        assert _journal(history, FakeActivities(), later).current_time() == START_TIME

    def test_mismatched_name(self, history):
        _journal(history, FakeActivities()).call("get_zones")
        with pytest.raises(NonDeterminismError):
            _journal(history, FakeActivities()).call("order", ["example.com"])

    def test_mismatched_kind(self, history):
        _journal(history, FakeActivities()).current_time()
        with pytest.raises(NonDeterminismError):
            _journal(history, FakeActivities()).call("get_zones")

    def test_mismatched_arguments(self, history):
        _journal(history, FakeActivities()).call("dns01_precondition", ["example.com"])
        with pytest.raises(NonDeterminismError):
            _journal(history, FakeActivities()).call("dns01_precondition", ["other.com"])


def test_normalize_matches_json_round_trip():
    assert normalize({"a": (1, 2), "b": None}) == {"a": [1, 2], "b": None}
