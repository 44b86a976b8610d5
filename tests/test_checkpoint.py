"""
Tests for the compiled LangGraph: topology, MemorySaver checkpoints, and
interrupt/resume on top of the event history.

No CA required — collaborators are FakeActivities.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from activities.interface import IssuanceActivities
from activities.journal import ExecutionJournal
from activities.timer import DurableTimer
from agent.graph import NODES, build_graph, initial_state
from agent.runtime import IssuanceRuntime
from agent.state import make_request
from storage.history import new_record
from tests.conftest import FakeActivities

REQUEST = make_request("foo", ["foo.org"])
CONFIG = {"configurable": {"thread_id": "cp-1"}}


def _runtime(store, activities, clock, settings) -> IssuanceRuntime:
    record = store.load("cp-1") or new_record("cp-1", REQUEST, settings.wait_bounds())
    store.save(record)
    journal = ExecutionJournal(record, store, activities, clock)
    return IssuanceRuntime(journal, DurableTimer(journal, clock))


@pytest.fixture()
def graph_for(store, clock, test_settings):
    def _build(activities):
        runtime = _runtime(store, activities, clock, test_settings)
        return build_graph(runtime, use_checkpointing=True)

    return _build


class TestBasicCheckpointing:

    def test_complete_run_creates_checkpoint(self, graph_for):
        graph = graph_for(FakeActivities(zones=[]))

        graph.invoke(initial_state(REQUEST), config=CONFIG)

        snapshot = graph.get_state(CONFIG)
        assert snapshot.next == ()
        assert snapshot.values["completed"] is True
        assert snapshot.values["challenge_type"] == "http-01"
        assert snapshot.values["certificate"]["name"] == "foo"

    def test_history_walks_http_branch_only(self, graph_for):
        graph = graph_for(FakeActivities(zones=[]))
        graph.invoke(initial_state(REQUEST), config=CONFIG)

        visited = set()
        for snapshot in graph.get_state_history(CONFIG):
            visited.update(snapshot.next)

        assert {"http01_authorization", "check_http_challenge", "cleanup_challenge"} <= visited
        assert not {"dns01_authorization", "await_propagation", "wait_until_valid"} & visited

    def test_request_is_never_mutated(self, graph_for):
        graph = graph_for(FakeActivities(zones=[]))
        graph.invoke(initial_state(REQUEST), config=CONFIG)

        for snapshot in graph.get_state_history(CONFIG):
            if snapshot.values:
                assert snapshot.values["request"] == REQUEST

    def test_every_node_is_registered(self, graph_for):
        graph = graph_for(FakeActivities(zones=[]))
        assert set(NODES) <= set(graph.get_graph().nodes)


class TestInterruptResume:

    def test_interrupt_before_finalize(self, graph_for):
        activities = FakeActivities(zones=[])
        graph = graph_for(activities)

        for _ in graph.stream(initial_state(REQUEST), config=CONFIG, interrupt_before=["finalize_order"]):
            pass

        snapshot = graph.get_state(CONFIG)
        assert snapshot.next == ("finalize_order",)
        assert snapshot.values["order"]["status"] == "ready"
        assert "finalize_order" not in activities.call_names

    def test_resume_after_interrupt_completes(self, graph_for):
        activities = FakeActivities(zones=[])
        graph = graph_for(activities)

        for _ in graph.stream(initial_state(REQUEST), config=CONFIG, interrupt_before=["finalize_order"]):
            pass
        for _ in graph.stream(None, config=CONFIG):
            pass

        assert graph.get_state(CONFIG).next == ()
        assert activities.call_names[-3:] == [
            "finalize_order", "merge_certificate", "send_completed_event",
        ]

    def test_fresh_graph_replays_interrupted_instance(self, graph_for, store):
        # First "process": stop before finalize
        graph = graph_for(FakeActivities(zones=[]))
        for _ in graph.stream(initial_state(REQUEST), config=CONFIG, interrupt_before=["finalize_order"]):
            pass

        # Second "process": new graph, no checkpoint, same history
        activities = FakeActivities(zones=[])
        graph_for(activities).invoke(initial_state(REQUEST), config={"configurable": {"thread_id": "cp-2"}})

        assert activities.call_names == ["finalize_order", "merge_certificate", "send_completed_event"]


def test_run_without_checkpointer(store, clock, test_settings):
    runtime = _runtime(store, MagicMock(spec=IssuanceActivities), clock, test_settings)
    graph = build_graph(runtime)
    assert graph.checkpointer is None
