"""
Event-sourced step sequencer: the replay/memoization backbone.

Every side-effecting or non-replayable read performed by an orchestration
instance goes through an ``ExecutionJournal``:

  call(name, *args)   — invoke one IssuanceActivities method
  current_time()      — read the wall clock
  (timers)            — see activities/timer.py

Each of these takes the next sequence number.  If the instance's history
already holds an event at that position, the recorded value is returned (or
the recorded failure re-raised) and the collaborator is not touched.
Otherwise the effect runs live and its outcome is appended and saved before
control returns to the orchestrator.

A recorded event that does not match the live request (different kind, name
or arguments) means the orchestrator code or its input changed between runs;
that raises NonDeterminismError instead of silently diverging.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

from activities.interface import ActivityError, ActivityFailure, IssuanceActivities
from storage.history import HistoryStore, InstanceRecord

logger = logging.getLogger(__name__)


class NonDeterminismError(RuntimeError):
    """The live execution diverged from the recorded history."""


def normalize(value: Any) -> Any:
    """Round-trip through JSON so live and replayed values look identical."""
    return json.loads(json.dumps(value))


class ExecutionJournal:
    """
    Records and replays the effects of one orchestration instance.

    Args:
        record:     The instance's history record (loaded or freshly created).
        store:      Where the record is saved after every change.
        activities: Collaborator implementation, only used for live calls.
        clock:      Wall-clock source, only read for live ``current_time`` calls.
    """

    def __init__(
        self,
        record: InstanceRecord,
        store: HistoryStore,
        activities: IssuanceActivities,
        clock,
    ) -> None:
        self.record = record
        self.store = store
        self.activities = activities
        self.clock = clock
        self._cursor = 0

    @property
    def instance_id(self) -> str:
        return self.record["instance_id"]

    @property
    def events(self) -> list:
        return self.record["events"]

    @property
    def is_replaying(self) -> bool:
        """True while the next step is served from history."""
        return self._cursor < len(self.events)

    def ensure_consumed(self) -> None:
        """Raise NonDeterminismError if the run ended before its recorded history did."""
        unused = len(self.events) - self._cursor
        if unused > 0:
            event = self.events[self._cursor]
            raise NonDeterminismError(
                f"{self.instance_id}: run ended with {unused} recorded event(s) unused, "
                f"starting at step {self._cursor} ({event['kind']}:{event['name']})"
            )

    # ── Event primitives (shared with DurableTimer) ───────────────────────

    def next_event(self, kind: str, name: str, args: Any = None) -> tuple[int, Optional[dict]]:
        """
        Claim the next sequence number.

        Returns (seq, recorded_event or None).  Raises NonDeterminismError
        when a recorded event exists but does not describe this request.
        """
        seq = self._cursor
        self._cursor += 1
        if seq >= len(self.events):
            return seq, None

        event = self.events[seq]
        if event["kind"] != kind or event["name"] != name:
            raise NonDeterminismError(
                f"{self.instance_id}: step {seq} was recorded as "
                f"{event['kind']}:{event['name']}, now requested as {kind}:{name}"
            )
        if kind == "activity" and event.get("args") != args:
            raise NonDeterminismError(
                f"{self.instance_id}: step {seq} ({name}) recorded with different arguments"
            )
        return seq, event

    def append(self, event: Dict[str, Any]) -> None:
        if event["seq"] != len(self.events):
            raise NonDeterminismError(
                f"{self.instance_id}: cannot append step {event['seq']} "
                f"after {len(self.events)} recorded events"
            )
        self.events.append(event)
        self.store.save(self.record)

    def amend(self, seq: int, **fields: Any) -> None:
        self.events[seq].update(fields)
        self.store.save(self.record)

    # ── Activities ────────────────────────────────────────────────────────

    def call(self, name: str, *args: Any) -> Any:
        """
        Invoke ``activities.<name>(*args)`` effectively once.

        Raises ActivityFailure (live or replayed) when the activity failed.
        """
        encoded_args = normalize(list(args))
        seq, event = self.next_event("activity", name, encoded_args)

        if event is not None:
            logger.debug("Replaying step %d (%s) for %s", seq, name, self.instance_id)
            if event.get("error"):
                raise ActivityFailure.from_event(name, event["error"])
            return event.get("result")

        method: Callable[..., Any] = getattr(self.activities, name)
        logger.info("Step %d: %s for %s", seq, name, self.instance_id)
        try:
            result = normalize(method(*encoded_args))
        except ActivityError as exc:
            failure = ActivityFailure(
                name, exc.detail, retryable=exc.retryable, error_type=type(exc).__name__
            )
            self._record_failure(seq, name, encoded_args, failure)
            raise failure from exc
        except Exception as exc:
            failure = ActivityFailure(name, str(exc), error_type=type(exc).__name__)
            self._record_failure(seq, name, encoded_args, failure)
            raise failure from exc

        self.append({
            "seq": seq,
            "kind": "activity",
            "name": name,
            "args": encoded_args,
            "result": result,
            "error": None,
        })
        return result

    def _record_failure(self, seq: int, name: str, args: list, failure: ActivityFailure) -> None:
        level = logging.INFO if failure.retryable else logging.WARNING
        logger.log(level, "Step %d: %s", seq, failure)
        self.append({
            "seq": seq,
            "kind": "activity",
            "name": name,
            "args": args,
            "result": None,
            "error": failure.to_event(),
        })

    # ── Clock ─────────────────────────────────────────────────────────────

    def current_time(self) -> float:
        """Unix timestamp, recorded on first read and replayed afterwards."""
        seq, event = self.next_event("clock", "now")
        if event is not None:
            return event["result"]
        now = float(self.clock.now())
        self.append({"seq": seq, "kind": "clock", "name": "now", "result": now})
        return now
