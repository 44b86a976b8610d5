"""
Per-instance runtime handed to every graph node.

Nodes reach collaborators, the clock and timers only through this object,
never directly, so everything they observe is journaled.  Timeouts and
backoff come from the bounds stored in the instance's history, so a resumed
instance keeps the limits it started with even if the configuration changed.
"""
from __future__ import annotations

from activities.journal import ExecutionJournal
from activities.timer import DurableTimer


class IssuanceRuntime:
    def __init__(self, journal: ExecutionJournal, timer: DurableTimer) -> None:
        self.journal = journal
        self.timer = timer

    def call(self, name: str, *args):
        return self.journal.call(name, *args)

    @property
    def instance_id(self) -> str:
        return self.journal.instance_id

    @property
    def bounds(self) -> dict:
        return self.journal.record["bounds"]
