"""
Durable timer and wall-clock sources.

``DurableTimer.sleep_until`` records a timer event *before* suspending and
marks it fired afterwards:

  recorded + fired      → replay: return immediately
  recorded, not fired   → crashed mid-sleep: sleep only for what is left
  not recorded          → live: record, sleep, mark fired

The deadline itself must come from journaled values (``current_time()`` plus
a journaled or constant delay) or replay would compute a different deadline.
"""
from __future__ import annotations

import logging
import time as time_module

from activities.journal import ExecutionJournal

logger = logging.getLogger(__name__)


class SystemClock:
    """Real wall clock; ``sleep`` blocks the calling thread."""

    def now(self) -> float:
        return time_module.time()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time_module.sleep(seconds)


class DurableTimer:
    def __init__(self, journal: ExecutionJournal, clock) -> None:
        self.journal = journal
        self.clock = clock

    def sleep_until(self, deadline: float, reason: str = "timer") -> None:
        """Resume no earlier than ``deadline`` (Unix timestamp)."""
        seq, event = self.journal.next_event("timer", reason)

        if event is None:
            self.journal.append({
                "seq": seq,
                "kind": "timer",
                "name": reason,
                "fire_at": deadline,
                "fired": False,
            })
        elif event.get("fired"):
            logger.debug("Timer %d (%s) already fired", seq, reason)
            return
        else:
            deadline = event["fire_at"]
            logger.info("Resuming interrupted timer %d (%s)", seq, reason)

        remaining = deadline - self.clock.now()
        if remaining > 0:
            logger.info("Waiting %.1f seconds (%s)", remaining, reason)
            self.clock.sleep(remaining)
        self.journal.amend(seq, fired=True)

    def sleep_for(self, seconds: float, reason: str = "timer") -> None:
        """Relative form: deadline = journaled now + seconds."""
        self.sleep_until(self.journal.current_time() + seconds, reason)
