"""
Bounded waits: DNS propagation and CA/collaborator polling.

Both are built on the durable timer, so a restarted instance neither sleeps
again for time that has already passed nor repeats a poll it has recorded.

poll_until
  attempt → done?            → return
          → retryable error  → back off, try again
          → not yet done     → back off, try again
          → other error      → propagate
  Backoff starts at POLL_INITIAL_DELAY_SECONDS and doubles up to
  POLL_MAX_DELAY_SECONDS, both taken from the bounds recorded with the
  instance.  If the next attempt would start after
  ``timeout`` seconds from the first one, the wait fails with
  WaitTimeoutError.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from activities.interface import ActivityFailure
from agent.errors import WaitTimeoutError
from agent.runtime import IssuanceRuntime

logger = logging.getLogger(__name__)


def wait_for_propagation(runtime: IssuanceRuntime, step: str, seconds: Optional[int]) -> int:
    """
    Suspend for the provider's propagation delay.

    ``None`` means the provider did not say; the instance's default applies.
    Returns the number of seconds actually waited for.
    """
    bounds = runtime.bounds
    if seconds is None:
        seconds = bounds["DNS_PROPAGATION_DEFAULT_SECONDS"]
    if seconds < 0:
        raise WaitTimeoutError(step, f"negative propagation delay {seconds}s")
    if seconds > bounds["DNS_PROPAGATION_MAX_SECONDS"]:
        raise WaitTimeoutError(
            step,
            f"propagation delay {seconds}s exceeds maximum "
            f"{bounds['DNS_PROPAGATION_MAX_SECONDS']}s",
        )

    runtime.timer.sleep_for(seconds, reason="dns_propagation")
    return seconds


def poll_until(
    runtime: IssuanceRuntime,
    step: str,
    activity: str,
    *args: Any,
    timeout: int,
    done: Optional[Callable[[Any], bool]] = None,
) -> Any:
    """
    Call ``activity`` until it succeeds (and ``done(result)`` holds, if given).

    Returns the last result.  Raises WaitTimeoutError past ``timeout`` seconds,
    or the underlying ActivityFailure when the failure is not retryable.
    """
    bounds = runtime.bounds
    started = runtime.journal.current_time()
    delay = bounds["POLL_INITIAL_DELAY_SECONDS"]
    attempt = 0

    while True:
        attempt += 1
        try:
            result = runtime.call(activity, *args)
        except ActivityFailure as exc:
            if not exc.retryable:
                raise
            last_reason = exc.detail
        else:
            if done is None or done(result):
                return result
            last_reason = f"not done after attempt {attempt}"

        now = runtime.journal.current_time()
        if now + delay - started > timeout:
            raise WaitTimeoutError(
                step,
                f"{activity} did not complete within {timeout}s "
                f"({attempt} attempt(s); last: {last_reason})",
            )

        logger.info(
            "%s: %s not complete (%s) — retrying in %ds",
            runtime.instance_id, activity, last_reason, delay,
        )
        runtime.timer.sleep_until(now + delay, reason=f"{activity}_backoff")
        delay = min(delay * 2, bounds["POLL_MAX_DELAY_SECONDS"])
