"""
Orchestration failure taxonomy.

Collaborator failures arrive as ActivityFailure (activities/interface.py).
Each graph node runs under ``step_guard`` which re-raises anything it does
not already classify as an OrchestrationError naming that node, so the run
outcome always says which step failed and why.

NonDeterminismError is deliberately left alone: it signals a code or input
change between runs, not a failed issuance.
"""
from __future__ import annotations

import functools
from typing import Callable

from activities.journal import NonDeterminismError


class OrchestrationError(Exception):
    """A step failed; the run is over."""

    def __init__(self, step: str, reason: str) -> None:
        self.step = step
        self.reason = reason
        super().__init__(f"{step}: {reason}")


class OrderInvalidError(OrchestrationError):
    """The CA moved the order to ``invalid``."""


class OrderStateError(OrchestrationError):
    """The order status went backwards or is unknown."""


class WaitTimeoutError(OrchestrationError):
    """A bounded wait ran past its configured maximum."""


class ChallengeCountMismatchError(OrchestrationError):
    """Challenge results do not line up with the order's authorizations."""


def step_guard(step: str) -> Callable:
    """Decorator for graph nodes: tag every failure with the node name."""

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except (OrchestrationError, NonDeterminismError):
                raise
            except Exception as exc:
                raise OrchestrationError(step, str(exc)) from exc

        return wrapper

    return decorator
