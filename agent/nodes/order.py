"""
create_order node plus the order-status bookkeeping shared by the
finalizer and challenge nodes.

Status may only move forward (pending → ready → processing → valid).
``invalid`` is a CA rejection and ends the run.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from agent.errors import OrderInvalidError, OrderStateError, step_guard
from agent.runtime import IssuanceRuntime
from agent.state import ORDER_STATUSES, STATUS_RANK, AcmeOrder, IssuanceState

logger = logging.getLogger(__name__)


def ensure_progress(step: str, previous: Optional[AcmeOrder], current: AcmeOrder) -> AcmeOrder:
    """Validate a freshly returned order against the one it replaces."""
    status = current.get("status")
    if status == "invalid":
        raise OrderInvalidError(step, f"order {current.get('order_url', '?')} is invalid")
    if status not in ORDER_STATUSES:
        raise OrderStateError(step, f"unknown order status {status!r}")
    if previous is not None:
        before = previous.get("status")
        if before in STATUS_RANK and STATUS_RANK[status] < STATUS_RANK[before]:
            raise OrderStateError(step, f"order status went back from {before} to {status}")
    return current


def order_reached(step: str, previous: AcmeOrder, target: str) -> Callable[[AcmeOrder], bool]:
    """``done`` predicate for poll_until: True once the order is at ``target``."""

    def done(order: AcmeOrder) -> bool:
        ensure_progress(step, previous, order)
        return STATUS_RANK[order["status"]] >= STATUS_RANK[target]

    return done


@step_guard("create_order")
def create_order(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    dns_names = state["request"]["dns_names"]
    replaying = runtime.journal.is_replaying
    order = ensure_progress("create_order", None, runtime.call("order", dns_names))

    if not replaying:
        logger.info(
            "%s: order %s created (%s, %d authorization(s))",
            runtime.instance_id,
            order.get("order_url", "?"),
            order["status"],
            len(order.get("authorizations", [])),
        )
    return {"order": order}
