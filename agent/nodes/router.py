"""
Routing functions used with graph.add_conditional_edges().

These are not nodes: they read state only and must stay pure so that a
replayed run takes the same branches.
"""
from __future__ import annotations

from agent.state import IssuanceState
from agent.strategy import DNS01


def challenge_router(state: IssuanceState) -> str:
    """
    After create_order: skip challenges entirely when the CA already
    considers the order ready.

    Returns: "already_ready" | "dns01" | "http01"
    """
    order = state.get("order") or {}
    if order.get("status") == "ready":
        return "already_ready"
    return "dns01" if state.get("challenge_type") == DNS01 else "http01"


def valid_router(state: IssuanceState) -> str:
    """
    After finalize_order: poll only when the order is not yet valid.

    Returns: "valid" | "not_valid"
    """
    order = state.get("order") or {}
    return "valid" if order.get("status") == "valid" else "not_valid"
