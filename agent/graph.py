"""
LangGraph StateGraph for one certificate-issuance instance.

Graph topology:
  START
    → resolve_zones
    → select_strategy
    → precondition
    → create_order
    → [conditional: already_ready → finalize_order]
                    dns01  → dns01_authorization → await_propagation → check_dns_challenge ─┐
                    http01 → http01_authorization → check_http_challenge ──────────────────┤
                                                                                           ↓
                               answer_challenges → wait_until_ready → cleanup_challenge
    → finalize_order
    → [conditional: valid → merge_certificate
                    not_valid → wait_until_valid → merge_certificate]
    → send_completed_event
    → END

Durability does not come from the graph checkpointer but from the event
history behind IssuanceRuntime: re-running the same instance walks the graph
again from START, every journaled step returns its recorded outcome, and live
execution picks up at the first unrecorded step.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional
from uuid import uuid4

from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, START, StateGraph

from activities.interface import IssuanceActivities
from activities.journal import ExecutionJournal, NonDeterminismError, normalize
from activities.timer import DurableTimer, SystemClock
from agent.errors import OrchestrationError
from agent.nodes.challenge import (
    answer_challenges,
    await_propagation,
    check_dns_challenge,
    check_http_challenge,
    cleanup_challenge,
    dns01_authorization,
    http01_authorization,
    wait_until_ready,
)
from agent.nodes.finalizer import finalize_order, merge_certificate, wait_until_valid
from agent.nodes.notifier import send_completed_event
from agent.nodes.order import create_order
from agent.nodes.precondition import precondition
from agent.nodes.router import challenge_router, valid_router
from agent.nodes.zones import resolve_zones, select_strategy
from agent.runtime import IssuanceRuntime
from agent.state import CertificateRequest, IssuanceOutcome, IssuanceState, make_request
from config import Settings
from config import settings as default_settings
from storage.history import HistoryStore, InMemoryHistoryStore, new_record

logger = logging.getLogger(__name__)

NODES: dict[str, Callable] = {
    "resolve_zones": resolve_zones,
    "select_strategy": select_strategy,
    "precondition": precondition,
    "create_order": create_order,
    "dns01_authorization": dns01_authorization,
    "await_propagation": await_propagation,
    "check_dns_challenge": check_dns_challenge,
    "http01_authorization": http01_authorization,
    "check_http_challenge": check_http_challenge,
    "answer_challenges": answer_challenges,
    "wait_until_ready": wait_until_ready,
    "cleanup_challenge": cleanup_challenge,
    "finalize_order": finalize_order,
    "wait_until_valid": wait_until_valid,
    "merge_certificate": merge_certificate,
    "send_completed_event": send_completed_event,
}


def _bind(node: Callable, runtime: IssuanceRuntime) -> Callable:
    def run(state: IssuanceState) -> dict:
        return node(state, runtime)

    run.__name__ = node.__name__
    return run


def build_graph(runtime: IssuanceRuntime, use_checkpointing: bool = False):
    """
    Build and compile the issuance StateGraph for one instance.

    Args:
        runtime: Journal, timer and settings the nodes run against.
        use_checkpointing: If True, attach a MemorySaver so the run's state
            history can be inspected through graph.get_state_history().

    Returns:
        CompiledGraph ready to invoke / stream.
    """
    builder = StateGraph(IssuanceState)

    # ── Register nodes ────────────────────────────────────────────────────
    for name, node in NODES.items():
        builder.add_node(name, _bind(node, runtime))

    # ── Deterministic edges ───────────────────────────────────────────────
    builder.add_edge(START, "resolve_zones")
    builder.add_edge("resolve_zones", "select_strategy")
    builder.add_edge("select_strategy", "precondition")
    builder.add_edge("precondition", "create_order")

    # Skip challenges when the CA already validated the names
    builder.add_conditional_edges(
        "create_order",
        challenge_router,
        {
            "already_ready": "finalize_order",
            "dns01": "dns01_authorization",
            "http01": "http01_authorization",
        },
    )

    builder.add_edge("dns01_authorization", "await_propagation")
    builder.add_edge("await_propagation", "check_dns_challenge")
    builder.add_edge("check_dns_challenge", "answer_challenges")

    builder.add_edge("http01_authorization", "check_http_challenge")
    builder.add_edge("check_http_challenge", "answer_challenges")

    builder.add_edge("answer_challenges", "wait_until_ready")
    builder.add_edge("wait_until_ready", "cleanup_challenge")
    builder.add_edge("cleanup_challenge", "finalize_order")

    builder.add_conditional_edges(
        "finalize_order",
        valid_router,
        {
            "valid": "merge_certificate",
            "not_valid": "wait_until_valid",
        },
    )
    builder.add_edge("wait_until_valid", "merge_certificate")
    builder.add_edge("merge_certificate", "send_completed_event")
    builder.add_edge("send_completed_event", END)

    # ── Compile ───────────────────────────────────────────────────────────
    checkpointer = MemorySaver() if use_checkpointing else None
    return builder.compile(checkpointer=checkpointer)


def initial_state(request: CertificateRequest) -> dict:
    """Build the initial IssuanceState dict for a run."""
    return {
        "request": request,
        "zones": [],
        "challenge_type": None,
        "order": None,
        "challenge_results": [],
        "propagation_seconds": None,
        "certificate": None,
        "completed": False,
    }


def run_issuance(
    request: CertificateRequest,
    activities: IssuanceActivities,
    *,
    store: Optional[HistoryStore] = None,
    instance_id: Optional[str] = None,
    clock=None,
    settings: Optional[Settings] = None,
    use_checkpointing: bool = False,
) -> IssuanceOutcome:
    """
    Run (or resume) one issuance instance to completion or failure.

    An instance id that already has history in ``store`` is replayed: its
    recorded steps are not executed again.  Collaborator failures come back
    as a failed outcome.  NonDeterminismError propagates, including when the
    run finishes while recorded events remain unconsumed.  Timeouts and
    backoff are fixed from ``settings`` when the instance is first created.
    """
    request = make_request(request["certificate_name"], list(request["dns_names"]))
    store = store if store is not None else InMemoryHistoryStore()
    settings = settings or default_settings
    clock = clock or SystemClock()
    instance_id = instance_id or uuid4().hex

    record = store.load(instance_id)
    if record is None:
        record = new_record(instance_id, request, settings.wait_bounds())
        store.save(record)
    elif normalize(record["input"]) != normalize(request):
        raise NonDeterminismError(
            f"{instance_id}: history was recorded for a different request"
        )
    else:
        logger.info(
            "Resuming %s from %d recorded event(s)", instance_id, len(record["events"])
        )
        if not record.get("bounds"):
            # Records written before bounds were stored adopt the current ones once.
            record["bounds"] = settings.wait_bounds()
            store.save(record)

    journal = ExecutionJournal(record, store, activities, clock)
    runtime = IssuanceRuntime(journal, DurableTimer(journal, clock))
    graph = build_graph(runtime, use_checkpointing=use_checkpointing)
    config = {"configurable": {"thread_id": instance_id}} if use_checkpointing else {}

    try:
        final_state = graph.invoke(initial_state(request), config=config)
    except OrchestrationError as exc:
        journal.ensure_consumed()
        logger.error("Issuance %s failed at %s: %s", instance_id, exc.step, exc.reason)
        record["status"] = "failed"
        record["failure"] = {"step": exc.step, "reason": exc.reason}
        store.save(record)
        return {
            "instance_id": instance_id,
            "succeeded": False,
            "failed_step": exc.step,
            "reason": exc.reason,
            "certificate": None,
        }

    journal.ensure_consumed()
    record["status"] = "completed"
    record["failure"] = None
    store.save(record)
    logger.info(
        "Issuance %s complete: %s", instance_id, ", ".join(request["dns_names"])
    )
    return {
        "instance_id": instance_id,
        "succeeded": True,
        "failed_step": None,
        "reason": None,
        "certificate": final_state["certificate"],
    }


def resume_issuance(
    instance_id: str,
    activities: IssuanceActivities,
    *,
    store: HistoryStore,
    clock=None,
    settings: Optional[Settings] = None,
    use_checkpointing: bool = False,
) -> IssuanceOutcome:
    """Continue a stored instance using the request recorded with it."""
    record = store.load(instance_id)
    if record is None:
        raise KeyError(f"No history for instance {instance_id!r}")
    return run_issuance(
        record["input"],
        activities,
        store=store,
        instance_id=instance_id,
        clock=clock,
        settings=settings,
        use_checkpointing=use_checkpointing,
    )
